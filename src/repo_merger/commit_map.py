"""
Commit tracking and hash mapping during history rewrites.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple


logger = logging.getLogger(__name__)

NULL_SHA = "0" * 40


class CommitMap:
    """Maps original commit ids to their rewritten counterparts.

    A commit mapped to None was pruned and has no kept ancestor of its own
    (e.g. an empty root commit, or a commit git-filter-repo dropped).
    """

    def __init__(self) -> None:
        self.commit_mappings: Dict[str, Optional[str]] = {}  # old_hash -> new_hash
        self.reverse_mappings: Dict[str, str] = {}  # new_hash -> old_hash

    def __contains__(self, old_hash: str) -> bool:
        return old_hash in self.commit_mappings

    def __len__(self) -> int:
        return len(self.commit_mappings)

    def add_mapping(self, old_hash: str, new_hash: Optional[str]) -> None:
        """Record that ``old_hash`` was rewritten to ``new_hash`` (None when dropped)."""
        self.commit_mappings[old_hash] = new_hash
        if new_hash and new_hash not in self.reverse_mappings:
            self.reverse_mappings[new_hash] = old_hash
        logger.debug(f"Mapped commit {old_hash[:8]} -> {new_hash[:8] if new_hash else 'pruned'}")

    def get_new_hash(self, old_hash: str) -> Optional[str]:
        """Get the new hash for an old commit hash."""
        return self.commit_mappings.get(old_hash)

    def get_old_hash(self, new_hash: str) -> Optional[str]:
        """Get the old hash for a new commit hash."""
        return self.reverse_mappings.get(new_hash)

    def resolve(
        self, old_hash: str, parents_of: Callable[[str], List[str]]
    ) -> Tuple[bool, Optional[str]]:
        """Find the rewritten commit that stands in for ``old_hash``.

        Pruned commits resolve to the nearest kept first-parent ancestor.

        Returns:
            Tuple of (was_rewritten, new_hash). ``was_rewritten`` is False when
            no rewritten branch reaches the commit at all.
        """
        if old_hash not in self.commit_mappings:
            return False, None
        current = old_hash
        seen = set()
        while current in self.commit_mappings and current not in seen:
            seen.add(current)
            new_hash = self.commit_mappings[current]
            if new_hash:
                return True, new_hash
            parents = parents_of(current)
            if not parents:
                return True, None
            current = parents[0]
        return True, None

    def load_filter_repo_map(self, path: Path) -> int:
        """Import a git-filter-repo ``commit-map`` file; returns the number of entries read."""
        count = 0
        with open(path, "r", encoding="utf-8") as fh:
            for line in fh:
                parts = line.split()
                if len(parts) != 2 or parts[0] == "old":
                    continue
                old_hash, new_hash = parts
                self.add_mapping(old_hash, None if new_hash == NULL_SHA else new_hash)
                count += 1
        logger.info(f"Imported {count} commit mappings from {path}")
        return count

    def get_all_mappings(self) -> Dict[str, Optional[str]]:
        """Get all commit hash mappings."""
        return self.commit_mappings.copy()

    def clear_mappings(self) -> None:
        """Clear all commit mappings."""
        self.commit_mappings.clear()
        self.reverse_mappings.clear()
        logger.debug("Cleared all commit mappings")
