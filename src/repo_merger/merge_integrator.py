"""
Merging an imported branch into an existing destination branch.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from git.exc import GitCommandError

from .git_manager import GitManager
from .models import (
    GitRepositoryError,
    MergeConflictError,
    MergeError,
    MergeRequest,
    MergeResult,
)
from .name_mapper import branch_name


logger = logging.getLogger(__name__)

FALLBACK_DEFAULT_BRANCHES = ("main", "master", "trunk")
GRAFTS_FILE = ("info", "grafts")


class MergeIntegrator:
    """Runs the optional merge of the imported default branch."""

    def __init__(self, git_manager: GitManager) -> None:
        self.gm = git_manager

    def resolve_source(self, source_id: str, default_branch: Optional[str]) -> str:
        """Pick the imported branch to merge: the default first, then conventional names."""
        candidates: List[str] = []
        if default_branch:
            candidates.append(branch_name(source_id, default_branch))
        for name in FALLBACK_DEFAULT_BRANCHES:
            if branch_name(source_id, name) not in candidates:
                candidates.append(branch_name(source_id, name))
        for candidate in candidates:
            if self.gm.branch_exists(candidate):
                logger.info(f"Merge source resolved to {candidate}")
                return candidate
        raise MergeError(
            f"No imported default branch to merge (tried: {', '.join(candidates)})"
        )

    def integrate(self, request: MergeRequest, source_branch: str, source_id: str) -> MergeResult:
        """Merge ``source_branch`` into ``request.target_branch``.

        Raises:
            MergeConflictError: the merge stopped on conflicts; the working tree
                is left as is for manual resolution.
            MergeError: the target is missing or git refused the merge.
        """
        target = request.target_branch
        if not self.gm.branch_exists(target):
            raise MergeError(f"Target branch '{target}' does not exist")
        try:
            self.gm.checkout_branch(target)
        except GitRepositoryError as e:
            raise MergeError(f"Cannot check out merge target {target}: {e}") from e

        result = MergeResult(
            source_branch=source_branch,
            target_branch=target,
            strategy=request.strategy,
            squashed=request.squash,
        )
        head_before = self.gm.get_head_commit()
        common = [f"--strategy={request.strategy.value}", "--allow-unrelated-histories"]
        logger.info(
            f"Merging {source_branch} into {target} (strategy={request.strategy.value}, "
            f"squash={request.squash}, no_commit={request.no_commit})"
        )

        if request.squash:
            self._run_merge(["--squash", *common, source_branch], source_branch, target, squash=True)
            if not request.no_commit:
                if self.gm.get_staged_files():
                    result.merge_commit = self.gm.commit(f"Squash merge {source_branch}")
                    result.committed = True
                else:
                    logger.info("Squash merge staged no changes; nothing to commit")
        elif request.no_commit:
            self._run_merge(["--no-commit", *common, source_branch], source_branch, target, squash=False)
        else:
            message = f"Merge branch '{source_branch}'"
            self._run_merge(["-m", message, *common, source_branch], source_branch, target, squash=False)
            head_after = self.gm.get_head_commit()
            if head_after and head_after != head_before:
                result.merge_commit = head_after
                result.committed = True

        if request.graft and result.committed and result.merge_commit:
            source_tip = self.gm.rev_parse(f"refs/heads/{source_branch}")
            if source_tip:
                self.record_graft(source_id, result.merge_commit, source_tip)
                result.graft_recorded = True
        elif request.graft:
            logger.info("No merge commit was created; graft not recorded")

        return result

    def _run_merge(self, args: List[str], source_branch: str, target: str, squash: bool) -> None:
        try:
            self.gm.merge(*args)
        except GitCommandError as e:
            conflicts = self.gm.get_conflict_files()
            if conflicts:
                follow_up = "commit" if squash else "run: git merge --continue"
                logger.error(f"Merge of {source_branch} into {target} stopped on {len(conflicts)} conflict(s)")
                raise MergeConflictError(
                    f"Merge conflicts in {', '.join(conflicts)}. Resolve conflicts and {follow_up}",
                    conflict_files=conflicts,
                ) from e
            logger.error(f"Merge of {source_branch} into {target} failed: {e}")
            raise MergeError(f"Merge of {source_branch} into {target} failed: {e}") from e

    def record_graft(self, source_id: str, merge_commit: str, source_tip: str) -> None:
        """Append a graft line linking ``merge_commit`` to the imported tip.

        Commit objects are not modified; the link lives only in ``info/grafts``.
        """
        parents = self.gm.commit_parents(merge_commit)
        if source_tip not in parents:
            parents.append(source_tip)
        grafts = self.gm.git_dir.joinpath(*GRAFTS_FILE)
        grafts.parent.mkdir(parents=True, exist_ok=True)
        with open(grafts, "a", encoding="utf-8") as fh:
            fh.write(f"# Grafted merge from {source_id}\n")
            fh.write(" ".join([merge_commit, *parents]) + "\n")
        logger.info(f"Recorded graft for {merge_commit[:8]} in {grafts}")
