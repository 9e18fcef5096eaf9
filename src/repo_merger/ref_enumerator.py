"""
Enumeration of the branches and tags of the source repository.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from .git_manager import GitManager
from .models import GitRepositoryError, RefKind, RemoteError, RemoteRef
from .session import ImportSession


logger = logging.getLogger(__name__)

PEELED_SUFFIX = "^{}"
TAG_PREFIX = "refs/tags/"
HEAD_PREFIX = "refs/heads/"
DEFAULT_BRANCH = "main"


class RefEnumerator:
    """Lists the refs of the source repository through an open session."""

    def __init__(self, git_manager: GitManager) -> None:
        self.gm = git_manager

    def list_branches(self, session: ImportSession) -> List[RemoteRef]:
        """Return the branches fetched by the session, sorted by name."""
        prefix = session.branch_namespace
        try:
            refs = self.gm.list_refs(prefix)
        except GitRepositoryError as e:
            raise RemoteError(f"Failed to enumerate branches of {session.source_repo}: {e}") from e

        branches: List[RemoteRef] = []
        for ref in refs:
            name = ref[len(prefix):]
            if not name or name == "HEAD":
                continue
            target = self.gm.rev_parse(ref) or ""
            branches.append(RemoteRef(kind=RefKind.BRANCH, name=name, target=target, object_sha=target))
        branches.sort(key=lambda r: r.name)
        logger.info(f"Found {len(branches)} branch(es) in {session.source_repo}")
        return branches

    def list_tags(self, session: ImportSession) -> List[RemoteRef]:
        """Return the tags advertised by the remote.

        Peel entries (``refs/tags/x^{}``) are folded into their base tag and
        never reported as tags of their own.
        """
        try:
            output = self.gm.ls_remote(session.handle, options=["--tags"])
        except GitRepositoryError as e:
            raise RemoteError(f"Failed to enumerate tags of {session.source_repo}: {e}") from e
        return parse_tag_listing(output)

    def default_branch(self, session: ImportSession) -> str:
        """Return the remote's default branch, falling back to ``main``."""
        try:
            output = self.gm.ls_remote(session.handle, options=["--symref"], patterns=["HEAD"])
        except GitRepositoryError:
            output = ""
        for line in output.splitlines():
            if line.startswith("ref:"):
                target = line[len("ref:"):].split("\t", 1)[0].strip()
                if target.startswith(HEAD_PREFIX):
                    return target[len(HEAD_PREFIX):]

        symbolic = self.gm.symbolic_ref(f"refs/remotes/{session.handle}/HEAD")
        if symbolic:
            return symbolic[len(f"refs/remotes/{session.handle}/"):]

        logger.info(f"Could not determine default branch of {session.source_repo}; assuming {DEFAULT_BRANCH}")
        return DEFAULT_BRANCH


def parse_tag_listing(output: str) -> List[RemoteRef]:
    """Parse ``git ls-remote --tags`` output into tag RemoteRefs sorted by name."""
    direct: Dict[str, str] = {}
    peeled: Dict[str, str] = {}
    for line in output.splitlines():
        parts = line.strip().split("\t")
        if len(parts) != 2 or not parts[1].startswith(TAG_PREFIX):
            continue
        sha, ref = parts
        name = ref[len(TAG_PREFIX):]
        if name.endswith(PEELED_SUFFIX):
            peeled[name[: -len(PEELED_SUFFIX)]] = sha
        else:
            direct[name] = sha

    tags: List[RemoteRef] = []
    for name in sorted(direct):
        object_sha = direct[name]
        target: Optional[str] = peeled.get(name)
        tags.append(
            RemoteRef(
                kind=RefKind.TAG,
                name=name,
                target=target or object_sha,
                object_sha=object_sha,
                annotated=target is not None,
            )
        )
    return tags
