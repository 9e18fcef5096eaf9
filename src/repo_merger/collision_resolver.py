"""
Collision policy for destination refs.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import List

from .git_manager import GitManager
from .models import (
    OutcomeStatus,
    RefKind,
    RefOutcome,
    RemoteError,
    RepoMergeError,
)
from .session import ImportSession


logger = logging.getLogger(__name__)


class Resolution(Enum):
    """What to do with a destination ref."""

    PROCEED = "proceed"
    SKIP = "skip"


class CollisionResolver:
    """Decides per destination ref whether to create, overwrite or skip it."""

    def __init__(self, git_manager: GitManager, force: bool = False) -> None:
        self.gm = git_manager
        self.force = force

    def exists(self, kind: RefKind, destination: str) -> bool:
        if kind == RefKind.BRANCH:
            return self.gm.branch_exists(destination)
        return self.gm.tag_exists(destination)

    def resolve(self, kind: RefKind, destination: str) -> Resolution:
        """Apply the policy; in force mode an existing ref is deleted before returning PROCEED.

        Raises:
            GitRepositoryError: if an existing ref cannot be removed in force mode.
        """
        if not self.exists(kind, destination):
            return Resolution.PROCEED

        if not self.force:
            logger.info(
                f"{kind.value.capitalize()} {destination} already exists, skipping (use --force to overwrite)"
            )
            return Resolution.SKIP

        logger.warning(f"{kind.value.capitalize()} {destination} exists, overwriting (--force)")
        if kind == RefKind.BRANCH:
            self.gm.delete_branch(destination)
        else:
            self.gm.delete_tag(destination)
        return Resolution.PROCEED

    def ensure_branch_on_remote(self, session: ImportSession, branch: str) -> None:
        """Fail fast when an explicitly requested branch is missing from the source."""
        if not self.gm.ref_exists(session.remote_branch_ref(branch)):
            raise RemoteError(f"Branch '{branch}' does not exist in source repository")

    def check_requested_branch_created(self, branch: str, outcomes: List[RefOutcome]) -> None:
        """Escalate to fatal when a specific branch was requested but nothing was created."""
        created = [
            o for o in outcomes if o.kind == RefKind.BRANCH and o.status == OutcomeStatus.CREATED
        ]
        if not created:
            reasons = [
                f"{o.destination}: {o.reason}" for o in outcomes if o.kind == RefKind.BRANCH and o.reason
            ]
            detail = f" ({'; '.join(reasons)})" if reasons else ""
            raise RepoMergeError(f"Failed to create any branches for requested branch '{branch}'{detail}")
