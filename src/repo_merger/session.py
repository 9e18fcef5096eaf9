"""
Transient remote lifecycle for a single import.
"""

from __future__ import annotations

import logging
import os
import secrets
from typing import List, Optional

from .git_manager import GitManager
from .models import (
    GitRepositoryError,
    ImportReport,
    OutcomeStatus,
    RefOutcome,
    RemoteError,
)


logger = logging.getLogger(__name__)


REMOTE_PREFIX = "merge-source"
PRIVATE_REF_NAMESPACE = "refs/merge-sources"


def make_handle_name(source_id: str) -> str:
    """Collision-free remote name: source id + process id + random suffix."""
    return f"{REMOTE_PREFIX}-{source_id}-{os.getpid()}-{secrets.token_hex(4)}"


class ImportSession:
    """Owns the transient remote used to read the source repository.

    Use as a context manager: the remote is registered and branches are fetched
    on entry, and ``teardown()`` runs on every exit path. Teardown is idempotent,
    so it is also safe to call it directly after a crash left a remote behind.
    """

    def __init__(
        self,
        git_manager: GitManager,
        source_repo: str,
        source_id: str,
        report: Optional[ImportReport] = None,
        handle: Optional[str] = None,
    ) -> None:
        self.gm = git_manager
        self.source_repo = source_repo
        self.source_id = source_id
        self.handle = handle or make_handle_name(source_id)
        self.report = report or ImportReport(source_repo=source_repo, source_id=source_id)
        self.is_open = False

    # --- Naming inside the session ---
    @property
    def branch_namespace(self) -> str:
        return f"refs/remotes/{self.handle}/"

    @property
    def private_namespace(self) -> str:
        return f"{PRIVATE_REF_NAMESPACE}/{self.handle}/"

    def remote_branch_ref(self, branch: str) -> str:
        return f"{self.branch_namespace}{branch}"

    def tag_ref(self, tag: str) -> str:
        return f"{self.private_namespace}tags/{tag}"

    # --- Lifecycle ---
    def open(self) -> None:
        """Register the remote and fetch every branch of the source repository."""
        logger.info(f"Opening import session {self.handle} for {self.source_repo}")
        try:
            self.gm.add_remote(self.handle, self.source_repo)
            self.is_open = True
            self.gm.fetch(self.handle, [f"+refs/heads/*:{self.branch_namespace}*"])
        except GitRepositoryError as e:
            raise RemoteError(f"Could not read source repository {self.source_repo}: {e}") from e

    def teardown(self) -> None:
        """Remove the remote and any private refs; safe to call more than once."""
        try:
            if self.gm.remote_exists(self.handle):
                self.gm.remove_remote(self.handle)
        except GitRepositoryError as e:
            logger.warning(f"Could not remove remote {self.handle}: {e}")
        try:
            for ref in self.gm.list_refs(self.private_namespace):
                self.gm.delete_ref(ref)
        except GitRepositoryError as e:
            logger.warning(f"Could not clean private refs of {self.handle}: {e}")
        if self.is_open:
            logger.info(f"Closed import session {self.handle}")
        self.is_open = False

    def __enter__(self) -> "ImportSession":
        try:
            self.open()
        except BaseException:
            self.teardown()
            raise
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.teardown()
        return False

    # --- Outcome aggregation ---
    def record(self, outcome: RefOutcome) -> RefOutcome:
        self.report.outcomes.append(outcome)
        level = logging.WARNING if outcome.status == OutcomeStatus.FAILED else logging.INFO
        logger.log(
            level,
            f"{outcome.kind.value} {outcome.source_name} -> {outcome.destination}: "
            f"{outcome.status.value}{' (' + outcome.reason + ')' if outcome.reason else ''}",
        )
        return outcome

    def outcomes(self, status: Optional[OutcomeStatus] = None) -> List[RefOutcome]:
        return [o for o in self.report.outcomes if status is None or o.status == status]
