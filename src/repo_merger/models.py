"""
Data models for the repository merge tool.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class RepoMergeError(Exception):
    """Base exception for repository merge operations."""

    pass


class ValidationError(RepoMergeError):
    """Raised for bad arguments, detected before any remote is contacted."""

    pass


class GitRepositoryError(RepoMergeError):
    """Exception raised for Git repository related errors."""

    pass


class RemoteError(RepoMergeError):
    """Exception raised when the source repository cannot be read."""

    pass


class RewriteError(RepoMergeError):
    """Exception raised when a branch history cannot be relocated."""

    pass


class MergeError(RepoMergeError):
    """Exception raised when the imported history cannot be merged."""

    pass


class MergeConflictError(MergeError):
    """Merge stopped on conflicts; the working tree is left for manual resolution."""

    def __init__(self, message: str, conflict_files: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.conflict_files = conflict_files or []


class RefKind(Enum):
    """Kind of reference being imported."""

    BRANCH = "branch"
    TAG = "tag"


class OutcomeStatus(Enum):
    """Per-ref result of an import."""

    CREATED = "created"
    SKIPPED = "skipped"
    FAILED = "failed"


class RewriteStrategy(Enum):
    """How branch histories are relocated under a subdirectory."""

    IN_PROCESS = "in-process"
    FILTER_REPO = "filter-repo"


class MergeStrategy(Enum):
    """Merge strategies passed verbatim to git merge."""

    RECURSIVE = "recursive"
    OURS = "ours"
    SUBTREE = "subtree"


@dataclass(frozen=True)
class RemoteRef:
    """Snapshot of a branch or tag advertised by the source repository.

    ``target`` is the peeled object id. For annotated tags ``object_sha`` is the
    tag object itself; for everything else both ids are equal.
    """

    kind: RefKind
    name: str
    target: str
    object_sha: Optional[str] = None
    annotated: bool = False


@dataclass
class RefOutcome:
    """Result of importing one ref."""

    kind: RefKind
    source_name: str
    destination: str
    status: OutcomeStatus
    reason: str = ""
    target: Optional[str] = None


@dataclass
class RewritePlan:
    """Where imported files end up in the destination tree."""

    subdirectory: Optional[str] = None
    preserve_paths: bool = False
    strategy: RewriteStrategy = RewriteStrategy.IN_PROCESS

    def __post_init__(self) -> None:
        if self.subdirectory is not None:
            cleaned = self.subdirectory.strip().strip("/")
            parts = cleaned.split("/") if cleaned else []
            if not parts:
                self.subdirectory = None
            elif any(p in ("", ".", "..", ".git") for p in parts):
                raise ValidationError(f"Invalid subdirectory: {self.subdirectory!r}")
            else:
                self.subdirectory = "/".join(parts)
        if self.subdirectory and self.preserve_paths:
            raise ValidationError("Cannot use --preserve-paths with --subdirectory")

    @property
    def enabled(self) -> bool:
        return self.subdirectory is not None

    @property
    def path_components(self) -> List[str]:
        return self.subdirectory.split("/") if self.subdirectory else []


@dataclass
class MergeRequest:
    """Auto-merge of the imported default branch into an existing branch."""

    target_branch: str
    strategy: MergeStrategy = MergeStrategy.RECURSIVE
    squash: bool = False
    no_commit: bool = False
    graft: bool = False


@dataclass
class MergeResult:
    """What the merge step actually did."""

    source_branch: str
    target_branch: str
    strategy: MergeStrategy
    squashed: bool = False
    committed: bool = False
    merge_commit: Optional[str] = None
    graft_recorded: bool = False


@dataclass
class ImportOptions:
    """All user-facing options of a single import run."""

    source_repo: str
    source_id: str
    subdirectory: Optional[str] = None
    branch: Optional[str] = None
    skip_tags: bool = False
    force: bool = False
    dry_run: bool = False
    merge_to: Optional[str] = None
    preserve_paths: bool = False
    rewrite_history: bool = False
    graft: bool = False
    squash_merge: bool = False
    no_commit: bool = False
    strategy: str = MergeStrategy.RECURSIVE.value

    def rewrite_plan(self) -> RewritePlan:
        strategy = RewriteStrategy.FILTER_REPO if self.rewrite_history else RewriteStrategy.IN_PROCESS
        return RewritePlan(
            subdirectory=self.subdirectory,
            preserve_paths=self.preserve_paths,
            strategy=strategy,
        )

    def merge_request(self) -> Optional[MergeRequest]:
        if not self.merge_to:
            return None
        try:
            strategy = MergeStrategy(self.strategy)
        except ValueError as e:
            choices = ", ".join(s.value for s in MergeStrategy)
            raise ValidationError(
                f"Unknown merge strategy {self.strategy!r} (expected one of: {choices})"
            ) from e
        return MergeRequest(
            target_branch=self.merge_to,
            strategy=strategy,
            squash=self.squash_merge,
            no_commit=self.no_commit,
            graft=self.graft,
        )


@dataclass
class ImportReport:
    """Aggregated results of an import, rendered by the CLI."""

    source_repo: str
    source_id: str
    dry_run: bool = False
    outcomes: List[RefOutcome] = field(default_factory=list)
    planned_actions: List[str] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)
    default_branch: Optional[str] = None
    merge_result: Optional[MergeResult] = None
    final_branch: Optional[str] = None

    def _select(self, status: OutcomeStatus, kind: Optional[RefKind]) -> List[RefOutcome]:
        return [
            o for o in self.outcomes if o.status == status and (kind is None or o.kind == kind)
        ]

    def created(self, kind: Optional[RefKind] = None) -> List[RefOutcome]:
        return self._select(OutcomeStatus.CREATED, kind)

    def skipped(self, kind: Optional[RefKind] = None) -> List[RefOutcome]:
        return self._select(OutcomeStatus.SKIPPED, kind)

    def failed(self, kind: Optional[RefKind] = None) -> List[RefOutcome]:
        return self._select(OutcomeStatus.FAILED, kind)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed())
