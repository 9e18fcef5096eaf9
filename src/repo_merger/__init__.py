"""
repo-merger - import another git repository's full history into this one.

Branches and tags of the source repository are recreated under a per-source
prefix, optionally relocated under a subdirectory and merged into an existing
branch.
"""

__version__ = "0.1.0"

from .import_orchestrator import ImportOrchestrator
from .models import ImportOptions, ImportReport, RefOutcome, RepoMergeError
from .git_manager import GitManager
from .session import ImportSession
from .commit_map import CommitMap
from .history_rewriter import InProcessRewriter, FilterRepoRewriter

__all__ = [
    "ImportOrchestrator",
    "ImportOptions",
    "ImportReport",
    "RefOutcome",
    "RepoMergeError",
    "GitManager",
    "ImportSession",
    "CommitMap",
    "InProcessRewriter",
    "FilterRepoRewriter",
]
