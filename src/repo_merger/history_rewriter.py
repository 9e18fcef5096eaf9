"""
Relocation of a branch history under a subdirectory.

Two interchangeable strategies produce the same trees:

* ``InProcessRewriter`` walks the commit graph parents-first and writes the
  relocated trees and commits straight into the object database.
* ``FilterRepoRewriter`` runs ``git filter-repo --to-subdirectory-filter`` in a
  throw-away single-branch clone and fetches the result back.

Only trees change. Author, committer, dates, timezone offsets, encoding and
message are copied byte for byte from the original commit.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Dict, List, Optional

from git import Repo
from git.exc import GitCommandError
from git.objects import Commit, Tree
from git.objects.fun import tree_to_stream
from gitdb import IStream
from gitdb.exc import ODBError
from gitdb.util import bin_to_hex, hex_to_bin

from .commit_map import CommitMap
from .git_manager import GitManager
from .models import GitRepositoryError, RewriteError, RewritePlan, RewriteStrategy


logger = logging.getLogger(__name__)

EMPTY_TREE_SHA = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"
TREE_MODE = 0o040000
FILTER_REPO_EXECUTABLE = "git-filter-repo"


def filter_repo_available() -> bool:
    return shutil.which(FILTER_REPO_EXECUTABLE) is not None


@dataclass
class RewriteResult:
    """Outcome of rewriting one branch."""

    branch: str
    old_tip: str
    new_tip: Optional[str]
    rewritten: int = 0
    pruned: int = 0


class HistoryRewriter(ABC):
    """Rewrites every commit of a branch so its tree lives under ``plan.subdirectory``."""

    def __init__(self, git_manager: GitManager, plan: RewritePlan, commit_map: CommitMap) -> None:
        if not plan.enabled:
            raise RewriteError("History rewrite requested without a target subdirectory")
        self.gm = git_manager
        self.plan = plan
        self.commit_map = commit_map

    @abstractmethod
    def rewrite(self, branch: str) -> RewriteResult:
        """Rewrite ``refs/heads/<branch>`` in place and return the new tip."""

    def _branch_tip(self, branch: str) -> str:
        tip = self.gm.rev_parse(f"refs/heads/{branch}")
        if not tip:
            raise RewriteError(f"Branch {branch} does not exist")
        return tip

    def _drop_branch(self, branch: str) -> None:
        try:
            self.gm.delete_branch(branch)
        except GitRepositoryError as e:
            logger.warning(f"Could not remove emptied branch {branch}: {e}")
        raise RewriteError(f"History of {branch} is empty after relocation to {self.plan.subdirectory}")


class InProcessRewriter(HistoryRewriter):
    """Tree rewrite applied incrementally in topological order, no satellite clone.

    Commits are rewritten from their raw object bytes: only the ``tree`` and
    ``parent`` header lines are replaced, every other header and the message
    are kept byte for byte.
    """

    def __init__(self, git_manager: GitManager, plan: RewritePlan, commit_map: CommitMap) -> None:
        super().__init__(git_manager, plan, commit_map)
        self._tree_cache: Dict[str, str] = {}  # original tree -> relocated tree

    def rewrite(self, branch: str) -> RewriteResult:
        old_tip = self._branch_tip(branch)
        result = RewriteResult(branch=branch, old_tip=old_tip, new_tip=None)
        logger.info(f"Moving files of {branch} to subdirectory: {self.plan.subdirectory}")

        try:
            order = self.gm.rev_list("--topo-order", "--reverse", old_tip)
        except GitRepositoryError as e:
            raise RewriteError(f"Cannot walk history of {branch}: {e}") from e

        repo = self.gm.repo
        try:
            for sha in order:
                if sha in self.commit_map:
                    continue
                if self._rewrite_commit(repo, sha):
                    result.rewritten += 1
                else:
                    result.pruned += 1
        except (ODBError, ValueError) as e:
            logger.error(f"Rewrite of {branch} failed: {e}")
            raise RewriteError(f"Rewrite of {branch} failed: {e}") from e

        result.new_tip = self.commit_map.get_new_hash(old_tip)
        if not result.new_tip:
            self._drop_branch(branch)

        try:
            self.gm.update_ref(f"refs/heads/{branch}", result.new_tip, old_tip)
        except GitRepositoryError as e:
            raise RewriteError(f"Could not move {branch} to its rewritten tip: {e}") from e
        logger.info(
            f"Rewrote {branch}: {result.rewritten} commit(s) written, {result.pruned} pruned, "
            f"tip {old_tip[:8]} -> {result.new_tip[:8]}"
        )
        return result

    def _rewrite_commit(self, repo: Repo, sha: str) -> bool:
        """Write the relocated copy of commit ``sha``; returns False when it was pruned."""
        raw = self._read(repo, sha)
        header, separator, message = raw.partition(b"\n\n")
        lines = header.split(b"\n")
        tree_sha = lines[0][len(b"tree "):].decode("ascii")
        old_parents: List[str] = []
        for line in lines[1:]:
            if not line.startswith(b"parent "):
                break
            old_parents.append(line[len(b"parent "):].decode("ascii"))
        other_headers = lines[1 + len(old_parents):]

        new_parents: List[str] = []
        for parent in old_parents:
            mapped = self.commit_map.get_new_hash(parent)
            if mapped and mapped not in new_parents:
                new_parents.append(mapped)

        new_tree = self._relocate_tree(repo, tree_sha)

        # Same pruning rule as filter-branch --prune-empty
        if len(new_parents) == 1 and self._tree_of(repo, new_parents[0]) == new_tree:
            self.commit_map.add_mapping(sha, new_parents[0])
            return False
        if not new_parents and new_tree == EMPTY_TREE_SHA:
            self.commit_map.add_mapping(sha, None)
            return False

        new_header = [b"tree " + new_tree.encode("ascii")]
        new_header.extend(b"parent " + p.encode("ascii") for p in new_parents)
        new_header.extend(other_headers)
        data = b"\n".join(new_header) + separator + message
        self.commit_map.add_mapping(sha, self._store(repo, Commit.type, data))
        return True

    def _tree_of(self, repo: Repo, commit_sha: str) -> str:
        first_line = self._read(repo, commit_sha).split(b"\n", 1)[0]
        return first_line[len(b"tree "):].decode("ascii")

    def _relocate_tree(self, repo: Repo, tree_sha: str) -> str:
        if tree_sha == EMPTY_TREE_SHA:
            return tree_sha
        cached = self._tree_cache.get(tree_sha)
        if cached:
            return cached

        current = tree_sha
        for name in reversed(self.plan.path_components):
            stream = BytesIO()
            tree_to_stream([(hex_to_bin(current), TREE_MODE, name)], stream.write)
            current = self._store(repo, Tree.type, stream.getvalue())
        self._tree_cache[tree_sha] = current
        return current

    @staticmethod
    def _read(repo: Repo, sha: str) -> bytes:
        return repo.odb.stream(hex_to_bin(sha)).read()

    @staticmethod
    def _store(repo: Repo, obj_type: str, data: bytes) -> str:
        istream = repo.odb.store(IStream(obj_type, len(data), BytesIO(data)))
        return bin_to_hex(istream.binsha).decode("ascii")


class FilterRepoRewriter(HistoryRewriter):
    """Runs git-filter-repo against an isolated single-branch clone."""

    def rewrite(self, branch: str) -> RewriteResult:
        if not filter_repo_available():
            raise RewriteError("git-filter-repo is required for history rewriting (pip install git-filter-repo)")

        old_tip = self._branch_tip(branch)
        result = RewriteResult(branch=branch, old_tip=old_tip, new_tip=None)
        try:
            branch_commits = self.gm.rev_list(old_tip)
        except GitRepositoryError as e:
            raise RewriteError(f"Cannot walk history of {branch}: {e}") from e
        work_dir = Path(tempfile.mkdtemp(prefix="repo-merger-"))
        logger.info(f"Rewriting {branch} with git-filter-repo in {work_dir}")
        try:
            clone = Repo.clone_from(str(self.gm.git_dir), str(work_dir), single_branch=True, branch=branch)
            try:
                clone.git.filter_repo("--to-subdirectory-filter", self.plan.subdirectory, "--force")
                commit_map_path = Path(clone.git_dir) / "filter-repo" / "commit-map"
                if commit_map_path.exists():
                    self.commit_map.load_filter_repo_map(commit_map_path)
                if clone.git.for_each_ref(f"refs/heads/{branch}").strip():
                    self.gm.fetch(str(work_dir), [f"+refs/heads/{branch}:refs/heads/{branch}"], force=True)
                    result.new_tip = self.gm.rev_parse(f"refs/heads/{branch}")
            finally:
                clone.close()
        except GitCommandError as e:
            logger.error(f"git-filter-repo failed for {branch}: {e}")
            raise RewriteError(f"git-filter-repo failed for {branch}: {e}") from e
        except GitRepositoryError as e:
            raise RewriteError(f"Could not fetch rewritten {branch}: {e}") from e
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)

        if not result.new_tip:
            self._drop_branch(branch)

        for sha in branch_commits:
            if sha not in self.commit_map:
                continue
            if self.commit_map.get_new_hash(sha):
                result.rewritten += 1
            else:
                result.pruned += 1
        logger.info(f"Rewrote {branch}: tip {old_tip[:8]} -> {result.new_tip[:8]}")
        return result


def build_rewriter(
    plan: RewritePlan, git_manager: GitManager, commit_map: CommitMap
) -> Optional[HistoryRewriter]:
    """Return the configured rewriter, or None when files keep their source paths."""
    if not plan.enabled:
        return None
    if plan.strategy == RewriteStrategy.FILTER_REPO:
        return FilterRepoRewriter(git_manager, plan, commit_map)
    return InProcessRewriter(git_manager, plan, commit_map)
