"""
Git repository management and operations.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence

from git import Repo, InvalidGitRepositoryError, NoSuchPathError
from git.exc import GitCommandError

from .models import GitRepositoryError


logger = logging.getLogger(__name__)


class GitManager:
    """Typed wrapper over the git operations used during an import.

    Every call goes through GitPython; failures are logged and re-raised as
    GitRepositoryError unless the method documents a boolean/None result.
    """

    def __init__(self, repo_path: Optional[Path] = None) -> None:
        """Initialize Git manager with optional repository path."""
        self.repo_path = Path(repo_path or Path.cwd()).resolve()
        self._repo: Optional[Repo] = None

    @property
    def repo(self) -> Repo:
        """Get the Git repository instance."""
        if self._repo is None:
            self._repo = self._discover_repository()
        return self._repo

    def _discover_repository(self) -> Repo:
        """Discover the Git repository from current or specified path."""
        search_path = self.repo_path

        logger.debug(f"Discovering repository in: {search_path}")
        # Walk up the directory tree to find a Git repository
        while search_path != search_path.parent:
            try:
                repo = Repo(search_path)
                logger.info(f"Found Git repository at: {search_path}")
                return repo
            except (InvalidGitRepositoryError, NoSuchPathError):
                search_path = search_path.parent

        raise GitRepositoryError(
            f"Not in a git repository: no repository found at {self.repo_path} or any parent directory"
        )

    @property
    def git_dir(self) -> Path:
        return Path(self.repo.git_dir)

    @property
    def working_dir(self) -> Path:
        return Path(self.repo.working_dir)

    # --- HEAD ---
    def get_current_branch(self) -> Optional[str]:
        """Return the checked out branch name, or None on a detached HEAD."""
        try:
            if self.repo.head.is_detached:
                return None
            return self.repo.active_branch.name
        except TypeError:
            return None
        except Exception as e:
            logger.error(f"Error getting current branch: {e}")
            raise GitRepositoryError(f"Could not determine current branch: {e}")

    def get_head_commit(self) -> Optional[str]:
        """Return the commit HEAD points at, or None in an unborn repository."""
        return self.rev_parse("HEAD")

    def checkout_branch(self, branch_name: str) -> None:
        """Checkout a specific branch (or commit)."""
        try:
            self.repo.git.checkout(branch_name)
            logger.info(f"Checked out branch: {branch_name}")
        except GitCommandError as e:
            logger.error(f"Error checking out branch {branch_name}: {e}")
            raise GitRepositoryError(f"Failed to checkout branch {branch_name}: {e}")

    # --- Refs ---
    def ref_exists(self, full_ref: str) -> bool:
        try:
            self.repo.git.show_ref("--verify", "--quiet", full_ref)
            return True
        except GitCommandError:
            return False

    def branch_exists(self, branch_name: str) -> bool:
        """Check if a local branch exists (supports full names with slashes)."""
        return self.ref_exists(f"refs/heads/{branch_name}")

    def tag_exists(self, tag_name: str) -> bool:
        return self.ref_exists(f"refs/tags/{tag_name}")

    def rev_parse(self, ref: str) -> Optional[str]:
        """Return the full object id for ``ref`` or None if it does not resolve."""
        try:
            value = self.repo.git.rev_parse("--verify", "--quiet", ref).strip()
            return value or None
        except GitCommandError:
            return None

    def object_type(self, sha: str) -> Optional[str]:
        """Return 'commit', 'tree', 'blob' or 'tag' for an object id."""
        try:
            return self.repo.git.cat_file("-t", sha).strip()
        except GitCommandError:
            return None

    def list_refs(self, prefix: str) -> List[str]:
        """List full ref names below ``prefix`` (e.g. 'refs/remotes/origin/')."""
        try:
            output = self.repo.git.for_each_ref("--format=%(refname)", prefix)
        except GitCommandError as e:
            logger.error(f"Error listing refs under {prefix}: {e}")
            raise GitRepositoryError(f"Failed to list refs under {prefix}: {e}")
        return [ln.strip() for ln in output.splitlines() if ln.strip()]

    def list_tags(self) -> List[str]:
        return [r[len("refs/tags/"):] for r in self.list_refs("refs/tags/")]

    def create_branch(self, branch_name: str, start_point: str) -> None:
        """Create a new local branch at ``start_point``; fails if it exists."""
        try:
            self.repo.git.branch("--no-track", branch_name, start_point)
            logger.info(f"Created branch {branch_name} -> {start_point}")
        except GitCommandError as e:
            logger.error(f"Error creating branch {branch_name}: {e}")
            raise GitRepositoryError(f"Failed to create branch {branch_name}: {e}")

    def delete_branch(self, branch_name: str) -> None:
        """Delete a local branch (force)."""
        try:
            self.repo.git.branch("-D", branch_name)
            logger.info(f"Deleted branch {branch_name}")
        except GitCommandError as e:
            logger.error(f"Error deleting branch {branch_name}: {e}")
            raise GitRepositoryError(f"Failed to delete branch {branch_name}: {e}")

    def delete_tag(self, tag_name: str) -> None:
        try:
            self.repo.git.tag("-d", tag_name)
            logger.info(f"Deleted tag {tag_name}")
        except GitCommandError as e:
            logger.error(f"Error deleting tag {tag_name}: {e}")
            raise GitRepositoryError(f"Failed to delete tag {tag_name}: {e}")

    def update_ref(self, full_ref: str, new_value: str, old_value: Optional[str] = None) -> None:
        """Point ``full_ref`` at ``new_value``, optionally guarded by ``old_value``."""
        args = [full_ref, new_value]
        if old_value:
            args.append(old_value)
        try:
            self.repo.git.update_ref(*args)
            logger.debug(f"Updated {full_ref} -> {new_value}")
        except GitCommandError as e:
            logger.error(f"Error updating {full_ref}: {e}")
            raise GitRepositoryError(f"Failed to update {full_ref}: {e}")

    def delete_ref(self, full_ref: str) -> None:
        try:
            self.repo.git.update_ref("-d", full_ref)
            logger.debug(f"Deleted ref {full_ref}")
        except GitCommandError as e:
            logger.error(f"Error deleting ref {full_ref}: {e}")
            raise GitRepositoryError(f"Failed to delete ref {full_ref}: {e}")

    def path_exists_at(self, ref: str, path: str) -> bool:
        """Return True if ``path`` exists in the tree of ``ref``."""
        try:
            return bool(self.repo.git.ls_tree("--name-only", ref, "--", path).strip())
        except GitCommandError:
            return False

    def rev_list(self, *args: str) -> List[str]:
        try:
            output = self.repo.git.rev_list(*args)
        except GitCommandError as e:
            logger.error(f"Error listing revisions {args}: {e}")
            raise GitRepositoryError(f"Failed to list revisions: {e}")
        return [ln.strip() for ln in output.splitlines() if ln.strip()]

    # --- Remotes ---
    def remote_exists(self, remote_name: str) -> bool:
        return remote_name in [r.name for r in self.repo.remotes]

    def add_remote(self, remote_name: str, url: str) -> None:
        try:
            self.repo.create_remote(remote_name, url)
            logger.info(f"Added remote {remote_name} -> {url}")
        except GitCommandError as e:
            logger.error(f"Failed to add remote {remote_name}: {e}")
            raise GitRepositoryError(f"Failed to add remote {remote_name}: {e}")

    def remove_remote(self, remote_name: str) -> None:
        try:
            self.repo.delete_remote(remote_name)
            logger.info(f"Removed remote {remote_name}")
        except GitCommandError as e:
            logger.error(f"Failed to remove remote {remote_name}: {e}")
            raise GitRepositoryError(f"Failed to remove remote {remote_name}: {e}")

    def fetch(self, source: str, refspecs: Sequence[str], force: bool = False) -> None:
        """Fetch explicit refspecs from a remote name or path, never auto-following tags."""
        args = ["--no-tags"]
        if force:
            args.append("--force")
        try:
            self.repo.git.fetch(*args, source, *refspecs)
            logger.info(f"Fetched {list(refspecs)} from {source}")
        except GitCommandError as e:
            logger.error(f"Failed to fetch from {source}: {e}")
            raise GitRepositoryError(f"Failed to fetch from {source}: {e}")

    def ls_remote(
        self, remote_name: str, options: Sequence[str] = (), patterns: Sequence[str] = ()
    ) -> str:
        """Run ``git ls-remote [options] <remote> [patterns]``."""
        try:
            return self.repo.git.ls_remote(*options, remote_name, *patterns)
        except GitCommandError as e:
            logger.error(f"Failed to list refs of {remote_name}: {e}")
            raise GitRepositoryError(f"Failed to list refs of {remote_name}: {e}")

    def symbolic_ref(self, ref: str) -> Optional[str]:
        try:
            return self.repo.git.symbolic_ref("--quiet", ref).strip() or None
        except GitCommandError:
            return None

    # --- Merging ---
    def merge(self, *args: str) -> None:
        """Run ``git merge``; GitCommandError propagates so callers can inspect conflicts."""
        self.repo.git.merge(*args)

    def commit(self, message: str) -> str:
        try:
            self.repo.git.commit("-m", message)
        except GitCommandError as e:
            logger.error(f"Commit failed: {e}")
            raise GitRepositoryError(f"Commit failed: {e}")
        return self.get_head_commit() or ""

    def get_staged_files(self) -> List[str]:
        """Return list of staged (cached) paths (names only)."""
        try:
            output = self.repo.git.diff("--cached", "--name-only")
            return [f.strip() for f in output.split("\n") if f.strip()]
        except GitCommandError:
            return []

    def get_conflict_files(self) -> List[str]:
        """Return unresolved merge paths relative to the work tree."""
        try:
            output = self.repo.git.diff("--name-only", "--diff-filter=U")
            return [f.strip() for f in output.split("\n") if f.strip()]
        except GitCommandError as e:
            logger.error(f"Error getting conflict files: {e}")
            return []

    def commit_parents(self, sha: str) -> List[str]:
        try:
            return [p.hexsha for p in self.repo.commit(sha).parents]
        except (ValueError, GitCommandError) as e:
            logger.error(f"Error reading parents of {sha}: {e}")
            raise GitRepositoryError(f"Failed to read parents of {sha}: {e}")
