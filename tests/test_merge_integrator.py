"""
Tests for merging an imported branch into a destination branch.
"""

import pytest

from conftest import commit_file
from repo_merger.git_manager import GitManager
from repo_merger.merge_integrator import MergeIntegrator
from repo_merger.models import MergeConflictError, MergeError, MergeRequest, MergeStrategy


@pytest.fixture
def imported(source_repo, dest_repo):
    """Destination with lib-main fetched from the source, files at their original paths."""
    dest_repo.git.fetch("--no-tags", source_repo.working_dir, "+refs/heads/main:refs/heads/lib-main")
    return dest_repo


def _integrator(repo):
    return MergeIntegrator(GitManager(repo.working_dir))


class TestResolveSource:
    """Test selection of the branch to merge."""

    def test_prefers_default_branch(self, imported):
        imported.git.branch("lib-develop", "lib-main")
        assert _integrator(imported).resolve_source("lib", "develop") == "lib-develop"

    def test_falls_back_to_conventional_names(self, imported):
        imported.git.branch("-m", "lib-main", "lib-master")
        assert _integrator(imported).resolve_source("lib", "trunk") == "lib-master"

    def test_no_candidate(self, dest_repo):
        with pytest.raises(MergeError, match="lib-trunk"):
            _integrator(dest_repo).resolve_source("lib", "develop")


def test_standard_merge_creates_merge_commit(imported):
    request = MergeRequest(target_branch="main")
    result = _integrator(imported).integrate(request, "lib-main", "lib")

    head = imported.head.commit
    assert result.committed and result.merge_commit == head.hexsha
    assert len(head.parents) == 2
    assert head.summary == "Merge branch 'lib-main'"
    assert imported.git.show("HEAD:src/a.txt") == "alpha"
    assert imported.git.show("HEAD:app.txt") == "app"


def test_squash_merge_single_commit(imported):
    request = MergeRequest(target_branch="main", squash=True)
    result = _integrator(imported).integrate(request, "lib-main", "lib")

    head = imported.head.commit
    assert result.squashed and result.committed
    assert len(head.parents) == 1
    assert head.summary == "Squash merge lib-main"
    assert imported.git.show("HEAD:src/b.txt") == "beta"


def test_squash_no_commit_leaves_changes_staged(imported):
    before = imported.head.commit.hexsha
    request = MergeRequest(target_branch="main", squash=True, no_commit=True)
    result = _integrator(imported).integrate(request, "lib-main", "lib")

    assert not result.committed
    assert imported.head.commit.hexsha == before
    assert "src/a.txt" in GitManager(imported.working_dir).get_staged_files()


def test_standard_no_commit_leaves_merge_in_progress(imported):
    before = imported.head.commit.hexsha
    request = MergeRequest(target_branch="main", no_commit=True)
    result = _integrator(imported).integrate(request, "lib-main", "lib")

    assert not result.committed and result.merge_commit is None
    assert imported.head.commit.hexsha == before
    assert (GitManager(imported.working_dir).git_dir / "MERGE_HEAD").exists()


def test_ours_strategy_keeps_destination_tree(imported):
    tree_before = imported.head.commit.tree.hexsha
    request = MergeRequest(target_branch="main", strategy=MergeStrategy.OURS)
    result = _integrator(imported).integrate(request, "lib-main", "lib")

    assert result.committed
    assert imported.head.commit.tree.hexsha == tree_before
    assert len(imported.head.commit.parents) == 2


def test_conflict_leaves_tree_for_manual_resolution(source_repo, dest_repo):
    commit_file(dest_repo, "README.md", "# app readme\n", "App readme")
    dest_repo.git.fetch("--no-tags", source_repo.working_dir, "+refs/heads/main:refs/heads/lib-main")

    with pytest.raises(MergeConflictError) as excinfo:
        _integrator(dest_repo).integrate(MergeRequest(target_branch="main"), "lib-main", "lib")

    assert excinfo.value.conflict_files == ["README.md"]
    assert "Resolve conflicts and run: git merge --continue" in str(excinfo.value)
    assert (GitManager(dest_repo.working_dir).git_dir / "MERGE_HEAD").exists()


def test_squash_conflict_message(source_repo, dest_repo):
    commit_file(dest_repo, "README.md", "# app readme\n", "App readme")
    dest_repo.git.fetch("--no-tags", source_repo.working_dir, "+refs/heads/main:refs/heads/lib-main")

    with pytest.raises(MergeConflictError, match="Resolve conflicts and commit"):
        _integrator(dest_repo).integrate(MergeRequest(target_branch="main", squash=True), "lib-main", "lib")


def test_missing_target_branch(imported):
    with pytest.raises(MergeError, match="Target branch 'release' does not exist"):
        _integrator(imported).integrate(MergeRequest(target_branch="release"), "lib-main", "lib")


def test_graft_recorded_for_merge_commit(imported):
    request = MergeRequest(target_branch="main", graft=True)
    result = _integrator(imported).integrate(request, "lib-main", "lib")

    grafts = (GitManager(imported.working_dir).git_dir / "info" / "grafts").read_text().splitlines()
    parents = [p.hexsha for p in imported.head.commit.parents]
    assert result.graft_recorded
    assert grafts[0] == "# Grafted merge from lib"
    assert grafts[1].split() == [result.merge_commit, *parents]
    assert imported.commit("lib-main").hexsha in grafts[1].split()


def test_no_graft_without_commit(imported):
    request = MergeRequest(target_branch="main", graft=True, no_commit=True)
    result = _integrator(imported).integrate(request, "lib-main", "lib")

    assert not result.graft_recorded
    assert not (GitManager(imported.working_dir).git_dir / "info" / "grafts").exists()
