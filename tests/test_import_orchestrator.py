"""
End-to-end tests for ImportOrchestrator against real repositories.
"""

from pathlib import Path
from unittest.mock import patch

import pytest
from gitdb.exc import BadObject

from conftest import commit_file
from repo_merger.history_rewriter import InProcessRewriter
from repo_merger.import_orchestrator import ImportOrchestrator
from repo_merger.models import (
    GitRepositoryError,
    ImportOptions,
    MergeConflictError,
    OutcomeStatus,
    RefKind,
    RemoteError,
    RepoMergeError,
    ValidationError,
)


def _run(dest_repo, source_repo, **kwargs):
    options = ImportOptions(source_repo=source_repo.working_dir, source_id=kwargs.pop("source_id", "lib"), **kwargs)
    return ImportOrchestrator(Path(dest_repo.working_dir)).run(options)


def _assert_no_leftovers(repo):
    assert [r.name for r in repo.remotes] == []
    assert repo.git.for_each_ref("refs/remotes/") == ""
    assert repo.git.for_each_ref("refs/merge-sources/") == ""


class TestLibScenario:
    """Importing the two-branch, two-tag ``lib`` source."""

    def test_creates_namespaced_refs(self, source_repo, dest_repo):
        report = _run(dest_repo, source_repo)

        assert sorted(o.destination for o in report.created(RefKind.BRANCH)) == ["lib-develop", "lib-main"]
        assert sorted(o.destination for o in report.created(RefKind.TAG)) == ["lib/v1.0", "lib/v1.1"]
        assert report.default_branch == "main"
        assert report.final_branch == "main"
        assert dest_repo.commit("lib-main").hexsha == source_repo.commit("main").hexsha
        assert dest_repo.commit("lib/v1.1").hexsha == source_repo.commit("develop").hexsha
        assert dest_repo.active_branch.name == "main"
        _assert_no_leftovers(dest_repo)

    def test_second_run_skips_everything(self, source_repo, dest_repo):
        _run(dest_repo, source_repo)
        report = _run(dest_repo, source_repo)

        assert report.created() == []
        assert len(report.skipped(RefKind.BRANCH)) == 2
        assert len(report.skipped(RefKind.TAG)) == 2
        assert all(o.reason == "already exists" for o in report.skipped())
        _assert_no_leftovers(dest_repo)

    def test_force_is_idempotent(self, source_repo, dest_repo):
        _run(dest_repo, source_repo)
        refs_before = dest_repo.git.for_each_ref("refs/heads/", "refs/tags/")

        report = _run(dest_repo, source_repo, force=True)

        assert len(report.created()) == 4
        assert dest_repo.git.for_each_ref("refs/heads/", "refs/tags/") == refs_before

    def test_commit_count_invariant(self, source_repo, dest_repo):
        before = int(dest_repo.git.rev_list("--all", "--count"))
        source_total = int(source_repo.git.rev_list("--all", "--count"))

        _run(dest_repo, source_repo)

        assert int(dest_repo.git.rev_list("--all", "--count")) == before + source_total

    def test_single_branch(self, source_repo, dest_repo):
        report = _run(dest_repo, source_repo, branch="develop", skip_tags=True)

        assert [o.destination for o in report.outcomes] == ["lib-develop"]
        assert [h.name for h in dest_repo.heads if h.name.startswith("lib")] == ["lib-develop"]
        assert dest_repo.tags == []

    def test_skip_tags(self, source_repo, dest_repo):
        report = _run(dest_repo, source_repo, skip_tags=True)
        assert report.created(RefKind.TAG) == []
        assert dest_repo.tags == []


class TestSubdirectory:
    """Importing with every file relocated under a subdirectory."""

    def test_subdirectory_invariant(self, source_repo, dest_repo):
        report = _run(dest_repo, source_repo, subdirectory="vendor/lib")

        assert len(report.created(RefKind.BRANCH)) == 2
        for branch in ("lib-main", "lib-develop"):
            for sha in dest_repo.git.rev_list(branch).split():
                assert dest_repo.git.ls_tree("--name-only", sha).split() == ["vendor"]
        assert dest_repo.git.show("lib-develop:vendor/lib/dev.txt") == "dev"

    def test_tags_follow_rewritten_commits(self, source_repo, dest_repo):
        _run(dest_repo, source_repo, subdirectory="vendor/lib")

        v10 = dest_repo.commit("lib/v1.0")
        assert v10.hexsha != source_repo.commit("v1.0").hexsha
        assert dest_repo.git.ls_tree("--name-only", v10.hexsha).split() == ["vendor"]
        assert dest_repo.is_ancestor(v10.hexsha, dest_repo.commit("lib-main").hexsha)
        assert dest_repo.commit("lib/v1.1").hexsha == dest_repo.commit("lib-develop").hexsha

    def test_merge_imported_subdirectory(self, source_repo, dest_repo):
        report = _run(dest_repo, source_repo, subdirectory="vendor/lib", merge_to="main")

        assert report.merge_result.committed
        assert dest_repo.active_branch.name == "main"
        assert dest_repo.git.show("main:vendor/lib/src/a.txt") == "alpha"
        assert dest_repo.git.show("main:app.txt") == "app"

    def test_rewrite_failure_is_contained_to_its_branch(self, source_repo, dest_repo):
        develop_tip = source_repo.commit("develop").hexsha
        original_read = InProcessRewriter._read

        def read(repo, sha):
            if sha == develop_tip:
                raise BadObject(sha)
            return original_read(repo, sha)

        with patch.object(InProcessRewriter, "_read", side_effect=read):
            report = _run(dest_repo, source_repo, subdirectory="vendor/lib")

        assert [o.destination for o in report.failed()] == ["lib-develop"]
        assert [o.destination for o in report.created(RefKind.BRANCH)] == ["lib-main"]
        assert sorted(o.destination for o in report.created(RefKind.TAG)) == ["lib/v1.0", "lib/v1.1"]
        assert {h.name for h in dest_repo.heads} == {"main", "lib-main"}
        assert dest_repo.git.ls_tree("--name-only", "lib-main").split() == ["vendor"]
        _assert_no_leftovers(dest_repo)


class TestValidation:
    """Failures detected before the source is contacted."""

    def test_preserve_paths_with_subdirectory(self, source_repo, dest_repo):
        with patch("repo_merger.session.ImportSession.open") as mock_open:
            with pytest.raises(ValidationError, match="Cannot use --preserve-paths with --subdirectory"):
                _run(dest_repo, source_repo, subdirectory="vendor", preserve_paths=True)
        mock_open.assert_not_called()
        _assert_no_leftovers(dest_repo)

    def test_invalid_source_id(self, source_repo, dest_repo):
        with pytest.raises(ValidationError, match="Invalid source name"):
            _run(dest_repo, source_repo, source_id="bad/id")
        _assert_no_leftovers(dest_repo)

    def test_filter_repo_missing(self, source_repo, dest_repo):
        with patch("repo_merger.import_orchestrator.filter_repo_available", return_value=False):
            with pytest.raises(ValidationError, match="git-filter-repo"):
                _run(dest_repo, source_repo, subdirectory="vendor", rewrite_history=True)
        _assert_no_leftovers(dest_repo)

    def test_not_a_repository(self, tmp_path, source_repo):
        plain = tmp_path / "plain"
        plain.mkdir()
        options = ImportOptions(source_repo=source_repo.working_dir, source_id="lib")
        with pytest.raises(GitRepositoryError, match="Not in a git repository"):
            ImportOrchestrator(plain).run(options)


class TestRemoteFailures:
    """Failures after the transient remote was added."""

    def test_missing_requested_branch(self, source_repo, dest_repo):
        with pytest.raises(RemoteError, match="Branch 'ghost' does not exist in source repository"):
            _run(dest_repo, source_repo, branch="ghost")
        assert [h.name for h in dest_repo.heads] == ["main"]
        _assert_no_leftovers(dest_repo)

    def test_unreachable_source(self, tmp_path, dest_repo):
        options = ImportOptions(source_repo=str(tmp_path / "missing"), source_id="lib")
        with pytest.raises(RemoteError):
            ImportOrchestrator(Path(dest_repo.working_dir)).run(options)
        _assert_no_leftovers(dest_repo)

    def test_requested_branch_already_imported_is_fatal(self, source_repo, dest_repo):
        _run(dest_repo, source_repo, branch="main")
        dest_repo.git.tag("-d", "lib/v1.0")
        with pytest.raises(RepoMergeError, match="Failed to create any branches"):
            _run(dest_repo, source_repo, branch="main")
        assert dest_repo.commit("lib/v1.0").hexsha == source_repo.commit("v1.0").hexsha
        _assert_no_leftovers(dest_repo)


def test_empty_source_is_a_noop(empty_source, dest_repo):
    report = _run(dest_repo, empty_source)

    assert report.outcomes == []
    assert report.notes
    assert [h.name for h in dest_repo.heads] == ["main"]
    _assert_no_leftovers(dest_repo)


def test_dry_run_touches_nothing(source_repo, dest_repo):
    refs_before = dest_repo.git.for_each_ref()
    with patch("repo_merger.session.ImportSession.open") as mock_open:
        report = _run(dest_repo, source_repo, dry_run=True, subdirectory="vendor", merge_to="main")

    mock_open.assert_not_called()
    assert report.dry_run
    assert report.outcomes == []
    assert any(a.startswith("Add remote merge-source-lib-") for a in report.planned_actions)
    assert any("lib-<branch>" in a for a in report.planned_actions)
    assert any("into main" in a for a in report.planned_actions)
    assert report.planned_actions[-1].startswith("Remove remote")
    assert dest_repo.git.for_each_ref() == refs_before
    _assert_no_leftovers(dest_repo)


def test_dry_run_with_requested_branch(source_repo, dest_repo):
    report = _run(dest_repo, source_repo, dry_run=True, branch="develop", skip_tags=True)
    assert "Create branch lib-develop" in report.planned_actions
    assert "Skip tags" in report.planned_actions


def test_preserve_paths_checks_out_imported_default(source_repo, dest_repo):
    report = _run(dest_repo, source_repo, preserve_paths=True)

    assert dest_repo.active_branch.name == "lib-main"
    assert report.final_branch == "lib-main"


def test_merge_uses_source_default_branch(source_repo, dest_repo):
    source_repo.git.checkout("develop")
    report = _run(dest_repo, source_repo, merge_to="main", skip_tags=True)

    assert report.default_branch == "develop"
    assert report.merge_result.source_branch == "lib-develop"
    assert dest_repo.git.show("main:dev.txt") == "dev"


def test_returns_to_starting_branch_after_merge(source_repo, dest_repo):
    dest_repo.git.checkout("-b", "work")
    report = _run(dest_repo, source_repo, merge_to="main", squash_merge=True)

    assert report.merge_result.squashed and report.merge_result.committed
    assert dest_repo.active_branch.name == "work"
    assert dest_repo.commit("main").summary == "Squash merge lib-main"


def test_merge_conflict_leaves_target_checked_out(source_repo, dest_repo):
    commit_file(dest_repo, "README.md", "# app\n", "App readme")
    dest_repo.git.checkout("-b", "work")

    with pytest.raises(MergeConflictError):
        _run(dest_repo, source_repo, merge_to="main")

    assert dest_repo.active_branch.name == "main"
    assert "README.md" in dest_repo.git.diff("--name-only", "--diff-filter=U")
    _assert_no_leftovers(dest_repo)


def test_non_commit_tag_does_not_abort_import(source_repo, dest_repo):
    source_repo.git.tag("tree-tag", "main^{tree}")
    report = _run(dest_repo, source_repo)

    skipped = report.skipped(RefKind.TAG)
    assert [o.source_name for o in skipped] == ["tree-tag"]
    assert len(report.created(RefKind.TAG)) == 2
    assert not report.has_failures


def test_submodule_note(source_repo, dest_repo):
    commit_file(source_repo, ".gitmodules", '[submodule "dep"]\n\tpath = dep\n\turl = ../dep\n', "Add gitmodules")
    report = _run(dest_repo, source_repo, skip_tags=True)

    assert any("lib-main contains submodules" in n for n in report.notes)
    assert all(o.status == OutcomeStatus.CREATED for o in report.outcomes)
