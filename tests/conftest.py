"""
Shared fixtures: throw-away source and destination repositories.
"""

from pathlib import Path
from typing import Optional

import pytest
from git import Repo


def init_repo(path: Path) -> Repo:
    path.mkdir(parents=True, exist_ok=True)
    repo = Repo.init(path)
    repo.git.symbolic_ref("HEAD", "refs/heads/main")
    return repo


def commit_file(repo: Repo, relpath: str, content: str, message: str, author: Optional[str] = None) -> str:
    full = Path(repo.working_dir) / relpath
    full.parent.mkdir(parents=True, exist_ok=True)
    full.write_text(content)
    repo.git.add(relpath)
    if author:
        repo.git.commit("-m", message, author=author)
    else:
        repo.git.commit("-m", message)
    return repo.head.commit.hexsha


@pytest.fixture(autouse=True)
def git_env(tmp_path, monkeypatch):
    """Isolate git and the log directory from the user's environment."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test Author")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "author@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test Committer")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "committer@example.com")
    monkeypatch.setenv("REPO_MERGER_LOG", str(tmp_path / "logs" / "repo-merger.log"))
    yield


@pytest.fixture
def source_repo(tmp_path) -> Repo:
    """The ``lib`` source: branches main and develop, tags v1.0 (annotated) and v1.1."""
    repo = init_repo(tmp_path / "libfoo")
    commit_file(repo, "README.md", "# libfoo\n", "Initial commit")
    commit_file(repo, "src/a.txt", "alpha\n", "Add a", author="Alice <alice@example.com>")
    repo.git.tag("-a", "v1.0", "-m", "Release 1.0")
    commit_file(repo, "src/b.txt", "beta\n", "Add b")
    repo.git.checkout("-b", "develop")
    commit_file(repo, "dev.txt", "dev\n", "Develop work", author="Bob <bob@example.com>")
    repo.git.tag("v1.1")
    repo.git.checkout("main")
    return repo


@pytest.fixture
def dest_repo(tmp_path) -> Repo:
    repo = init_repo(tmp_path / "app")
    commit_file(repo, "app.txt", "app\n", "App initial commit")
    return repo


@pytest.fixture
def empty_source(tmp_path) -> Repo:
    return init_repo(tmp_path / "empty")
