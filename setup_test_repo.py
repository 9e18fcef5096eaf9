import subprocess
from pathlib import Path

def run(cmd, cwd=None):
    print(f"[{cwd or '.'}]$ {cmd}")
    subprocess.check_call(cmd, shell=True, cwd=cwd)

def git_init(path, name):
    path.mkdir(parents=True, exist_ok=True)
    run("git init", cwd=path)
    run("git symbolic-ref HEAD refs/heads/main", cwd=path)
    (path / "README.md").write_text(f"# {name}\n")
    run("git add README.md", cwd=path)
    run(f'git commit -m "Initial commit in {name}"', cwd=path)

def git_commit_change(path, filename, message):
    file_path = path / filename
    file_path.parent.mkdir(parents=True, exist_ok=True)
    with open(file_path, "a") as f:
        f.write(message + "\n")
    run(f"git add {filename}", cwd=path)
    run(f'git commit -m "{message}"', cwd=path)

# --- Setup base paths ---
base = Path("repo-merger-playground").absolute()
if base.exists():
    run("rm -rf repo-merger-playground", cwd=base.parent)

base.mkdir()

library = base / "libfoo"
application = base / "app"

# --- Source repository: several branches and both kinds of tags ---
git_init(library, "libfoo")
git_commit_change(library, "src/foo.c", "libfoo: initial implementation")
run('git tag -a v1.0 -m "Release 1.0"', cwd=library)

run("git checkout -b develop", cwd=library)
git_commit_change(library, "src/bar.c", "libfoo: add bar")
run("git tag v1.1-rc", cwd=library)

run("git checkout -b feature/parser main", cwd=library)
git_commit_change(library, "src/parser.c", "libfoo: parser draft")

run("git checkout main", cwd=library)
git_commit_change(library, "docs/usage.md", "libfoo: usage docs")

# --- Destination repository ---
git_init(application, "app")
git_commit_change(application, "app.py", "app: entry point")

print(f"\nPlayground created at {base}")
print("Repos:\n - libfoo (main, develop, feature/parser; tags v1.0, v1.1-rc)\n - app (main)")
# --- Visual representation of the git trees ---
def print_git_tree(path, name):
    print(f"\n=== {name} ===")
    run("git log --oneline --graph --decorate --all --abbrev-commit", cwd=path)

print_git_tree(library, "LIBFOO (source)")
print_git_tree(application, "APP (destination)")

print("\nTry:")
print(f"  cd {application}")
print("  repo-merger import ../libfoo lib --dry-run")
print("  repo-merger import ../libfoo lib -s vendor/libfoo -m main")
