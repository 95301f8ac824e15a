# tests/conftest.py
import logging
import re
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

import pytest

from inception.config import InceptionConfig
from inception.keys import SigningKey, generate_signing_key
from inception.vcs import Git

ALICE_NAME = "Alice Example"
ALICE_EMAIL = "alice@example.com"


def _git_version():
    if shutil.which("git") is None:
        return None
    output = subprocess.run(["git", "--version"], capture_output=True, text=True).stdout
    match = re.search(r"(\d+)\.(\d+)", output)
    return (int(match.group(1)), int(match.group(2))) if match else None


_version = _git_version()
HAVE_GIT = _version is not None
HAVE_SSH_SIGNING = HAVE_GIT and _version >= (2, 34) and shutil.which("ssh-keygen") is not None

requires_git = pytest.mark.skipif(not HAVE_GIT, reason="git is not installed")


@dataclass
class GitEnv:
    home: Path
    key: SigningKey
    allowed_signers: Path
    work: Path


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logging.getLogger("inception").handlers.clear()


@pytest.fixture
def isolated_git(tmp_path, monkeypatch):
    """A HOME with its own global git config holding Alice's identity."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(home / ".gitconfig"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    for name in ("GIT_DIR", "GIT_WORK_TREE", "GIT_INDEX_FILE", "GITHUB_TOKEN", "GH_TOKEN"):
        monkeypatch.delenv(name, raising=False)
    for name in ("GIT_AUTHOR_NAME", "GIT_AUTHOR_EMAIL", "GIT_COMMITTER_NAME", "GIT_COMMITTER_EMAIL"):
        monkeypatch.delenv(name, raising=False)

    (home / ".gitconfig").write_text("", encoding="utf-8")
    git = Git(home)
    git.set_config("user.name", ALICE_NAME, scope="global")
    git.set_config("user.email", ALICE_EMAIL, scope="global")
    git.set_config("init.defaultBranch", "main", scope="global")
    return home


@pytest.fixture
def git_env(isolated_git, tmp_path, monkeypatch):
    """Isolated git config plus an Ed25519 signing key for Alice."""
    if not HAVE_SSH_SIGNING:
        pytest.skip("git >= 2.34 and ssh-keygen are required")
    key = generate_signing_key(isolated_git / ".ssh" / "id_ed25519", comment=ALICE_EMAIL)
    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.chdir(work)
    return GitEnv(
        home=isolated_git,
        key=key,
        allowed_signers=isolated_git / ".config" / "git" / "allowed_signers",
        work=work,
    )


@pytest.fixture
def config():
    return InceptionConfig.from_dict({})


@pytest.fixture
def inception_repo(git_env, config):
    """A freshly bootstrapped repository whose root is the inception commit."""
    from inception.bootstrap import setup_local_repository

    repo_dir = git_env.work / "demo"
    report = setup_local_repository("demo", repo_dir, config, signing_key=git_env.key)
    return report


def commit_file(git: Git, name: str, content: str, message: str) -> str:
    (git.worktree / name).write_text(content, encoding="utf-8")
    git.stage([name])
    return git.commit(message)
