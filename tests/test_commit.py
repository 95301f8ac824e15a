# tests/test_commit.py
import os
import re
import shutil

import pytest

from conftest import ALICE_EMAIL, ALICE_NAME, commit_file
from inception.commit import (
    INCEPTION_SUMMARY,
    Identity,
    create_inception_commit,
    inception_message,
)
from inception.errors import RepositoryError, SigningError, UsageError
from inception.keys import SigningKey, configure_git_signing
from inception.vcs import Git
from inception.verify import verify_inception_commit


@pytest.fixture
def fresh_repo(git_env):
    repo_dir = git_env.work / "fresh"
    repo_dir.mkdir()
    git = Git(repo_dir)
    git.init("main")
    configure_git_signing(git, git_env.key, ALICE_EMAIL, git_env.allowed_signers, scope="local")
    return git


def test_message_has_summary_body_and_signoff():
    message = inception_message(Identity(name="Alice", email="alice@example.com"))

    lines = message.splitlines()
    assert lines[0] == INCEPTION_SUMMARY
    assert "./.repo/config/verification/allowed_commit_signers" in message
    assert lines[-1] == "Signed-off-by: Alice <alice@example.com>"


def test_created_commit_passes_every_check(fresh_repo, git_env):
    author = Identity(name=ALICE_NAME, email=ALICE_EMAIL)
    commit = create_inception_commit(fresh_repo, git_env.key, author)

    assert commit.parents == ()
    assert commit.tree_id == fresh_repo.empty_tree_id()
    assert fresh_repo.rev_parse("HEAD") == commit.commit_id
    assert re.fullmatch(r"did:repo:[0-9a-f]{40,64}", commit.did)

    stored = fresh_repo.read_commit(commit.commit_id)
    assert stored.parents == ()
    assert stored.is_signed
    assert stored.author.name == ALICE_NAME
    assert stored.committer.name == git_env.key.fingerprint()
    assert stored.committer.email == ALICE_EMAIL
    assert f"Signed-off-by: {ALICE_NAME} <{ALICE_EMAIL}>" in stored.message

    result = verify_inception_commit(fresh_repo, allowed_signers=git_env.allowed_signers)
    assert result.passed
    assert all(check.passed for check in result.checks)
    assert result.did == commit.did


def test_creates_verification_directory(fresh_repo, git_env):
    create_inception_commit(fresh_repo, git_env.key, Identity(name=ALICE_NAME, email=ALICE_EMAIL))

    assert (fresh_repo.worktree / ".repo" / "config" / "verification").is_dir()


def test_staged_files_do_not_leak_into_inception_tree(fresh_repo, git_env):
    (fresh_repo.worktree / "notes.txt").write_text("draft\n", encoding="utf-8")
    fresh_repo.stage(["notes.txt"])

    commit = create_inception_commit(fresh_repo, git_env.key, Identity(name=ALICE_NAME, email=ALICE_EMAIL))

    assert fresh_repo.read_commit(commit.commit_id).tree == fresh_repo.empty_tree_id()


def test_refuses_repository_with_commits(fresh_repo, git_env):
    commit_file(fresh_repo, "README.md", "# demo\n", "Add readme")

    with pytest.raises(RepositoryError):
        create_inception_commit(fresh_repo, git_env.key, Identity(name=ALICE_NAME, email=ALICE_EMAIL))


def test_refuses_directory_without_repository(git_env):
    plain = git_env.work / "plain"
    plain.mkdir()

    with pytest.raises(RepositoryError):
        create_inception_commit(plain, git_env.key, Identity(name=ALICE_NAME, email=ALICE_EMAIL))


@pytest.mark.parametrize("name,email", [("", ALICE_EMAIL), (ALICE_NAME, ""), ("  ", ALICE_EMAIL)])
def test_rejects_incomplete_identity(fresh_repo, git_env, name, email):
    with pytest.raises(UsageError):
        create_inception_commit(fresh_repo, git_env.key, Identity(name=name, email=email))

    assert not fresh_repo.has_commits()


def _unusable_key(git_env, kind):
    private = git_env.home / f"{kind}_ed25519"
    if kind == "corrupt":
        private.write_text("not a private key\n", encoding="utf-8")
        os.chmod(private, 0o600)
    else:
        shutil.copyfile(git_env.key.private_path, private)
        os.chmod(private, 0o644)
    public = git_env.home / f"{kind}_ed25519.pub"
    shutil.copyfile(git_env.key.public_path, public)
    return SigningKey(private_path=private, public_path=public)


@pytest.mark.parametrize("kind", ["corrupt", "world_readable"])
def test_unusable_signing_key_is_a_signing_error(fresh_repo, git_env, kind):
    key = _unusable_key(git_env, kind)

    with pytest.raises(SigningError):
        create_inception_commit(fresh_repo, key, Identity(name=ALICE_NAME, email=ALICE_EMAIL))

    assert not fresh_repo.has_commits()


def test_refuses_directory_nested_in_another_repository(git_env):
    outer = Git(git_env.work / "outer")
    outer.worktree.mkdir()
    outer.init("main")
    inner = outer.worktree / "inner"
    inner.mkdir()

    with pytest.raises(RepositoryError):
        create_inception_commit(inner, git_env.key, Identity(name=ALICE_NAME, email=ALICE_EMAIL))

    assert not outer.has_commits()
    assert not Git(inner).is_repository()
    assert outer.is_repository()
