# tests/test_vcs.py
import datetime as dt
from pathlib import Path

import pytest

from conftest import requires_git
from inception.errors import ToolingError
from inception.util import git_date, resolve_repo_dir
from inception.vcs import Git, GitError, Ident, parse_commit

RAW_COMMIT = (
    "tree 4b825dc642cb6eb9a060e54bf8d69288fbee4904\n"
    "author Alice <alice@example.com> 1767225600 +0000\n"
    "committer SHA256:abc <alice@example.com> 1767225600 +0000\n"
    "gpgsig -----BEGIN SSH SIGNATURE-----\n"
    " U1NIU0lH\n"
    " -----END SSH SIGNATURE-----\n"
    "\n"
    "Initialize repository\n"
    "\n"
    "Signed-off-by: Alice <alice@example.com>\n"
)


def test_parse_commit_reads_headers_and_signature():
    commit = parse_commit("abc123", RAW_COMMIT)

    assert commit.tree == "4b825dc642cb6eb9a060e54bf8d69288fbee4904"
    assert commit.parents == ()
    assert commit.author == Ident("Alice", "alice@example.com", "1767225600 +0000")
    assert commit.committer.name == "SHA256:abc"
    assert commit.is_signed
    assert commit.signature.splitlines() == [
        "-----BEGIN SSH SIGNATURE-----",
        "U1NIU0lH",
        "-----END SSH SIGNATURE-----",
    ]
    assert commit.message.startswith("Initialize repository\n")


def test_parse_commit_collects_parents():
    raw = RAW_COMMIT.replace(
        "author ", "parent 1111111111111111111111111111111111111111\nauthor ", 1
    )

    assert parse_commit("abc123", raw).parents == ("1" * 40,)


def test_parse_commit_requires_author():
    with pytest.raises(GitError):
        parse_commit("abc123", "tree 4b825dc642cb6eb9a060e54bf8d69288fbee4904\n\nmessage\n")


def test_ident_rejects_garbage():
    with pytest.raises(GitError):
        Ident.parse("no email here")


def test_git_date_is_iso_with_offset():
    moment = dt.datetime(2026, 1, 2, 3, 4, 5, tzinfo=dt.timezone.utc)

    assert git_date(moment) == "2026-01-02T03:04:05+0000"
    assert git_date(moment.replace(tzinfo=None)) == "2026-01-02T03:04:05+0000"


def test_resolve_repo_dir(tmp_path):
    assert resolve_repo_dir(".", tmp_path) == (tmp_path.name, tmp_path)
    assert resolve_repo_dir(tmp_path.name, tmp_path) == (tmp_path.name, tmp_path)
    assert resolve_repo_dir("demo", tmp_path) == ("demo", tmp_path / "demo")
    assert resolve_repo_dir("/srv/repos/demo", tmp_path) == ("demo", Path("/srv/repos/demo"))


def test_run_in_missing_worktree(tmp_path):
    with pytest.raises(GitError):
        Git(tmp_path / "missing").run(["status"])


def test_missing_git_binary_is_a_tooling_error(tmp_path, monkeypatch):
    monkeypatch.setenv("PATH", str(tmp_path))

    with pytest.raises(ToolingError):
        Git(tmp_path).version()


@requires_git
def test_empty_tree_id_matches_well_known_value(isolated_git, tmp_path):
    git = Git(tmp_path)
    git.init("main")

    assert git.empty_tree_id() in (
        "4b825dc642cb6eb9a060e54bf8d69288fbee4904",
        "6ef19b41225c5369f1c104d45d8d85efa9b057b53b14b4b9b939dd74decc5321",
    )
    assert git.root_commits() == []
    assert not git.has_commits()
