"""Version control helpers built on top of git."""

from __future__ import annotations

import os
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, Sequence

from .errors import RepositoryError, ToolingError

_VERSION_PATTERN = re.compile(r"(\d+)\.(\d+)(?:\.(\d+))?")
_IDENT_PATTERN = re.compile(r"^(?P<name>.*) <(?P<email>[^>]*)> (?P<date>\d+ [+-]\d{4})$")


class GitError(RepositoryError):
    """Raised when a git command exits with a non-zero status."""


@dataclass(frozen=True)
class Ident:
    """A git identity line: name, email and date."""

    name: str
    email: str
    date: str = ""

    @classmethod
    def parse(cls, value: str) -> "Ident":
        match = _IDENT_PATTERN.match(value)
        if not match:
            raise GitError(f"Malformed identity line: {value!r}")
        return cls(name=match.group("name"), email=match.group("email"), date=match.group("date"))


@dataclass(frozen=True)
class CommitObject:
    """Parsed contents of a raw commit object."""

    id: str
    tree: str
    parents: tuple[str, ...]
    author: Ident
    committer: Ident
    signature: str | None
    message: str

    @property
    def is_signed(self) -> bool:
        return self.signature is not None


def parse_commit(commit_id: str, raw: str) -> CommitObject:
    """Parse the output of ``git cat-file commit``."""
    header, _, message = raw.partition("\n\n")
    fields: list[tuple[str, str]] = []
    for line in header.splitlines():
        # Multi-line headers (gpgsig) continue with a single leading space.
        if line.startswith(" ") and fields:
            key, value = fields[-1]
            fields[-1] = (key, value + "\n" + line[1:])
            continue
        key, _, value = line.partition(" ")
        fields.append((key, value))

    tree = ""
    parents: list[str] = []
    author = committer = None
    signature = None
    for key, value in fields:
        if key == "tree":
            tree = value
        elif key == "parent":
            parents.append(value)
        elif key == "author":
            author = Ident.parse(value)
        elif key == "committer":
            committer = Ident.parse(value)
        elif key in ("gpgsig", "gpgsig-sha256"):
            signature = value

    if not tree or author is None or committer is None:
        raise GitError(f"Commit {commit_id} is missing required headers.")
    return CommitObject(
        id=commit_id,
        tree=tree,
        parents=tuple(parents),
        author=author,
        committer=committer,
        signature=signature,
        message=message,
    )


class Git:
    """
    Lightweight wrapper around git CLI commands.

    Provides a Pythonic interface to the git operations the bootstrap
    workflows need. All commands are executed via subprocess and respect
    the worktree path.
    """

    def __init__(self, worktree: Path | None = None) -> None:
        """
        Initialize the Git wrapper.

        Args:
            worktree: Path to git repository (defaults to current directory)
        """
        self.worktree = Path(worktree or Path.cwd())

    def run(
        self,
        args: Sequence[str],
        *,
        check: bool = True,
        env: Mapping[str, str] | None = None,
        input: str | None = None,
        config: Mapping[str, str] | None = None,
    ) -> subprocess.CompletedProcess[str]:
        """
        Run a git command and optionally raise on failure.

        Args:
            args: Git command arguments (without 'git' prefix)
            check: If True, raise GitError on non-zero exit
            env: Extra environment variables for this invocation
            input: Text fed to the command's stdin
            config: One-off ``-c key=value`` settings

        Returns:
            CompletedProcess with stdout/stderr/returncode

        Raises:
            GitError: If check=True and command fails
            ToolingError: If the git executable cannot be run
        """
        if not self.worktree.is_dir():
            raise GitError(f"Worktree {self.worktree} does not exist.")

        command = ["git"]
        for key, value in (config or {}).items():
            command.extend(["-c", f"{key}={value}"])
        command.extend(args)

        run_env = None
        if env:
            run_env = {**os.environ, **env}

        try:
            result = subprocess.run(
                command,
                cwd=self.worktree,
                env=run_env,
                input=input,
                text=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=False,
            )
        except FileNotFoundError as exc:
            raise ToolingError("git is not installed. Please install git and try again.") from exc
        if check and result.returncode != 0:
            raise GitError(result.stderr.strip() or f"git {' '.join(args)} failed")
        return result

    # Query helpers -----------------------------------------------------------------

    def version(self) -> tuple[int, int, int]:
        """Return the installed git version as a tuple."""
        output = self.run(["--version"]).stdout
        match = _VERSION_PATTERN.search(output)
        if not match:
            raise ToolingError(f"Could not parse git version from {output.strip()!r}")
        return int(match.group(1)), int(match.group(2)), int(match.group(3) or 0)

    def is_repository(self) -> bool:
        """
        Return True if the worktree is the top level of a git repository.

        A directory nested inside another repository does not count.
        """
        result = self.run(["rev-parse", "--show-toplevel"], check=False)
        if result.returncode != 0:
            return False
        return Path(result.stdout.strip()).resolve() == self.worktree.resolve()

    def has_commits(self) -> bool:
        """Return True if HEAD resolves to a commit."""
        return self.run(["rev-parse", "--verify", "--quiet", "HEAD"], check=False).returncode == 0

    def rev_parse(self, rev: str) -> str:
        """Resolve a revision to its object id."""
        return self.run(["rev-parse", "--verify", rev]).stdout.strip()

    def current_branch(self) -> str:
        """Return the current branch name."""
        return self.run(["rev-parse", "--abbrev-ref", "HEAD"]).stdout.strip()

    def branch_exists(self, name: str) -> bool:
        """Return True if a local branch with this name exists."""
        result = self.run(["show-ref", "--verify", "--quiet", f"refs/heads/{name}"], check=False)
        return result.returncode == 0

    def get_config(self, key: str, *, scope: str | None = None) -> str | None:
        """Return a config value, or None when it is unset."""
        args = ["config"]
        if scope:
            args.append(f"--{scope}")
        args.extend(["--get", key])
        result = self.run(args, check=False)
        value = result.stdout.strip()
        return value or None

    def empty_tree_id(self, *, write: bool = False) -> str:
        """Return the id of the canonical empty tree, storing it when write is set."""
        args = ["hash-object", "-t", "tree", "--stdin"]
        if write:
            args.insert(-1, "-w")
        return self.run(args, input="").stdout.strip()

    def root_commits(self, rev: str = "HEAD") -> list[str]:
        """Return the parentless commits reachable from rev, oldest first."""
        if not self.worktree.is_dir():
            return []
        result = self.run(["rev-list", "--max-parents=0", "--reverse", rev], check=False)
        if result.returncode != 0:
            return []
        return [line for line in result.stdout.split() if line]

    def read_commit(self, commit_id: str) -> CommitObject:
        """Read and parse a commit object."""
        raw = self.run(["cat-file", "commit", commit_id]).stdout
        return parse_commit(commit_id, raw)

    def verify_commit(
        self, commit_id: str, *, allowed_signers: Path | None = None
    ) -> subprocess.CompletedProcess[str]:
        """Run ``git verify-commit`` without raising on a bad signature."""
        config = {}
        if allowed_signers is not None:
            config["gpg.ssh.allowedSignersFile"] = str(allowed_signers)
        return self.run(["verify-commit", commit_id], check=False, config=config)

    def has_path(self, rev: str, path: str) -> bool:
        """Return True if path exists in the tree of rev."""
        return self.run(["cat-file", "-e", f"{rev}:{path}"], check=False).returncode == 0

    def remotes(self) -> list[str]:
        """Return the configured remote names."""
        return self.run(["remote"]).stdout.split()

    def get_remote_url(self, name: str) -> str:
        """Return the URL of a remote."""
        return self.run(["remote", "get-url", name]).stdout.strip()

    # Mutation helpers --------------------------------------------------------------

    def init(self, initial_branch: str = "main") -> None:
        """Initialize a repository in the worktree."""
        self.run(["init", f"--initial-branch={initial_branch}"])

    def set_config(self, key: str, value: str, *, scope: str = "local") -> None:
        """Write a config value at the given scope."""
        self.run(["config", f"--{scope}", key, value])

    def commit_tree(
        self,
        tree: str,
        message: str,
        *,
        author: Ident,
        committer: Ident,
        parents: Iterable[str] = (),
        signing_key: Path | None = None,
    ) -> str:
        """
        Create a commit object from explicit parts and return its id.

        The message is stored verbatim. When signing_key is given the commit
        carries an SSH signature made with that key.
        """
        env = {
            "GIT_AUTHOR_NAME": author.name,
            "GIT_AUTHOR_EMAIL": author.email,
            "GIT_COMMITTER_NAME": committer.name,
            "GIT_COMMITTER_EMAIL": committer.email,
        }
        if author.date:
            env["GIT_AUTHOR_DATE"] = author.date
        if committer.date:
            env["GIT_COMMITTER_DATE"] = committer.date

        args = ["commit-tree", tree]
        for parent in parents:
            args.extend(["-p", parent])
        config = {}
        if signing_key is not None:
            config = {"gpg.format": "ssh", "user.signingkey": str(signing_key)}
            args.append("-S")
        else:
            args.append("--no-gpg-sign")
        args.extend(["-F", "-"])
        return self.run(args, env=env, input=message, config=config).stdout.strip()

    def update_ref(self, ref: str, new: str, old: str | None = None) -> None:
        """Point ref at new; an empty old value requires the ref not to exist."""
        args = ["update-ref", ref, new]
        if old is not None:
            args.append(old)
        self.run(args)

    def stage(self, paths: Iterable[str] | None = None) -> None:
        """Stage the provided paths or all changes."""
        args = ["add"]
        if paths:
            args.append("--")
            args.extend(paths)
        else:
            args.append("--all")
        self.run(args)

    def commit(self, message: str, *, sign: bool = True, signoff: bool = True) -> str:
        """Create a commit from the index and return its id."""
        args = ["commit", "-m", message]
        if sign:
            args.append("-S")
        if signoff:
            args.append("-s")
        self.run(args)
        return self.rev_parse("HEAD")

    def checkout(self, branch: str, *, create: bool = False, force: bool = False) -> None:
        """Switch to a branch, optionally creating it."""
        args = ["checkout"]
        if force:
            args.append("-f")
        if create:
            args.append("-b")
        args.append(branch)
        self.run(args)

    def branch_force(self, name: str, commit_id: str) -> None:
        """Create or move a branch to commit_id."""
        self.run(["branch", "-f", name, commit_id])

    def delete_branch(self, name: str) -> None:
        """Force-delete a local branch."""
        self.run(["branch", "-D", name])

    def add_remote(self, name: str, url: str) -> None:
        self.run(["remote", "add", name, url])

    def set_remote_url(self, name: str, url: str) -> None:
        self.run(["remote", "set-url", name, url])

    def push(self, remote: str, refspec: str, *, set_upstream: bool = False, force: bool = False) -> None:
        """Push the given refspec to the target remote."""
        args = ["push"]
        if force:
            args.append("-f")
        if set_upstream:
            args.append("-u")
        args.extend([remote, refspec])
        self.run(args, env={"GIT_STATUS_SHOW_UNTRACKED": "no"})

    def pull_ff_only(self, remote: str, branch: str) -> None:
        """Fast-forward the current branch from remote."""
        self.run(["pull", "--ff-only", remote, branch])
