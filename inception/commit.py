"""Creation of the signed, empty inception commit."""

from __future__ import annotations

import datetime as _dt
from dataclasses import dataclass, field
from pathlib import Path

from .errors import RepositoryError, SigningError, UsageError
from .keys import SigningKey
from .logging import get_logger
from .util import git_date, now_utc
from .vcs import Git, GitError, Ident

logger = get_logger("commit")

INCEPTION_SUMMARY = "Initialize repository and establish a SHA-1 root of trust"

INCEPTION_BODY = (
    "This key also certifies future commits' integrity and origin. Other keys can be "
    "authorized to add additional commits via the creation of a "
    "./.repo/config/verification/allowed_commit_signers file. This file must initially "
    "be signed by this repo's inception key, granting these keys the authority to add "
    "future commits to this repo, including the potential to remove the authority of "
    "this inception key for future commits. Once established, any changes to "
    "./.repo/config/verification/allowed_commit_signers must be authorized by one of the "
    "previously approved signers."
)

SIGNOFF_PREFIX = "Signed-off-by:"
COMMITTER_PREFIX = "SHA256:"
VERIFICATION_DIR = Path(".repo/config/verification")


@dataclass(frozen=True)
class Identity:
    """A named contributor with an email and the moment they act."""

    name: str
    email: str
    timestamp: _dt.datetime = field(default_factory=now_utc)

    def signoff(self) -> str:
        return f"{SIGNOFF_PREFIX} {self.name} <{self.email}>"


@dataclass(frozen=True)
class InceptionCommit:
    commit_id: str
    tree_id: str
    message: str
    author: Ident
    committer: Ident
    parents: tuple[str, ...] = ()

    @property
    def did(self) -> str:
        return f"did:repo:{self.commit_id}"


def inception_message(identity: Identity) -> str:
    """Compose the inception commit message with its sign-off trailer."""
    return f"{INCEPTION_SUMMARY}\n\n{INCEPTION_BODY}\n\n{identity.signoff()}\n"


def committer_name_for(key: SigningKey) -> str:
    """Committer name bound to the signing key rather than a display name."""
    fingerprint = key.fingerprint()
    if not fingerprint.startswith(COMMITTER_PREFIX):
        fingerprint = COMMITTER_PREFIX + fingerprint
    return fingerprint


_SIGNING_FAILURES = ("sign", "ssh-keygen", "private key", "load key")


def _is_signing_failure(error: GitError) -> bool:
    text = str(error).lower()
    return any(marker in text for marker in _SIGNING_FAILURES)


class InceptionCommitCreator:
    """
    Build the single empty, signed commit that anchors a repository.

    The commit has no parents, records the canonical empty tree, carries
    the fixed root-of-trust message plus a sign-off, and names the signing
    key's fingerprint as committer.
    """

    def __init__(self, git: Git) -> None:
        self.git = git

    def create(self, signing_key: SigningKey, author: Identity) -> InceptionCommit:
        """
        Create the inception commit and point HEAD at it.

        Raises:
            UsageError: If the author identity is incomplete
            SigningError: If the key cannot be used for signing
            RepositoryError: If the repository already has commits or git fails
        """
        if not author.name.strip() or not author.email.strip():
            raise UsageError("Author identity needs a non-empty name and email.")
        if not self.git.is_repository():
            raise RepositoryError(f"{self.git.worktree} is not a git repository.")
        if self.git.has_commits():
            raise RepositoryError("Repository already has commits; the inception commit must be the root.")
        signing_key.ensure_usable()

        committer_name = committer_name_for(signing_key)
        date = git_date(author.timestamp)
        author_ident = Ident(name=author.name, email=author.email, date=date)
        committer_ident = Ident(name=committer_name, email=author.email, date=date)
        message = inception_message(author)

        logger.info("Creating empty inception commit with SHA-1 root of trust...")
        try:
            tree_id = self.git.empty_tree_id(write=True)
            commit_id = self.git.commit_tree(
                tree_id,
                message,
                author=author_ident,
                committer=committer_ident,
                parents=(),
                signing_key=signing_key.private_path,
            )
        except GitError as exc:
            if _is_signing_failure(exc):
                raise SigningError(f"Failed to sign the inception commit: {exc}") from exc
            raise RepositoryError(f"Failed to create the inception commit: {exc}") from exc

        # The empty old value makes git refuse if HEAD's branch appeared meanwhile.
        self.git.update_ref("HEAD", commit_id, "")
        logger.info("Empty inception commit created successfully: %s", commit_id)

        verification_dir = self.git.worktree / VERIFICATION_DIR
        verification_dir.mkdir(parents=True, exist_ok=True)

        return InceptionCommit(
            commit_id=commit_id,
            tree_id=tree_id,
            message=message,
            author=author_ident,
            committer=committer_ident,
        )


def create_inception_commit(repository: Path | Git, signing_key: SigningKey, author: Identity) -> InceptionCommit:
    """Create the inception commit in repository (a path or a Git wrapper)."""
    git = repository if isinstance(repository, Git) else Git(repository)
    return InceptionCommitCreator(git).create(signing_key, author)
