"""Local repository bootstrap: signing setup, init and inception commit."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .commit import Identity, InceptionCommit, create_inception_commit
from .config import InceptionConfig
from .errors import ConfigurationError, InceptionError, RepositoryError
from .keys import SigningKey, configure_git_signing, discover_signing_key
from .logging import get_logger
from .verify import VerificationResult, verify_inception_commit
from .vcs import Git

logger = get_logger("bootstrap")

MINIMUM_GIT_VERSION = (2, 34, 0)


@dataclass
class BootstrapReport:
    repo_name: str
    repo_dir: Path
    commit: InceptionCommit
    verification: VerificationResult | None = None

    @property
    def did(self) -> str:
        return self.commit.did


def validate_prerequisites(git: Git) -> Identity:
    """
    Check git and its identity configuration before bootstrapping.

    Returns:
        The configured author identity

    Raises:
        ToolingError: If git is missing
        ConfigurationError: If git is too old or user.name/user.email are unset
    """
    logger.info("Validating prerequisites...")
    version = git.version()
    if version < MINIMUM_GIT_VERSION:
        required = ".".join(str(part) for part in MINIMUM_GIT_VERSION)
        found = ".".join(str(part) for part in version)
        raise ConfigurationError(
            f"git version {found} is too old. Version {required} or newer is required for SSH signing."
        )

    name = git.get_config("user.name")
    if not name:
        raise ConfigurationError(
            'git user.name is not configured. Set it with: git config --global user.name "Your Name"'
        )
    email = git.get_config("user.email")
    if not email:
        raise ConfigurationError(
            'git user.email is not configured. Set it with: git config --global user.email "you@example.com"'
        )

    if git.get_config("gpg.format") != "ssh":
        logger.warning("Git is not configured to use SSH for signing. Will configure during setup.")
    if not git.get_config("gpg.ssh.allowedSignersFile"):
        logger.warning("Git allowed signers file is not configured. Will configure during setup.")
    if git.get_config("commit.gpgsign") != "true":
        logger.warning("Git is not configured to sign commits by default. Will enable during setup.")

    logger.info("All prerequisites validated successfully.")
    return Identity(name=name, email=email)


def setup_local_repository(
    repo_name: str,
    repo_dir: Path,
    config: InceptionConfig,
    *,
    signing_key: SigningKey | None = None,
) -> BootstrapReport:
    """
    Create a local repository whose root is a signed inception commit.

    Steps: validate prerequisites, configure SSH signing, ``git init``,
    create the inception commit, then verify it. A failed verification is
    reported but does not undo the bootstrap.
    """
    probe = Git(repo_dir if repo_dir.is_dir() else Path.cwd())
    identity = validate_prerequisites(probe)

    key = signing_key or discover_signing_key(probe, explicit=config.signing.key_path)

    repo_dir.mkdir(parents=True, exist_ok=True)
    git = Git(repo_dir)
    if (repo_dir / ".git").exists() and git.has_commits():
        raise RepositoryError(f"{repo_dir} already has commits; refusing to create an inception commit.")

    logger.info("Creating local repository: %s...", repo_name)
    git.init(config.default_branch)

    logger.info("Configuring git for SSH signing...")
    configure_git_signing(
        git, key, identity.email, config.signing.allowed_signers_path, scope=config.signing.scope
    )

    commit = create_inception_commit(git, key, identity)

    verification: VerificationResult | None = None
    try:
        verification = verify_inception_commit(git, allowed_signers=config.signing.allowed_signers_path)
    except InceptionError as exc:
        logger.warning("Inception commit verification could not run: %s. Continuing anyway...", exc)
    else:
        if not verification.passed:
            logger.warning("Inception commit verification failed. Continuing anyway...")

    logger.info("Local repository created successfully.")
    return BootstrapReport(repo_name=repo_name, repo_dir=repo_dir, commit=commit, verification=verification)
