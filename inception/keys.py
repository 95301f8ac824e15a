"""SSH signing key discovery, fingerprints and allowed signers handling."""

from __future__ import annotations

import base64
import binascii
import hashlib
import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List

from .errors import SigningError, ToolingError
from .logging import get_logger
from .util import expand_path
from .vcs import Git

logger = get_logger("keys")

DEFAULT_SSH_DIR = Path("~/.ssh")
DEFAULT_KEY_NAME = "id_ed25519"
ED25519_KEY_TYPE = "ssh-ed25519"


def _run_ssh_keygen(args: list[str]) -> subprocess.CompletedProcess[str]:
    try:
        return subprocess.run(
            ["ssh-keygen", *args],
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
            check=False,
        )
    except FileNotFoundError as exc:
        raise ToolingError("ssh-keygen is not installed. Please install OpenSSH and try again.") from exc


def fingerprint_of(public_key: str) -> str:
    """
    Return the SHA-256 fingerprint of an OpenSSH public key line.

    The result matches ``ssh-keygen -E sha256 -l``: ``SHA256:`` followed by
    the unpadded base64 digest of the decoded key blob.
    """
    parts = public_key.split()
    if len(parts) < 2:
        raise SigningError(f"Not an OpenSSH public key: {public_key[:40]!r}")
    try:
        blob = base64.b64decode(parts[1], validate=True)
    except (binascii.Error, ValueError) as exc:
        raise SigningError("Public key data is not valid base64.") from exc
    digest = hashlib.sha256(blob).digest()
    return "SHA256:" + base64.b64encode(digest).decode("ascii").rstrip("=")


def resolve_public_key_path(private_path: Path) -> Path | None:
    """Find the public key belonging to a private key file."""
    if private_path.suffix == ".pub":
        return private_path
    candidate = Path(f"{private_path}.pub")
    if candidate.is_file():
        return candidate
    candidate = private_path.with_suffix(".pub")
    if candidate.is_file():
        return candidate
    if private_path.parent.is_dir():
        matches = sorted(private_path.parent.glob(f"{private_path.name}*.pub"))
        if matches:
            return matches[0]
    return None


@dataclass(frozen=True)
class SigningKey:
    """An SSH key pair designated for signing commits."""

    private_path: Path
    public_path: Path | None = None

    @classmethod
    def from_path(cls, path: str | os.PathLike[str]) -> "SigningKey":
        """Build a key from a private (or public) key path."""
        private_path = expand_path(path)
        if not private_path.is_file():
            raise SigningError(f"Signing key {private_path} does not exist.")
        return cls(private_path=private_path, public_path=resolve_public_key_path(private_path))

    def public_key(self) -> str:
        """Return the OpenSSH public key line for this key."""
        if self.public_path is not None:
            try:
                text = self.public_path.read_text(encoding="utf-8").strip()
            except OSError as exc:
                raise SigningError(f"Cannot read public key {self.public_path}: {exc}") from exc
            if text:
                return text
        # Derive the public half from the private key.
        result = _run_ssh_keygen(["-y", "-f", str(self.private_path)])
        if result.returncode != 0 or not result.stdout.strip():
            raise SigningError(
                f"Could not read a public key for {self.private_path}: {result.stderr.strip()}"
            )
        return result.stdout.strip()

    @property
    def key_type(self) -> str:
        return self.public_key().split()[0]

    @property
    def is_ed25519(self) -> bool:
        return self.key_type == ED25519_KEY_TYPE

    def fingerprint(self) -> str:
        return fingerprint_of(self.public_key())

    def ensure_usable(self) -> None:
        """
        Check that ssh-keygen can load the private key.

        A passphrase-protected key counts as usable: ssh-agent signs with it.

        Raises:
            SigningError: If the key is missing, corrupt or readable by others
        """
        if not self.private_path.is_file():
            raise SigningError(f"Signing key {self.private_path} does not exist.")
        if self.private_path.suffix == ".pub":
            return
        result = _run_ssh_keygen(["-y", "-P", "", "-f", str(self.private_path)])
        if result.returncode == 0:
            return
        stderr = result.stderr.strip()
        if "passphrase" in stderr.lower():
            logger.debug("Signing key %s is passphrase protected.", self.private_path)
            return
        raise SigningError(f"Signing key {self.private_path} cannot be loaded: {stderr}")


def discover_signing_key(
    git: Git,
    explicit: str | os.PathLike[str] | None = None,
    ssh_dir: Path | None = None,
) -> SigningKey:
    """
    Locate the key used to sign the inception commit.

    Search order: an explicit path, ``user.signingkey`` from git config,
    ``~/.ssh/id_ed25519``, then any other Ed25519 private key in ``~/.ssh``.

    Raises:
        SigningError: If no usable key can be found
    """
    if explicit:
        return SigningKey.from_path(explicit)

    configured = git.get_config("user.signingkey")
    if configured and expand_path(configured).is_file():
        logger.info("Found existing SSH signing key: %s", configured)
        return SigningKey.from_path(configured)

    directory = expand_path(ssh_dir or DEFAULT_SSH_DIR)
    default_key = directory / DEFAULT_KEY_NAME
    if default_key.is_file():
        logger.info("Found standard Ed25519 key at %s", default_key)
        return SigningKey.from_path(default_key)

    if directory.is_dir():
        for candidate in sorted(directory.glob("*ed25519*")):
            if candidate.is_file() and candidate.suffix != ".pub":
                logger.info("Found Ed25519 key at %s", candidate)
                return SigningKey.from_path(candidate)

    raise SigningError(
        "No SSH signing key found. Either configure git with an existing key "
        "(git config --global user.signingkey /path/to/key) or generate one "
        '(ssh-keygen -t ed25519 -C "you@example.com").'
    )


def generate_signing_key(path: str | os.PathLike[str], comment: str = "") -> SigningKey:
    """Generate a passphrase-less Ed25519 key pair at path."""
    private_path = expand_path(path)
    if private_path.exists():
        raise SigningError(f"Refusing to overwrite existing key {private_path}.")
    private_path.parent.mkdir(parents=True, exist_ok=True)
    result = _run_ssh_keygen(
        ["-q", "-t", "ed25519", "-N", "", "-C", comment, "-f", str(private_path)]
    )
    if result.returncode != 0:
        raise SigningError(f"ssh-keygen failed: {result.stderr.strip()}")
    logger.info("Generated Ed25519 signing key %s", private_path)
    return SigningKey.from_path(private_path)


@dataclass
class AllowedSigner:
    principals: List[str]
    key_type: str
    key_data: str
    options: str = ""
    comment: str = ""

    @property
    def public_key(self) -> str:
        return f"{self.key_type} {self.key_data}"

    def render(self) -> str:
        parts = [",".join(self.principals)]
        if self.options:
            parts.append(self.options)
        parts.extend([self.key_type, self.key_data])
        if self.comment:
            parts.append(self.comment)
        return " ".join(parts)


@dataclass
class AllowedSigners:
    """
    The OpenSSH ``allowed_signers`` file used for SSH signature verification.

    Each line maps one or more principals (emails) to a public key:
    ``<principals> [options] <keytype> <base64-key> [comment]``.
    """

    entries: List[AllowedSigner] = field(default_factory=list)

    @classmethod
    def parse(cls, text: str) -> "AllowedSigners":
        entries: List[AllowedSigner] = []
        for line in text.splitlines():
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            fields = line.split()
            if len(fields) < 3:
                logger.warning("Skipping malformed allowed signers line: %s", line)
                continue
            principals = fields[0].split(",")
            # Options sit between the principals and the key type when present.
            if fields[1].startswith(("ssh-", "ecdsa-", "sk-")):
                options, rest = "", fields[1:]
            else:
                options, rest = fields[1], fields[2:]
            if len(rest) < 2:
                logger.warning("Skipping malformed allowed signers line: %s", line)
                continue
            entries.append(
                AllowedSigner(
                    principals=principals,
                    key_type=rest[0],
                    key_data=rest[1],
                    options=options,
                    comment=" ".join(rest[2:]),
                )
            )
        return cls(entries=entries)

    @classmethod
    def load(cls, path: Path) -> "AllowedSigners":
        if not path.exists():
            return cls()
        return cls.parse(path.read_text(encoding="utf-8"))

    def render(self) -> str:
        return "".join(entry.render() + "\n" for entry in self.entries)

    def save(self, path: Path) -> None:
        if not path.parent.exists():
            path.parent.mkdir(parents=True)
            path.parent.chmod(0o700)
        path.write_text(self.render(), encoding="utf-8")
        path.chmod(0o600)

    def keys_for(self, email: str) -> List[str]:
        return [entry.public_key for entry in self.entries if email in entry.principals]

    def add(self, email: str, public_key: str) -> bool:
        """Authorize public_key for email. Returns False if already present."""
        parts = public_key.split()
        if len(parts) < 2:
            raise SigningError(f"Not an OpenSSH public key: {public_key[:40]!r}")
        key = f"{parts[0]} {parts[1]}"
        if key in self.keys_for(email):
            return False
        self.entries.append(
            AllowedSigner(
                principals=[email],
                key_type=parts[0],
                key_data=parts[1],
                comment=" ".join(parts[2:]),
            )
        )
        return True

    def as_dict(self) -> Dict[str, List[str]]:
        mapping: Dict[str, List[str]] = {}
        for entry in self.entries:
            for principal in entry.principals:
                mapping.setdefault(principal, []).append(entry.public_key)
        return mapping


def configure_git_signing(
    git: Git,
    key: SigningKey,
    email: str,
    allowed_signers_path: Path,
    *,
    scope: str = "global",
) -> None:
    """
    Configure git to sign with key over SSH and trust it for email.

    Writes ``gpg.format``, ``user.signingkey``, ``commit.gpgsign`` and
    ``gpg.ssh.allowedSignersFile`` at the given scope.
    """
    logger.info("Using SSH key for signing: %s", key.private_path)
    if not key.is_ed25519:
        logger.warning("Signing key %s is %s, Ed25519 is recommended.", key.private_path, key.key_type)

    settings = {
        "gpg.format": "ssh",
        "user.signingkey": str(key.private_path),
        "commit.gpgsign": "true",
        "gpg.ssh.allowedSignersFile": str(allowed_signers_path),
    }

    signers = AllowedSigners.load(allowed_signers_path)
    if signers.add(email, key.public_key()):
        logger.info("Adding %s to allowed signers file %s", email, allowed_signers_path)
        signers.save(allowed_signers_path)

    for name, value in settings.items():
        git.set_config(name, value, scope=scope)

    mismatched = [name for name, value in settings.items() if git.get_config(name, scope=scope) != value]
    if mismatched:
        logger.warning(
            "Some git configuration settings may not have been applied correctly: %s",
            ", ".join(mismatched),
        )
    else:
        logger.info("Git configured successfully for SSH signing.")
