"""Independent verification of a repository's inception commit."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

from .commit import COMMITTER_PREFIX, INCEPTION_SUMMARY, SIGNOFF_PREFIX
from .errors import NotFoundError, ToolingError
from .logging import get_logger
from .util import expand_path
from .vcs import CommitObject, Git

logger = get_logger("verify")

CHECK_EMPTY_TREE = "empty_tree"
CHECK_MESSAGE = "message"
CHECK_SIGNATURE = "signature"
CHECK_COMMITTER = "committer_format"
CHECK_SIGNOFF = "signoff"

# Checks whose failure does not block the overall verdict.
ADVISORY_CHECKS = frozenset({CHECK_COMMITTER})

_SIGNOFF_PATTERN = re.compile(rf"^{re.escape(SIGNOFF_PREFIX)}", re.MULTILINE)

# git reports these when it cannot run the verification program at all.
_TOOLING_FAILURES = (
    "cannot run",
    "allowedsignersfile needs to be configured",
    "is needed for ssh signature verification",
)


@dataclass(frozen=True)
class CheckResult:
    name: str
    passed: bool
    message: str

    @property
    def advisory(self) -> bool:
        return self.name in ADVISORY_CHECKS

    @property
    def marker(self) -> str:
        if self.passed:
            return "✅"
        return "⚠️" if self.advisory else "❌"

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "passed": self.passed, "message": self.message}


@dataclass(frozen=True)
class VerificationResult:
    commit_id: str
    checks: tuple[CheckResult, ...] = field(default_factory=tuple)

    @property
    def passed(self) -> bool:
        return all(check.passed for check in self.checks if not check.advisory)

    @property
    def did(self) -> str:
        return repository_did(self.commit_id)

    def check(self, name: str) -> CheckResult:
        for item in self.checks:
            if item.name == name:
                return item
        raise KeyError(name)

    @property
    def warnings(self) -> List[CheckResult]:
        return [check for check in self.checks if check.advisory and not check.passed]

    def __bool__(self) -> bool:
        return self.passed

    def __str__(self) -> str:
        lines = [f"✅ Found inception commit: {self.commit_id}"]
        lines.extend(f"{check.marker} {check.message}" for check in self.checks)
        lines.append(f"Repository DID: {self.did}")
        if self.passed:
            lines.append("✅ Inception commit verification passed")
        else:
            lines.append("❌ Inception commit verification failed")
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "commit": self.commit_id,
            "did": self.did,
            "passed": self.passed,
            "checks": [check.to_dict() for check in self.checks],
        }


def repository_did(commit_id: str) -> str:
    """Derive the repository identifier from its inception commit id."""
    return f"did:repo:{commit_id}"


class InceptionCommitVerifier:
    """
    Re-derive and check the properties of an inception commit.

    Every check runs regardless of the others so a single pass reports all
    violated properties. Only a missing root commit or a check that cannot
    be executed aborts verification.
    """

    def __init__(self, git: Git, *, allowed_signers: Path | None = None) -> None:
        self.git = git
        self.allowed_signers = allowed_signers

    def resolve_root(self, rev: str = "HEAD") -> CommitObject:
        """
        Return the root commit reachable from rev.

        Raises:
            NotFoundError: If there is no root commit, or the candidate
                records parents (for example in a shallow clone)
        """
        roots = self.git.root_commits(rev)
        if not roots:
            raise NotFoundError("No inception commit found.")
        if len(roots) > 1:
            logger.warning("Found %d root commits, using the oldest: %s", len(roots), roots[0])
        commit = self.git.read_commit(roots[0])
        if commit.parents:
            raise NotFoundError(
                f"Root candidate {commit.id} records {len(commit.parents)} parent(s); "
                "it cannot be an inception commit."
            )
        return commit

    def verify(self, rev: str = "HEAD") -> VerificationResult:
        """
        Verify the inception commit of the repository.

        Raises:
            NotFoundError: If no root commit exists
            ToolingError: If signature verification cannot run
        """
        logger.info("Verifying inception commit...")
        commit = self.resolve_root(rev)
        logger.info("Found inception commit: %s", commit.id)

        checks = (
            self._check_empty_tree(commit),
            self._check_message(commit),
            self._check_signature(commit),
            self._check_committer(commit),
            self._check_signoff(commit),
        )
        for check in checks:
            if check.passed:
                logger.info("%s %s", check.marker, check.message)
            elif check.advisory:
                logger.warning("%s %s", check.marker, check.message)
            else:
                logger.error("%s %s", check.marker, check.message)

        result = VerificationResult(commit_id=commit.id, checks=checks)
        logger.info("Repository DID: %s", result.did)
        if result.passed:
            logger.info("Inception commit verification passed")
        else:
            logger.error("Inception commit verification failed")
        return result

    def _check_empty_tree(self, commit: CommitObject) -> CheckResult:
        if commit.tree == self.git.empty_tree_id():
            return CheckResult(CHECK_EMPTY_TREE, True, "Inception commit is properly empty")
        return CheckResult(CHECK_EMPTY_TREE, False, "Inception commit is not empty")

    def _check_message(self, commit: CommitObject) -> CheckResult:
        if INCEPTION_SUMMARY in commit.message:
            return CheckResult(CHECK_MESSAGE, True, "Inception commit has proper message format")
        return CheckResult(CHECK_MESSAGE, False, "Inception commit missing required initialization message")

    def _signers_file(self) -> Path:
        if self.allowed_signers is not None:
            path = expand_path(self.allowed_signers)
        else:
            configured = self.git.get_config("gpg.ssh.allowedSignersFile")
            if not configured:
                raise ToolingError(
                    "gpg.ssh.allowedSignersFile is not configured; signatures cannot be verified."
                )
            path = expand_path(configured)
        if not path.is_file():
            raise ToolingError(f"Allowed signers file {path} does not exist; signatures cannot be verified.")
        return path

    def _check_signature(self, commit: CommitObject) -> CheckResult:
        if not commit.is_signed:
            return CheckResult(CHECK_SIGNATURE, False, "Inception commit is not signed")

        result = self.git.verify_commit(commit.id, allowed_signers=self._signers_file())
        if result.returncode == 0:
            return CheckResult(CHECK_SIGNATURE, True, "Inception commit has valid signature")

        stderr = result.stderr.strip()
        lowered = stderr.lower()
        if any(marker in lowered for marker in _TOOLING_FAILURES):
            raise ToolingError(f"Signature verification could not run: {stderr}")
        logger.debug("verify-commit output: %s", stderr)
        return CheckResult(CHECK_SIGNATURE, False, "Inception commit signature verification failed")

    def _check_committer(self, commit: CommitObject) -> CheckResult:
        name = commit.committer.name
        if name.startswith(COMMITTER_PREFIX):
            return CheckResult(CHECK_COMMITTER, True, "Committer name is in fingerprint format")
        return CheckResult(CHECK_COMMITTER, False, f"Committer name is not in fingerprint format: {name}")

    def _check_signoff(self, commit: CommitObject) -> CheckResult:
        if _SIGNOFF_PATTERN.search(commit.message):
            return CheckResult(CHECK_SIGNOFF, True, "Inception commit has proper sign-off")
        return CheckResult(CHECK_SIGNOFF, False, "Inception commit missing sign-off")


def verify_inception_commit(
    repository: Path | Git, *, allowed_signers: Path | None = None
) -> VerificationResult:
    """Verify the inception commit of repository (a path or a Git wrapper)."""
    git = repository if isinstance(repository, Git) else Git(repository)
    return InceptionCommitVerifier(git, allowed_signers=allowed_signers).verify()
