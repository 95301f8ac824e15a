"""Create the GitHub remote and publish the inception commit."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from .config import VISIBILITIES, GitHubConfig, InceptionConfig
from .errors import RepositoryError, UsageError
from .github import GitHubClient, GitHubError
from .logging import get_logger
from .verify import InceptionCommitVerifier
from .vcs import Git, GitError

logger = get_logger("remote")

REMOTE_NAME = "origin"
TEMP_INCEPTION_BRANCH = "_temp_inception"
TEMP_GITIGNORE_BRANCH = "_temp_gitignore"
GITIGNORE_WORK_BRANCH = "temp-gitignore"

DEFAULT_GITIGNORE = """# Compiled output
/dist
/build
/out
/target

# Dependencies
/node_modules
/.pnp
.pnp.js

# Logs
logs
*.log
npm-debug.log*
yarn-debug.log*
yarn-error.log*

# Environment variables
.env
.env.local
.env.development.local
.env.test.local
.env.production.local

# IDE files
/.idea
/.vscode
*.swp
*.swo

# OS files
.DS_Store
Thumbs.db

# Project specific
/untracked
"""

GITIGNORE_COMMIT_MESSAGE = "Add initial repository structure with .gitignore"


@dataclass
class RemoteReport:
    owner: str
    repo_name: str
    inception_commit: str
    created: bool = False
    pushed_inception: bool = False
    warnings: List[str] = field(default_factory=list)

    @property
    def url(self) -> str:
        return f"https://github.com/{self.owner}/{self.repo_name}"

    def warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)


def _ensure_origin(git: Git, owner: str, repo_name: str) -> None:
    url = f"https://github.com/{owner}/{repo_name}.git"
    if REMOTE_NAME not in git.remotes():
        logger.info("Setting up remote for repository...")
        git.add_remote(REMOTE_NAME, url)
        return
    current = git.get_remote_url(REMOTE_NAME)
    if f"{owner}/{repo_name}" not in current:
        logger.info("Updating remote URL to match GitHub repository...")
        git.set_remote_url(REMOTE_NAME, url)


def _push_via_temp_branch(git: Git, commit_id: str, temp_branch: str, target: str, *, force: bool) -> None:
    git.branch_force(temp_branch, commit_id)
    try:
        git.push(REMOTE_NAME, f"{temp_branch}:{target}", force=force)
    finally:
        git.delete_branch(temp_branch)


def configure_branch_protection(
    client: GitHubClient,
    owner: str,
    repo_name: str,
    branch: str,
    settings: GitHubConfig,
    report: RemoteReport,
) -> None:
    """
    Protect branch and require signed commits.

    Failures are recorded as warnings: protection can be configured by hand
    and is not available for every account type.
    """
    logger.info("Configuring branch protection for %s/%s...", owner, repo_name)
    try:
        client.protect_branch(
            owner,
            repo_name,
            branch,
            review_count=settings.required_approving_review_count,
            enforce_admins=settings.enforce_admins,
        )
        logger.info("Branch protection applied successfully.")
    except GitHubError as exc:
        report.warn(f"Branch protection could not be applied ({exc}); configure it manually.")

    if settings.require_signatures:
        logger.info("Enabling required commit signatures...")
        try:
            client.require_signatures(owner, repo_name, branch)
            logger.info("Required signatures enabled successfully.")
        except GitHubError as exc:
            report.warn(f"Could not enable required signatures ({exc}).")

    try:
        protection = client.get_branch_protection(owner, repo_name, branch)
    except GitHubError as exc:
        report.warn(f"Could not read branch protection ({exc}).")
        return
    if protection:
        logger.info("Branch protection is active.")
    else:
        report.warn("Branch protection may not be fully configured.")


def add_gitignore(git: Git, branch: str) -> str | None:
    """Commit a default .gitignore on top of branch and push it. Returns the commit id."""
    if git.has_path(branch, ".gitignore"):
        logger.info(".gitignore already present on %s, skipping.", branch)
        return None

    logger.info("Creating .gitignore file...")
    if git.branch_exists(GITIGNORE_WORK_BRANCH):
        git.delete_branch(GITIGNORE_WORK_BRANCH)
    git.checkout(GITIGNORE_WORK_BRANCH, create=True, force=True)
    try:
        (git.worktree / ".gitignore").write_text(DEFAULT_GITIGNORE, encoding="utf-8")
        git.stage([".gitignore"])
        commit_id = git.commit(GITIGNORE_COMMIT_MESSAGE)
        logger.info("Pushing .gitignore to %s branch...", branch)
        _push_via_temp_branch(git, commit_id, TEMP_GITIGNORE_BRANCH, branch, force=True)
    finally:
        git.checkout(branch, force=True)
        if git.branch_exists(GITIGNORE_WORK_BRANCH):
            git.delete_branch(GITIGNORE_WORK_BRANCH)

    git.pull_ff_only(REMOTE_NAME, branch)
    logger.info("Successfully pushed .gitignore to %s branch.", branch)
    return commit_id


def verify_github_setup(git: Git, client: GitHubClient, report: RemoteReport, branch: str) -> bool:
    """Check that the remote is wired up; problems become warnings."""
    logger.info("Verifying GitHub repository configuration...")
    if REMOTE_NAME not in git.remotes():
        report.warn("GitHub remote not configured.")
        return False
    remote_url = git.get_remote_url(REMOTE_NAME)
    if "github.com" not in remote_url:
        report.warn(f"Remote URL does not point to GitHub: {remote_url}")
    if not client.repository_exists(report.owner, report.repo_name):
        report.warn(f"Repository does not exist on GitHub: {report.owner}/{report.repo_name}")
        return False
    if client.branch_exists(report.owner, report.repo_name, branch):
        logger.info("%s branch verified on GitHub.", branch)
    else:
        report.warn(f"{branch} branch does not exist on GitHub.")
    logger.info("GitHub repository verification complete.")
    return True


def create_github_remote(
    git: Git,
    client: GitHubClient,
    repo_name: str,
    config: InceptionConfig,
    *,
    visibility: str | None = None,
) -> RemoteReport:
    """
    Create (or reuse) the GitHub repository and publish the inception commit.

    Raises:
        UsageError: If visibility is not public or private
        NotFoundError: If the local repository has no inception commit
        RepositoryError: If an existing remote has a different history, or
            pushing fails
    """
    visibility = visibility or config.visibility
    if visibility not in VISIBILITIES:
        raise UsageError("Visibility must be either 'public' or 'private'.")
    branch = config.default_branch

    inception_id = InceptionCommitVerifier(git).resolve_root().id
    logger.info("Found inception commit: %s", inception_id)

    owner = client.current_user()
    report = RemoteReport(owner=owner, repo_name=repo_name, inception_commit=inception_id)

    logger.info("Checking if repository already exists at github.com/%s/%s...", owner, repo_name)
    already_published = False
    if client.repository_exists(owner, repo_name):
        logger.warning("Repository already exists at github.com/%s/%s", owner, repo_name)
        _ensure_origin(git, owner, repo_name)
        if not client.commit_exists(owner, repo_name, inception_id):
            raise RepositoryError("Remote repository has different history than local.")
        logger.info("Inception commit already exists on remote.")
        already_published = True
    else:
        logger.info("Creating GitHub repository: %s...", repo_name)
        client.create_repository(repo_name, private=visibility == "private")
        report.created = True
        _ensure_origin(git, owner, repo_name)

    if not already_published:
        logger.info("Pushing inception commit to GitHub repository...")
        try:
            _push_via_temp_branch(git, inception_id, TEMP_INCEPTION_BRANCH, branch, force=False)
        except GitError as exc:
            raise RepositoryError(f"Failed to push inception commit to GitHub: {exc}") from exc
        report.pushed_inception = True
        logger.info("Successfully pushed inception commit to GitHub.")

    configure_branch_protection(client, owner, repo_name, branch, config.github, report)

    try:
        add_gitignore(git, branch)
    except GitError as exc:
        raise RepositoryError(f"Failed to push .gitignore to GitHub: {exc}") from exc

    logger.info("GitHub repository created and initialized successfully.")
    if not verify_github_setup(git, client, report, branch):
        report.warn("Some GitHub verification checks failed but repository was created.")
    return report
