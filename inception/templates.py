"""Install the project workflow documents into a bootstrapped repository."""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from string import Template
from typing import Dict, List

from .errors import RepositoryError
from .logging import get_logger
from .remote import GITIGNORE_WORK_BRANCH, REMOTE_NAME
from .util import now_utc
from .vcs import Git, GitError

logger = get_logger("templates")

MAIN_BRANCH = "main"
IMPORT_BRANCH = "docs/import-existing-materials"
TEMP_PUSH_BRANCH = "_temp_push_branch"
FILE_MODE = 0o644

UNASSIGNED_HEADING = "## Unassigned Tasks"
REVIEW_STAGE_HEADING = "### Stage 3: Branch Management and PR Process"
TASKS_FILE = "WORK_STREAM_TASKS.md"
INVENTORY_FILE = "requirements/source_materials_inventory.md"

UNTRACKED_DIR = Path("untracked")
BACKUP_DIR = UNTRACKED_DIR / "original_bootstrap_files"
UPDATES_DIR = UNTRACKED_DIR / "updated_bootstrap_files"
SOURCE_MATERIAL_DIR = UNTRACKED_DIR / "source-material"
BACKUP_FILES = ("README.md", "CLAUDE.md", TASKS_FILE, ".inception.yml")

# Documents written on the main branch, in installation order.
WORKFLOW_TEMPLATES = (
    "CLAUDE.md",
    TASKS_FILE,
    "requirements/branch_management.md",
    "requirements/git_workflow.md",
    "requirements/pr_process.md",
    "requirements/work_stream_management.md",
    "context/main-CONTEXT.md",
    "context/branch_context_template.md",
    "templates/PR_DESCRIPTION_TEMPLATE.md",
    "templates/IMPORT_MATERIALS_PR_TEMPLATE.md",
    "templates/SRC_README_TEMPLATE.md",
    "templates/TESTS_README_TEMPLATE.md",
    "templates/COMMIT_MESSAGE_TEMPLATE.md",
    "templates/branch_templates/FEATURE_BRANCH_TEMPLATE.md",
    "src/README.md",
    "src/tests/README.md",
    ".github/ISSUE_TEMPLATE/bug_report.md",
    ".github/ISSUE_TEMPLATE/feature_request.md",
)

WORKFLOW_COMMIT_MESSAGE = """Add initial project workflow files

- Add CLAUDE.md for Claude CLI guidance and context management
- Add WORK_STREAM_TASKS.md for structured task tracking
- Add requirements/ directory with process definitions
- Add context/ directory with branch context files
- Add templates/ directory for project documentation"""

IMPORT_COMMIT_MESSAGE = """Set up branch for importing existing materials

- Create branch context file with import process guidance
- Add source materials inventory template
- Update work stream tasks with import process steps"""


@dataclass
class InstallReport:
    repo_name: str
    repo_dir: Path
    created: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    backed_up: List[str] = field(default_factory=list)
    workflow_commit: str | None = None
    import_branch: str | None = None
    import_commit: str | None = None
    warnings: List[str] = field(default_factory=list)

    def warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)


def read_template(name: str) -> str:
    """Return the packaged template document at a slash separated path."""
    resource = resources.files("inception").joinpath("documents")
    for part in name.split("/"):
        resource = resource.joinpath(part)
    return resource.read_text(encoding="utf-8")


def render_template(name: str, values: Dict[str, str]) -> str:
    """Substitute ``$name`` placeholders, leaving unknown ones untouched."""
    return Template(read_template(name)).safe_substitute(values)


def context_filename(branch: str) -> str:
    return f"context/{branch.replace('/', '-')}-CONTEXT.md"


def _write_file(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    os.chmod(path, FILE_MODE)


def prepare_untracked(repo_dir: Path, *, clear_backup: bool = False) -> List[str]:
    """
    Back up pre-existing bootstrap documents under untracked/.

    An existing backup is kept unless clear_backup is set, so repeated runs
    never overwrite the pre-install state. Returns the backed up file names.
    """
    backup_dir = repo_dir / BACKUP_DIR
    if backup_dir.is_dir():
        if clear_backup:
            logger.info("Clearing existing backup in %s...", BACKUP_DIR)
            shutil.rmtree(backup_dir)
        else:
            logger.warning("Using existing backup directory. Use --clear-backup to create a clean backup.")

    backed_up: List[str] = []
    if not backup_dir.is_dir():
        backup_dir.mkdir(parents=True)
        for name in BACKUP_FILES:
            source = repo_dir / name
            if source.is_file():
                shutil.copy2(source, backup_dir / name)
                backed_up.append(name)
                logger.info("Backed up %s", name)

    for sub in ("templates", "context", "requirements"):
        (repo_dir / UPDATES_DIR / sub).mkdir(parents=True, exist_ok=True)
    return backed_up


def write_templates(repo_dir: Path, values: Dict[str, str], report: InstallReport) -> None:
    """Write every workflow document that does not exist yet."""
    for name in WORKFLOW_TEMPLATES:
        target = repo_dir / name
        if target.exists():
            logger.warning("%s already exists, skipping", name)
            report.skipped.append(name)
            continue
        _write_file(target, render_template(name, values))
        logger.info("Created %s", name)
        report.created.append(name)

    (repo_dir / SOURCE_MATERIAL_DIR).mkdir(parents=True, exist_ok=True)
    (repo_dir / ".github" / "workflows").mkdir(parents=True, exist_ok=True)


def add_branch_tasks(tasks: str, section: str, branch: str) -> str:
    """
    Insert a branch task section below the unassigned tasks heading.

    The first review task of the branch management stage is pointed at the
    new branch's pull request.
    """
    lines = tasks.splitlines(keepends=True)
    try:
        index = next(i for i, line in enumerate(lines) if line.rstrip("\n") == UNASSIGNED_HEADING)
    except StopIteration:
        logger.warning("%s has no '%s' section; branch tasks not added.", TASKS_FILE, UNASSIGNED_HEADING)
        return tasks
    lines[index + 1 : index + 1] = [section]

    in_stage = False
    for i, line in enumerate(lines):
        if line.rstrip("\n") == REVIEW_STAGE_HEADING:
            in_stage = True
        elif in_stage and line.lstrip().startswith("- [ ] Review"):
            indent = line[: len(line) - len(line.lstrip())]
            lines[i] = f"{indent}- [ ] Review {branch} PR\n"
            break
    return "".join(lines)


def _push_main(git: Git, branch: str) -> None:
    commit_id = git.rev_parse("HEAD")
    git.branch_force(TEMP_PUSH_BRANCH, commit_id)
    try:
        git.push(REMOTE_NAME, f"{TEMP_PUSH_BRANCH}:{branch}", force=True)
    except GitError as exc:
        raise RepositoryError(f"Failed to push to GitHub {branch} branch: {exc}") from exc
    finally:
        git.delete_branch(TEMP_PUSH_BRANCH)
    logger.info("Successfully pushed commits to GitHub %s branch.", branch)


def create_import_branch(
    git: Git,
    values: Dict[str, str],
    report: InstallReport,
    *,
    branch: str = IMPORT_BRANCH,
    base: str = MAIN_BRANCH,
    push: bool = True,
) -> None:
    """Create the branch used to bring existing materials into the project."""
    if git.branch_exists(branch):
        report.warn(f"Branch {branch} already exists, skipping import branch setup.")
        return

    logger.info("Creating branch for source material import...")
    repo_dir = git.worktree
    context_file = context_filename(branch)
    values = dict(values, branch=branch, context_file=context_file)

    git.checkout(branch, create=True)
    try:
        _write_file(repo_dir / INVENTORY_FILE, render_template("import/source_materials_inventory.md", values))
        _write_file(repo_dir / context_file, render_template("import/branch-CONTEXT.md", values))

        tasks_path = repo_dir / TASKS_FILE
        if tasks_path.is_file():
            section = render_template("import/work_stream_section.md", values)
            _write_file(tasks_path, add_branch_tasks(tasks_path.read_text(encoding="utf-8"), section, branch))

        paths = [name for name in (TASKS_FILE, context_file, INVENTORY_FILE) if (repo_dir / name).is_file()]
        git.stage(paths)
        report.import_commit = git.commit(IMPORT_COMMIT_MESSAGE)
        report.import_branch = branch

        if push:
            logger.info("Pushing import branch to GitHub...")
            try:
                git.push(REMOTE_NAME, branch, set_upstream=True)
                logger.info("Successfully pushed import branch to GitHub.")
            except GitError:
                report.warn(
                    f"Could not push import branch to GitHub. You can push manually later with: "
                    f"git push -u origin {branch}"
                )
    finally:
        git.checkout(base)

    logger.info("Source material import branch created successfully.")
    logger.info("To begin working with it, run: git checkout %s", branch)


def install_templates(
    git: Git,
    repo_dir: Path,
    repo_name: str,
    *,
    clear_backup: bool = False,
    push: bool = True,
    author: str | None = None,
    import_branch: str = IMPORT_BRANCH,
) -> InstallReport:
    """
    Install the workflow documents on main and set up the import branch.

    Raises:
        RepositoryError: If repo_dir is not a repository with a main branch,
            or the workflow commit cannot be created or pushed
    """
    if not git.is_repository():
        raise RepositoryError("Not a git repository. Run 'inception init' first.")
    if not git.branch_exists(MAIN_BRANCH):
        raise RepositoryError("Main branch does not exist. Run 'inception remote' first.")

    if git.current_branch() != MAIN_BRANCH:
        logger.warning("Not on main branch. Switching to main branch...")
        git.checkout(MAIN_BRANCH)
    if git.branch_exists(GITIGNORE_WORK_BRANCH):
        logger.warning("Found %s branch. Deleting...", GITIGNORE_WORK_BRANCH)
        git.delete_branch(GITIGNORE_WORK_BRANCH)

    report = InstallReport(repo_name=repo_name, repo_dir=repo_dir)
    values = {
        "repo_name": repo_name,
        "date": now_utc().strftime("%Y-%m-%d"),
        "author": author or git.get_config("user.name") or "",
    }

    logger.info("Creating backup structure for bootstrap files...")
    report.backed_up = prepare_untracked(repo_dir, clear_backup=clear_backup)

    logger.info("Copying template files to repository...")
    write_templates(repo_dir, values, report)

    if report.created:
        git.stage(report.created)
        try:
            report.workflow_commit = git.commit(WORKFLOW_COMMIT_MESSAGE)
        except GitError as exc:
            raise RepositoryError(f"Failed to commit workflow files: {exc}") from exc
        if push:
            logger.info("Pushing all commits to GitHub...")
            _push_main(git, MAIN_BRANCH)
    else:
        logger.info("All workflow files already present; nothing to commit.")

    create_import_branch(git, values, report, branch=import_branch, push=push)

    logger.info("Bootstrap templates installed successfully!")
    return report
