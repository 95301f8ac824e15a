# tests/test_templates.py
import stat

import pytest

from conftest import requires_git
from inception.errors import RepositoryError
from inception.templates import (
    IMPORT_BRANCH,
    WORKFLOW_TEMPLATES,
    add_branch_tasks,
    context_filename,
    install_templates,
    render_template,
)
from inception.vcs import Git

IMPORT_CONTEXT = "context/docs-import-existing-materials-CONTEXT.md"

TASKS = """# Work Stream Tasks

### Stage 3: Branch Management and PR Process

- [ ] **Plan first feature branch** [main]
- [ ] Review pending PRs

## Unassigned Tasks

- [ ] Create CONTRIBUTING.md
"""


def test_context_filename_flattens_branch():
    assert context_filename(IMPORT_BRANCH) == IMPORT_CONTEXT


def test_render_fills_placeholders_and_keeps_unknown():
    text = render_template("import/branch-CONTEXT.md", {"branch": "docs/x", "date": "2026-01-02"})

    assert text.startswith("# docs/x Branch Context")
    assert "Branch created on 2026-01-02" in text
    assert "${author}" in text


def test_every_workflow_template_is_packaged():
    for name in WORKFLOW_TEMPLATES:
        assert render_template(name, {"repo_name": "demo", "date": "2026-01-02", "author": "Alice"}).strip()


def test_add_branch_tasks_inserts_below_unassigned_heading():
    updated = add_branch_tasks(TASKS, "\n## Branch: [docs/x]\n\n- [ ] Import\n", "docs/x")

    lines = updated.splitlines()
    heading = lines.index("## Unassigned Tasks")
    assert lines[heading + 2] == "## Branch: [docs/x]"
    assert "- [ ] Review docs/x PR" in lines
    assert "- [ ] Review pending PRs" not in lines
    assert lines[-1] == "- [ ] Create CONTRIBUTING.md"


def test_add_branch_tasks_without_heading_is_unchanged():
    text = "# Tasks\n\n- [ ] Something\n"

    assert add_branch_tasks(text, "## Branch: [docs/x]\n", "docs/x") == text


def test_install_writes_commits_and_creates_import_branch(inception_repo):
    repo_dir = inception_repo.repo_dir
    git = Git(repo_dir)

    report = install_templates(git, repo_dir, "demo", push=False, author="Alice Example")

    assert report.created == list(WORKFLOW_TEMPLATES)
    assert report.skipped == []
    for name in WORKFLOW_TEMPLATES:
        assert stat.S_IMODE((repo_dir / name).stat().st_mode) == 0o644
        assert git.has_path("main", name)

    claude = (repo_dir / "CLAUDE.md").read_text(encoding="utf-8")
    assert claude.startswith("# demo")
    assert "by Alice Example" in claude
    assert "$date" not in claude

    workflow = git.read_commit(report.workflow_commit)
    assert workflow.is_signed
    assert "Signed-off-by:" in workflow.message
    assert workflow.parents == (inception_repo.commit.commit_id,)

    assert report.import_branch == IMPORT_BRANCH
    assert git.current_branch() == "main"
    assert git.has_path(IMPORT_BRANCH, IMPORT_CONTEXT)
    assert git.has_path(IMPORT_BRANCH, "requirements/source_materials_inventory.md")
    assert not git.has_path("main", IMPORT_CONTEXT)

    tasks = git.run(["show", f"{IMPORT_BRANCH}:WORK_STREAM_TASKS.md"]).stdout
    assert f"## Branch: [{IMPORT_BRANCH}]" in tasks
    assert f"- [ ] Review {IMPORT_BRANCH} PR" in tasks
    assert f"## Branch: [{IMPORT_BRANCH}]" not in (repo_dir / "WORK_STREAM_TASKS.md").read_text(encoding="utf-8")

    for directory in (
        "untracked/source-material",
        "untracked/original_bootstrap_files",
        "untracked/updated_bootstrap_files/templates",
        "untracked/updated_bootstrap_files/context",
        "untracked/updated_bootstrap_files/requirements",
        ".github/workflows",
    ):
        assert (repo_dir / directory).is_dir()


def test_existing_documents_are_backed_up_and_kept(inception_repo):
    repo_dir = inception_repo.repo_dir
    (repo_dir / "README.md").write_text("# my project\n", encoding="utf-8")
    (repo_dir / "CLAUDE.md").write_text("custom instructions\n", encoding="utf-8")

    report = install_templates(Git(repo_dir), repo_dir, "demo", push=False)

    assert sorted(report.backed_up) == ["CLAUDE.md", "README.md"]
    assert "CLAUDE.md" in report.skipped
    assert (repo_dir / "CLAUDE.md").read_text(encoding="utf-8") == "custom instructions\n"
    backup = repo_dir / "untracked" / "original_bootstrap_files"
    assert (backup / "README.md").read_text(encoding="utf-8") == "# my project\n"


def test_second_install_is_a_no_op(inception_repo):
    repo_dir = inception_repo.repo_dir
    git = Git(repo_dir)
    install_templates(git, repo_dir, "demo", push=False)
    head = git.rev_parse("main")

    report = install_templates(git, repo_dir, "demo", push=False)

    assert report.created == []
    assert report.workflow_commit is None
    assert report.import_branch is None
    assert any(IMPORT_BRANCH in warning for warning in report.warnings)
    assert git.rev_parse("main") == head
    assert report.backed_up == []


def test_clear_backup_refreshes_backup(inception_repo):
    repo_dir = inception_repo.repo_dir
    git = Git(repo_dir)
    install_templates(git, repo_dir, "demo", push=False)

    report = install_templates(git, repo_dir, "demo", push=False, clear_backup=True)

    assert "CLAUDE.md" in report.backed_up
    assert "WORK_STREAM_TASKS.md" in report.backed_up


def test_install_pushes_main_and_import_branch(inception_repo, git_env):
    bare = git_env.work / "origin.git"
    Git(git_env.work).run(["init", "--bare", str(bare)])
    repo_dir = inception_repo.repo_dir
    git = Git(repo_dir)
    git.add_remote("origin", str(bare))

    report = install_templates(git, repo_dir, "demo", push=True)

    origin = Git(bare)
    assert origin.rev_parse("main") == report.workflow_commit
    assert origin.rev_parse(IMPORT_BRANCH) == report.import_commit
    assert report.warnings == []
    assert not git.branch_exists("_temp_push_branch")


def test_switches_back_to_main_first(inception_repo):
    repo_dir = inception_repo.repo_dir
    git = Git(repo_dir)
    git.checkout("feature/work", create=True)
    git.checkout("temp-gitignore", create=True)

    install_templates(git, repo_dir, "demo", push=False)

    assert git.current_branch() == "main"
    assert not git.branch_exists("temp-gitignore")


@requires_git
def test_requires_main_branch(isolated_git, tmp_path):
    repo_dir = tmp_path / "unborn"
    repo_dir.mkdir()
    git = Git(repo_dir)
    git.init("main")

    with pytest.raises(RepositoryError):
        install_templates(git, repo_dir, "unborn", push=False)
