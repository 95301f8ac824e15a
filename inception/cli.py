"""Command-line interface for the inception bootstrap tool."""

from __future__ import annotations

import functools
import json
import sys
from dataclasses import replace
from pathlib import Path

import click

from .bootstrap import setup_local_repository
from .config import CONFIG_FILENAME, SIGNING_SCOPES, VISIBILITIES, InceptionConfig, load_config
from .errors import EXIT_GIT_FAILURE, InceptionError
from .github import GitHubClient
from .keys import SigningKey, generate_signing_key
from .logging import setup_logging
from .remote import create_github_remote
from .templates import install_templates
from .util import resolve_repo_dir
from .vcs import Git
from .verify import InceptionCommitVerifier, repository_did


def _handle_errors(func):
    """Report tool errors on stderr and exit with their status."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except InceptionError as exc:
            click.echo(f"Error: {exc}", err=True)
            sys.exit(exc.exit_code)

    return wrapper


def _config(ctx: click.Context) -> InceptionConfig:
    return ctx.obj["config"]


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v for INFO, -vv for DEBUG)")
@click.option("-q", "--quiet", is_flag=True, help="Suppress all output except errors")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help=f"Configuration file (defaults to ./{CONFIG_FILENAME})",
)
@click.pass_context
def cli(ctx: click.Context, verbose: int, quiet: bool, config_path: Path | None) -> None:
    """Create and verify repositories rooted in a signed inception commit."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet

    try:
        config = load_config(config_path)
    except InceptionError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(exc.exit_code)
    ctx.obj["config"] = config

    setup_logging(level=config.log_level, verbose=verbose, quiet=quiet)


@cli.command()
@click.argument("repo")
@click.option("--key", "key_path", type=click.Path(dir_okay=False), help="SSH private key used for signing.")
@click.option("--scope", type=click.Choice(SIGNING_SCOPES), default=None, help="Where to write signing settings.")
@click.pass_context
@_handle_errors
def init(ctx: click.Context, repo: str, key_path: str | None, scope: str | None) -> None:
    """Create a local repository whose root is a signed inception commit."""
    config = _config(ctx)
    signing = config.signing
    if key_path:
        signing = replace(signing, key=key_path)
    if scope:
        signing = replace(signing, scope=scope)
    config = replace(config, signing=signing)

    repo_name, repo_dir = resolve_repo_dir(repo)
    report = setup_local_repository(repo_name, repo_dir, config)

    click.echo(f"Repository: {report.repo_dir}")
    click.echo(f"Inception commit: {report.commit.commit_id}")
    click.echo(f"Repository DID: {report.did}")
    if report.verification is not None and not report.verification.passed:
        click.echo("Warning: inception commit verification failed.", err=True)


@cli.command()
@click.argument("path", default=".", type=click.Path(file_okay=False, path_type=Path))
@click.option(
    "--allowed-signers",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Allowed signers file (defaults to gpg.ssh.allowedSignersFile).",
)
@click.option("--json", "as_json", is_flag=True, help="Print the verification result as JSON.")
@_handle_errors
def verify(path: Path, allowed_signers: Path | None, as_json: bool) -> None:
    """Verify the inception commit of a repository."""
    verifier = InceptionCommitVerifier(Git(path), allowed_signers=allowed_signers)
    result = verifier.verify()
    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    else:
        click.echo(str(result))
    if not result.passed:
        sys.exit(EXIT_GIT_FAILURE)


@cli.command()
@click.argument("path", default=".", type=click.Path(file_okay=False, path_type=Path))
@_handle_errors
def did(path: Path) -> None:
    """Print the repository DID derived from its inception commit."""
    root = InceptionCommitVerifier(Git(path)).resolve_root()
    click.echo(repository_did(root.id))


@cli.command()
@click.argument("repo")
@click.argument("visibility", required=False, type=click.Choice(VISIBILITIES))
@click.pass_context
@_handle_errors
def remote(ctx: click.Context, repo: str, visibility: str | None) -> None:
    """Create the GitHub repository and publish the inception commit."""
    config = _config(ctx)
    repo_name, repo_dir = resolve_repo_dir(repo)
    client = GitHubClient.from_env(api_url=config.github.api_url)
    report = create_github_remote(Git(repo_dir), client, repo_name, config, visibility=visibility)

    click.echo(f"Repository: {report.url}")
    click.echo(f"Inception commit: {report.inception_commit}")
    if report.warnings:
        click.echo(f"Completed with {len(report.warnings)} warning(s):")
        for warning in report.warnings:
            click.echo(f"  - {warning}")


@cli.command()
@click.argument("repo")
@click.option("--clear-backup", is_flag=True, help="Replace an existing backup of the original files.")
@click.option("--push/--no-push", default=True, show_default=True, help="Push commits to origin.")
@click.pass_context
@_handle_errors
def templates(ctx: click.Context, repo: str, clear_backup: bool, push: bool) -> None:
    """Install the project workflow documents into a repository."""
    config = _config(ctx)
    repo_name, repo_dir = resolve_repo_dir(repo)
    report = install_templates(
        Git(repo_dir),
        repo_dir,
        repo_name,
        clear_backup=clear_backup,
        push=push,
        import_branch=config.templates.import_branch,
    )

    click.echo(f"Created {len(report.created)} file(s), skipped {len(report.skipped)}.")
    if report.import_branch:
        click.echo(f"To begin importing materials, run: git checkout {report.import_branch}")
    for warning in report.warnings:
        click.echo(f"Warning: {warning}", err=True)


@cli.command()
@click.argument("path", type=click.Path(dir_okay=False))
@click.option("--comment", default="", help="Key comment, usually your email.")
@_handle_errors
def keygen(path: str, comment: str) -> None:
    """Generate an Ed25519 signing key."""
    key = generate_signing_key(path, comment=comment)
    click.echo(f"Private key: {key.private_path}")
    click.echo(f"Public key:  {key.public_path}")
    click.echo(f"Fingerprint: {key.fingerprint()}")


@cli.command()
@click.argument("path", type=click.Path(dir_okay=False))
@_handle_errors
def fingerprint(path: str) -> None:
    """Print the SHA256 fingerprint of an SSH key."""
    click.echo(SigningKey.from_path(path).fingerprint())


@cli.command()
@click.option("--format", "output_format", type=click.Choice(["text", "json"]), default="text")
@click.pass_context
def config(ctx: click.Context, output_format: str) -> None:
    """Show current configuration."""
    cfg = _config(ctx)
    if output_format == "json":
        click.echo(json.dumps(cfg.raw, indent=2))
        return

    click.echo("Inception Configuration:")
    click.echo(f"  Default Branch:    {cfg.default_branch}")
    click.echo(f"  Visibility:        {cfg.visibility}")
    click.echo(f"  Log Level:         {cfg.log_level}")
    click.echo("\nSigning:")
    click.echo(f"  Key:               {cfg.signing.key or '(auto-detect)'}")
    click.echo(f"  Allowed Signers:   {cfg.signing.allowed_signers}")
    click.echo(f"  Scope:             {cfg.signing.scope}")
    click.echo("\nGitHub:")
    click.echo(f"  API URL:           {cfg.github.api_url}")
    click.echo(f"  Required Reviews:  {cfg.github.required_approving_review_count}")
    click.echo(f"  Enforce Admins:    {cfg.github.enforce_admins}")
    click.echo(f"  Require Signatures: {cfg.github.require_signatures}")
    click.echo("\nTemplates:")
    click.echo(f"  Import Branch:     {cfg.templates.import_branch}")


def main() -> None:
    """Console script entry point."""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        sys.exit(1)


if __name__ == "__main__":
    main()
