"""CLI entry point for aumai-binfetch."""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from pathlib import Path

import click
from pydantic import ValidationError

from aumai_binfetch.checksum import ChecksumVerifier
from aumai_binfetch.core import Installer
from aumai_binfetch.errors import InstallerError
from aumai_binfetch.models import (
    InstallRequest,
    PublicKeySource,
    ReleaseReference,
    VerificationPolicy,
)
from aumai_binfetch.platforms import detect_platform

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _configure_logging(verbose: bool, quiet: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _fail(exc: InstallerError) -> None:
    click.echo(f"Error [{exc.kind.value}]: {exc}", err=True)
    for cause in exc.cause_chain():
        click.echo(f"  caused by: {cause}", err=True)
    sys.exit(1)


def _split_names(raw: str) -> list[str]:
    return [name.strip() for name in raw.split(",") if name.strip()]


def _build_installer(
    os_name: str | None,
    arch: str | None,
    token: str | None,
    timeout: float,
) -> Installer:
    return Installer.default(
        profile=detect_platform(os_name, arch),
        token=token,
        timeout=timeout,
    )


def _platform_options(func: Callable[..., None]) -> Callable[..., None]:
    func = click.option(
        "--timeout",
        type=float,
        default=30.0,
        show_default=True,
        help="Network timeout in seconds.",
    )(func)
    func = click.option(
        "--github-token",
        envvar="GITHUB_TOKEN",
        default=None,
        help="API token (defaults to $GITHUB_TOKEN).",
    )(func)
    func = click.option(
        "--prerelease",
        is_flag=True,
        help="Let 'latest' resolve to a prerelease.",
    )(func)
    func = click.option("--arch", default=None, help="Override the CPU architecture.")(func)
    func = click.option("--os", "os_name", default=None, help="Override the OS family.")(func)
    func = click.option(
        "--filter",
        "pattern",
        default=None,
        metavar="REGEX",
        help="Regular expression selecting the asset by name.",
    )(func)
    func = click.option(
        "--version",
        "version",
        default="latest",
        show_default=True,
        help="Release tag to install.",
    )(func)
    return func


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


@click.group()
@click.version_option()
@click.option("-v", "--verbose", is_flag=True, help="Log debug output.")
@click.option("-q", "--quiet", is_flag=True, help="Only log warnings and errors.")
def main(verbose: bool, quiet: bool) -> None:
    """AumAI BinFetch — verified binary installs from GitHub releases."""
    _configure_logging(verbose, quiet)


@main.command("install")
@click.argument("repo")
@click.argument("binaries")
@_platform_options
@click.option(
    "--install-dir",
    envvar="AUMAI_BINFETCH_INSTALL_DIR",
    default="/usr/local/bin",
    show_default=True,
    metavar="DIR",
    help="Directory receiving the installed binaries.",
)
@click.option(
    "--verify-checksum",
    is_flag=True,
    help="Fail unless a checksum file verifies the asset.",
)
@click.option(
    "--checksum-text",
    default=None,
    metavar="sha256:HEX",
    help="Expected digest of the asset, instead of a checksum file.",
)
@click.option(
    "--gpg-key",
    default=None,
    metavar="KEY|PATH|URL",
    help="OpenPGP public key; enables detached-signature verification.",
)
def install_command(
    repo: str,
    binaries: str,
    version: str,
    pattern: str | None,
    os_name: str | None,
    arch: str | None,
    prerelease: bool,
    github_token: str | None,
    timeout: float,
    install_dir: str,
    verify_checksum: bool,
    checksum_text: str | None,
    gpg_key: str | None,
) -> None:
    """Install BINARIES (comma-separated) from a release of REPO (owner/name)."""
    if verify_checksum and checksum_text:
        raise click.UsageError(
            "--verify-checksum and --checksum-text are mutually exclusive"
        )

    try:
        request = InstallRequest(
            reference=ReleaseReference(repository=repo, version=version),
            binary_names=_split_names(binaries),
            destination=Path(install_dir),
            pattern=pattern,
            include_prereleases=prerelease,
            policy=VerificationPolicy(
                require_checksum=verify_checksum,
                require_signature=gpg_key is not None,
                public_key_source=PublicKeySource.parse(gpg_key) if gpg_key else None,
                expected_checksum=checksum_text,
            ),
        )
    except ValidationError as exc:
        raise click.UsageError(str(exc)) from exc

    installer = _build_installer(os_name, arch, github_token, timeout)
    try:
        result = installer.install(request)
    except InstallerError as exc:
        _fail(exc)
        return

    outcome = result.verification
    for path in result.installed:
        click.echo(f"Installed {path.name} -> {path}")
    click.echo(f"  Release  : {result.tag_name}")
    click.echo(f"  Asset    : {result.selection.asset.name} ({result.selection.method.value})")
    click.echo(
        f"  Checksum : {outcome.checksum.value}"
        + (f" ({outcome.checksum_source})" if outcome.checksum_source else "")
    )
    click.echo(
        f"  Signature: {outcome.signature.value}"
        + (f" (key {outcome.signer_key_id})" if outcome.signer_key_id else "")
    )


@main.command("select")
@click.argument("repo")
@_platform_options
@click.option("--json-output", is_flag=True, help="Emit the selection as JSON.")
def select_command(
    repo: str,
    version: str,
    pattern: str | None,
    os_name: str | None,
    arch: str | None,
    prerelease: bool,
    github_token: str | None,
    timeout: float,
    json_output: bool,
) -> None:
    """Show which asset of REPO would be installed on this platform."""
    try:
        reference = ReleaseReference(repository=repo, version=version)
    except ValidationError as exc:
        raise click.UsageError(str(exc)) from exc

    installer = _build_installer(os_name, arch, github_token, timeout)
    try:
        release = installer.release_client.fetch(reference, prerelease)
        selection = installer.selector.select(release.assets, pattern)
    except InstallerError as exc:
        _fail(exc)
        return

    if json_output:
        click.echo(selection.model_dump_json(indent=2))
        return
    click.echo(f"Release  : {release.tag_name}")
    click.echo(f"Asset    : {selection.asset.name}")
    click.echo(f"URL      : {selection.asset.download_url}")
    click.echo(f"Size     : {selection.asset.size:,} bytes")
    click.echo(f"Method   : {selection.method.value}")
    click.echo(f"Signature: {'available' if selection.has_signature else 'none'}")


@main.command("checksum")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def checksum_command(path: Path) -> None:
    """Print the SHA-256 digest of a local file in sha256sum format."""
    digest = ChecksumVerifier().compute_file(path)
    click.echo(f"{digest}  {path.name}")


if __name__ == "__main__":
    main()
