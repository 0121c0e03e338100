from __future__ import annotations

import logging
from pathlib import Path
from typing import cast

import typer

from .config import Settings, load_settings
from .engine import validate_setup
from .errors import ValidationReport
from .sources import Source, read_source

VERSION = "0.1.0"

LOGGER = logging.getLogger("ca_setup")

app = typer.Typer(help="Validate an existing CA's certificate bundle, private key and CRL chain.")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"ca-setup {VERSION}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show the version and exit"
    ),
):
    """Check CA material before installing it as the active signing identity."""


def _configure_logging(verbose: int, settings: Settings) -> None:
    log_level = settings.logging_level
    if verbose >= 2:
        log_level = logging.DEBUG
    elif verbose == 1:
        log_level = min(log_level, logging.INFO)
    logging.basicConfig(level=log_level, format="%(levelname)s: %(message)s")


def render_report(report: ValidationReport) -> None:
    """Print warnings, then errors under an "Error:" heading, all on stderr."""
    for issue in report.warnings:
        typer.echo(f"Warning: {issue.message}", err=True)
    errors = report.errors
    if errors:
        typer.echo("Error:", err=True)
        for issue in errors:
            typer.echo(f"    {issue.message}", err=True)


@app.command("validate")
def validate(
    cert_bundle: str = typer.Option(..., "--cert-bundle", help="PEM file with the CA certificate first, then its issuers"),
    private_key: str = typer.Option(..., "--private-key", help="PEM file with the CA's private key"),
    crl_chain: str | None = typer.Option(None, "--crl-chain", help="PEM file with CRLs, the CA's own CRL first"),
    config: str | None = typer.Option(None, "--config", help="YAML settings file"),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="Increase log verbosity"),
):
    """Validate CA material and report every problem found.

    Exits 0 when no errors were found (warnings are allowed), 1 otherwise.
    """
    try:
        settings = load_settings(Path(config) if config else None)
    except ValueError as e:
        typer.echo(f"ERROR: {e}", err=True)
        raise typer.Exit(code=1)
    _configure_logging(verbose, settings)

    # read_source only returns NotProvided for a None path
    bundle_source = cast(Source, read_source(cert_bundle))
    key_source = cast(Source, read_source(private_key))
    crl_source = read_source(crl_chain)
    LOGGER.debug("Sources: bundle=%s key=%s crl=%s",
                 type(bundle_source).__name__, type(key_source).__name__, type(crl_source).__name__)

    report = validate_setup(bundle_source, key_source, crl_source, settings=settings)
    render_report(report)
    if not report.is_success:
        raise typer.Exit(code=1)
    typer.echo(f"[OK] {cert_bundle} and {private_key} are ready to install")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
