"""
Command-line interface for vc-attest.

Usage:
    vc-attest verify submission.jwt --definition definition.json --subject 0x...
    cat submission.jwt | vc-attest verify - --definition definition.json --subject 0x...
    vc-attest sign ethereum --subject 0x... --verification-id <uuid> --schema <uri>
    vc-attest definition --trusted-issuers '^did:web:issuer.example$'
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from vc_attest import __version__, ethereum, solana
from vc_attest.config import Config
from vc_attest.errors import VcAttestError, VerificationError
from vc_attest.presentation_definition import PresentationDefinition, build_presentation_definition
from vc_attest.signing import SignedVerificationResult
from vc_attest.verifier import Verifier, VerifyOutcome

console = Console()


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def read_source(source: str) -> str:
    """Read text from a file path, or stdin for "-"."""
    if source == "-":
        return sys.stdin.read()

    path = Path(source)
    if not path.exists():
        raise click.ClickException(f"File not found: {source}")
    return path.read_text()


def format_outcome(outcome: VerifyOutcome) -> None:
    """Print a successful verification."""
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="dim")
    table.add_column("Value")

    table.add_row("Status", "[bold green]VALID[/]")
    holder = outcome.presentation.get("holder")
    if holder:
        table.add_row("Holder", holder)
    table.add_row("Descriptors", ", ".join(i for i in outcome.descriptor_ids if i) or "-")

    for index, credential in enumerate(outcome.credentials):
        issuer = credential.get("issuer")
        issuer_id = issuer.get("id") if isinstance(issuer, dict) else issuer
        types = [t for t in credential.get("type", []) if t != "VerifiableCredential"]
        table.add_row(f"Credential {index}", f"{', '.join(types)} from {issuer_id}")

    console.print(Panel(table, title="Verification Result", border_style="green"))


def format_error(error: VcAttestError) -> None:
    console.print(Panel(
        f"[bold red]INVALID[/]\n\n{error.message}",
        title="Verification Result",
        border_style="red",
    ))


def format_signed(signed: SignedVerificationResult) -> None:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="dim")
    table.add_column("Value")
    for key, value in signed.verification_result.to_dict().items():
        table.add_row(key, ", ".join(value) if isinstance(value, list) else str(value))
    table.add_row("signature", signed.signature)
    if signed.signer:
        table.add_row("signer", signed.signer)
    console.print(Panel(table, title="Signed Verification Result", border_style="green"))


@click.group()
@click.option("--log-level", default=None, help="Logging level (defaults to LOG_LEVEL or INFO)")
@click.version_option(__version__)
@click.pass_context
def main(ctx: click.Context, log_level: str | None) -> None:
    """Verify credential submissions and sign verification results."""
    config = Config()
    configure_logging(log_level or config.log_level)
    ctx.obj = config


@main.command()
@click.argument("source", required=True)
@click.option(
    "--definition",
    "definition_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Presentation definition JSON file",
)
@click.option("--subject", required=True, help="Address the verification is for")
@click.option("--challenge", default=None, help="Challenge issued with the definition")
@click.option(
    "--no-ssl-verify",
    is_flag=True,
    help="Disable SSL certificate verification for DID resolution",
)
@click.option(
    "--json-output",
    is_flag=True,
    help="Output result as JSON",
)
@click.pass_obj
def verify(
    config: Config,
    source: str,
    definition_path: str,
    subject: str,
    challenge: str | None,
    no_ssl_verify: bool,
    json_output: bool,
) -> None:
    """Verify a JWT encoded Verifiable Presentation.

    SOURCE is a file holding the JWT, or "-" to read it from stdin.

    Exit codes: 0 valid, 1 invalid, 2 error.
    """
    try:
        submission = read_source(source).strip()
        definition = PresentationDefinition.from_dict(json.loads(Path(definition_path).read_text()))
    except click.ClickException as e:
        _fail(json_output, e.message)
    except (json.JSONDecodeError, KeyError) as e:
        _fail(json_output, f"Invalid presentation definition: {e}")

    verifier = Verifier.from_config(config, verify_ssl=not no_ssl_verify)
    try:
        outcome = verifier.verify(definition, submission, subject, challenge)
    except VerificationError as e:
        if json_output:
            console.print_json(data={"valid": False, "error": e.message})
        else:
            format_error(e)
        sys.exit(1)
    except VcAttestError as e:
        _fail(json_output, e.message)
    finally:
        verifier.close()

    if json_output:
        console.print_json(data={"valid": True, "presentation": outcome.presentation})
    else:
        format_outcome(outcome)
    sys.exit(0)


@main.command()
@click.argument("network", type=click.Choice(["ethereum", "solana"]))
@click.option("--subject", required=True, help="Address the result certifies")
@click.option("--verification-id", required=True, help="Verifier verification id")
@click.option("--schema", "schemas", multiple=True, required=True, help="Schema URI (repeatable)")
@click.option("--chain-id", type=int, default=None, help="EIP-155 chain id or Solana network id")
@click.option("--name", default=None, help="Domain name")
@click.option("--version", "domain_version", default=None, help="Domain version")
@click.option("--registry-address", default=None, help="Ethereum verifying contract")
@click.option("--expiration", type=int, default=None, help="Unix seconds (default: 7 days from now)")
@click.option("--private-key", default=None, help="Hex signing key (default: VERIFIER_PRIVATE_KEY)")
@click.option("--allow-default-key", is_flag=True, help="Allow the well-known development key")
@click.option("--json-output", is_flag=True, help="Output result as JSON")
@click.pass_obj
def sign(
    config: Config,
    network: str,
    subject: str,
    verification_id: str,
    schemas: tuple[str, ...],
    chain_id: int | None,
    name: str | None,
    domain_version: str | None,
    registry_address: str | None,
    expiration: int | None,
    private_key: str | None,
    allow_default_key: bool,
    json_output: bool,
) -> None:
    """Sign a verification result for NETWORK."""
    options: dict[str, Any] = {
        "subject": subject,
        "verifier_verification_id": verification_id,
        "schema": list(schemas),
        "chain_id": chain_id,
        "name": name,
        "version": domain_version,
        "expiration": expiration,
        "private_key": private_key or config.verifier_private_key,
        "allow_default_key": allow_default_key or config.allow_default_signing_key,
    }
    try:
        if network == "solana":
            signed = solana.sign(**options)
        else:
            signed = ethereum.sign(registry_address=registry_address, **options)
    except (VcAttestError, ValueError) as e:
        _fail(json_output, str(e))

    if json_output:
        console.print_json(data=signed.to_dict())
    else:
        format_signed(signed)


@main.command()
@click.option("--trusted-issuers", default=None, help="Regex the credential issuer must match")
@click.option("--id", "definition_id", default=None, help="Definition id (default: random UUID)")
@click.pass_obj
def definition(config: Config, trusted_issuers: str | None, definition_id: str | None) -> None:
    """Print a presentation definition to offer to holders."""
    built = build_presentation_definition(
        trusted_issuers=trusted_issuers or config.trusted_issuers,
        definition_id=definition_id,
    )
    click.echo(json.dumps(built.to_dict(), indent=2))


def _fail(json_output: bool, message: str) -> None:
    if json_output:
        console.print_json(data={"error": message})
    else:
        console.print(f"[red]Error:[/] {message}")
    sys.exit(2)


if __name__ == "__main__":
    main()
