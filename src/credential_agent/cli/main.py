"""CLI entry point for credential-agent.

Invoked as::

    credential-agent [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m credential_agent.cli.main

Commands
--------
version   Show version information
issue     Issue a credential to a subject DID
verify    Verify a credential (compact JWT or JSON file)
resolve   Resolve a DID to its document

All commands except ``version`` read their configuration from the
environment; see :mod:`credential_agent.config`.
"""
from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import click
from rich.console import Console
from rich.table import Table

from credential_agent import __version__
from credential_agent.agent import Agent
from credential_agent.config import AgentConfig
from credential_agent.credentials.models import CredentialRequest, DeliveryState
from credential_agent.errors import CredentialAgentError

console = Console()

T = TypeVar("T")


def _build_agent(config: AgentConfig) -> Agent:
    return Agent.from_config(config)


def _run_with_agent(operation: Callable[[Agent], Awaitable[T]]) -> T:
    """Load config, build the agent, run *operation* and close the agent.

    Exits with status 1 on any credential-agent error.
    """

    async def _main() -> T:
        async with _build_agent(AgentConfig.from_env()) as agent:
            return await operation(agent)

    try:
        return asyncio.run(_main())
    except CredentialAgentError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)


def _parse_attributes(values: tuple[str, ...]) -> dict[str, Any]:
    """Parse repeated ``key=value`` options. Values that are valid JSON are decoded."""
    attributes: dict[str, Any] = {}
    for item in values:
        key, sep, raw = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"Expected key=value, got {item!r}", param_hint="--attr")
        try:
            attributes[key] = json.loads(raw)
        except json.JSONDecodeError:
            attributes[key] = raw
    return attributes


def _is_credential_file(path: Path) -> bool:
    if path.suffix == ".json":
        return True
    try:
        return path.is_file()
    except OSError:
        # compact JWTs are usually longer than NAME_MAX
        return False


# ------------------------------------------------------------------
# Root group
# ------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="credential-agent")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging level for diagnostic output on stderr.",
)
def cli(log_level: str) -> None:
    """Issue and verify W3C Verifiable Credentials bound to DIDs"""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    console.print(f"[bold]credential-agent[/bold] v{__version__}")


# ------------------------------------------------------------------
# issue
# ------------------------------------------------------------------


@cli.command(name="issue")
@click.option("--subject", "-s", required=True, help="Subject DID (did:vda:... for inbox delivery).")
@click.option("--attr", "-a", "attrs", multiple=True, help="Subject attribute key=value (repeatable).")
@click.option("--context", "contexts", multiple=True, help="Extra JSON-LD context URI (repeatable).")
@click.option("--type", "types", multiple=True, help="Extra credential type (repeatable).")
@click.option("--schema", default=None, help="credentialSchema URI.")
@click.option("--expires", default=None, help="expirationDate as ISO-8601.")
@click.option("--name", default=None, help="Credential name shown in the recipient inbox.")
@click.option("--summary", default=None, help="Credential summary shown in the recipient inbox.")
def issue_command(
    subject: str,
    attrs: tuple[str, ...],
    contexts: tuple[str, ...],
    types: tuple[str, ...],
    schema: str | None,
    expires: str | None,
    name: str | None,
    summary: str | None,
) -> None:
    """Issue a credential and print it as JSON."""
    request = CredentialRequest(
        subject_did=subject,
        attributes=_parse_attributes(attrs),
        context=list(contexts),
        type=list(types),
        credential_schema=schema,
        expiration_date=expires,
        credential_name=name,
        credential_summary=summary,
    )
    result = _run_with_agent(lambda agent: agent.issue_credential(request))

    console.print_json(json.dumps(result.credential.to_dict()))
    delivery = result.delivery
    if delivery.state is DeliveryState.DELIVERED:
        console.print(f"[green]Delivered[/green] to {subject}")
    elif delivery.state is DeliveryState.FAILED:
        console.print(f"[yellow]Delivery failed:[/yellow] {delivery.reason}")
    else:
        console.print(f"[dim]Delivery skipped: {delivery.reason}[/dim]")


# ------------------------------------------------------------------
# verify
# ------------------------------------------------------------------


@cli.command(name="verify")
@click.argument("credential")
def verify_command(credential: str) -> None:
    """Verify CREDENTIAL, a compact JWT or the path to a credential JSON file."""
    subject: str | dict[str, Any] = credential
    path = Path(credential)
    if _is_credential_file(path):
        try:
            subject = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            console.print(f"[red]Error:[/red] Could not read credential file: {exc}")
            sys.exit(1)

    result = _run_with_agent(lambda agent: agent.verify_credential(subject))

    table = Table(title="Credential verification", show_header=True)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Verified", "[green]yes[/green]" if result.verified else "[red]no[/red]")
    table.add_row("Issuer", result.issuer or "-")
    if result.error is not None:
        table.add_row("Error", f"{result.error.code.value}: {result.error.message}")
    console.print(table)
    if not result.verified:
        sys.exit(2)


# ------------------------------------------------------------------
# resolve
# ------------------------------------------------------------------


@cli.command(name="resolve")
@click.argument("did")
def resolve_command(did: str) -> None:
    """Resolve DID and print its document."""
    document = _run_with_agent(lambda agent: agent.resolve_did(did))
    console.print_json(document.to_json())


if __name__ == "__main__":
    cli()
