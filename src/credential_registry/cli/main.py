"""CLI entry point for credential-registry.

Invoked as::

    credential-registry [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m credential_registry.cli.main

Commands
--------
keygen        Generate an Ed25519 key and print its identity
init          Create a registry state file owned by an authority key
create-type   Define a new credential type
issue         Issue a credential to a holder
revoke        Revoke a holder's credential
sign-call     Sign an issue/revoke call for later submission
submit        Verify and apply a signed call
verify        Check whether a holder holds a credential
show          Show one credential type
list-types    List all credential types
count         Print the number of credential types
audit         Print audit log events
"""
from __future__ import annotations

import json
import logging
import sys
import time
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from credential_registry.config import load_settings

console = Console()


# ------------------------------------------------------------------
# Root group
# ------------------------------------------------------------------


@click.group()
@click.version_option(package_name="credential-registry")
@click.option(
    "--state-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Registry state file (default: $CREDENTIAL_REGISTRY_STATE or credential-registry.json).",
)
@click.option(
    "--audit-log",
    type=click.Path(dir_okay=False),
    default=None,
    help="JSONL audit log (default: $CREDENTIAL_REGISTRY_AUDIT_LOG).",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Logging level (default: $CREDENTIAL_REGISTRY_LOG_LEVEL or warning).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    state_file: str | None,
    audit_log: str | None,
    log_level: str | None,
) -> None:
    """Issue, revoke and verify non-transferable credentials."""
    try:
        settings = load_settings()
    except ValueError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)

    level = log_level.upper() if log_level else settings.logging_level
    logging.basicConfig(level=getattr(logging, level))

    ctx.obj = {
        "state_file": Path(state_file) if state_file else settings.state_file,
        "audit_log": Path(audit_log) if audit_log else settings.audit_log,
    }


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from credential_registry import __version__

    console.print(f"[bold]credential-registry[/bold] v{__version__}")


# ------------------------------------------------------------------
# Keys and initialisation
# ------------------------------------------------------------------


@cli.command(name="keygen")
@click.argument("key_file", type=click.Path(dir_okay=False))
@click.option("--force", is_flag=True, default=False, help="Overwrite an existing key file.")
def keygen_command(key_file: str, force: bool) -> None:
    """Generate an Ed25519 key in KEY_FILE and print its identity."""
    from credential_registry.signing import AuthorityKey

    path = Path(key_file)
    if path.exists() and not force:
        console.print(f"[red]Error:[/red] {key_file} already exists (use --force to overwrite).")
        sys.exit(1)

    key = AuthorityKey.generate()
    key.save(path)
    console.print(f"[green]Key written to[/green] {key_file}")
    console.print(f"  Identity: {key.identity}")


@cli.command(name="init")
@click.option(
    "--authority-key",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Key file of the registry authority.",
)
@click.option(
    "--authority",
    default=None,
    help="Authority identity, when no key file is at hand.",
)
@click.pass_obj
def init_command(obj: dict[str, object], authority_key: str | None, authority: str | None) -> None:
    """Create an empty registry state file owned by the authority."""
    from credential_registry.registry import FilesystemRegistryStore

    if (authority_key is None) == (authority is None):
        console.print("[red]Error:[/red] pass exactly one of --authority-key or --authority.")
        sys.exit(1)

    identity = authority if authority is not None else _load_key(authority_key).identity
    state_file: Path = obj["state_file"]  # type: ignore[assignment]
    if state_file.exists():
        console.print(f"[red]Error:[/red] {state_file} already exists.")
        sys.exit(1)

    store = FilesystemRegistryStore(state_file, authority=identity)
    store.save_state(store.load_state())
    console.print(f"[green]Initialised[/green] registry at {state_file}")
    console.print(f"  Authority: {identity}")
    console.print(f"  Registry:  {store.load_state().registry_id}")


# ------------------------------------------------------------------
# Mutations
# ------------------------------------------------------------------


_key_file_option = click.option(
    "--key-file",
    "-k",
    type=click.Path(exists=True, dir_okay=False),
    required=True,
    help="Key file of the calling identity.",
)


@cli.command(name="create-type")
@click.argument("name")
@click.option("--description", "-d", default="", help="What holding the credential means.")
@click.option("--metadata-uri", "-u", default=None, help="Pointer to off-chain metadata.")
@click.option(
    "--revocable/--permanent",
    default=True,
    show_default=True,
    help="Whether issued credentials of this type can be revoked.",
)
@_key_file_option
@click.pass_obj
def create_type_command(
    obj: dict[str, object],
    name: str,
    description: str,
    metadata_uri: str | None,
    revocable: bool,
    key_file: str,
) -> None:
    """Define a new credential type called NAME."""
    from pydantic import ValidationError

    from credential_registry.registry.schema import CreateCredentialTypeRequest

    try:
        request = CreateCredentialTypeRequest(
            name=name, description=description, metadata_uri=metadata_uri, revocable=revocable
        )
    except ValidationError as exc:
        console.print(f"[red]Invalid input:[/red] {exc}")
        sys.exit(1)

    registry = _open_registry(obj)
    result = registry.create_credential_type(
        _call_context(registry, key_file),
        name=request.name,
        description=request.description,
        metadata_uri=request.metadata_uri,
        revocable=request.revocable,
    )
    _exit_on_failure(result)
    console.print(f"[green]Created[/green] credential type [bold]{result.value}[/bold] ({name})")


@cli.command(name="issue")
@click.argument("credential_type_id", type=click.IntRange(min=0))
@click.argument("holder")
@_key_file_option
@click.pass_obj
def issue_command(
    obj: dict[str, object], credential_type_id: int, holder: str, key_file: str
) -> None:
    """Issue credential CREDENTIAL_TYPE_ID to HOLDER."""
    target = _target_request(credential_type_id, holder)
    registry = _open_registry(obj)
    result = registry.issue_credential(
        _call_context(registry, key_file), target.credential_type_id, target.holder
    )
    _exit_on_failure(result)
    console.print(f"[green]Issued[/green] credential {credential_type_id} to [bold]{holder}[/bold]")


@cli.command(name="revoke")
@click.argument("credential_type_id", type=click.IntRange(min=0))
@click.argument("holder")
@_key_file_option
@click.pass_obj
def revoke_command(
    obj: dict[str, object], credential_type_id: int, holder: str, key_file: str
) -> None:
    """Revoke credential CREDENTIAL_TYPE_ID held by HOLDER."""
    target = _target_request(credential_type_id, holder)
    registry = _open_registry(obj)
    result = registry.revoke_credential(
        _call_context(registry, key_file), target.credential_type_id, target.holder
    )
    _exit_on_failure(result)
    console.print(f"[red]Revoked[/red] credential {credential_type_id} from [bold]{holder}[/bold]")


# ------------------------------------------------------------------
# Signed calls
# ------------------------------------------------------------------


@cli.command(name="sign-call")
@click.argument("operation", type=click.Choice(["issue", "revoke"]))
@click.argument("credential_type_id", type=click.IntRange(min=0))
@click.argument("holder")
@_key_file_option
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write the signed call JSON to this file instead of stdout.",
)
@click.pass_obj
def sign_call_command(
    obj: dict[str, object],
    operation: str,
    credential_type_id: int,
    holder: str,
    key_file: str,
    output: str | None,
) -> None:
    """Sign an OPERATION call for CREDENTIAL_TYPE_ID and HOLDER.

    The call is bound to the registry in the state file and to its current
    sequence, so it can be submitted once, before any other call commits.
    """
    from credential_registry.signing import ISSUE_CREDENTIAL, REVOKE_CREDENTIAL

    target = _target_request(credential_type_id, holder)
    registry = _open_registry(obj)
    name = ISSUE_CREDENTIAL if operation == "issue" else REVOKE_CREDENTIAL
    call = _load_key(key_file).sign_call(
        name,
        registry.registry_id,
        registry.sequence,
        credential_type_id=target.credential_type_id,
        holder=target.holder,
    )
    call_json = json.dumps(call.to_dict(), indent=2)

    if output:
        Path(output).write_text(call_json, encoding="utf-8")
        console.print(f"[green]Signed call written to[/green] {output}")
    else:
        click.echo(call_json)


@cli.command(name="submit")
@click.argument("call_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def submit_command(obj: dict[str, object], call_file: str) -> None:
    """Verify the signed call in CALL_FILE and apply it."""
    from credential_registry.signing import (
        SignatureVerificationError,
        SignedCall,
        apply_signed_call,
    )

    try:
        data = json.loads(Path(call_file).read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise SignatureVerificationError("Signed call must be a JSON object.")
        call = SignedCall.from_dict(data)
        registry = _open_registry(obj)
        result = apply_signed_call(
            registry,
            call,
            block_height=registry.sequence + 1,
            block_time=int(time.time()),
        )
    except json.JSONDecodeError as exc:
        console.print(f"[red]Error:[/red] {call_file} is not valid JSON: {exc}")
        sys.exit(1)
    except SignatureVerificationError as exc:
        console.print(f"[red]Rejected:[/red] {exc}")
        sys.exit(1)

    _exit_on_failure(result)
    console.print(f"[green]Applied[/green] {call.operation} signed by {call.signer}")


# ------------------------------------------------------------------
# Queries
# ------------------------------------------------------------------


@cli.command(name="verify")
@click.argument("holder")
@click.argument("credential_type_id", type=click.IntRange(min=0))
@click.pass_obj
def verify_command(obj: dict[str, object], holder: str, credential_type_id: int) -> None:
    """Check whether HOLDER holds credential CREDENTIAL_TYPE_ID.

    Exits with status 0 if the credential is held, 1 otherwise.
    """
    registry = _open_registry(obj)
    record = registry.get_issuance(holder, credential_type_id)

    if record is not None and registry.has_credential(holder, credential_type_id):
        console.print(f"  [green]VALID[/green]    {holder} holds credential {credential_type_id}")
        console.print(f"  Issued at height {record.issue_height}, time {record.issue_time}")
        return

    if record is None:
        console.print(f"  [red]MISSING[/red]  credential {credential_type_id} was never issued to {holder}")
    else:
        console.print(f"  [red]REVOKED[/red]  credential {credential_type_id} held by {holder} was revoked")
    sys.exit(1)


@cli.command(name="show")
@click.argument("credential_type_id", type=click.IntRange(min=0))
@click.pass_obj
def show_command(obj: dict[str, object], credential_type_id: int) -> None:
    """Show credential type CREDENTIAL_TYPE_ID."""
    registry = _open_registry(obj)
    credential_type = registry.get_credential_by_id(credential_type_id)
    if credential_type is None:
        console.print(f"[red]Error:[/red] credential type {credential_type_id} does not exist.")
        sys.exit(1)

    console.print(f"[bold]{credential_type.name}[/bold] (id {credential_type.id})")
    console.print(f"  Description:  {credential_type.description or '(none)'}")
    console.print(f"  Issuer:       {credential_type.issuer}")
    console.print(f"  Metadata URI: {credential_type.metadata_uri or '(none)'}")
    console.print(f"  Revocable:    {'yes' if credential_type.revocable else 'no'}")


@cli.command(name="list-types")
@click.pass_obj
def list_types_command(obj: dict[str, object]) -> None:
    """List all credential types."""
    registry = _open_registry(obj)
    types = registry.list_credential_types()

    if not types:
        console.print("[yellow]No credential types defined.[/yellow]")
        return

    table = Table(title="Credential Types", show_header=True)
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Name")
    table.add_column("Revocable", justify="center")
    table.add_column("Metadata URI")

    for credential_type in types:
        revocable_str = "[green]Yes[/green]" if credential_type.revocable else "[red]No[/red]"
        table.add_row(
            str(credential_type.id),
            credential_type.name,
            revocable_str,
            credential_type.metadata_uri or "",
        )

    console.print(table)
    console.print(f"\nTotal: {len(types)} credential type(s)")


@cli.command(name="count")
@click.pass_obj
def count_command(obj: dict[str, object]) -> None:
    """Print the number of credential types ever created."""
    registry = _open_registry(obj)
    click.echo(str(registry.get_credential_count()))


@cli.command(name="audit")
@click.option("--tail", type=click.IntRange(min=1), default=None, help="Show only the last N events.")
@click.pass_obj
def audit_command(obj: dict[str, object], tail: int | None) -> None:
    """Print events from the audit log."""
    from credential_registry.audit import RegistryAuditLogger

    audit_log: Path | None = obj["audit_log"]  # type: ignore[assignment]
    if audit_log is None:
        console.print("[red]Error:[/red] no audit log configured (use --audit-log).")
        sys.exit(1)

    events = RegistryAuditLogger(audit_log).read_log(tail=tail)
    if not events:
        console.print("[yellow]No audit events recorded.[/yellow]")
        return

    table = Table(title="Audit Events", show_header=True)
    table.add_column("Timestamp")
    table.add_column("Event", style="cyan")
    table.add_column("Type", justify="right")
    table.add_column("Holder")
    table.add_column("Caller")

    for event in events:
        type_id = event.get("credential_type_id")
        table.add_row(
            str(event.get("timestamp", "")),
            str(event.get("event_type", "")),
            "" if type_id is None else str(type_id),
            str(event.get("holder") or ""),
            str(event.get("caller", "")),
        )
    console.print(table)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _load_key(key_file: str | None):  # type: ignore[no-untyped-def]
    """Load an AuthorityKey, exiting with an error message on failure."""
    from credential_registry.signing import AuthorityKey

    try:
        return AuthorityKey.load(Path(str(key_file)))
    except (OSError, ValueError, TypeError) as exc:
        console.print(f"[red]Error:[/red] could not load key file {key_file}: {exc}")
        sys.exit(1)


def _target_request(credential_type_id: int, holder: str):  # type: ignore[no-untyped-def]
    """Validate a credential type id and holder, exiting on invalid input."""
    from pydantic import ValidationError

    from credential_registry.registry.schema import CredentialTargetRequest

    try:
        return CredentialTargetRequest(credential_type_id=credential_type_id, holder=holder)
    except ValidationError as exc:
        console.print(f"[red]Invalid input:[/red] {exc}")
        sys.exit(1)


def _open_registry(obj: dict[str, object]):  # type: ignore[no-untyped-def]
    """Open the file-backed registry named by the global options."""
    from credential_registry.audit import RegistryAuditLogger
    from credential_registry.registry import (
        CredentialRegistry,
        FilesystemRegistryStore,
        RegistryStoreError,
    )

    state_file: Path = obj["state_file"]  # type: ignore[assignment]
    audit_log: Path | None = obj["audit_log"]  # type: ignore[assignment]
    try:
        store = FilesystemRegistryStore(state_file)
    except RegistryStoreError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)

    audit_logger = RegistryAuditLogger(audit_log) if audit_log is not None else None
    return CredentialRegistry(store=store, audit_logger=audit_logger)


def _call_context(registry, key_file: str):  # type: ignore[no-untyped-def]
    """Build a call context for the key's identity with host provenance."""
    return _load_key(key_file).context(
        block_height=registry.sequence + 1,
        block_time=int(time.time()),
    )


def _exit_on_failure(result) -> None:  # type: ignore[no-untyped-def]
    """Print a failed call result and exit with status 1."""
    if result.ok:
        return
    console.print(f"[red]Error {result.code}[/red] {result.error.name}: {result.reason}")
    sys.exit(1)


if __name__ == "__main__":
    cli()
