"""CLI entry point for the stakecal service."""

from __future__ import annotations

import asyncio
import csv
import json
import logging
import sys
from pathlib import Path

import click

from stakecal.config import load_config
from stakecal.errors import StakeCalError
from stakecal.models.config import AppConfig
from stakecal.models.records import Contact, canonical_wallet
from stakecal.service import StakeCalService


def _run(cfg: AppConfig, operation):
    """Run ``operation(service)`` against a started service, then close it."""

    async def _go():
        service = StakeCalService.from_config(cfg)
        await service.start()
        try:
            return await operation(service)
        finally:
            await service.close()

    try:
        return asyncio.run(_go())
    except StakeCalError as exc:
        click.echo(f"Error: {exc.message}", err=True)
        sys.exit(1)


def _read_contacts(path: Path, account_id: str) -> list[Contact]:
    """Contacts from a CSV (``email,name`` header) or a JSON list of objects."""
    if path.suffix.lower() == ".csv":
        with open(path, newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
    else:
        with open(path, encoding="utf-8") as f:
            rows = json.load(f)
    return [
        Contact(account_id=account_id, email=row["email"], name=row.get("name") or None)
        for row in rows
        if row.get("email")
    ]


@click.group()
@click.option("-c", "--config", "config_path", default=None, help="Path to config TOML file")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """stakecal - Meeting staking with attendance-based refunds."""
    try:
        cfg = load_config(config_path)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--config") from exc
    ctx.ensure_object(dict)
    ctx.obj["cfg"] = cfg

    level = logging.DEBUG if verbose else getattr(logging, cfg.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# ── Server ─────────────────────────────────────────────


@cli.command()
@click.option("--host", default=None, help="Bind address (default from config)")
@click.option("--port", type=int, default=None, help="Bind port (default from config)")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Start the HTTP API."""
    import uvicorn

    from stakecal.api.app import create_app

    cfg: AppConfig = ctx.obj["cfg"]
    service = StakeCalService.from_config(cfg)
    click.echo(f"Starting stakecal API on {host or cfg.host}:{port or cfg.port}")
    uvicorn.run(
        create_app(service),
        host=host or cfg.host,
        port=port or cfg.port,
        log_level=cfg.log_level.lower(),
    )


@cli.command("config")
@click.pass_context
def show_config(ctx: click.Context) -> None:
    """Show the effective configuration."""
    cfg: AppConfig = ctx.obj["cfg"]
    click.echo(f"Network:        {cfg.network}")
    click.echo(f"RPC URL:        {cfg.rpc_url}")
    click.echo(f"Contract:       {cfg.contract_id or '(not set)'}")
    click.echo(f"DB path:        {cfg.db_path}")
    click.echo(f"Base URL:       {cfg.base_url}")
    click.echo(f"Default stake:  {cfg.default_stake}")
    click.echo(f"Invite TTL:     {cfg.invitation_ttl_days} days")
    click.echo(f"Token dir:      {cfg.token_dir}")
    click.echo(f"API:            {cfg.host}:{cfg.port}")


# ── Meetings ───────────────────────────────────────────


@cli.command()
@click.argument("meeting_id")
@click.option("--wallet", default=None, help="Include this wallet's stake")
@click.pass_context
def status(ctx: click.Context, meeting_id: str, wallet: str | None) -> None:
    """Show the staking status of a meeting."""
    snap = _run(ctx.obj["cfg"], lambda s: s.status(meeting_id, wallet))
    click.echo(f"Meeting:        {snap.meeting_id}")
    click.echo(f"Status:         {snap.status}")
    click.echo(f"Organizer:      {snap.organizer}")
    click.echo(f"Stake:          {snap.required_stake}")
    click.echo(f"Starts:         {snap.start_time}")
    click.echo(f"Ends:           {snap.end_time}")
    click.echo(f"Check-in until: {snap.check_in_deadline}")
    click.echo(f"Calendar event: {snap.event_id or '(not scheduled)'}")
    click.echo(f"Code issued:    {snap.has_attendance_code}")
    click.echo("")
    click.echo("Stakes")
    click.echo(f"  Total staked:   {snap.stats.total_staked}")
    click.echo(f"  Stakers:        {snap.stats.total_stakers}")
    click.echo(f"  Attended:       {snap.stats.total_attended}")
    click.echo(f"  Absent:         {snap.stats.total_absent}")
    for p in snap.participants:
        state = "refunded" if p.is_refunded else "checked in" if p.has_checked_in else "staked"
        click.echo(f"    {p.wallet_address}  {state}")
    if snap.user_stake:
        click.echo("")
        click.echo(f"Your stake:     {snap.user_stake.amount} (checked in: {snap.user_stake.has_checked_in})")


@cli.command()
@click.option("-n", "--limit", type=int, default=20, help="Number of entries to show")
@click.pass_context
def activity(ctx: click.Context, limit: int) -> None:
    """Show the recent activity log."""
    entries = _run(ctx.obj["cfg"], lambda s: s.data_api.get_activity(limit))
    if not entries:
        click.echo("No activity recorded.")
        return
    for e in entries:
        click.echo(f"  {e.created_at} [{e.event_type}] {e.message}")


@cli.command()
@click.argument("meeting_id")
@click.option("--organizer", default=None, help="Organizer wallet (checked against the meeting)")
@click.pass_context
def code(ctx: click.Context, meeting_id: str, organizer: str | None) -> None:
    """Generate a new attendance code for a meeting."""
    attendance_code = _run(ctx.obj["cfg"], lambda s: s.generate_code(meeting_id, organizer))
    click.echo(f"Attendance code for {meeting_id}: {attendance_code}")


@cli.command()
@click.argument("meeting_id")
@click.option("--force", is_flag=True, help="Settle before the check-in window closes")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def settle(ctx: click.Context, meeting_id: str, force: bool, yes: bool) -> None:
    """Settle a meeting: refund attendees, forfeit no-shows."""
    if force and not yes:
        click.confirm("Force-settle before the check-in window closes?", abort=True)
    result = _run(ctx.obj["cfg"], lambda s: s.settle(meeting_id, force))
    if result.already_settled:
        click.echo(f"Meeting {meeting_id} was already settled.")
    click.echo(f"Refunded:   {result.refunded} ({len(result.refunded_wallets)} wallets)")
    click.echo(f"Forfeited:  {result.forfeited} ({len(result.forfeited_wallets)} wallets)")


@cli.command()
@click.argument("meeting_id")
@click.option("--wallet", default=None, help="Also check this wallet's stake")
@click.pass_context
def reconcile(ctx: click.Context, meeting_id: str, wallet: str | None) -> None:
    """Compare the local store with the on-chain stake contract."""
    report = _run(ctx.obj["cfg"], lambda s: s.reconcile(meeting_id, wallet))
    on_chain = "unknown" if report.on_chain is None else report.on_chain
    click.echo(f"Meeting:      {report.meeting_id}")
    click.echo(f"In store:     {report.in_store} ({report.pending_status or 'no draft'})")
    click.echo(f"On chain:     {on_chain}")
    click.echo(f"Stakers:      store={len(report.store_stakers)} chain={len(report.chain_stakers)}")
    if report.wallet_has_staked is not None:
        click.echo(f"Wallet:       {report.wallet_has_staked}")
    click.echo(f"Consistent:   {report.consistent}")
    for issue in report.issues:
        click.echo(f"  - {issue}")
    if not report.consistent:
        sys.exit(2)


# ── Contacts ───────────────────────────────────────────


@cli.command()
@click.argument("account_id")
@click.argument("tokens", nargs=-1, required=True)
@click.pass_context
def resolve(ctx: click.Context, account_id: str, tokens: tuple[str, ...]) -> None:
    """Resolve attendee names to email addresses."""
    result = _run(ctx.obj["cfg"], lambda s: s.resolve_attendees(list(tokens), account_id))
    for line in result.details:
        click.echo(f"  {line}")
    for group in result.ambiguous:
        click.echo(f"\n  Candidates for \"{group.search_query}\":")
        for m in group.matches:
            click.echo(f"    {m.confidence:.2f}  {m.name or '(no name)'} <{m.email}>")


@cli.group()
def contacts():
    """Manage address books used for attendee resolution."""
    pass


@contacts.command("import")
@click.argument("account_id")
@click.option("--file", "file_path", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              default=None, help="CSV or JSON file; fetches from Google when omitted")
@click.option("--replace", is_flag=True, help="Remove existing contacts first")
@click.pass_context
def contacts_import(
    ctx: click.Context, account_id: str, file_path: Path | None, replace: bool
) -> None:
    """Import contacts for an account."""
    entries = _read_contacts(file_path, account_id) if file_path else None
    count = _run(ctx.obj["cfg"], lambda s: s.import_contacts(account_id, entries, replace))
    click.echo(f"Imported {count} contacts for {account_id}")


@contacts.command("list")
@click.argument("account_id")
@click.pass_context
def contacts_list(ctx: click.Context, account_id: str) -> None:
    """List stored contacts for an account."""
    entries = _run(ctx.obj["cfg"], lambda s: s.store.get_contacts(canonical_wallet(account_id)))
    if not entries:
        click.echo("No contacts.")
        return
    for c in entries:
        click.echo(f"  {c.name or '(no name)':30s} {c.email}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
