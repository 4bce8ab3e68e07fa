"""CLI entry point for seneschal_sponsor."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import click

from seneschal_sponsor.commitment.validation import validate_form
from seneschal_sponsor.config import load_config
from seneschal_sponsor.errors import PreconditionError, ValidationError
from seneschal_sponsor.ipfs.client import KuboContentStore
from seneschal_sponsor.models.commitment import SponsorContent
from seneschal_sponsor.models.workflow import PRE_CHAIN_STATES, ProgressEvent
from seneschal_sponsor.service import run_sponsorship
from seneschal_sponsor.storage.sqlite import SQLiteStateStore

_STAGE_LABELS = {
    "building": "Building commitment",
    "awaiting_signature": "Pending signature",
    "submitting": "Pending transaction",
    "confirming": "Mining transaction",
    "publishing": "Uploading to IPFS",
    "persisting": "Storing hashes",
}


def _require_key(cfg):
    """Exit with error if no private key is configured."""
    if not cfg.private_key:
        click.echo("Error: No sponsor key configured.", err=True)
        click.echo("Set SENESCHAL_SPONSOR_PRIVATE_KEY env var or private_key in config.", err=True)
        sys.exit(1)


def _require_contract(cfg):
    """Exit with error if no contract address is configured."""
    if not cfg.contract_address:
        click.echo("Error: No Seneschal contract address configured.", err=True)
        click.echo("Set SENESCHAL_SPONSOR_CONTRACT_ADDRESS or check deployments.json.", err=True)
        sys.exit(1)


def _echo_progress(event: ProgressEvent) -> None:
    if event.outcome is not None:
        return
    label = _STAGE_LABELS.get(event.stage.value, event.stage.value)
    detail = f" ({event.detail[:24]})" if event.detail else ""
    click.echo(f"  [{event.status:>9}] {label}{detail}")


@click.group()
@click.option("-c", "--config", "config_path", default=None, help="Path to config TOML file")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """seneschal-sponsor - sponsor proposals as signed Seneschal commitments."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# ── Sponsor ────────────────────────────────────────────


@cli.command()
@click.option("--loot", required=True, help="Amount of loot to reward (1-99)")
@click.option("--recipient", required=True, help="Wallet address of the recipient")
@click.option("--expiration", required=True, help="Date after which the commitment cannot be claimed (YYYY-MM-DD)")
@click.option("--proposal-url", required=True, help="The full url of the proposal article")
@click.option("--image", "image_path", required=True, type=click.Path(dir_okay=False),
              help="Image to use in metadata (PNG)")
@click.option("--summary", default="", help="Short summary of the proposal")
@click.option("--summary-file", type=click.Path(exists=True, dir_okay=False), default=None,
              help="Read the summary from a file")
@click.option("--digest-tx", default="", help="Arweave transaction id of the proposal digest")
@click.option("--title", default="", help="Title for the metadata bundle")
@click.pass_context
def sponsor(
    ctx: click.Context,
    loot: str,
    recipient: str,
    expiration: str,
    proposal_url: str,
    image_path: str,
    summary: str,
    summary_file: str | None,
    digest_tx: str,
    title: str,
) -> None:
    """Sign, submit and record a sponsorship commitment."""
    cfg = load_config(ctx.obj["config_path"])
    _require_key(cfg)
    _require_contract(cfg)

    try:
        draft = validate_form({
            "loot": loot,
            "expirationDate": expiration,
            "recipientWallet": recipient,
            "proposalUrl": proposal_url,
        })
    except ValidationError as exc:
        click.echo("Invalid input:", err=True)
        for field, message in sorted(exc.errors.items()):
            click.echo(f"  {field}: {message}", err=True)
        sys.exit(2)

    image = Path(image_path)
    if not image.exists():
        click.echo("Missing Input: Proposal image is required.", err=True)
        sys.exit(2)
    if summary_file:
        summary = Path(summary_file).read_text(encoding="utf-8").strip()

    content = SponsorContent(
        image=image.read_bytes(),
        image_name=image.name,
        summary=summary,
        source_digest=digest_tx,
        title=title,
    )

    click.echo(f"Sponsoring {draft.loot} loot for {draft.recipient}")
    try:
        outcome = asyncio.run(run_sponsorship(cfg, draft, content, on_progress=_echo_progress))
    except PreconditionError as exc:
        click.echo(f"Missing Input: {exc}", err=True)
        sys.exit(2)

    if outcome.success:
        click.echo("Success: Proposal sponsored.")
        click.echo(f"  Proposal ID: {outcome.on_chain_id}")
        click.echo(f"  Metadata:    {outcome.content_ref.cid if outcome.content_ref else '?'}")
        if outcome.tx_hash:
            click.echo(f"  View Tx:     {cfg.explorer_url.rstrip('/')}/tx/{outcome.tx_hash}")
        if outcome.short_circuited:
            click.echo("  (already sponsored earlier, nothing was re-submitted)")
        return

    stage = outcome.failed_stage.value if outcome.failed_stage else "?"
    click.echo(f"Error: {stage} failed: {outcome.cause}", err=True)
    if outcome.failed_stage in PRE_CHAIN_STATES:
        click.echo("Nothing happened on-chain.", err=True)
    elif outcome.onchain_effect:
        click.echo(f"Transaction {outcome.tx_hash} exists; metadata is pending.", err=True)
    if outcome.recoverable:
        click.echo("Re-run the same command to resume.", err=True)
    sys.exit(1)


# ── Info ───────────────────────────────────────────────


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show sponsor configuration."""
    cfg = load_config(ctx.obj["config_path"])
    click.echo(f"Network:       {cfg.network} (chain {cfg.chain_id})")
    click.echo(f"RPC URL:       {cfg.rpc_url}")
    click.echo(f"Contract:      {cfg.contract_address or '(not set)'}")
    click.echo(f"Eligible hat:  {cfg.eligible_hat}")
    click.echo(f"Confirmations: {cfg.confirmations} (timeout {cfg.confirmation_timeout}s)")
    click.echo(f"Kubo RPC:      {cfg.kubo_rpc_url}")
    click.echo(f"DB path:       {cfg.db_path}")
    click.echo(f"Key:           {'***configured***' if cfg.private_key else '(not set)'}")


@cli.command()
@click.argument("on_chain_id")
@click.pass_context
def meta(ctx: click.Context, on_chain_id: str) -> None:
    """Show the metadata stored for a sponsored proposal id."""
    cfg = load_config(ctx.obj["config_path"])

    async def _meta():
        store = SQLiteStateStore(cfg.db_path)
        await store.initialize()
        try:
            record = await store.get_metadata(on_chain_id.lower())
        finally:
            await store.close()
        if record is None:
            return None, False
        pinned = await KuboContentStore(cfg.kubo_rpc_url).verify_pinned(record.cid)
        return record, pinned

    record, pinned = asyncio.run(_meta())
    if record is None:
        click.echo(f"No metadata stored for {on_chain_id}")
        sys.exit(1)
    click.echo(f"Proposal ID: {record.on_chain_id}")
    click.echo(f"Metadata:    {record.cid}")
    click.echo(f"Gateway:     {cfg.ipfs_gateway.rstrip('/')}/ipfs/{record.cid}")
    click.echo(f"Pinned:      {'yes' if pinned else 'no'}")
    click.echo(f"Stored at:   {record.created_at}")


@cli.command()
@click.option("--limit", type=int, default=20, help="Number of entries to show")
@click.pass_context
def activity(ctx: click.Context, limit: int) -> None:
    """Show the recent activity log."""
    cfg = load_config(ctx.obj["config_path"])

    async def _activity():
        store = SQLiteStateStore(cfg.db_path)
        await store.initialize()
        try:
            entries = await store.get_recent_activity(limit)
        finally:
            await store.close()
        if not entries:
            click.echo("No activity yet.")
            return
        for entry in entries:
            click.echo(f"{entry.created_at}  {entry.event_type:<18} {entry.message}")

    asyncio.run(_activity())


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
