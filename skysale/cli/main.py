"""
Skysale CLI - Command Line Interface for the sale scheduling engine

Main entry point for all CLI commands.
"""

import json
import logging
from decimal import Decimal, InvalidOperation
from pathlib import Path

import click

from skysale.core.config import load_config
from skysale.core.errors import SkysaleError
from skysale.utils.logger import get_logger, setup_logging

logger = get_logger("cli")


def parse_amount(value: str) -> int:
    """
    Parse a dollar amount ("525", "525.00", "$1,250.50") into cents.

    Raises:
        click.BadParameter: if the value is not a positive amount
    """
    cleaned = value.strip().lstrip("$").replace(",", "")
    try:
        dollars = Decimal(cleaned)
    except InvalidOperation:
        raise click.BadParameter(f"Not an amount: {value}")
    if dollars <= 0 or dollars != dollars.quantize(Decimal("0.01")):
        raise click.BadParameter(f"Amount must be positive with at most 2 decimals: {value}")
    return int(dollars * 100)


def _engine(ctx):
    """Build the engine on first use so `--help` never touches the database."""
    if "engine" not in ctx.obj:
        from skysale.core.engine import SaleEngine
        from skysale.core.storage import CatalogStore

        config = ctx.obj["config"]
        config.db_path.parent.mkdir(parents=True, exist_ok=True)
        store = CatalogStore(config.db_path)
        ctx.obj["engine"] = SaleEngine(store, config=config)
        ctx.call_on_close(store.close)
    return ctx.obj["engine"]


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--db", "db_path", default=None, help="SQLite database path")
@click.option("--config", "config_path", default=None, help="JSON file of config overrides")
@click.option("--log-file", is_flag=True, help="Also log to <log_dir>/skysale.log")
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx, debug, db_path, config_path, log_file):
    """Skysale - phased sale and weekly auction scheduler"""
    ctx.ensure_object(dict)
    try:
        config = load_config(config_path)
    except SkysaleError as e:
        raise click.ClickException(str(e))
    if db_path:
        config.db_path = Path(db_path).expanduser()

    setup_logging(
        level=logging.DEBUG if debug else logging.INFO,
        log_dir=config.log_dir,
        log_to_file=log_file,
    )
    ctx.obj["config"] = config


# =============================================================================
# Setup
# =============================================================================


@cli.command("init")
@click.option("--phases", default=6, type=int, help="Number of fixed-price phases")
@click.option("--phase-days", default=14, type=int, help="Length of each phase in days")
@click.option("--seed", "seed_file", default=None, type=click.Path(exists=True), help="JSON list of items")
@click.option("--reserve-schedule", is_flag=True, help="Reserve every scheduled auction item")
@click.pass_context
def init(ctx, phases, phase_days, seed_file, reserve_schedule):
    """Create the schema, seed tiers and optionally the catalog"""
    from datetime import timedelta

    from skysale.core.models import ItemStatus
    from skysale.core.tiers import create_tiers

    engine = _engine(ctx)
    store = engine.store

    if store.list_tiers():
        click.echo(f"Tiers already configured ({len(store.list_tiers())} phases)")
    else:
        tiers = create_tiers(
            store,
            phases,
            duration=timedelta(days=phase_days),
            increase_percent=engine.tiers.increase_percent,
        )
        click.echo(f"✓ Created {len(tiers)} tiers ({phase_days} days each)")

    added = 0
    if seed_file:
        for entry in json.loads(Path(seed_file).read_text()):
            status = ItemStatus(entry.get("status", ItemStatus.AVAILABLE.value))
            store.add_item(entry["name"], int(entry["score"]), status=status)
            added += 1

    if reserve_schedule:
        for entry in engine.deployer.schedule:
            if store.find_item_by_name(entry.item_name) is None:
                store.add_item(entry.item_name, 0, status=ItemStatus.AUCTION_RESERVED)
                added += 1

    if added:
        logger.info(f"Seeded {added} catalog items into {engine.config.db_path}")
        click.echo(f"✓ Added {added} items")
    click.echo(f"  Database: {engine.config.db_path}")


# =============================================================================
# Scheduler
# =============================================================================


@cli.command("tick")
@click.pass_context
def tick(ctx):
    """Run every scheduled job once"""
    engine = _engine(ctx)
    ticker = engine.build_ticker()
    try:
        report = ticker.run_once()
    finally:
        engine.store.release_lease(engine.config.lease_name, ticker.holder_id)

    if report.skipped:
        click.echo("Tick skipped: another scheduler holds the lease")
        return
    for name in report.ran:
        click.echo(f"  ✓ {name}")
    for name, error in report.failed.items():
        click.echo(f"  ❌ {name}: {error}")
    if report.aborted:
        click.echo("  ⚠️  Lease lost, remaining jobs deferred")


@cli.command("run")
@click.option("--max-ticks", default=None, type=int, help="Stop after this many ticks")
@click.pass_context
def run(ctx, max_ticks):
    """Run the scheduler until interrupted"""
    ticker = _engine(ctx).build_ticker()
    click.echo(f"Scheduler {ticker.holder_id} running. Press Ctrl+C to stop.")
    try:
        ticker.run_forever(max_ticks=max_ticks)
    except KeyboardInterrupt:
        ticker.stop()
        click.echo("\nScheduler stopped.")


# =============================================================================
# Auction Commands
# =============================================================================


@cli.command("create-auction")
@click.argument("item_id", type=int)
@click.option("--starting-bid", required=True, help="Starting bid in dollars")
@click.option("--days", default=None, type=int, help="Auction length in days")
@click.pass_context
def create_auction(ctx, item_id, starting_bid, days):
    """Open an auction for an item"""
    from skysale.core.pricing import format_cents

    try:
        auction = _engine(ctx).create_auction(item_id, parse_amount(starting_bid), days)
    except SkysaleError as e:
        raise click.ClickException(str(e))

    click.echo(f"✓ Auction created: {auction.auction_id}")
    click.echo(f"  Item: {auction.item_name}")
    click.echo(f"  Starting bid: {format_cents(auction.starting_bid_cents)}")
    click.echo(f"  Ends: {auction.end_time.isoformat()}")


@cli.command("bid")
@click.argument("auction_id")
@click.argument("amount")
@click.option("--bidder", required=True, help="Bidder address")
@click.option("--email", default=None, help="Contact e-mail for notifications")
@click.pass_context
def bid(ctx, auction_id, amount, bidder, email):
    """Place a bid on an auction"""
    from skysale.core.errors import BidConflictError, ValidationError
    from skysale.core.pricing import format_cents

    try:
        placed = _engine(ctx).place_bid(auction_id, bidder, parse_amount(amount), email)
    except BidConflictError:
        raise click.ClickException("Another bid landed first, please retry")
    except ValidationError as e:
        message = e.reason
        if e.minimum_cents is not None:
            message += f" (minimum {format_cents(e.minimum_cents)})"
        raise click.ClickException(message)

    click.echo(f"✓ Bid placed: {format_cents(placed.amount_cents)}")
    click.echo(f"  Bid ID: {placed.bid_id}")


@cli.command("finalize")
@click.argument("auction_id")
@click.pass_context
def finalize(ctx, auction_id):
    """Settle an ended auction"""
    from skysale.core.pricing import format_cents

    try:
        result = _engine(ctx).finalize_auction(auction_id)
    except SkysaleError as e:
        raise click.ClickException(str(e))

    if result is None:
        click.echo("Auction ended with no bids; item returned to the catalog")
        return
    prefix = "Already finalized" if result.already_finalized else "✓ Finalized"
    click.echo(f"{prefix}: {result.auction_id}")
    click.echo(f"  Winner: {result.winner}")
    click.echo(f"  Price: {format_cents(result.final_price_cents)}")
    click.echo(f"  Mint tx: {result.tx_ref or 'pending (mint failed)'}")


@cli.command("retry-mints")
@click.pass_context
def retry_mints(ctx):
    """Re-attempt minting for items whose mint failed"""
    minted = _engine(ctx).retry_failed_mints()
    click.echo(f"✓ Minted {minted} items")


@cli.command("history")
@click.argument("auction_id")
@click.pass_context
def history(ctx, auction_id):
    """Show bid history for an auction"""
    bids = _engine(ctx).ledger.bid_history(auction_id)
    if not bids:
        click.echo("No bids yet.")
        return
    for entry in bids:
        click.echo(f"  {entry['timestamp'].isoformat()}  {entry['bidder']:<16} {entry['display_amount']}")


# =============================================================================
# Tier Commands
# =============================================================================


@cli.group()
def tiers():
    """Fixed-price phase commands"""
    pass


@tiers.command("status")
@click.pass_context
def tiers_status(ctx):
    """Show the active phase"""
    status = _engine(ctx).tiers.status()
    if status["phase"] is None:
        click.echo("No active phase. Run `skysale tick` to start phase 1.")
        return
    click.echo(f"Phase {status['phase']}{' (final)' if status['is_final'] else ''}")
    click.echo("-" * 40)
    click.echo(f"  Multiplier: {status['multiplier']:.4f}")
    click.echo(f"  Started: {status['started_at'].isoformat()}")
    click.echo(f"  Ends: {status['ends_at'].isoformat()}")
    click.echo(f"  Remaining: {status['time_remaining']}")
    click.echo(f"  Sold: {status['quantity_sold']}/{status['quantity_available']}")
    click.echo(f"  Paused: {'yes' if status['paused'] else 'no'}")


@tiers.command("pause")
@click.pass_context
def tiers_pause(ctx):
    """Freeze the phase timer"""
    try:
        _engine(ctx).tiers.pause()
    except SkysaleError as e:
        raise click.ClickException(str(e))
    click.echo("✓ Phase timer paused")


@tiers.command("resume")
@click.pass_context
def tiers_resume(ctx):
    """Restart the phase timer"""
    try:
        paused_for = _engine(ctx).tiers.resume()
    except SkysaleError as e:
        raise click.ClickException(str(e))
    click.echo(f"✓ Phase timer resumed after {paused_for}")


@tiers.command("advance")
@click.pass_context
def tiers_advance(ctx):
    """Move to the next phase now"""
    try:
        tier = _engine(ctx).tiers.force_advance()
    except SkysaleError as e:
        raise click.ClickException(str(e))
    click.echo(f"✓ Advanced to phase {tier.phase}")


@tiers.command("set-increase")
@click.argument("percent")
@click.pass_context
def tiers_set_increase(ctx, percent):
    """Set the per-phase price increase percent"""
    try:
        value = _engine(ctx).tiers.set_increase_percent(percent)
    except SkysaleError as e:
        raise click.ClickException(str(e))
    click.echo(f"✓ Phase increase set to {value}% (applies from the next repricing)")


# =============================================================================
# Reporting
# =============================================================================


@cli.command("schedule")
@click.pass_context
def schedule(ctx):
    """Show upcoming scheduled auctions"""
    from skysale.core.pricing import format_cents

    deployer = _engine(ctx).deployer
    click.echo(f"Current week: {deployer.current_week()}")
    click.echo("-" * 40)
    for entry in deployer.upcoming_schedule():
        start = entry.estimated_start.date().isoformat() if entry.estimated_start else "after launch"
        click.echo(
            f"  Week {entry.target_week:>2}  {entry.item_name:<24} "
            f"{format_cents(entry.starting_bid_cents):>12}  {start}"
        )


@cli.command("stats")
@click.pass_context
def stats(ctx):
    """Show auction statistics"""
    from skysale.core.pricing import format_cents

    data = _engine(ctx).ledger.stats()
    click.echo("Skysale Statistics")
    click.echo("-" * 40)
    for key in ("pending", "active", "ended_no_bids", "finalized", "total"):
        click.echo(f"  {key.replace('_', ' ').title()}: {data[key]}")
    click.echo(f"  Bids: {data['total_bids']}")
    click.echo(f"  Revenue: {format_cents(data['total_revenue_cents'])}")


if __name__ == "__main__":
    cli()
