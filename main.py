#!/usr/bin/env python3
"""
Bulk Purchase-Order Engine: CLI entry point.

Usage examples:
  python main.py price 100                          # Price a cost with the stored rules
  python main.py price 18.50 --category Electronics --supplier "TechnoSupply Co."
  python main.py rules                              # List rules and any problems
  python main.py rules --quick-setup                # Install the retail preset

  python main.py batch uploads/                     # Process every PO file in a folder
  python main.py batch uploads/ --approve           # ...and store completed orders
  python main.py batch uploads/ --simulate          # Demo run with the simulated extractor

  python main.py backup                             # Archive database and config
"""
import logging
import sys
from pathlib import Path

import click

from config import Config
from models.job import JobStatus
from pipeline.backup import BackupService
from pipeline.batch import BatchPipeline
from pipeline.category_mapper import CategoryMapper
from pipeline.database import Database
from pipeline.extractor import CsvOrderExtractor, SimulatedExtractor
from pipeline.pricing import calculate_price, price_order, select_rule, validate_rule
from pipeline.rule_store import RuleStore
from pipeline.uploads import file_from_path
from pipeline.webhook_export import WebhookExportService


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
        datefmt="%H:%M:%S",
    )
    # Quieten noisy third-party loggers
    logging.getLogger("urllib3").setLevel(logging.WARNING)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Bulk Purchase-Order Engine: price, batch-process and approve supplier POs."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    _setup_logging(verbose)


# --------------------------------------------------------------------
# price command
# --------------------------------------------------------------------

@cli.command()
@click.argument("cost", type=float)
@click.option("--category", default=None, help="Store category of the item")
@click.option("--supplier", default=None, help="Supplier name")
@click.option("--sku", default=None, help="Item SKU")
@click.pass_context
def price(
    ctx: click.Context,
    cost: float,
    category: str | None,
    supplier: str | None,
    sku: str | None,
) -> None:
    """Calculate the sell price for COST using the stored pricing rules."""
    config = Config()
    rules = RuleStore(config.config_dir).load_rules()

    rule = select_rule(cost, category, supplier, sku, rules)
    final = calculate_price(cost, category, supplier, sku, rules)

    click.echo()
    click.echo(f"  Cost:        {cost:.2f}")
    if rule is None:
        click.echo("  Rule:        (none applies, price unchanged)")
    else:
        click.echo(f"  Rule:        {rule.name or rule.id}  [priority {rule.priority}]")
        click.echo(f"  Markup:      {rule.markup_type.value} {rule.markup_value:g}")
        click.echo(f"  Rounding:    {rule.rounding_strategy.value}")
    click.echo(f"  Sell price:  {final:.2f}")
    click.echo()


# --------------------------------------------------------------------
# rules command
# --------------------------------------------------------------------

@cli.command()
@click.option("--quick-setup", is_flag=True, help="Replace the rules with the retail preset")
@click.pass_context
def rules(ctx: click.Context, quick_setup: bool) -> None:
    """List the pricing rules in precedence order."""
    config = Config()
    store = RuleStore(config.config_dir)

    if quick_setup:
        loaded = store.apply_quick_setup()
        click.echo(f"\n✓ Quick setup applied ({len(loaded)} rules) to {config.config_dir}/")
    else:
        loaded = store.load_rules()

    click.echo("\n=== Pricing Rules ===\n")
    if not loaded:
        click.echo("  (no rules configured)")
    for rule in sorted(loaded, key=lambda r: r.priority):
        tick = "✓" if rule.enabled else "·"
        click.echo(
            f"  {tick} [{rule.priority:>3}] {rule.id:<28} "
            f"{rule.markup_type.value} {rule.markup_value:g}, {rule.rounding_strategy.value}"
        )
        for problem in validate_rule(rule):
            click.echo(f"        ⚠ {problem}")
    click.echo()


# --------------------------------------------------------------------
# batch command
# --------------------------------------------------------------------

@cli.command()
@click.argument("directory", type=click.Path(exists=True, file_okay=False))
@click.option("--approve", is_flag=True, help="Approve all completed orders into the database")
@click.option("--simulate", is_flag=True, help="Use the simulated extractor instead of reading files")
@click.option("--webhook", is_flag=True, help="Send approved orders to the configured webhook")
@click.pass_context
def batch(ctx: click.Context, directory: str, approve: bool, simulate: bool, webhook: bool) -> None:
    """
    Queue every file in DIRECTORY, process the batch and print the results.

    \b
    Files are accepted or rejected with the same checks as the upload
    route (type, size, duplicates).  CSV purchase orders are read by
    column name; --simulate runs the demo extractor on any file type.
    """
    config = Config()
    config.ensure_output_dir()
    store = RuleStore(config.config_dir)
    pricing_rules = store.load_rules()
    bulk = store.load_bulk_config()
    mapper = CategoryMapper(store.load_category_mappings(), config.category_fuzzy_threshold)

    if simulate:
        extractor = SimulatedExtractor(tick_seconds=config.simulated_tick_seconds)
    else:
        extractor = CsvOrderExtractor()

    # Only an approving run touches the database or the webhook
    sink = None
    if approve and webhook:
        sink = WebhookExportService(config, pricing_rules, config.config_dir, mapper)
    elif approve:
        sink = Database(config.db_path, pricing_rules, mapper)

    pipeline = BatchPipeline(
        extractor,
        sink=sink,
        config=bulk,
        backup=BackupService(config),
    )

    files = [file_from_path(p) for p in sorted(Path(directory).iterdir()) if p.is_file()]
    queued = pipeline.add_files(files)
    for rejected in queued.rejected:
        click.echo(f"  ✗ {rejected.file.name}: {rejected.reason}")
    if not queued.added:
        click.echo("No files to process.", err=True)
        sys.exit(1)

    click.echo(f"\nProcessing {len(queued.added)} file(s)...")
    pipeline.start()
    try:
        pipeline.wait_until_idle()
    except KeyboardInterrupt:
        pipeline.stop()
        pipeline.wait_until_idle(timeout=30)
        click.echo("\nStopped.")

    for job in pipeline.jobs:
        click.echo()
        if job.status == JobStatus.FAILED:
            click.echo(f"  ✗ {job.file.name}: {job.error}")
            continue
        if job.status != JobStatus.COMPLETED:
            click.echo(f"  · {job.file.name}: {job.status.value}")
            continue
        order = job.parsed_data
        click.echo(
            f"  ✓ {job.file.name}  {order.po_number}  {order.supplier}  "
            f"({order.average_confidence:.1f}% confidence)"
        )
        for item in price_order(order, pricing_rules, mapper):
            click.echo(
                f"      {item.sku:<12} x{item.quantity:g}  "
                f"cost {item.cost_price:>9.2f}  sell {item.sell_price:>9.2f}"
                f"  {item.rule_id or '-'}"
            )

    stats = pipeline.stats()
    click.echo()
    click.echo(
        f"  Completed {stats.completed}/{stats.total}, failed {stats.failed}, "
        f"value {stats.total_value:.2f}, items {stats.total_items:g}, "
        f"avg confidence {stats.average_confidence:.1f}%"
    )

    if approve:
        pipeline.select_all()
        result = pipeline.approve_selected()
        click.echo(f"\n  {result.message}")
        for job_id, error in result.failed.items():
            click.echo(f"    ✗ {job_id}: {error}")
        if not webhook:
            click.echo(f"  Database: {config.db_path}")
    click.echo()


# --------------------------------------------------------------------
# backup command
# --------------------------------------------------------------------

@cli.command()
@click.pass_context
def backup(ctx: click.Context) -> None:
    """
    Create a timestamped backup of the approved-orders database and config.
    """
    config = Config()
    service = BackupService(config)
    click.echo(f"Creating backup in: {service.backup_dir}")
    try:
        zip_name = service.create_backup()
    except Exception as e:
        click.echo(f"\n✗ Backup failed: {e}", err=True)
        sys.exit(1)
    click.echo(f"\n✓ Backup successful: {zip_name}")


if __name__ == "__main__":
    cli()
