"""CLI for the wearmerge metric reconciliation toolkit."""

import json
import logging
from datetime import date, datetime, timezone

import click

from wearmerge.reconcile.models import DeviceFilter, ReconcileError, ReductionMode


DEVICE_HELP = "Only use rows from this source ({}).".format(
    ", ".join(d.value for d in DeviceFilter)
)


def _resolver(aliases: str | None):
    from wearmerge.reconcile.aliases import AliasResolver, DEFAULT_RESOLVER, load_alias_table

    if aliases is None:
        return DEFAULT_RESOLVER
    try:
        return AliasResolver(load_alias_table(aliases))
    except ReconcileError as e:
        raise click.BadParameter(str(e), param_hint="--aliases") from e


def _load(file: str):
    from wearmerge.ingest import load_batch

    try:
        return load_batch(file)
    except ValueError as e:
        raise click.ClickException(str(e)) from e


def _parse_day(value: str, option: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise click.BadParameter(f"expected YYYY-MM-DD, got {value!r}", param_hint=option) from e


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log debug diagnostics to stderr.")
def main(verbose: bool) -> None:
    """wearmerge — reconcile wearable metrics from multiple sources."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.argument("file", type=click.Path(exists=True))
@click.option("--device", "-d", default="all", help=DEVICE_HELP)
@click.option("--strict", is_flag=True, help="Reject unknown --device values.")
@click.option("--strategy", "-s", default=ReductionMode.LATEST.value,
              type=click.Choice([m.value for m in ReductionMode]),
              help="How competing rows are resolved (default: latest).")
@click.option("--min-confidence", type=float, default=None,
              help="Ignore rows scored below this confidence (0-100).")
@click.option("--aliases", default=None, type=click.Path(exists=True),
              help="JSON alias table to use instead of the built-in one.")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON.")
def latest(
    file: str,
    device: str,
    strict: bool,
    strategy: str,
    min_confidence: float | None,
    aliases: str | None,
    as_json: bool,
) -> None:
    """Show the authoritative latest value for every metric in FILE."""
    from wearmerge.reconcile.views import device_filtered_latest

    rows = _load(file)
    try:
        result = device_filtered_latest(
            rows, device, resolver=_resolver(aliases), strict=strict,
            mode=ReductionMode(strategy), min_confidence=min_confidence,
        )
    except ReconcileError as e:
        raise click.BadParameter(str(e), param_hint="--device") from e

    if as_json:
        payload = {
            name: {
                "value": m.value,
                "unit": m.row.unit,
                "source": m.source,
                "confidence": m.row.confidence,
                "metric_name": m.row.metric_name,
                "measurement_date": m.row.measured_at.isoformat(),
                "candidates": m.candidates,
            }
            for name, m in sorted(result.items())
        }
        click.echo(json.dumps(payload, indent=2))
        return

    if not result:
        click.echo("No metrics found.")
        return

    width = max(len(name) for name in result)
    for name in sorted(result):
        m = result[name]
        unit = f" {m.row.unit}" if m.row.unit else ""
        click.echo(
            f"  {name:<{width}}  {m.value:g}{unit}  "
            f"[{m.source}, {m.row.day.isoformat()}, {m.candidates} candidate(s)]"
        )


@main.command()
@click.argument("file", type=click.Path(exists=True))
@click.argument("metric")
@click.option("--start", required=True, help="First day included (YYYY-MM-DD).")
@click.option("--end", required=True, help="First day excluded (YYYY-MM-DD).")
@click.option("--device", "-d", default="all", help=DEVICE_HELP)
@click.option("--aliases", default=None, type=click.Path(exists=True),
              help="JSON alias table to use instead of the built-in one.")
@click.option("--json", "as_json", is_flag=True, help="Print the series as JSON.")
def series(
    file: str,
    metric: str,
    start: str,
    end: str,
    device: str,
    aliases: str | None,
    as_json: bool,
) -> None:
    """Show the daily series of METRIC in FILE between --start and --end."""
    from wearmerge.reconcile.views import bounded_series
    from wearmerge.reconcile.stats import summarize_series

    start_day = _parse_day(start, "--start")
    end_day = _parse_day(end, "--end")
    if start_day > end_day:
        raise click.BadParameter("--start must not be after --end", param_hint="--start")

    rows = _load(file)
    points = bounded_series(rows, metric, start_day, end_day,
                            resolver=_resolver(aliases), device=device)

    if as_json:
        click.echo(json.dumps([p.to_dict() for p in points], indent=2))
        return

    if not points:
        click.echo(f"No {metric} data between {start_day} and {end_day}.")
        return

    for p in points:
        click.echo(f"  {p.date}  {p.value:g}")

    stats = summarize_series(points)
    click.echo(f"\n  {stats.count} day(s): mean {stats.mean:g}, "
               f"min {stats.minimum:g}, max {stats.maximum:g}, latest {stats.latest:g}")


@main.command()
@click.argument("file", type=click.Path(exists=True))
@click.option("--now", default=None, help="Reference time (ISO-8601, default: current UTC time).")
@click.option("--aliases", default=None, type=click.Path(exists=True),
              help="JSON alias table to use instead of the built-in one.")
def sources(file: str, now: str | None, aliases: str | None) -> None:
    """Show the freshest value from each source for every metric in FILE."""
    from wearmerge.ingest import parse_timestamp
    from wearmerge.reconcile.sources import source_breakdown

    if now is None:
        reference = datetime.now(timezone.utc)
    else:
        try:
            reference = parse_timestamp(now, "--now")
        except ReconcileError as e:
            raise click.BadParameter(str(e), param_hint="--now") from e

    rows = _load(file)
    breakdown = source_breakdown(rows, reference, resolver=_resolver(aliases))

    if not breakdown:
        click.echo("No fresh metrics found.")
        return

    for name in sorted(breakdown):
        b = breakdown[name]
        click.echo(f"{name} (primary: {b.primary_source})")
        for e in b.entries:
            flag = "  [outlier]" if e.outlier else ""
            click.echo(f"    {e.source:<14} {e.row.value:g}  {e.age_hours:g}h old{flag}")


@main.command("aliases")
@click.argument("names", nargs=-1, required=True)
@click.option("--aliases", "table", default=None, type=click.Path(exists=True),
              help="JSON alias table to use instead of the built-in one.")
def aliases_cmd(names: tuple[str, ...], table: str | None) -> None:
    """Show how metric NAMES resolve to canonical metrics."""
    resolver = _resolver(table)
    for name in names:
        group = ", ".join(sorted(resolver.resolve_alias_set(name)))
        click.echo(f"  {name} -> {resolver.canonical_name(name)}  {{{group}}}")


if __name__ == "__main__":
    main()
