from __future__ import annotations

from datetime import datetime

import typer
from sqlmodel import Session

from signalradar.db import engine, init_db
from signalradar.digest.job import run_digest_job
from signalradar.radar.drilldown import DrilldownCache, days_ago
from signalradar.radar.pipeline import radar_row_payload, rank_accounts
from signalradar.radar.taxonomy import DIGEST_FREQUENCIES
from signalradar.scoring.breakdown import StoreScoreProvider, reconcile_breakdown
from signalradar.signals import refresh_latest_signal_types


app = typer.Typer(add_completion=False)


@app.callback()
def _ensure_db_initialized() -> None:
    # Silent so command output stays script-friendly.
    init_db()


@app.command("init-db")
def init_db_cmd() -> None:
    init_db()
    typer.echo("DB initialized.")


@app.command("run-digest")
def run_digest(
    cadence: str = typer.Option("daily", help="Which filter cadence to digest (daily|weekly|instant)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Build digests without sending or recording them"),
    as_of: str = typer.Option("", help="Override 'now' (ISO datetime), e.g. 2026-10-19T07:00:00"),
) -> None:
    """
    Run the digest job once. Exit code 1 if any organization failed.
    """

    if cadence not in DIGEST_FREQUENCIES:
        raise typer.BadParameter(f"cadence must be one of {'|'.join(DIGEST_FREQUENCIES)}")
    now = datetime.fromisoformat(as_of) if as_of.strip() else None

    with Session(engine) as session:
        result = run_digest_job(session=session, now=now, cadence=cadence, dry_run=dry_run)

    for d in result.digests:
        typer.echo(f"{d.org_name}\t{d.filter_name}\taccounts={len(d.items)}\trecipients={len(d.recipients)}")
        if dry_run:
            for it in d.items:
                typer.echo(f"  {it.name}\t{it.country or '-'}\t{it.score:g}\tsignals={len(it.signals)}")
    for e in result.errors:
        typer.echo(f"FAILED {e.org_id}: {e.error}", err=True)
    typer.echo(
        f"sent={result.sent} built={result.built} skipped={result.skipped} failed={result.failed} dry_run={result.dry_run}"
    )
    if result.errors:
        raise typer.Exit(code=1)


@app.command("radar")
def radar(
    org_id: str,
    signals: bool = typer.Option(False, "--signals", help="List each account's most recent signals"),
) -> None:
    """
    Print the org's ranked, filtered account list.
    """

    with Session(engine) as session:
        result = rank_accounts(session, org_id)

        if result.filter is not None:
            typer.echo(f"Filter: {result.filter.name}")
        if result.status:
            typer.echo(result.status)
            return

        drilldown = DrilldownCache(session)
        for row in result.rows:
            p = radar_row_payload(row)
            acct = p["account"] or {}
            typer.echo(
                f"{p['buying_pressure_index']:g}\t{p['band']}\t{acct.get('name') or p['account_id']}\t{acct.get('country') or '-'}"
            )
            if not signals:
                continue
            last = drilldown.last_signal_at(row.account_id)
            if last is None:
                typer.echo("  no signals")
                continue
            typer.echo(f"  last signal {days_ago(last)}d ago")
            for s in drilldown.signals_for(row.account_id):
                typer.echo(f"  - {s.occurred_at:%Y-%m-%d}\t{s.type}\t{s.title}")


@app.command("breakdown")
def breakdown(org_id: str, account_id: str, limit: int = typer.Option(10, help="Max signals in the breakdown")) -> None:
    with Session(engine) as session:
        report = reconcile_breakdown(StoreScoreProvider(session), org_id, account_id, limit)

    typer.echo(f"Aggregate score: {report.aggregate_score:g}")
    if report.error:
        typer.echo(f"Breakdown unavailable: {report.error}")
        return
    for e in report.entries:
        typer.echo(
            f"{e.points:>8.2f}  {e.type}  strength={e.strength_score:g} x{e.type_weight:g} x{e.recency_multiplier:g}  [{e.rule}]  {e.title}"
        )
    typer.echo(f"Breakdown total: {report.breakdown_total:g}")
    typer.echo(f"{report.delta_label}: {report.delta:g}")
    if report.anomalous:
        typer.echo("Warning: breakdown total exceeds the aggregate score.")


@app.command("refresh-signal-types")
def refresh_signal_types(per_account: int = typer.Option(5, help="Recent signals per account to consider")) -> None:
    with Session(engine) as session:
        n = refresh_latest_signal_types(session=session, per_account=per_account)
    typer.echo(f"Refreshed {n} accounts.")


if __name__ == "__main__":
    app()
