"""
CLI commands for inspecting import files and live recovery sessions.
"""

from __future__ import annotations

import json
from pathlib import Path

import click
from flask.cli import ScriptInfo

from recovery_app.importer.adapters import RecordLoadError, decode_records
from recovery_app.importer.pipeline.dq import summarize_findings, validate_records
from recovery_app.utils.recovery import is_recovery_enabled


def _load_enabled_app(ctx: click.Context):
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    if not is_recovery_enabled(app):
        raise click.ClickException(
            "Error recovery is disabled via RECOVERY_ENABLED=false. Enable it to run recovery CLI commands."
        )
    return app


@click.group(name="recovery")
@click.pass_context
def recovery_cli(ctx):
    """Error recovery management commands."""
    _load_enabled_app(ctx)


def get_disabled_recovery_group() -> click.Group:
    """
    Return a minimal command group that informs the operator recovery is disabled.
    """

    @click.group(name="recovery", invoke_without_command=True)
    def disabled_group():
        raise click.ClickException("Recovery commands are unavailable because RECOVERY_ENABLED=false.")

    return disabled_group


@recovery_cli.command("inspect")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Emit findings as a JSON document.")
def recovery_inspect(file: Path, as_json: bool):
    """Run the validation rules over FILE and report findings."""
    try:
        records = decode_records(file)
    except RecordLoadError as exc:
        raise click.ClickException(str(exc)) from exc

    findings = validate_records(records)
    if as_json:
        payload = {
            "file": str(file),
            "records": len(records),
            "findings": [finding.as_dict() for finding in findings],
            "summary": dict(summarize_findings(findings)),
        }
        click.echo(json.dumps(payload, indent=2))
        return

    click.echo(f"{file.name}: {len(records)} records, {len(findings)} findings")
    for finding in findings:
        fix_hint = ""
        if finding.auto_fix is not None:
            fix_hint = f" [auto-fix: {finding.auto_fix.action} -> {finding.auto_fix.new_value!r}]"
        click.echo(
            f"  record {finding.record_index} {finding.field}: "
            f"{finding.severity.value} {finding.rule}{fix_hint}"
        )


@recovery_cli.command("sessions")
@click.pass_context
def recovery_sessions(ctx):
    """List recovery sessions held in memory."""
    app = ctx.ensure_object(ScriptInfo).load_app()
    store = app.extensions["recovery"]["store"]
    sessions = list(store)
    if not sessions:
        click.echo("No active recovery sessions.")
        return
    for session in sessions:
        click.echo(
            f"{session.session_id}: {session.record_count} records, "
            f"{len(session.errors)} outstanding, {len(session.resolved_errors)} resolved "
            f"({session.data_source})"
        )


@recovery_cli.command("status")
@click.argument("session_id")
@click.pass_context
def recovery_status_command(ctx, session_id: str):
    """Print recovery progress for SESSION_ID as JSON."""
    app = ctx.ensure_object(ScriptInfo).load_app()
    state = app.extensions["recovery"]
    with app.app_context():
        meta = state["locator"].locate(session_id)
        if meta is None:
            raise click.ClickException(f"Import session {session_id} not found.")
        try:
            status = state["service"].get_status(session_id, meta)
        except RecordLoadError as exc:
            raise click.ClickException(f"Could not load data for {session_id}: {exc}") from exc
    click.echo(json.dumps(status.as_dict(), indent=2))
