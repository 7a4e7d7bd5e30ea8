"""Command line interface for running arthagent workers and inspecting runs."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import date, timedelta
from typing import Optional

import typer

from .agents.extraction import extract_profile, require_valid
from .agents.llm import PydanticAIModel
from .agents.report import ReportComposer
from .auth import issue_token
from .config import ArthagentConfig, load_config
from .constants import RECENT_TRANSACTION_MONTHS
from .errors import ArthagentError
from .execute import EventExecutor
from .finance import analyze, evaluate
from .persistence import get_repository
from .services import Services
from .store import get_store
from .workflows import build_dispatcher

app = typer.Typer(help="CLI for arthagent workflows")

workflow_app = typer.Typer(help="Commands for inspecting workflow runs")
app.add_typer(workflow_app, name="workflow")

_state: dict = {}


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _config() -> ArthagentConfig:
    config = _state.get("config")
    if config is None:
        config = _state["config"] = load_config()
    return config


@app.callback()
def main(
    config: Optional[str] = typer.Option(None, help="Path to a YAML config file"),
    log_level: Optional[str] = typer.Option(None, help="Overrides log_level from config"),
) -> None:
    """arthagent CLI entry point."""
    _state["config"] = load_config(config)
    configure_logging(log_level or _state["config"].log_level)


@app.command()
def worker(
    lifespan: Optional[float] = typer.Option(
        None, help="Stop after this many seconds (default: run indefinitely)"
    ),
) -> None:
    """
    Run a worker that executes workflow runs pulled from the transport.

    Example:
        arthagent worker
        arthagent --config prod.yaml worker --lifespan 300
    """
    services = Services.from_config(_config())

    async def _run() -> None:
        await services.start()
        try:
            await EventExecutor(build_dispatcher(services)).start(lifespan=lifespan)
        finally:
            await services.close()

    typer.echo(f"Starting worker on {services.config.transport.backend} transport")
    asyncio.run(_run())


@app.command()
def serve(host: str = "127.0.0.1", port: int = 8000) -> None:
    """Serve the HTTP API with uvicorn."""
    import uvicorn

    from .api import create_app

    uvicorn.run(create_app(Services.from_config(_config())), host=host, port=port)


@workflow_app.command("list")
def workflow_list() -> None:
    """
    List all workflow runs with their current status.

    Example:
        arthagent workflow list
        # Output: chat.message.received:4f1c...    completed
    """
    repo = get_repository(_config().database_url)
    runs = asyncio.run(repo.list_runs())
    if not runs:
        typer.echo("No workflow runs found")
        return
    for run in runs:
        typer.echo(f"{run.run_key}\t{run.status.value}")


@workflow_app.command("show")
def workflow_show(run_key: str) -> None:
    """Show a run's status, triggering event and step history."""
    repo = get_repository(_config().database_url)
    run = asyncio.run(repo.get_run(run_key))
    if run is None:
        typer.echo("Workflow run not found")
        raise typer.Exit(code=1)
    typer.echo(f"Run {run.run_key}: {run.status.value} ({run.deliveries} deliveries)")
    if run.error:
        typer.echo(f"Error: {run.error}")
    typer.echo(f"Event: {json.dumps(run.event.get('data', {}))}")
    for step in run.steps:
        typer.echo(
            f"- {step.step_name}: {step.status} (attempts={step.attempts})"
            + (
                f" ({step.started_at} -> {step.completed_at})"
                if step.started_at or step.completed_at
                else ""
            )
        )


@app.command("analyze")
def analyze_user(
    user_id: str,
    as_json: bool = typer.Option(False, "--json", help="Print the raw analysis snapshot"),
    narrate: bool = typer.Option(
        False, "--narrate", help="Ask the configured model for the executive summary"
    ),
) -> None:
    """Run the deterministic analysis for a stored user and print the report."""
    config = _config()

    async def _run() -> str:
        store = get_store(config.store_url)
        await store.init()
        try:
            profile = await store.get_profile(user_id)
            if profile is None:
                raise ArthagentError(f"No profile stored for {user_id}")
            user = await store.get_user(user_id)
            since = date.today() - timedelta(days=30 * RECENT_TRANSACTION_MONTHS)
            transactions = await store.list_transactions(user_id, since=since)
        finally:
            await store.close()
        snapshot = analyze(profile, user, transactions, config.finance)
        if as_json:
            return snapshot.model_dump_json(indent=2)
        composer = ReportComposer(PydanticAIModel(config.llm.model) if narrate else None)
        return await composer.compose(snapshot, {}, evaluate(profile, user))

    try:
        typer.echo(asyncio.run(_run()))
    except ArthagentError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)


@app.command()
def extract(text: str) -> None:
    """Show the profile facts the model extracts from TEXT."""
    services = Services.from_config(_config())
    try:
        result = require_valid(asyncio.run(extract_profile(services.llm, text)))
    except ArthagentError as e:
        typer.secho(f"Extraction rejected: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(result.model_dump_json(indent=2, by_alias=True, exclude_none=True))


@app.command()
def token(user_id: str, expires_in: int = 3600) -> None:
    """Issue a bearer token for USER_ID signed with the configured secret."""
    try:
        typer.echo(issue_token(user_id, _config().auth, expires_in=expires_in))
    except ArthagentError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
