"""CLI interface using typer + rich."""

from __future__ import annotations

import asyncio
import logging
from typing import NoReturn

from dotenv import load_dotenv

load_dotenv()

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from llm_gateway.arena.runner import ComparisonRunner
from llm_gateway.arena.session_store import SessionStore
from llm_gateway.arena.votes import VoteRecorder
from llm_gateway.clients.llm_client import LLMClient
from llm_gateway.clients.proxy_admin import ProxyAdminClient
from llm_gateway.config import AppConfig, load_config
from llm_gateway.errors import GatewayError
from llm_gateway.keys.issuer import KeyIssuer
from llm_gateway.keys.key_store import KeyStore
from llm_gateway.ledger.cost_calculator import micros_to_major
from llm_gateway.ledger.usage_store import UsageStore
from llm_gateway.registry import load_registry
from llm_gateway.usage.aggregator import CostAggregator, resolve_range

app = typer.Typer(
    name="llm-gateway",
    help="Usage accounting and model arena for an LLM routing proxy",
    no_args_is_help=True,
)
console = Console()


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _stores(config: AppConfig) -> tuple[UsageStore, SessionStore]:
    db_path = config.storage.resolved_db_path
    return UsageStore(db_path=db_path), SessionStore(db_path=db_path)


def _fail(e: GatewayError) -> NoReturn:
    console.print(f"[red]{type(e).__name__}: {e}[/red]")
    raise typer.Exit(1)


@app.command()
def serve(
    host: str = typer.Option(None, "--host", help="Bind address"),
    port: int = typer.Option(None, "--port", help="Bind port"),
) -> None:
    """Run the HTTP API."""
    import uvicorn

    from llm_gateway.api import create_app

    config = load_config()
    uvicorn.run(
        create_app(config),
        host=host or config.server.host,
        port=port or config.server.port,
    )


@app.command()
def usage(
    user: str = typer.Argument(help="User id"),
    start: str = typer.Option(None, "--start", help="ISO-8601 start (default: 7 days ago)"),
    end: str = typer.Option(None, "--end", help="ISO-8601 end (default: now)"),
) -> None:
    """Show a user's cost summary."""
    config = load_config()
    ledger, _ = _stores(config)
    try:
        start_dt, end_dt = resolve_range(
            start,
            end,
            default_days=config.usage.default_range_days,
            max_days=config.usage.max_range_days,
        )
        summary = CostAggregator(
            ledger,
            recent_limit=config.usage.recent_limit,
            max_range_days=config.usage.max_range_days,
        ).summarize(user, start_dt, end_dt)
    except GatewayError as e:
        _fail(e)

    console.print(Panel(
        f"Cost: [bold]${summary.total_cost:.4f}[/bold] | "
        f"Requests: {summary.total_requests} | Tokens: {summary.total_tokens:,}",
        title=f"{user}: {start_dt.date()} .. {end_dt.date()}",
    ))

    daily = Table(title="Daily")
    daily.add_column("Date")
    daily.add_column("Cost", justify="right")
    daily.add_column("Requests", justify="right")
    daily.add_column("Tokens", justify="right")
    for bucket in summary.daily_series:
        daily.add_row(bucket.date, f"${bucket.cost:.4f}", str(bucket.requests), f"{bucket.tokens:,}")
    console.print(daily)

    if summary.model_breakdown:
        by_model = Table(title="By model")
        by_model.add_column("Model")
        by_model.add_column("Cost", justify="right")
        by_model.add_column("Requests", justify="right")
        by_model.add_column("Share", justify="right")
        for row in summary.model_breakdown:
            by_model.add_row(
                row.model, f"${row.cost:.4f}", str(row.requests), f"{row.percentage_of_total:.1f}%"
            )
        console.print(by_model)


@app.command()
def compare(
    user: str = typer.Argument(help="User id"),
    model_a: str = typer.Argument(help="First model"),
    model_b: str = typer.Argument(help="Second model"),
    prompt: str = typer.Argument(help="Prompt sent to both models"),
    system: str = typer.Option(None, "--system", "-s", help="System prompt"),
) -> None:
    """Run one arena comparison."""
    config = load_config()
    ledger, sessions = _stores(config)
    llm = LLMClient(
        base_url=config.gateway.base_url,
        api_key=config.gateway.api_key,
        timeout=config.gateway.timeout,
        max_retries=config.gateway.max_retries,
    )
    runner = ComparisonRunner(
        llm,
        sessions,
        ledger,
        load_registry(config.models.resolved_registry_path),
        timeout=config.gateway.timeout,
        max_tokens=config.gateway.max_tokens,
        temperature=config.gateway.temperature,
    )

    async def _run():
        try:
            return await runner.run_comparison(user, [model_a, model_b], prompt, system)
        finally:
            await llm.close()

    try:
        with console.status("Waiting for both models..."):
            result = asyncio.run(_run())
    except GatewayError as e:
        _fail(e)

    for model, response in result.responses.items():
        if response.ok:
            console.print(Panel(response.content or "", title=f"{model} ({response.latency_ms} ms)"))
        else:
            console.print(Panel(
                f"[red]{response.error}[/red]", title=f"{model} ({response.latency_ms} ms)"
            ))
    console.print(f"[dim]session: {result.session_id}[/dim]")


@app.command()
def vote(
    user: str = typer.Argument(help="User id"),
    session_id: str = typer.Argument(help="Comparison session id"),
    winner: str = typer.Argument(help="Winning model"),
) -> None:
    """Record the winner of a comparison."""
    _, sessions = _stores(load_config())
    try:
        VoteRecorder(sessions).record_vote(user, session_id, winner)
    except GatewayError as e:
        _fail(e)
    console.print(f"[green]Vote recorded: {winner}[/green]")


@app.command()
def history(user: str = typer.Argument(help="User id")) -> None:
    """List a user's recent comparisons."""
    _, sessions = _stores(load_config())
    rows = sessions.list_for_user(user)
    if not rows:
        console.print("[yellow]No comparisons yet.[/yellow]")
        return
    table = Table()
    table.add_column("Session")
    table.add_column("Created")
    table.add_column("Models")
    table.add_column("Winner")
    for s in rows:
        table.add_row(
            s.id, s.created_at.strftime("%Y-%m-%d %H:%M"), " vs ".join(s.models), s.winner or "-"
        )
    console.print(table)


def _issuer(config: AppConfig) -> KeyIssuer:
    return KeyIssuer(
        ProxyAdminClient(config.gateway.base_url, config.gateway.api_key),
        KeyStore(db_path=config.storage.resolved_db_path),
        duration=config.keys.duration,
        local_fallback=config.keys.local_fallback,
    )


@app.command()
def keys(user: str = typer.Argument(help="User id")) -> None:
    """List a user's API keys."""
    rows = KeyStore(db_path=load_config().storage.resolved_db_path).list_for_user(user)
    if not rows:
        console.print("[yellow]No keys yet.[/yellow]")
        return
    table = Table()
    table.add_column("Id")
    table.add_column("Name")
    table.add_column("Prefix")
    table.add_column("Active")
    table.add_column("Expires")
    for k in rows:
        table.add_row(
            k.id,
            k.name,
            k.key_prefix,
            "yes" if k.is_active else "no",
            k.expires_at.strftime("%Y-%m-%d") if k.expires_at else "-",
        )
    console.print(table)


@app.command()
def issue_key(
    user: str = typer.Argument(help="User id"),
    name: str = typer.Argument(help="Key name"),
) -> None:
    """Issue a new API key through the proxy. The secret is shown once."""
    issuer = _issuer(load_config())

    async def _run():
        try:
            return await issuer.issue(user, name)
        finally:
            await issuer.admin.close()

    try:
        issued = asyncio.run(_run())
    except GatewayError as e:
        _fail(e)
    console.print(Panel(issued.key, title=f"{issued.name} ({issued.id})"))
    console.print("[dim]Store this key now; it cannot be shown again.[/dim]")


@app.command()
def revoke_key(
    user: str = typer.Argument(help="User id"),
    key_id: str = typer.Argument(help="Key id"),
) -> None:
    """Revoke an API key at the proxy and locally."""
    issuer = _issuer(load_config())

    async def _run():
        try:
            await issuer.revoke(user, key_id)
        finally:
            await issuer.admin.close()

    try:
        asyncio.run(_run())
    except GatewayError as e:
        _fail(e)
    console.print(f"[green]Key revoked: {key_id}[/green]")


@app.command()
def models() -> None:
    """List models in the registry with their prices."""
    config = load_config()
    table = Table()
    table.add_column("Model")
    table.add_column("Provider")
    table.add_column("Input $/1M", justify="right")
    table.add_column("Output $/1M", justify="right")
    for info in load_registry(config.models.resolved_registry_path).list_models():
        table.add_row(info.id, info.provider, f"{info.input_cost:.2f}", f"{info.output_cost:.2f}")
    console.print(table)


@app.command()
def stats() -> None:
    """Totals across all users."""
    ledger, _ = _stores(load_config())
    totals = ledger.get_global_stats()
    console.print(Panel(
        f"Requests: {totals['total_requests']} | "
        f"Cost: ${micros_to_major(totals['total_cost_micros']):.4f} | "
        f"Success: {totals['success_rate']:.1f}%",
        title="Gateway totals",
    ))


if __name__ == "__main__":
    app()
