"""Markets subcommand: list, show, history."""

from __future__ import annotations

import asyncio

import typer

from polyterm.errors import PolytermError
from polyterm.service import MarketQuery, build_service

app = typer.Typer(help="Market listing and lookup")


def run_call(ctx: typer.Context, call):
    """Run one service call against a fresh service and close it afterwards."""

    async def go():
        service = build_service(ctx.obj["settings"])
        try:
            return await call(service)
        finally:
            await service.aclose()

    try:
        return asyncio.run(go())
    except PolytermError as e:
        typer.echo(f"Error ({e.code}): {e.message}", err=True)
        raise typer.Exit(1) from e


@app.command("list")
def list_markets(
    ctx: typer.Context,
    limit: int = typer.Option(20, "--limit", "-n", help="Max markets to fetch"),
    category: str | None = typer.Option(None, "--category", "-c", help="Category filter, e.g. Politics"),
    search: str | None = typer.Option(None, "--search", "-s", help="Search text (3+ characters)"),
    market_type: str | None = typer.Option(None, "--type", help="Sort order: new | breaking (default: upstream order)"),
) -> None:
    """List open markets by 24h volume."""
    query = MarketQuery(limit=limit, category=category, search=search, market_type=market_type)
    page = run_call(ctx, lambda s: s.list_markets(query))
    for m in page.markets:
        title = m.title[:60]
        typer.echo(f"  {m.id[:20]:<20}  {m.yes_price:>5.2f}  {m.volume_24h:>9}  {m.category:<12}  {title}")
    typer.echo(f"Total: {page.total} markets")


@app.command("show")
def show(ctx: typer.Context, market_id: str = typer.Argument(..., help="Market or event id")) -> None:
    """Show one market with its outcomes."""
    m = run_call(ctx, lambda s: s.get_market(market_id))
    typer.echo(f"{m.title}  [{m.category}]")
    typer.echo(f"  yes {m.yes_price:.3f}  no {m.no_price:.3f}  vol {m.volume}  24h {m.volume_24h}")
    if m.price_fallback:
        typer.echo("  (headline prices derived, not quoted)")
    for o in m.outcomes:
        flag = " resolved" if o.is_resolved else ""
        typer.echo(f"    {o.price:>6.3f}  {o.name}{flag}")


@app.command("history")
def history(
    ctx: typer.Context,
    market_id: str = typer.Argument(..., help="Market id"),
    token_id: str | None = typer.Option(None, "--token", help="Outcome token id (default: first token)"),
    interval: str = typer.Option("1w", "--interval", "-i", help="1H | 6H | 1D | 1W | 1M | MAX"),
) -> None:
    """Print the price history of one outcome token."""
    points = run_call(ctx, lambda s: s.price_history(market_id, token_id, interval))
    for p in points:
        typer.echo(f"  {p.date}  {p.price:.4f}")
    typer.echo(f"Points: {len(points)}")
