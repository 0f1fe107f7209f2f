"""User subcommand: profile summary for a wallet."""

from __future__ import annotations

import typer

from polyterm.cli.markets import run_call

app = typer.Typer(help="User profiles")


@app.command("profile")
def profile(
    ctx: typer.Context,
    address: str = typer.Argument(..., help="Wallet address (0x + 40 hex)"),
    timeframe: str = typer.Option("1M", "--timeframe", "-t", help="PnL timeframe: 1D | 1W | 1M | ALL"),
) -> None:
    """Summarize positions, activity and PnL for a wallet."""
    p = run_call(ctx, lambda s: s.user_profile(address, timeframe))
    typer.echo(f"{p.username or p.address}")
    typer.echo(f"  value {p.total_value:.2f}  pnl {p.total_pnl:.2f}  trades {p.total_trades}")
    typer.echo(f"  open positions {len(p.positions)}  closed {len(p.closed_positions)}")
    for pos in p.positions[:10]:
        typer.echo(f"    {pos.shares:>10.2f}  {pos.outcome:<6}  {pos.unrealized_pnl:>+9.2f}  {pos.market_title[:50]}")
