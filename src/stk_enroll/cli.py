"""Typer CLI for STK-Enroll."""

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(name="stk-enroll", help="STK-Enroll: paid mailing-list enrollment over M-Pesa")
console = Console()


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind host"),
    port: int = typer.Option(3000, help="Bind port"),
):
    """Start the STK-Enroll API server."""
    import uvicorn
    from stk_enroll.app import create_app

    console.print(f"[bold green]Starting STK-Enroll on {host}:{port}[/bold green]")
    uvicorn.run(create_app(), host=host, port=port)


@app.command("new-reference")
def new_reference():
    """Print a fresh reference-keyed correlation key."""
    from stk_enroll.common.config import get_settings
    from stk_enroll.correlation.keys import ReferenceKeyStrategy

    strategy = ReferenceKeyStrategy(prefix=get_settings().reference_prefix)
    console.print(f"[bold]{strategy.derive_key('')}[/bold]")


@app.command()
def groups(
    industry: str = typer.Argument("", help="Resolve a single industry instead of listing the table"),
):
    """Show the industry → group table, or resolve one industry."""
    from stk_enroll.deps import get_group_resolver
    from stk_enroll.enrollment.groups import normalize_industry

    resolver = get_group_resolver()
    if industry:
        group = resolver.resolve(industry)
        if group is None:
            console.print(f"[bold yellow]{normalize_industry(industry)}[/bold yellow] — no group")
            raise typer.Exit(1)
        console.print(f"[bold green]{normalize_industry(industry)}[/bold green] — {group}")
        return

    table = Table("Industry", "Group")
    for token, group in sorted(resolver.mapping.items()):
        table.add_row(token, group)
    table.add_row("(default)", resolver.default_group or "[dim]none[/dim]")
    console.print(table)


@app.command()
def health(
    url: str = typer.Option("http://localhost:3000", help="Server URL"),
):
    """Check STK-Enroll server health."""
    import httpx

    try:
        resp = httpx.get(f"{url}/health", timeout=5)
        data = resp.json()
        console.print(f"[bold green]{data['status']}[/bold green] — v{data['version']}")
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
