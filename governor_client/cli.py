"""
Governor CLI Tool
Command-line interface for the outbound governor operations API.
"""

import json
import sys
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .client import GovernorClient


console = Console()


def get_client(url: str) -> GovernorClient:
    """Create a client instance."""
    return GovernorClient(base_url=url)


@click.group()
@click.option("--url", "-u", default="http://localhost:8000", envvar="GOVERNOR_URL", help="API server URL")
@click.pass_context
def cli(ctx, url: str):
    """Outbound Governor CLI - inspect and administer provider rate limits."""
    ctx.ensure_object(dict)
    ctx.obj["url"] = url


@cli.command()
@click.pass_context
def health(ctx):
    """Check API server health."""
    with get_client(ctx.obj["url"]) as client:
        try:
            status = client.health()
            if status.get("status") == "healthy":
                console.print("✅ [green]API is healthy[/green]")
                console.print(f"   Version: {status.get('version', 'unknown')}")
            else:
                console.print("⚠️ [yellow]API status unknown[/yellow]")
        except Exception as e:
            console.print(f"❌ [red]Connection failed: {e}[/red]")
            sys.exit(1)


@cli.command()
@click.option("--provider", "-p", default=None, help="Show a single provider")
@click.option("--operation", "-o", default="default", help="Operation (with --provider)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def limits(ctx, provider: Optional[str], operation: str, as_json: bool):
    """Show quota status of live buckets."""
    with get_client(ctx.obj["url"]) as client:
        try:
            if provider:
                buckets = [client.get_limit(provider, operation)]
            else:
                buckets = client.list_limits()

            if as_json:
                data = [
                    {
                        "provider": b.provider,
                        "operation": b.operation,
                        "allowed": b.allowed,
                        "retry_after_ms": b.retry_after_ms,
                        "request_count": b.request_count,
                        "success_rate": b.success_rate,
                        "remaining": {q.window_type: q.remaining for q in b.quotas},
                    }
                    for b in buckets
                ]
                console.print(json.dumps(data, indent=2))
                return

            if not buckets:
                console.print("[dim]No active buckets[/dim]")
                return

            table = Table(title="Rate Limits")
            table.add_column("Provider", style="cyan")
            table.add_column("Operation")
            table.add_column("Allowed")
            table.add_column("Remaining")
            table.add_column("Requests", justify="right")
            table.add_column("Success", justify="right")

            for b in buckets:
                allowed = "[green]yes[/green]" if b.allowed else f"[red]wait {b.retry_after_ms or 0:.0f}ms[/red]"
                remaining = ", ".join(f"{q.window_type}={q.remaining}/{q.limit}" for q in b.quotas)
                table.add_row(
                    b.provider,
                    b.operation,
                    allowed,
                    remaining or "-",
                    str(b.request_count),
                    f"{b.success_rate:.0%}",
                )

            console.print(table)

        except Exception as e:
            console.print(f"❌ [red]Error: {e}[/red]")
            sys.exit(1)


@cli.command("set-limit")
@click.argument("provider")
@click.option("--per-second", type=float, default=None)
@click.option("--per-minute", type=int, default=None)
@click.option("--per-hour", type=int, default=None)
@click.option("--per-day", type=int, default=None)
@click.option("--burst-limit", type=int, default=None)
@click.option("--retry-after-default-ms", type=float, default=None)
@click.pass_context
def set_limit(ctx, provider: str, **overrides):
    """Override part of a provider's rate limit config."""
    if all(v is None for v in overrides.values()):
        console.print("[yellow]Nothing to change[/yellow]")
        sys.exit(2)

    with get_client(ctx.obj["url"]) as client:
        try:
            config = client.set_limit(provider, **overrides)
            console.print(f"[green]Updated {provider}[/green]")
            console.print(json.dumps(config, indent=2))
        except Exception as e:
            console.print(f"❌ [red]Error: {e}[/red]")
            sys.exit(1)


@cli.command()
@click.argument("provider")
@click.option("--operation", "-o", default=None, help="Reset a single operation")
@click.pass_context
def reset(ctx, provider: str, operation: Optional[str]):
    """Clear a provider's quota buckets."""
    with get_client(ctx.obj["url"]) as client:
        try:
            removed = client.reset(provider, operation)
            console.print(f"[green]Removed {removed} bucket(s) for {provider}[/green]")
        except Exception as e:
            console.print(f"❌ [red]Error: {e}[/red]")
            sys.exit(1)


@cli.command()
@click.option("--clear", is_flag=True, help="Clear error statistics")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def errors(ctx, clear: bool, as_json: bool):
    """Show classified error statistics."""
    with get_client(ctx.obj["url"]) as client:
        try:
            if clear:
                client.clear_errors()
                console.print("[green]Error statistics cleared[/green]")
                return

            stats = client.error_stats()

            if as_json:
                console.print(json.dumps({
                    "total_errors": stats.total_errors,
                    "errors_by_provider": stats.errors_by_provider,
                    "errors_by_kind": stats.errors_by_kind,
                }, indent=2))
                return

            table = Table(title=f"Errors ({stats.total_errors} total)")
            table.add_column("Kind", style="cyan")
            table.add_column("Count", justify="right")
            for kind, count in sorted(stats.errors_by_kind.items(), key=lambda kv: -kv[1]):
                table.add_row(kind, str(count))
            console.print(table)

            if stats.recent_errors:
                console.print("\n[bold]Recent:[/bold]")
                for err in stats.recent_errors:
                    console.print(
                        f"  {err.get('provider')}/{err.get('operation')}: "
                        f"{err.get('kind')} - {escape(str(err.get('message')))}"
                    )
                    if err.get("suggested_action"):
                        console.print(f"    [dim]{escape(err['suggested_action'])}[/dim]")

        except Exception as e:
            console.print(f"❌ [red]Error: {e}[/red]")
            sys.exit(1)


def main():
    """CLI entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
