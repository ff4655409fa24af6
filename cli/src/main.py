"""
CLI application for Fleet Monitor.
"""
import os
import time
from datetime import datetime, timezone
from typing import List, Optional

import requests
import typer
from rich import box
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from shared.constants import API_PREFIX, CLI_NAME, CLI_VERSION
from shared.counters import clamp_percent, counter_rate

app = typer.Typer(
    name=CLI_NAME,
    help="Fleet Monitor CLI",
    add_completion=False
)
console = Console()


def get_collector_url() -> str:
    """Get collector URL from environment or default."""
    return os.getenv("COLLECTOR_URL", "http://localhost:8080").rstrip("/")


def get_headers() -> dict:
    """API key header for write endpoints, if one is configured."""
    api_key = os.getenv("FLEETMON_API_KEY")
    return {"X-API-Key": api_key} if api_key else {}


def api_request(method: str, path: str, **kwargs):
    """
    Call the collector API and return the decoded JSON body.

    Prints a readable error and exits on failure.
    """
    collector_url = get_collector_url()
    url = f"{collector_url}{API_PREFIX}{path}"

    try:
        response = requests.request(method, url, headers=get_headers(), timeout=5, **kwargs)
    except requests.exceptions.ConnectionError:
        console.print("[red]Error: Cannot connect to collector.[/red]")
        console.print(f"[dim]Collector URL: {collector_url}[/dim]")
        raise typer.Exit(code=1)
    except requests.RequestException as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)

    if response.status_code == 404:
        console.print(f"[red]Not found: {path}[/red]")
        raise typer.Exit(code=1)
    if response.status_code == 401:
        console.print("[red]Unauthorized. Set FLEETMON_API_KEY to the collector API key.[/red]")
        raise typer.Exit(code=1)
    if response.status_code >= 400:
        try:
            detail = response.json().get("detail", response.text)
        except ValueError:
            detail = response.text
        console.print(f"[red]Error ({response.status_code}): {detail}[/red]")
        raise typer.Exit(code=1)

    return response.json()


def format_last_seen(value: Optional[str], now: datetime = None) -> str:
    """Relative age of an ISO timestamp."""
    if not value:
        return "Never"

    last_seen = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if last_seen.tzinfo is None:
        last_seen = last_seen.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    seconds = int((now - last_seen).total_seconds())

    if seconds < 60:
        return "Just now"
    elif seconds < 3600:
        return f"{seconds // 60}m ago"
    elif seconds < 86400:
        return f"{seconds // 3600}h ago"
    return f"{seconds // 86400}d ago"


def format_bytes(value: float) -> str:
    """Human readable byte count."""
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if abs(value) < 1024 or unit == "TB":
            return f"{value:.1f} {unit}" if unit != "B" else f"{int(value)} B"
        value /= 1024
    return f"{value:.1f} TB"


def build_agents_table(agents_data: List[dict]) -> Table:
    table = Table(title="📡 Agents", box=box.ROUNDED)
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Hostname", style="cyan")
    table.add_column("IP", style="blue")
    table.add_column("Platform", style="magenta")
    table.add_column("Status", style="bold")
    table.add_column("Last Seen", style="dim")

    for agent in agents_data:
        online = agent.get("is_online", False)
        status_color = "green" if online else "red"
        status_icon = "●" if online else "○"
        status_text = "online" if online else "offline"

        table.add_row(
            agent["id"],
            agent.get("name") or agent.get("hostname", ""),
            agent.get("hostname", ""),
            agent.get("ip_address", ""),
            agent.get("platform", ""),
            f"[{status_color}]{status_icon} {status_text}[/{status_color}]",
            format_last_seen(agent.get("last_seen"))
        )

    return table


def throughput_rows(samples: List[dict]) -> List[dict]:
    """
    Attach per-second network rates to samples ordered most recent first.

    A counter that went down since the previous sample is treated as reset.
    The oldest sample has no predecessor and gets no rate.
    """
    rows = []
    for index, sample in enumerate(samples):
        row = dict(sample)
        older = samples[index + 1] if index + 1 < len(samples) else None
        if older is not None:
            elapsed = sample["timestamp"] - older["timestamp"]
            row["sent_rate"] = counter_rate(
                older["network_info"]["bytes_sent"], sample["network_info"]["bytes_sent"], elapsed
            )
            row["recv_rate"] = counter_rate(
                older["network_info"]["bytes_recv"], sample["network_info"]["bytes_recv"], elapsed
            )
        else:
            row["sent_rate"] = None
            row["recv_rate"] = None
        rows.append(row)
    return rows


@app.command()
def agents():
    """List all agents with their status."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console
    ) as progress:
        task = progress.add_task("Fetching agents...", total=None)
        agents_data = api_request("GET", "/agents")
        progress.update(task, completed=True)

    if not agents_data:
        console.print("[yellow]No agents registered yet.[/yellow]")
        return

    console.print(build_agents_table(agents_data))
    online = sum(1 for a in agents_data if a.get("is_online"))
    console.print(f"\n[dim]Total: {len(agents_data)} agents, {online} online[/dim]")


@app.command()
def show(agent_id: str = typer.Argument(..., help="Agent ID")):
    """Show details of one agent."""
    agent = api_request("GET", f"/agents/{agent_id}")
    online = agent.get("is_online", False)
    status = "[green]● online[/green]" if online else "[red]○ offline[/red]"

    console.print(Panel.fit(
        f"[bold cyan]{agent.get('name') or agent.get('hostname')}[/bold cyan]\n"
        f"ID:         {agent['id']}\n"
        f"Hostname:   {agent.get('hostname', '')}\n"
        f"Platform:   {agent.get('platform', '')}\n"
        f"IP address: {agent.get('ip_address', '')}\n"
        f"Status:     {status}\n"
        f"Last seen:  {format_last_seen(agent.get('last_seen'))}\n"
        f"Registered: {agent.get('created_at') or '-'}",
        border_style="cyan"
    ))


@app.command()
def metrics(
    agent_id: str = typer.Argument(..., help="Agent ID"),
    minutes: int = typer.Option(10, help="How far back to look"),
    limit: int = typer.Option(20, help="Maximum number of samples")
):
    """Show recent metric samples of one agent, most recent first."""
    now = int(time.time())
    samples = api_request(
        "GET",
        f"/agents/{agent_id}/metrics",
        params={"from": now - minutes * 60, "to": now, "limit": limit}
    )

    if not samples:
        console.print(f"[yellow]No samples in the last {minutes} minutes.[/yellow]")
        return

    table = Table(title=f"📊 Metrics for {agent_id}", box=box.SIMPLE)
    table.add_column("Time", style="dim")
    table.add_column("CPU", justify="right", style="green")
    table.add_column("Memory", justify="right", style="yellow")
    table.add_column("Disk", justify="right", style="magenta")
    table.add_column("Load 1/5/15", justify="right")
    table.add_column("↑ Sent/s", justify="right", style="green")
    table.add_column("↓ Recv/s", justify="right", style="yellow")
    table.add_column("TCP/UDP", justify="right", style="dim")
    table.add_column("Procs", justify="right", style="dim")

    for row in throughput_rows(samples):
        load = row["load_average"]
        net = row["network_info"]
        table.add_row(
            datetime.fromtimestamp(row["timestamp"]).strftime("%Y-%m-%d %H:%M:%S"),
            f"{clamp_percent(row['cpu_usage']):.1f}%",
            f"{clamp_percent(row['memory_info']['percent']):.1f}%",
            f"{clamp_percent(row['disk_info']['percent']):.1f}%",
            f"{load['load1']:.2f} / {load['load5']:.2f} / {load['load15']:.2f}",
            format_bytes(row["sent_rate"]) if row["sent_rate"] is not None else "-",
            format_bytes(row["recv_rate"]) if row["recv_rate"] is not None else "-",
            f"{net['tcp_connections']}/{net['udp_connections']}",
            str(row["process_count"])
        )

    console.print(table)


@app.command()
def rename(
    agent_id: str = typer.Argument(..., help="Agent ID"),
    name: str = typer.Argument(..., help="New display name")
):
    """Set an agent's display name."""
    agent = api_request("PUT", f"/agents/{agent_id}", json={"name": name})
    console.print(f"[green]✓[/green] Agent {agent['id']} is now named [cyan]{agent['name']}[/cyan]")


@app.command()
def delete(
    agent_id: str = typer.Argument(..., help="Agent ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation")
):
    """Delete an agent and all of its metric history."""
    if not yes and not typer.confirm(f"Delete agent {agent_id} and all of its samples?"):
        console.print("[yellow]Aborted.[/yellow]")
        raise typer.Exit()

    result = api_request("DELETE", f"/agents/{agent_id}")
    console.print(
        f"[green]✓[/green] Deleted agent {result['agent_id']} "
        f"({result['metrics_deleted']} samples removed)"
    )


@app.command()
def webhooks():
    """List configured notification targets."""
    targets = api_request("GET", "/webhook")
    if not targets:
        console.print("[yellow]No webhook targets configured.[/yellow]")
        return

    table = Table(title="🔔 Webhook Targets", box=box.ROUNDED)
    table.add_column("Name", style="cyan")
    table.add_column("Type", style="magenta")
    table.add_column("Destination", style="blue")
    table.add_column("Enabled", style="bold")

    for target in targets:
        if target["type"] == "serverchan":
            sendkey = target.get("sendkey") or ""
            destination = f"sendkey {sendkey[:6]}..." if sendkey else "-"
        else:
            destination = target.get("url") or "-"
        enabled = "[green]yes[/green]" if target.get("enabled") else "[dim]no[/dim]"
        table.add_row(target.get("name") or "-", target["type"], destination, enabled)

    console.print(table)


@app.command()
def watch(refresh: int = typer.Option(5, help="Refresh interval in seconds")):
    """Live view of the agents table."""
    collector_url = get_collector_url()

    def generate_view():
        try:
            response = requests.get(f"{collector_url}{API_PREFIX}/agents", timeout=5)
            response.raise_for_status()
            agents_data = response.json()
        except requests.exceptions.ConnectionError:
            return Panel(
                "[red]Cannot connect to collector[/red]\n"
                f"[dim]URL: {collector_url}[/dim]",
                title="Error",
                border_style="red"
            )
        except (requests.RequestException, ValueError) as e:
            return Panel(f"[red]Error: {e}[/red]", title="Error", border_style="red")

        table = build_agents_table(agents_data)
        update_time = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        table.caption = f"Last updated: {update_time} | Press Ctrl+C to exit"
        return table

    console.print("[cyan]Starting watch... Press Ctrl+C to exit[/cyan]\n")

    try:
        with Live(generate_view(), refresh_per_second=1, console=console) as live:
            while True:
                time.sleep(refresh)
                live.update(generate_view())
    except KeyboardInterrupt:
        console.print("\n[yellow]Watch stopped.[/yellow]")


@app.command()
def version():
    """Show version information."""
    console.print(Panel.fit(
        f"[bold cyan]{CLI_NAME}[/bold cyan] v{CLI_VERSION}\n"
        f"Fleet Monitor",
        border_style="cyan"
    ))


if __name__ == "__main__":
    app()
