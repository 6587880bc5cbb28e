import json
import os
from pathlib import Path
from typing import Optional

import httpx
import typer
import uvicorn

from codecraft.config import load_settings

app = typer.Typer()

DEFAULT_STATUS_URL = "http://127.0.0.1:5000"


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default CODECRAFT_HOST or 0.0.0.0)"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port (default PORT or 5000)"),
    workspace: Optional[Path] = typer.Option(None, "--workspace", help="Workspace root directory"),
    reload: bool = typer.Option(False, "--reload/--no-reload", help="Reload on code changes"),
):
    """Run the backend HTTP + WebSocket server."""
    if workspace is not None:
        os.environ["CODECRAFT_WORKSPACE"] = str(workspace)
    try:
        settings = load_settings()
    except ValueError as exc:
        typer.echo(f"Invalid configuration: {exc}")
        raise typer.Exit(code=1)

    bind_host = host or settings.host
    bind_port = port or settings.port
    typer.echo(f"Server running on http://{bind_host}:{bind_port} (workspace: {settings.workspace_dir})")
    uvicorn.run(
        "codecraft.app:create_app",
        factory=True,
        host=bind_host,
        port=bind_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@app.command()
def status(
    url: str = typer.Option(DEFAULT_STATUS_URL, "--url", help="Base URL of a running server"),
    json_output: bool = typer.Option(False, "--json", help="Print the raw health payload"),
):
    """Check whether a server is up and how many commands it is running."""
    try:
        response = httpx.get(f"{url.rstrip('/')}/health", timeout=5.0)
    except (httpx.ConnectError, httpx.TimeoutException):
        typer.echo("Server: NOT RESPONDING (Connection refused)")
        raise typer.Exit(code=1)

    if response.status_code != 200:
        typer.echo(f"Server: UNHEALTHY (HTTP {response.status_code})")
        raise typer.Exit(code=1)

    payload = response.json()
    if json_output:
        typer.echo(json.dumps(payload, indent=2))
        return
    typer.echo("Server: RUNNING")
    typer.echo(f"Version: {payload.get('version', 'unknown')}")
    typer.echo(f"Environment: {payload.get('environment', 'unknown')}")
    typer.echo(f"Active Processes: {payload.get('active_processes', 0)}")


if __name__ == "__main__":
    app()
