"""ewon-sync CLI main entry point."""

from __future__ import annotations

import asyncio
from typing import Annotated, Any

import typer

from ewon_sync.cli._helpers import configure_logging, output_result, run_async
from ewon_sync.core.checkpoint import CheckpointState
from ewon_sync.unified_config import UnifiedConfig, get_config

# Main app
app = typer.Typer(
    name="ewonsync",
    help="ewon-sync - Incremental telemetry sync from eWON gateways via Talk2M",
    no_args_is_help=True,
)

# Config subcommand
config_app = typer.Typer(help="Configuration commands")
app.add_typer(config_app, name="config")


@app.callback()
def _main(
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Enable debug logging")
    ] = False,
) -> None:
    configure_logging(verbose)


def _checkpoint_dict(key: str, state: CheckpointState) -> dict[str, Any]:
    return {
        "checkpoint_key": key,
        "transaction_id": state.transaction_id,
        "last_local_sync": state.last_local_sync.isoformat(),
        "last_remote_sync": state.last_remote_sync.isoformat(),
        "last_history_timestamp": state.last_history_timestamp.isoformat(),
    }


@app.command()
def run(
    server: Annotated[
        bool, typer.Option("--server", "-s", help="Also serve the HTTP status API")
    ] = False,
    host: Annotated[str | None, typer.Option("--host", help="Server host override")] = None,
    port: Annotated[int | None, typer.Option("--port", "-p", help="Server port override")] = None,
) -> None:
    """Run the sync service until interrupted.

    Examples:
        ewonsync run              # Scheduled sync only
        ewonsync run --server     # Sync plus status API on the configured port
    """
    config = get_config()

    if server:
        _serve(host or config.server.host, port or config.server.port)
        return

    async def _run() -> None:
        from ewon_sync.runtime import open_runtime
        from ewon_sync.service import SyncService

        async with open_runtime(config) as runtime:
            service = SyncService.from_config(runtime.orchestrator, config.sync)
            await service.start()
            try:
                await asyncio.Event().wait()
            finally:
                await service.stop()

    typer.echo("Sync service running, press Ctrl+C to stop")
    try:
        run_async(_run())
    except KeyboardInterrupt:
        typer.echo("Stopped")


@app.command()
def sync(
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Run one sync cycle now and print the resulting status."""
    config = get_config()

    async def _sync() -> dict[str, Any]:
        from ewon_sync.runtime import open_runtime

        async with open_runtime(config) as runtime:
            await runtime.orchestrator.startup()
            result = await runtime.orchestrator.run_cycle()
            data: dict[str, Any] = {
                "message": "Sync cycle completed" if result.success else "Sync cycle failed",
                "duration_ms": result.duration_ms,
                "status": runtime.orchestrator.status().to_dict(),
            }
            if result.error:
                data["error"] = result.error
            return data

    data = run_async(_sync())
    output_result(data, json_output)
    if "error" in data:
        raise typer.Exit(1)


@app.command()
def status(
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Show the persisted historical sync checkpoint."""
    config = get_config()
    key = config.sync.checkpoint_key

    async def _status() -> dict[str, Any]:
        from ewon_sync.storage.sqlite_store import SQLiteStorage

        storage = SQLiteStorage(config.db_path)
        await storage.initialize()
        try:
            state = await storage.load_checkpoint(key)
        finally:
            await storage.close()

        if state is None:
            return {"message": f"No checkpoint '{key}' yet", "checkpoint_key": key}
        return _checkpoint_dict(key, state)

    output_result(run_async(_status()), json_output)


@app.command()
def reset(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """Zero the persisted checkpoint so historical sync restarts from the beginning."""
    config = get_config()
    key = config.sync.checkpoint_key

    if not yes and not typer.confirm(f"Reset checkpoint '{key}'? History will be re-fetched."):
        raise typer.Abort()

    async def _reset() -> None:
        from ewon_sync.storage.sqlite_store import SQLiteStorage

        storage = SQLiteStorage(config.db_path)
        await storage.initialize()
        try:
            await storage.save_checkpoint(key, CheckpointState.initial())
        finally:
            await storage.close()

    run_async(_reset())
    output_result({"message": f"Checkpoint '{key}' reset to transaction 0"})


def _serve(host: str, port: int) -> None:
    try:
        import uvicorn
    except ImportError:
        typer.echo("Error: uvicorn not installed. Run: pip install ewon-sync[server]", err=True)
        raise typer.Exit(1) from None

    typer.echo(f"Starting ewon-sync status server on http://{host}:{port}")
    typer.echo(f"  Docs: http://{host}:{port}/docs")

    uvicorn.run(
        "ewon_sync.server.app:create_app",
        host=host,
        port=port,
        factory=True,
    )


@app.command()
def serve(
    host: Annotated[str | None, typer.Option("--host", "-h", help="Host to bind to")] = None,
    port: Annotated[int | None, typer.Option("--port", "-p", help="Port to bind to")] = None,
) -> None:
    """Run the HTTP status API together with the sync service.

    Examples:
        ewonsync serve                    # Configured host and port
        ewonsync serve --host 0.0.0.0     # Expose to network
    """
    config = get_config()
    _serve(host or config.server.host, port or config.server.port)


@config_app.command("show")
def config_show(
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
    show_secrets: Annotated[
        bool, typer.Option("--show-secrets", help="Do not mask passwords and tokens")
    ] = False,
) -> None:
    """Show the effective configuration."""
    config = get_config()
    data = config.to_dict(redact=not show_secrets)
    data["config_path"] = str(config.config_path)
    output_result(data, json_output)


@config_app.command("init")
def config_init(
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Overwrite an existing config file")
    ] = False,
) -> None:
    """Write a default configuration file."""
    defaults = UnifiedConfig()
    if defaults.config_path.exists() and not force:
        typer.echo(f"Config already exists at {defaults.config_path} (use --force)", err=True)
        raise typer.Exit(1)
    defaults.save()
    output_result({"message": f"Wrote default configuration to {defaults.config_path}"})


@app.command()
def version() -> None:
    """Show version information."""
    from ewon_sync import __version__

    typer.echo(f"ewon-sync v{__version__}")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
