"""CLI for artifact-cache."""

import logging
import time
from pathlib import Path
from typing import Optional

import typer
import uvicorn
from rich.console import Console

from .config import load_app_config
from .constants import DEFAULT_HOST, DEFAULT_PORT, DEFAULT_STORE
from .errors import CacheError, StoreError, WorkInProgressError
from .logs import configure_logging
from .server import CacheServer
from .storage import ArtifactStore, make_store, parse_store_config

logger = logging.getLogger(__name__)

app = typer.Typer(help="""\
HTTP binary cache for vcpkg and other clients that address immutable
artifacts by name, version and hash.

STORE selects where artifacts are kept, in the format
kind[:[path][,opt[=val]]]:

  files:[vcpkg-cache]   directory at the given path (default store)

  archives:[~/.cache/vcpkg/archives]   serve a vcpkg "files" provider
  directory as-is""")

console = Console(stderr=True)


def close_store(store: ArtifactStore, attempts: int = 10, interval: float = 0.5) -> bool:
    """Close the store, retrying while writes are still draining.

    Args:
        store: Store to close
        attempts: Maximum number of close attempts
        interval: Seconds to wait between attempts

    Returns:
        True if the store closed cleanly
    """
    for attempt in range(1, attempts + 1):
        try:
            store.close()
            return True
        except WorkInProgressError as e:
            logger.warning("store busy (%d/%d): %s", attempt, attempts, e)
            time.sleep(interval)
        except StoreError:
            logger.error("failed to close the store", exc_info=True)
            return False

    logger.error("failed to close the store after %d attempts", attempts)
    return False


@app.command()
def serve(
    store: Optional[str] = typer.Argument(
        None, help="Store to serve, e.g. files:/srv/cache", show_default=False
    ),
    conf: Optional[Path] = typer.Option(None, "--conf", help="Path to a YAML or JSON config file"),
    host: Optional[str] = typer.Option(None, "--host", help=f"Host to listen on [default: {DEFAULT_HOST}]"),
    port: Optional[int] = typer.Option(None, "--port", help=f"Port to listen on [default: {DEFAULT_PORT}]"),
    no_color: Optional[bool] = typer.Option(
        None, "--no-color/--color", help="Disable colored logs; default when stdout is not a terminal"
    ),
    log_json: bool = typer.Option(False, "--log-json", help="Log in JSON format"),
    read_only: bool = typer.Option(False, "--read-only", help="Reject uploads (PUT)"),
    write_only: bool = typer.Option(False, "--write-only", help="Reject downloads (GET)"),
):
    """Serve a store over HTTP."""
    # Flags only override the config file when given
    try:
        config = load_app_config(
            conf,
            host=host,
            port=port,
            store=store,
            no_color=no_color,
            log_json=log_json or None,
            read_only=read_only or None,
            write_only=write_only or None,
        )
    except CacheError as e:
        console.print(f"[red]error:[/red] {e}")
        raise typer.Exit(1)

    configure_logging(log_json=config.log_json, no_color=config.no_color)

    store_config = config.store
    if store_config is None:
        store_config = parse_store_config(DEFAULT_STORE)
        logger.info("use default store", extra={"fields": {"store": str(store_config)}})

    try:
        cache_store = make_store(store_config)
    except CacheError:
        logger.error("failed to initialize a store", exc_info=True, extra={"fields": {"store": str(store_config)}})
        raise typer.Exit(1)

    server = CacheServer(cache_store, readable=not config.write_only, writable=not config.read_only)
    if config.read_only:
        logger.info("upload disabled")
    elif config.write_only:
        logger.info("download disabled")

    logger.info("start server", extra={"fields": {"addr": f"{config.host}:{config.port}"}})
    try:
        uvicorn.run(server.app, host=config.host, port=config.port, log_config=None, access_log=False)
    finally:
        close_store(cache_store)
    logger.info("server closed")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
