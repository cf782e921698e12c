"""CLI interface for davsync."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import click

from .cli_progress import run_sync_with_progress
from .config import DEFAULT_CONFIG_FILE, Config
from .exceptions import ConfigError, NotFoundError, TransportError
from .output import OutputFormatter
from .sync import SyncDirection, SyncEngine
from .webdav import WebDAVClient

logger = logging.getLogger(__name__)


def _load_config(ctx: Any, out: OutputFormatter) -> Config:
    """Load the config file, creating a default one if it is missing.

    Exits with status 1 when the file had to be created or is invalid.
    """
    config_path: Path = ctx.obj["config_path"]

    if not config_path.exists():
        out.warning(f"Config file {config_path} not found, creating default config")
        try:
            Config().save(config_path)
        except ConfigError as e:
            out.error(str(e))
            ctx.exit(1)
        out.info(
            f"Created default config file {config_path}. "
            "Edit it to match your setup and run the command again."
        )
        ctx.exit(1)

    try:
        config = Config.load(config_path)
    except ConfigError as e:
        out.error(str(e))
        ctx.exit(1)
    return config


def _create_client(config: Config) -> WebDAVClient:
    return WebDAVClient(
        url=config.webdav_url,
        username=config.webdav_username,
        password=config.webdav_password,
        timeout=config.timeout,
    )


@click.group()
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_CONFIG_FILE,
    show_default=True,
    help="Path to the TOML config file",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option()
@click.pass_context
def main(
    ctx: Any,
    config_path: Path,
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """davsync - Sync a local directory with a WebDAV share."""
    # Store settings in context for subcommands to access
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["verbose"] = verbose

    # Configure logging based on verbose flag
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("davsync").setLevel(logging.DEBUG)
    else:
        # Set default logging level to WARNING to suppress debug/info messages
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.option("--force", "-f", is_flag=True, help="Overwrite an existing config file")
@click.pass_context
def init(ctx: Any, force: bool) -> None:
    """Write a config file with default settings."""
    out: OutputFormatter = ctx.obj["out"]
    config_path: Path = ctx.obj["config_path"]

    if config_path.exists() and not force:
        out.error(
            f"Config file {config_path} already exists. Use --force to overwrite it."
        )
        ctx.exit(1)

    config = Config()
    try:
        config.save(config_path)
    except ConfigError as e:
        out.error(str(e))
        ctx.exit(1)

    if out.json_output:
        out.output_json({"config_path": str(config_path), **config.to_dict()})
        return

    out.success(f"Configuration saved to {config_path}")
    out.print_summary(
        "Default Settings",
        [
            ("WebDAV URL", config.webdav_url),
            ("Local directory", config.local_dir),
            ("Remote directory", config.remote_dir),
            ("Mode", config.mode),
        ],
    )


@main.command()
@click.option(
    "--mode",
    "-m",
    type=click.Choice([d.value for d in SyncDirection]),
    default=None,
    help="backup (local -> WebDAV) or restore (WebDAV -> local)",
)
@click.option(
    "--sync-delete",
    is_flag=True,
    help="Delete destination files and folders that are missing from the source",
)
@click.option(
    "--workers",
    "-j",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum number of concurrent operations",
)
@click.option(
    "--retries",
    type=click.IntRange(min=1),
    default=None,
    help="Attempts per file transfer",
)
@click.option(
    "--dry-run", is_flag=True, help="Show what would be done without transferring"
)
@click.option("--no-progress", is_flag=True, help="Disable progress bars")
@click.pass_context
def sync(
    ctx: Any,
    mode: Optional[str],
    sync_delete: bool,
    workers: Optional[int],
    retries: Optional[int],
    dry_run: bool,
    no_progress: bool,
) -> None:
    """Synchronize the local directory and the WebDAV share.

    In backup mode the local directory is copied to the share, in restore
    mode the share is copied to the local directory.
    """
    out: OutputFormatter = ctx.obj["out"]
    config = _load_config(ctx, out)

    # Command line flags override the config file
    if mode:
        config.mode = mode
    if sync_delete:
        config.sync_delete = True
    if workers is not None:
        config.max_concurrent = workers
    if retries is not None:
        config.max_retries = retries

    try:
        sync_config = config.to_sync_config()
        config.ensure_local_dir()
    except ConfigError as e:
        out.error(str(e))
        ctx.exit(1)

    direction = sync_config.direction
    if not out.quiet:
        out.info(
            f"Sync mode: {direction.value} "
            f"({direction.source_label} -> {direction.destination_label})"
        )
        if sync_config.mirror_deletes:
            out.warning(
                f"Sync delete enabled: extra {direction.destination_label} "
                "files will be removed"
            )

    client = _create_client(config)
    try:
        try:
            client.exists("/")
        except TransportError as e:
            out.error(f"Failed to connect to WebDAV server {config.webdav_url}: {e}")
            ctx.exit(1)

        # Engine output respects quiet and JSON modes
        engine_out = OutputFormatter(
            json_output=out.json_output, quiet=out.quiet or out.json_output
        )
        engine = SyncEngine(client, engine_out)

        if no_progress or out.quiet or out.json_output:
            result = engine.run(sync_config, dry_run=dry_run)
        else:
            result = run_sync_with_progress(engine, sync_config, dry_run=dry_run)

        if out.json_output:
            out.output_json(result.to_dict())
        elif engine_out.quiet and not result.ok:
            # Engine didn't show the summary, show the errors here
            out.error(result.summary())

        if not result.ok:
            ctx.exit(1)

    except KeyboardInterrupt:
        out.warning("\nSync cancelled by user")
        ctx.exit(130)  # Standard exit code for SIGINT
    finally:
        client.close()


@main.command()
@click.argument("remote_path", default="/")
@click.pass_context
def ls(ctx: Any, remote_path: str) -> None:
    """List a directory of the WebDAV share.

    REMOTE_PATH: Remote directory to list (default: /)
    """
    out: OutputFormatter = ctx.obj["out"]
    config = _load_config(ctx, out)

    with _create_client(config) as client:
        try:
            entries = client.list(remote_path)
        except NotFoundError:
            out.error(f"Remote path not found: {remote_path}")
            ctx.exit(1)
        except TransportError as e:
            out.error(f"Failed to list {remote_path}: {e}")
            ctx.exit(1)

    entries.sort(key=lambda e: (not e.is_dir, e.name))

    if out.json_output:
        out.output_json(
            [
                {
                    "name": e.name,
                    "path": e.path,
                    "is_dir": e.is_dir,
                    "size": e.size,
                    "mtime": e.mtime,
                }
                for e in entries
            ]
        )
        return

    if not entries:
        out.info(f"{remote_path} is empty")
        return

    rows = [
        {
            "type": "dir" if e.is_dir else "file",
            "size": "" if e.is_dir else out.format_size(e.size),
            "modified": (
                datetime.fromtimestamp(e.mtime).strftime("%Y-%m-%d %H:%M:%S")
                if e.mtime
                else ""
            ),
            "name": f"{e.name}/" if e.is_dir else e.name,
        }
        for e in entries
    ]
    out.output_table(
        rows,
        ["type", "size", "modified", "name"],
        {"type": "Type", "size": "Size", "modified": "Modified", "name": "Name"},
    )


if __name__ == "__main__":
    main()
