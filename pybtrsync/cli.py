"""CLI interface for pybtrsync."""

import logging
from pathlib import Path
from typing import Any, Optional

import click

from . import __version__
from .cli_progress import run_backup_with_progress
from .config import RemoteSpec, SyncConfig
from .exceptions import ConfigError, PyBtrSyncError
from .output import OutputFormatter
from .remote import SSHSession, list_remote
from .sync import (
    PresenceComparator,
    SyncEngine,
    classify_presence,
    plan_transfers,
    scan_local,
)
from .utils import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_QUEUE_CAPACITY,
    format_duration,
    format_size,
    format_timestamp,
)

logger = logging.getLogger(__name__)


@click.group()
@click.option(
    "--path",
    "-l",
    "local_path",
    envvar="PYBTRSYNC_PATH",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory holding the local snapshots",
)
@click.option(
    "--remote",
    "-r",
    envvar="PYBTRSYNC_REMOTE",
    help="Backup destination as user@host[:port]:path",
)
@click.option(
    "--privkey",
    envvar="PYBTRSYNC_PRIVKEY",
    type=click.Path(dir_okay=False, path_type=Path),
    help="SSH private key file for the remote",
)
@click.option(
    "--privkey-pass",
    envvar="PYBTRSYNC_PRIVKEY_PASS",
    help="Passphrase of the SSH private key",
)
@click.option(
    "--chunk-size",
    type=int,
    default=DEFAULT_CHUNK_SIZE,
    show_default=True,
    help="Size of one staged upload chunk in bytes",
)
@click.option(
    "--queue-capacity",
    type=int,
    default=DEFAULT_QUEUE_CAPACITY,
    show_default=True,
    help="Maximum number of chunks buffered in memory",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(version=__version__)
@click.pass_context
def main(
    ctx: Any,
    local_path: Optional[Path],
    remote: Optional[str],
    privkey: Optional[Path],
    privkey_pass: Optional[str],
    chunk_size: int,
    queue_capacity: int,
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """pybtrsync - Back up btrfs snapshots to a remote host over SSH."""
    ctx.ensure_object(dict)
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["options"] = {
        "local_path": local_path,
        "remote": remote,
        "privkey": privkey,
        "privkey_pass": privkey_pass,
        "chunk_size": chunk_size,
        "queue_capacity": queue_capacity,
    }

    # Configure logging based on verbose flag
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("pybtrsync").setLevel(logging.DEBUG)
        # paramiko's transport logging is noisy even at INFO
        logging.getLogger("paramiko").setLevel(logging.WARNING)
    else:
        logging.basicConfig(level=logging.WARNING)


def _build_config(ctx: Any) -> SyncConfig:
    """Build and validate the run configuration from the global options.

    Raises:
        ConfigError: If an option is missing or invalid
    """
    options = ctx.obj["options"]
    if options["local_path"] is None:
        raise ConfigError("Missing local snapshot directory (--path)")
    if not options["remote"]:
        raise ConfigError("Missing remote destination (--remote)")

    config = SyncConfig(
        local_root=options["local_path"],
        remote=RemoteSpec.parse(options["remote"]),
        privkey=options["privkey"],
        privkey_pass=options["privkey_pass"],
        chunk_size=options["chunk_size"],
        queue_capacity=options["queue_capacity"],
    )
    config.validate()
    return config


@main.command(name="list")
@click.pass_context
def list_snapshots(ctx: Any) -> None:
    """List all snapshots and where they reside."""
    out: OutputFormatter = ctx.obj["out"]

    try:
        config = _build_config(ctx)
        logger.info("Listing backup entries")
        local = scan_local(config.local_root)

        with SSHSession(config) as session:
            remote = list_remote(session, config)

        rows = PresenceComparator().rows(local, remote)

        if out.json_output:
            out.output_json(rows)
            return

        out.print(f"found {len(rows)} snapshots")
        out.output_table(
            rows,
            ["timestamp", "presence"],
            {"timestamp": "Snapshot", "presence": "Location"},
        )

    except PyBtrSyncError as e:
        out.error(str(e))
        ctx.exit(1)


@main.command(name="show-plan")
@click.option(
    "--all",
    "include_all",
    is_flag=True,
    help="Plan every local snapshot missing on the remote, not just the newest",
)
@click.pass_context
def show_plan(ctx: Any, include_all: bool) -> None:
    """Generate and show a backup plan."""
    out: OutputFormatter = ctx.obj["out"]

    try:
        config = _build_config(ctx)
        logger.info("Showing backup plan")
        local = scan_local(config.local_root)

        with SSHSession(config) as session:
            remote = list_remote(session, config)

        plan = plan_transfers(local, remote, include_all=include_all)
        presence = classify_presence(local, remote)

        if out.json_output:
            out.output_json(plan.to_dict())
            return

        out.print(
            f"found that {len(plan)} out of {len(presence)} snapshots need backup"
        )
        if plan.is_empty:
            out.info("nothing to do")
            return

        out.print("plan:")
        for transfer in plan:
            out.print(f"- {format_timestamp(transfer.timestamp)}: {transfer.kind}")

    except PyBtrSyncError as e:
        out.error(str(e))
        ctx.exit(1)


@main.command()
@click.option(
    "--all",
    "include_all",
    is_flag=True,
    help="Back up every local snapshot missing on the remote, not just the newest",
)
@click.pass_context
def backup(ctx: Any, include_all: bool) -> None:
    """Perform a backup.

    Sends the local snapshots missing on the remote, each as a delta
    against the snapshot before it where possible.
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        config = _build_config(ctx)
        logger.info("Generating backup plan")
        local = scan_local(config.local_root)

        with SSHSession(config) as session:
            remote = list_remote(session, config)
            plan = plan_transfers(local, remote, include_all=include_all)

            if plan.is_empty:
                if out.json_output:
                    out.output_json({"transfers": 0, "bytes": 0, "elapsed": 0.0})
                else:
                    out.info("nothing to do")
                return

            logger.info("Performing backup plan")
            engine = SyncEngine(session, config, out)
            stats = run_backup_with_progress(
                engine,
                plan,
                local,
                remote,
                show_progress=not (out.quiet or out.json_output),
            )

        if out.json_output:
            out.output_json(
                {
                    "transfers": stats["transfers"],
                    "bytes": stats["bytes"],
                    "elapsed": stats["elapsed"],
                    "snapshots": [r.snapshot for r in stats["results"]],
                }
            )
            return

        out.print_summary(
            "Backup Complete",
            [
                ("Snapshots sent", str(stats["transfers"])),
                ("Data sent", format_size(stats["bytes"])),
                ("Elapsed", format_duration(stats["elapsed"])),
            ],
        )

    except PyBtrSyncError as e:
        out.error(str(e))
        ctx.exit(1)


if __name__ == "__main__":
    main()
