"""
nodeprep — CLI entrypoint.

Usage:
    python -m nodeprep.main --help
    python -m nodeprep.main run --production
    python -m nodeprep.main key --json
    python -m nodeprep.main cache list
"""

from __future__ import annotations

import json
import signal
import sys
import threading
from pathlib import Path

import click

from nodeprep import __version__
from nodeprep.core.observability.logging_config import resolve_level, setup_logging_from_env


@click.group()
@click.version_option(version=__version__, prog_name="nodeprep")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to nodeprep.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """nodeprep — checkout, node runtime check, dependency cache and install."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    setup_logging_from_env(resolve_level(debug=debug, verbose=verbose, quiet=quiet))


def _root_option(f):
    return click.option(
        "--root",
        "root",
        type=click.Path(file_okay=False),
        default=".",
        show_default=True,
        help="Working tree to prepare.",
    )(f)


def _cache_dir_option(f):
    return click.option(
        "--cache-dir",
        type=click.Path(file_okay=False),
        default=None,
        help="Partition store (default: $NODEPREP_CACHE_DIR or ~/.cache/nodeprep).",
    )(f)


def _load_inputs_or_exit(ctx: click.Context, overrides: dict, as_json: bool, root: Path):
    from nodeprep.core.config.loader import ConfigError, load_inputs

    try:
        return load_inputs(
            config_path=ctx.obj.get("config_path"),
            overrides=overrides,
            start_dir=root,
        )
    except ConfigError as e:
        if as_json:
            click.echo(json.dumps({"status": "failed", "failed_step": "config", "error": str(e)}, indent=2))
        else:
            click.secho(f"❌ {e}", fg="red")
        sys.exit(1)


@cli.command()
@click.option("--checkout/--no-checkout", default=None, help="Check out the repository first.")
@click.option("--production/--no-production", default=None, help="Install production dependencies only.")
@_root_option
@_cache_dir_option
@click.option("--node-version-file", default=None, help="Node version specifier file (default: .nvmrc).")
@click.option("--repository", default=None, help="Clone URL (default: from GITHUB_REPOSITORY).")
@click.option("--ref", default=None, help="Ref to check out (default: GITHUB_SHA).")
@click.option("--timeout", type=float, default=None, help="Abort the install after this many seconds.")
@click.option("--mock", is_flag=True, help="Use mock adapter (no real execution).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def run(
    ctx: click.Context,
    checkout: bool | None,
    production: bool | None,
    root: str,
    cache_dir: str | None,
    node_version_file: str | None,
    repository: str | None,
    ref: str | None,
    timeout: float | None,
    mock: bool,
    as_json: bool,
) -> None:
    """Check out, verify node, then restore or install node_modules.

    Examples:

        nodeprep run

        nodeprep run --production --no-checkout

        nodeprep run --timeout 600 --json
    """
    from nodeprep.core.use_cases.prepare import prepare

    project_root = Path(root).resolve()
    inputs = _load_inputs_or_exit(
        ctx, {"checkout": checkout, "production": production}, as_json, project_root,
    )

    cancel_event = threading.Event()
    previous = _install_cancel_handler(cancel_event)
    try:
        result = prepare(
            project_root,
            inputs,
            cache_dir=Path(cache_dir) if cache_dir else None,
            version_file=node_version_file,
            repository=repository,
            ref=ref,
            timeout=timeout,
            cancel_event=cancel_event,
            mock_mode=mock,
        )
    finally:
        _restore_cancel_handler(previous)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if not result.ok:
            sys.exit(1)
        return

    if not result.ok:
        click.secho(f"❌ {result.failed_step} failed: {result.error}", fg="red")
        if result.exit_code is not None:
            click.echo(f"   exit code: {result.exit_code}")
        sys.exit(1)

    quiet = ctx.obj.get("quiet", False)
    mode_label = "[mock] " if mock else ""
    outcome_labels = {
        "cache-hit": ("♻️  restored from cache", "green"),
        "cache-miss-installed": ("📦 installed and cached", "cyan"),
    }
    label, color = outcome_labels.get(result.outcome.value if result.outcome else "", ("?", "white"))

    if not quiet:
        click.secho(f"\n⚡ {mode_label}{result.project_root}", fg="cyan", bold=True)
        if result.head:
            click.echo(f"   HEAD:  {result.head}")
        if result.node_version:
            click.echo(f"   node:  {result.node_version}")
        click.echo(f"   key:   {result.cache_key}")
    click.secho(f"   {label} ({result.duration_ms}ms)", fg=color, bold=True)
    click.echo()


@cli.command()
@click.option("--production/--no-production", default=None, help="Key for a production install.")
@_root_option
@_cache_dir_option
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def key(
    ctx: click.Context,
    production: bool | None,
    root: str,
    cache_dir: str | None,
    as_json: bool,
) -> None:
    """Print the cache key a run would use, without side effects."""
    from nodeprep.core.use_cases.partitions import compute_key

    project_root = Path(root).resolve()
    inputs = _load_inputs_or_exit(ctx, {"production": production}, as_json, project_root)
    result = compute_key(
        project_root,
        inputs,
        cache_dir=Path(cache_dir) if cache_dir else None,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.error:
            sys.exit(1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    click.echo(result.key)
    if ctx.obj.get("verbose"):
        for lockfile in result.lockfiles:
            click.echo(f"   • {lockfile}")
        click.echo(f"   cached: {'yes' if result.cached else 'no'}")


@cli.group()
def cache() -> None:
    """Partition store commands."""


@cache.command("list")
@_cache_dir_option
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def cache_list(cache_dir: str | None, as_json: bool) -> None:
    """List stored partitions."""
    from nodeprep.core.use_cases.partitions import list_partitions

    result = list_partitions(Path(cache_dir) if cache_dir else None)

    if as_json:
        click.echo(json.dumps(result, indent=2))
        if "error" in result:
            sys.exit(1)
        return

    if "error" in result:
        click.secho(f"❌ {result['error']}", fg="red")
        sys.exit(1)

    click.secho(f"\n🗄️  {result['cache_dir']}: {result['count']} partition(s)", bold=True)
    for entry in result["entries"]:
        click.echo(f"   • {entry['key']}  ({entry['size_bytes']:,} B, {entry['modified_at']})")
    click.echo()


# ── Cancellation ────────────────────────────────────────────────


def _install_cancel_handler(event: threading.Event):
    """Route SIGTERM to ``event`` so a cancelled job stops npm cleanly."""
    if threading.current_thread() is not threading.main_thread():
        return None

    def _handler(signum, frame):
        event.set()

    return signal.signal(signal.SIGTERM, _handler)


def _restore_cancel_handler(previous) -> None:
    if previous is not None and threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGTERM, previous)


if __name__ == "__main__":
    cli()
