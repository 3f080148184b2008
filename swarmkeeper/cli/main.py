"""swarmkeeper command-line entry point."""

from __future__ import annotations

import asyncio

import click
from rich.console import Console
from rich.markup import escape

from swarmkeeper import __version__
from swarmkeeper.config.config import init_config
from swarmkeeper.engine import create_engine
from swarmkeeper.session.orchestrator import (
    SeedingOrchestrator,
    prepare_download_dir,
)
from swarmkeeper.utils.exceptions import ConfigurationError
from swarmkeeper.utils.logging_config import get_logger

logger = get_logger(__name__)

# Exit status for configuration errors; nothing has been started yet
EXIT_CONFIG_ERROR = 2


def _build_overrides(options: dict) -> dict:
    """Map command-line options onto dotted configuration paths."""
    mapping = {
        "download_dir": "seeding.download_dir",
        "url": "seeding.sources",
        "log_level": "observability.log_level",
        "stats_interval": "stats.interval",
        "announce_interval": "health.interval",
        "peer_floor": "health.peer_floor",
        "metadata_timeout": "metadata.metadata_timeout",
        "port": "engine.listen_port",
    }
    return {
        path: options[key]
        for key, path in mapping.items()
        if options.get(key) is not None
    }


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--dir",
    "download_dir",
    type=click.Path(file_okay=False),
    help="Download directory (env: DOWNLOAD_DIR)",
)
@click.option(
    "--url",
    help="Comma-separated torrent URLs and/or magnet links (env: TORRENT_URLS)",
)
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(dir_okay=False),
    help="Configuration file path",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Log level",
)
@click.option("--stats-interval", type=float, help="Seconds between stats flushes")
@click.option(
    "--announce-interval", type=float, help="Seconds between peer count checks"
)
@click.option("--peer-floor", type=int, help="Re-announce below this many peers")
@click.option(
    "--metadata-timeout", type=float, help="Seconds to wait for swarm metadata"
)
@click.option("--port", type=int, help="BitTorrent listen port")
@click.option(
    "--print-config",
    is_flag=True,
    help="Print the effective configuration as TOML and exit",
)
@click.version_option(__version__, prog_name="swarmkeeper")
@click.pass_context
def cli(ctx, config_file, print_config, **options):
    """Seed a fixed set of torrents and keep their swarms alive."""
    console = Console(stderr=True)
    try:
        config_manager = init_config(config_file, _build_overrides(options))
        config = config_manager.config
        if print_config:
            click.echo(config_manager.export())
            return
        prepare_download_dir(config)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error: {escape(str(e))}[/red]")
        ctx.exit(EXIT_CONFIG_ERROR)

    try:
        engine = create_engine(config.engine)
    except ImportError as e:
        raise click.ClickException(str(e)) from None
    orchestrator = SeedingOrchestrator(config, engine)

    try:
        jobs = asyncio.run(orchestrator.run())
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return
    failed = [job for job in jobs if job.error]
    if failed:
        logger.warning("%d of %d job(s) failed", len(failed), len(jobs))


def main():
    """Main CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
