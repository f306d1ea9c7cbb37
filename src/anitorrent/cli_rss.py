"""CLI commands for feed monitoring.

This module provides the `anitorrent rss` subcommand group: `auto` runs the
ingestion loop, `check` shows what the next run would pick up.
"""

import logging
import sys
from dataclasses import dataclass

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from anitorrent.catalog import CatalogResolver, Candidate, DuplicateFilter, MappingCatalog
from anitorrent.config.manager import ConfigManager
from anitorrent.config.schema import AppConfig
from anitorrent.feeds.client import FeedClient
from anitorrent.media import MediaProbe, TrackExtractor
from anitorrent.metadata.client import MetadataClient
from anitorrent.metadata.writer import MetadataWriter
from anitorrent.peertube import PlatformClient, TokenStore
from anitorrent.pipeline import FeedMonitor, PipelineOptions, PipelineOrchestrator
from anitorrent.storage import ObjectStore
from anitorrent.torrent import TorrentEngine
from anitorrent.utils.errors import AnitorrentError, RemoteError
from anitorrent.utils.retry import RetryConfig

app = typer.Typer(
    name="rss",
    help="Monitor the release feed and publish new episodes",
    no_args_is_help=True,
)
console = Console()
logger = logging.getLogger(__name__)


@dataclass
class Components:
    """Everything a monitoring run needs, wired from one AppConfig."""

    feed: FeedClient
    catalog: MappingCatalog
    metadata: MetadataClient
    platform: PlatformClient
    engine: TorrentEngine
    orchestrator: PipelineOrchestrator

    def close(self) -> None:
        self.engine.close()
        self.feed.close()
        self.catalog.close()
        self.metadata.close()
        self.platform.close()


def _catalog_retry(config: AppConfig) -> RetryConfig:
    return RetryConfig(
        max_attempts=config.catalog.retry_attempts,
        wait_seconds=config.catalog.retry_delay_seconds,
        backoff="linear",
    )


def build_components(config: AppConfig, manager: ConfigManager) -> Components:
    """Wire the pipeline from configuration."""
    retry = _catalog_retry(config)
    feed = FeedClient(
        config.catalog.feed_url, timeout=config.catalog.timeout_seconds, retry_config=retry
    )
    catalog = MappingCatalog(
        config.catalog.mapping_url, timeout=config.catalog.timeout_seconds, retry_config=retry
    )
    metadata = MetadataClient(
        config.metadata.api_url,
        config.metadata.api_key,
        timeout=config.metadata.timeout_seconds,
    )
    platform = PlatformClient(
        config.platform.api_url,
        config.platform.username,
        config.platform.password,
        TokenStore(manager.token_file),
    )
    store = ObjectStore(
        bucket=config.storage.bucket,
        public_domain=config.storage.public_domain,
        endpoint=config.storage.endpoint,
        access_key_id=config.storage.access_key_id,
        secret_access_key=config.storage.secret_access_key,
        region=config.storage.region,
    )
    engine = TorrentEngine(config.torrent)
    orchestrator = PipelineOrchestrator(
        resolver=CatalogResolver(catalog),
        dedup=DuplicateFilter(),
        metadata=metadata,
        engine=engine,
        probe=MediaProbe(),
        extractor=TrackExtractor(),
        store=store,
        platform=platform,
        writer=MetadataWriter(metadata, platform.base_url),
        defaults=config.defaults,
        buffer_retry_attempts=config.torrent.buffer_retry_attempts,
    )
    return Components(
        feed=feed,
        catalog=catalog,
        metadata=metadata,
        platform=platform,
        engine=engine,
        orchestrator=orchestrator,
    )


@app.command("auto")
def auto_command(
    ctx: typer.Context,
    limit: int | None = typer.Option(
        None, "--limit", "-l", min=1, help="Feed items per check (default: from config)"
    ),
    interval: float | None = typer.Option(
        None, "--interval", "-i", min=0.1, help="Minutes between checks (default: from config)"
    ),
    channel: int | None = typer.Option(None, "--channel", min=1, help="PeerTube channel id"),
    privacy: int | None = typer.Option(
        None, "--privacy", min=1, max=5, help="Privacy level 1-5"
    ),
    password: str | None = typer.Option(None, "--password", help="Video password"),
    wait: float | None = typer.Option(
        None, "--wait", min=0, help="Minutes to wait for processing"
    ),
    keep_master: bool = typer.Option(
        False, "--keep-master", help="Keep the uploaded video file in storage"
    ),
    no_seed: bool = typer.Option(False, "--no-seed", help="Do not keep torrents seeding"),
    use_title: bool = typer.Option(
        False, "--use-title", help="Publish the episode title parsed from the release name"
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Resolve and filter only, download nothing"
    ),
    single_run: bool = typer.Option(False, "--single-run", help="Check the feed once and exit"),
    clean_downloads: bool = typer.Option(
        False, "--clean-downloads", help="Empty the download directory before starting"
    ),
) -> None:
    """Watch the release feed and publish every new episode.

    Examples:
        anitorrent rss auto

        anitorrent rss auto --single-run --limit 5

        anitorrent rss auto --interval 5 --no-seed --keep-master
    """
    try:
        manager = ConfigManager()
        config = manager.validate_for_run()
        if not (ctx.obj or {}).get("verbose"):
            logging.getLogger().setLevel(config.log_level)
        options = PipelineOptions(
            channel_id=channel,
            privacy=privacy,
            video_password=password,
            max_wait_minutes=wait,
            keep_master=keep_master or config.defaults.keep_master,
            keep_seeding=config.defaults.keep_seeding and not no_seed,
            use_episode_title=use_title,
            dry_run=dry_run,
        )
        components = build_components(config, manager)
    except AnitorrentError as e:
        console.print(f"[red]✗[/red] {e}")
        sys.exit(1)

    monitor = FeedMonitor(
        components.feed,
        components.orchestrator,
        components.engine,
        interval_minutes=interval or config.monitor.interval_minutes,
        limit=limit or config.monitor.limit,
        options=options,
    )
    mode = "single run" if single_run else f"every {monitor.interval_minutes:g} minutes"
    console.print(
        f"[bold cyan]Monitoring[/bold cyan] {config.catalog.feed_url} "
        f"({mode}, {monitor.limit} items)"
    )
    try:
        exit_code = monitor.run(single_run=single_run, clean_downloads=clean_downloads)
    finally:
        components.close()

    if exit_code:
        console.print("[red]✗[/red] Every attempted episode failed")
        sys.exit(exit_code)


def _series_table(metadata: MetadataClient, candidates: list[Candidate]) -> Table:
    titles: dict[int, str | None] = {}
    for candidate in candidates:
        titles.setdefault(candidate.key.series_id, candidate.resolved.series_title)

    table = Table(title="Series")
    table.add_column("Series", style="cyan")
    table.add_column("Title")
    table.add_column("Published", justify="right")
    for series_id, fallback in titles.items():
        try:
            title = metadata.series_title(series_id) or fallback
            published = str(len(metadata.list_episodes(series_id)))
        except RemoteError as e:
            logger.warning(f"Could not load series {series_id}: {e}")
            title, published = fallback, "?"
        table.add_row(str(series_id), escape(title or "-"), published)
    return table


@app.command("check")
def check_command(
    limit: int | None = typer.Option(
        None, "--limit", "-l", min=1, help="Feed items to inspect (default: from config)"
    ),
) -> None:
    """Show what the next run would process, without downloading anything."""
    try:
        manager = ConfigManager()
        config = manager.load_config()
        retry = _catalog_retry(config)
        feed = FeedClient(
            config.catalog.feed_url, timeout=config.catalog.timeout_seconds, retry_config=retry
        )
        catalog = MappingCatalog(
            config.catalog.mapping_url, timeout=config.catalog.timeout_seconds, retry_config=retry
        )
        metadata = MetadataClient(
            config.metadata.api_url,
            config.metadata.api_key,
            timeout=config.metadata.timeout_seconds,
        )
        try:
            if not metadata.health():
                console.print(
                    "[yellow]![/yellow] Metadata API is not responding; "
                    "episode status will show as unknown"
                )
            items = feed.fetch(limit=limit or config.monitor.limit)
            resolver = CatalogResolver(catalog)
            candidates = [Candidate(item=item, resolved=resolver.resolve(item)) for item in items]
            result = DuplicateFilter().filter(candidates)

            table = Table(title=f"{len(items)} feed items")
            table.add_column("Episode", style="cyan")
            table.add_column("Release")
            table.add_column("Status")
            for candidate in result.selected:
                exists = metadata.episode_exists(candidate.key)
                if exists:
                    status = "[dim]published[/dim]"
                elif exists is None:
                    status = "[yellow]unknown[/yellow]"
                else:
                    status = "[green]new[/green]"
                table.add_row(str(candidate.key), escape(candidate.item.title), status)
            for candidate in result.duplicates:
                table.add_row(
                    str(candidate.key), escape(candidate.item.title), "[dim]duplicate[/dim]"
                )
            for candidate in result.invalid:
                table.add_row("-", escape(candidate.item.title), "[red]unresolved[/red]")
            console.print(table)
            if result.selected:
                console.print(_series_table(metadata, result.selected))
        finally:
            feed.close()
            catalog.close()
            metadata.close()
    except AnitorrentError as e:
        console.print(f"[red]✗[/red] Error: {e}")
        sys.exit(1)
