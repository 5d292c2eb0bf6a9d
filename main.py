"""Application entry point — wires services and runs a library scan."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

import httpx
from loguru import logger

from gameshelf.config import Config, get_config
from gameshelf.context import AppContext
from gameshelf.core.asset_cache import AssetCache
from gameshelf.core.importer import ImportOrchestrator
from gameshelf.core.metadata import MetadataResolver
from gameshelf.core.pipeline import LibraryPipeline
from gameshelf.core.reconciler import Reconciler
from gameshelf.core.scheduler import BackgroundScanScheduler
from gameshelf.data.library_store import LibraryStore
from gameshelf.logger import setup_logger
from gameshelf.providers.base import MetadataProvider, ProviderUnavailableError
from gameshelf.providers.igdb import IGDBProvider
from gameshelf.providers.rawg import RAWGProvider
from gameshelf.providers.steam import SteamStoreProvider
from gameshelf.providers.steamgriddb import SteamGridDBProvider
from gameshelf.scanners.manager import ScannerManager


class ConsoleProgress:
    def on_progress(self, message: str) -> None:
        print(f"  {message}")


def build_providers(config: Config, client: httpx.AsyncClient) -> list[MetadataProvider]:
    """Register metadata providers (credentialed ones only when configured)."""
    meta = config.metadata_config
    providers: list[MetadataProvider] = [
        SteamStoreProvider(client=client, timeout=config.provider_timeout),
        SteamGridDBProvider(
            meta.get("steamgriddb_api_key", ""), client=client, timeout=config.mandatory_timeout
        ),
    ]
    if meta.get("igdb_client_id"):
        providers.append(
            IGDBProvider(
                meta["igdb_client_id"],
                meta.get("igdb_client_secret", ""),
                client=client,
                timeout=config.provider_timeout,
            )
        )
    if meta.get("rawg_api_key"):
        providers.append(RAWGProvider(meta["rawg_api_key"], client=client, timeout=config.provider_timeout))
    return providers


def create_context(config: Config, client: httpx.AsyncClient) -> AppContext:
    """Wire all services and return an AppContext."""
    scanner_manager = ScannerManager()
    scanner_manager.discover_scanners()

    reconciler = Reconciler()
    orchestrator = ImportOrchestrator(scanner_manager)
    resolver = MetadataResolver.from_config(config, build_providers(config, client))
    asset_cache = AssetCache(
        config.image_cache_dir,
        client=client,
        scheme=config.locator_scheme,
        broken_threshold=config.broken_threshold,
    )

    library_store = LibraryStore(config.data_dir, reconciler)
    library_store.load()

    pipeline = LibraryPipeline(config, orchestrator, reconciler, resolver, asset_cache, library_store)

    return AppContext(
        config=config,
        http_client=client,
        scanner_manager=scanner_manager,
        orchestrator=orchestrator,
        reconciler=reconciler,
        resolver=resolver,
        asset_cache=asset_cache,
        library_store=library_store,
        pipeline=pipeline,
    )


async def scan_once(ctx: AppContext, do_import: bool) -> int:
    progress = ConsoleProgress()
    result = await ctx.pipeline.scan(progress)
    print(
        f"{len(result.new_games)} new, {len(result.known)} already in library, "
        f"{len(result.missing_games)} missing"
    )
    for game in result.new_games:
        print(f"  + [{game.source}] {game.title}  ({game.install_path})")
    for entry in result.missing_games:
        print(f"  ? [{entry.source}] {entry.title}  ({entry.id})")

    if not do_import or not result.new_games:
        return 0
    try:
        report = await ctx.pipeline.import_games(result.new_games, progress)
    except ProviderUnavailableError as e:
        logger.error(f"Cannot import: {e}")
        print("Metadata provider unavailable: check the SteamGridDB API key in config.json")
        return 2
    print(f"Imported {len(report.imported)} game(s); {len(report.pending)} need a manual match")
    for pending in report.pending:
        best = pending.match.best
        hint = f" (best guess: {best.title}, {pending.match.confidence:.0%})" if best else ""
        print(f"  ~ {pending.scan_result.title}{hint}")
    return 0


async def watch(ctx: AppContext, do_import: bool) -> int:
    """Rescan in the background until interrupted."""
    scheduler = BackgroundScanScheduler(
        lambda: scan_once(ctx, do_import), interval=ctx.config.background_scan_interval
    )
    ctx.scheduler = scheduler
    scheduler.start()
    try:
        await scheduler.trigger()
        await asyncio.Event().wait()
    finally:
        await scheduler.stop()
    return 0


async def run(args: argparse.Namespace) -> int:
    config = Config(Path(args.data_dir)) if args.data_dir else get_config()
    setup_logger(config.data_dir / "logs", verbose=args.verbose)

    async with httpx.AsyncClient(
        timeout=config.provider_timeout,
        follow_redirects=True,
        proxy=config.proxy_url or None,
    ) as client:
        ctx = create_context(config, client)
        if args.watch or config.background_scan_enabled:
            return await watch(ctx, args.do_import)
        return await scan_once(ctx, args.do_import)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="gameshelf", description="Scan and catalog installed games.")
    parser.add_argument("--data-dir", help="Directory holding config.json, library.json and the cache")
    parser.add_argument(
        "--import", dest="do_import", action="store_true", help="Match and import newly found games"
    )
    parser.add_argument("--watch", action="store_true", help="Keep running and rescan periodically")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging to the console")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Application entry point."""
    args = parse_args(argv)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
