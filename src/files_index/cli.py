# cli.py
import json
import logging

import click
import requests

from files_index import __version__
from files_index.adapters.storage import StoreFactory
from files_index.config.settings import get_settings
from files_index.errors import MaintenanceTaskFailure, StoreAdapterError
from files_index.index.fallback import scan_store
from files_index.index.filters import build_query_filter
from files_index.index.info import get_index_info, get_index_storage_stats
from files_index.index.query import read_index
from files_index.tasks import (
    DELETE_OPERATIONS_ACTION,
    MAINTENANCE_ACTIONS,
    MERGE_ACTION,
    REBUILD_ACTION,
    run_maintenance_action,
)
from files_index.utils.log_setup import configure_logging

# Configure logging
logger = logging.getLogger(__name__)


class CliContext:
    """Settings and store loaded once for the invoked command."""

    def __init__(self):
        self.settings = get_settings()
        configure_logging(self.settings.log_level)
        self._store = None

    @property
    def store(self):
        if self._store is None:
            self._store = StoreFactory.get_store(self.settings)
        return self._store

    @property
    def index_config(self):
        return self.settings.index_config()


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def _run_action(ctx: CliContext, action: str) -> None:
    try:
        result = run_maintenance_action(ctx.store, ctx.index_config, action)
    except (MaintenanceTaskFailure, StoreAdapterError) as e:
        raise click.ClickException(f"{action} failed: {e}")
    print(f"✅ {action} {result.status}")
    _print_json({
        "version": result.version,
        "processed": result.processed,
        "applied": result.applied,
        "remaining": result.remaining,
        **result.details,
    })


@click.group()
@click.version_option(__version__)
@click.pass_context
def cli(ctx):
    """CLI commands for the Files Index service"""
    ctx.obj = CliContext()


@cli.command()
@click.pass_obj
def show_config(ctx: CliContext):
    """Show current configuration"""
    settings = ctx.settings

    print(f"Current Configuration for {settings.app_name}:")
    print(f"  Deployment Mode: {settings.deployment_mode}")
    print(f"  AWS Region: {settings.aws_region}")
    print(f"  AWS Endpoint: {settings.aws_endpoint_url}")
    print(f"  S3 Bucket: {settings.s3_bucket_name}")
    print(f"  Store: {'S3' if settings.uses_s3 else 'local'}")
    print(f"  Storage Dir: {settings.storage_dir}")
    print(f"  Scan Page Size: {settings.scan_page_size}")
    print(f"  Index Chunk Size: {settings.index_chunk_size}")
    print(f"  Lock TTL: {settings.lock_ttl_seconds}s")


@cli.command()
@click.option("--host", default="0.0.0.0", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@click.pass_obj
def serve(ctx: CliContext, host, port):
    """Run the HTTP API"""
    import uvicorn
    from files_index.main import create_app

    uvicorn.run(create_app(ctx.settings), host=host, port=port)


@cli.command(name="list")
@click.option("--dir", "directory", default="", help="Directory to list")
@click.option("--search", default="", help="Case-insensitive path substring")
@click.option("--recursive", is_flag=True, help="Include files of subdirectories")
@click.option("--start", default="0", help="Zero-based offset")
@click.option("--count", default="50", help="Page size; -1 for everything")
@click.option("--include-tags", default="", help="Comma separated tags a file must carry")
@click.option("--exclude-tags", default="", help="Comma separated tags a file must not carry")
@click.pass_obj
def list_files(ctx: CliContext, directory, search, recursive, start, count, include_tags, exclude_tags):
    """List files from the index, scanning the store if the index is unusable"""
    query_filter = build_query_filter(
        search=search,
        directory=directory,
        start=start,
        count=count,
        recursive="true" if recursive else None,
        include_tags=include_tags,
        exclude_tags=exclude_tags,
        default_count=ctx.settings.default_page_count,
    )
    result = read_index(ctx.store, query_filter)
    if not result.success:
        print("⚠️  Index unavailable, scanning the store")
        result = scan_store(ctx.store, query_filter, ctx.index_config)

    for directory_name in result.directories:
        print(f"  [dir]  {directory_name}/")
    for record in result.files:
        print(f"  {record.id}")
    print(f"{result.returned_count} of {result.total_count} files (indexed: {result.is_indexed})")


@cli.command()
@click.pass_obj
def info(ctx: CliContext):
    """Show index freshness and pending operations"""
    _print_json(get_index_info(ctx.store, ctx.index_config))


@cli.command()
@click.pass_obj
def stats(ctx: CliContext):
    """Show the storage footprint of the index"""
    _print_json(get_index_storage_stats(ctx.store, ctx.index_config))


@cli.command()
@click.pass_obj
def merge(ctx: CliContext):
    """Fold pending operations into the index"""
    _run_action(ctx, MERGE_ACTION)


@cli.command()
@click.pass_obj
def rebuild(ctx: CliContext):
    """Rebuild the index from a full store scan"""
    _run_action(ctx, REBUILD_ACTION)


@cli.command()
@click.confirmation_option(prompt="This discards every unmerged operation. Continue?")
@click.pass_obj
def clear_operations(ctx: CliContext):
    """Delete all pending operations"""
    _run_action(ctx, DELETE_OPERATIONS_ACTION)


@cli.command()
@click.argument("action", type=click.Choice(list(MAINTENANCE_ACTIONS) + ["info", "index-storage-stats"]))
@click.option("--api-url", default="http://localhost:8000", show_default=True, help="Base URL of a running service")
def trigger(action, api_url):
    """Ask a running service to perform an index action"""
    url = f"{api_url.rstrip('/')}/v1/files"
    try:
        response = requests.get(url, params={"action": action}, timeout=30.0)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        raise click.ClickException(f"Request to {url} failed: {e}")
    _print_json(response.json())


if __name__ == "__main__":
    cli()
