"""Main CLI interface for the HTML Catalog."""

import click
import json
import csv
import io
from functools import wraps
from pathlib import Path
from typing import List, Optional
from rich.console import Console
from rich.table import Table
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TaskProgressColumn

from .. import __version__
from ..core.blobs import FileSystemBlobStorage
from ..core.config import ConfigManager, LoggingConfig
from ..core.error_handler import ErrorHandler
from ..core.exceptions import (
    BlobStorageError, CatalogError, ConfigurationError, DuplicateNameError,
    EntityInUseError, NotFoundError, PersistenceError, ScanError, ValidationError
)
from ..core.logging_config import setup_logging
from ..core.models import ENTITY_TYPES, EntityKind, FileRecord, ScanOptions, SearchFilters
from ..core.persistence import SqliteBackend, create_backend
from ..core.scanner import HTML_EXTENSIONS, HtmlScanner
from ..core.store import CatalogStore, open_store
from ..core.validation import verify_invariants

# Initialize Rich console and error handler
console = Console()
error_handler = ErrorHandler()

OUTPUT_FORMATS = ["table", "json", "csv"]


@click.group()
@click.version_option(version=__version__)
@click.option('--config', '-c', type=click.Path(path_type=Path),
              help='Configuration file path')
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']),
              help='Set logging level (overrides config)')
@click.option('--log-file', type=click.Path(path_type=Path),
              help='Log file path (overrides config)')
@click.pass_context
def cli(ctx, config, log_level, log_file):
    """HTML Catalog - Organize HTML documents with tags, models and categories."""
    config_manager = ConfigManager(config)
    app_config = config_manager.get_config()

    # Override logging config if command line options provided
    if log_level or log_file:
        logging_config = LoggingConfig(
            level=log_level or app_config.logging.level,
            format=app_config.logging.format,
            file_enabled=app_config.logging.file_enabled or bool(log_file),
            file_path=log_file or app_config.logging.file_path,
            file_max_size_mb=app_config.logging.file_max_size_mb,
            file_backup_count=app_config.logging.file_backup_count,
            console_enabled=app_config.logging.console_enabled,
            audit_enabled=app_config.logging.audit_enabled,
        )
    else:
        logging_config = app_config.logging

    logging_manager = setup_logging(logging_config)
    if logging_config.level.upper() == 'DEBUG':
        logging_manager.enable_debug_logging()

    # Store config in context for subcommands; the catalog opens on first use
    ctx.ensure_object(dict)
    ctx.obj['config'] = app_config
    ctx.obj['config_manager'] = config_manager
    ctx.obj['logging_manager'] = logging_manager


def get_store(ctx) -> CatalogStore:
    """Open the configured catalog once per invocation."""
    obj = ctx.find_root().obj
    if 'store' not in obj:
        obj['store'] = open_store(create_backend(obj['config'].storage))
    return obj['store']


def get_blobs(ctx) -> FileSystemBlobStorage:
    obj = ctx.find_root().obj
    if 'blobs' not in obj:
        obj['blobs'] = FileSystemBlobStorage(obj['config'].storage.blob_dir)
    return obj['blobs']


def handle_cli_error(error: Exception, operation: str = "operation") -> None:
    """
    Handle CLI errors with appropriate user feedback.

    Args:
        error: The exception that occurred
        operation: Description of the operation that failed
    """
    if isinstance(error, NotFoundError):
        console.print(f"[bold red]Not Found:[/bold red] {error}")
        console.print("[yellow]Use the list commands to see available ids and names.[/yellow]")
    elif isinstance(error, DuplicateNameError):
        console.print(f"[bold red]Duplicate Name:[/bold red] {error}")
        console.print("[yellow]Choose a different name or rename the existing entry first.[/yellow]")
    elif isinstance(error, EntityInUseError):
        console.print(f"[bold red]In Use:[/bold red] {error}")
        console.print("[yellow]Reassign or delete the files that use it, then try again.[/yellow]")
    elif isinstance(error, ValidationError):
        console.print(f"[bold red]Invalid Input:[/bold red] {error}")
    elif isinstance(error, PersistenceError):
        console.print(f"[bold red]Storage Error:[/bold red] {error}")
        console.print("[yellow]The catalog was not changed. Check that the storage location is writable.[/yellow]")
    elif isinstance(error, BlobStorageError):
        console.print(f"[bold red]Content Storage Error:[/bold red] {error}")
    elif isinstance(error, ScanError):
        console.print(f"[bold red]Scan Error:[/bold red] {error}")
        console.print("[yellow]Please check that the path exists and is accessible.[/yellow]")
    elif isinstance(error, ConfigurationError):
        console.print(f"[bold red]Configuration Error:[/bold red] {error}")
        console.print("[yellow]Use 'config show' to review the current settings.[/yellow]")
    else:
        console.print(f"[bold red]Unexpected error during {operation}:[/bold red] {error}")

    error_handler.logger.debug(f"CLI {operation} failed", exc_info=error)


def reports_errors(operation: str):
    """Render catalog errors with handle_cli_error and abort the command."""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except (CatalogError, OSError) as e:
                handle_cli_error(e, operation)
                raise click.Abort()
        return wrapper
    return decorator


def resolve_entity(store: CatalogStore, kind: EntityKind, value: str):
    """
    Look up an entity by id, falling back to its exact name.

    Raises:
        NotFoundError: If neither matches
    """
    try:
        return store.get_entity(kind, value)
    except NotFoundError:
        entity = store.find_entity_by_name(kind, value)
        if entity is None:
            raise
        return entity


def _reference_meta(store: CatalogStore, category: Optional[str], tags, model: Optional[str]) -> dict:
    meta = {}
    if category:
        meta['category'] = resolve_entity(store, EntityKind.CATEGORY, category).id
    if tags:
        meta['tags'] = [resolve_entity(store, EntityKind.TAG, tag).id for tag in tags]
    if model:
        meta['model'] = resolve_entity(store, EntityKind.MODEL, model).id
    return meta


def _search_filters(store, text, category, tags, model, limit, offset) -> SearchFilters:
    refs = _reference_meta(store, category, tags, model)
    return SearchFilters(
        text=text,
        category=refs.get('category'),
        tags=refs.get('tags'),
        model=refs.get('model'),
        limit=limit,
        offset=offset,
    )


def filter_options(func):
    """Options shared by ``files list`` and ``files search``."""
    options = [
        click.option("--category", "-c", help="Filter by category name or id"),
        click.option("--tag", "-t", "tags", multiple=True, help="Filter by tag name or id (repeatable, any matches)"),
        click.option("--model", "-m", help="Filter by model name or id"),
        click.option("--format", "-f", "output_format", type=click.Choice(OUTPUT_FORMATS), default="table",
                     help="Output format"),
        click.option("--limit", type=int, default=100, help="Maximum number of results to return"),
        click.option("--offset", type=int, default=0, help="Number of results to skip"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


# ----------------------------------------------------------------------
# Files

@cli.group()
def files():
    """Manage catalogued HTML files."""
    pass


@files.command('list')
@filter_options
@click.pass_context
@reports_errors("list files")
def list_files(ctx, category, tags, model, output_format, limit, offset):
    """List active files."""
    store = get_store(ctx)
    results = store.search(_search_filters(store, None, category, tags, model, limit, offset))
    _display_file_results(store, results, output_format)

    if output_format == "table":
        if not results:
            console.print("[yellow]No files found in the catalog.[/yellow]")
        else:
            console.print(f"\n[bold green]Listed {len(results)} file(s)[/bold green]")


@files.command('search')
@click.argument("query")
@filter_options
@click.pass_context
@reports_errors("search")
def search_files(ctx, query, category, tags, model, output_format, limit, offset):
    """
    Search active files. All keywords must match; '*' matches any run of
    characters and '?' exactly one.
    """
    store = get_store(ctx)
    results = store.search(_search_filters(store, query, category, tags, model, limit, offset))
    _display_file_results(store, results, output_format)

    if output_format == "table":
        if not results:
            console.print("[yellow]No files found matching the search criteria.[/yellow]")
        else:
            console.print(f"\n[bold green]Found {len(results)} file(s)[/bold green]")


@files.command('show')
@click.argument("file_id")
@click.option("--format", "-f", "output_format", type=click.Choice(["table", "json"]), default="table",
              help="Output format")
@click.option("--no-count", is_flag=True, help="Don't record this as an access")
@click.pass_context
@reports_errors("show file")
def show_file(ctx, file_id, output_format, no_count):
    """Show one file. Counts as an access unless --no-count is given."""
    store = get_store(ctx)
    record = store.peek_file(file_id) if no_count else store.get_file(file_id)

    if output_format == "json":
        click.echo(json.dumps(record.to_dict(), indent=2, ensure_ascii=False))
        return

    names = _entity_names(store)
    table = Table(show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("ID", record.id)
    table.add_row("Title", record.title)
    table.add_row("Original name", record.original_name)
    table.add_row("Category", names[EntityKind.CATEGORY].get(record.category, record.category))
    table.add_row("Tags", ", ".join(names[EntityKind.TAG].get(tag, tag) for tag in record.tags))
    table.add_row("Model", names[EntityKind.MODEL].get(record.model, record.model or ""))
    table.add_row("Description", record.description)
    table.add_row("Background", record.background_text)
    table.add_row("Prompt", record.prompt_text)
    table.add_row("Accesses", str(record.access_count))
    table.add_row("Created", record.created_at.strftime("%Y-%m-%d %H:%M"))
    table.add_row("Updated", record.updated_at.strftime("%Y-%m-%d %H:%M"))
    console.print(table)


@files.command('add')
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--category", "-c", help="Category name or id (default from config)")
@click.option("--tag", "-t", "tags", multiple=True, help="Tag name or id (repeatable)")
@click.option("--model", "-m", help="Model name or id")
@click.option("--title", help="Title (defaults to the file name)")
@click.option("--description", default="", help="Description")
@click.option("--background", "background_text", default="", help="Background text")
@click.option("--prompt", "prompt_text", default="", help="Prompt text")
@click.pass_context
@reports_errors("add file")
def add_file(ctx, path, category, tags, model, title, description, background_text, prompt_text):
    """Add one HTML file to the catalog."""
    if path.suffix.lower() not in HTML_EXTENSIONS:
        raise ValidationError("Only .html and .htm files can be added")

    store = get_store(ctx)
    scanner = HtmlScanner(store, get_blobs(ctx), ctx.find_root().obj['config'].scan)
    meta = _reference_meta(store, category, tags, model)
    meta.update(description=description, background_text=background_text, prompt_text=prompt_text)
    if title:
        meta['title'] = title
    if 'category' not in meta:
        meta['category'] = scanner.default_category_id()

    record = scanner.ingest_file(path, meta)
    if record is None:
        raise ValidationError(f"{path} exceeds the configured maximum file size")
    console.print(f"[green]✓[/green] Added {record.title}")
    click.echo(record.id)


@files.command('update')
@click.argument("file_id")
@click.option("--category", "-c", help="Category name or id")
@click.option("--tag", "-t", "tags", multiple=True, help="Replace tags (repeatable)")
@click.option("--clear-tags", is_flag=True, help="Remove all tags")
@click.option("--model", "-m", help="Model name or id")
@click.option("--clear-model", is_flag=True, help="Remove the model")
@click.option("--title", help="Title")
@click.option("--description", help="Description")
@click.option("--background", "background_text", help="Background text")
@click.option("--prompt", "prompt_text", help="Prompt text")
@click.pass_context
@reports_errors("update file")
def update_file(ctx, file_id, category, tags, clear_tags, model, clear_model, title,
                description, background_text, prompt_text):
    """Change the metadata of a file."""
    store = get_store(ctx)
    partial = _reference_meta(store, category, tags, model)
    if clear_tags:
        partial['tags'] = []
    if clear_model:
        partial['model'] = None
    for key, value in (("title", title), ("description", description),
                       ("background_text", background_text), ("prompt_text", prompt_text)):
        if value is not None:
            partial[key] = value

    if not partial:
        console.print("[yellow]Nothing to update.[/yellow]")
        return

    record = store.update_file(file_id, partial)
    console.print(f"[green]✓[/green] Updated {record.title}")


@files.command('delete')
@click.argument("file_id")
@click.pass_context
@reports_errors("delete file")
def delete_file(ctx, file_id):
    """Soft-delete a file. Its content stays in storage."""
    record = get_store(ctx).soft_delete_file(file_id)
    console.print(f"[green]✓[/green] Deleted {record.title}")


# ----------------------------------------------------------------------
# Tags, models, categories

def _entity_group(kind: EntityKind) -> click.Group:
    """Build the list/add/rename/update/delete command group for one entity kind."""
    entity_type = ENTITY_TYPES[kind]
    label = kind.value

    @click.group(name=kind.plural, help=f"Manage {kind.plural}.")
    def group():
        pass

    def field_options(func):
        for field_name in reversed(entity_type.EDITABLE_FIELDS):
            func = click.option(f"--{field_name}", default=None, help=f"{label.capitalize()} {field_name}")(func)
        return func

    @group.command('list', help=f"List {kind.plural} with their usage counts.")
    @click.option("--format", "-f", "output_format", type=click.Choice(OUTPUT_FORMATS), default="table",
                  help="Output format")
    @click.pass_context
    @reports_errors(f"list {kind.plural}")
    def list_command(ctx, output_format):
        store = get_store(ctx)
        usage = store.get_stats().usage(kind)
        rows = []
        for entity in store.list_entities(kind):
            row = {"id": entity.id, "name": entity.name}
            row.update({field_name: getattr(entity, field_name) for field_name in entity_type.EDITABLE_FIELDS})
            row["usage_count"] = usage.get(entity.id, 0)
            rows.append(row)
        _display_rows(rows, output_format, title=kind.plural.capitalize())

    @group.command('add', help=f"Create a {label}.")
    @click.argument("name")
    @field_options
    @click.pass_context
    @reports_errors(f"add {label}")
    def add_command(ctx, name, **fields):
        entity = get_store(ctx).create_entity(kind, name, **fields)
        console.print(f"[green]✓[/green] Created {label} {entity.name}")
        click.echo(entity.id)

    @group.command('rename', help=f"Rename a {label} (by name or id).")
    @click.argument("entity")
    @click.argument("new_name")
    @click.pass_context
    @reports_errors(f"rename {label}")
    def rename_command(ctx, entity, new_name):
        store = get_store(ctx)
        current = resolve_entity(store, kind, entity)
        renamed = store.rename_entity(kind, current.id, new_name)
        console.print(f"[green]✓[/green] Renamed {label} {current.name} to {renamed.name}")

    @group.command('update', help=f"Edit the fields of a {label} (by name or id).")
    @click.argument("entity")
    @field_options
    @click.pass_context
    @reports_errors(f"update {label}")
    def update_command(ctx, entity, **fields):
        store = get_store(ctx)
        current = resolve_entity(store, kind, entity)
        updated = store.update_entity(kind, current.id, **fields)
        console.print(f"[green]✓[/green] Updated {label} {updated.name}")

    @group.command('delete', help=f"Delete a {label} that no active file uses.")
    @click.argument("entity")
    @click.pass_context
    @reports_errors(f"delete {label}")
    def delete_command(ctx, entity):
        store = get_store(ctx)
        current = resolve_entity(store, kind, entity)
        store.delete_entity(kind, current.id)
        console.print(f"[green]✓[/green] Deleted {label} {current.name}")

    return group


for _kind in EntityKind:
    cli.add_command(_entity_group(_kind))


# ----------------------------------------------------------------------
# Scanning, stats, import/export

@cli.command()
@click.argument("directory", type=click.Path(path_type=Path))
@click.option("--recursive/--no-recursive", default=None, help="Scan directories recursively (default from config)")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--max-depth", type=int, help="Maximum directory depth to scan (default from config)")
@click.option("--include-hidden", is_flag=True, help="Include hidden files in scan (default from config)")
@click.option("--category", "-c", help="Category for every ingested file (default from config)")
@click.option("--tag", "-t", "tags", multiple=True, help="Tag every ingested file (repeatable)")
@click.option("--model", "-m", help="Model for every ingested file")
@click.pass_context
@reports_errors("scan")
def scan(ctx, directory: Path, recursive: bool, verbose: bool, max_depth: int, include_hidden: bool,
         category: str, tags, model: str):
    """Scan a directory and add every HTML file to the catalog."""
    app_config = ctx.obj['config']

    # Use config defaults if options not specified
    if recursive is None:
        recursive = app_config.scan.default_recursive
    if max_depth is None:
        max_depth = app_config.scan.default_max_depth
    if not include_hidden:
        include_hidden = app_config.scan.default_include_hidden

    options = ScanOptions(
        recursive=recursive,
        verbose=verbose,
        max_depth=max_depth,
        include_hidden=include_hidden
    )

    store = get_store(ctx)
    shared_meta = _reference_meta(store, category, tags, model)

    if verbose:
        console.print(f"[bold blue]Starting scan of {directory}[/bold blue]")
        console.print(f"Options: recursive={recursive}, max_depth={max_depth}, include_hidden={include_hidden}")

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console
        ) as progress:
            scan_task = progress.add_task("Ingesting files...", total=None)

            def on_progress(current, total):
                progress.update(scan_task, completed=current, total=total)

            scanner = HtmlScanner(store, get_blobs(ctx), app_config.scan, progress_callback=on_progress)
            try:
                result = scanner.scan_directory(directory, options, shared_meta)
            except KeyboardInterrupt:
                scanner.cancel_scan()
                console.print("\n[yellow]Scan cancelled by user[/yellow]")
                raise click.Abort()
    else:
        scanner = HtmlScanner(store, get_blobs(ctx), app_config.scan)
        result = scanner.scan_directory(directory, options, shared_meta)

    console.print(f"\n[bold green]✓ Scan completed[/bold green] in {result.duration:.2f} seconds")
    console.print(f"HTML files found: [bold]{result.total_files}[/bold]")
    console.print(f"Files added: [bold green]{result.ingested_files}[/bold green]")
    if result.skipped_files:
        console.print(f"Files skipped (too large): [bold yellow]{result.skipped_files}[/bold yellow]")

    if result.errors:
        console.print(f"[bold yellow]Warnings: {len(result.errors)}[/bold yellow]")
        if verbose:
            for error in result.errors[:10]:
                console.print(f"  [yellow]- {error}[/yellow]")
            if len(result.errors) > 10:
                console.print(f"  [dim]... and {len(result.errors) - 10} more warnings[/dim]")

    if result.total_files > 0:
        console.print(f"Success rate: [bold]{result.success_rate * 100:.1f}%[/bold]")


@cli.command()
@click.option("--format", "-f", "output_format", type=click.Choice(["table", "json"]), default="table",
              help="Output format")
@click.pass_context
@reports_errors("stats")
def stats(ctx, output_format):
    """Show catalog statistics and usage counts."""
    store = get_store(ctx)
    current = store.get_stats()

    if output_format == "json":
        click.echo(json.dumps(current.to_dict(), indent=2))
        return

    console.print("[bold blue]Catalog Statistics:[/bold blue]\n")
    console.print(f"  Files: [bold]{current.total_files}[/bold]")
    console.print(f"  Tags: [bold]{current.total_tags}[/bold]")
    console.print(f"  Models: [bold]{current.total_models}[/bold]")
    console.print(f"  Categories: [bold]{current.total_categories}[/bold]")
    console.print(f"  Total accesses: [bold]{current.total_access}[/bold]")

    for kind in EntityKind:
        entities = store.list_entities(kind)
        if not entities:
            continue
        table = Table(title=f"{kind.value.capitalize()} usage", show_header=True, header_style="bold magenta")
        table.add_column("Name", style="cyan")
        table.add_column("Files", justify="right")
        usage = current.usage(kind)
        for entity in entities:
            table.add_row(entity.name, str(usage.get(entity.id, 0)))
        console.print(table)


@cli.command('export')
@click.argument('file_path', type=click.Path(dir_okay=False, path_type=Path))
@click.pass_context
@reports_errors("export")
def export_catalog(ctx, file_path):
    """Export the whole catalog to a JSON file."""
    count = get_store(ctx).export_to(file_path)
    console.print(f"[green]✓ Exported {count} file record(s) to {file_path}[/green]")


@cli.command('import')
@click.argument('file_path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.confirmation_option(prompt='Importing replaces the whole catalog. Continue?')
@click.pass_context
@reports_errors("import")
def import_catalog(ctx, file_path):
    """Replace the catalog with the contents of an export file."""
    store = get_store(ctx)
    issues = store.import_from(file_path)
    console.print(f"[green]✓ Imported {store.get_stats().total_files} active file(s) from {file_path}[/green]")
    if issues:
        console.print(f"[yellow]{len(issues)} reference(s) repaired during import[/yellow]")
        for issue in issues[:10]:
            console.print(f"  [yellow]- {issue}[/yellow]")


@cli.command()
@click.pass_context
@reports_errors("check")
def check(ctx):
    """Verify catalog consistency and storage health."""
    store = get_store(ctx)
    problems = verify_invariants(store.snapshot(), store.get_stats())

    if isinstance(store.backend, SqliteBackend) and not store.backend.health_check():
        problems.append("SQLite integrity check failed")

    if problems:
        console.print(f"[bold red]Found {len(problems)} problem(s):[/bold red]")
        for problem in problems:
            console.print(f"  [red]- {problem}[/red]")
        ctx.exit(1)

    console.print("[bold green]✓ Catalog is consistent[/bold green]")


@cli.command()
@click.option("--port", "-p", type=int, help="Port to run the web server on (default from config)")
@click.option("--host", "-h", help="Host to bind the web server to (default from config)")
@click.option("--debug", is_flag=True, help="Enable debug mode")
@click.pass_context
@reports_errors("web server")
def web(ctx, port: int, host: str, debug: bool):
    """Start the JSON API server."""
    from ..web.app import create_app

    web_config = ctx.obj['config'].web
    host = host or web_config.host
    port = port or web_config.port
    debug = debug or web_config.debug
    if debug:
        ctx.obj['logging_manager'].enable_debug_logging()

    console.print("[bold blue]Starting HTML Catalog API...[/bold blue]")
    console.print(f"Server: http://{host}:{port}/api")
    console.print(f"Debug mode: {'enabled' if debug else 'disabled'}")
    console.print("\n[bold green]Press Ctrl+C to stop the server[/bold green]\n")

    app = create_app(get_store(ctx), get_blobs(ctx), web_config)
    try:
        app.run(host=host, port=port, debug=debug)
    except KeyboardInterrupt:
        console.print("\n[bold yellow]Server stopped by user[/bold yellow]")


# ----------------------------------------------------------------------
# Configuration

@cli.group()
def config():
    """Configuration management commands."""
    pass


@config.command('show')
@click.pass_context
def show_config(ctx):
    """Show current configuration."""
    config_manager = ctx.obj['config_manager']

    console.print("[bold blue]Current Configuration:[/bold blue]")
    console.print(f"[dim]{config_manager.config_file}[/dim]")
    for section, values in config_manager.to_dict().items():
        console.print(f"\n[bold]{section.capitalize()}:[/bold]")
        for key, value in values.items():
            console.print(f"  {key}: {value}")


@config.command('set')
@click.argument('key')
@click.argument('value')
@click.pass_context
@reports_errors("set configuration")
def set_config(ctx, key, value):
    """Set a configuration value. Use dot notation (e.g., storage.backend)."""
    converted = ctx.obj['config_manager'].set_value(key, value)
    console.print(f"[green]✓[/green] Set {key} = {converted}")


@config.command('reset')
@click.confirmation_option(prompt='Are you sure you want to reset all configuration to defaults?')
@click.pass_context
@reports_errors("reset configuration")
def reset_config(ctx):
    """Reset configuration to default values."""
    ctx.obj['config_manager'].reset_to_defaults()
    console.print("[green]✓ Configuration reset to defaults[/green]")


@config.command('export')
@click.argument('file_path', type=click.Path(path_type=Path))
@click.pass_context
@reports_errors("export configuration")
def export_config(ctx, file_path):
    """Export configuration to JSON file."""
    ctx.obj['config_manager'].export_to_json(file_path)
    console.print(f"[green]✓ Configuration exported to {file_path}[/green]")


# ----------------------------------------------------------------------
# Output helpers

def _entity_names(store: CatalogStore) -> dict:
    return {
        kind: {entity.id: entity.name for entity in store.list_entities(kind)}
        for kind in EntityKind
    }


def _file_row(record: FileRecord, names: dict) -> dict:
    return {
        "id": record.id,
        "title": record.title,
        "original_name": record.original_name,
        "category": names[EntityKind.CATEGORY].get(record.category, record.category),
        "tags": [names[EntityKind.TAG].get(tag, tag) for tag in record.tags],
        "model": names[EntityKind.MODEL].get(record.model, record.model) if record.model else None,
        "access_count": record.access_count,
        "updated_at": record.updated_at.isoformat(),
    }


def _display_file_results(store: CatalogStore, results: List[FileRecord], output_format: str):
    """Display file results in the specified format."""
    names = _entity_names(store)
    rows = [_file_row(record, names) for record in results]

    if output_format == "table":
        if not rows:
            return
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Title", style="cyan", no_wrap=False, max_width=30)
        table.add_column("Category", style="green")
        table.add_column("Tags", style="yellow", max_width=30)
        table.add_column("Model", style="blue")
        table.add_column("Accesses", justify="right")
        table.add_column("ID", style="dim")
        for row in rows:
            table.add_row(
                row["title"],
                row["category"],
                ", ".join(row["tags"]),
                row["model"] or "",
                str(row["access_count"]),
                row["id"],
            )
        console.print(table)
    else:
        _display_rows(rows, output_format)


def _display_rows(rows: List[dict], output_format: str, title: Optional[str] = None):
    """Render plain dictionaries as a table, JSON or CSV."""
    if output_format == "json":
        click.echo(json.dumps(rows, indent=2, ensure_ascii=False))
        return

    if output_format == "csv":
        output = io.StringIO()
        if rows:
            writer = csv.DictWriter(output, fieldnames=list(rows[0].keys()))
            writer.writeheader()
            for row in rows:
                writer.writerow({
                    key: ";".join(value) if isinstance(value, list) else value
                    for key, value in row.items()
                })
        click.echo(output.getvalue().strip())
        return

    if not rows:
        console.print("[yellow]Nothing to show.[/yellow]")
        return

    table = Table(title=title, show_header=True, header_style="bold magenta")
    for key in rows[0]:
        table.add_column(key.replace("_", " ").capitalize())
    for row in rows:
        table.add_row(*[str(value) for value in row.values()])
    console.print(table)
