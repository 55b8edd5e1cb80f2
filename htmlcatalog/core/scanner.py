"""Directory scanner that ingests HTML files into the catalog."""

import time
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional

from .blobs import FileSystemBlobStorage
from .config import ScanConfig
from .error_handler import ErrorHandler
from .exceptions import BlobStorageError, CatalogError, ScanError
from .models import EntityKind, FileRecord, ScanOptions, ScanResult
from .store import CatalogStore


HTML_EXTENSIONS = {".html", ".htm"}


class HtmlScanner:
    """Finds HTML files on disk and registers each one as a catalog file."""

    def __init__(self, store: CatalogStore, blobs: FileSystemBlobStorage,
                 config: Optional[ScanConfig] = None,
                 progress_callback: Optional[Callable[[int, int], None]] = None):
        """
        Initialize the scanner.

        Args:
            store: Catalog the files are registered in
            blobs: Storage the file contents are copied to
            config: Scan defaults (category, size limit)
            progress_callback: Optional callback called with (processed_count, total_count)
        """
        self.store = store
        self.blobs = blobs
        self.config = config or ScanConfig()
        self.progress_callback = progress_callback
        self.error_handler = ErrorHandler()
        self.logger = logging.getLogger(__name__)
        self._cancelled = False

    def scan_directory(self, path: Path, options: ScanOptions,
                       shared_meta: Optional[Dict[str, Any]] = None) -> ScanResult:
        """
        Ingest every HTML file below a directory.

        Each file is stored as a blob and registered with its file name as
        title. Files without an explicit category go to the configured
        default category, which is created when missing. A file that fails
        is recorded in the result and does not stop the scan.

        Args:
            path: Directory to scan
            options: Scanning options
            shared_meta: Metadata applied to every ingested file (tags, model, category, ...)

        Returns:
            ScanResult with operation details

        Raises:
            ScanError: If the path is not a readable directory
        """
        start_time = time.time()
        path = Path(path)
        self._validate_scan_path(path)
        self._cancelled = False

        meta = dict(shared_meta or {})
        if not meta.get("category"):
            meta["category"] = self.default_category_id()

        candidates = list(self.find_html_files(path, options))
        total = len(candidates)
        ingested = 0
        skipped = 0
        errors = []

        for index, file_path in enumerate(candidates, start=1):
            if self._cancelled:
                errors.append("Scan was cancelled by user")
                self.logger.info("Scan cancelled by user")
                break

            try:
                if self.ingest_file(file_path, meta) is not None:
                    ingested += 1
                else:
                    skipped += 1
            except (CatalogError, OSError) as e:
                error_msg = f"Could not ingest {file_path}: {e}"
                errors.append(error_msg)
                if options.verbose:
                    self.logger.warning(error_msg)

            if self.progress_callback:
                try:
                    self.progress_callback(index, total)
                except Exception as e:
                    self.logger.warning(f"Progress callback error: {e}")

        duration = time.time() - start_time
        if errors:
            self.error_handler.log_error_summary([ScanError(err) for err in errors], "directory scan")

        self.logger.info(f"Scanned {path}: {ingested} ingested, {skipped} skipped, {len(errors)} errors")
        return ScanResult(total, ingested, skipped, errors, duration)

    def ingest_file(self, file_path: Path, meta: Dict[str, Any]) -> Optional[FileRecord]:
        """
        Copy one HTML file into blob storage and register it.

        Returns:
            The new record, or None if the file was skipped as too large
        """
        size = file_path.stat().st_size
        if size > self.config.max_file_size_mb * 1024 * 1024:
            self.logger.info(f"Skipping {file_path}: {size} bytes exceeds the size limit")
            return None

        ref = self.blobs.store(file_path.read_bytes())
        record_meta = dict(meta)
        record_meta["original_name"] = file_path.name
        record_meta.setdefault("title", file_path.name)
        try:
            record = self.store.create_file(record_meta, ref)
        except CatalogError:
            # Don't leave orphaned content behind
            try:
                self.blobs.delete(ref)
            except BlobStorageError as e:
                self.logger.warning(f"Could not remove content {ref}: {e}")
            raise
        return record

    def find_html_files(self, path: Path, options: ScanOptions) -> Iterator[Path]:
        """
        Yield HTML files below ``path`` honouring the recursion, depth and hidden-file options.
        """
        pattern = "**/*" if options.recursive else "*"
        try:
            items = sorted(path.glob(pattern))
        except OSError as e:
            raise ScanError(f"Error accessing directory {path}: {e}") from e

        for item in items:
            relative = item.relative_to(path)
            if not options.include_hidden and any(part.startswith(".") for part in relative.parts):
                continue
            if options.max_depth is not None and len(relative.parts) - 1 > options.max_depth:
                continue
            if item.suffix.lower() not in HTML_EXTENSIONS:
                continue
            try:
                if item.is_file():
                    yield item
            except OSError as e:
                self.logger.warning(f"Could not access {item}: {e}")

    def cancel_scan(self):
        """Cancel the current scan operation."""
        self._cancelled = True
        self.logger.info("Scan cancellation requested")

    def default_category_id(self) -> str:
        name = self.config.default_category
        category = self.store.find_entity_by_name(EntityKind.CATEGORY, name)
        if category is None:
            self.logger.info(f"Creating default category '{name}'")
            category = self.store.create_category(name)
        return category.id

    def _validate_scan_path(self, path: Path):
        """
        Raises:
            ScanError: If path doesn't exist, is not a directory or not readable
        """
        if not path.exists():
            raise ScanError(f"Path does not exist: {path}")
        if not path.is_dir():
            raise ScanError(f"Path is not a directory: {path}")
        try:
            next(path.iterdir(), None)
        except OSError as e:
            raise ScanError(f"Cannot access directory {path}: {e}") from e
