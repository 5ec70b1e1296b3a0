"""Service layer for knowledge store operations."""

import logging
from pathlib import Path
from typing import Optional, Sequence, Union

from microfiche.config import config
from microfiche.exceptions import (
    ErrorCode,
    ParseError,
    StorageError,
    ValidationError,
)
from microfiche.models.schema import (
    FicheSchema,
    LoadResult,
    NoteEntry,
    SaveResult,
    StoreStats,
    ValidationWarning,
)
from microfiche.observability import timed_operation
from microfiche.services.analytics_service import TextAnalytics
from microfiche.services.search_service import SearchResult, SearchService
from microfiche.storage import RowAdapter
from microfiche.storage.csv_adapter import CsvRowAdapter
from microfiche.storage.hierarchy_store import HierarchyStore
from microfiche.storage.sql_adapter import SQLITE_SUFFIXES, SqlRowAdapter

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class FicheService:
    """Owns the current store, its file, and the services bound to it.

    Loading replaces the store wholesale; the search and analytics services
    are rebound to the new store at the same time.
    """

    def __init__(
        self,
        schema: Optional[FicheSchema] = None,
        store: Optional[HierarchyStore] = None,
    ):
        """Initialize the service.

        Args:
            schema: Hierarchy depth. Defaults to the store's schema, then
                config.schema_kind.
            store: Initial store. An empty one is created if None.
        """
        if store is not None:
            self.schema = store.schema
        else:
            self.schema = schema or config.schema_kind
        self.csv_adapter = CsvRowAdapter(self.schema)
        self.sql_adapter = SqlRowAdapter(self.schema)
        self.current_file: Optional[Path] = None
        self._bind(store or HierarchyStore(self.schema))

    def _bind(self, store: HierarchyStore) -> None:
        self.store = store
        self.search_service = SearchService(store)
        self.analytics = TextAnalytics(store)

    def adapter_for(self, path: PathLike) -> RowAdapter:
        """Pick the SQLite adapter for database suffixes, CSV otherwise."""
        if Path(path).suffix.lower() in SQLITE_SUFFIXES:
            return self.sql_adapter
        return self.csv_adapter

    def shutdown(self) -> None:
        """Release database engines."""
        self.sql_adapter.close()

    # =========================================================================
    # Persistence
    # =========================================================================

    def load(self, path: Optional[PathLike] = None) -> LoadResult:
        """Replace the store with the contents of ``path``.

        Falls back to config.get_data_file() when no path is given. Every
        row is parsed before anything is inserted; on any failure the
        previous store is kept, which is the empty store if nothing was
        loaded before. Validation warnings are attached to a successful
        result and never block the load.
        """
        path = Path(path) if path is not None else config.get_data_file()
        with timed_operation("load", path=path.name) as op:
            adapter = self.adapter_for(path)
            try:
                rows = adapter.read_rows(path)
                warnings = adapter.validate(path)
            except StorageError as e:
                logger.warning(f"Load failed, keeping current store: {e}")
                op["success"] = False
                op["error"] = e.message
                return LoadResult(
                    success=False,
                    message=f"Error loading: {e.message}",
                    path=str(path),
                    note_count=self.store.stats().notes,
                )
            except ParseError as e:
                logger.error(f"Load aborted, nothing imported: {e}")
                op["success"] = False
                op["error"] = e.message
                line = f" (line {e.line})" if e.line is not None else ""
                return LoadResult(
                    success=False,
                    message=f"Error loading: {e.message}{line}",
                    path=str(path),
                    note_count=self.store.stats().notes,
                )

            store = HierarchyStore(self.schema)
            for row in rows:
                store.insert_row(row.path, row.note)
            self._bind(store)
            self.current_file = path
            op["rows"] = len(rows)

        logger.info(f"Loaded {len(rows)} notes from {path}")
        for warning in warnings:
            logger.warning(f"{path.name}: {warning}")
        return LoadResult(
            success=True,
            message=f"Loaded {path}",
            path=str(path),
            note_count=len(rows),
            warnings=warnings,
        )

    def save(self, path: Optional[PathLike] = None) -> SaveResult:
        """Write the store to ``path`` or the current file.

        The in-memory store is never touched, whether or not the write
        succeeds. A successful save makes ``path`` the current file.
        """
        target = Path(path) if path is not None else self.current_file
        if target is None:
            return SaveResult(success=False, message="No file selected")

        with timed_operation("save", path=target.name) as op:
            try:
                count = self.adapter_for(target).write_rows(target, self.store.entries())
            except StorageError as e:
                logger.error(f"Save failed: {e}")
                op["success"] = False
                op["error"] = e.message
                return SaveResult(
                    success=False,
                    message=f"Error saving: {e.message}",
                    path=str(target),
                )
            op["rows"] = count

        self.current_file = target
        return SaveResult(
            success=True,
            message=f"Saved to {target}",
            path=str(target),
            note_count=count,
        )

    def validate(self, path: Optional[PathLike] = None) -> Sequence[ValidationWarning]:
        """Run the validation prepass over ``path`` or the current file.

        Raises:
            StorageError: If there is no file to check or it cannot be read.
            ParseError: If the file is not readable as rows at all.
        """
        target = Path(path) if path is not None else self.current_file
        if target is None:
            raise StorageError("No file selected", operation="validate")
        warnings = self.adapter_for(target).validate(target)
        for warning in warnings:
            logger.warning(f"{target.name}: {warning}")
        return warnings

    # =========================================================================
    # Mutations
    # =========================================================================

    def _require_fields(self, path: Sequence[str], note_text: str) -> None:
        for level, name in zip(self.schema.levels, path):
            if not name or not name.strip():
                raise ValidationError(
                    f"{level} is required", field=level, code=ErrorCode.FIELD_REQUIRED
                )
        if not note_text or not note_text.strip():
            raise ValidationError(
                "Note is required", field="Note", code=ErrorCode.FIELD_REQUIRED
            )

    def add_note(self, path: Sequence[str], note_text: str) -> NoteEntry:
        """File a new note under ``path``.

        Raises:
            InvalidPathError: If ``path`` has the wrong number of segments.
            ValidationError: If a path segment or the note text is blank.
        """
        self.store.check_path(path)
        self._require_fields(path, note_text)
        self.store.insert_row(path, note_text)
        logger.debug(f"Added note under {' > '.join(path)}")
        return NoteEntry(path=tuple(path), text=note_text)

    def delete_note(self, path: Sequence[str], note_text: str) -> bool:
        """Delete one note; empty ancestors are pruned by the store."""
        deleted = self.store.delete_note(path, note_text)
        if deleted:
            logger.debug(f"Deleted note under {' > '.join(path)}")
        return deleted

    def edit_note(
        self,
        path: Sequence[str],
        old_text: str,
        new_text: str,
        new_path: Optional[Sequence[str]] = None,
    ) -> bool:
        """Replace a note, optionally filing it under another path.

        The new values are validated before the old note is removed, so a
        rejected edit leaves the store unchanged.

        Returns:
            False if the old note does not exist.
        """
        target = tuple(new_path) if new_path is not None else tuple(path)
        self.store.check_path(target)
        self._require_fields(target, new_text)
        if not self.store.delete_note(path, old_text):
            return False
        self.store.insert_row(target, new_text)
        return True

    # =========================================================================
    # Queries
    # =========================================================================

    def stats(self) -> StoreStats:
        return self.store.stats()

    def search(self, query: str) -> SearchResult:
        return self.search_service.search(query)

    def advanced_search(
        self,
        category: Optional[str] = None,
        subcategory: Optional[str] = None,
        content: Optional[str] = None,
    ) -> SearchResult:
        return self.search_service.advanced_search(
            category=category, subcategory=subcategory, content=content
        )


def open_service(
    path: Optional[PathLike] = None, schema: Optional[FicheSchema] = None
) -> FicheService:
    """Create a service and load ``path``, starting empty if that fails.

    A missing file becomes the current file so the first save creates it.
    A file that exists but cannot be loaded is never adopted, so saving
    needs an explicit target and cannot overwrite it.
    """
    target = Path(path) if path is not None else config.get_data_file()
    service = FicheService(schema=schema)
    result = service.load(target)
    if not result.success:
        logger.info(f"Starting with an empty store: {result.message}")
        if not target.exists():
            service.current_file = target
    return service


__all__ = ["FicheService", "open_service"]
