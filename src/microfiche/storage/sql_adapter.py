"""SQLite row store for notes.

Holds the same flat rows as the CSV codec in a single ``fiche_rows``
table, so a store can be saved to and loaded from either format.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Tuple, Union

from sqlalchemy import delete, inspect, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from microfiche.exceptions import ErrorCode, ParseError, StorageError
from microfiche.models.db_models import DBFicheRow, get_session_factory, init_db, open_db
from microfiche.models.schema import FicheRow, FicheSchema, NoteEntry, ValidationWarning
from microfiche.storage.row_validation import find_row_warnings

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Suffixes routed to this adapter instead of the CSV codec
SQLITE_SUFFIXES = (".db", ".sqlite", ".sqlite3")


def _fields(record: DBFicheRow) -> Sequence[str]:
    """Column values of a record; KeyDetail only when it is set."""
    fields = [record.category, record.subcategory, record.concept]
    if record.key_detail is not None:
        fields.append(record.key_detail)
    fields.append(record.note)
    return fields


class SqlRowAdapter:
    """Reads and writes notes as rows of an SQLite database."""

    def __init__(self, schema: FicheSchema = FicheSchema.CONCEPT):
        self.schema = schema
        self._engines: Dict[str, Engine] = {}

    def _engine(self, path: Path) -> Engine:
        """Engine for writing; creates the table on first use."""
        key = str(path.resolve())
        engine = self._engines.get(key)
        if engine is None:
            engine = init_db(f"sqlite:///{key}")
            self._engines[key] = engine
        return engine

    def _fetch(self, path: PathLike, operation: str) -> List[DBFicheRow]:
        path = Path(path)
        # create_engine would silently create an empty database
        if not path.is_file():
            raise StorageError(
                "Database file not found",
                operation=operation,
                path=str(path),
                code=ErrorCode.STORAGE_READ_FAILED,
            )
        # Reuse the writing engine if there is one; otherwise open the file
        # without creating tables or switching its journal mode
        engine = self._engines.get(str(path.resolve()))
        transient = engine is None
        if transient:
            engine = open_db(f"sqlite:///{path.resolve()}")
        try:
            if not inspect(engine).has_table(DBFicheRow.__tablename__):
                raise ParseError(
                    f"Not a notes database: table '{DBFicheRow.__tablename__}' is missing",
                    path=str(path),
                    code=ErrorCode.PARSE_HEADER_INVALID,
                )
            session_factory = get_session_factory(engine)
            with session_factory() as session:
                query = select(DBFicheRow).order_by(DBFicheRow.id)
                records = list(session.execute(query).scalars().all())
                session.expunge_all()
                return records
        except SQLAlchemyError as e:
            raise StorageError(
                "Cannot read database",
                operation=operation,
                path=str(path),
                code=ErrorCode.STORAGE_CONNECTION_FAILED,
                original_error=e,
            ) from e
        finally:
            if transient:
                engine.dispose()

    def read_rows(self, path: PathLike) -> List[FicheRow]:
        """Load every row of the database at ``path`` in insertion order.

        Raises:
            StorageError: If the database is missing or unreadable.
            ParseError: If the table is missing or a row's KeyDetail presence
                does not fit the schema.
        """
        rows: List[FicheRow] = []
        expected = len(self.schema.columns)
        for record in self._fetch(path, "read"):
            fields = _fields(record)
            if len(fields) != expected:
                raise ParseError(
                    f"Expected {expected} fields, found {len(fields)}",
                    line=record.id,
                    path=str(path),
                )
            rows.append(FicheRow.from_fields(fields, self.schema))

        logger.info(f"Read {len(rows)} rows from {path}")
        return rows

    def write_rows(self, path: PathLike, entries: Iterable[NoteEntry]) -> int:
        """Replace the table contents with ``entries`` in one transaction.

        Returns:
            Number of rows written.

        Raises:
            StorageError: If the database cannot be created or written.
        """
        path = Path(path)
        records = [
            DBFicheRow(
                category=entry.category,
                subcategory=entry.subcategory,
                concept=entry.concept,
                key_detail=entry.key_detail,
                note=entry.text,
            )
            for entry in entries
        ]
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            session_factory = get_session_factory(self._engine(path))
            with session_factory() as session:
                with session.begin():
                    session.execute(delete(DBFicheRow))
                    session.add_all(records)
        except (OSError, SQLAlchemyError) as e:
            raise StorageError(
                "Cannot write database",
                operation="write",
                path=str(path),
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e

        logger.info(f"Wrote {len(records)} rows to {path}")
        return len(records)

    def validate(self, path: PathLike) -> List[ValidationWarning]:
        """Run the validation prepass over the rows at ``path``.

        Row ids stand in for line numbers.
        """
        numbered: List[Tuple[int, Sequence[str]]] = [
            (record.id, _fields(record)) for record in self._fetch(path, "validate")
        ]
        return find_row_warnings(numbered, self.schema)

    def close(self) -> None:
        """Dispose of every engine opened by this adapter."""
        for engine in self._engines.values():
            engine.dispose()
        self._engines.clear()
