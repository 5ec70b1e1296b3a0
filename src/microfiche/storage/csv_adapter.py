"""CSV codec for the flat row format.

One record per note, columns ``Category, Subcategory, Concept, [KeyDetail,]
Note`` behind a header row carrying exactly those names.
"""

import contextlib
import csv
import logging
import os
from pathlib import Path
from typing import IO, Iterable, Iterator, List, Tuple, Union

from microfiche.exceptions import ErrorCode, ParseError, StorageError
from microfiche.models.schema import FicheRow, FicheSchema, NoteEntry, ValidationWarning
from microfiche.storage.row_validation import find_row_warnings

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _numbered_records(handle: IO[str]) -> Iterator[Tuple[int, List[str]]]:
    """Yield ``(first_line, fields)`` for every non-blank record.

    Quoted fields may span lines, so the starting line is tracked from the
    reader's line counter rather than by counting records.
    """
    reader = csv.reader(handle)
    start = 1
    for record in reader:
        if record:
            yield start, record
        start = reader.line_num + 1


class CsvRowAdapter:
    """Reads and writes notes as CSV rows for one schema."""

    def __init__(self, schema: FicheSchema = FicheSchema.CONCEPT):
        self.schema = schema

    def read_rows(self, path: PathLike) -> List[FicheRow]:
        """Parse every row of ``path``.

        A file without any content yields no rows.

        Raises:
            StorageError: If the file is missing or unreadable.
            ParseError: On a wrong header or a row with the wrong field count.
        """
        path = str(path)
        try:
            with open(path, newline="", encoding="utf-8-sig") as handle:
                rows = self._parse(handle, path)
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(
                "Cannot read data file",
                operation="read",
                path=path,
                code=ErrorCode.STORAGE_READ_FAILED,
                original_error=e,
            ) from e
        except csv.Error as e:
            raise ParseError(f"Malformed CSV: {e}", path=path) from e

        logger.info(f"Read {len(rows)} rows from {path}")
        return rows

    def _parse(self, handle: IO[str], path: str) -> List[FicheRow]:
        columns = self.schema.columns
        records = _numbered_records(handle)

        header = next(records, None)
        if header is None:
            return []
        line, fields = header
        if tuple(fields) != columns:
            raise ParseError(
                f"Header must be {', '.join(columns)}",
                line=line,
                path=path,
                code=ErrorCode.PARSE_HEADER_INVALID,
            )

        rows: List[FicheRow] = []
        for line, fields in records:
            if len(fields) != len(columns):
                raise ParseError(
                    f"Expected {len(columns)} fields, found {len(fields)}",
                    line=line,
                    path=path,
                )
            rows.append(FicheRow.from_fields(fields, self.schema))
        return rows

    def write_rows(self, path: PathLike, entries: Iterable[NoteEntry]) -> int:
        """Write a header and one row per entry, replacing ``path``.

        Rows are written to a temporary file that is moved into place once
        complete.

        Returns:
            Number of rows written.

        Raises:
            StorageError: If the file cannot be written.
        """
        path = Path(path)
        temp_file = path.with_name(path.name + ".tmp")
        count = 0
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_file, "w", newline="", encoding="utf-8") as handle:
                # Default "\r\n" terminator: fields holding \r or \n get quoted
                writer = csv.writer(handle)
                writer.writerow(self.schema.columns)
                for entry in entries:
                    writer.writerow(entry.as_row())
                    count += 1
            os.replace(temp_file, path)
        except OSError as e:
            with contextlib.suppress(OSError):
                temp_file.unlink()
            raise StorageError(
                "Cannot write data file",
                operation="write",
                path=str(path),
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e

        logger.info(f"Wrote {count} rows to {path}")
        return count

    def validate(self, path: PathLike) -> List[ValidationWarning]:
        """Run the validation prepass over ``path`` without loading it.

        Raises:
            StorageError: If the file is missing or unreadable.
        """
        path = str(path)
        try:
            with open(path, newline="", encoding="utf-8-sig") as handle:
                records = list(_numbered_records(handle))
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(
                "Cannot read data file",
                operation="validate",
                path=path,
                original_error=e,
            ) from e
        except csv.Error as e:
            raise ParseError(f"Malformed CSV: {e}", path=path) from e

        # The header line is not a data row
        return find_row_warnings(records[1:], self.schema)
