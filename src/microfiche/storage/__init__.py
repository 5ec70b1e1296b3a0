"""Storage layer for Microfiche."""

from pathlib import Path
from typing import Iterable, List, Protocol, Union

from microfiche.models.schema import FicheRow, FicheSchema, NoteEntry, ValidationWarning
from microfiche.storage.csv_adapter import CsvRowAdapter
from microfiche.storage.hierarchy_store import HierarchyStore, NodeView, StoreSnapshot
from microfiche.storage.sql_adapter import SQLITE_SUFFIXES, SqlRowAdapter


class RowAdapter(Protocol):
    """Interface shared by the persistence adapters."""

    schema: FicheSchema

    def read_rows(self, path: Union[str, Path]) -> List[FicheRow]:
        ...

    def write_rows(self, path: Union[str, Path], entries: Iterable[NoteEntry]) -> int:
        ...

    def validate(self, path: Union[str, Path]) -> List[ValidationWarning]:
        ...


__all__ = [
    "CsvRowAdapter",
    "HierarchyStore",
    "NodeView",
    "RowAdapter",
    "SQLITE_SUFFIXES",
    "SqlRowAdapter",
    "StoreSnapshot",
]
