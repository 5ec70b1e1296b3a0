"""Tests for the SQLite row store."""
import pytest
from sqlalchemy import create_engine, inspect, text

from microfiche.exceptions import ErrorCode, ParseError, StorageError
from microfiche.models.schema import FicheSchema, WarningKind
from microfiche.storage.hierarchy_store import HierarchyStore
from microfiche.storage.sql_adapter import SqlRowAdapter


@pytest.fixture
def adapter():
    adapter = SqlRowAdapter()
    yield adapter
    adapter.close()


class TestSqlRowAdapter:
    """Tests for SqlRowAdapter."""

    def test_round_trip(self, adapter, tmp_path, populated_store):
        """Rows written to the database come back unchanged."""
        path = tmp_path / "notes.db"
        assert adapter.write_rows(path, populated_store.entries()) == 4
        rows = adapter.read_rows(path)
        assert [(row.path, row.note) for row in rows] == [
            (entry.path, entry.text) for entry in populated_store.entries()
        ]

    def test_write_replaces_previous_contents(self, adapter, tmp_path, populated_store):
        path = tmp_path / "notes.db"
        adapter.write_rows(path, populated_store.entries())
        small = HierarchyStore()
        small.insert_row(["Only", "One", "Row"], "left")
        adapter.write_rows(path, small.entries())
        rows = adapter.read_rows(path)
        assert [row.note for row in rows] == ["left"]

    def test_missing_database(self, adapter, tmp_path):
        """Reading never creates a database as a side effect."""
        path = tmp_path / "absent.db"
        with pytest.raises(StorageError) as exc_info:
            adapter.read_rows(path)
        assert exc_info.value.code == ErrorCode.STORAGE_READ_FAILED
        assert not path.exists()

    def test_not_a_database(self, adapter, tmp_path):
        path = tmp_path / "fake.db"
        path.write_text("Category,Subcategory,Concept,Note\n" * 100)
        with pytest.raises(StorageError) as exc_info:
            adapter.read_rows(path)
        assert exc_info.value.code == ErrorCode.STORAGE_CONNECTION_FAILED

    def test_foreign_database_left_untouched(self, adapter, tmp_path):
        """A database without the notes table is rejected and not modified."""
        path = tmp_path / "other.db"
        engine = create_engine(f"sqlite:///{path}")
        with engine.begin() as connection:
            connection.execute(text("CREATE TABLE t (x INTEGER)"))
        engine.dispose()
        before = path.read_bytes()

        with pytest.raises(ParseError) as exc_info:
            adapter.read_rows(path)
        assert exc_info.value.code == ErrorCode.PARSE_HEADER_INVALID
        with pytest.raises(ParseError):
            adapter.validate(path)

        engine = create_engine(f"sqlite:///{path}")
        try:
            assert inspect(engine).get_table_names() == ["t"]
        finally:
            engine.dispose()
        assert path.read_bytes() == before
        assert not path.with_name("other.db-wal").exists()

    def test_key_detail_round_trip(self, tmp_path):
        store = HierarchyStore(FicheSchema.KEY_DETAIL)
        store.insert_row(["Math", "Algebra", "Groups", "Identity"], "e")
        adapter = SqlRowAdapter(FicheSchema.KEY_DETAIL)
        path = tmp_path / "deep.sqlite"
        try:
            adapter.write_rows(path, store.entries())
            rows = adapter.read_rows(path)
        finally:
            adapter.close()
        assert rows[0].key_detail == "Identity"

    def test_schema_mismatch_is_parse_error(self, tmp_path, populated_store):
        """A 4-level database cannot be read with the 5-level schema."""
        path = tmp_path / "notes.db"
        shallow = SqlRowAdapter(FicheSchema.CONCEPT)
        deep = SqlRowAdapter(FicheSchema.KEY_DETAIL)
        try:
            shallow.write_rows(path, populated_store.entries())
            with pytest.raises(ParseError) as exc_info:
                deep.read_rows(path)
        finally:
            shallow.close()
            deep.close()
        assert exc_info.value.line == 1

    def test_validate_flags_duplicates_and_empty_fields(self, adapter, tmp_path, store):
        store.insert_row(["A", "B", "C"], "same")
        store.insert_row(["A", "B", "C"], "same")
        path = tmp_path / "notes.db"
        adapter.write_rows(path, store.entries())

        engine = create_engine(f"sqlite:///{path}")
        with engine.begin() as connection:
            connection.execute(text(
                "INSERT INTO fiche_rows (category, subcategory, concept, note) "
                "VALUES ('A', '', 'C', 'blank subcategory')"
            ))
        engine.dispose()

        warnings = adapter.validate(path)
        assert [(w.line, w.kind) for w in warnings] == [
            (2, WarningKind.DUPLICATE),
            (3, WarningKind.EMPTY_FIELD),
        ]
