"""Tests for the FicheService orchestration layer."""
import pytest
from sqlalchemy import create_engine, text

from microfiche.exceptions import ErrorCode, InvalidPathError, StorageError, ValidationError
from microfiche.models.schema import FicheSchema, WarningKind
from microfiche.services.fiche_service import FicheService, open_service
from microfiche.services.search_service import SearchTier

HEADER = "Category,Subcategory,Concept,Note\n"


class TestLoad:
    """Tests for loading data files."""

    def test_load_replaces_store(self, service, csv_file):
        service.add_note(["Old", "Old", "Old"], "gone after load")
        path = csv_file(HEADER + "Math,Algebra,Groups,Closure\n")
        result = service.load(path)
        assert result.success
        assert result.note_count == 1
        assert service.current_file == path
        assert service.search("old").entries == []
        assert service.stats().notes == 1

    def test_load_rebinds_search_and_analytics(self, service, csv_file):
        first_search = service.search_service
        first_analytics = service.analytics
        service.load(csv_file(HEADER + "Math,Algebra,Groups,Closure\n"))
        assert service.search_service is not first_search
        assert service.analytics is not first_analytics
        assert service.analytics.store is service.store

    def test_missing_file_keeps_prior_store(self, service, tmp_path):
        service.add_note(["Math", "Algebra", "Groups"], "kept")
        result = service.load(tmp_path / "absent.csv")
        assert not result.success
        assert result.message.startswith("Error loading")
        assert service.stats().notes == 1
        assert service.current_file is None

    def test_parse_error_imports_nothing(self, service, csv_file):
        """A malformed row aborts the whole load."""
        path = csv_file(HEADER + "A,B,C,ok\nA,B,broken\n")
        result = service.load(path)
        assert not result.success
        assert "line 3" in result.message
        assert service.store.is_empty()

    def test_foreign_database_keeps_prior_store(self, service, tmp_path):
        """Loading an SQLite file with no notes table fails instead of emptying the store."""
        path = tmp_path / "other.db"
        engine = create_engine(f"sqlite:///{path}")
        with engine.begin() as connection:
            connection.execute(text("CREATE TABLE t (x INTEGER)"))
        engine.dispose()
        service.add_note(["Math", "Algebra", "Groups"], "kept")

        result = service.load(path)
        assert not result.success
        assert "fiche_rows" in result.message
        assert service.stats().notes == 1
        assert service.current_file is None

    def test_load_reports_warnings(self, service, csv_file):
        path = csv_file(HEADER + "A,B,C,dup\nA,B,C,dup\n")
        result = service.load(path)
        assert result.success
        assert result.note_count == 2
        assert [w.kind for w in result.warnings] == [WarningKind.DUPLICATE]
        assert service.stats().notes == 2

    def test_load_defaults_to_config_data_file(self, service, test_config):
        test_config.data_file.write_text(HEADER + "A,B,C,note\n", encoding="utf-8")
        result = service.load()
        assert result.success
        assert service.current_file == test_config.data_file

    def test_sqlite_selected_by_suffix(self, service, tmp_path):
        service.add_note(["Math", "Algebra", "Groups"], "in sqlite")
        path = tmp_path / "notes.sqlite3"
        assert service.save(path).success

        other = FicheService(schema=FicheSchema.CONCEPT)
        try:
            result = other.load(path)
            assert result.success
            assert other.search("sqlite")[0].text == "in sqlite"
        finally:
            other.shutdown()

    def test_open_service_starts_empty_on_missing_file(self, test_config, tmp_path):
        path = tmp_path / "new.csv"
        service = open_service(path)
        try:
            assert service.store.is_empty()
            assert service.current_file == path
        finally:
            service.shutdown()

    def test_open_service_never_overwrites_unreadable_file(self, test_config, csv_file):
        """A file that fails to parse is not adopted as the save target."""
        original = HEADER + "A,B,C,keep\nonly,two\n"
        path = csv_file(original)
        service = open_service(path)
        try:
            assert service.store.is_empty()
            assert service.current_file is None
            service.add_note(["X", "Y", "Z"], "new")
            result = service.save()
            assert not result.success
            assert result.message == "No file selected"
            assert path.read_text(encoding="utf-8") == original
        finally:
            service.shutdown()


class TestSave:
    """Tests for saving."""

    def test_save_without_file(self, service):
        result = service.save()
        assert not result.success
        assert result.message == "No file selected"

    def test_save_to_current_file(self, service, csv_file):
        path = csv_file(HEADER + "A,B,C,first\n")
        service.load(path)
        service.add_note(["A", "B", "C"], "second")
        result = service.save()
        assert result.success
        assert result.note_count == 2
        assert path.read_text(encoding="utf-8") == HEADER + "A,B,C,first\nA,B,C,second\n"

    def test_round_trip_through_service(self, service, tmp_path):
        service.add_note(["Math", "Algebra", "Groups"], "x")
        service.add_note(["Math", "Algebra", "Groups"], "x")
        service.add_note(["Art", "Ink", "Pens"], "y")
        path = tmp_path / "out.csv"
        service.save(path)
        before = sorted((e.path, e.text) for e in service.store.entries())
        service.load(path)
        after = sorted((e.path, e.text) for e in service.store.entries())
        assert before == after

    def test_failed_save_leaves_store(self, service, tmp_path):
        service.add_note(["A", "B", "C"], "safe")
        target = tmp_path / "dir.csv"
        target.mkdir()
        result = service.save(target)
        assert not result.success
        assert result.message.startswith("Error saving")
        assert service.stats().notes == 1
        assert service.current_file is None


class TestMutations:
    """Tests for add, delete and edit."""

    @pytest.mark.parametrize("path,text,field", [
        (["", "B", "C"], "note", "Category"),
        (["A", "  ", "C"], "note", "Subcategory"),
        (["A", "B", "C"], "", "Note"),
        (["A", "B", "C"], "   ", "Note"),
    ])
    def test_add_requires_all_fields(self, service, path, text, field):
        with pytest.raises(ValidationError) as exc_info:
            service.add_note(path, text)
        assert exc_info.value.code == ErrorCode.FIELD_REQUIRED
        assert exc_info.value.field == field
        assert service.store.is_empty()

    def test_add_wrong_depth(self, service):
        with pytest.raises(InvalidPathError):
            service.add_note(["A", "B"], "note")

    def test_delete(self, service):
        service.add_note(["A", "B", "C"], "note")
        assert service.delete_note(["A", "B", "C"], "note")
        assert not service.delete_note(["A", "B", "C"], "note")
        assert service.store.is_empty()

    def test_edit_in_place(self, service):
        service.add_note(["A", "B", "C"], "old")
        assert service.edit_note(["A", "B", "C"], "old", "new")
        assert [e.text for e in service.store.entries()] == ["new"]

    def test_edit_moves_and_prunes(self, service):
        service.add_note(["A", "B", "C"], "move me")
        assert service.edit_note(["A", "B", "C"], "move me", "moved", ["X", "Y", "Z"])
        assert service.store.snapshot().category_names() == ["X"]

    def test_edit_missing_note(self, service):
        service.add_note(["A", "B", "C"], "present")
        assert not service.edit_note(["A", "B", "C"], "absent", "new")
        assert [e.text for e in service.store.entries()] == ["present"]

    def test_rejected_edit_changes_nothing(self, service):
        service.add_note(["A", "B", "C"], "keep")
        with pytest.raises(ValidationError):
            service.edit_note(["A", "B", "C"], "keep", "")
        assert [e.text for e in service.store.entries()] == ["keep"]

    def test_math_scenario(self, service):
        """Insert, find by category, and delete down to an empty store."""
        service.add_note(["Math", "Algebra", "Groups"], "A group has an identity")
        service.add_note(["Math", "Algebra", "Groups"], "Every element has an inverse")
        result = service.search("math")
        assert result.tier == SearchTier.CATEGORY
        assert len(result) == 2
        service.delete_note(["Math", "Algebra", "Groups"], "A group has an identity")
        service.delete_note(["Math", "Algebra", "Groups"], "Every element has an inverse")
        assert service.stats().categories == 0
        assert len(service.search("math")) == 0


class TestValidate:
    """Tests for the service validation entry point."""

    def test_validate_current_file(self, service, csv_file):
        service.load(csv_file(HEADER + "A,B,C,\n"))
        warnings = service.validate()
        assert [w.kind for w in warnings] == [WarningKind.EMPTY_FIELD]

    def test_validate_without_file(self, service):
        with pytest.raises(StorageError):
            service.validate()
