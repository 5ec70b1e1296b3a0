"""Common test fixtures for Microfiche."""

import logging

import pytest

from microfiche import observability
from microfiche.config import config
from microfiche.models.schema import FicheSchema
from microfiche.observability import ROOT_LOGGER_NAME, MetricsCollector
from microfiche.services.fiche_service import FicheService
from microfiche.storage.hierarchy_store import HierarchyStore


@pytest.fixture
def test_config(tmp_path, monkeypatch):
    """Point the global config at a temporary directory (auto-restored)."""
    monkeypatch.setattr(config, "base_dir", tmp_path)
    monkeypatch.setattr(config, "data_file", tmp_path / "microfiche.csv")
    monkeypatch.setattr(config, "schema_kind", FicheSchema.CONCEPT)
    monkeypatch.setattr(config, "page_size", 10)
    monkeypatch.setattr(config, "top_terms", 12)
    monkeypatch.setattr(config, "min_token_length", 3)
    monkeypatch.setattr(config, "extra_stopwords", [])
    monkeypatch.setattr(config, "log_dir", None)
    monkeypatch.setattr(config, "shared_categories_shown", 3)
    yield config


@pytest.fixture(autouse=True)
def _isolated_metrics(tmp_path, monkeypatch):
    """Give each test its own metrics collector (auto-restored)."""
    collector = MetricsCollector(metrics_file=tmp_path / "metrics.json")
    monkeypatch.setattr(observability, "metrics", collector)
    yield collector


@pytest.fixture
def _clean_log_handlers():
    """Remove handlers that configure_logging installs on the package logger."""
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    before = list(root_logger.handlers)
    level = root_logger.level
    yield
    for handler in root_logger.handlers[:]:
        if handler not in before:
            handler.close()
            root_logger.removeHandler(handler)
    root_logger.setLevel(level)


@pytest.fixture
def store():
    """An empty 4-level store."""
    return HierarchyStore(FicheSchema.CONCEPT)


@pytest.fixture
def populated_store(store):
    """A small store spread over two categories."""
    store.insert_row(["Math", "Algebra", "Groups"], "A group is a set with an associative operation")
    store.insert_row(["Math", "Algebra", "Rings"], "Rings extend groups with multiplication")
    store.insert_row(["Math", "Calculus", "Limits"], "Epsilon delta definition of limits")
    store.insert_row(["Science", "Physics", "Energy"], "Energy is conserved in closed systems")
    return store


@pytest.fixture
def service(test_config):
    """A FicheService with an empty store."""
    svc = FicheService(schema=FicheSchema.CONCEPT)
    yield svc
    svc.shutdown()


@pytest.fixture
def csv_file(tmp_path):
    """Write CSV text to a file and return its path."""
    def _write(text, name="notes.csv"):
        path = tmp_path / name
        path.write_text(text, encoding="utf-8", newline="")
        return path
    return _write
