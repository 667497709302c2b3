"""Shared fixtures: the published program catalogs and inline test catalogs.

``store`` loads ``programs/`` once per session.  ``simple_catalog`` is a
three-question catalog small enough to reason about by hand:

    q1 (boolean)  -- true skips to q3
    q2 (numeric 0..100)
    q3 (choice a/b/c)

``build_catalog`` is a factory for one-off catalogs inside a test.
"""

from pathlib import Path

import pytest

from screening_flow.catalog import CatalogStore, parse_catalog

PROGRAMS_DIR = Path(__file__).resolve().parent.parent / "programs"


SIMPLE_CATALOG = {
    "id": "simple",
    "version": "1.0.0",
    "title": "Simple",
    "questions": [
        {"id": "q1", "type": "boolean", "text": "First?"},
        {"id": "q2", "type": "numeric", "text": "How many?", "min": 0, "max": 100},
        {"id": "q3", "type": "choice", "text": "Which one?", "options": ["a", "b", "c"]},
    ],
    "rules": [
        {
            "question_id": "q1",
            "operator": "equals",
            "value": True,
            "action": "skip_to",
            "target_question_id": "q3",
        },
    ],
}


def make_catalog(questions, rules=(), **extra):
    """Build a catalog from plain dicts (ids default to ``test``)."""
    raw = {
        "id": extra.pop("id", "test"),
        "version": extra.pop("version", "1.0.0"),
        "title": extra.pop("title", "Test"),
        "questions": list(questions),
        "rules": list(rules),
        **extra,
    }
    return parse_catalog(raw)


# =====================================================================
# Fixtures
# =====================================================================


@pytest.fixture(scope="session")
def store():
    """Load every published catalog once for the entire test session."""
    s = CatalogStore(catalog_dir=PROGRAMS_DIR)
    s.load()
    return s


@pytest.fixture(scope="session")
def advair(store):
    return store.load_catalog("advair_diskus")


@pytest.fixture(scope="session")
def crestor(store):
    return store.load_catalog("crestor_direct")


@pytest.fixture
def simple_catalog():
    return parse_catalog(SIMPLE_CATALOG)


@pytest.fixture
def build_catalog():
    """Factory fixture: ``build_catalog(questions, rules, **fields)``."""
    return make_catalog
