"""CatalogStore — loads all program catalogs from ``programs/`` into typed models.

Each ``*.yaml`` file under the catalog directory defines one program's
screener: metadata, ordered questions, branching rules and outcome logic.
The store is loaded once at startup and serves catalogs by program id.

Usage::

    store = CatalogStore()          # defaults to programs/ at the repo root
    store.load()                    # parse all YAML files

    catalog = store.load_catalog("crestor_direct")
    q = catalog.get_question("ldl_check")
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

import yaml

from screening_flow.constants import CATALOG_DIR
from screening_flow.interfaces import CatalogSource
from screening_flow.models.catalog import Catalog
from screening_flow.models.question import question_mapper

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Utility helpers
# ---------------------------------------------------------------------------

def find_repo_root(start: Optional[Path] = None) -> Path:
    """Walk upwards from *start* to find the repo root (dir with pyproject.toml or .git).

    Falls back to cwd if no marker is found.
    """
    p = (start or Path(__file__).resolve()).parent
    for parent in [p, *p.parents]:
        if (parent / "pyproject.toml").exists() or (parent / ".git").exists():
            return parent
    return Path.cwd()


def load_yaml(path: Path | str) -> Any:
    """Load a single YAML file and return the parsed contents."""
    if isinstance(path, str):
        path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing YAML file: {path}")
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def parse_catalog(raw: dict, *, source: str = "<memory>") -> Catalog:
    """Build a :class:`Catalog` from a parsed YAML mapping.

    Each question is parsed through ``question_mapper`` so an unknown
    ``type`` is reported with the offending question id.
    """
    if not isinstance(raw, dict):
        raise ValueError(f"Catalog file {source} must contain a mapping")

    questions = []
    for q_dict in raw.get("questions") or []:
        qtype = q_dict.get("type")
        cls = question_mapper.get(qtype)
        if cls is None:
            raise ValueError(
                f"Unknown question type '{qtype}' for question "
                f"'{q_dict.get('id')}' in {source}"
            )
        questions.append(cls(**q_dict))

    return Catalog(**{**raw, "questions": questions})


# ---------------------------------------------------------------------------
# CatalogStore
# ---------------------------------------------------------------------------

class CatalogStore(CatalogSource):
    """Loads every catalog under the catalog directory and provides lookup.

    Attributes populated after :meth:`load`:

        catalogs — dict[program_id, Catalog], in file-name order
    """

    def __init__(self, catalog_dir: str | Path | None = None) -> None:
        if catalog_dir is None:
            catalog_dir = CATALOG_DIR or find_repo_root() / "programs"
        self._base = Path(catalog_dir)
        self.catalogs: dict[str, Catalog] = {}

    def load(self) -> None:
        """Parse all YAML files under the catalog directory.

        Call this once at startup.  Raises ``FileNotFoundError`` if the
        directory is missing and ``ValueError`` for an invalid catalog or a
        program id defined twice.
        """
        if not self._base.is_dir():
            raise FileNotFoundError(f"Missing catalog directory: {self._base}")

        for path in sorted(self._base.glob("*.yaml")):
            catalog = parse_catalog(load_yaml(path), source=path.name)
            if catalog.id in self.catalogs:
                raise ValueError(f"Duplicate catalog id '{catalog.id}' in {path.name}")
            self.catalogs[catalog.id] = catalog

        logger.info("CatalogStore loaded %d catalog(s) from %s", len(self.catalogs), self._base)

    def add(self, catalog: Catalog) -> None:
        """Register an already-built catalog (replaces any previous version)."""
        self.catalogs[catalog.id] = catalog

    # ------------------------------------------------------------------
    # Lookup helpers
    # ------------------------------------------------------------------

    def load_catalog(self, program_id: str) -> Catalog:
        """Return the catalog for ``program_id``.

        Raises:
            KeyError: if no catalog is loaded for the program.
        """
        try:
            return self.catalogs[program_id]
        except KeyError:
            raise KeyError(f"Unknown program: {program_id}") from None

    def list_catalogs(self) -> list[Catalog]:
        return list(self.catalogs.values())
