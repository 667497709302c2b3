"""Program catalog endpoints — read-only views of the loaded catalogs.

No authentication: catalogs are the public questionnaire definitions.
"""

from fastapi import APIRouter, Depends

from screening_flow.catalog import CatalogStore
from screening_flow.models.catalog import Catalog

from screening_server.dependencies import get_store

router = APIRouter(prefix="/programs", tags=["programs"])


@router.get("")
def list_programs(store: CatalogStore = Depends(get_store)) -> list[dict]:
    """Summaries of every published program."""
    return [
        {
            "id": c.id,
            "version": c.version,
            "title": c.title,
            "description": c.description,
            "total_questions": c.total_questions,
        }
        for c in store.list_catalogs()
    ]


@router.get("/{program_id}")
def get_program(program_id: str, store: CatalogStore = Depends(get_store)) -> Catalog:
    """Full catalog for one program.  404 for unknown programs."""
    return store.load_catalog(program_id)
