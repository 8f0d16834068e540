"""
Admin endpoints: CSV re-import and catalog enrichment
"""

from typing import Callable, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query

from ..api_clients import SpotifyClient
from ..config import Settings
from ..csv_importer import seed_database
from ..database import DocumentStore
from ..dependencies import get_app_settings, get_catalog_client_factory, get_store
from ..enrichment_pipeline import EnrichmentPipeline
from ..exceptions import AuthenticationError, ConfigurationError

router = APIRouter(prefix="/api", tags=["Admin"])
logger = structlog.get_logger(__name__)


@router.post("/import")
async def import_csv(
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings)
):
    """Re-run CSV seeding from DATA_DIR"""
    try:
        leagues = await seed_database(store, settings.data_dir)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("CSV import failed", error=str(e))
        raise HTTPException(status_code=500, detail=f"Import failed: {str(e)}")

    return {"success": True, "leagues": leagues}


@router.post("/enrich")
async def enrich(
    force: bool = Query(False),
    limit: Optional[int] = Query(None, ge=1),
    store: DocumentStore = Depends(get_store),
    client_factory: Callable[[], SpotifyClient] = Depends(get_catalog_client_factory)
):
    """Run the full enrichment pipeline and return its summary"""
    try:
        client = client_factory()
    except ConfigurationError as e:
        raise HTTPException(status_code=503, detail=str(e))

    try:
        async with client:
            summary = await EnrichmentPipeline(store, client).run(force=force, limit=limit)
    except AuthenticationError as e:
        logger.error("Catalog authentication failed", error=str(e))
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        logger.error("Enrichment failed", error=str(e))
        raise HTTPException(status_code=500, detail=f"Enrichment failed: {str(e)}")

    return summary.to_dict()
