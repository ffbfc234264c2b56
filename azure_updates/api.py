"""
HTTP API Router
Search, update detail, guide and sync endpoints
"""
from typing import Any

from fastapi import APIRouter, Body, HTTPException, Request, status
from fastapi.responses import JSONResponse

from .errors import IndexUnavailableError
from .logger import get_logger
from .service import NOT_FOUND, VALIDATION_FAILED, build_guide, get_update_details, search_updates

logger = get_logger(__name__)

router = APIRouter(prefix="/v1", tags=["azure-updates"])


def _index_unavailable(e: IndexUnavailableError) -> HTTPException:
    logger.error(f"Index unavailable: {e}")
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=str(e)
    )


@router.post("/search")
async def search(request: Request, payload: Any = Body(None)):
    """
    Keyword + structured search

    Body is the raw search input (query, filters, sortBy, limit, offset).
    Invalid input returns 422 with every validation problem listed.
    """
    try:
        result = await search_updates(request.app.state.search_engine, payload)
    except IndexUnavailableError as e:
        raise _index_unavailable(e)

    if result.get("error") == VALIDATION_FAILED:
        return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=result)

    return result


@router.get("/updates/{update_id}")
async def get_update(request: Request, update_id: str):
    """Full update record including the Markdown description"""
    try:
        result = get_update_details(request.app.state.db, {"id": update_id})
    except IndexUnavailableError as e:
        raise _index_unavailable(e)

    if result.get("error") == NOT_FOUND:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=result)
    if result.get("error") == VALIDATION_FAILED:
        return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=result)

    return result


@router.get("/guide")
async def guide(request: Request):
    """Available filters, usage examples and data freshness"""
    state = request.app.state
    return build_guide(state.db, state.sync_controller, state.settings)


@router.get("/sync/status")
async def sync_status(request: Request):
    """Checkpoint and freshness of the local index"""
    return request.app.state.sync_controller.status()


@router.post("/sync")
async def trigger_sync(request: Request, force: bool = False):
    """
    Run a sync now

    A second trigger while one is running is a no-op (skipped result).
    """
    logger.info(f"Sync triggered via API (force={force})")
    result = await request.app.state.sync_controller.sync(force=force)
    return result.to_dict()
