import logging

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.concurrency import run_in_threadpool

from ..schemas.api import SearchHistoryOut, SearchRequest, SearchResponse, ThemePreference
from ..services import preferences
from ..services.search import CompanySearchError, search_companies
from .routes_reports import verify_api_key

router = APIRouter(tags=["search"])

logger = logging.getLogger(__name__)


def get_client_id(x_client_id: str | None = Header(default=None)) -> str:
    """Preferences are scoped per browser; anonymous callers share one bucket."""
    client_id = (x_client_id or "").strip()
    return client_id[:128] or preferences.DEFAULT_CLIENT_ID


@router.post("/search", response_model=SearchResponse)
async def search(
    payload: SearchRequest,
    client_id: str = Depends(get_client_id),
    _: None = Depends(verify_api_key),
):
    if not payload.query:
        return SearchResponse(query="", companies=[])

    try:
        companies = await search_companies(payload.query, payload.location)
    except CompanySearchError as e:
        raise HTTPException(status_code=502, detail=str(e))

    await run_in_threadpool(preferences.add_to_history, payload.query, client_id)

    logger.info(
        "Search completed",
        extra={"client_id": client_id, "step": "search"},
    )
    return SearchResponse(query=payload.query, companies=companies)


@router.get("/history", response_model=SearchHistoryOut)
def get_history(
    client_id: str = Depends(get_client_id),
    _: None = Depends(verify_api_key),
):
    return SearchHistoryOut(history=preferences.get_search_history(client_id))


@router.delete("/history", response_model=SearchHistoryOut)
def clear_history(
    client_id: str = Depends(get_client_id),
    _: None = Depends(verify_api_key),
):
    preferences.clear_history(client_id)
    return SearchHistoryOut(history=[])


@router.get("/preferences/theme", response_model=ThemePreference)
def get_theme(
    client_id: str = Depends(get_client_id),
    _: None = Depends(verify_api_key),
):
    return ThemePreference(theme=preferences.get_theme(client_id))


@router.put("/preferences/theme", response_model=ThemePreference)
def set_theme(
    payload: ThemePreference,
    client_id: str = Depends(get_client_id),
    _: None = Depends(verify_api_key),
):
    return ThemePreference(theme=preferences.set_theme(payload.theme, client_id))
