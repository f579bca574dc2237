from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from talentscout.api.deps import get_db
from talentscout.api.schemas import (
    PipelineStatusResponse,
    ScrapeRequest,
    SearchResponse,
    TalentCreateRequest,
    TalentResponse,
    TalentUpdateRequest,
)
from talentscout.core.orchestrator import PipelineOrchestrator
from talentscout.core.runtime import get_event_bus
from talentscout.core.search import HybridSearchEngine
from talentscout.db.repositories import Repository

router = APIRouter(prefix="/api", tags=["api"])


def _http_error(exc: ValueError) -> HTTPException:
    # repository lookups phrase a missing row as "... not found"
    status_code = 404 if str(exc).endswith("not found") else 400
    return HTTPException(status_code=status_code, detail=str(exc))


@router.post("/talents", response_model=TalentResponse, status_code=201)
def create_talent(payload: TalentCreateRequest, db: Session = Depends(get_db)) -> TalentResponse:
    repo = Repository(db)
    if repo.get_talent_by_username(payload.username):
        raise HTTPException(status_code=409, detail=f"talent {payload.username} already exists")

    talent = repo.create_talent(username=payload.username, name=payload.name, website_url=payload.website_url)
    if payload.website_url and payload.start_pipeline:
        PipelineOrchestrator(db).trigger_scrape(talent.id, payload.website_url)
    return TalentResponse.model_validate(repo.talent_profile(repo.require_talent(talent.id)))


@router.get("/talents", response_model=SearchResponse)
def search_talents(
    search: str | None = None,
    per_page: int | None = Query(default=None, ge=1, le=100),
    page: int = Query(default=1, ge=1),
    db: Session = Depends(get_db),
) -> SearchResponse:
    result = HybridSearchEngine(db).search(search, page_size=per_page, page=page)
    return SearchResponse(
        items=result.items,
        page=result.page,
        per_page=result.page_size,
        total=result.total,
        mode=result.mode,
    )


@router.get("/talents/{talent_id}", response_model=TalentResponse)
def get_talent(talent_id: int, db: Session = Depends(get_db)) -> TalentResponse:
    repo = Repository(db)
    try:
        talent = repo.require_talent(talent_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return TalentResponse.model_validate(repo.talent_profile(talent))


@router.patch("/talents/{talent_id}", response_model=TalentResponse)
def update_talent(talent_id: int, payload: TalentUpdateRequest, db: Session = Depends(get_db)) -> TalentResponse:
    orchestrator = PipelineOrchestrator(db)
    try:
        profile = orchestrator.update_profile(talent_id, payload.model_dump(exclude_none=True))
    except ValueError as exc:
        raise _http_error(exc) from exc
    return TalentResponse.model_validate(profile)


@router.delete("/talents/{talent_id}", status_code=204)
def delete_talent(talent_id: int, db: Session = Depends(get_db)) -> None:
    try:
        Repository(db).soft_delete_talent(talent_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.post("/talents/{talent_id}/scrape", response_model=PipelineStatusResponse, status_code=202)
def scrape_talent(
    talent_id: int,
    payload: ScrapeRequest | None = None,
    db: Session = Depends(get_db),
) -> PipelineStatusResponse:
    orchestrator = PipelineOrchestrator(db)
    try:
        if payload is not None and payload.url:
            status = orchestrator.trigger_scrape(talent_id, payload.url)
        else:
            status = orchestrator.reprocess(talent_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return PipelineStatusResponse.model_validate(status)


@router.get("/talents/{talent_id}/status", response_model=PipelineStatusResponse)
def talent_status(talent_id: int, db: Session = Depends(get_db)) -> PipelineStatusResponse:
    try:
        return PipelineStatusResponse.model_validate(PipelineOrchestrator(db).get_status(talent_id))
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/talents/{talent_id}/events")
def talent_events(talent_id: int, db: Session = Depends(get_db)) -> list[dict]:
    repo = Repository(db)
    if repo.get_talent(talent_id) is None:
        raise HTTPException(status_code=404, detail=f"talent {talent_id} not found")
    return [
        {
            "event_id": row.id,
            "run_id": row.scrape_run_id,
            "stage": row.stage,
            "action": row.action,
            "payload": row.payload_json,
            "created_at": row.created_at.isoformat() if row.created_at else None,
        }
        for row in repo.list_events(talent_id)
    ]


@router.websocket("/talents/{talent_id}/stream")
async def stream_talent_events(websocket: WebSocket, talent_id: int) -> None:
    await websocket.accept()
    event_bus = get_event_bus()
    try:
        async for event in event_bus.subscribe(talent_id):
            await websocket.send_json(event)
    except WebSocketDisconnect:
        return
