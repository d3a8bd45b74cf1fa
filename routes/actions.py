"""Action API routes — one endpoint per service tier plus a routing gateway."""

import logging
from functools import partial

import anyio.to_thread
from anyio import CapacityLimiter
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from config import settings
from database import get_session_factory
from engine.dispatcher import ACTION_TIERS, Tier, execute_action
from schemas.actions import ActionRequest, ActionResponse
from services.documents import DocumentStore, get_document_store

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["actions"])


def build_tier_limiters() -> dict[Tier, CapacityLimiter]:
    """Separate worker pools so heavy media work cannot starve reads."""
    return {
        Tier.READ: CapacityLimiter(settings.READ_TIER_CONCURRENCY),
        Tier.TRANSACTIONAL: CapacityLimiter(settings.OPS_TIER_CONCURRENCY),
        Tier.HEAVY: CapacityLimiter(settings.MEDIA_TIER_CONCURRENCY),
    }


def _limiter(request: Request, tier: Tier) -> CapacityLimiter:
    limiters = getattr(request.app.state, "tier_limiters", None)
    if limiters is None:
        limiters = build_tier_limiters()
        request.app.state.tier_limiters = limiters
    return limiters[tier]


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse(status_code=400, content=ActionResponse.error(message).to_body())


async def _dispatch(request: Request, tier: Tier | None, session_factory, documents: DocumentStore) -> JSONResponse:
    try:
        body = await request.json()
    except ValueError:
        return _bad_request("Malformed JSON body")

    try:
        action_request = ActionRequest.model_validate(body)
    except ValidationError:
        return _bad_request("Request must be an object with an 'action' and a 'payload'")

    pool = tier or ACTION_TIERS.get(action_request.action, Tier.READ)
    status_code, content = await anyio.to_thread.run_sync(
        partial(execute_action, action_request, session_factory, documents, tier),
        limiter=_limiter(request, pool),
    )
    return JSONResponse(status_code=status_code, content=content)


@router.post("/auth")
async def read_tier(
    request: Request,
    session_factory=Depends(get_session_factory),
    documents: DocumentStore = Depends(get_document_store),
):
    """Logins, signup, heartbeat and sync-down. Lock-free reads."""
    return await _dispatch(request, Tier.READ, session_factory, documents)


@router.post("/ops")
async def transactional_tier(
    request: Request,
    session_factory=Depends(get_session_factory),
    documents: DocumentStore = Depends(get_document_store),
):
    """State-changing job actions, serialized per tenant."""
    return await _dispatch(request, Tier.TRANSACTIONAL, session_factory, documents)


@router.post("/media")
async def heavy_tier(
    request: Request,
    session_factory=Depends(get_session_factory),
    documents: DocumentStore = Depends(get_document_store),
):
    """PDFs, photos and work orders. No lock, compare-and-set writes."""
    return await _dispatch(request, Tier.HEAVY, session_factory, documents)


@router.post("/action")
async def gateway(
    request: Request,
    session_factory=Depends(get_session_factory),
    documents: DocumentStore = Depends(get_document_store),
):
    """Single entry point; the action name decides the tier."""
    return await _dispatch(request, None, session_factory, documents)
