"""
Lookup API Module

FastAPI endpoints for running lookups and administering credential slots.
"""

import logging
from typing import Any, Dict, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from lookup_rotator import LookupOrchestrator
from lookup_rotator.credential_store import ALL_PROVIDERS
from lookup_rotator.error_handler import (
    AllProvidersFailedError,
    InvalidInputError,
    InvalidSlotError,
    LookupRotatorError,
    NoAlternativeSlotError,
    NotConfiguredError,
    PersistenceError,
    UnknownCapabilityError,
    UnknownProviderError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["lookups"])


class SlotSelection(BaseModel):
    slot: int = Field(..., description="1-based credential slot")


def get_orchestrator(request: Request) -> LookupOrchestrator:
    """Dependency to get the orchestrator from app state."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=500, detail="Lookup orchestrator not initialized")
    return orchestrator


def raise_http_error(e: LookupRotatorError) -> NoReturn:
    """Translate a library error into the matching HTTPException."""
    # UnknownCapabilityError is an InvalidInputError; check it first
    if isinstance(e, (UnknownCapabilityError, UnknownProviderError)):
        raise HTTPException(status_code=404, detail=e.message) from e
    if isinstance(e, (InvalidInputError, InvalidSlotError)):
        raise HTTPException(status_code=400, detail=e.message) from e
    if isinstance(e, (NotConfiguredError, NoAlternativeSlotError)):
        raise HTTPException(status_code=409, detail=e.message) from e
    if isinstance(e, AllProvidersFailedError):
        raise HTTPException(
            status_code=503, detail=e.build_client_error_response()["error"]
        ) from e
    if isinstance(e, PersistenceError):
        logger.error(f"Persistence failure: {e}")
        raise HTTPException(
            status_code=503, detail="Could not save settings, try again later."
        ) from e
    logger.error(f"Unhandled lookup error: {e}")
    raise HTTPException(status_code=500, detail=str(e)) from e


@router.get("/lookup/{capability}/{subject:path}")
async def lookup(
    capability: str,
    subject: str,
    caller_id: Optional[str] = None,
    orchestrator: LookupOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    """
    Run a lookup through the capability's provider chain.

    Args:
        capability: e.g. "ip-lookup" or "domain-lookup"
        subject: IP address or domain (a pasted URL is accepted for domains)
        caller_id: Selects the caller's credential slot overrides
    """
    try:
        outcome = await orchestrator.resolve(capability, subject, caller_id)
    except LookupRotatorError as e:
        raise_http_error(e)
    return outcome.to_dict()


@router.get("/providers/{provider}/slots")
async def list_slots(
    provider: str, orchestrator: LookupOrchestrator = Depends(get_orchestrator)
) -> Dict[str, Any]:
    try:
        rows = orchestrator.list_slots(provider)
        stats = orchestrator.store.get_stats()[provider]
    except LookupRotatorError as e:
        raise_http_error(e)
    return {"provider": provider, "slots": [row.to_dict() for row in rows], "stats": stats}


@router.put("/providers/{provider}/global-slot")
async def set_global_slot(
    provider: str,
    selection: SlotSelection,
    orchestrator: LookupOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    """Administratively select the global slot. The slot need not be configured."""
    try:
        orchestrator.set_global_slot(provider, selection.slot)
    except LookupRotatorError as e:
        raise_http_error(e)
    return {"provider": provider, "global_slot": selection.slot}


@router.post("/providers/{provider}/rotate")
async def rotate(
    provider: str, orchestrator: LookupOrchestrator = Depends(get_orchestrator)
) -> Dict[str, Any]:
    try:
        new_slot = orchestrator.rotate(provider)
    except LookupRotatorError as e:
        raise_http_error(e)
    return {"provider": provider, "global_slot": new_slot}


@router.get("/callers/{caller_id}/slots")
async def get_caller_slots(
    caller_id: str, orchestrator: LookupOrchestrator = Depends(get_orchestrator)
) -> Dict[str, Any]:
    return {"caller_id": caller_id, "slots": orchestrator.get_caller_settings(caller_id)}


@router.put("/callers/{caller_id}/slots/{provider}")
async def set_caller_slot(
    caller_id: str,
    provider: str,
    selection: SlotSelection,
    orchestrator: LookupOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    """Caller-initiated selection; only configured slots are accepted."""
    try:
        orchestrator.set_caller_slot(provider, caller_id, selection.slot)
    except LookupRotatorError as e:
        raise_http_error(e)
    return {"caller_id": caller_id, "provider": provider, "slot": selection.slot}


@router.delete("/callers/{caller_id}/slots")
async def reset_caller_slots(
    caller_id: str,
    provider: str = Query(ALL_PROVIDERS),
    orchestrator: LookupOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    try:
        orchestrator.reset_caller_slot(caller_id, provider)
    except LookupRotatorError as e:
        raise_http_error(e)
    return {"caller_id": caller_id, "reset": provider}


@router.get("/stats")
async def stats(orchestrator: LookupOrchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    return orchestrator.stats()
