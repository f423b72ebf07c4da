"""
app/routers/leads.py — Lead capture and admin lead management
POST /api/leads is public and limited per client IP by the lead tracker.
Every other endpoint requires admin Basic Auth.
"""

from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError

from app.config import get_settings
from app.core import logging as app_logging
from app.core.auth import soft_retry_after, verify_admin
from app.core.rate_limiter import RATE_LIMITS, get_lead_tracker, limiter
from app.models import Lead, LeadCreate, LeadCreatedResponse, LeadStatus, LeadStatusUpdate
from app.services import lead_service
from app.utils.network import get_client_ip

router = APIRouter()
settings = get_settings()


# ──────────────────────────────────────────────────────────────────────────────
# POST /api/leads: public contact form
# ──────────────────────────────────────────────────────────────────────────────

@router.post("", status_code=status.HTTP_201_CREATED, response_model=LeadCreatedResponse)
async def submit_lead(
    request: Request,
    background_tasks: BackgroundTasks,
    payload: dict[str, Any] = Body(...),
) -> Any:
    """
    Store a contact-form lead and notify the admin over WhatsApp.
    Order: per-IP submission limit → validation → honeypot → store → notify.
    The notification is sent after the response; its failure never fails the request.
    """
    client_ip = get_client_ip(request, settings.trust_forwarded_for)
    tracker = get_lead_tracker()
    decision = tracker.check_and_record(client_ip)
    if not decision.allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests. Please try again later.",
            headers={"Retry-After": str(soft_retry_after(decision, tracker.policy.window_seconds))},
        )

    try:
        submission = LeadCreate.model_validate(payload)
    except ValidationError as exc:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "message": "Validation failed",
                "errors": exc.errors(include_url=False, include_context=False),
            },
        )

    # Bots fill the hidden field; pretend success and store nothing
    if submission.is_bot:
        app_logging.log_lead_event("-", "honeypot")
        return JSONResponse(status_code=status.HTTP_200_OK, content={"message": "Success"})

    try:
        lead = lead_service.create_lead(submission)
    except lead_service.DuplicateLeadError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A lead with this email already exists",
        )
    except Exception as exc:
        app_logging.log_error("leads_router", "submit_lead", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        )

    background_tasks.add_task(lead_service.notify_new_lead, lead)
    return LeadCreatedResponse(message="Lead created successfully", id=lead.id)


# ──────────────────────────────────────────────────────────────────────────────
# Admin endpoints
# ──────────────────────────────────────────────────────────────────────────────

@router.get("", response_model=list[Lead])
@limiter.limit(RATE_LIMITS["admin"])
async def list_leads(
    request: Request,
    status_filter: Optional[str] = Query(None, alias="status"),
    _admin: str = Depends(verify_admin),
) -> list[Lead]:
    """All leads, newest first. ?status=NEW|CONTACTED|WON|LOST|ALL"""
    lead_status: Optional[LeadStatus] = None
    if status_filter and status_filter.upper() != "ALL":
        try:
            lead_status = LeadStatus(status_filter.upper())
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unknown status {status_filter!r}",
            )
    return lead_service.list_leads(lead_status)


@router.get("/{lead_id}", response_model=Lead)
@limiter.limit(RATE_LIMITS["admin"])
async def get_lead(
    request: Request,
    lead_id: str,
    _admin: str = Depends(verify_admin),
) -> Lead:
    try:
        return lead_service.get_lead(lead_id)
    except lead_service.LeadNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lead not found")


@router.patch("/{lead_id}")
@limiter.limit(RATE_LIMITS["admin"])
async def update_lead(
    request: Request,
    lead_id: str,
    body: LeadStatusUpdate,
    _admin: str = Depends(verify_admin),
) -> dict[str, Any]:
    try:
        lead = lead_service.update_lead_status(lead_id, body.status)
    except lead_service.LeadNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lead not found")
    return {
        "message": "Lead status updated successfully",
        "lead": lead.model_dump(mode="json"),
    }


@router.delete("/{lead_id}")
@limiter.limit(RATE_LIMITS["admin"])
async def delete_lead(
    request: Request,
    lead_id: str,
    _admin: str = Depends(verify_admin),
) -> dict[str, str]:
    try:
        lead_service.delete_lead(lead_id)
    except lead_service.LeadNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lead not found")
    logger.info(f"Lead {lead_id} deleted by admin.")
    return {"message": "Lead deleted successfully"}
