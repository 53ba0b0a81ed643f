"""FastAPI application exposing the staking flows over HTTP."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from stakecal import __version__
from stakecal.api.schemas import (
    AttendanceCodeRequest,
    CheckInRequest,
    ConfirmRequest,
    InitiateRequest,
    MeetingRequest,
    ResolveContactsRequest,
    SettleRequest,
    StakeRequest,
)
from stakecal.errors import StakeCalError
from stakecal.models.contacts import TokenResolution
from stakecal.models.records import (
    CheckInResult,
    EventDraft,
    PendingMeeting,
    SettlementResult,
)
from stakecal.models.snapshots import to_dict
from stakecal.service import StakeCalService

log = logging.getLogger(__name__)


def get_service(request: Request) -> StakeCalService:
    return request.app.state.service


# ── Response bodies ────────────────────────────────────────


def _resolution_body(resolution: TokenResolution) -> dict:
    return {
        "search_query": resolution.search_query,
        "kind": resolution.kind.value,
        "email": resolution.email,
        "matches": [to_dict(m) for m in resolution.matches],
    }


def _settlement_body(result: SettlementResult) -> dict:
    return {
        "meeting_id": result.meeting_id,
        "refunded": str(result.refunded),
        "forfeited": str(result.forfeited),
        "refunded_wallets": result.refunded_wallets,
        "forfeited_wallets": result.forfeited_wallets,
        "already_settled": result.already_settled,
    }


def _check_in_body(result: CheckInResult) -> dict:
    return {
        "meeting_id": result.meeting_id,
        "wallet_address": result.wallet_address,
        "checked_in": result.checked_in,
        "check_in_time": result.check_in_time.isoformat() if result.check_in_time else None,
    }


def _pending_body(meeting: PendingMeeting) -> dict:
    return {
        "meeting_id": meeting.meeting_id,
        "status": meeting.status.value,
        "calendar_event_id": meeting.calendar_event_id,
    }


# ── Routes ─────────────────────────────────────────────────

router = APIRouter(prefix="/api")


@router.get("/health")
async def health() -> dict:
    return {"status": "ok", "version": __version__}


@router.post("/contacts/resolve")
async def resolve_contacts(
    body: ResolveContactsRequest, service: StakeCalService = Depends(get_service)
) -> dict:
    result = await service.resolve_attendees(body.attendees, body.account_id)
    return {
        "resolved": result.resolved,
        "ambiguous": [_resolution_body(r) for r in result.ambiguous],
        "unmatched": result.unmatched,
        "details": result.details,
        "needs_disambiguation": result.needs_disambiguation,
    }


@router.post("/staking/initiate")
async def initiate(body: InitiateRequest, service: StakeCalService = Depends(get_service)) -> dict:
    draft = EventDraft(**body.event.model_dump())
    result = await service.initiate(
        body.wallet_address, draft, body.stake_amount, body.organizer_email
    )
    return {
        "meeting_id": result.meeting_id,
        "stake_amount": result.stake_amount,
        "stake_link": result.stake_link,
        "invitations_sent": result.invitations_sent,
        "invitations_failed": result.invitations_failed,
    }


@router.post("/staking/stake")
async def stake(body: StakeRequest, service: StakeCalService = Depends(get_service)) -> dict:
    result = await service.stake(body.meeting_id, body.wallet_address, body.amount, body.token)
    return to_dict(result)


@router.get("/staking/status")
async def status(
    meeting_id: str,
    wallet_address: str | None = None,
    service: StakeCalService = Depends(get_service),
) -> dict:
    snapshot = await service.status(meeting_id, wallet_address)
    return to_dict(snapshot)


@router.post("/staking/confirm-and-schedule")
async def confirm_and_schedule(
    body: ConfirmRequest, service: StakeCalService = Depends(get_service)
) -> dict:
    result = await service.confirm_and_schedule(body.meeting_id, body.staker_email)
    return to_dict(result)


@router.post("/staking/cancel")
async def cancel(body: MeetingRequest, service: StakeCalService = Depends(get_service)) -> dict:
    return _pending_body(await service.cancel(body.meeting_id))


@router.post("/staking/attendance-code")
async def attendance_code(
    body: AttendanceCodeRequest, service: StakeCalService = Depends(get_service)
) -> dict:
    code = await service.generate_code(body.meeting_id, body.wallet_address)
    return {"meeting_id": body.meeting_id, "code": code}


@router.post("/staking/check-in")
async def check_in(body: CheckInRequest, service: StakeCalService = Depends(get_service)) -> dict:
    result = await service.submit_code(body.meeting_id, body.code, body.wallet_address)
    return _check_in_body(result)


@router.post("/staking/settle")
async def settle(body: SettleRequest, service: StakeCalService = Depends(get_service)) -> dict:
    return _settlement_body(await service.settle(body.meeting_id, body.force))


@router.get("/staking/verify-blockchain")
async def verify_blockchain(
    meeting_id: str,
    wallet_address: str | None = None,
    service: StakeCalService = Depends(get_service),
) -> dict:
    report = await service.reconcile(meeting_id, wallet_address)
    body = to_dict(report)
    body["consistent"] = report.consistent
    return body


# ── Error mapping ──────────────────────────────────────────


async def _stakecal_error(request: Request, exc: StakeCalError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = [
        f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg')}"
        for err in exc.errors()
    ]
    return JSONResponse({"error": "; ".join(problems) or "Invalid request"}, status_code=400)


async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    log.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


def create_app(service: StakeCalService) -> FastAPI:
    """Build the app around an already-wired service."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await service.start()
        yield
        await service.close()

    app = FastAPI(title="stakecal", version=__version__, lifespan=lifespan)
    app.state.service = service
    app.include_router(router)
    app.add_exception_handler(StakeCalError, _stakecal_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(Exception, _unexpected_error)
    return app
