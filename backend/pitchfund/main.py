from __future__ import annotations

from typing import Annotated

from fastapi import Depends, FastAPI, Header, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from payments.base import PaymentGateway
from payments.client import StripeGateway

from . import schemas
from .core.config import settings
from .core.security import decode_access_token, extract_bearer_token
from .db import get_db, init_db
from .domain import RequestContext
from .domain.errors import DomainError, RateLimitedError
from .repositories import UserRepository
from .services.access import context_for_user
from .services.chat_service import ChatService
from .services.event_service import EventService
from .services.ledger_service import CashRegistration, ParticipantLedger
from .services.payment_service import PaymentIntake
from .services.payout_service import PayoutGate
from .services.profile_service import ProfileService
from .services.realtime import (
    PARTICIPANT_ADDED,
    PARTICIPANT_REMOVED,
    Broker,
    RealtimeMessage,
    event_channel,
    get_broker,
)

app = FastAPI(title="PitchFund API", version="0.1.0", debug=settings.debug)


@app.on_event("startup")
def on_startup() -> None:
    """Create tables when the API boots."""

    init_db()


# ----- Error mapping


@app.exception_handler(DomainError)
def handle_domain_error(request: Request, exc: DomainError) -> JSONResponse:
    body: dict[str, object] = {"error": exc.message, "code": exc.code.value}
    if isinstance(exc, RateLimitedError):
        body["remainingDays"] = exc.remaining_days
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(RequestValidationError)
def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(location) or "request"
        message = f"{field}: {first.get('msg', 'invalid value')}"
    else:
        message = "Invalid request"
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


@app.exception_handler(StarletteHTTPException)
def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(SQLAlchemyError)
def handle_database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Database error while handling {} {}", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Database error", "code": "UPSTREAM"},
    )


@app.get("/healthz", tags=["system"])
def healthcheck() -> dict[str, str]:
    """Basic readiness probe consumed by infrastructure monitors."""

    return {"status": "ok"}


# ----- Dependencies


def _context(
    authorization: Annotated[str | None, Header()] = None,
    db=Depends(get_db),
) -> RequestContext:
    """Resolve the caller from the bearer token; no token means anonymous."""

    token = extract_bearer_token(authorization)
    if token is None:
        return RequestContext.anonymous()
    claims = decode_access_token(token)
    user = UserRepository(db).ensure_user(str(claims["sub"]), email=claims.get("email"))
    db.commit()
    return context_for_user(user)


def _gateway() -> PaymentGateway:
    return StripeGateway(settings)


def _broker() -> Broker:
    return get_broker()


def _event_service(db=Depends(get_db)) -> EventService:
    return EventService(db)


def _ledger(db=Depends(get_db)) -> ParticipantLedger:
    return ParticipantLedger(db)


def _payment_intake(
    db=Depends(get_db), gateway: PaymentGateway = Depends(_gateway)
) -> PaymentIntake:
    return PaymentIntake(db, gateway)


def _payout_gate(db=Depends(get_db), gateway: PaymentGateway = Depends(_gateway)) -> PayoutGate:
    return PayoutGate(db, gateway)


def _profile_service(db=Depends(get_db)) -> ProfileService:
    return ProfileService(db)


def _chat_service(db=Depends(get_db), broker: Broker = Depends(_broker)) -> ChatService:
    return ChatService(db, broker)


async def _raw_body(request: Request) -> bytes:
    return await request.body()


Context = Annotated[RequestContext, Depends(_context)]


# ----- Events


@app.post(
    "/events",
    response_model=schemas.EventDetail,
    status_code=status.HTTP_201_CREATED,
    tags=["events"],
)
def create_event(
    payload: schemas.EventCreate,
    context: Context,
    service: EventService = Depends(_event_service),
):
    """Create an event; online payments need a completed payout onboarding."""

    return service.create_event(context, payload)


@app.get("/events", response_model=schemas.EventList, tags=["events"])
def list_events(service: EventService = Depends(_event_service)):
    """Upcoming events ordered by start time, with funding figures."""

    return service.list_public()


@app.get("/events/mine", response_model=schemas.EventList, tags=["events"])
def list_my_events(context: Context, service: EventService = Depends(_event_service)):
    return service.list_mine(context)


@app.get("/events/{event_id}", response_model=schemas.EventDetail, tags=["events"])
def get_event(event_id: int, service: EventService = Depends(_event_service)):
    return service.get_event_detail(event_id)


# ----- Participants


@app.get(
    "/events/{event_id}/participants",
    response_model=schemas.ParticipantList,
    tags=["participants"],
)
def list_participants(
    event_id: int,
    context: Context,
    order: Annotated[str, Query(pattern="^(asc|desc)$")] = "desc",
    ledger: ParticipantLedger = Depends(_ledger),
):
    """Management view of every ledger row, including holds and refunds."""

    participants = ledger.list_for_event(context, event_id, order=order)
    items = [schemas.Participant.model_validate(p) for p in participants]
    return schemas.ParticipantList(total=len(items), items=items)


@app.post(
    "/events/{event_id}/participants",
    response_model=schemas.Participant,
    status_code=status.HTTP_201_CREATED,
    tags=["participants"],
)
def add_cash_participant(
    event_id: int,
    payload: schemas.ParticipantCreate,
    context: Context,
    ledger: ParticipantLedger = Depends(_ledger),
    broker: Broker = Depends(_broker),
):
    participant = ledger.register_cash(
        context,
        event_id,
        CashRegistration(name=payload.name, email=payload.email),
    )
    result = schemas.Participant.model_validate(participant)
    broker.publish(
        RealtimeMessage(
            channel=event_channel(event_id),
            kind=PARTICIPANT_ADDED,
            payload=result.model_dump(mode="json", by_alias=True),
        )
    )
    return result


@app.delete(
    "/events/{event_id}/participants/{participant_id}",
    response_model=schemas.MessageResponse,
    tags=["participants"],
)
def remove_participant(
    event_id: int,
    participant_id: int,
    context: Context,
    ledger: ParticipantLedger = Depends(_ledger),
    broker: Broker = Depends(_broker),
):
    message = ledger.remove(context, event_id, participant_id)
    broker.publish(
        RealtimeMessage(
            channel=event_channel(event_id),
            kind=PARTICIPANT_REMOVED,
            payload={"id": participant_id, "eventId": event_id},
        )
    )
    return schemas.MessageResponse(message=message)


# ----- Payments


@app.post("/checkout", response_model=schemas.CheckoutResponse, tags=["payments"])
def create_checkout(
    payload: schemas.CheckoutRequest,
    context: Context,
    intake: PaymentIntake = Depends(_payment_intake),
):
    """Hold a spot and return the hosted checkout URL."""

    return intake.create_checkout(context, payload)


@app.post("/webhook", response_model=schemas.WebhookAck, tags=["payments"])
def stripe_webhook(
    payload: Annotated[bytes, Depends(_raw_body)],
    stripe_signature: Annotated[str | None, Header()] = None,
    intake: PaymentIntake = Depends(_payment_intake),
):
    outcome = intake.handle_webhook(payload, stripe_signature)
    return schemas.WebhookAck(received=outcome.received, skipped=outcome.skipped)


@app.post("/connect/onboarding", response_model=schemas.ConnectOnboarding, tags=["payouts"])
def start_onboarding(context: Context, gate: PayoutGate = Depends(_payout_gate)):
    return gate.initiate_onboarding(context)


@app.get("/connect/status", response_model=schemas.ConnectStatus, tags=["payouts"])
def onboarding_status(context: Context, gate: PayoutGate = Depends(_payout_gate)):
    """Refresh payout capability flags from the processor and persist them."""

    return gate.refresh_status(context)


# ----- Profiles & admin


@app.get("/profile", response_model=schemas.Profile, tags=["profile"])
def get_profile(context: Context, service: ProfileService = Depends(_profile_service)):
    return service.get_profile(context)


@app.patch("/profile", response_model=schemas.Profile, tags=["profile"])
def update_profile(
    payload: schemas.ProfileUpdate,
    context: Context,
    service: ProfileService = Depends(_profile_service),
):
    return service.update_profile(context, payload)


@app.get("/users/{nickname}", response_model=schemas.PublicProfile, tags=["profile"])
def get_public_profile(nickname: str, service: ProfileService = Depends(_profile_service)):
    return service.get_public_profile(nickname)


@app.get("/admin/users", response_model=schemas.UserList, tags=["admin"])
def list_users(
    context: Context,
    search: Annotated[str | None, Query(max_length=100)] = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
    service: ProfileService = Depends(_profile_service),
):
    return service.list_users(context, search=search, limit=limit)


@app.post(
    "/admin/users/{user_id}/permissions",
    response_model=schemas.PermissionResult,
    tags=["admin"],
)
def set_permissions(
    user_id: str,
    payload: schemas.PermissionUpdate,
    context: Context,
    service: ProfileService = Depends(_profile_service),
):
    return service.set_event_permission(context, user_id, payload.can_create_events)


# ----- Chat


@app.get("/events/{event_id}/chat", response_model=schemas.ChatMessageList, tags=["chat"])
def list_chat(event_id: int, context: Context, service: ChatService = Depends(_chat_service)):
    return service.list_messages(context, event_id)


@app.post(
    "/events/{event_id}/chat",
    response_model=schemas.ChatMessage,
    status_code=status.HTTP_201_CREATED,
    tags=["chat"],
)
def post_chat(
    event_id: int,
    payload: schemas.ChatMessageCreate,
    context: Context,
    service: ChatService = Depends(_chat_service),
):
    return service.post_message(context, event_id, payload.message)
