"""Online payment intake: checkout creation and Stripe webhook handling."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Mapping

from loguru import logger
from sqlalchemy.orm import Session

from payments.base import CheckoutLineItem, CheckoutSessionRequest, PaymentGateway
from payments.normalize import (
    ASYNC_PAYMENT_FAILED,
    ASYNC_PAYMENT_SUCCEEDED,
    CHECKOUT_COMPLETED,
    CHECKOUT_EXPIRED,
    event_object,
    event_type,
    normalize_checkout_completion,
    normalize_checkout_expiry,
)
from pitchfund import schemas
from pitchfund.core.config import Settings, settings as default_settings
from pitchfund.domain import RequestContext, WebhookOutcome
from pitchfund.domain import money
from pitchfund.domain.errors import (
    NotFoundError,
    SignatureVerificationError,
    UpstreamServiceError,
    ValidationError,
)
from pitchfund.models import Event, Participant, User, as_utc, utcnow
from pitchfund.repositories import EventRepository, ParticipantRepository, UserRepository

from .ledger_service import ParticipantLedger
from .payout_service import require_onboarding_complete


class PaymentIntake:
    def __init__(
        self,
        session: Session,
        gateway: PaymentGateway,
        *,
        config: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session = session
        self._gateway = gateway
        self._settings = config or default_settings
        self._clock = clock
        self._events = EventRepository(session)
        self._participants = ParticipantRepository(session)
        self._users = UserRepository(session)
        self._ledger = ParticipantLedger(session, config=self._settings, clock=clock)

    # ------------------------------------------------------------------
    # Checkout

    def create_checkout(
        self, context: RequestContext, request: schemas.CheckoutRequest
    ) -> schemas.CheckoutResponse:
        """Reserve a slot and open a hosted checkout session for it.

        The hold is committed before the processor is called so the event row
        lock is never held across the network round-trip.
        """

        try:
            event = self._events.lock_event(request.event_id)
            if event is None:
                raise NotFoundError("Event")
            organizer = require_onboarding_complete(self._users.get(event.organizer_id))
            self._ensure_open_for_payment(event, context)
            payer = self._users.get(context.user_id) if context.user_id else None
            hold = self._ledger.place_hold(
                event,
                name=request.participant_name,
                email=request.participant_email,
                user_id=context.user_id,
                avatar_url=payer.avatar_url if payer is not None else None,
            )
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        checkout = self._checkout_request(event, organizer, hold)
        try:
            handle = self._gateway.create_checkout_session(checkout)
        except UpstreamServiceError:
            self._ledger.fail_hold(hold)
            self._session.commit()
            raise

        try:
            self._ledger.attach_checkout_session(hold, handle.session_id)
            self._session.commit()
        except Exception:
            self._session.rollback()
            # An unrecorded session must not stay payable.
            try:
                self._gateway.expire_checkout_session(handle.session_id)
            except UpstreamServiceError:
                logger.exception("Could not expire unrecorded checkout {}", handle.session_id)
            raise

        logger.info(
            "Checkout {} opened for event {} (participant {})",
            handle.session_id,
            event.id,
            hold.id,
        )
        return schemas.CheckoutResponse(
            url=handle.url,
            session_id=handle.session_id,
            participant_id=hold.id,
            hold_expires_at=as_utc(hold.hold_expires_at),
        )

    def _ensure_open_for_payment(self, event: Event, context: RequestContext) -> None:
        if not event.accepts_online_payments:
            raise ValidationError("This event does not accept online payments")
        now = self._clock()
        if as_utc(now) > as_utc(event.ends_at):
            raise ValidationError("This event has already ended")
        if context.user_id is not None:
            existing = self._participants.find_registration(event.id, context.user_id, now=now)
            if existing is not None:
                raise ValidationError("You are already registered for this event")

    def _checkout_request(
        self, event: Event, organizer: User, hold: Participant
    ) -> CheckoutSessionRequest:
        base_url = self._settings.public_base_url
        price = money.quantize(event.price_per_player)
        fee = money.platform_fee(price, self._settings.platform_fee_percent)
        metadata = {
            "eventId": str(event.id),
            "participantId": str(hold.id),
            "participantName": hold.name,
            "participantEmail": hold.email or "",
            "userId": hold.user_id or "",
            "avatarUrl": hold.avatar_url or "",
        }
        return CheckoutSessionRequest(
            line_item=CheckoutLineItem(
                name=event.name,
                description=f"Participation in {event.name}",
                unit_amount=money.to_minor_units(price),
                currency=self._settings.currency,
            ),
            success_url=f"{base_url}/event/{event.id}?success=true",
            cancel_url=f"{base_url}/event/{event.id}?canceled=true",
            expires_at=as_utc(hold.hold_expires_at),
            metadata=metadata,
            payment_method_types=list(self._settings.payment_method_types),
            customer_email=hold.email,
            client_reference_id=str(hold.id),
            destination_account=organizer.stripe_account_id,
            application_fee_amount=fee or None,
        )

    # ------------------------------------------------------------------
    # Webhook

    def handle_webhook(self, payload: bytes, signature: str | None) -> WebhookOutcome:
        if not signature:
            logger.warning("Stripe webhook rejected: missing Stripe-Signature header")
            raise SignatureVerificationError("Missing Stripe-Signature header")

        event = self._gateway.construct_event(payload, signature)
        kind = event_type(event)

        if kind in (CHECKOUT_COMPLETED, ASYNC_PAYMENT_SUCCEEDED):
            return self._handle_completed(event)
        if kind in (CHECKOUT_EXPIRED, ASYNC_PAYMENT_FAILED):
            return self._handle_expired(event)

        logger.debug("Ignoring Stripe webhook event type {}", kind)
        return WebhookOutcome(detail=f"ignored {kind}")

    def _handle_completed(self, event: Mapping[str, Any]) -> WebhookOutcome:
        completion = normalize_checkout_completion(event_object(event))
        try:
            result = self._ledger.confirm_online(completion)
            if result.duplicate:
                self._session.rollback()
                logger.info("Checkout {} already recorded; skipping", completion.session_id)
                return WebhookOutcome(skipped=True, detail="duplicate")
            if result.awaiting_payment:
                self._session.commit()
                return WebhookOutcome(detail="awaiting payment")

            if result.needs_refund and completion.payment_intent_id:
                refund_id = self._gateway.refund_payment(completion.payment_intent_id)
                logger.warning(
                    "Refunded payment {} for full event {} (refund {})",
                    completion.payment_intent_id,
                    completion.event_id,
                    refund_id,
                )
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        participant = result.participant
        if completion.amount_total is not None:
            expected = self._expected_amount(completion.event_id)
            if expected is not None and expected != completion.amount_total:
                logger.warning(
                    "Checkout {} charged {} but event {} expects {}",
                    completion.session_id,
                    completion.amount_total,
                    completion.event_id,
                    expected,
                )
        logger.info(
            "Checkout {} recorded participant {} as {}",
            completion.session_id,
            participant.id,
            participant.payment_status,
        )
        return WebhookOutcome(detail=participant.payment_status)

    def _handle_expired(self, event: Mapping[str, Any]) -> WebhookOutcome:
        expiry = normalize_checkout_expiry(event_object(event))
        try:
            released = self._ledger.release_hold(expiry.session_id)
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        if released:
            logger.info("Released hold for unpaid checkout {}", expiry.session_id)
            return WebhookOutcome(detail="hold released")
        return WebhookOutcome(skipped=True, detail="no pending hold")

    def _expected_amount(self, event_id: int) -> int | None:
        event = self._events.get_event(event_id)
        if event is None:
            return None
        return money.to_minor_units(event.price_per_player)


__all__ = ["PaymentIntake"]
