from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from conftest import NOW, context_for, make_event, make_onboarded_organizer, make_participant, make_user
from payments.base import CheckoutSessionHandle
from pitchfund import schemas
from pitchfund.domain.errors import (
    CapacityExceededError,
    OnboardingIncompleteError,
    SignatureVerificationError,
    UpstreamServiceError,
    ValidationError,
)
from pitchfund.models import Participant, PaymentStatus
from pitchfund.services.payment_service import PaymentIntake


@pytest.fixture
def intake(db_session, gateway, test_settings, clock) -> PaymentIntake:
    return PaymentIntake(db_session, gateway, config=test_settings, clock=clock)


def _participants(session, event_id: int) -> list[Participant]:
    query = select(Participant).where(Participant.event_id == event_id).order_by(Participant.id)
    return list(session.execute(query).scalars())


def _completed_event(
    event_id: int,
    session_id: str = "cs_test_1",
    intent: str = "pi_test_1",
    *,
    kind: str = "checkout.session.completed",
    payment_status: str = "paid",
) -> dict:
    return {
        "id": "evt_1",
        "type": kind,
        "data": {
            "object": {
                "id": session_id,
                "payment_intent": intent,
                "payment_status": payment_status,
                "amount_total": 2000,
                "metadata": {
                    "eventId": str(event_id),
                    "participantName": "Online Player",
                    "participantEmail": "online@example.com",
                    "userId": "",
                },
            }
        },
    }


def test_checkout_without_onboarding_is_rejected(db_session, intake, gateway):
    """Verify a checkout for an organizer without payouts fails and leaves the event untouched."""
    organizer = make_user(db_session)
    event = make_event(db_session, organizer)

    with pytest.raises(OnboardingIncompleteError):
        intake.create_checkout(
            context_for("player-1"),
            schemas.CheckoutRequest(event_id=event.id, participant_name="Player"),
        )

    gateway.create_checkout_session.assert_not_called()
    assert _participants(db_session, event.id) == []


def test_checkout_places_hold_and_builds_session(db_session, intake, gateway, test_settings):
    """Verify a checkout reserves a slot and passes price, metadata and destination to Stripe."""
    organizer = make_onboarded_organizer(db_session)
    event = make_event(db_session, organizer)
    gateway.create_checkout_session.return_value = CheckoutSessionHandle(
        session_id="cs_test_1", url="https://checkout.stripe.test/cs_test_1"
    )

    response = intake.create_checkout(
        context_for("player-1"),
        schemas.CheckoutRequest(
            event_id=event.id, participant_name="Player", participant_email="p@example.com"
        ),
    )

    assert response.url == "https://checkout.stripe.test/cs_test_1"
    assert response.hold_expires_at == NOW + timedelta(minutes=test_settings.checkout_hold_minutes)

    request = gateway.create_checkout_session.call_args.args[0]
    assert request.line_item.unit_amount == 2000
    assert request.line_item.currency == "pln"
    assert request.payment_method_types == ["card", "blik"]
    assert request.destination_account == "acct_organizer-1"
    assert request.application_fee_amount is None
    assert request.success_url == f"https://pitch.test/event/{event.id}?success=true"
    assert request.metadata["eventId"] == str(event.id)
    assert request.metadata["userId"] == "player-1"

    [hold] = _participants(db_session, event.id)
    assert hold.id == response.participant_id
    assert hold.payment_status == PaymentStatus.PENDING.value
    assert hold.stripe_checkout_session_id == "cs_test_1"
    assert hold.user_id == "player-1"


def test_checkout_rejects_already_registered_user(db_session, intake, gateway):
    """Verify a linked user with a paid entry cannot start a second checkout."""
    organizer = make_onboarded_organizer(db_session)
    make_user(db_session, "player-1", can_create_events=False)
    event = make_event(db_session, organizer)
    make_participant(db_session, event, name="Player", user_id="player-1")

    with pytest.raises(ValidationError):
        intake.create_checkout(
            context_for("player-1"),
            schemas.CheckoutRequest(event_id=event.id, participant_name="Player"),
        )
    gateway.create_checkout_session.assert_not_called()


def test_checkout_rejects_full_event(db_session, intake, gateway):
    """Verify holds and paid rows together cap online admission."""
    organizer = make_onboarded_organizer(db_session)
    event = make_event(db_session, organizer, max_players=2)
    make_participant(db_session, event, name="Paid")
    make_participant(
        db_session,
        event,
        name="Holding",
        payment_status=PaymentStatus.PENDING.value,
        hold_expires_at=NOW + timedelta(minutes=10),
    )

    with pytest.raises(CapacityExceededError):
        intake.create_checkout(
            context_for(None),
            schemas.CheckoutRequest(event_id=event.id, participant_name="Guest"),
        )


def test_checkout_rejects_cash_only_event(db_session, intake):
    """Verify events that opted out of online payments cannot be paid online."""
    organizer = make_onboarded_organizer(db_session)
    event = make_event(db_session, organizer, accepts_online_payments=False)

    with pytest.raises(ValidationError):
        intake.create_checkout(
            context_for(None),
            schemas.CheckoutRequest(event_id=event.id, participant_name="Guest"),
        )


def test_checkout_failure_releases_hold(db_session, intake, gateway):
    """Verify a Stripe failure marks the hold failed so the slot is free again."""
    organizer = make_onboarded_organizer(db_session)
    event = make_event(db_session, organizer)
    gateway.create_checkout_session.side_effect = UpstreamServiceError("Failed to create checkout session")

    with pytest.raises(UpstreamServiceError):
        intake.create_checkout(
            context_for(None),
            schemas.CheckoutRequest(event_id=event.id, participant_name="Guest"),
        )

    [hold] = _participants(db_session, event.id)
    assert hold.payment_status == PaymentStatus.FAILED.value


def test_webhook_requires_signature(intake, gateway):
    """Verify a request without Stripe-Signature is rejected before parsing."""
    with pytest.raises(SignatureVerificationError):
        intake.handle_webhook(b"{}", None)
    gateway.construct_event.assert_not_called()


def test_webhook_invalid_signature_changes_nothing(db_session, intake, gateway):
    """Verify a forged webhook leaves the ledger untouched."""
    organizer = make_onboarded_organizer(db_session)
    event = make_event(db_session, organizer)
    gateway.construct_event.side_effect = SignatureVerificationError()

    with pytest.raises(SignatureVerificationError):
        intake.handle_webhook(b"{}", "t=1,v1=forged")

    assert _participants(db_session, event.id) == []


def test_webhook_completion_is_idempotent(db_session, intake, gateway):
    """Verify redelivering the same completed checkout records one participant."""
    organizer = make_onboarded_organizer(db_session)
    event = make_event(db_session, organizer)
    gateway.construct_event.return_value = _completed_event(event.id)

    first = intake.handle_webhook(b"{}", "sig")
    second = intake.handle_webhook(b"{}", "sig")

    assert first.received and not first.skipped
    assert second.received and second.skipped
    [participant] = _participants(db_session, event.id)
    assert participant.payment_status == PaymentStatus.SUCCEEDED.value
    assert participant.stripe_payment_intent_id == "pi_test_1"
    assert participant.name == "Online Player"
    assert participant.user_id is None


def test_webhook_confirms_existing_hold(db_session, intake, gateway):
    """Verify a completed checkout turns its hold into a paid participant."""
    organizer = make_onboarded_organizer(db_session)
    event = make_event(db_session, organizer)
    gateway.create_checkout_session.return_value = CheckoutSessionHandle(
        session_id="cs_test_1", url="https://checkout.stripe.test/cs_test_1"
    )
    response = intake.create_checkout(
        context_for(None), schemas.CheckoutRequest(event_id=event.id, participant_name="Guest")
    )
    gateway.construct_event.return_value = _completed_event(event.id)

    intake.handle_webhook(b"{}", "sig")

    [participant] = _participants(db_session, event.id)
    assert participant.id == response.participant_id
    assert participant.payment_status == PaymentStatus.SUCCEEDED.value
    assert participant.hold_expires_at is None


def test_webhook_overflow_is_refunded(db_session, intake, gateway):
    """Verify a payment arriving for a full event is refunded and not admitted."""
    organizer = make_onboarded_organizer(db_session)
    event = make_event(db_session, organizer, max_players=2)
    make_participant(db_session, event, name="Cash")
    make_participant(db_session, event, name="Also cash")
    gateway.construct_event.return_value = _completed_event(event.id)
    gateway.refund_payment.return_value = "re_1"

    intake.handle_webhook(b"{}", "sig")

    gateway.refund_payment.assert_called_once_with("pi_test_1")
    statuses = sorted(p.payment_status for p in _participants(db_session, event.id))
    assert statuses == [
        PaymentStatus.REFUNDED.value,
        PaymentStatus.SUCCEEDED.value,
        PaymentStatus.SUCCEEDED.value,
    ]


def test_webhook_expired_session_releases_hold(db_session, intake, gateway):
    """Verify an expired checkout frees its reserved slot."""
    organizer = make_onboarded_organizer(db_session)
    event = make_event(db_session, organizer)
    make_participant(
        db_session,
        event,
        name="Holding",
        payment_status=PaymentStatus.PENDING.value,
        stripe_checkout_session_id="cs_test_9",
        hold_expires_at=NOW + timedelta(minutes=10),
    )
    gateway.construct_event.return_value = {
        "type": "checkout.session.expired",
        "data": {"object": {"id": "cs_test_9", "metadata": {"eventId": str(event.id)}}},
    }

    outcome = intake.handle_webhook(b"{}", "sig")

    assert not outcome.skipped
    [hold] = _participants(db_session, event.id)
    assert hold.payment_status == PaymentStatus.FAILED.value


def test_webhook_ignores_other_event_types(intake, gateway):
    """Verify unrelated Stripe events are acknowledged without action."""
    gateway.construct_event.return_value = {"type": "payment_intent.created", "data": {"object": {}}}

    outcome = intake.handle_webhook(b"{}", "sig")

    assert outcome.received
    assert not outcome.skipped


def test_unrecorded_checkout_session_is_expired(db_session, intake, gateway):
    """Verify a session that cannot be stored against its hold is closed at Stripe."""
    organizer = make_onboarded_organizer(db_session)
    event = make_event(db_session, organizer)
    make_participant(db_session, event, name="Earlier", stripe_checkout_session_id="cs_dup")
    gateway.create_checkout_session.return_value = CheckoutSessionHandle(
        session_id="cs_dup", url="https://checkout.stripe.test/cs_dup"
    )

    with pytest.raises(IntegrityError):
        intake.create_checkout(
            context_for(None), schemas.CheckoutRequest(event_id=event.id, participant_name="Guest")
        )

    gateway.expire_checkout_session.assert_called_once_with("cs_dup")


def _open_checkout(intake, gateway, event, session_id: str = "cs_test_1"):
    gateway.create_checkout_session.return_value = CheckoutSessionHandle(
        session_id=session_id, url=f"https://checkout.stripe.test/{session_id}"
    )
    return intake.create_checkout(
        context_for(None), schemas.CheckoutRequest(event_id=event.id, participant_name="Guest")
    )


def test_unpaid_completion_waits_for_async_payment(db_session, intake, gateway):
    """Verify a BLIK-style completion stays pending until the async success event."""
    organizer = make_onboarded_organizer(db_session)
    event = make_event(db_session, organizer)
    response = _open_checkout(intake, gateway, event)

    gateway.construct_event.return_value = _completed_event(event.id, payment_status="unpaid")
    waiting = intake.handle_webhook(b"{}", "sig")

    assert waiting.detail == "awaiting payment"
    [hold] = _participants(db_session, event.id)
    assert hold.payment_status == PaymentStatus.PENDING.value

    gateway.construct_event.return_value = _completed_event(
        event.id, kind="checkout.session.async_payment_succeeded"
    )
    intake.handle_webhook(b"{}", "sig")

    [participant] = _participants(db_session, event.id)
    assert participant.id == response.participant_id
    assert participant.payment_status == PaymentStatus.SUCCEEDED.value


def test_async_payment_failure_releases_hold(db_session, intake, gateway):
    """Verify a failed delayed payment frees the reserved slot."""
    organizer = make_onboarded_organizer(db_session)
    event = make_event(db_session, organizer)
    _open_checkout(intake, gateway, event)
    gateway.construct_event.return_value = _completed_event(event.id, payment_status="unpaid")
    intake.handle_webhook(b"{}", "sig")

    gateway.construct_event.return_value = _completed_event(
        event.id, kind="checkout.session.async_payment_failed", payment_status="unpaid"
    )
    outcome = intake.handle_webhook(b"{}", "sig")

    assert outcome.detail == "hold released"
    [hold] = _participants(db_session, event.id)
    assert hold.payment_status == PaymentStatus.FAILED.value


def test_overflow_already_refunded_is_still_recorded(db_session, intake, gateway):
    """Verify a redelivery whose refund already went through completes normally."""
    organizer = make_onboarded_organizer(db_session)
    event = make_event(db_session, organizer, max_players=2)
    make_participant(db_session, event, name="A")
    make_participant(db_session, event, name="B")
    gateway.construct_event.return_value = _completed_event(event.id)
    gateway.refund_payment.return_value = None

    outcome = intake.handle_webhook(b"{}", "sig")

    assert outcome.detail == PaymentStatus.REFUNDED.value
    refunded = [p for p in _participants(db_session, event.id) if p.stripe_payment_intent_id == "pi_test_1"]
    assert refunded[0].payment_status == PaymentStatus.REFUNDED.value


def test_checkout_carries_payer_avatar(db_session, intake, gateway):
    """Verify the payer's avatar travels with the hold and the session metadata."""
    organizer = make_onboarded_organizer(db_session)
    make_user(db_session, "player-1", can_create_events=False, avatar_url="https://img.test/p1.png")
    event = make_event(db_session, organizer)
    gateway.create_checkout_session.return_value = CheckoutSessionHandle(
        session_id="cs_test_1", url="https://checkout.stripe.test/cs_test_1"
    )

    intake.create_checkout(
        context_for("player-1"), schemas.CheckoutRequest(event_id=event.id, participant_name="Player")
    )

    request = gateway.create_checkout_session.call_args.args[0]
    assert request.metadata["avatarUrl"] == "https://img.test/p1.png"
    [hold] = _participants(db_session, event.id)
    assert hold.avatar_url == "https://img.test/p1.png"
