from __future__ import annotations

from typing import Any, Mapping

from pitchfund.domain import CheckoutCompletion, CheckoutExpiry
from pitchfund.domain.errors import ValidationError

CHECKOUT_COMPLETED = "checkout.session.completed"
CHECKOUT_EXPIRED = "checkout.session.expired"
ASYNC_PAYMENT_SUCCEEDED = "checkout.session.async_payment_succeeded"
ASYNC_PAYMENT_FAILED = "checkout.session.async_payment_failed"


def event_type(event: Mapping[str, Any]) -> str:
    return str(event.get("type") or "")


def event_object(event: Mapping[str, Any]) -> Mapping[str, Any]:
    data = event.get("data") or {}
    obj = data.get("object") if isinstance(data, Mapping) else None
    if not isinstance(obj, Mapping):
        raise ValidationError("Webhook event has no data.object")
    return obj


def _reference_id(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, Mapping):
        identifier = value.get("id")
        return str(identifier) if identifier else None
    text = str(value).strip()
    return text or None


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_event_id(metadata: Mapping[str, Any]) -> int | None:
    raw = metadata.get("eventId")
    if raw in (None, ""):
        return None
    try:
        return int(str(raw))
    except ValueError as exc:
        raise ValidationError("Webhook metadata eventId is not an integer") from exc


def normalize_checkout_completion(session: Mapping[str, Any]) -> CheckoutCompletion:
    session_id = _reference_id(session.get("id"))
    if not session_id:
        raise ValidationError("Checkout session has no id")
    metadata: Mapping[str, Any] = session.get("metadata") or {}
    event_id = _parse_event_id(metadata)
    if event_id is None:
        raise ValidationError("Checkout session metadata is missing eventId")
    participant_name = _optional_text(metadata.get("participantName"))
    if not participant_name:
        raise ValidationError("Checkout session metadata is missing participantName")

    amount_total = session.get("amount_total")
    return CheckoutCompletion(
        session_id=session_id,
        payment_intent_id=_reference_id(session.get("payment_intent")),
        event_id=event_id,
        participant_name=participant_name,
        participant_email=_optional_text(metadata.get("participantEmail")),
        user_id=_optional_text(metadata.get("userId")),
        payment_status=_optional_text(session.get("payment_status")),
        avatar_url=_optional_text(metadata.get("avatarUrl")),
        amount_total=int(amount_total) if amount_total is not None else None,
        raw_data=dict(session),
    )


def normalize_checkout_expiry(session: Mapping[str, Any]) -> CheckoutExpiry:
    session_id = _reference_id(session.get("id"))
    if not session_id:
        raise ValidationError("Checkout session has no id")
    metadata: Mapping[str, Any] = session.get("metadata") or {}
    return CheckoutExpiry(session_id=session_id, event_id=_parse_event_id(metadata))
