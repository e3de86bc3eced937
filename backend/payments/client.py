from __future__ import annotations

from typing import Any, Mapping

import stripe
from loguru import logger

from pitchfund.core.config import Settings, settings as default_settings
from pitchfund.domain import PayoutStatus
from pitchfund.domain.errors import SignatureVerificationError, UpstreamServiceError

from .base import CheckoutSessionHandle, CheckoutSessionRequest

ALREADY_REFUNDED = "charge_already_refunded"


def _as_dict(resource: Any) -> dict[str, Any]:
    # StripeObject is not a dict subclass on current SDKs.
    to_dict = getattr(resource, "to_dict", None)
    return to_dict() if callable(to_dict) else dict(resource)


class StripeGateway:
    """Thin wrapper around the Stripe Checkout, Connect and webhook APIs."""

    def __init__(self, config: Settings | None = None) -> None:
        self.settings = config or default_settings
        self.api_key = self.settings.stripe_secret_key
        self.webhook_secret = self.settings.stripe_webhook_secret
        self.api_version = self.settings.stripe_api_version

    def _request_options(self) -> dict[str, Any]:
        if not self.api_key:
            raise UpstreamServiceError("STRIPE_SECRET_KEY is not configured")
        return {"api_key": self.api_key, "stripe_version": self.api_version}

    def create_checkout_session(self, request: CheckoutSessionRequest) -> CheckoutSessionHandle:
        item = request.line_item
        params: dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": list(request.payment_method_types),
            "line_items": [
                {
                    "price_data": {
                        "currency": item.currency,
                        "unit_amount": item.unit_amount,
                        "product_data": {
                            "name": item.name,
                            **({"description": item.description} if item.description else {}),
                        },
                    },
                    "quantity": item.quantity,
                }
            ],
            "success_url": request.success_url,
            "cancel_url": request.cancel_url,
            "expires_at": int(request.expires_at.timestamp()),
            "metadata": dict(request.metadata),
        }
        payment_intent_data: dict[str, Any] = {"metadata": dict(request.metadata)}
        if request.destination_account:
            payment_intent_data["transfer_data"] = {"destination": request.destination_account}
            if request.application_fee_amount:
                payment_intent_data["application_fee_amount"] = request.application_fee_amount
        params["payment_intent_data"] = payment_intent_data
        if request.customer_email:
            params["customer_email"] = request.customer_email
        if request.client_reference_id:
            params["client_reference_id"] = request.client_reference_id

        try:
            session = _as_dict(stripe.checkout.Session.create(**params, **self._request_options()))
        except stripe.StripeError as exc:
            logger.exception("Stripe checkout session creation failed")
            raise UpstreamServiceError("Failed to create checkout session") from exc

        logger.info("Created Stripe checkout session {}", session["id"])
        return CheckoutSessionHandle(
            session_id=session["id"],
            url=session["url"],
            payment_intent_id=session.get("payment_intent"),
        )

    def expire_checkout_session(self, session_id: str) -> None:
        try:
            stripe.checkout.Session.expire(session_id, **self._request_options())
        except stripe.StripeError as exc:
            logger.exception("Failed to expire Stripe checkout session {}", session_id)
            raise UpstreamServiceError("Failed to expire checkout session") from exc

    def construct_event(self, payload: bytes, signature: str) -> Mapping[str, Any]:
        if not self.webhook_secret:
            raise UpstreamServiceError("STRIPE_WEBHOOK_SECRET is not configured")
        try:
            event = stripe.Webhook.construct_event(
                payload=payload,
                sig_header=signature,
                secret=self.webhook_secret,
            )
        except ValueError as exc:
            logger.warning("Stripe webhook: invalid payload")
            raise SignatureVerificationError("Invalid webhook payload") from exc
        except stripe.SignatureVerificationError as exc:
            logger.warning(
                "Stripe webhook: signature verification failed. Check STRIPE_WEBHOOK_SECRET matches the endpoint."
            )
            raise SignatureVerificationError() from exc
        return _as_dict(event)

    def refund_payment(self, payment_intent_id: str) -> str | None:
        """Refund a payment in full; returns ``None`` when it was already refunded."""

        try:
            refund = stripe.Refund.create(
                payment_intent=payment_intent_id,
                reverse_transfer=True,
                refund_application_fee=True,
                **self._request_options(),
            )
        except stripe.StripeError as exc:
            if exc.code == ALREADY_REFUNDED:
                logger.info("Payment intent {} was already refunded", payment_intent_id)
                return None
            logger.exception("Stripe refund failed for payment intent {}", payment_intent_id)
            raise UpstreamServiceError("Failed to refund payment") from exc
        return refund["id"]

    def create_account(self, *, email: str | None) -> str:
        params: dict[str, Any] = {
            "type": "express",
            "country": self.settings.connect_country,
            "capabilities": {
                "card_payments": {"requested": True},
                "blik_payments": {"requested": True},
                "transfers": {"requested": True},
            },
            "business_type": "individual",
        }
        if email:
            params["email"] = email
        try:
            account = stripe.Account.create(**params, **self._request_options())
        except stripe.StripeError as exc:
            logger.exception("Stripe Connect account creation failed")
            raise UpstreamServiceError("Failed to create payout account") from exc
        return account["id"]

    def create_account_link(self, account_id: str) -> str:
        base_url = self.settings.public_base_url
        try:
            link = stripe.AccountLink.create(
                account=account_id,
                refresh_url=f"{base_url}/connect/refresh",
                return_url=f"{base_url}/connect/return",
                type="account_onboarding",
                **self._request_options(),
            )
        except stripe.StripeError as exc:
            logger.exception("Stripe onboarding link creation failed for {}", account_id)
            raise UpstreamServiceError("Failed to create onboarding link") from exc
        return link["url"]

    def retrieve_account(self, account_id: str) -> PayoutStatus:
        try:
            account = _as_dict(stripe.Account.retrieve(account_id, **self._request_options()))
        except stripe.StripeError as exc:
            logger.exception("Stripe account lookup failed for {}", account_id)
            raise UpstreamServiceError("Failed to fetch payout account status") from exc
        return PayoutStatus(
            connected=True,
            charges_enabled=bool(account.get("charges_enabled")),
            payouts_enabled=bool(account.get("payouts_enabled")),
            account_id=account_id,
        )
