"""Organizer payout onboarding backed by Stripe Connect Express accounts."""

from __future__ import annotations

from loguru import logger
from sqlalchemy.orm import Session

from payments.base import PaymentGateway
from pitchfund import schemas
from pitchfund.domain import PayoutStatus, RequestContext
from pitchfund.domain.errors import OnboardingIncompleteError
from pitchfund.models import User
from pitchfund.repositories import UserRepository

from .access import require_authenticated


def require_onboarding_complete(user: User | None) -> User:
    """Gate for anything that routes money to an organizer."""

    if user is None or not user.stripe_account_id or not user.stripe_onboarding_complete:
        raise OnboardingIncompleteError()
    return user


class PayoutGate:
    def __init__(self, session: Session, gateway: PaymentGateway) -> None:
        self._session = session
        self._gateway = gateway
        self._users = UserRepository(session)

    def initiate_onboarding(self, context: RequestContext) -> schemas.ConnectOnboarding:
        """Create the payout account on first use and return a fresh onboarding link."""

        user_id = require_authenticated(context)
        try:
            user = self._users.ensure_user(user_id, email=context.email)
            account_id = user.stripe_account_id
            if not account_id:
                account_id = self._gateway.create_account(email=user.email)
                user.stripe_account_id = account_id
                # Persist before requesting the link so a retry reuses the account.
                self._session.commit()
                logger.info("Created payout account {} for user {}", account_id, user_id)
            url = self._gateway.create_account_link(account_id)
        except Exception:
            self._session.rollback()
            raise

        logger.info("Issued onboarding link for payout account {}", account_id)
        return schemas.ConnectOnboarding(url=url, account_id=account_id)

    def refresh_status(self, context: RequestContext) -> schemas.ConnectStatus:
        user_id = require_authenticated(context)
        try:
            user = self._users.ensure_user(user_id, email=context.email)
            if not user.stripe_account_id:
                self._session.commit()
                status = PayoutStatus(connected=False)
            else:
                status = self._gateway.retrieve_account(user.stripe_account_id)
                user.stripe_charges_enabled = status.charges_enabled
                user.stripe_payouts_enabled = status.payouts_enabled
                user.stripe_onboarding_complete = status.onboarding_complete
                self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        return schemas.ConnectStatus(
            connected=status.connected,
            onboarding_complete=status.onboarding_complete,
            charges_enabled=status.charges_enabled,
            payouts_enabled=status.payouts_enabled,
            account_id=status.account_id,
        )


__all__ = ["PayoutGate", "require_onboarding_complete"]
