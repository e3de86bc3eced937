import argparse

from loguru import logger

from pitchfund.core.config import get_settings
from pitchfund.db import init_db, session_scope
from pitchfund.services.ledger_service import ParticipantLedger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Mark checkout holds whose reservation window has lapsed as failed"
    )
    parser.add_argument("--limit", type=int, default=None, help="Release at most N holds")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    settings = get_settings()
    init_db()

    with session_scope() as session:
        ledger = ParticipantLedger(session, config=settings)
        released = ledger.release_expired_holds(limit=args.limit)

    logger.info(
        "Released {} expired holds (hold window {} minutes)",
        released,
        settings.checkout_hold_minutes,
    )


if __name__ == "__main__":
    main()
