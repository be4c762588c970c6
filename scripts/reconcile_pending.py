import logging
import os
import sys

from src.application.booking_service import BookingService
from src.infrastructure.db.session import database, get_db_session
from src.infrastructure.notifications.email_service import dispatch_receipt


logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)


def main() -> int:
    try:
        with get_db_session() as db:
            report = BookingService(db).reconcile_stale_bookings()
        for booking_id in report.confirmed:
            dispatch_receipt(booking_id)
    finally:
        database.dispose()

    print(
        f"Checked {report.checked} pending bookings: "
        f"{len(report.confirmed)} confirmed, {len(report.failed)} failed, "
        f"{len(report.skipped)} left for the next run."
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
