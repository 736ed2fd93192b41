import logging
import sys
from app.core.config import settings
from app.db.session import session_scope
from app.services.reservation import ReservationService

logging.basicConfig(level=settings.LOG_LEVEL)

def reconcile(grace_seconds: int = None):
    with session_scope() as session:
        deleted = ReservationService(session).reconcile_orphans(grace_seconds)
    print(f"Deleted {len(deleted)} orphan reservations{': ' + str(deleted) if deleted else ''}")
    return deleted

if __name__ == "__main__":
    reconcile(int(sys.argv[1]) if len(sys.argv) > 1 else None)
