import logging
import sys

from orca.core.config import settings
from orca.core.tenant import get_clinic_id, get_request_id

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] [req=%(request_id)s clinic=%(clinic_id)s] %(message)s"


class RequestContextFilter(logging.Filter):
    """Attach the current request id and clinic id to every record"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"
        record.clinic_id = get_clinic_id() or "-"
        return True


def configure_logging(level: str = None) -> None:
    """Configure root logging once for the API process"""
    root = logging.getLogger()
    if any(isinstance(f, RequestContextFilter) for h in root.handlers for f in h.filters):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(RequestContextFilter())

    root.addHandler(handler)
    root.setLevel((level or settings.LOG_LEVEL).upper())

    # SQL echo is controlled by DEBUG on the engine, keep the logger quiet otherwise
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
