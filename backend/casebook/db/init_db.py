"""Create all tables. Run on app startup."""
import logging

from casebook.db.base import Base
from casebook.db.session import engine
from casebook.models import user, client, case, invoice, task, time_entry, report_template  # noqa: F401 - register models

logger = logging.getLogger(__name__)


def init_db(bind=None):
    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    logger.info(f"[DB] Tables ready: {', '.join(sorted(Base.metadata.tables))}")
