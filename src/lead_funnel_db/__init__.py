"""lead_funnel_db — PostgreSQL persistence for in-progress form sessions.

A session row holds the serialised ``FormSession`` snapshot between HTTP
requests.  Rows exist only while a session is in progress: the service
deletes the row once the lead record has been handed to the gateway, and
abandoned rows are purged by ``SessionRepository.purge_abandoned``.
"""

from lead_funnel_db.engine import dispose_engine, get_engine, get_session_factory
from lead_funnel_db.models.session import FormSessionRow
from lead_funnel_db.repository import SessionRepository

__all__ = [
    "FormSessionRow",
    "SessionRepository",
    "dispose_engine",
    "get_engine",
    "get_session_factory",
]
