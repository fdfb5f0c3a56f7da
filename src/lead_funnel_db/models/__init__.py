"""ORM models for lead_funnel_db."""

from lead_funnel_db.models.base import Base
from lead_funnel_db.models.session import FormSessionRow

__all__ = ["Base", "FormSessionRow"]
