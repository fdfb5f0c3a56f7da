"""Session, answer and lead-record models — the contract between the SDK and its callers.

These models define what a :class:`~lead_funnel.session.FormSession` returns
after each interaction and what it exports once terminal.  They are
intentionally decoupled from the ORM models in ``lead_funnel_db`` so that API
consumers never see database internals.

Output shapes:
  - SessionState: snapshot returned by every session operation
  - LeadRecord: immutable export of a terminal session, sent to ingestion
  - PartialLeadRecord: export of an early (name + email) capture

Lead records are serialised camelCase (``model_dump(by_alias=True)``) because
that is the wire format the ingestion endpoint accepts.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Literal, Optional
from urllib.parse import parse_qs, urlparse

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from lead_funnel.constants import DEFAULT_UTM_SOURCE


class SessionStatus(str, enum.Enum):
    """Lifecycle states for a form session.

    Transitions (each at most once):
        InProgress -> Disqualified  (a disqualify edge was taken)
        InProgress -> Qualified     (valid contact data submitted)
    """

    IN_PROGRESS = "InProgress"
    DISQUALIFIED = "Disqualified"
    QUALIFIED = "Qualified"

    @property
    def is_terminal(self) -> bool:
        return self is not SessionStatus.IN_PROGRESS


class DisqualificationReason(str, enum.Enum):
    """Canonical disqualification reasons, referenced by name in funnel YAML."""

    NOT_COMMERCIAL_VEHICLE = "NOT_COMMERCIAL_VEHICLE"
    USER_AT_FAULT = "USER_AT_FAULT"
    NOT_WORK_USE = "NOT_WORK_USE"
    NO_TIMELY_MEDICAL_CARE = "NO_TIMELY_MEDICAL_CARE"
    CLAIM_TOO_OLD = "CLAIM_TOO_OLD"

    @property
    def description(self) -> str:
        """Human-readable label shown to staff."""
        return _REASON_DESCRIPTIONS[self]


_REASON_DESCRIPTIONS: dict[DisqualificationReason, str] = {
    DisqualificationReason.NOT_COMMERCIAL_VEHICLE: "Not a work/commercial vehicle",
    DisqualificationReason.USER_AT_FAULT: "User was at fault",
    DisqualificationReason.NOT_WORK_USE: "Vehicle not used for work purposes",
    DisqualificationReason.NO_TIMELY_MEDICAL_CARE: "No medical attention within 14 days",
    DisqualificationReason.CLAIM_TOO_OLD: "Accident occurred more than 2 years ago",
}


class _CamelModel(BaseModel):
    """Base for models that travel over the wire in camelCase."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


# ------------------------------------------------------------------
# Collected data
# ------------------------------------------------------------------

class Answer(BaseModel):
    """One recorded answer.  ``value`` drives the graph; ``display_text`` is for people."""

    model_config = ConfigDict(frozen=True)

    question_key: str
    value: str
    display_text: str
    answered_at: datetime


class Contact(_CamelModel):
    """Contact details collected on the terminal contact step.

    All fields default to empty strings so incomplete input reaches
    :func:`~lead_funnel.contact.validate_contact` and gets per-field errors
    instead of a parse failure.
    """

    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    email: str = ""


class EarlyContact(_CamelModel):
    """First name and email captured before the funnel is finished."""

    first_name: str = ""
    email: str = ""


class TrackingMetadata(_CamelModel):
    """Attribution snapshot taken once when the session is created."""

    utm_source: str = DEFAULT_UTM_SOURCE
    utm_medium: str = ""
    utm_campaign: str = ""
    utm_term: str = ""
    utm_content: str = ""
    landing_page: str = ""
    referrer: str = ""
    user_agent: str = ""
    created_at: datetime

    @classmethod
    def from_landing_page(
        cls,
        landing_page: str,
        *,
        created_at: datetime,
        user_agent: str = "",
        referrer: str = "",
    ) -> TrackingMetadata:
        """Build tracking metadata, pulling ``utm_*`` parameters out of the URL."""
        params = parse_qs(urlparse(landing_page).query)

        def first(name: str) -> str:
            values = params.get(name)
            return values[0] if values else ""

        return cls(
            utm_source=first("utm_source") or DEFAULT_UTM_SOURCE,
            utm_medium=first("utm_medium"),
            utm_campaign=first("utm_campaign"),
            utm_term=first("utm_term"),
            utm_content=first("utm_content"),
            landing_page=landing_page,
            referrer=referrer,
            user_agent=user_agent,
            created_at=created_at,
        )


# ------------------------------------------------------------------
# Contact validation result (returned, never raised)
# ------------------------------------------------------------------

class FieldError(BaseModel):
    """A problem with one contact field."""

    field: str
    message: str


class ContactValidationError(BaseModel):
    """Field-level contact problems.  Does not change session status."""

    errors: list[FieldError]

    def for_field(self, field: str) -> list[str]:
        return [e.message for e in self.errors if e.field == field]

    @property
    def fields(self) -> set[str]:
        return {e.field for e in self.errors}


# ------------------------------------------------------------------
# Session state snapshot
# ------------------------------------------------------------------

class OptionView(BaseModel):
    value: str
    label: str


class StepView(BaseModel):
    """Flattened step for UI consumers.

    Strips routing details and presents only what a form needs to render
    the question.
    """

    step_id: str
    question_key: str
    question: str
    kind: Literal["choice", "date", "contact"]
    # Present for choice steps only
    options: list[OptionView] | None = None
    # Present for the contact step only
    fields: list[str] | None = None


class SessionState(BaseModel):
    """Public view of a form session after an operation."""

    session_id: str
    funnel_id: str
    status: SessionStatus
    # None once the session is terminal
    current_step: StepView | None = None
    disqualification_reason: DisqualificationReason | None = None
    disqualification_description: str | None = None
    answers: list[Answer] = Field(default_factory=list)
    lead_id: str | None = None
    early_contact_captured: bool = False
    # Set when the last contact (or early contact) submission was rejected
    validation_error: ContactValidationError | None = None


# ------------------------------------------------------------------
# Lead records (wire format)
# ------------------------------------------------------------------

class LeadAnswer(_CamelModel):
    value: str
    display_text: str


class LeadRecord(_CamelModel):
    """Immutable export of a terminal session, POSTed to the ingestion endpoint."""

    lead_id: str
    status: Literal["Qualified", "Disqualified"]
    disqualification_reason: Optional[str] = None
    answers: dict[str, LeadAnswer]
    contact: Optional[Contact] = None
    tracking: TrackingMetadata
    certification_token: Optional[str] = None
    # Funnel tags
    funnel_id: str
    source_site: str
    funnel_type: str
    lead_type: str
    ad_category: Optional[str] = None
    completed_at: datetime

    def to_payload(self) -> dict:
        """JSON-ready camelCase dict, omitting absent optional fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PartialLeadRecord(_CamelModel):
    """Export of an early capture (first name + email) for follow-up."""

    lead_id: str
    lead_type: str
    funnel_id: str
    source_site: str
    first_name: str
    email: str
    answers: dict[str, LeadAnswer]
    tracking: TrackingMetadata
    captured_at: datetime

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ------------------------------------------------------------------
# Persistence snapshot
# ------------------------------------------------------------------

class SessionSnapshot(BaseModel):
    """Complete serialisable state of a FormSession (stored as JSONB)."""

    session_id: str
    funnel_id: str
    current_step_id: str
    status: SessionStatus
    answers: list[Answer] = Field(default_factory=list)
    disqualification_reason: DisqualificationReason | None = None
    contact: Contact | None = None
    early_contact: EarlyContact | None = None
    certification_token: str | None = None
    lead_id: str | None = None
    partial_lead_id: str | None = None
    early_captured_at: datetime | None = None
    completed_at: datetime | None = None
    tracking: TrackingMetadata
