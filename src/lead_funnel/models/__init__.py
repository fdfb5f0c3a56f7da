"""Public model re-exports for lead_funnel.

Consumers should import from ``lead_funnel.models`` rather than reaching
into sub-modules directly.
"""

# --- Directives ---
from lead_funnel.models.directive import (
    Directive,
    Disqualify,
    GoTo,
    ProceedToContact,
)

# --- Session / records ---
from lead_funnel.models.session import (
    Answer,
    Contact,
    ContactValidationError,
    DisqualificationReason,
    EarlyContact,
    FieldError,
    LeadAnswer,
    LeadRecord,
    OptionView,
    PartialLeadRecord,
    SessionSnapshot,
    SessionState,
    SessionStatus,
    StepView,
    TrackingMetadata,
)

# --- Steps / rules ---
from lead_funnel.models.step import (
    AnswerEqualsRule,
    BaseStep,
    ChoiceOption,
    ChoiceStep,
    ContactStep,
    DateOlderThanRule,
    DateStep,
    DisqualificationRule,
    Step,
)

# --- Funnel ---
from lead_funnel.models.funnel import FunnelDefinition

__all__ = [
    # Directives
    "Directive",
    "Disqualify",
    "GoTo",
    "ProceedToContact",
    # Session
    "Answer",
    "Contact",
    "ContactValidationError",
    "DisqualificationReason",
    "EarlyContact",
    "FieldError",
    "LeadAnswer",
    "LeadRecord",
    "OptionView",
    "PartialLeadRecord",
    "SessionSnapshot",
    "SessionState",
    "SessionStatus",
    "StepView",
    "TrackingMetadata",
    # Steps
    "AnswerEqualsRule",
    "BaseStep",
    "ChoiceOption",
    "ChoiceStep",
    "ContactStep",
    "DateOlderThanRule",
    "DateStep",
    "DisqualificationRule",
    "Step",
    # Funnel
    "FunnelDefinition",
]
