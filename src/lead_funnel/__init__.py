"""lead_funnel — lead-qualification funnel SDK.

Public API:
    FunnelStore        — loads funnel YAML into validated step graphs
    StepGraph          — pure transition function of one funnel
    RuleEvaluator      — ordered disqualification rules, first match wins
    FormSession        — one user's pass through a funnel
    FunnelService      — FormSession persisted per request in PostgreSQL
    SubmissionGateway  — posts finished lead records to the ingestion endpoint
    CertificationTokenRegistry — late certification tokens for waiting deliveries

Session / record models:
    SessionState       — snapshot returned by every session operation
    LeadRecord         — export of a terminal session
    PartialLeadRecord  — export of an early name + email capture
    Contact, EarlyContact, TrackingMetadata, Answer

Errors:
    InvalidTransition, IncompleteSessionError, IngestionDeliveryError,
    FunnelConfigError
"""

from lead_funnel.errors import (
    FunnelConfigError,
    FunnelError,
    IncompleteSessionError,
    IngestionDeliveryError,
    InvalidTransition,
)
from lead_funnel.evaluator import RuleEvaluator
from lead_funnel.funnel import FunnelStore
from lead_funnel.gateway import DeliveryResult, StaticCertificationToken, SubmissionGateway
from lead_funnel.graph import StepGraph
from lead_funnel.interfaces import CertificationTokenSource
from lead_funnel.models.directive import Directive, Disqualify, GoTo, ProceedToContact
from lead_funnel.models.session import (
    Answer,
    Contact,
    ContactValidationError,
    DisqualificationReason,
    EarlyContact,
    FieldError,
    LeadRecord,
    PartialLeadRecord,
    SessionState,
    SessionStatus,
    TrackingMetadata,
)
from lead_funnel.service import FunnelService
from lead_funnel.session import FormSession
from lead_funnel.tokens import CertificationTokenRegistry, PendingCertificationToken

__all__ = [
    # Core
    "FunnelStore",
    "StepGraph",
    "RuleEvaluator",
    "FormSession",
    "FunnelService",
    # Delivery
    "SubmissionGateway",
    "DeliveryResult",
    "CertificationTokenSource",
    "StaticCertificationToken",
    "CertificationTokenRegistry",
    "PendingCertificationToken",
    # Directives
    "Directive",
    "GoTo",
    "ProceedToContact",
    "Disqualify",
    # Session / records
    "Answer",
    "Contact",
    "EarlyContact",
    "TrackingMetadata",
    "SessionState",
    "SessionStatus",
    "DisqualificationReason",
    "FieldError",
    "ContactValidationError",
    "LeadRecord",
    "PartialLeadRecord",
    # Errors
    "FunnelError",
    "InvalidTransition",
    "IncompleteSessionError",
    "IngestionDeliveryError",
    "FunnelConfigError",
]
