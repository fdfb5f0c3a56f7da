"""Exceptions raised by the funnel SDK.

Contact problems are not exceptions: a ``ContactValidationError`` (see
``lead_funnel.models.session``) is returned inside the session state and
the UI re-prompts.
"""


class FunnelError(Exception):
    """Base class for all funnel SDK errors."""


class InvalidTransition(FunnelError):
    """The requested mutation is not allowed from the session's current state.

    Raised when the session is already terminal, when the answer targets a
    question other than the current step's, or when the answer value has no
    matching edge at the current step.
    """

    def __init__(self, message: str, *, step_id: str | None = None) -> None:
        super().__init__(message)
        self.step_id = step_id


class IncompleteSessionError(FunnelError):
    """A lead record was requested before the session reached a terminal state."""


class IngestionDeliveryError(FunnelError):
    """Delivering a lead record to the ingestion endpoint failed.

    Never propagates out of ``SubmissionGateway.deliver``; it is logged and
    reported through ``DeliveryResult.error``.
    """

    def __init__(self, message: str, *, lead_id: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.lead_id = lead_id
        self.status_code = status_code


class FunnelConfigError(FunnelError, ValueError):
    """A funnel YAML definition is structurally invalid."""
