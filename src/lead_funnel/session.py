"""FormSession — the single owner of one in-progress funnel submission.

A session holds every collected answer, the current step pointer, the
outcome, and the tracking snapshot taken at creation.  It drives the
:class:`~lead_funnel.graph.StepGraph` one interaction at a time:

    session = FormSession(graph, tracking=tracking)
    session.submit_answer("vehicleType", "semi_truck", "Semi truck")
    ...
    state = session.submit_contact(Contact(...))
    record = session.to_lead_record()

Mutation entry points are ``submit_answer``, ``submit_contact``,
``submit_early_contact`` and ``attach_certification_token``.  Once the
status is terminal every one of them raises ``InvalidTransition`` and
changes nothing.

A session is not safe for concurrent mutation.  Callers that share one
across requests must serialise access per session id (the server does so
with a row lock, see ``lead_funnel.service``).
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable

from lead_funnel.constants import PARTIAL_LEAD_SUFFIX
from lead_funnel.contact import (
    normalize_contact,
    normalize_early_contact,
    validate_contact,
    validate_early_contact,
)
from lead_funnel.errors import FunnelConfigError, IncompleteSessionError, InvalidTransition
from lead_funnel.graph import StepGraph
from lead_funnel.models.directive import Disqualify
from lead_funnel.models.session import (
    Answer,
    Contact,
    ContactValidationError,
    DisqualificationReason,
    EarlyContact,
    LeadAnswer,
    LeadRecord,
    PartialLeadRecord,
    SessionSnapshot,
    SessionState,
    SessionStatus,
    TrackingMetadata,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FormSession:
    """Mutable accumulator for one user's pass through a funnel.

    Args:
        graph: the funnel's step graph
        tracking: attribution snapshot; never modified afterwards
        session_id: caller-supplied id (a new UUID4 when omitted)
        clock: returns "now"; injected so date rules are testable
    """

    def __init__(
        self,
        graph: StepGraph,
        *,
        tracking: TrackingMetadata,
        session_id: str | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._graph = graph
        self._clock = clock or utcnow
        self._session_id = session_id or str(uuid.uuid4())
        self._tracking = tracking

        self._answers: dict[str, Answer] = {}
        self._current_step_id = graph.first_step_id
        self._status = SessionStatus.IN_PROGRESS
        self._reason: DisqualificationReason | None = None
        self._contact: Contact | None = None
        self._early_contact: EarlyContact | None = None
        self._certification_token: str | None = None

        # Assigned once, at the terminal transition / first early capture
        self._lead_id: str | None = None
        self._completed_at: datetime | None = None
        self._partial_lead_id: str | None = None
        self._early_captured_at: datetime | None = None

    # ==================================================================
    # Read-only properties
    # ==================================================================

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def funnel_id(self) -> str:
        return self._graph.funnel_id

    @property
    def graph(self) -> StepGraph:
        return self._graph

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def current_step_id(self) -> str:
        return self._current_step_id

    @property
    def answers(self) -> dict[str, Answer]:
        """Copy of the answers in insertion order."""
        return dict(self._answers)

    @property
    def disqualification_reason(self) -> DisqualificationReason | None:
        return self._reason

    @property
    def contact(self) -> Contact | None:
        return self._contact

    @property
    def tracking(self) -> TrackingMetadata:
        return self._tracking

    @property
    def lead_id(self) -> str | None:
        return self._lead_id

    @property
    def is_terminal(self) -> bool:
        return self._status.is_terminal

    # ==================================================================
    # Mutations
    # ==================================================================

    def submit_answer(
        self, question_key: str, value: str, display_text: str | None = None
    ) -> SessionState:
        """Record one answer and apply the resulting transition.

        The answer is only stored if the Step Graph accepts it, so a
        rejected answer leaves the session untouched.

        Raises:
            InvalidTransition: the session is terminal, or the graph has no
                edge for this answer at the current step.
        """
        self._require_in_progress("submit an answer")
        now = self._clock()
        value = str(value).strip()

        directive = self._graph.next_step(
            self._current_step_id, question_key, value, now=now,
        )

        answer = Answer(
            question_key=question_key,
            value=value,
            display_text=display_text if display_text is not None else value,
            answered_at=now,
        )
        answers = {**self._answers, question_key: answer}

        if isinstance(directive, Disqualify):
            # The evaluator picks the reason so it always follows the
            # funnel's rule priority, whichever branch got us here.
            reason = self._graph.evaluator.evaluate(answers, now)
            if reason is None:
                raise FunnelConfigError(
                    f"funnel '{self.funnel_id}': disqualify edge at step "
                    f"'{self._current_step_id}' matched no rule"
                )
            self._answers = answers
            self._finalize(SessionStatus.DISQUALIFIED, now, reason=reason)
            return self.state()

        target = self._graph.resolve_target(directive)
        logger.debug(
            "Session %s: %s=%r at %s -> %s",
            self._session_id, question_key, value, self._current_step_id, target,
        )
        self._answers = answers
        self._current_step_id = target
        return self.state()

    def submit_contact(self, contact: Contact) -> SessionState:
        """Validate contact details at the contact step and qualify the session.

        On invalid data the returned state carries a
        :class:`ContactValidationError` and the session stays
        ``InProgress`` at the contact step.

        Raises:
            InvalidTransition: the session is terminal or not yet at the
                contact step.
        """
        self._require_in_progress("submit contact details")
        if self._current_step_id != self._graph.contact_step_id:
            raise InvalidTransition(
                f"Contact details are only accepted at step "
                f"'{self._graph.contact_step_id}', current step is "
                f"'{self._current_step_id}'",
                step_id=self._current_step_id,
            )

        errors = validate_contact(contact)
        if errors:
            logger.info(
                "Session %s: contact rejected (%s)",
                self._session_id, ", ".join(sorted({e.field for e in errors})),
            )
            return self.state(validation_error=ContactValidationError(errors=errors))

        self._contact = normalize_contact(contact)
        self._finalize(SessionStatus.QUALIFIED, self._clock())
        return self.state()

    def submit_early_contact(self, first_name: str, email: str) -> SessionState:
        """Capture a first name and email before the funnel is finished.

        Does not move the step pointer and never counts as the qualifying
        contact.  A later capture replaces an earlier one but keeps the
        same partial lead id.

        Raises:
            InvalidTransition: the session is terminal.
        """
        self._require_in_progress("submit early contact details")
        early = EarlyContact(first_name=first_name, email=email)
        errors = validate_early_contact(early)
        if errors:
            return self.state(validation_error=ContactValidationError(errors=errors))

        self._early_contact = normalize_early_contact(early)
        self._early_captured_at = self._clock()
        if self._partial_lead_id is None:
            self._partial_lead_id = str(uuid.uuid4())
        logger.info("Session %s: early contact captured", self._session_id)
        return self.state()

    def attach_certification_token(self, token: str) -> None:
        """Attach the third-party form-certification reference.

        Raises:
            InvalidTransition: the session is terminal (its lead record is
                already fixed).
        """
        self._require_in_progress("attach a certification token")
        self._certification_token = token.strip() or None

    # ==================================================================
    # Exports
    # ==================================================================

    def state(self, *, validation_error: ContactValidationError | None = None) -> SessionState:
        """Public snapshot of the session."""
        return SessionState(
            session_id=self._session_id,
            funnel_id=self.funnel_id,
            status=self._status,
            current_step=(
                None if self.is_terminal
                else self._graph.step_view(self._current_step_id)
            ),
            disqualification_reason=self._reason,
            disqualification_description=self._reason.description if self._reason else None,
            answers=list(self._answers.values()),
            lead_id=self._lead_id,
            early_contact_captured=self._early_contact is not None,
            validation_error=validation_error,
        )

    def to_lead_record(self) -> LeadRecord:
        """Export the terminal session for the Submission Gateway.

        Repeated calls return equal records; nothing random is generated
        here.

        Raises:
            IncompleteSessionError: the session is still in progress.
        """
        if not self.is_terminal:
            raise IncompleteSessionError(
                f"Session {self._session_id} is still in progress"
            )
        funnel = self._graph.funnel
        return LeadRecord(
            lead_id=self._lead_id,
            status=self._status.value,
            disqualification_reason=self._reason.value if self._reason else None,
            answers=self._lead_answers(),
            contact=self._contact,
            tracking=self._tracking,
            certification_token=self._certification_token,
            funnel_id=funnel.id,
            source_site=funnel.source_site,
            funnel_type=funnel.funnel_type,
            lead_type=funnel.lead_type,
            ad_category=funnel.ad_category,
            completed_at=self._completed_at,
        )

    def to_partial_lead_record(self) -> PartialLeadRecord:
        """Export the early capture.

        Raises:
            IncompleteSessionError: no early contact has been captured.
        """
        if self._early_contact is None:
            raise IncompleteSessionError(
                f"Session {self._session_id} has no early contact"
            )
        funnel = self._graph.funnel
        return PartialLeadRecord(
            lead_id=self._partial_lead_id,
            lead_type=f"{funnel.lead_type}{PARTIAL_LEAD_SUFFIX}",
            funnel_id=funnel.id,
            source_site=funnel.source_site,
            first_name=self._early_contact.first_name,
            email=self._early_contact.email,
            answers=self._lead_answers(),
            tracking=self._tracking,
            captured_at=self._early_captured_at,
        )

    # ------------------------------------------------------------------
    # Snapshot round-trip (database layer)
    # ------------------------------------------------------------------

    def to_snapshot(self) -> dict[str, Any]:
        """JSON-ready dict holding the full session state."""
        return SessionSnapshot(
            session_id=self._session_id,
            funnel_id=self.funnel_id,
            current_step_id=self._current_step_id,
            status=self._status,
            answers=list(self._answers.values()),
            disqualification_reason=self._reason,
            contact=self._contact,
            early_contact=self._early_contact,
            certification_token=self._certification_token,
            lead_id=self._lead_id,
            partial_lead_id=self._partial_lead_id,
            early_captured_at=self._early_captured_at,
            completed_at=self._completed_at,
            tracking=self._tracking,
        ).model_dump(mode="json")

    @classmethod
    def from_snapshot(
        cls,
        graph: StepGraph,
        data: dict[str, Any],
        *,
        clock: Clock | None = None,
    ) -> FormSession:
        """Rebuild a session from :meth:`to_snapshot` output.

        Raises:
            ValueError: the snapshot belongs to another funnel
            KeyError: the snapshot points at a step the graph does not have
        """
        snap = SessionSnapshot.model_validate(data)
        if snap.funnel_id != graph.funnel_id:
            raise ValueError(
                f"Snapshot is for funnel '{snap.funnel_id}', not '{graph.funnel_id}'"
            )
        graph.get_step(snap.current_step_id)

        session = cls(graph, tracking=snap.tracking, session_id=snap.session_id, clock=clock)
        session._answers = {a.question_key: a for a in snap.answers}
        session._current_step_id = snap.current_step_id
        session._status = snap.status
        session._reason = snap.disqualification_reason
        session._contact = snap.contact
        session._early_contact = snap.early_contact
        session._certification_token = snap.certification_token
        session._lead_id = snap.lead_id
        session._partial_lead_id = snap.partial_lead_id
        session._early_captured_at = snap.early_captured_at
        session._completed_at = snap.completed_at
        return session

    # ==================================================================
    # Internals
    # ==================================================================

    def _require_in_progress(self, action: str) -> None:
        if self._status.is_terminal:
            raise InvalidTransition(
                f"Cannot {action}: session {self._session_id} is already "
                f"{self._status.value}",
                step_id=self._current_step_id,
            )

    def _finalize(
        self,
        status: SessionStatus,
        now: datetime,
        *,
        reason: DisqualificationReason | None = None,
    ) -> None:
        """Apply the one-time terminal transition."""
        self._status = status
        self._reason = reason
        self._lead_id = str(uuid.uuid4())
        self._completed_at = now
        if reason is not None:
            logger.info(
                "Session %s disqualified at %s: %s",
                self._session_id, self._current_step_id, reason.value,
            )
        else:
            logger.info("Session %s qualified: lead_id=%s", self._session_id, self._lead_id)

    def _lead_answers(self) -> dict[str, LeadAnswer]:
        return {
            key: LeadAnswer(value=a.value, display_text=a.display_text)
            for key, a in self._answers.items()
        }
