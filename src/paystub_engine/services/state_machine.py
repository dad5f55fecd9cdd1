"""Pay stub status state machine with transition validation."""

from __future__ import annotations

from paystub_engine.types import PayStubStatus


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class PayStubStateMachine:
    """State machine for pay stub status transitions.

    Allowed transitions:
    - generated → pdf_ready → emailed → viewed
    - generated → viewed, pdf_ready → viewed (viewed only via a view event)
    - any non-error status → error (render or delivery failure)
    - any status → generated, only through regeneration (see reset)
    """

    # Define valid transitions: {from_status: [allowed_to_statuses]}
    VALID_TRANSITIONS: dict[str, list[str]] = {
        PayStubStatus.GENERATED: [
            PayStubStatus.PDF_READY,
            PayStubStatus.VIEWED,
            PayStubStatus.ERROR,
        ],
        PayStubStatus.PDF_READY: [
            PayStubStatus.EMAILED,
            PayStubStatus.VIEWED,
            PayStubStatus.ERROR,
        ],
        PayStubStatus.EMAILED: [PayStubStatus.VIEWED, PayStubStatus.ERROR],
        PayStubStatus.VIEWED: [PayStubStatus.ERROR],
        PayStubStatus.ERROR: [],  # Left only through regeneration
    }

    # Position along the forward lifecycle
    ORDER: dict[str, int] = {
        PayStubStatus.GENERATED: 0,
        PayStubStatus.PDF_READY: 1,
        PayStubStatus.EMAILED: 2,
        PayStubStatus.VIEWED: 3,
    }

    # Statuses in which a rendered document is expected to exist
    DOCUMENT_READY = {
        PayStubStatus.PDF_READY,
        PayStubStatus.EMAILED,
        PayStubStatus.VIEWED,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def has_reached(cls, status: str, target: str) -> bool:
        """Check if status is at or past target on the forward lifecycle."""
        if status not in cls.ORDER or target not in cls.ORDER:
            return False
        return cls.ORDER[status] >= cls.ORDER[target]

    @classmethod
    def advance(cls, from_status: str, to_status: str) -> str:
        """Return the status after a lifecycle event.

        Events that would move a stub backwards (emailing a stub that was
        already viewed, for example) leave the status unchanged. Anything else
        that is not a valid forward move raises InvalidTransitionError.
        """
        if from_status == to_status or cls.has_reached(from_status, to_status):
            return PayStubStatus(from_status).value
        cls.validate_transition(from_status, to_status)
        return PayStubStatus(to_status).value

    @classmethod
    def reset(cls, from_status: str) -> str:
        """Regeneration resets any status to generated."""
        return PayStubStatus.GENERATED.value

    @classmethod
    def is_document_ready(cls, status: str) -> bool:
        """Check if a rendered document should be available."""
        return status in cls.DOCUMENT_READY

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return [str(s.value) for s in cls.VALID_TRANSITIONS.get(current_status, [])]
