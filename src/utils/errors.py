"""Error types shared by the claim workflow and the contractor wizard."""

from typing import Optional


class ClaimFlowError(Exception):
    """Base class for all workflow errors."""


class ApiError(ClaimFlowError):
    """
    A remote call failed.

    ``message`` is the server-provided ``error`` string when the response
    carried one, otherwise the generic fallback for the action.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def is_conflict(self) -> bool:
        return self.status_code == 409


class ClientValidationError(ClaimFlowError):
    """Input rejected locally; no request was sent."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


class StepLockedError(ClaimFlowError):
    """A control on a locked step was used."""

    def __init__(self, step: int):
        super().__init__(f"Step {step} is locked")
        self.step = step


class StepNotReadyError(ClaimFlowError):
    """A step's continue action was used before its prerequisites finished."""


class InvalidTransitionError(ClaimFlowError):
    """A wizard transition was requested from a phase that does not allow it."""


class TriageResetRequiresConfirmation(ClaimFlowError):
    """Restarting the tour would discard collected area data."""

    def __init__(self, affected_categories: list[str]):
        super().__init__(
            "Restarting the tour discards data collected for: "
            + ", ".join(affected_categories)
        )
        self.affected_categories = affected_categories


class SubmissionInProgressError(ClaimFlowError):
    """A final submission is already in flight or has completed."""


class StaleRevisionError(ClaimFlowError):
    """A draft write carried a revision no newer than the stored one."""

    def __init__(self, revision: int, stored_revision: int):
        super().__init__(
            f"Draft revision {revision} is not newer than stored revision {stored_revision}"
        )
        self.revision = revision
        self.stored_revision = stored_revision


class AlreadySubmittedError(ClaimFlowError):
    """The scope sheet for this link was already submitted."""
