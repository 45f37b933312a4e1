"""
Resumable contractor wizard session.

Transitions are applied synchronously; each one then fires a background
draft save carrying the full new state and a monotonic revision. Saves
never block or undo a transition: failures are logged and the next
transition's save supersedes them. The draft store rejects any write
whose revision is not newer than the last one it accepted, so a slow
stale save cannot overwrite a newer draft.
"""

import asyncio
import logging
from typing import Iterable, Optional

from ..client.api import ClaimApiClient
from ..claim.schema import TokenInvalidReason, TokenValidation
from ..utils.errors import ApiError, InvalidTransitionError, SubmissionInProgressError
from . import transitions
from .editor import TourAreaEditor
from .encoding import state_from_draft, state_to_draft
from .schema import Review, ScopeArea, WizardState

logger = logging.getLogger(__name__)


def token_error_message(reason: Optional[TokenInvalidReason]) -> str:
    """User-facing text for a rejected contractor link."""
    if reason == TokenInvalidReason.EXPIRED:
        return "This upload link has expired. Please contact your property manager for a new link."
    if reason == TokenInvalidReason.NOT_FOUND:
        return "This upload link is invalid. Please check the link and try again."
    if reason == TokenInvalidReason.COMPLETED:
        return "This upload link has already been used."
    return "This upload link is no longer valid. Please contact your property manager."


class ResumableWizard:
    """
    One contractor's pass through welcome -> triage -> tour -> review.

    Usage:
        async with ClaimApiClient() as client:
            wizard = ResumableWizard(client, token)
            await wizard.load()
            wizard.start()
            ...
            await wizard.submit()
            await wizard.aclose()
    """

    def __init__(self, client: ClaimApiClient, token: str):
        self.client = client
        self.token = token
        self.state = WizardState()
        self.revision = 0
        self.error: Optional[str] = None
        self.submitted = False

        self._submitting = False
        self._pending: set[asyncio.Task] = set()
        self._closed = False

    # =========================================================================
    # Session start
    # =========================================================================

    async def validate_token(self) -> TokenValidation:
        data = await self.client.validate_magic_link(self.token)
        validation = TokenValidation.model_validate(data or {"valid": False})
        if not validation.valid:
            self.error = token_error_message(validation.reason)
        return validation

    async def load(self) -> WizardState:
        """Resume from the saved draft; no draft means a fresh start."""
        try:
            draft = await self.client.get_scope_sheet_draft(self.token)
        except ApiError as e:
            logger.error(f"Failed to load draft: {e.message}")
            self.error = "Failed to load saved progress"
            return self.state

        if self._closed:
            return self.state
        self.state = state_from_draft(draft)
        self.revision = int((draft or {}).get("revision") or 0)
        if draft:
            logger.info(f"Resumed draft at {self.state.phase.name.value} (revision {self.revision})")
        return self.state

    # =========================================================================
    # Transitions
    # =========================================================================

    def start(self) -> WizardState:
        return self._apply(transitions.start(self.state))

    def toggle_selection(self, category_key: str) -> WizardState:
        return self._apply(transitions.toggle_selection(self.state, category_key))

    def set_selections(self, selections: Iterable[str]) -> WizardState:
        return self._apply(transitions.set_selections(self.state, selections))

    def start_tour(self, confirm_discard: bool = False) -> WizardState:
        return self._apply(transitions.start_tour(self.state, confirm_discard=confirm_discard))

    def edit_current_area(self) -> TourAreaEditor:
        area = self.state.current_area
        if area is None:
            raise InvalidTransitionError("No area is being toured")
        return TourAreaEditor(self.client, self.token, area)

    def next_area(self, edited: ScopeArea) -> WizardState:
        return self._apply(transitions.next_area(self.state, edited))

    def go_back(self) -> WizardState:
        return self._apply(transitions.go_back(self.state))

    def set_general_notes(self, notes: str) -> WizardState:
        return self._apply(transitions.set_general_notes(self.state, notes))

    def _apply(self, new_state: WizardState) -> WizardState:
        self.state = new_state
        self._persist()
        return new_state

    # =========================================================================
    # Draft persistence
    # =========================================================================

    def _persist(self) -> None:
        if self._closed or self.submitted:
            return
        self.revision += 1
        payload = state_to_draft(self.state, self.revision)
        task = asyncio.create_task(self._save_draft(payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _save_draft(self, payload: dict) -> None:
        try:
            await self.client.save_scope_sheet_draft(self.token, payload)
        except ApiError as e:
            if e.is_conflict:
                logger.info(f"Draft revision {payload['revision']} superseded: {e.message}")
            else:
                logger.warning(f"Draft save (revision {payload['revision']}) failed: {e.message}")

    @property
    def saving(self) -> bool:
        return bool(self._pending)

    async def flush(self) -> None:
        """Wait for in-flight draft saves."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # =========================================================================
    # Final submission
    # =========================================================================

    async def submit(self) -> bool:
        """
        Send the completed scope sheet.

        Raises:
            InvalidTransitionError: not on the review screen
            SubmissionInProgressError: a submission is in flight or already succeeded
        """
        if not isinstance(self.state.phase, Review):
            raise InvalidTransitionError("The scope sheet can only be submitted from review")
        if self._submitting or self.submitted:
            raise SubmissionInProgressError("Scope sheet already submitted")

        self._submitting = True
        self.error = None
        try:
            await self.client.submit_scope_sheet(self.token, self.state.to_payload())
        except ApiError as e:
            logger.error(f"Scope sheet submission failed: {e.message}")
            if not self._closed:
                self.error = e.message
            return False
        finally:
            self._submitting = False

        self.submitted = True
        logger.info(f"Scope sheet submitted with {len(self.state.areas)} area(s)")
        return True

    async def aclose(self) -> None:
        """Let pending draft saves finish, then stop accepting new work."""
        await self.flush()
        self._closed = True
