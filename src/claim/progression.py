"""
Step gating and progression for the seven-step claim process.

StepProgressionController owns the claim's ClaimProgress and is the only
thing that moves it. Every step action follows the same rules:

- A locked step raises StepLockedError before anything else happens.
- Input problems raise ClientValidationError (also recorded on the step)
  without touching the network.
- Remote calls run strictly in order. Local progression is committed
  only once the whole chain succeeded; any failure records the message
  in ``errors[step]`` and the action returns False.

Step 6 embeds the document pipeline and the audit engine; step 7 embeds
the payment tracker.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from ..client.api import ClaimApiClient
from ..client.uploads import FileUpload
from ..utils.config import Settings, get_settings
from ..utils.errors import ApiError, ClientValidationError, StepLockedError, StepNotReadyError
from .audit import AuditAnalysisEngine
from .documents import AsyncDocumentPipeline
from .payments import PaymentTracker
from .schema import (
    FIRST_STEP,
    TOTAL_STEPS,
    Claim,
    ClaimProgress,
    DeductibleComparison,
    PaymentType,
    StepStatus,
    compute_comparison,
)
from .steps import StepDefinition, get_step_definition

logger = logging.getLogger(__name__)

DESCRIPTION_MIN_LENGTH = 20
DESCRIPTION_MAX_LENGTH = 2000


# ============================================================================
# Step views and forms
# ============================================================================


@dataclass
class StepView:
    """What a step card shows: its definition, status and whether controls work."""
    definition: StepDefinition
    status: StepStatus
    locked: bool
    error: Optional[str] = None
    busy: bool = False

    @property
    def number(self) -> int:
        return self.definition.number


@dataclass
class FilingForm:
    """Step 5 inputs. Cleared after each successful submission."""
    insurance_claim_number: str = ""
    adjuster_name: str = ""
    adjuster_phone: str = ""
    inspection_datetime: str = ""

    def clear(self) -> None:
        self.insurance_claim_number = ""
        self.adjuster_name = ""
        self.adjuster_phone = ""
        self.inspection_datetime = ""

    def to_fields(self) -> dict[str, str]:
        """Non-empty fields, trimmed."""
        fields = {
            "insurance_claim_number": self.insurance_claim_number.strip(),
            "adjuster_name": self.adjuster_name.strip(),
            "adjuster_phone": self.adjuster_phone.strip(),
            "inspection_datetime": self.inspection_datetime.strip(),
        }
        return {k: v for k, v in fields.items() if v}


@dataclass
class _StepResult:
    """Outcome of a successful call chain, committed by the controller."""
    progress: ClaimProgress
    fields: dict[str, Any] = field(default_factory=dict)
    response: Any = None


def validate_description(description: str) -> str:
    """
    Trim and length-check the step 4 loss description.

    Raises:
        ClientValidationError: trimmed length outside [20, 2000]
    """
    text = (description or "").strip()
    if len(text) < DESCRIPTION_MIN_LENGTH:
        raise ClientValidationError(
            "description",
            f"Description must be at least {DESCRIPTION_MIN_LENGTH} characters",
        )
    if len(text) > DESCRIPTION_MAX_LENGTH:
        raise ClientValidationError(
            "description",
            f"Description must be at most {DESCRIPTION_MAX_LENGTH} characters",
        )
    return text


# ============================================================================
# Controller
# ============================================================================


class StepProgressionController:
    """
    Drives one claim owner's session through the seven steps.

    Usage:
        async with ClaimApiClient() as client:
            controller = await StepProgressionController.load(client, "claim-1")
            await controller.send_contractor_link("Bob", "bob@example.com")
            ...
            await controller.close()
    """

    def __init__(self, client: ClaimApiClient, claim: Claim, settings: Optional[Settings] = None):
        cfg = settings or get_settings()
        self.client = client
        self.claim = claim
        self.progress = claim.progress

        self.errors: dict[int, str] = {}
        self.busy: set[int] = set()

        self.magic_link: Optional[dict] = None
        self.estimate_input: str = ""
        self.comparison: Optional[DeductibleComparison] = None
        self.filing_form = FilingForm()
        self.close_requested = False

        self.documents = AsyncDocumentPipeline(
            client, claim.id, poll_interval=cfg.parse_poll_interval_seconds
        )
        self.audit = AuditAnalysisEngine(
            client, claim.id, progress_delays=cfg.audit_progress_delays
        )
        self.payments = PaymentTracker(client, claim.id)

        self._closed = False

    @classmethod
    async def load(cls, client: ClaimApiClient, claim_id: str, restore: bool = True) -> "StepProgressionController":
        """Fetch the claim and, optionally, restore the step 6/7 sub-flows."""
        data = await client.get_claim(claim_id)
        controller = cls(client, Claim.model_validate(data))
        if restore:
            await controller.restore()
        return controller

    async def restore(self) -> None:
        """Pick up work from an earlier session for steps already reached."""
        if self.progress.current_step >= 6 or 6 in self.progress.steps_completed:
            await self.documents.restore()
            await self.audit.restore()
        if self.progress.current_step >= 7:
            await self.payments.load()

    async def close(self) -> None:
        """Tear down the session; results arriving later are discarded."""
        self._closed = True
        await self.documents.close()
        await self.audit.close()

    # =========================================================================
    # Status and gating
    # =========================================================================

    def status(self, step: int) -> StepStatus:
        return self.progress.status(step)

    def is_locked(self, step: int) -> bool:
        """
        Whether a step's controls are disabled.

        Step 1 has no action of its own; while it is current, step 2 is
        the step that completes it, so step 2's controls are open too.
        """
        if not FIRST_STEP <= step <= TOTAL_STEPS:
            return True
        if self.progress.is_editable(step):
            return False
        return not (step == 2 and self.progress.current_step == FIRST_STEP)

    def step_view(self, step: int) -> StepView:
        return StepView(
            definition=get_step_definition(step),
            status=self.status(step),
            locked=self.is_locked(step),
            error=self.errors.get(step),
            busy=step in self.busy,
        )

    def step_views(self) -> list[StepView]:
        return [self.step_view(step) for step in range(FIRST_STEP, TOTAL_STEPS + 1)]

    def _ensure_unlocked(self, step: int) -> None:
        if self.is_locked(step):
            raise StepLockedError(step)

    def _invalid(self, step: int, field_name: str, message: str) -> ClientValidationError:
        self.errors[step] = message
        return ClientValidationError(field_name, message)

    # =========================================================================
    # Call chains
    # =========================================================================

    async def _run_chain(self, step: int, chain: Callable[[], Awaitable[_StepResult]]) -> bool:
        """Run a step's call chain and commit its result only on success."""
        if step in self.busy:
            logger.warning(f"Step {step} action already in flight for claim {self.claim.id}")
            return False

        self.errors.pop(step, None)
        self.busy.add(step)
        try:
            result = await chain()
        except ApiError as e:
            if not self._closed:
                self.errors[step] = e.message
            logger.warning(f"Step {step} failed for claim {self.claim.id}: {e.message}")
            return False
        finally:
            self.busy.discard(step)

        if self._closed:
            return False
        self._commit(result)
        return True

    async def _patch(self, step: int, fields: dict[str, Any], fallback_error: str, advance: bool = True) -> _StepResult:
        progress = self.progress.complete_through(step) if advance else self.progress
        payload = {**progress.to_payload(), **fields}
        response = await self.client.update_claim_step(self.claim.id, payload, fallback_error)
        return _StepResult(progress=progress, fields=fields, response=response)

    def _commit(self, result: _StepResult) -> None:
        """Adopt the updated claim from the response, or merge locally when it has none."""
        self.progress = result.progress
        response = result.response
        base = response if isinstance(response, dict) and response.get("id") else {
            **self.claim.model_dump(),
            **result.fields,
        }
        # Progress is what was just sent; the claim must agree with it
        self.claim = Claim.model_validate({
            **base,
            "current_step": result.progress.current_step,
            "steps_completed": sorted(result.progress.steps_completed),
        })

    # =========================================================================
    # Step 2: contractor link
    # =========================================================================

    async def send_contractor_link(self, contractor_name: str, contractor_email: str) -> bool:
        """
        Issue the contractor's access link, then record the contractor.

        Sending again after step 2 is complete is a resend: a fresh link
        goes out and progress stays where it is.
        """
        self._ensure_unlocked(2)
        name = (contractor_name or "").strip()
        email = (contractor_email or "").strip()
        if not name:
            raise self._invalid(2, "contractor_name", "Contractor name is required")
        if "@" not in email:
            raise self._invalid(2, "contractor_email", "Enter a valid email address")

        resend = 2 in self.progress.steps_completed

        async def chain() -> _StepResult:
            link = await self.client.issue_magic_link(self.claim.id, name, email)
            self.magic_link = link
            return await self._patch(
                2,
                {"contractor_name": name, "contractor_email": email},
                "Failed to send link",
                advance=not resend,
            )

        return await self._run_chain(2, chain)

    # =========================================================================
    # Step 3: worth filing
    # =========================================================================

    def set_estimate_input(self, raw: str) -> Optional[DeductibleComparison]:
        """Update the estimate input and recompute the comparison."""
        self._ensure_unlocked(3)
        self.estimate_input = raw
        self.comparison = compute_comparison(raw, self.claim.deductible)
        return self.comparison

    async def submit_estimate(self) -> bool:
        self._ensure_unlocked(3)
        comparison = self.comparison
        if comparison is None:
            raise self._invalid(3, "contractor_estimate_total", "Enter the contractor's estimate")
        if comparison.estimate < 0:
            raise self._invalid(3, "contractor_estimate_total", "Estimate cannot be negative")

        async def chain() -> _StepResult:
            return await self._patch(
                3,
                {
                    "contractor_estimate_total": comparison.estimate,
                    "deductible_comparison_result": comparison.result.value,
                },
                "Failed to update claim",
            )

        return await self._run_chain(3, chain)

    # =========================================================================
    # Step 4: notify insurer
    # =========================================================================

    async def submit_description(self, description: str) -> bool:
        """
        Save the loss description, then send the insurer notification.

        After completion this is a resend and progress does not change.
        """
        self._ensure_unlocked(4)
        try:
            text = validate_description(description)
        except ClientValidationError as e:
            self.errors[4] = e.message
            raise

        resend = 4 in self.progress.steps_completed

        async def chain() -> _StepResult:
            result = await self._patch(4, {"description": text}, "Failed to update claim", advance=not resend)
            await self.client.notify_insurer(self.claim.id, text)
            return result

        return await self._run_chain(4, chain)

    # =========================================================================
    # Step 5: file and schedule
    # =========================================================================

    async def submit_filing(self) -> bool:
        self._ensure_unlocked(5)
        fields = self.filing_form.to_fields()
        if not fields.get("insurance_claim_number"):
            raise self._invalid(5, "insurance_claim_number", "Insurance claim number is required")

        async def chain() -> _StepResult:
            return await self._patch(5, fields, "Failed to update claim")

        ok = await self._run_chain(5, chain)
        if ok:
            self.filing_form.clear()
        return ok

    # =========================================================================
    # Step 6: review the insurance offer
    # =========================================================================

    async def upload_carrier_estimate(self, file: FileUpload) -> bool:
        self._ensure_unlocked(6)
        ok = await self.documents.upload(file)
        if not ok and self.documents.error:
            self.errors[6] = self.documents.error
        return ok

    def retry_carrier_estimate(self) -> None:
        self._ensure_unlocked(6)
        self.documents.retry()
        self.errors.pop(6, None)

    async def run_audit(self) -> bool:
        """Start the analysis; the estimate must be parsed first."""
        self._ensure_unlocked(6)
        if not self.documents.is_parsed:
            raise StepNotReadyError("The carrier estimate has not been parsed yet")
        ok = await self.audit.run()
        if not ok and self.audit.error:
            self.errors[6] = self.audit.error
        elif ok:
            self.errors.pop(6, None)
        return ok

    @property
    def can_continue_review(self) -> bool:
        return self.documents.is_parsed and self.audit.has_result

    async def complete_review(self) -> bool:
        self._ensure_unlocked(6)
        if not self.can_continue_review:
            raise StepNotReadyError("Parse the carrier estimate and run the analysis first")

        async def chain() -> _StepResult:
            return await self._patch(6, {}, "Failed to update claim")

        return await self._run_chain(6, chain)

    # =========================================================================
    # Step 7: payments and closing
    # =========================================================================

    async def record_expected_payment(self, payment_type: PaymentType, expected_amount: float) -> bool:
        self._ensure_unlocked(7)
        try:
            return await self._run_payment(lambda: self.payments.record_expected(payment_type, expected_amount))
        except ClientValidationError as e:
            self.errors[7] = e.message
            raise

    async def mark_payment_received(
        self,
        payment_type: PaymentType,
        amount: float,
        received_date: str,
        check_number: Optional[str] = None,
    ) -> bool:
        self._ensure_unlocked(7)
        try:
            return await self._run_payment(
                lambda: self.payments.mark_received(payment_type, amount, received_date, check_number)
            )
        except ClientValidationError as e:
            self.errors[7] = e.message
            raise

    async def _run_payment(self, call: Callable[[], Awaitable[Any]]) -> bool:
        self.errors.pop(7, None)
        try:
            await call()
        except ApiError as e:
            if not self._closed:
                self.errors[7] = e.message
            logger.warning(f"Payment update failed for claim {self.claim.id}: {e.message}")
            return False
        return True

    def request_close(self) -> None:
        """First half of closing: ask for confirmation."""
        self._ensure_unlocked(7)
        self.close_requested = True
        readiness = self.payments.closure_status()
        if not readiness.can_close:
            logger.info(f"Close requested for claim {self.claim.id} with open item: {readiness.blocking_reason}")

    def cancel_close(self) -> None:
        self.close_requested = False

    async def confirm_close(self) -> bool:
        """Second half of closing: mark every step complete and close the claim."""
        self._ensure_unlocked(7)
        if not self.close_requested:
            raise StepNotReadyError("Closing the claim must be requested first")

        async def chain() -> _StepResult:
            return await self._patch(7, {"status": "closed"}, "Failed to close claim")

        ok = await self._run_chain(7, chain)
        if ok:
            self.close_requested = False
            logger.info(f"Claim {self.claim.id} closed")
        return ok
