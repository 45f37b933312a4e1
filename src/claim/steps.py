"""
Step definitions and status lines for the seven-step claim process.
"""

from dataclasses import dataclass
from typing import Optional

from .schema import TOTAL_STEPS, Claim, DeductibleResult


@dataclass(frozen=True)
class StepDefinition:
    number: int
    title: str
    description: str
    learn_more: str


STEP_DEFINITIONS: dict[int, StepDefinition] = {
    1: StepDefinition(
        number=1,
        title="Report the Damage",
        description="Tell us what happened and when",
        learn_more="We'll create a claim file and start tracking everything for you.",
    ),
    2: StepDefinition(
        number=2,
        title="Get Contractor Photos",
        description="Send a link to your contractor for photos and a scope sheet",
        learn_more=(
            "Your contractor receives an email with a secure link. They can upload "
            "photos and complete a scope sheet without creating an account. "
            "The link works for 7 days."
        ),
    ),
    3: StepDefinition(
        number=3,
        title="Check if Worth Filing",
        description="See if repairs cost more than your deductible",
        learn_more=(
            "If repairs cost less than your deductible you'll pay out of pocket "
            "anyway, so filing may not be worth it. You can still file for "
            "documentation purposes."
        ),
    ),
    4: StepDefinition(
        number=4,
        title="Notify Your Insurer",
        description="Describe the loss and send the notice of claim",
        learn_more="A clear written description of the damage starts the carrier's clock.",
    ),
    5: StepDefinition(
        number=5,
        title="File & Schedule",
        description="Record your claim number and the adjuster's inspection",
        learn_more=(
            "The carrier gives you a claim number and assigns an adjuster who "
            "will want to inspect the damage."
        ),
    ),
    6: StepDefinition(
        number=6,
        title="Review Insurance Offer",
        description="Compare the carrier's estimate to industry pricing",
        learn_more=(
            "Upload the carrier's estimate PDF. Once it is parsed we compare it "
            "against an industry estimate built from your contractor's scope "
            "sheet and list every discrepancy."
        ),
    ),
    7: StepDefinition(
        number=7,
        title="Get Paid & Close",
        description="Track payments and wrap up",
        learn_more=(
            "Insurance usually pays in two parts: ACV (Actual Cash Value) upfront "
            "to start repairs, then RCV (Recoverable Depreciation) after repairs "
            "are done."
        ),
    ),
}


def get_step_definition(step: int) -> StepDefinition:
    return STEP_DEFINITIONS[step]


def get_next_step(current_step: int) -> Optional[int]:
    return current_step + 1 if current_step < TOTAL_STEPS else None


def get_progress(steps_completed) -> dict:
    """Completed/total/percentage summary for a progress bar."""
    completed = len(set(steps_completed))
    return {
        "completed": completed,
        "total": TOTAL_STEPS,
        "percentage": round(completed / TOTAL_STEPS * 100),
    }


def get_step_status_text(claim: Claim) -> str:
    """One-line status for the claim's current step."""
    step = claim.current_step
    if step in claim.steps_completed:
        return _completed_text(step, claim)
    return _in_progress_text(step, claim)


def _completed_text(step: int, claim: Claim) -> str:
    if step == 1:
        return "Damage reported"
    if step == 2:
        return f"Link sent to {claim.contractor_name or 'contractor'}"
    if step == 3:
        if claim.deductible_comparison_result == DeductibleResult.WORTH_FILING:
            return "Worth filing - above deductible"
        return "Below deductible"
    if step == 4:
        return "Insurer notified"
    if step == 5:
        return f"Filed with insurance - Claim #{claim.insurance_claim_number}"
    if step == 6:
        return "Insurance offer reviewed"
    if step == 7:
        return "Claim closed"
    return "Complete"


def _in_progress_text(step: int, claim: Claim) -> str:
    if step == 2:
        if claim.contractor_email:
            return f"Waiting for {claim.contractor_name or 'contractor'} to upload"
        return "NEXT: Send link to contractor"
    if step == 3:
        return "NEXT: Compare estimate to deductible"
    if step == 4:
        return "NEXT: Notify your insurer"
    if step == 5:
        return "NEXT: File with insurance"
    if step == 6:
        return "NEXT: Review insurance offer"
    if step == 7:
        return "NEXT: Track payments"
    return ""
