"""
Claim-side data model.

Pydantic models for the claim record, step progress, carrier estimate
documents, audit reports and payments, as exchanged with the claim API.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


TOTAL_STEPS = 7
FIRST_STEP = 1


# ============================================================================
# Enums
# ============================================================================


class StepStatus(str, Enum):
    """Display status of a claim step."""
    COMPLETED = "completed"
    CURRENT = "current"
    UPCOMING = "upcoming"


class DeductibleResult(str, Enum):
    """Outcome of the step 3 estimate vs deductible comparison."""
    WORTH_FILING = "worth_filing"
    NOT_WORTH_FILING = "not_worth_filing"


class ParseStatus(str, Enum):
    """Server-side parse job status of a carrier estimate."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ParseStatus.COMPLETED, ParseStatus.FAILED)


class AuditStatus(str, Enum):
    """Status of an audit report."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentType(str, Enum):
    """Insurance payment phase."""
    ACV = "acv"
    RCV = "rcv"


class PaymentStatus(str, Enum):
    """Lifecycle of a payment record."""
    EXPECTED = "expected"
    RECEIVED = "received"
    RECONCILED = "reconciled"
    DISPUTED = "disputed"


class TokenInvalidReason(str, Enum):
    """Why a contractor access token failed validation."""
    EXPIRED = "expired"
    NOT_FOUND = "not_found"
    COMPLETED = "completed"


# ============================================================================
# Step progress
# ============================================================================


class ClaimProgress(BaseModel):
    """
    Where the claim owner is in the seven-step process.

    A step is editable iff it is completed or current; every other step
    is locked. ``steps_completed`` only ever grows.
    """
    model_config = ConfigDict(frozen=True)

    current_step: int = Field(default=FIRST_STEP, ge=FIRST_STEP, le=TOTAL_STEPS)
    steps_completed: frozenset[int] = Field(default_factory=frozenset)

    @field_validator("steps_completed")
    @classmethod
    def validate_steps(cls, v: frozenset[int]) -> frozenset[int]:
        """Ensure every completed step is a real step number."""
        for step in v:
            if not FIRST_STEP <= step <= TOTAL_STEPS:
                raise ValueError(f"Step {step} is outside 1..{TOTAL_STEPS}")
        return v

    def status(self, step: int) -> StepStatus:
        """Pure status of a step from (steps_completed, current_step)."""
        if step in self.steps_completed:
            return StepStatus.COMPLETED
        if step == self.current_step:
            return StepStatus.CURRENT
        return StepStatus.UPCOMING

    def is_editable(self, step: int) -> bool:
        return step in self.steps_completed or step == self.current_step

    def complete_through(self, step: int) -> "ClaimProgress":
        """
        Progress after finishing ``step``.

        Marks every step up to and including ``step`` complete and moves
        ``current_step`` forward to the next step. ``current_step`` never
        moves backwards, so re-submitting an earlier step keeps the
        claim where it is.
        """
        completed = self.steps_completed | frozenset(range(FIRST_STEP, step + 1))
        next_step = max(self.current_step, min(step + 1, TOTAL_STEPS))
        return ClaimProgress(current_step=next_step, steps_completed=completed)

    def to_payload(self) -> dict:
        """Fields every step update request carries."""
        return {
            "current_step": self.current_step,
            "steps_completed": sorted(self.steps_completed),
        }


# ============================================================================
# Claim record
# ============================================================================


class Claim(BaseModel):
    """The claim record as returned by the API (unknown fields ignored)."""
    model_config = ConfigDict(extra="ignore")

    id: str
    status: str = "open"
    loss_type: Optional[str] = None
    current_step: int = Field(default=FIRST_STEP, ge=FIRST_STEP, le=TOTAL_STEPS)
    steps_completed: list[int] = Field(default_factory=list)

    deductible: float = Field(default=0.0, ge=0, description="Policy deductible")
    description: Optional[str] = None

    contractor_name: Optional[str] = None
    contractor_email: Optional[str] = None
    contractor_estimate_total: Optional[float] = None
    deductible_comparison_result: Optional[DeductibleResult] = None

    insurance_claim_number: Optional[str] = None
    adjuster_name: Optional[str] = None
    adjuster_phone: Optional[str] = None
    inspection_datetime: Optional[str] = None

    @field_validator("steps_completed", mode="before")
    @classmethod
    def default_steps(cls, v):
        return v or []

    @property
    def progress(self) -> ClaimProgress:
        return ClaimProgress(
            current_step=self.current_step,
            steps_completed=frozenset(self.steps_completed),
        )


class DeductibleComparison(BaseModel):
    """Step 3 comparison of the contractor estimate against the deductible."""
    model_config = ConfigDict(frozen=True)

    estimate: float
    deductible: float
    worth_filing: bool

    @property
    def result(self) -> DeductibleResult:
        return DeductibleResult.WORTH_FILING if self.worth_filing else DeductibleResult.NOT_WORTH_FILING


def compute_comparison(raw_estimate: Union[str, float, None], deductible: float) -> Optional[DeductibleComparison]:
    """
    Recompute the comparison for the current estimate input.

    Returns None when the input is empty or not a number.
    """
    if raw_estimate is None or raw_estimate == "":
        return None
    try:
        estimate = float(raw_estimate)
    except (TypeError, ValueError):
        return None
    if estimate != estimate:  # NaN
        return None
    return DeductibleComparison(
        estimate=estimate,
        deductible=deductible,
        worth_filing=estimate > deductible,
    )


# ============================================================================
# Carrier estimate documents
# ============================================================================


class CarrierEstimateDocument(BaseModel):
    """An uploaded carrier estimate; the server's parse job owns its status."""
    model_config = ConfigDict(extra="ignore")

    id: str
    file_name: Optional[str] = None
    file_size_bytes: Optional[int] = None
    parse_status: ParseStatus = ParseStatus.PENDING
    parse_error: Optional[str] = None
    uploaded_at: Optional[datetime] = None
    parsed_at: Optional[datetime] = None


# ============================================================================
# Audit reports
# ============================================================================


class Discrepancy(BaseModel):
    """One line item where the carrier and industry prices differ."""
    item: str
    industry_price: float
    carrier_price: float
    delta: float
    justification: str = ""


class ComparisonSummary(BaseModel):
    total_industry: float
    total_carrier: float
    total_delta: float


class ComparisonData(BaseModel):
    """Decoded ``comparison_data`` of an audit report."""
    discrepancies: list[Discrepancy] = Field(default_factory=list)
    summary: ComparisonSummary


class ParsedComparison(BaseModel):
    kind: str = "parsed"
    data: ComparisonData


class ComparisonParseError(BaseModel):
    kind: str = "parse_error"
    reason: str


ComparisonResult = Union[ParsedComparison, ComparisonParseError]


def parse_comparison_data(raw: Optional[str]) -> ComparisonResult:
    """
    Decode the JSON-encoded comparison payload.

    Never raises: a missing or malformed payload comes back as a
    ComparisonParseError so callers can show a "no data" state.
    """
    if raw is None or not str(raw).strip():
        return ComparisonParseError(reason="missing")
    try:
        return ParsedComparison(data=ComparisonData.model_validate_json(raw))
    except ValidationError as e:
        return ComparisonParseError(reason=f"invalid: {e.error_count()} error(s)")
    except (TypeError, ValueError) as e:
        return ComparisonParseError(reason=f"invalid: {e}")


class AuditReport(BaseModel):
    """Audit report as returned by the API."""
    model_config = ConfigDict(extra="ignore")

    id: str
    status: AuditStatus = AuditStatus.PENDING
    comparison_data: Optional[str] = None
    error_message: Optional[str] = None

    def comparison(self) -> ComparisonResult:
        return parse_comparison_data(self.comparison_data)

    @property
    def has_result(self) -> bool:
        return self.status == AuditStatus.COMPLETED and bool(self.comparison_data)


# ============================================================================
# Payments
# ============================================================================


class Payment(BaseModel):
    """An ACV or RCV payment record."""
    model_config = ConfigDict(extra="ignore")

    id: str
    payment_type: PaymentType
    amount: float = Field(default=0.0, ge=0)
    expected_amount: Optional[float] = Field(default=None, ge=0)
    status: PaymentStatus = PaymentStatus.EXPECTED
    received_date: Optional[str] = None
    check_number: Optional[str] = None

    @field_validator("payment_type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        return v.lower() if isinstance(v, str) else v


class TokenValidation(BaseModel):
    """Result of validating a contractor access token."""
    model_config = ConfigDict(extra="ignore")

    valid: bool
    reason: Optional[TokenInvalidReason] = None
    expires_at: Optional[datetime] = None
    contractor_name: Optional[str] = None
    claim_id: Optional[str] = None
