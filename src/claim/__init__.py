"""Claim owner workflow: step gating, carrier estimate parsing, audit and payments."""

from .audit import ANALYSIS_PHASES, AuditAnalysisEngine, AuditPhase, AuditView
from .documents import AsyncDocumentPipeline, PipelineState
from .payments import ClosureStatus, PaymentSummary, PaymentTracker, closure_status, summarize_payments
from .progression import FilingForm, StepProgressionController, StepView, validate_description
from .schema import (
    AuditReport,
    CarrierEstimateDocument,
    Claim,
    ClaimProgress,
    ComparisonParseError,
    DeductibleComparison,
    ParsedComparison,
    ParseStatus,
    Payment,
    PaymentStatus,
    PaymentType,
    StepStatus,
    TokenValidation,
    compute_comparison,
    parse_comparison_data,
)
from .steps import STEP_DEFINITIONS, get_progress, get_step_status_text

__all__ = [
    # Controller
    "StepProgressionController",
    "StepView",
    "FilingForm",
    "validate_description",
    # Step 6 sub-flows
    "AsyncDocumentPipeline",
    "PipelineState",
    "AuditAnalysisEngine",
    "AuditPhase",
    "AuditView",
    "ANALYSIS_PHASES",
    # Step 7
    "PaymentTracker",
    "PaymentSummary",
    "ClosureStatus",
    "summarize_payments",
    "closure_status",
    # Schema
    "Claim",
    "ClaimProgress",
    "StepStatus",
    "DeductibleComparison",
    "compute_comparison",
    "CarrierEstimateDocument",
    "ParseStatus",
    "AuditReport",
    "ParsedComparison",
    "ComparisonParseError",
    "parse_comparison_data",
    "Payment",
    "PaymentType",
    "PaymentStatus",
    "TokenValidation",
    # Steps
    "STEP_DEFINITIONS",
    "get_progress",
    "get_step_status_text",
]
