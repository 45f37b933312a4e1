"""Contractor scope-sheet wizard: area catalog, resumable state machine and draft encoding."""

from .catalog import CATEGORIES, CATEGORY_MAP, CategoryDef, DimensionType, TagDef, get_category
from .editor import TourAreaEditor, parse_dimension
from .encoding import WIRE_VERSION, decode_phase, encode_phase, state_from_draft, state_to_draft
from .schema import PhaseName, Review, ScopeArea, Tour, Triage, Welcome, WizardState
from .session import ResumableWizard, token_error_message

__all__ = [
    # Catalog
    "CATEGORIES",
    "CATEGORY_MAP",
    "CategoryDef",
    "TagDef",
    "DimensionType",
    "get_category",
    # State
    "WizardState",
    "ScopeArea",
    "PhaseName",
    "Welcome",
    "Triage",
    "Tour",
    "Review",
    # Encoding
    "WIRE_VERSION",
    "encode_phase",
    "decode_phase",
    "state_to_draft",
    "state_from_draft",
    # Session
    "ResumableWizard",
    "TourAreaEditor",
    "parse_dimension",
    "token_error_message",
]
