"""
Contractor wizard state.

The wizard is in exactly one phase at a time. The phase is a small
tagged variant; only ``Tour`` carries data (the index of the area being
walked). Everything else the contractor has entered lives on
WizardState next to it.
"""

import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field

from .catalog import require_category


# ============================================================================
# Phases
# ============================================================================


class PhaseName(str, Enum):
    WELCOME = "welcome"
    TRIAGE = "triage"
    TOUR = "tour"
    REVIEW = "review"


@dataclass(frozen=True)
class Welcome:
    name = PhaseName.WELCOME


@dataclass(frozen=True)
class Triage:
    name = PhaseName.TRIAGE


@dataclass(frozen=True)
class Tour:
    index: int = 0
    name = PhaseName.TOUR

    def __post_init__(self):
        if self.index < 0:
            raise ValueError(f"Tour index cannot be negative: {self.index}")


@dataclass(frozen=True)
class Review:
    name = PhaseName.REVIEW


Phase = Union[Welcome, Triage, Tour, Review]


# ============================================================================
# Areas
# ============================================================================


class ScopeArea(BaseModel):
    """One damaged area, created for a triage selection when the tour starts."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    category: str = Field(description="Display label of the category")
    category_key: str
    order: int = 0
    tags: list[str] = Field(default_factory=list)
    dimensions: dict[str, float] = Field(default_factory=dict)
    photo_ids: list[str] = Field(default_factory=list)
    notes: str = ""

    @classmethod
    def empty(cls, category_key: str, order: int) -> "ScopeArea":
        category = require_category(category_key)
        return cls(category=category.label, category_key=category_key, order=order)

    @property
    def has_data(self) -> bool:
        """Whether the contractor entered anything for this area."""
        return bool(
            self.tags
            or any(v for v in self.dimensions.values())
            or self.photo_ids
            or self.notes.strip()
        )


# ============================================================================
# Wizard state
# ============================================================================


@dataclass(frozen=True)
class WizardState:
    """
    Full wizard state. Transitions return a new instance.

    ``areas`` mirrors ``triage_selections`` 1:1 and in order from the
    moment the tour starts.
    """
    phase: Phase = field(default_factory=Welcome)
    triage_selections: tuple[str, ...] = ()
    areas: tuple[ScopeArea, ...] = ()
    general_notes: str = ""

    @property
    def current_tour_step(self) -> int:
        return self.phase.index if isinstance(self.phase, Tour) else 0

    @property
    def current_area(self) -> Optional[ScopeArea]:
        if isinstance(self.phase, Tour) and self.phase.index < len(self.areas):
            return self.areas[self.phase.index]
        return None

    def with_phase(self, phase: Phase) -> "WizardState":
        return replace(self, phase=phase)

    def to_payload(self) -> dict:
        """Scope-sheet fields shared by draft saves and the final submission."""
        return {
            "areas": [a.model_dump() for a in self.areas],
            "triage_selections": list(self.triage_selections),
            "general_notes": self.general_notes,
        }
