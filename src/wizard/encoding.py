"""
Draft wire format.

Saved drafts store the wizard phase as a single integer, ``draft_step``.
This is wire contract version 1:

    welcome  -> 1
    triage   -> 2
    tour(i)  -> 10 + i   (0 <= i <= 88)
    review   -> 99

Anything else, including null, decodes to welcome. The packed integer
only exists here; the rest of the wizard works with Phase values.
"""

import logging
from typing import Any, Optional

from pydantic import ValidationError

from .schema import Phase, ScopeArea, Tour, Triage, Review, Welcome, WizardState

logger = logging.getLogger(__name__)

WIRE_VERSION = 1

WELCOME_STEP = 1
TRIAGE_STEP = 2
TOUR_BASE_STEP = 10
REVIEW_STEP = 99
MAX_TOUR_INDEX = REVIEW_STEP - TOUR_BASE_STEP - 1


def encode_phase(phase: Phase) -> int:
    """
    Pack a phase into its ``draft_step`` integer.

    Raises:
        ValueError: tour index too large to encode
    """
    if isinstance(phase, Welcome):
        return WELCOME_STEP
    if isinstance(phase, Triage):
        return TRIAGE_STEP
    if isinstance(phase, Review):
        return REVIEW_STEP
    if isinstance(phase, Tour):
        if phase.index > MAX_TOUR_INDEX:
            raise ValueError(f"Tour index {phase.index} exceeds the encodable maximum {MAX_TOUR_INDEX}")
        return TOUR_BASE_STEP + phase.index
    raise TypeError(f"Not a wizard phase: {phase!r}")


def decode_phase(value: Optional[Any]) -> Phase:
    """Unpack a ``draft_step``; unknown or missing values mean welcome."""
    if isinstance(value, bool) or not isinstance(value, int):
        return Welcome()
    if value == TRIAGE_STEP:
        return Triage()
    if value == REVIEW_STEP:
        return Review()
    if TOUR_BASE_STEP <= value < REVIEW_STEP:
        return Tour(index=value - TOUR_BASE_STEP)
    return Welcome()


def state_to_draft(state: WizardState, revision: int) -> dict:
    """Request body for a draft save."""
    return {
        **state.to_payload(),
        "draft_step": encode_phase(state.phase),
        "revision": revision,
    }


def state_from_draft(draft: Optional[dict]) -> WizardState:
    """
    Rebuild wizard state from a saved draft.

    A tour index past the last area is pulled back to the last area; a
    tour with no areas restarts at triage.
    """
    if not draft:
        return WizardState()

    try:
        areas = tuple(ScopeArea.model_validate(a) for a in draft.get("areas") or [])
    except ValidationError as e:
        logger.warning(f"Discarding malformed draft areas: {e.error_count()} error(s)")
        areas = ()

    selections = tuple(dict.fromkeys(draft.get("triage_selections") or []))
    phase = decode_phase(draft.get("draft_step"))

    if isinstance(phase, Tour):
        if not areas:
            phase = Triage()
        elif phase.index >= len(areas):
            phase = Tour(index=len(areas) - 1)
    elif isinstance(phase, Review) and not areas:
        phase = Triage()

    return WizardState(
        phase=phase,
        triage_selections=selections,
        areas=areas,
        general_notes=draft.get("general_notes") or "",
    )
