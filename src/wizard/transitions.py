"""
Pure wizard transitions.

Every function takes a WizardState and returns a new one, or raises
InvalidTransitionError when called from a phase that does not allow it.

    welcome -> triage
    triage  -> tour(0)            areas rebuilt from the selections
    tour(i) -> tour(i+1) | review edited area merged by id first
    tour(i) -> tour(i-1) | triage going back
    review  -> tour(last)
    triage  -> welcome
"""

from dataclasses import replace
from typing import Iterable

from ..utils.errors import ClientValidationError, InvalidTransitionError, TriageResetRequiresConfirmation
from .catalog import is_valid_category
from .schema import Phase, Review, ScopeArea, Tour, Triage, Welcome, WizardState


def _require(state: WizardState, *allowed: type) -> None:
    if not isinstance(state.phase, allowed):
        names = ", ".join(cls.name.value for cls in allowed)
        raise InvalidTransitionError(
            f"Cannot do that from {state.phase.name.value}; expected {names}"
        )


def start(state: WizardState) -> WizardState:
    _require(state, Welcome)
    return state.with_phase(Triage())


def set_selections(state: WizardState, selections: Iterable[str]) -> WizardState:
    """Replace the triage selections, keeping first-seen order and dropping repeats."""
    _require(state, Triage)
    ordered = tuple(dict.fromkeys(selections))
    for key in ordered:
        if not is_valid_category(key):
            raise ClientValidationError("triage_selections", f"Unknown damage category: {key}")
    return replace(state, triage_selections=ordered)


def toggle_selection(state: WizardState, category_key: str) -> WizardState:
    _require(state, Triage)
    if category_key in state.triage_selections:
        remaining = tuple(k for k in state.triage_selections if k != category_key)
        return replace(state, triage_selections=remaining)
    return set_selections(state, state.triage_selections + (category_key,))


def start_tour(state: WizardState, confirm_discard: bool = False) -> WizardState:
    """
    Build one empty area per selection, in order, and enter the tour.

    Raises:
        ClientValidationError: nothing selected
        TriageResetRequiresConfirmation: existing areas hold data and
            ``confirm_discard`` was not given
    """
    _require(state, Triage)
    if not state.triage_selections:
        raise ClientValidationError("triage_selections", "Select at least one affected area")

    affected = [a.category_key for a in state.areas if a.has_data]
    if affected and not confirm_discard:
        raise TriageResetRequiresConfirmation(affected)

    areas = tuple(
        ScopeArea.empty(key, order=i) for i, key in enumerate(state.triage_selections)
    )
    return replace(state, areas=areas, phase=Tour(index=0))


def merge_area(state: WizardState, edited: ScopeArea) -> WizardState:
    """Replace the area with the same id."""
    if not any(a.id == edited.id for a in state.areas):
        raise InvalidTransitionError(f"No area with id {edited.id}")
    areas = tuple(edited if a.id == edited.id else a for a in state.areas)
    return replace(state, areas=areas)


def next_area(state: WizardState, edited: ScopeArea) -> WizardState:
    """Save the current area and move on; after the last area comes review."""
    _require(state, Tour)
    current = state.current_area
    if current is None or edited.id != current.id:
        raise InvalidTransitionError(f"Area {edited.id} is not the area being toured")
    merged = merge_area(state, edited)
    index = state.phase.index + 1
    if index < len(merged.areas):
        return merged.with_phase(Tour(index=index))
    return merged.with_phase(Review())


def go_back(state: WizardState) -> WizardState:
    """Step back one screen. Unsaved edits to the current area are dropped."""
    phase: Phase = state.phase
    if isinstance(phase, Triage):
        return state.with_phase(Welcome())
    if isinstance(phase, Tour):
        if phase.index > 0:
            return state.with_phase(Tour(index=phase.index - 1))
        return state.with_phase(Triage())
    if isinstance(phase, Review):
        if not state.areas:
            return state.with_phase(Triage())
        return state.with_phase(Tour(index=len(state.areas) - 1))
    raise InvalidTransitionError("Already at the start")


def set_general_notes(state: WizardState, notes: str) -> WizardState:
    _require(state, Review)
    return replace(state, general_notes=notes)
