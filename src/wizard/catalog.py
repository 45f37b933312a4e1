"""
Damage area catalog for the contractor tour.

Each category the contractor can pick during triage maps to the damage
tags allowed for it and the dimension inputs its tour step asks for.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class DimensionType(str, Enum):
    """How an area is measured."""
    SQFT = "sqft"
    LXW = "lxw"
    NONE = "none"


DIMENSION_KEYS: dict[DimensionType, tuple[str, ...]] = {
    DimensionType.SQFT: ("square_footage",),
    DimensionType.LXW: ("length", "width"),
    DimensionType.NONE: (),
}


class TagDef(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    label: str


class CategoryDef(BaseModel):
    """One damage category: its tags and dimension schema."""
    model_config = ConfigDict(frozen=True)

    key: str
    label: str
    tags: tuple[TagDef, ...]
    dimension_type: DimensionType = DimensionType.NONE

    @property
    def tag_keys(self) -> tuple[str, ...]:
        return tuple(t.key for t in self.tags)

    @property
    def dimension_keys(self) -> tuple[str, ...]:
        return DIMENSION_KEYS[self.dimension_type]

    def has_tag(self, tag_key: str) -> bool:
        return tag_key in self.tag_keys


def _tags(*keys: str) -> tuple[TagDef, ...]:
    return tuple(TagDef(key=k, label=k.replace("_", " ").replace("3Tab", "3-Tab")) for k in keys)


_INTERIOR_BASE = ("Drywall_Damaged", "Ceiling_Damaged", "Flooring_Damaged")

CATEGORIES: tuple[CategoryDef, ...] = (
    CategoryDef(
        key="roof",
        label="Roof",
        dimension_type=DimensionType.SQFT,
        tags=_tags(
            "Type_3Tab_Shingle",
            "Type_Architectural_Shingle",
            "Type_Metal",
            "Pitch_Steep",
            "Shingles_Damaged",
            "Underlayment_Torn",
            "Decking_Damaged",
            "Vents_Damaged",
            "Flashing_Missing",
            "Gutters_Damaged",
            "Fascia_Damaged",
            "Soffit_Damaged",
            "Accessories_Damaged",
        ),
    ),
    CategoryDef(
        key="exterior_walls",
        label="Exterior Walls",
        dimension_type=DimensionType.SQFT,
        tags=_tags(
            "Siding_Damaged",
            "Siding_Paint_Needed",
            "Fascia_Damaged",
            "Soffit_Damaged",
            "Gutters_Damaged",
            "Window_Broken",
            "Door_Damaged",
            "Trim_Damaged",
        ),
    ),
    CategoryDef(
        key="interior_kitchen",
        label="Kitchen",
        dimension_type=DimensionType.LXW,
        tags=_tags(*_INTERIOR_BASE, "Cabinets_Damaged", "Appliances_Damaged"),
    ),
    CategoryDef(
        key="interior_bathroom",
        label="Bathroom",
        dimension_type=DimensionType.LXW,
        tags=_tags(*_INTERIOR_BASE, "Fixtures_Damaged"),
    ),
    CategoryDef(
        key="interior_living",
        label="Living Room",
        dimension_type=DimensionType.LXW,
        tags=_tags(*_INTERIOR_BASE),
    ),
    CategoryDef(
        key="interior_bedroom",
        label="Bedroom",
        dimension_type=DimensionType.LXW,
        tags=_tags(*_INTERIOR_BASE),
    ),
    CategoryDef(
        key="water_mitigation",
        label="Water Mitigation",
        tags=_tags(
            "Standing_Water_Present",
            "Baseboards_Swollen",
            "Drywall_Cuts_Needed",
            "Dehumidifiers_Needed",
            "Air_Movers_Needed",
        ),
    ),
    CategoryDef(
        key="fencing_other",
        label="Fencing / Other",
        tags=_tags("Fence_Sections_Damaged", "Gate_Damaged", "Posts_Broken"),
    ),
)

CATEGORY_MAP: dict[str, CategoryDef] = {c.key: c for c in CATEGORIES}


def get_category(key: str) -> Optional[CategoryDef]:
    return CATEGORY_MAP.get(key)


def require_category(key: str) -> CategoryDef:
    """
    Look up a category by key.

    Raises:
        KeyError: unknown category key
    """
    category = CATEGORY_MAP.get(key)
    if category is None:
        raise KeyError(f"Unknown damage category: {key}")
    return category


def is_valid_category(key: str) -> bool:
    return key in CATEGORY_MAP
