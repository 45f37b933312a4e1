"""
Tests for the damage area catalog.
"""

import pytest

from src.wizard.catalog import (
    CATEGORIES,
    CATEGORY_MAP,
    DimensionType,
    get_category,
    is_valid_category,
    require_category,
)


class TestCatalog:

    def test_category_keys_are_unique(self):
        keys = [c.key for c in CATEGORIES]
        assert len(keys) == len(set(keys))
        assert set(CATEGORY_MAP) == set(keys)

    def test_tag_keys_unique_within_category(self):
        for category in CATEGORIES:
            assert len(category.tag_keys) == len(set(category.tag_keys)), category.key

    def test_roof_measured_in_square_feet(self):
        roof = require_category("roof")
        assert roof.dimension_type == DimensionType.SQFT
        assert roof.dimension_keys == ("square_footage",)
        assert roof.has_tag("Shingles_Damaged")
        assert not roof.has_tag("Cabinets_Damaged")

    def test_interior_rooms_use_length_and_width(self):
        kitchen = require_category("interior_kitchen")
        assert kitchen.dimension_keys == ("length", "width")
        assert kitchen.has_tag("Cabinets_Damaged")

    def test_no_dimensions(self):
        assert require_category("water_mitigation").dimension_keys == ()

    def test_tag_labels(self):
        roof = require_category("roof")
        labels = {t.key: t.label for t in roof.tags}
        assert labels["Type_3Tab_Shingle"] == "Type 3-Tab Shingle"
        assert labels["Flashing_Missing"] == "Flashing Missing"

    def test_lookup(self):
        assert get_category("fencing_other").label == "Fencing / Other"
        assert get_category("garage") is None
        assert is_valid_category("roof")
        assert not is_valid_category("garage")

    def test_require_unknown_raises(self):
        with pytest.raises(KeyError):
            require_category("garage")
