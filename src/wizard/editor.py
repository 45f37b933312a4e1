"""
Editing one area during the tour.

The editor works on a private copy of the area. Nothing reaches the
wizard state until the copy is handed to ``next_area``.
"""

import logging
from typing import Union

from ..client.api import ClaimApiClient, photo_upload_target
from ..client.uploads import FileUpload, UploadItem, UploadStatus, upload_files
from ..utils.errors import ClientValidationError
from .catalog import CategoryDef, require_category
from .schema import ScopeArea

logger = logging.getLogger(__name__)


def parse_dimension(value: Union[str, float, int, None]) -> float:
    """Numeric dimension input; anything unparseable counts as 0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if number != number:  # NaN
        return 0.0
    return number


class TourAreaEditor:
    """Tag, dimension, notes and photo edits for a single ScopeArea."""

    def __init__(self, client: ClaimApiClient, token: str, area: ScopeArea):
        self.client = client
        self.token = token
        self.category: CategoryDef = require_category(area.category_key)
        self.area = area.model_copy(deep=True)
        self.uploads: list[UploadItem] = []

    def toggle_tag(self, tag_key: str) -> bool:
        """Flip a tag; returns whether it is now set."""
        if not self.category.has_tag(tag_key):
            raise ClientValidationError("tags", f"{tag_key} does not apply to {self.category.label}")
        if tag_key in self.area.tags:
            self.area.tags = [t for t in self.area.tags if t != tag_key]
            return False
        self.area.tags = self.area.tags + [tag_key]
        return True

    def set_dimension(self, key: str, value: Union[str, float, int, None]) -> float:
        if key not in self.category.dimension_keys:
            raise ClientValidationError("dimensions", f"{self.category.label} has no {key} measurement")
        number = parse_dimension(value)
        self.area.dimensions = {**self.area.dimensions, key: number}
        return number

    def set_notes(self, notes: str) -> None:
        self.area.notes = notes

    async def add_photos(self, files: list[FileUpload]) -> list[UploadItem]:
        """
        Upload photos concurrently; each keeps its own status.

        Confirmed photos are attached to the area in selection order.
        """
        items = await upload_files(self.client, photo_upload_target(self.token), files)
        for item in items:
            if item.status == UploadStatus.DONE and item.record_id:
                self.area.photo_ids = self.area.photo_ids + [item.record_id]
        failed = sum(1 for item in items if item.status == UploadStatus.ERROR)
        if failed:
            logger.warning(f"{failed} of {len(items)} photo(s) failed for area {self.area.id}")
        self.uploads.extend(items)
        return items

    @property
    def uploading(self) -> bool:
        return any(item.status == UploadStatus.UPLOADING for item in self.uploads)

    def result(self) -> ScopeArea:
        return self.area.model_copy(deep=True)
