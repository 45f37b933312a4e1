"""
Three-call upload choreography shared by photo and estimate uploads.

1. request ``{upload_url, id}`` for the file's metadata
2. raw PUT of the bytes to ``upload_url`` with the file's content type
3. confirm the record by id
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional

from ..utils.errors import ApiError

if TYPE_CHECKING:
    from .api import ClaimApiClient, UploadTarget

logger = logging.getLogger(__name__)


@dataclass
class FileUpload:
    """A file selected for upload."""
    file_name: str
    content: bytes
    mime_type: str

    @property
    def file_size(self) -> int:
        return len(self.content)


class UploadStatus(str, Enum):
    """Per-file upload status."""
    PENDING = "pending"
    UPLOADING = "uploading"
    DONE = "done"
    ERROR = "error"


@dataclass
class UploadItem:
    """Tracks one file's progress through the upload choreography."""
    file: FileUpload
    status: UploadStatus = UploadStatus.PENDING
    record_id: Optional[str] = None
    error: Optional[str] = None
    steps: list[str] = field(default_factory=list)


async def upload_file(
    client: "ClaimApiClient",
    target: "UploadTarget",
    file: FileUpload,
    item: Optional[UploadItem] = None,
) -> str:
    """
    Run request -> PUT -> confirm for one file.

    Args:
        client: API client
        target: Which call site's endpoints to use
        file: File to upload
        item: Optional tracker updated as each call succeeds

    Returns:
        The confirmed record id

    Raises:
        ApiError: if any of the three calls fails; earlier calls are not undone
    """
    url_data = await client.request_upload_url(target, file.file_name, file.file_size, file.mime_type)
    url_data = url_data or {}
    upload_url = url_data.get("upload_url")
    record_id = url_data.get(target.id_key) or url_data.get("id")
    if not upload_url or not record_id:
        raise ApiError("Failed to request upload URL")
    if item:
        item.record_id = record_id
        item.steps.append("requested")

    await client.put_bytes(upload_url, file.content, file.mime_type)
    if item:
        item.steps.append("stored")

    await client.confirm_upload(target, record_id)
    if item:
        item.steps.append("confirmed")

    logger.info(f"Uploaded {file.file_name} ({file.file_size} bytes) as {record_id}")
    return record_id


async def upload_files(
    client: "ClaimApiClient",
    target: "UploadTarget",
    files: list[FileUpload],
) -> list[UploadItem]:
    """
    Upload several files concurrently, each with its own status.

    One file's failure is recorded on its item and does not affect the
    others.
    """
    items = [UploadItem(file=f) for f in files]

    async def _run(item: UploadItem) -> None:
        item.status = UploadStatus.UPLOADING
        try:
            await upload_file(client, target, item.file, item)
        except ApiError as e:
            logger.warning(f"Upload of {item.file.file_name} failed: {e.message}")
            item.status = UploadStatus.ERROR
            item.error = e.message
            return
        item.status = UploadStatus.DONE

    await asyncio.gather(*(_run(item) for item in items))
    return items
