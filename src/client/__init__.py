"""HTTP client for the claim API and the shared upload choreography."""

from .api import (
    ClaimApiClient,
    UploadTarget,
    carrier_estimate_upload_target,
    photo_upload_target,
)
from .uploads import FileUpload, UploadItem, UploadStatus, upload_file, upload_files

__all__ = [
    "ClaimApiClient",
    "UploadTarget",
    "carrier_estimate_upload_target",
    "photo_upload_target",
    "FileUpload",
    "UploadItem",
    "UploadStatus",
    "upload_file",
    "upload_files",
]
