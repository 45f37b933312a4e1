"""
Carrier estimate upload and parse tracking.

The pipeline runs the shared upload choreography, triggers the server's
parse job and then polls the estimate list until the newest record
reaches a terminal parse status:

    NONE -> UPLOADING -> PARSING -> PARSED | FAILED
"""

import asyncio
import logging
from enum import Enum
from typing import Optional

from ..client.api import ClaimApiClient, carrier_estimate_upload_target
from ..client.uploads import FileUpload, upload_file
from ..utils.config import get_settings
from ..utils.errors import ApiError
from .schema import CarrierEstimateDocument, ParseStatus

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"


class PipelineState(str, Enum):
    """Client-side state of the carrier estimate flow."""
    NONE = "none"
    UPLOADING = "uploading"
    PARSING = "parsing"
    PARSED = "parsed"
    FAILED = "failed"


class AsyncDocumentPipeline:
    """
    Upload -> confirm -> parse -> poll for one claim's carrier estimate.

    ``is_polling`` is cleared in the same tick the newest record reports
    ``completed`` or ``failed`` and is only ever set again by an explicit
    call to ``start_polling``.
    """

    def __init__(
        self,
        client: ClaimApiClient,
        claim_id: str,
        poll_interval: Optional[float] = None,
    ):
        self.client = client
        self.claim_id = claim_id
        self.poll_interval = (
            poll_interval if poll_interval is not None
            else get_settings().parse_poll_interval_seconds
        )
        self.target = carrier_estimate_upload_target(claim_id)

        self.state = PipelineState.NONE
        self.is_polling = False
        self.estimate_id: Optional[str] = None
        self.document: Optional[CarrierEstimateDocument] = None
        self.error: Optional[str] = None

        self._poll_task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def is_parsed(self) -> bool:
        return self.state == PipelineState.PARSED

    async def upload(self, file: FileUpload) -> bool:
        """
        Upload a carrier estimate PDF and start tracking its parse job.

        Returns:
            True if the upload chain and parse trigger succeeded
        """
        if self.state in (PipelineState.UPLOADING, PipelineState.PARSING):
            logger.warning(f"Ignoring upload for claim {self.claim_id}: already {self.state.value}")
            return False

        pdf = FileUpload(file_name=file.file_name, content=file.content, mime_type=PDF_MIME_TYPE)
        self.state = PipelineState.UPLOADING
        self.error = None

        try:
            estimate_id = await upload_file(self.client, self.target, pdf)
            await self.client.trigger_parse(self.claim_id, estimate_id)
        except ApiError as e:
            if self._closed:
                return False
            logger.error(f"Carrier estimate upload failed for claim {self.claim_id}: {e.message}")
            self.error = e.message
            self.state = PipelineState.NONE
            return False

        if self._closed:
            return False

        logger.info(f"Carrier estimate {estimate_id} uploaded, parse triggered")
        self.estimate_id = estimate_id
        self.state = PipelineState.PARSING
        self.start_polling()
        return True

    def start_polling(self, run_loop: bool = True) -> None:
        """
        Begin polling the parse status.

        Args:
            run_loop: Schedule the interval loop. With False the caller
                      drives polling by awaiting ``tick()``.
        """
        if self._closed:
            return
        self.is_polling = True
        if run_loop and (self._poll_task is None or self._poll_task.done()):
            self._poll_task = asyncio.create_task(self._poll_loop())

    async def tick(self) -> Optional[ParseStatus]:
        """
        One poll: read the newest record's parse status.

        Returns:
            The status seen, or None if nothing was read
        """
        if not self.is_polling or self._closed:
            return None

        try:
            records = await self.client.list_carrier_estimates(self.claim_id)
        except ApiError as e:
            logger.warning(f"Parse status poll failed for claim {self.claim_id}: {e.message}")
            return None

        if self._closed or not self.is_polling or not records:
            return None

        document = CarrierEstimateDocument.model_validate(records[0])
        self.document = document

        if document.parse_status == ParseStatus.COMPLETED:
            self.is_polling = False
            self.state = PipelineState.PARSED
            logger.info(f"Carrier estimate {document.id} parsed")
        elif document.parse_status == ParseStatus.FAILED:
            self.is_polling = False
            self.state = PipelineState.FAILED
            self.error = document.parse_error or "Failed to parse the estimate. Please try again."
            logger.warning(f"Carrier estimate {document.id} failed to parse: {self.error}")

        return document.parse_status

    async def _poll_loop(self) -> None:
        try:
            while self.is_polling and not self._closed:
                await asyncio.sleep(self.poll_interval)
                await self.tick()
        finally:
            # A cancelled loop may unwind after a newer one was started
            if self._poll_task is asyncio.current_task():
                self._poll_task = None

    async def restore(self) -> None:
        """Pick up an estimate uploaded in an earlier session."""
        try:
            records = await self.client.list_carrier_estimates(self.claim_id)
        except ApiError as e:
            logger.warning(f"Could not load carrier estimates for claim {self.claim_id}: {e.message}")
            return
        if self._closed or not records:
            return

        document = CarrierEstimateDocument.model_validate(records[0])
        self.document = document
        self.estimate_id = document.id

        if document.parse_status == ParseStatus.COMPLETED:
            self.state = PipelineState.PARSED
        elif document.parse_status == ParseStatus.FAILED:
            self.state = PipelineState.FAILED
            self.error = document.parse_error or "Failed to parse the estimate. Please try again."
        else:
            self.state = PipelineState.PARSING
            self.start_polling()

    def retry(self) -> None:
        """
        Return to the pre-upload state after a failure.

        Only the client-side record is cleared; the failed server record
        stays where it is.
        """
        self.is_polling = False
        self._cancel_poll_task()
        self.state = PipelineState.NONE
        self.document = None
        self.estimate_id = None
        self.error = None

    async def close(self) -> None:
        """Tear down: stop polling and discard any late results."""
        self._closed = True
        self.is_polling = False
        task = self._poll_task
        self._cancel_poll_task()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    def _cancel_poll_task(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is not None and not task.done():
            task.cancel()
