"""
Tests for the carrier estimate upload/parse pipeline.

Verifies that AsyncDocumentPipeline:
- Runs request -> PUT -> confirm -> parse in order
- Clears the polling flag on the same tick a terminal status is seen
- Never restarts polling on its own
- Restores state from an earlier session
"""

import asyncio

import pytest

from conftest import STORAGE_URL, envelope, failure
from src.claim.documents import AsyncDocumentPipeline, PipelineState
from src.claim.schema import ParseStatus
from src.client.uploads import FileUpload


CLAIM_PATH = "/api/claims/claim-1"
LIST_PATH = f"{CLAIM_PATH}/carrier-estimate"
UPLOAD_URL_PATH = f"{CLAIM_PATH}/carrier-estimate/upload-url"
CONFIRM_PATH = f"{CLAIM_PATH}/carrier-estimate/est-1/confirm"
PARSE_PATH = f"{CLAIM_PATH}/carrier-estimate/est-1/parse"

PDF = FileUpload(file_name="carrier.pdf", content=b"%PDF-1.7 test", mime_type="application/octet-stream")


def record(status: str, error: str = None) -> dict:
    return {"id": "est-1", "file_name": "carrier.pdf", "parse_status": status, "parse_error": error}


def script_upload(api):
    api.on("POST", UPLOAD_URL_PATH, (200, envelope({"upload_url": STORAGE_URL, "estimate_id": "est-1"})))
    api.on("POST", CONFIRM_PATH, (200, envelope(None)))
    api.on("POST", PARSE_PATH, (202, envelope({"status": "processing"})))


# ============================================================================
# Test: Upload Chain
# ============================================================================


class TestUpload:

    @pytest.mark.asyncio
    async def test_chain_order_and_state(self, api, client):
        script_upload(api)
        pipeline = AsyncDocumentPipeline(client, "claim-1", poll_interval=60)

        assert await pipeline.upload(PDF)
        assert [(r.method, r.url.path) for r in api.requests] == [
            ("POST", UPLOAD_URL_PATH),
            ("PUT", "/bucket/object"),
            ("POST", CONFIRM_PATH),
            ("POST", PARSE_PATH),
        ]
        assert pipeline.state == PipelineState.PARSING
        assert pipeline.is_polling is True
        assert pipeline.estimate_id == "est-1"
        await pipeline.close()

    @pytest.mark.asyncio
    async def test_uploads_as_pdf(self, api, client):
        script_upload(api)
        pipeline = AsyncDocumentPipeline(client, "claim-1", poll_interval=60)
        await pipeline.upload(PDF)

        request_body = api.body(api.calls("POST", UPLOAD_URL_PATH)[0])
        assert request_body == {"file_name": "carrier.pdf", "file_size": len(PDF.content), "mime_type": "application/pdf"}
        put = api.calls("PUT")[0]
        assert put.headers["content-type"] == "application/pdf"
        assert "authorization" not in put.headers
        await pipeline.close()

    @pytest.mark.asyncio
    async def test_confirm_failure_returns_to_none(self, api, client):
        script_upload(api)
        api.on("POST", CONFIRM_PATH, (500, failure("Upload not found in storage")))
        pipeline = AsyncDocumentPipeline(client, "claim-1", poll_interval=60)

        assert await pipeline.upload(PDF) is False
        assert pipeline.state == PipelineState.NONE
        assert pipeline.error == "Upload not found in storage"
        assert pipeline.is_polling is False
        assert api.calls("POST", PARSE_PATH) == []

    @pytest.mark.asyncio
    async def test_put_failure(self, api, client):
        script_upload(api)
        api.on("PUT", "/bucket/object", (403, None))
        pipeline = AsyncDocumentPipeline(client, "claim-1", poll_interval=60)

        assert await pipeline.upload(PDF) is False
        assert pipeline.error == "Failed to upload file to storage"
        assert api.calls("POST", CONFIRM_PATH) == []


# ============================================================================
# Test: Polling
# ============================================================================


class TestPolling:

    @pytest.mark.asyncio
    async def test_flag_sequence_pending_processing_completed(self, api, client):
        api.on(
            "GET", LIST_PATH,
            (200, envelope([record("pending")])),
            (200, envelope([record("processing")])),
            (200, envelope([record("completed")])),
        )
        pipeline = AsyncDocumentPipeline(client, "claim-1", poll_interval=60)
        pipeline.start_polling(run_loop=False)

        flags = []
        for _ in range(3):
            await pipeline.tick()
            flags.append(pipeline.is_polling)

        assert flags == [True, True, False]
        assert pipeline.state == PipelineState.PARSED

    @pytest.mark.asyncio
    async def test_no_requests_after_terminal(self, api, client):
        api.on("GET", LIST_PATH, (200, envelope([record("completed")])))
        pipeline = AsyncDocumentPipeline(client, "claim-1", poll_interval=60)
        pipeline.start_polling(run_loop=False)

        assert await pipeline.tick() == ParseStatus.COMPLETED
        assert await pipeline.tick() is None
        assert len(api.calls("GET", LIST_PATH)) == 1

    @pytest.mark.asyncio
    async def test_failed_parse(self, api, client):
        api.on("GET", LIST_PATH, (200, envelope([record("failed", "Unreadable PDF")])))
        pipeline = AsyncDocumentPipeline(client, "claim-1", poll_interval=60)
        pipeline.start_polling(run_loop=False)

        await pipeline.tick()
        assert pipeline.is_polling is False
        assert pipeline.state == PipelineState.FAILED
        assert pipeline.error == "Unreadable PDF"

    @pytest.mark.asyncio
    async def test_poll_error_keeps_polling(self, api, client):
        api.on(
            "GET", LIST_PATH,
            (503, failure("Temporarily unavailable")),
            (200, envelope([record("completed")])),
        )
        pipeline = AsyncDocumentPipeline(client, "claim-1", poll_interval=60)
        pipeline.start_polling(run_loop=False)

        assert await pipeline.tick() is None
        assert pipeline.is_polling is True
        await pipeline.tick()
        assert pipeline.is_polling is False

    @pytest.mark.asyncio
    async def test_background_loop_stops_on_terminal(self, api, client):
        api.on(
            "GET", LIST_PATH,
            (200, envelope([record("processing")])),
            (200, envelope([record("completed")])),
        )
        pipeline = AsyncDocumentPipeline(client, "claim-1", poll_interval=0.01)
        pipeline.start_polling()

        for _ in range(100):
            if not pipeline.is_polling:
                break
            await asyncio.sleep(0.01)

        assert pipeline.state == PipelineState.PARSED
        await asyncio.sleep(0.05)
        assert len(api.calls("GET", LIST_PATH)) == 2
        await pipeline.close()

    @pytest.mark.asyncio
    async def test_close_discards_late_results(self, api, client):
        api.on("GET", LIST_PATH, (200, envelope([record("completed")])))
        pipeline = AsyncDocumentPipeline(client, "claim-1", poll_interval=60)
        pipeline.start_polling()
        await pipeline.close()

        assert pipeline.is_polling is False
        assert await pipeline.tick() is None
        assert pipeline.state == PipelineState.NONE


# ============================================================================
# Test: Retry and Restore
# ============================================================================


class TestRetryRestore:

    @pytest.mark.asyncio
    async def test_retry_clears_client_state_only(self, api, client):
        api.on("GET", LIST_PATH, (200, envelope([record("failed", "Unreadable PDF")])))
        pipeline = AsyncDocumentPipeline(client, "claim-1", poll_interval=60)
        pipeline.start_polling(run_loop=False)
        await pipeline.tick()
        requests_before = len(api.requests)

        pipeline.retry()
        assert pipeline.state == PipelineState.NONE
        assert pipeline.document is None
        assert pipeline.error is None
        assert len(api.requests) == requests_before

    @pytest.mark.asyncio
    async def test_reupload_after_retry_keeps_polling(self, api, client):
        script_upload(api)
        api.on(
            "GET", LIST_PATH,
            (200, envelope([record("processing")])),
            (200, envelope([record("completed")])),
        )
        pipeline = AsyncDocumentPipeline(client, "claim-1", poll_interval=0.01)
        pipeline.state = PipelineState.PARSING
        pipeline.start_polling()
        await asyncio.sleep(0)

        pipeline.retry()
        assert await pipeline.upload(PDF)

        for _ in range(100):
            if not pipeline.is_polling:
                break
            await asyncio.sleep(0.01)

        assert pipeline.state == PipelineState.PARSED
        assert len(api.calls("GET", LIST_PATH)) == 2
        await pipeline.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status, expected, polling", [
        ("completed", PipelineState.PARSED, False),
        ("failed", PipelineState.FAILED, False),
        ("pending", PipelineState.PARSING, True),
        ("processing", PipelineState.PARSING, True),
    ])
    async def test_restore(self, api, client, status, expected, polling):
        api.on("GET", LIST_PATH, (200, envelope([record(status)])))
        pipeline = AsyncDocumentPipeline(client, "claim-1", poll_interval=60)

        await pipeline.restore()
        assert pipeline.state == expected
        assert pipeline.is_polling is polling
        await pipeline.close()

    @pytest.mark.asyncio
    async def test_restore_without_records(self, api, client):
        api.on("GET", LIST_PATH, (200, envelope([])))
        pipeline = AsyncDocumentPipeline(client, "claim-1", poll_interval=60)
        await pipeline.restore()
        assert pipeline.state == PipelineState.NONE
