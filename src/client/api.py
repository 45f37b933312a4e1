"""
Async HTTP client for the claim API.

Wraps httpx.AsyncClient, unwraps the ``{"success": ..., "data": ...}``
envelope and converts failures into ApiError with the server-provided
``error`` string or a per-action fallback message.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ..utils.config import Settings, get_settings
from ..utils.errors import ApiError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadTarget:
    """
    Endpoints for one upload call site.

    Both contractor photos and carrier-estimate PDFs go through the same
    request -> PUT -> confirm sequence; only the paths and the key holding
    the new record id differ.
    """
    request_path: str
    confirm_path_template: str  # formatted with ``id``
    id_key: str = "id"
    document_type: Optional[str] = None

    def confirm_path(self, record_id: str) -> str:
        return self.confirm_path_template.format(id=record_id)


def photo_upload_target(token: str) -> UploadTarget:
    """Upload target for contractor photos (access-token scoped)."""
    return UploadTarget(
        request_path=f"/api/magic-links/{token}/documents/upload-url",
        confirm_path_template=f"/api/magic-links/{token}/documents/{{id}}/confirm",
        id_key="document_id",
        document_type="contractor_photo",
    )


def carrier_estimate_upload_target(claim_id: str) -> UploadTarget:
    """Upload target for the carrier's estimate PDF."""
    return UploadTarget(
        request_path=f"/api/claims/{claim_id}/carrier-estimate/upload-url",
        confirm_path_template=f"/api/claims/{claim_id}/carrier-estimate/{{id}}/confirm",
        id_key="estimate_id",
    )


def _error_from_response(response: httpx.Response, fallback: str) -> ApiError:
    """Build an ApiError, preferring the server's ``error`` field."""
    message = fallback
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("error"):
        message = str(body["error"])
    return ApiError(message, status_code=response.status_code)


class ClaimApiClient:
    """
    Thin async client for the claim and contractor endpoints.

    Usage:
        async with ClaimApiClient() as client:
            claim = await client.get_claim("claim-1")
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        settings: Optional[Settings] = None,
    ):
        cfg = settings or get_settings()
        headers = {}
        token = token if token is not None else cfg.api_token
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self.base_url = (base_url or cfg.api_root).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout or cfg.request_timeout,
            transport=transport,
        )
        # Raw uploads go to presigned URLs and must not carry our auth header
        self._upload_client = httpx.AsyncClient(
            timeout=timeout or cfg.request_timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "ClaimApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()
        await self._upload_client.aclose()

    # =========================================================================
    # Transport helpers
    # =========================================================================

    async def request(
        self,
        method: str,
        path: str,
        fallback_error: str,
        json: Optional[dict] = None,
    ) -> Any:
        """
        Send a request and return the envelope's ``data``.

        Raises:
            ApiError: on network failure or a non-2xx response
        """
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise ApiError(fallback_error) from e

        if response.is_error:
            error = _error_from_response(response, fallback_error)
            logger.warning(f"{method} {path} -> {response.status_code}: {error.message}")
            raise error

        if not response.content:
            return None
        try:
            body = response.json()
        except ValueError as e:
            raise ApiError(fallback_error, status_code=response.status_code) from e
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    async def put_bytes(self, url: str, content: bytes, content_type: str) -> None:
        """Raw PUT of file bytes to a presigned storage URL."""
        try:
            response = await self._upload_client.put(
                url, content=content, headers={"Content-Type": content_type}
            )
        except httpx.HTTPError as e:
            raise ApiError("Failed to upload file to storage") from e
        if response.is_error:
            raise ApiError("Failed to upload file to storage", status_code=response.status_code)

    # =========================================================================
    # Claim steps
    # =========================================================================

    async def get_claim(self, claim_id: str) -> dict:
        return await self.request("GET", f"/api/claims/{claim_id}", "Failed to load claim")

    async def update_claim_step(self, claim_id: str, payload: dict, fallback_error: str) -> dict:
        return await self.request(
            "PATCH", f"/api/claims/{claim_id}/step", fallback_error, json=payload
        )

    async def notify_insurer(self, claim_id: str, description: str) -> Any:
        return await self.request(
            "POST",
            f"/api/claims/{claim_id}/notify-insurer",
            "Failed to send notification",
            json={"description": description},
        )

    async def issue_magic_link(self, claim_id: str, contractor_name: str, contractor_email: str) -> dict:
        return await self.request(
            "POST",
            f"/api/claims/{claim_id}/magic-link",
            "Failed to send link",
            json={"contractor_name": contractor_name, "contractor_email": contractor_email},
        )

    async def validate_magic_link(self, token: str) -> dict:
        return await self.request(
            "GET", f"/api/magic-links/{token}/validate", "Failed to validate upload link"
        )

    # =========================================================================
    # Documents
    # =========================================================================

    async def request_upload_url(self, target: UploadTarget, file_name: str, file_size: int, mime_type: str) -> dict:
        payload = {"file_name": file_name, "file_size": file_size, "mime_type": mime_type}
        if target.document_type:
            payload["document_type"] = target.document_type
        return await self.request("POST", target.request_path, "Failed to request upload URL", json=payload)

    async def confirm_upload(self, target: UploadTarget, record_id: str) -> Any:
        return await self.request("POST", target.confirm_path(record_id), "Failed to confirm upload")

    async def list_carrier_estimates(self, claim_id: str) -> list[dict]:
        data = await self.request(
            "GET", f"/api/claims/{claim_id}/carrier-estimate", "Failed to load carrier estimates"
        )
        return data or []

    async def trigger_parse(self, claim_id: str, estimate_id: str) -> Any:
        return await self.request(
            "POST",
            f"/api/claims/{claim_id}/carrier-estimate/{estimate_id}/parse",
            "Failed to start parsing",
        )

    # =========================================================================
    # Audit
    # =========================================================================

    async def generate_audit(self, claim_id: str) -> dict:
        return await self.request(
            "POST", f"/api/claims/{claim_id}/audit/generate", "Analysis failed. Please try again."
        )

    async def compare_audit(self, claim_id: str, audit_id: str) -> Any:
        return await self.request(
            "POST",
            f"/api/claims/{claim_id}/audit/{audit_id}/compare",
            "Analysis failed. Please try again.",
        )

    async def get_audit_report(self, claim_id: str) -> Optional[dict]:
        """Fetch the claim's audit report, or None when none exists yet."""
        try:
            return await self.request("GET", f"/api/claims/{claim_id}/audit", "Failed to load audit report")
        except ApiError as e:
            if e.is_not_found:
                return None
            raise

    # =========================================================================
    # Payments
    # =========================================================================

    async def create_expected_payment(self, claim_id: str, payment_type: str, expected_amount: float) -> dict:
        return await self.request(
            "POST",
            f"/api/claims/{claim_id}/payments",
            "Failed to create payment",
            json={"payment_type": payment_type, "expected_amount": expected_amount},
        )

    async def record_payment_received(self, payment_id: str, payload: dict) -> Any:
        return await self.request(
            "PATCH", f"/api/payments/{payment_id}/received", "Failed to record payment", json=payload
        )

    async def list_payments(self, claim_id: str) -> list[dict]:
        data = await self.request("GET", f"/api/claims/{claim_id}/payments", "Failed to load payments")
        return data or []

    # =========================================================================
    # Contractor scope sheet
    # =========================================================================

    async def get_scope_sheet_draft(self, token: str) -> Optional[dict]:
        """Fetch the saved draft; a 404 means no draft yet and returns None."""
        try:
            return await self.request(
                "GET", f"/api/magic-links/{token}/scope-sheet/draft", "Failed to load saved progress"
            )
        except ApiError as e:
            if e.is_not_found:
                return None
            raise

    async def save_scope_sheet_draft(self, token: str, payload: dict) -> Any:
        return await self.request(
            "POST", f"/api/magic-links/{token}/scope-sheet/draft", "Failed to save progress", json=payload
        )

    async def submit_scope_sheet(self, token: str, payload: dict) -> Any:
        return await self.request(
            "POST", f"/api/magic-links/{token}/scope-sheet", "Failed to submit scope sheet", json=payload
        )
