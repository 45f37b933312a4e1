"""
FastAPI application for the contractor side of a claim.

Provides:
- Contractor access link issue and validation
- Resumable scope sheet draft load/save (revision-guarded)
- Final scope sheet submission
- Health check endpoint

Responses use the ``{"success": true, "data": ...}`` envelope, and
failures ``{"success": false, "error": "..."}``.
"""

# Configure logging before the HTTP libraries are imported
import logging

logging.getLogger("python_multipart").setLevel(logging.WARNING)
logging.getLogger("python_multipart.multipart").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)

from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..claim.schema import TokenInvalidReason
from ..storage import ScopeSheetStore, get_scope_sheet_store
from ..utils.config import settings
from ..utils.errors import AlreadySubmittedError, StaleRevisionError
from ..wizard.schema import ScopeArea
from ..wizard.session import token_error_message

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# =============================================================================
# Request bodies
# =============================================================================


class MagicLinkRequest(BaseModel):
    contractor_name: str = Field(min_length=1)
    contractor_email: str = Field(min_length=3, pattern=r".+@.+")


class ScopeSheetRequest(BaseModel):
    areas: list[ScopeArea] = Field(default_factory=list)
    triage_selections: list[str] = Field(default_factory=list)
    general_notes: Optional[str] = None

    def to_payload(self) -> dict:
        return {
            "areas": [a.model_dump() for a in self.areas],
            "triage_selections": self.triage_selections,
            "general_notes": self.general_notes,
        }


class DraftRequest(ScopeSheetRequest):
    draft_step: Optional[int] = None
    revision: int = Field(ge=1, description="Monotonic per-session write counter")

    def to_payload(self) -> dict:
        return {
            **super().to_payload(),
            "draft_step": self.draft_step,
            "revision": self.revision,
        }


# =============================================================================
# Envelope helpers
# =============================================================================


def ok(data: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": True, "data": data})


def fail(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


def _link_error(store: ScopeSheetStore, token: str) -> Optional[JSONResponse]:
    """Error response for a link that cannot be used, or None if it is fine."""
    result = store.validate_link(token)
    if result["valid"]:
        return None
    reason = TokenInvalidReason(result["reason"])
    status_code = 404 if reason == TokenInvalidReason.NOT_FOUND else 403
    return fail(status_code, token_error_message(reason))


# =============================================================================
# App
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting scope sheet server...")
    logger.info(f"Database: {settings.scope_sheet_db_path}")
    yield
    logger.info("Shutting down scope sheet server...")


app = FastAPI(
    title="Claim Scope Sheet Service",
    description="Contractor access links and resumable scope sheets",
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Rejected {request.method} {request.url.path}: {len(exc.errors())} validation error(s)")
    return fail(422, "Invalid request")


# =============================================================================
# Health Check Endpoints
# =============================================================================


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "scope-sheet"}


# =============================================================================
# Contractor Link Endpoints
# =============================================================================


@app.post("/api/claims/{claim_id}/magic-link")
async def issue_magic_link(
    claim_id: str,
    body: MagicLinkRequest,
    store: ScopeSheetStore = Depends(get_scope_sheet_store),
):
    """Issue a contractor access link valid for the configured window."""
    link = store.issue_link(claim_id, body.contractor_name.strip(), body.contractor_email.strip())
    return ok({"token": link.token, "expires_at": link.expires_at}, status_code=201)


@app.get("/api/magic-links/{token}/validate")
async def validate_magic_link(
    token: str,
    store: ScopeSheetStore = Depends(get_scope_sheet_store),
):
    """Report whether a link can still be used, and why not."""
    return ok(store.validate_link(token))


# =============================================================================
# Scope Sheet Endpoints
# =============================================================================


@app.get("/api/magic-links/{token}/scope-sheet/draft")
async def get_scope_sheet_draft(
    token: str,
    store: ScopeSheetStore = Depends(get_scope_sheet_store),
):
    """Saved draft for a link; 404 when nothing has been saved yet."""
    error = _link_error(store, token)
    if error:
        return error

    draft = store.get_draft(token)
    if draft is None:
        return fail(404, "No draft found")
    return ok(draft.to_dict())


@app.post("/api/magic-links/{token}/scope-sheet/draft")
async def save_scope_sheet_draft(
    token: str,
    body: DraftRequest,
    store: ScopeSheetStore = Depends(get_scope_sheet_store),
):
    """Save progress. Writes older than the stored revision are rejected with 409."""
    error = _link_error(store, token)
    if error:
        return error

    try:
        draft = store.save_draft(token, body.to_payload())
    except StaleRevisionError as e:
        logger.info(f"Stale draft write for link: revision {e.revision} <= {e.stored_revision}")
        return fail(409, "A newer draft has already been saved")
    except AlreadySubmittedError:
        return fail(409, "Scope sheet already submitted")
    return ok(draft.to_dict())


@app.post("/api/magic-links/{token}/scope-sheet")
async def submit_scope_sheet(
    token: str,
    body: ScopeSheetRequest,
    store: ScopeSheetStore = Depends(get_scope_sheet_store),
):
    """Final submission. The link is marked completed and cannot submit again."""
    result = store.validate_link(token)
    if not result["valid"] and result["reason"] == TokenInvalidReason.COMPLETED.value:
        return fail(409, "Scope sheet already submitted")
    error = _link_error(store, token)
    if error:
        return error

    try:
        sheet = store.submit(token, body.to_payload())
    except AlreadySubmittedError:
        return fail(409, "Scope sheet already submitted")
    return ok(sheet.to_dict(), status_code=201)


# =============================================================================
# Main Entry Point
# =============================================================================


def main():
    """Run the FastAPI server."""
    import uvicorn

    uvicorn.run(
        "src.server.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info",
    )


if __name__ == "__main__":
    main()
