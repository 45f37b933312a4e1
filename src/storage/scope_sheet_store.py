"""
SQLite-based contractor link and scope sheet storage.

Stores contractor access links, the single resumable draft per link and
the final scope-sheet submission in a local SQLite database.
No external database setup required - just works.
"""

import json
import logging
import secrets
import sqlite3
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from pathlib import Path
from typing import Optional

from ..utils.config import settings
from ..utils.errors import AlreadySubmittedError, StaleRevisionError

logger = logging.getLogger(__name__)


@dataclass
class StoredMagicLink:
    """A contractor access link as stored in the database."""
    token: str
    claim_id: str
    contractor_name: str
    contractor_email: str
    status: str  # active, completed
    created_at: str
    expires_at: str

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "claim_id": self.claim_id,
            "contractor_name": self.contractor_name,
            "contractor_email": self.contractor_email,
            "status": self.status,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
        }


@dataclass
class StoredScopeSheet:
    """A scope sheet draft or final submission."""
    id: str
    claim_id: str
    token: str
    is_draft: bool
    areas: list
    triage_selections: list
    general_notes: Optional[str]
    draft_step: Optional[int]
    revision: int
    created_at: str
    updated_at: str
    submitted_at: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "claim_id": self.claim_id,
            "areas": self.areas,
            "triage_selections": self.triage_selections,
            "general_notes": self.general_notes,
            "is_draft": self.is_draft,
            "draft_step": self.draft_step,
            "revision": self.revision,
            "submitted_at": self.submitted_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ScopeSheetStore:
    """
    SQLite-based storage for contractor links and scope sheets.

    Usage:
        store = ScopeSheetStore()

        # Issue a link for a claim
        link = store.issue_link("claim-1", "Bob", "bob@example.com")

        # Save progress
        store.save_draft(link.token, {"areas": [], "draft_step": 2, "revision": 1})

        # Final submission
        store.submit(link.token, {"areas": [...], "triage_selections": [...]})
    """

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize the scope sheet store."""
        self.db_path = Path(db_path or settings.scope_sheet_db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        """Create tables if they don't exist."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS magic_links (
                    token TEXT PRIMARY KEY,
                    claim_id TEXT NOT NULL,
                    contractor_name TEXT NOT NULL,
                    contractor_email TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'active',
                    created_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS scope_sheets (
                    id TEXT PRIMARY KEY,
                    claim_id TEXT NOT NULL,
                    token TEXT NOT NULL,
                    is_draft INTEGER NOT NULL,

                    -- Scope data (JSON)
                    areas TEXT NOT NULL DEFAULT '[]',
                    triage_selections TEXT NOT NULL DEFAULT '[]',
                    general_notes TEXT,

                    draft_step INTEGER,
                    revision INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    submitted_at TEXT,

                    UNIQUE (token, is_draft)
                )
            """)

            conn.execute("CREATE INDEX IF NOT EXISTS idx_links_claim ON magic_links(claim_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_sheets_claim ON scope_sheets(claim_id)")

            conn.commit()

    @contextmanager
    def _get_connection(self):
        """Get a database connection."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    # =========================================================================
    # Magic links
    # =========================================================================

    def issue_link(
        self,
        claim_id: str,
        contractor_name: str,
        contractor_email: str,
        ttl_days: Optional[int] = None,
    ) -> StoredMagicLink:
        """
        Create a contractor access link.

        Args:
            claim_id: Claim the contractor works on
            contractor_name: Contractor display name
            contractor_email: Where the link is sent
            ttl_days: Validity window (defaults to settings.magic_link_ttl_days)

        Returns:
            The stored link
        """
        created = _now()
        ttl = ttl_days if ttl_days is not None else settings.magic_link_ttl_days
        link = StoredMagicLink(
            token=secrets.token_urlsafe(32),
            claim_id=claim_id,
            contractor_name=contractor_name,
            contractor_email=contractor_email,
            status="active",
            created_at=created.isoformat(),
            expires_at=(created + timedelta(days=ttl)).isoformat(),
        )

        with self._get_connection() as conn:
            conn.execute("""
                INSERT INTO magic_links (
                    token, claim_id, contractor_name, contractor_email,
                    status, created_at, expires_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                link.token,
                link.claim_id,
                link.contractor_name,
                link.contractor_email,
                link.status,
                link.created_at,
                link.expires_at,
            ))
            conn.commit()

        logger.info(f"Issued contractor link for claim {claim_id} (expires {link.expires_at})")
        return link

    def get_link(self, token: str) -> Optional[StoredMagicLink]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM magic_links WHERE token = ?",
                (token,)
            ).fetchone()
            if row:
                return StoredMagicLink(**dict(row))
        return None

    def validate_link(self, token: str, now: Optional[datetime] = None) -> dict:
        """
        Check whether a link can still be used.

        Returns:
            ``{"valid": True, ...link fields}`` or ``{"valid": False, "reason": ...}``
            with reason one of expired, not_found, completed
        """
        link = self.get_link(token)
        if link is None:
            return {"valid": False, "reason": "not_found"}
        if link.status == "completed":
            return {"valid": False, "reason": "completed"}
        if datetime.fromisoformat(link.expires_at) <= (now or _now()):
            return {"valid": False, "reason": "expired"}
        return {
            "valid": True,
            "claim_id": link.claim_id,
            "contractor_name": link.contractor_name,
            "expires_at": link.expires_at,
        }

    def list_links(self, claim_id: Optional[str] = None, limit: int = 100) -> list[StoredMagicLink]:
        query = "SELECT * FROM magic_links WHERE 1=1"
        params = []

        if claim_id:
            query += " AND claim_id = ?"
            params.append(claim_id)

        query += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
            return [StoredMagicLink(**dict(row)) for row in rows]

    # =========================================================================
    # Scope sheets
    # =========================================================================

    def get_draft(self, token: str) -> Optional[StoredScopeSheet]:
        return self._get_sheet(token, is_draft=True)

    def get_submission(self, token: str) -> Optional[StoredScopeSheet]:
        return self._get_sheet(token, is_draft=False)

    def save_draft(self, token: str, payload: dict) -> StoredScopeSheet:
        """
        Insert or replace the link's draft.

        Raises:
            KeyError: unknown token
            AlreadySubmittedError: the final scope sheet exists
            StaleRevisionError: ``revision`` is not newer than the stored draft's
        """
        link = self.get_link(token)
        if link is None:
            raise KeyError(token)
        if self.get_submission(token) is not None:
            raise AlreadySubmittedError("Scope sheet already submitted")

        revision = int(payload.get("revision") or 0)
        now = _now().isoformat()

        with self._get_connection() as conn:
            # Check and write under one write lock so concurrent saves serialize
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                "SELECT id, revision, created_at FROM scope_sheets WHERE token = ? AND is_draft = 1",
                (token,)
            ).fetchone()

            if row and revision <= row["revision"]:
                conn.rollback()
                raise StaleRevisionError(revision, row["revision"])

            sheet_id = row["id"] if row else str(uuid.uuid4())
            created_at = row["created_at"] if row else now
            conn.execute("""
                INSERT OR REPLACE INTO scope_sheets (
                    id, claim_id, token, is_draft,
                    areas, triage_selections, general_notes,
                    draft_step, revision, created_at, updated_at
                ) VALUES (?, ?, ?, 1, ?, ?, ?, ?, ?, ?, ?)
            """, (
                sheet_id,
                link.claim_id,
                token,
                json.dumps(payload.get("areas") or []),
                json.dumps(payload.get("triage_selections") or []),
                payload.get("general_notes"),
                payload.get("draft_step"),
                revision,
                created_at,
                now,
            ))
            conn.commit()

        return self.get_draft(token)

    def submit(self, token: str, payload: dict) -> StoredScopeSheet:
        """
        Store the final scope sheet and mark the link completed.

        The draft is left in place.

        Raises:
            KeyError: unknown token
            AlreadySubmittedError: a submission already exists
        """
        link = self.get_link(token)
        if link is None:
            raise KeyError(token)

        now = _now().isoformat()
        with self._get_connection() as conn:
            try:
                conn.execute("""
                    INSERT INTO scope_sheets (
                        id, claim_id, token, is_draft,
                        areas, triage_selections, general_notes,
                        draft_step, revision, created_at, updated_at, submitted_at
                    ) VALUES (?, ?, ?, 0, ?, ?, ?, NULL, 0, ?, ?, ?)
                """, (
                    str(uuid.uuid4()),
                    link.claim_id,
                    token,
                    json.dumps(payload.get("areas") or []),
                    json.dumps(payload.get("triage_selections") or []),
                    payload.get("general_notes"),
                    now,
                    now,
                    now,
                ))
            except sqlite3.IntegrityError as e:
                raise AlreadySubmittedError("Scope sheet already submitted") from e
            conn.execute(
                "UPDATE magic_links SET status = 'completed' WHERE token = ?",
                (token,)
            )
            conn.commit()

        logger.info(f"Scope sheet submitted for claim {link.claim_id}")
        return self.get_submission(token)

    def list_sheets(
        self,
        claim_id: Optional[str] = None,
        is_draft: Optional[bool] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[StoredScopeSheet]:
        """
        List scope sheets with optional filtering.

        Args:
            claim_id: Filter by claim
            is_draft: Only drafts (True) or only submissions (False)
            limit: Max results
            offset: Pagination offset
        """
        query = "SELECT * FROM scope_sheets WHERE 1=1"
        params = []

        if claim_id:
            query += " AND claim_id = ?"
            params.append(claim_id)

        if is_draft is not None:
            query += " AND is_draft = ?"
            params.append(1 if is_draft else 0)

        query += " ORDER BY updated_at DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
            return [self._row_to_sheet(row) for row in rows]

    def _get_sheet(self, token: str, is_draft: bool) -> Optional[StoredScopeSheet]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM scope_sheets WHERE token = ? AND is_draft = ?",
                (token, 1 if is_draft else 0)
            ).fetchone()
            if row:
                return self._row_to_sheet(row)
        return None

    def _row_to_sheet(self, row: sqlite3.Row) -> StoredScopeSheet:
        """Convert a database row to StoredScopeSheet."""
        return StoredScopeSheet(
            id=row["id"],
            claim_id=row["claim_id"],
            token=row["token"],
            is_draft=bool(row["is_draft"]),
            areas=json.loads(row["areas"]),
            triage_selections=json.loads(row["triage_selections"]),
            general_notes=row["general_notes"],
            draft_step=row["draft_step"],
            revision=row["revision"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            submitted_at=row["submitted_at"],
        )


# =============================================================================
# Convenience Functions
# =============================================================================

@lru_cache
def get_scope_sheet_store() -> ScopeSheetStore:
    """Get the default scope sheet store (singleton)."""
    return ScopeSheetStore()
