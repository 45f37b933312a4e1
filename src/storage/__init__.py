"""
Storage module for the contractor side of a claim.

Provides SQLite-based storage for:
- Contractor access links (issue, validate, complete)
- Resumable scope sheet drafts (revision-guarded)
- Final scope sheet submissions
"""

from .scope_sheet_store import (
    ScopeSheetStore,
    StoredMagicLink,
    StoredScopeSheet,
    get_scope_sheet_store,
)

__all__ = [
    "ScopeSheetStore",
    "StoredMagicLink",
    "StoredScopeSheet",
    "get_scope_sheet_store",
]
