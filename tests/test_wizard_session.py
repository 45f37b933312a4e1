"""
Tests for the resumable contractor wizard session.

Verifies that ResumableWizard:
- Resumes from a saved draft, or starts fresh when there is none
- Saves a draft with a rising revision after every transition
- Keeps going when a draft save fails
- Submits once, and only from review
"""

import asyncio

import pytest

from conftest import envelope, failure
from src.claim.schema import TokenInvalidReason
from src.utils.errors import InvalidTransitionError, SubmissionInProgressError
from src.wizard.schema import Review, ScopeArea, Tour, Triage, Welcome
from src.wizard.session import ResumableWizard, token_error_message


TOKEN = "tok-1"
DRAFT_PATH = f"/api/magic-links/{TOKEN}/scope-sheet/draft"
SUBMIT_PATH = f"/api/magic-links/{TOKEN}/scope-sheet"
VALIDATE_PATH = f"/api/magic-links/{TOKEN}/validate"


def review_draft(revision: int = 5) -> dict:
    return {
        "draft_step": 99,
        "triage_selections": ["roof"],
        "areas": [ScopeArea.empty("roof", 0).model_dump()],
        "general_notes": "",
        "revision": revision,
    }


@pytest.fixture
def wizard(client):
    return ResumableWizard(client, TOKEN)


# ============================================================================
# Test: Loading
# ============================================================================


class TestLoad:

    @pytest.mark.asyncio
    async def test_no_draft_starts_at_welcome(self, api, wizard):
        api.on("GET", DRAFT_PATH, (404, failure("No draft found")))
        state = await wizard.load()
        assert state.phase == Welcome()
        assert wizard.revision == 0
        assert wizard.error is None

    @pytest.mark.asyncio
    async def test_resumes_draft(self, api, wizard):
        api.on("GET", DRAFT_PATH, (200, envelope(review_draft(revision=5))))
        state = await wizard.load()
        assert state.phase == Review()
        assert wizard.revision == 5
        assert [a.category_key for a in state.areas] == ["roof"]

    @pytest.mark.asyncio
    async def test_load_failure(self, api, wizard):
        api.on("GET", DRAFT_PATH, (500, failure("Database unavailable")))
        state = await wizard.load()
        assert state.phase == Welcome()
        assert wizard.error == "Failed to load saved progress"


# ============================================================================
# Test: Draft Saves
# ============================================================================


class TestDraftSaves:

    @pytest.mark.asyncio
    async def test_each_transition_saves_with_next_revision(self, api, wizard):
        api.on("GET", DRAFT_PATH, (404, failure("No draft found")))
        api.on("POST", DRAFT_PATH, (200, envelope({"revision": 1})))
        await wizard.load()

        wizard.start()
        wizard.set_selections(["roof", "exterior_walls"])
        wizard.start_tour()
        await wizard.flush()

        bodies = [api.body(r) for r in api.calls("POST", DRAFT_PATH)]
        assert [b["revision"] for b in bodies] == [1, 2, 3]
        assert [b["draft_step"] for b in bodies] == [2, 2, 10]
        assert bodies[-1]["triage_selections"] == ["roof", "exterior_walls"]
        assert len(bodies[-1]["areas"]) == 2

    @pytest.mark.asyncio
    async def test_revision_continues_from_draft(self, api, wizard):
        api.on("GET", DRAFT_PATH, (200, envelope(review_draft(revision=5))))
        api.on("POST", DRAFT_PATH, (200, envelope({})))
        await wizard.load()

        wizard.go_back()
        await wizard.flush()
        body = api.body(api.calls("POST", DRAFT_PATH)[0])
        assert body["revision"] == 6
        assert body["draft_step"] == 10

    @pytest.mark.asyncio
    async def test_save_failure_does_not_block(self, api, wizard):
        api.on("POST", DRAFT_PATH, (500, failure("Failed to save progress")))

        wizard.start()
        wizard.toggle_selection("roof")
        wizard.start_tour()
        await wizard.flush()

        assert wizard.state.phase == Tour(index=0)
        assert wizard.error is None
        assert not wizard.saving

    @pytest.mark.asyncio
    async def test_stale_revision_conflict_is_ignored(self, api, wizard):
        api.on("POST", DRAFT_PATH, (409, failure("Stale draft revision")))
        wizard.start()
        await wizard.flush()
        assert wizard.state.phase == Triage()
        assert wizard.error is None

    @pytest.mark.asyncio
    async def test_editor_changes_reach_draft_on_next(self, api, wizard):
        api.on("POST", DRAFT_PATH, (200, envelope({})))
        wizard.start()
        wizard.set_selections(["roof"])
        wizard.start_tour()

        editor = wizard.edit_current_area()
        editor.toggle_tag("Shingles_Damaged")
        assert wizard.state.current_area.tags == []

        wizard.next_area(editor.result())
        await wizard.flush()
        body = api.body(api.calls("POST", DRAFT_PATH)[-1])
        assert body["draft_step"] == 99
        assert body["areas"][0]["tags"] == ["Shingles_Damaged"]

    @pytest.mark.asyncio
    async def test_back_discards_editor_changes(self, api, wizard):
        api.on("POST", DRAFT_PATH, (200, envelope({})))
        wizard.start()
        wizard.set_selections(["roof", "exterior_walls"])
        wizard.start_tour()
        wizard.next_area(wizard.state.current_area)

        editor = wizard.edit_current_area()
        editor.set_notes("unsaved")
        wizard.go_back()
        assert wizard.state.areas[1].notes == ""
        await wizard.aclose()

    @pytest.mark.asyncio
    async def test_no_saves_after_close(self, api, wizard):
        api.on("POST", DRAFT_PATH, (200, envelope({})))
        await wizard.aclose()
        wizard.start()
        await wizard.flush()
        assert api.calls("POST", DRAFT_PATH) == []

    @pytest.mark.asyncio
    async def test_close_waits_for_pending_saves(self, api, wizard):
        api.on("POST", DRAFT_PATH, (200, envelope({})))
        wizard.start()
        assert wizard.saving
        await wizard.aclose()
        assert not wizard.saving
        assert len(api.calls("POST", DRAFT_PATH)) == 1


# ============================================================================
# Test: Submission
# ============================================================================


class TestSubmit:

    @pytest.mark.asyncio
    async def test_submit_from_review(self, api, wizard):
        api.on("GET", DRAFT_PATH, (200, envelope(review_draft())))
        api.on("POST", SUBMIT_PATH, (201, envelope({"id": "sheet-1"})))
        await wizard.load()

        assert await wizard.submit() is True
        body = api.body(api.calls("POST", SUBMIT_PATH)[0])
        assert body["triage_selections"] == ["roof"]
        assert "draft_step" not in body
        assert "revision" not in body

    @pytest.mark.asyncio
    async def test_only_from_review(self, wizard):
        with pytest.raises(InvalidTransitionError):
            await wizard.submit()

    @pytest.mark.asyncio
    async def test_second_submit_raises(self, api, wizard):
        api.on("GET", DRAFT_PATH, (200, envelope(review_draft())))
        api.on("POST", SUBMIT_PATH, (201, envelope({"id": "sheet-1"})))
        await wizard.load()
        await wizard.submit()

        with pytest.raises(SubmissionInProgressError):
            await wizard.submit()
        assert len(api.calls("POST", SUBMIT_PATH)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_submit_sends_once(self, api, wizard):
        api.on("GET", DRAFT_PATH, (200, envelope(review_draft())))
        api.on("POST", SUBMIT_PATH, (201, envelope({"id": "sheet-1"})))
        await wizard.load()

        results = await asyncio.gather(wizard.submit(), wizard.submit(), return_exceptions=True)
        assert results.count(True) == 1
        assert sum(isinstance(r, SubmissionInProgressError) for r in results) == 1
        assert len(api.calls("POST", SUBMIT_PATH)) == 1

    @pytest.mark.asyncio
    async def test_failure_allows_retry(self, api, wizard):
        api.on("GET", DRAFT_PATH, (200, envelope(review_draft())))
        api.on(
            "POST", SUBMIT_PATH,
            (500, failure("Failed to submit scope sheet")),
            (201, envelope({"id": "sheet-1"})),
        )
        await wizard.load()

        assert await wizard.submit() is False
        assert wizard.error == "Failed to submit scope sheet"
        assert await wizard.submit() is True
        assert wizard.error is None

    @pytest.mark.asyncio
    async def test_no_draft_saves_after_submit(self, api, wizard):
        api.on("GET", DRAFT_PATH, (200, envelope(review_draft())))
        api.on("POST", SUBMIT_PATH, (201, envelope({"id": "sheet-1"})))
        api.on("POST", DRAFT_PATH, (200, envelope({})))
        await wizard.load()
        await wizard.submit()

        wizard.set_general_notes("late note")
        await wizard.flush()
        assert api.calls("POST", DRAFT_PATH) == []


# ============================================================================
# Test: Token Validation
# ============================================================================


class TestTokenValidation:

    @pytest.mark.asyncio
    async def test_valid(self, api, wizard):
        api.on("GET", VALIDATE_PATH, (200, envelope({"valid": True, "contractor_name": "Bob"})))
        validation = await wizard.validate_token()
        assert validation.valid
        assert wizard.error is None

    @pytest.mark.asyncio
    async def test_expired(self, api, wizard):
        api.on("GET", VALIDATE_PATH, (200, envelope({"valid": False, "reason": "expired"})))
        validation = await wizard.validate_token()
        assert not validation.valid
        assert "expired" in wizard.error

    @pytest.mark.parametrize("reason, fragment", [
        (TokenInvalidReason.EXPIRED, "has expired"),
        (TokenInvalidReason.NOT_FOUND, "is invalid"),
        (TokenInvalidReason.COMPLETED, "already been used"),
        (None, "no longer valid"),
    ])
    def test_messages(self, reason, fragment):
        assert fragment in token_error_message(reason)
