"""
Tests for the audit analysis engine.

Verifies that AuditAnalysisEngine:
- Runs generate -> compare -> read report in order
- Takes its terminal state from the report status
- Falls back to a fixed message when the server gives none
- Shows "no data" instead of raising on malformed comparison data
"""

import asyncio
import json

import pytest

from conftest import envelope, failure
from src.claim.audit import (
    ANALYSIS_FALLBACK_ERROR,
    ANALYSIS_PHASES,
    AuditAnalysisEngine,
    AuditPhase,
    AuditView,
    ProgressIndicator,
)
from src.claim.schema import ParsedComparison


CLAIM_PATH = "/api/claims/claim-1"
GENERATE_PATH = f"{CLAIM_PATH}/audit/generate"
COMPARE_PATH = f"{CLAIM_PATH}/audit/audit-1/compare"
REPORT_PATH = f"{CLAIM_PATH}/audit"

COMPARISON = json.dumps({
    "discrepancies": [
        {"item": "Drip edge", "industry_price": 400.0, "carrier_price": 250.0, "delta": 150.0},
    ],
    "summary": {"total_industry": 400.0, "total_carrier": 250.0, "total_delta": 150.0},
})


def report(status: str, comparison_data=None, error_message=None) -> dict:
    return {
        "id": "audit-1",
        "status": status,
        "comparison_data": comparison_data,
        "error_message": error_message,
    }


def script_audit(api, final_report: dict):
    api.on("POST", GENERATE_PATH, (200, envelope({"audit_report_id": "audit-1"})))
    api.on("POST", COMPARE_PATH, (200, envelope({"status": "completed"})))
    api.on("GET", REPORT_PATH, (200, envelope(final_report)))


@pytest.fixture
def engine(client):
    return AuditAnalysisEngine(client, "claim-1", progress_delays=(60,))


# ============================================================================
# Test: Run
# ============================================================================


class TestRun:

    @pytest.mark.asyncio
    async def test_successful_analysis(self, api, engine):
        script_audit(api, report("completed", COMPARISON))

        assert await engine.run() is True
        assert [(r.method, r.url.path) for r in api.requests] == [
            ("POST", GENERATE_PATH),
            ("POST", COMPARE_PATH),
            ("GET", REPORT_PATH),
        ]
        assert engine.phase == AuditPhase.COMPLETED
        assert engine.audit_report_id == "audit-1"
        assert engine.has_result
        assert engine.view == AuditView.RESULT
        comparison = engine.comparison()
        assert isinstance(comparison, ParsedComparison)
        assert comparison.data.summary.total_delta == 150.0

    @pytest.mark.asyncio
    async def test_failed_report_uses_server_message(self, api, engine):
        script_audit(api, report("failed", error_message="Carrier estimate has no line items"))

        assert await engine.run() is False
        assert engine.phase == AuditPhase.FAILED
        assert engine.error == "Carrier estimate has no line items"
        assert engine.view is None

    @pytest.mark.asyncio
    async def test_failed_report_without_message(self, api, engine):
        script_audit(api, report("failed"))
        await engine.run()
        assert engine.error == ANALYSIS_FALLBACK_ERROR

    @pytest.mark.asyncio
    async def test_non_terminal_report_counts_as_failure(self, api, engine):
        script_audit(api, report("processing"))
        assert await engine.run() is False
        assert engine.phase == AuditPhase.FAILED
        assert engine.error == ANALYSIS_FALLBACK_ERROR

    @pytest.mark.asyncio
    async def test_generate_error_stops_chain(self, api, engine):
        script_audit(api, report("completed", COMPARISON))
        api.on("POST", GENERATE_PATH, (500, failure("Carrier estimate not parsed")))

        assert await engine.run() is False
        assert engine.error == "Carrier estimate not parsed"
        assert api.calls("POST", COMPARE_PATH) == []

    @pytest.mark.asyncio
    async def test_missing_report_id(self, api, engine):
        script_audit(api, report("completed", COMPARISON))
        api.on("POST", GENERATE_PATH, (200, envelope({})))

        assert await engine.run() is False
        assert engine.error == ANALYSIS_FALLBACK_ERROR
        assert api.calls("POST", COMPARE_PATH) == []

    @pytest.mark.asyncio
    async def test_retry_runs_both_calls_again(self, api, engine):
        script_audit(api, report("completed", COMPARISON))
        api.on("POST", COMPARE_PATH, (500, failure("Timeout")), (200, envelope({})))

        assert await engine.run() is False
        assert await engine.retry() is True
        assert len(api.calls("POST", GENERATE_PATH)) == 2
        assert len(api.calls("POST", COMPARE_PATH)) == 2
        assert engine.error is None


# ============================================================================
# Test: Malformed Comparison Data
# ============================================================================


class TestNoData:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("data", ["{broken", '{"discrepancies": "nope"}'])
    async def test_malformed_comparison_shows_no_data(self, api, engine, data):
        script_audit(api, report("completed", data))

        assert await engine.run() is True
        assert engine.phase == AuditPhase.COMPLETED
        assert engine.view == AuditView.NO_DATA

    @pytest.mark.asyncio
    async def test_completed_without_comparison_has_no_result(self, api, engine):
        script_audit(api, report("completed"))
        await engine.run()
        assert engine.view == AuditView.NO_DATA
        assert not engine.has_result


# ============================================================================
# Test: Progress Indicator
# ============================================================================


class TestProgressIndicator:

    @pytest.mark.asyncio
    async def test_advances_through_all_phases(self):
        indicator = ProgressIndicator((0.01, 0.02, 0.03, 0.04))
        indicator.start()
        assert indicator.label == ANALYSIS_PHASES[0]

        for _ in range(100):
            if not indicator.running:
                break
            await asyncio.sleep(0.01)

        assert indicator.completed_phases == 4
        assert indicator.label == ANALYSIS_PHASES[-1]

    @pytest.mark.asyncio
    async def test_stops_when_run_finishes(self, api, engine):
        script_audit(api, report("completed", COMPARISON))
        await engine.run()
        assert not engine.progress.running
        assert engine.progress.completed_phases == 0


# ============================================================================
# Test: Restore
# ============================================================================


class TestRestore:

    @pytest.mark.asyncio
    async def test_restores_completed_report(self, api, engine):
        api.on("GET", REPORT_PATH, (200, envelope(report("completed", COMPARISON))))
        await engine.restore()
        assert engine.phase == AuditPhase.COMPLETED
        assert engine.has_result
        assert api.calls("POST") == []

    @pytest.mark.asyncio
    async def test_ignores_unfinished_report(self, api, engine):
        api.on("GET", REPORT_PATH, (200, envelope(report("processing"))))
        await engine.restore()
        assert engine.phase == AuditPhase.IDLE

    @pytest.mark.asyncio
    async def test_no_report_yet(self, api, engine):
        api.on("GET", REPORT_PATH, (404, failure("Audit report not found")))
        await engine.restore()
        assert engine.phase == AuditPhase.IDLE
        assert engine.report is None
