"""
Audit analysis: generate -> compare against the parsed carrier estimate.

The four-phase progress indicator is cosmetic. It advances on a fixed
timer while the two requests run and says nothing about how far the
server actually got; the terminal state always comes from the report's
``status`` once both calls have returned.
"""

import asyncio
import logging
from enum import Enum
from typing import Optional, Sequence

from ..client.api import ClaimApiClient
from ..utils.config import get_settings
from ..utils.errors import ApiError
from .schema import AuditReport, AuditStatus, ComparisonResult, ParsedComparison

logger = logging.getLogger(__name__)

ANALYSIS_FALLBACK_ERROR = "Analysis failed. Please try again."

ANALYSIS_PHASES = (
    "Reading carrier estimate",
    "Comparing against your scope",
    "Identifying pricing gaps",
    "Determining strategy",
)


class AuditPhase(str, Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    FAILED = "failed"


class AuditView(str, Enum):
    """What the result area shows once an analysis has finished."""
    RESULT = "result"
    NO_DATA = "no_data"


class ProgressIndicator:
    """Timer-driven phase counter shown while an analysis runs."""

    def __init__(self, delays: Sequence[float]):
        self.delays = tuple(delays)
        self.completed_phases = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def label(self) -> str:
        return ANALYSIS_PHASES[min(self.completed_phases, len(ANALYSIS_PHASES) - 1)]

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self.stop()
        self.completed_phases = 0
        self._task = asyncio.create_task(self._run())

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()
        for delay in self.delays:
            await asyncio.sleep(max(0.0, delay - (loop.time() - started)))
            self.completed_phases = min(self.completed_phases + 1, len(ANALYSIS_PHASES))


class AuditAnalysisEngine:
    """
    Runs and tracks the audit for one claim.

    Usage:
        engine = AuditAnalysisEngine(client, claim_id)
        if await engine.run():
            result = engine.comparison()
    """

    def __init__(
        self,
        client: ClaimApiClient,
        claim_id: str,
        progress_delays: Optional[Sequence[float]] = None,
    ):
        self.client = client
        self.claim_id = claim_id
        delays = progress_delays if progress_delays is not None else get_settings().audit_progress_delays
        self.progress = ProgressIndicator(delays)

        self.phase = AuditPhase.IDLE
        self.audit_report_id: Optional[str] = None
        self.report: Optional[AuditReport] = None
        self.error: Optional[str] = None
        self._closed = False

    @property
    def has_result(self) -> bool:
        return self.report is not None and self.report.has_result

    @property
    def is_running(self) -> bool:
        return self.phase == AuditPhase.ANALYZING

    def comparison(self) -> Optional[ComparisonResult]:
        """Decoded comparison of the current report, if there is one."""
        if self.report is None:
            return None
        return self.report.comparison()

    @property
    def view(self) -> Optional[AuditView]:
        if self.phase != AuditPhase.COMPLETED:
            return None
        if isinstance(self.comparison(), ParsedComparison):
            return AuditView.RESULT
        return AuditView.NO_DATA

    async def run(self) -> bool:
        """
        Generate and compare, then read the terminal state.

        Returns:
            True if the report finished with status ``completed``
        """
        if self.phase == AuditPhase.ANALYZING:
            logger.warning(f"Audit for claim {self.claim_id} already running")
            return False

        self.phase = AuditPhase.ANALYZING
        self.error = None
        self.report = None
        self.progress.start()

        try:
            generated = await self.client.generate_audit(self.claim_id)
            report_id = (generated or {}).get("audit_report_id")
            if not report_id:
                raise ApiError(ANALYSIS_FALLBACK_ERROR)
            self.audit_report_id = report_id
            await self.client.compare_audit(self.claim_id, report_id)
            data = await self.client.get_audit_report(self.claim_id)
        except ApiError as e:
            if self._closed:
                return False
            logger.error(f"Audit for claim {self.claim_id} failed: {e.message}")
            self._fail(e.message)
            return False
        finally:
            self.progress.stop()

        if self._closed:
            return False
        if data is None:
            self._fail(ANALYSIS_FALLBACK_ERROR)
            return False
        return self._apply_report(AuditReport.model_validate(data))

    async def retry(self) -> bool:
        """Re-run both calls after a failure."""
        return await self.run()

    async def restore(self) -> None:
        """Show a report finished in an earlier session without re-running it."""
        try:
            data = await self.client.get_audit_report(self.claim_id)
        except ApiError as e:
            logger.warning(f"Could not load audit report for claim {self.claim_id}: {e.message}")
            return
        if self._closed or data is None:
            return

        report = AuditReport.model_validate(data)
        if report.status == AuditStatus.COMPLETED:
            self.audit_report_id = report.id
            self.report = report
            self.phase = AuditPhase.COMPLETED

    async def close(self) -> None:
        self._closed = True
        self.progress.stop()

    def _apply_report(self, report: AuditReport) -> bool:
        self.report = report
        self.audit_report_id = report.id

        if report.status == AuditStatus.COMPLETED:
            self.phase = AuditPhase.COMPLETED
            logger.info(f"Audit report {report.id} completed")
            return True

        if report.status == AuditStatus.FAILED:
            self._fail(report.error_message or ANALYSIS_FALLBACK_ERROR)
        else:
            # Compare returned but the report never reached a terminal status
            self._fail(ANALYSIS_FALLBACK_ERROR)
        return False

    def _fail(self, message: str) -> None:
        self.phase = AuditPhase.FAILED
        self.error = message
