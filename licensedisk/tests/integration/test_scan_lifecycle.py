"""
Integration tests for the scan lifecycle controller.

Drives the controller against the SQLite repository, with mocks for
failing collaborators.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from licensedisk.application.duplicate_detector import DuplicateDetector
from licensedisk.application.scan_lifecycle import (
    FAILURE_MESSAGES,
    ScanFailureKind,
    ScanLifecycleController,
    ScanListener,
    ScanState,
)
from licensedisk.core.security import Operator
from licensedisk.domain.models import CaptureMethod, RawScanInput, ScanQuality
from licensedisk.infrastructure.db.repository import RepositoryError, SqlScanRepository

BUSINESS_ID = "biz-001"
BARCODE = "GP|ABC123GP|2024-12|MOTOR VEHICLE|JOHN DOE|7901010001088"


class RecordingListener(ScanListener):
    """Listener that records callbacks and answers duplicate prompts."""

    def __init__(self, decision: bool | None = None):
        self.decision = decision
        self.duplicates = []
        self.saved = []
        self.failed = []
        self.statistics = []

    async def on_duplicates(self, record, duplicates):
        self.duplicates.append(duplicates)
        return self.decision

    async def on_scan_saved(self, scan):
        self.saved.append(scan)

    async def on_scan_failed(self, outcome):
        self.failed.append(outcome)

    async def on_statistics(self, statistics):
        self.statistics.append(statistics)


async def wait_for_state(controller: ScanLifecycleController, state: ScanState) -> None:
    """Yield to the event loop until the controller reaches state."""

    async def _poll():
        while controller.state != state:
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout=5)


async def count_scans(repository: SqlScanRepository, license_number: str = "ABC123GP") -> int:
    return len(await repository.find_scans_by_license(license_number, BUSINESS_ID))


class TestSuccessfulScan:
    """Tests for the happy path."""

    @pytest.mark.asyncio
    async def test_barcode_scan_is_saved(self, repository: SqlScanRepository, operator: Operator):
        listener = RecordingListener()
        controller = ScanLifecycleController(repository, operator, listener=listener)

        controller.activate()
        outcome = await controller.on_payload(BARCODE)

        assert outcome.succeeded
        assert outcome.failure is None
        assert outcome.scan.license_number == "ABC123GP"
        assert outcome.scan.province == "Gauteng"
        assert outcome.scan.owner_name == "JOHN DOE"
        assert outcome.scan.scanned_by == "user-001"
        assert outcome.scan.scanned_by_email == "guard@example.com"
        assert outcome.scan.scan_quality == ScanQuality.GOOD
        assert outcome.scan.business_id == BUSINESS_ID
        assert controller.state == ScanState.DONE
        assert controller.history == [
            ScanState.IDLE,
            ScanState.CAPTURING,
            ScanState.PARSING,
            ScanState.AWAITING_DUPLICATE_DECISION,
            ScanState.PERSISTING,
            ScanState.DONE,
        ]

    @pytest.mark.asyncio
    async def test_statistics_refreshed_and_listener_notified(
        self,
        repository: SqlScanRepository,
        operator: Operator,
    ):
        listener = RecordingListener()
        controller = ScanLifecycleController(repository, operator, listener=listener)

        outcome = await controller.on_payload(BARCODE)

        assert [s.id for s in listener.saved] == [outcome.scan.id]
        assert outcome.statistics.total_scans == 1
        assert listener.statistics == [outcome.statistics]
        assert listener.failed == []

    @pytest.mark.asyncio
    async def test_payload_while_idle_activates(self, repository: SqlScanRepository, operator: Operator):
        controller = ScanLifecycleController(repository, operator)

        assert controller.capture_active
        outcome = await controller.on_payload("random text\nXYZ456WC\nsome other line")

        assert outcome.scan.license_number == "XYZ456WC"
        assert controller.history[:2] == [ScanState.IDLE, ScanState.CAPTURING]

    @pytest.mark.asyncio
    async def test_ocr_capture_method_recorded(self, repository: SqlScanRepository, operator: Operator):
        controller = ScanLifecycleController(repository, operator)

        outcome = await controller.on_payload(
            RawScanInput(payload="XYZ456WC\nEXP 2025-01-31", capture_method=CaptureMethod.OCR_IMAGE)
        )

        assert outcome.scan.capture_method == CaptureMethod.OCR_IMAGE
        assert outcome.scan.scan_quality == ScanQuality.FAIR
        assert outcome.scan.expiry_date == "2025-01-31"

    @pytest.mark.asyncio
    async def test_next_scan_after_done(self, repository: SqlScanRepository, operator: Operator):
        controller = ScanLifecycleController(repository, operator)
        await controller.on_payload(BARCODE)

        assert await controller.on_payload("GP|DEF789GP|2025-01|MV") is None

        assert controller.activate()
        outcome = await controller.on_payload("GP|DEF789GP|2025-01|MV")

        assert outcome.scan.license_number == "DEF789GP"

    @pytest.mark.asyncio
    async def test_statistics_failure_does_not_fail_scan(
        self,
        repository: SqlScanRepository,
        operator: Operator,
    ):
        repository.get_scan_statistics = AsyncMock(side_effect=RepositoryError("database_error", "down"))
        controller = ScanLifecycleController(repository, operator)

        outcome = await controller.on_payload(BARCODE)

        assert outcome.succeeded
        assert outcome.statistics is None
        assert controller.state == ScanState.DONE


class TestParseFailure:
    """Tests for unreadable payloads."""

    @pytest.mark.asyncio
    async def test_returns_to_capturing(self, repository: SqlScanRepository, operator: Operator):
        listener = RecordingListener()
        controller = ScanLifecycleController(repository, operator, listener=listener)

        outcome = await controller.on_payload("no license pattern here at all 12345")

        assert outcome.failure == ScanFailureKind.PARSE_FAILURE
        assert outcome.message == FAILURE_MESSAGES[ScanFailureKind.PARSE_FAILURE]
        assert outcome.scan is None
        assert controller.state == ScanState.CAPTURING
        assert controller.history[-2:] == [ScanState.FAILED, ScanState.CAPTURING]
        assert listener.failed == [outcome]

    @pytest.mark.asyncio
    async def test_retry_after_parse_failure(self, repository: SqlScanRepository, operator: Operator):
        controller = ScanLifecycleController(repository, operator)

        await controller.on_payload("")
        outcome = await controller.on_payload(BARCODE)

        assert outcome.succeeded


class TestDuplicateDecision:
    """Tests for the duplicate prompt."""

    @pytest.mark.asyncio
    async def test_scan_anyway_saves_second_scan(
        self,
        repository: SqlScanRepository,
        operator: Operator,
        save_scan,
    ):
        """Test one duplicate is reported and accepting it stores two scans."""
        existing = await save_scan("ABC123GP")
        controller = ScanLifecycleController(repository, operator)

        task = asyncio.create_task(controller.on_payload(BARCODE))
        await wait_for_state(controller, ScanState.AWAITING_DUPLICATE_DECISION)
        await asyncio.wait_for(self._until_prompt(controller), timeout=5)

        assert [m.scan_id for m in controller.pending_duplicates] == [existing.id]
        assert controller.resolve(True)

        outcome = await task

        assert outcome.succeeded
        assert [m.scan_id for m in outcome.duplicates] == [existing.id]
        assert await count_scans(repository) == 2

    @pytest.mark.asyncio
    async def test_declined_saves_nothing(
        self,
        repository: SqlScanRepository,
        operator: Operator,
        save_scan,
    ):
        await save_scan("ABC123GP")
        listener = RecordingListener(decision=False)
        controller = ScanLifecycleController(repository, operator, listener=listener)

        outcome = await controller.on_payload(BARCODE)

        assert outcome.failure == ScanFailureKind.DUPLICATE_DECLINED
        assert outcome.message == FAILURE_MESSAGES[ScanFailureKind.DUPLICATE_DECLINED]
        assert len(outcome.duplicates) == 1
        assert controller.state == ScanState.CAPTURING
        assert ScanState.PERSISTING not in controller.history
        assert await count_scans(repository) == 1

    @pytest.mark.asyncio
    async def test_listener_can_accept(self, repository: SqlScanRepository, operator: Operator, save_scan):
        await save_scan("ABC123GP")
        listener = RecordingListener(decision=True)
        controller = ScanLifecycleController(repository, operator, listener=listener)

        outcome = await controller.on_payload(BARCODE)

        assert outcome.succeeded
        assert len(listener.duplicates) == 1
        assert await count_scans(repository) == 2

    @pytest.mark.asyncio
    async def test_no_prompt_without_duplicates(self, repository: SqlScanRepository, operator: Operator):
        listener = RecordingListener(decision=False)
        controller = ScanLifecycleController(repository, operator, listener=listener)

        outcome = await controller.on_payload(BARCODE)

        assert outcome.succeeded
        assert listener.duplicates == []

    @pytest.mark.asyncio
    async def test_resolve_without_prompt(self, repository: SqlScanRepository, operator: Operator):
        controller = ScanLifecycleController(repository, operator)

        assert controller.resolve(True) is False

    @pytest.mark.asyncio
    async def test_duplicate_check_error_proceeds(self, repository: SqlScanRepository, operator: Operator):
        """Test a failed lookup still saves the scan."""
        detector = DuplicateDetector(repository)
        detector.check_duplicate_license = AsyncMock(side_effect=RepositoryError("database_error", "timeout"))
        controller = ScanLifecycleController(repository, operator, detector=detector)

        outcome = await controller.on_payload(BARCODE)

        assert outcome.succeeded
        assert await count_scans(repository) == 1

    @staticmethod
    async def _until_prompt(controller: ScanLifecycleController) -> None:
        while not controller.awaiting_decision:
            await asyncio.sleep(0.001)


class TestPersistenceFailure:
    """Tests for rejected writes."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error,detail",
        [
            (RepositoryError("database_error", "Failed to create vehicle scan"), "Failed to create vehicle scan"),
            (asyncio.TimeoutError(), "TimeoutError"),
        ],
    )
    async def test_failed_write(
        self,
        repository: SqlScanRepository,
        operator: Operator,
        error: Exception,
        detail: str,
    ):
        repository.create_scan = AsyncMock(side_effect=error)
        listener = RecordingListener()
        controller = ScanLifecycleController(repository, operator, listener=listener)

        outcome = await controller.on_payload(BARCODE)

        assert outcome.failure == ScanFailureKind.PERSISTENCE_ERROR
        assert outcome.message == FAILURE_MESSAGES[ScanFailureKind.PERSISTENCE_ERROR]
        assert outcome.detail == detail
        assert outcome.record.license_number == "ABC123GP"
        assert controller.state == ScanState.FAILED
        assert listener.failed == [outcome]
        assert listener.saved == []
        repository.create_scan.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_no_automatic_retry(self, repository: SqlScanRepository, operator: Operator):
        """Test the failed attempt is abandoned until the scanner is reopened."""
        create = repository.create_scan
        repository.create_scan = AsyncMock(side_effect=RepositoryError("database_error", "down"))
        controller = ScanLifecycleController(repository, operator)
        await controller.on_payload(BARCODE)

        assert await controller.on_payload(BARCODE) is None
        assert repository.create_scan.await_count == 1

        repository.create_scan = create
        controller.activate()
        outcome = await controller.on_payload(BARCODE)

        assert outcome.succeeded

    def test_failure_messages_are_distinct(self):
        assert len(set(FAILURE_MESSAGES.values())) == len(ScanFailureKind)


class TestReentrancyAndCancel:
    """Tests for the capture guard and cancellation."""

    @pytest.mark.asyncio
    async def test_payload_ignored_while_persisting(self, repository: SqlScanRepository, operator: Operator):
        """Test a rapid repeat read of the same disk creates one scan."""
        gate = asyncio.Event()
        create = repository.create_scan

        async def slow_create(data, business_id):
            await gate.wait()
            return await create(data, business_id)

        repository.create_scan = slow_create
        controller = ScanLifecycleController(repository, operator)

        task = asyncio.create_task(controller.on_payload(BARCODE))
        await wait_for_state(controller, ScanState.PERSISTING)

        assert not controller.capture_active
        assert await controller.on_payload(BARCODE) is None
        assert controller.cancel() is False

        gate.set()
        outcome = await task

        assert outcome.succeeded
        assert controller.state == ScanState.DONE
        assert await count_scans(repository) == 1

    @pytest.mark.asyncio
    async def test_payload_ignored_while_awaiting_decision(
        self,
        repository: SqlScanRepository,
        operator: Operator,
        save_scan,
    ):
        await save_scan("ABC123GP")
        controller = ScanLifecycleController(repository, operator)

        task = asyncio.create_task(controller.on_payload(BARCODE))
        await wait_for_state(controller, ScanState.AWAITING_DUPLICATE_DECISION)

        assert await controller.on_payload("GP|DEF789GP|2025-01|MV") is None

        assert controller.cancel()
        await task

        assert await count_scans(repository, "DEF789GP") == 0

    @pytest.mark.asyncio
    async def test_cancel_on_prompt(self, repository: SqlScanRepository, operator: Operator, save_scan):
        await save_scan("ABC123GP")
        controller = ScanLifecycleController(repository, operator)

        task = asyncio.create_task(controller.on_payload(BARCODE))
        await wait_for_state(controller, ScanState.AWAITING_DUPLICATE_DECISION)

        assert controller.cancel()
        outcome = await task

        assert outcome.cancelled
        assert outcome.failure is None
        assert controller.state == ScanState.IDLE
        assert await count_scans(repository) == 1

    @pytest.mark.asyncio
    async def test_cancel_while_capturing(self, repository: SqlScanRepository, operator: Operator):
        controller = ScanLifecycleController(repository, operator)
        controller.activate()

        assert controller.cancel()
        assert controller.state == ScanState.IDLE


class BrokenPromptListener(ScanListener):
    async def on_duplicates(self, record, duplicates):
        raise RuntimeError("prompt crashed")


class TestAbortedAttempt:
    """Tests for recovering after an attempt blows up."""

    @pytest.mark.asyncio
    async def test_listener_error_leaves_controller_usable(
        self,
        repository: SqlScanRepository,
        operator: Operator,
        save_scan,
    ):
        await save_scan("ABC123GP")
        controller = ScanLifecycleController(repository, operator, listener=BrokenPromptListener())

        with pytest.raises(RuntimeError):
            await controller.on_payload(BARCODE)

        assert controller.state == ScanState.FAILED
        assert not controller.awaiting_decision
        assert controller.activate()

        outcome = await controller.on_payload("GP|DEF789GP|2025-01|MV")

        assert outcome.succeeded
        assert await count_scans(repository, "DEF789GP") == 1

    @pytest.mark.asyncio
    async def test_cancel_after_listener_error(
        self,
        repository: SqlScanRepository,
        operator: Operator,
        save_scan,
    ):
        await save_scan("ABC123GP")
        controller = ScanLifecycleController(repository, operator, listener=BrokenPromptListener())

        with pytest.raises(RuntimeError):
            await controller.on_payload(BARCODE)

        assert controller.cancel()
        assert controller.state == ScanState.IDLE

    @pytest.mark.asyncio
    async def test_task_cancelled_on_prompt(self, repository: SqlScanRepository, operator: Operator, save_scan):
        await save_scan("ABC123GP")
        controller = ScanLifecycleController(repository, operator)

        task = asyncio.create_task(controller.on_payload(BARCODE))
        await wait_for_state(controller, ScanState.AWAITING_DUPLICATE_DECISION)
        while not controller.awaiting_decision:
            await asyncio.sleep(0.001)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert controller.state == ScanState.FAILED
        assert controller.activate()
        assert controller.state == ScanState.CAPTURING
