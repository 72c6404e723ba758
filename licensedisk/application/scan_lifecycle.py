"""
Scan lifecycle use case.

Drives one license disk scan at a time through:
1. Capture (payload from barcode decoder or OCR)
2. Parsing
3. Duplicate check, pausing for the operator's decision
4. Persistence
5. Statistics refresh
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum

from licensedisk.application.duplicate_detector import DuplicateDetector
from licensedisk.core.logging import get_logger
from licensedisk.core.security import Operator
from licensedisk.domain.models import (
    DuplicateMatch,
    LicenseRecord,
    NewVehicleScan,
    RawScanInput,
    ScanStatistics,
    VehicleScan,
)
from licensedisk.domain.parser import LicenseDataParser
from licensedisk.domain.services import ScanQualityAssessor
from licensedisk.infrastructure.db.repository import RepositoryError, ScanRepository

logger = get_logger(__name__)


class ScanState(str, Enum):
    """Where a scan attempt is."""

    IDLE = "idle"
    CAPTURING = "capturing"
    PARSING = "parsing"
    AWAITING_DUPLICATE_DECISION = "awaiting_duplicate_decision"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


class ScanFailureKind(str, Enum):
    """Why a scan attempt produced no record."""

    PARSE_FAILURE = "parse_failure"
    DUPLICATE_DECLINED = "duplicate_declined"
    PERSISTENCE_ERROR = "persistence_error"


FAILURE_MESSAGES: dict[ScanFailureKind, str] = {
    ScanFailureKind.PARSE_FAILURE: (
        "Could not read the license disk. Please hold the camera steady and scan again."
    ),
    ScanFailureKind.DUPLICATE_DECLINED: (
        "Scan cancelled. This license disk has already been scanned and nothing was saved."
    ),
    ScanFailureKind.PERSISTENCE_ERROR: "Failed to save the scan. Please try again.",
}

# States in which the capture source may deliver a payload.
CAPTURE_STATES = frozenset({ScanState.IDLE, ScanState.CAPTURING})


@dataclass
class ScanOutcome:
    """
    Result of one scan attempt, as reported to the caller.

    Attributes:
        scan: Saved scan on success.
        failure: Failure kind, None on success or cancellation.
        message: User-facing message for the failure kind.
        detail: Repository message for persistence errors.
        record: Parsed record, if parsing succeeded.
        duplicates: Earlier scans of the same license number.
        statistics: Refreshed counts after a successful save.
        cancelled: True if the scanner was closed mid-attempt.
    """

    scan: VehicleScan | None = None
    failure: ScanFailureKind | None = None
    message: str | None = None
    detail: str | None = None
    record: LicenseRecord | None = None
    duplicates: list[DuplicateMatch] = field(default_factory=list)
    statistics: ScanStatistics | None = None
    cancelled: bool = False

    @property
    def succeeded(self) -> bool:
        return self.scan is not None

    @classmethod
    def failed(cls, kind: ScanFailureKind, **kwargs) -> "ScanOutcome":
        return cls(failure=kind, message=FAILURE_MESSAGES[kind], **kwargs)


class ScanListener:
    """
    Callbacks for the front end driving a controller.

    All methods are no-ops; override the ones you need.
    """

    async def on_duplicates(
        self,
        record: LicenseRecord,
        duplicates: list[DuplicateMatch],
    ) -> bool | None:
        """
        Called when earlier scans of the license number exist.

        Return True to save anyway, False to cancel, or None to answer
        later through ScanLifecycleController.resolve().
        """
        return None

    async def on_scan_saved(self, scan: VehicleScan) -> None:
        pass

    async def on_scan_failed(self, outcome: ScanOutcome) -> None:
        pass

    async def on_statistics(self, statistics: ScanStatistics) -> None:
        pass


class ScanLifecycleController:
    """
    State machine for a single in-flight scan attempt.

    Payloads delivered while an attempt is being parsed, checked or
    saved are ignored, so rapid repeat reads of one disk never create
    two scans. Steps run sequentially: parse, then duplicate check,
    then persist.

    Example:
        controller = ScanLifecycleController(repository, operator)
        controller.activate()
        outcome = await controller.on_payload("GP|ABC123GP|2024-12|MV")
    """

    def __init__(
        self,
        repository: ScanRepository,
        operator: Operator,
        parser: LicenseDataParser | None = None,
        detector: DuplicateDetector | None = None,
        assessor: ScanQualityAssessor | None = None,
        listener: ScanListener | None = None,
    ):
        """
        Initialize the controller.

        Args:
            repository: Scan store, scoped per call by operator.business_id.
            operator: Who is scanning, and for which business.
            parser: Optional custom parser.
            detector: Optional custom duplicate detector.
            assessor: Optional custom quality assessor.
            listener: Optional front end callbacks.
        """
        self._repository = repository
        self._operator = operator
        self._parser = parser or LicenseDataParser()
        self._detector = detector or DuplicateDetector(repository)
        self._assessor = assessor or ScanQualityAssessor()
        self._listener = listener or ScanListener()

        self._state = ScanState.IDLE
        self._history: list[ScanState] = [ScanState.IDLE]
        self._decision: asyncio.Future | None = None
        self._pending_duplicates: list[DuplicateMatch] = []
        self._cancel_requested = False
        self._attempt_active = False

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def history(self) -> list[ScanState]:
        """Every state entered so far, oldest first."""
        return list(self._history)

    @property
    def capture_active(self) -> bool:
        """Whether the capture source should deliver payloads."""
        return self._state in CAPTURE_STATES

    @property
    def awaiting_decision(self) -> bool:
        return self._decision is not None and not self._decision.done()

    @property
    def pending_duplicates(self) -> list[DuplicateMatch]:
        return list(self._pending_duplicates)

    def activate(self) -> bool:
        """
        Open the scanner for the next capture.

        Allowed from IDLE, and from DONE or FAILED to start a new
        attempt.

        Returns:
            bool: True if the controller is now capturing.
        """
        if self._state == ScanState.CAPTURING:
            return True
        if self._state not in (ScanState.IDLE, ScanState.DONE, ScanState.FAILED):
            return False

        self._cancel_requested = False
        self._transition(ScanState.CAPTURING)
        return True

    def resolve(self, proceed: bool) -> bool:
        """
        Answer a pending duplicate prompt.

        Args:
            proceed: True to save anyway, False to cancel.

        Returns:
            bool: False if no prompt was pending.
        """
        if not self.awaiting_decision:
            logger.warning("duplicate_decision_unexpected", state=self._state.value)
            return False

        self._decision.set_result(bool(proceed))
        return True

    def cancel(self) -> bool:
        """
        Close the scanner.

        Honored only before persistence starts. A pending duplicate
        prompt is answered with "cancel".

        Returns:
            bool: True if the cancellation was accepted.
        """
        if self._state in (ScanState.PERSISTING, ScanState.DONE):
            logger.info("scan_cancel_ignored", state=self._state.value)
            return False

        if self._attempt_active and self._state in (
            ScanState.PARSING,
            ScanState.AWAITING_DUPLICATE_DECISION,
        ):
            self._cancel_requested = True
            if self.awaiting_decision:
                self._decision.set_result(False)
            return True

        if self._state != ScanState.IDLE:
            self._transition(ScanState.IDLE)
        return True

    async def on_payload(self, payload: str | bytes | RawScanInput) -> ScanOutcome | None:
        """
        Handle one payload from the capture source.

        Args:
            payload: Decoded barcode text, OCR output, or a RawScanInput.

        Returns:
            ScanOutcome: Result of the attempt, or None if the payload was
                ignored because another attempt is in flight.
        """
        if not self.capture_active:
            logger.info("payload_ignored", state=self._state.value)
            return None

        if self._state == ScanState.IDLE:
            self.activate()

        raw = payload if isinstance(payload, RawScanInput) else self._to_input(payload)

        self._attempt_active = True
        try:
            return await self._run_attempt(raw)
        except (Exception, asyncio.CancelledError) as e:
            logger.error(
                "scan_attempt_aborted",
                state=self._state.value,
                error_type=e.__class__.__name__,
            )
            if self._state not in (ScanState.DONE, ScanState.FAILED):
                self._transition(ScanState.FAILED)
            raise
        finally:
            self._attempt_active = False

    async def _run_attempt(self, raw: RawScanInput) -> ScanOutcome:
        self._transition(ScanState.PARSING)
        record = self._parser.parse(raw.payload, scanned_at=raw.captured_at)

        if record is None:
            logger.info(
                "scan_parse_failed",
                capture_method=raw.capture_method.value,
                payload_length=len(raw.payload),
            )
            self._transition(ScanState.FAILED)
            outcome = ScanOutcome.failed(ScanFailureKind.PARSE_FAILURE)
            await self._listener.on_scan_failed(outcome)
            self._transition(ScanState.CAPTURING)
            return outcome

        logger.info(
            "scan_parsed",
            license_number=record.license_number,
            source=record.source.value,
        )

        self._transition(ScanState.AWAITING_DUPLICATE_DECISION)
        duplicates = await self._check_duplicates(record)

        if self._cancel_requested:
            return self._cancelled(record, duplicates)

        if duplicates:
            proceed = await self._await_decision(record, duplicates)
            if self._cancel_requested:
                return self._cancelled(record, duplicates)
            if not proceed:
                logger.info("duplicate_declined", license_number=record.license_number)
                self._transition(ScanState.CAPTURING)
                outcome = ScanOutcome.failed(
                    ScanFailureKind.DUPLICATE_DECLINED,
                    record=record,
                    duplicates=duplicates,
                )
                await self._listener.on_scan_failed(outcome)
                return outcome

        return await self._persist(raw, record, duplicates)

    async def _check_duplicates(self, record: LicenseRecord) -> list[DuplicateMatch]:
        try:
            return await self._detector.check_duplicate_license(
                record.license_number,
                self._operator.business_id,
            )
        except Exception as e:
            # A failed lookup must not lose a legitimate scan.
            logger.warning(
                "duplicate_check_failed",
                license_number=record.license_number,
                error=str(e),
            )
            return []

    async def _await_decision(
        self,
        record: LicenseRecord,
        duplicates: list[DuplicateMatch],
    ) -> bool:
        self._pending_duplicates = list(duplicates)
        self._decision = asyncio.get_running_loop().create_future()
        try:
            answer = await self._listener.on_duplicates(record, duplicates)
            if answer is not None and not self._decision.done():
                self._decision.set_result(bool(answer))
            return await self._decision
        finally:
            self._decision = None
            self._pending_duplicates = []

    async def _persist(
        self,
        raw: RawScanInput,
        record: LicenseRecord,
        duplicates: list[DuplicateMatch],
    ) -> ScanOutcome:
        self._transition(ScanState.PERSISTING)

        data = NewVehicleScan.from_record(
            record,
            self._parser.extract_vehicle_details(raw.payload),
            scanned_by=self._operator.user_id,
            scanned_by_email=self._operator.email,
            scan_quality=self._assessor.assess(record),
            capture_method=raw.capture_method,
        )

        try:
            scan = await self._repository.create_scan(data, self._operator.business_id)
        except Exception as e:
            detail = e.message if isinstance(e, RepositoryError) else (str(e) or e.__class__.__name__)
            logger.error(
                "scan_persist_failed",
                license_number=record.license_number,
                error=detail,
                error_type=e.__class__.__name__,
            )
            self._transition(ScanState.FAILED)
            outcome = ScanOutcome.failed(
                ScanFailureKind.PERSISTENCE_ERROR,
                detail=detail,
                record=record,
                duplicates=duplicates,
            )
            await self._listener.on_scan_failed(outcome)
            return outcome

        self._transition(ScanState.DONE)
        logger.info(
            "scan_saved",
            scan_id=scan.id,
            license_number=scan.license_number,
            business_id=scan.business_id,
            scan_quality=scan.scan_quality.value,
        )

        outcome = ScanOutcome(scan=scan, record=record, duplicates=duplicates)
        await self._listener.on_scan_saved(scan)
        outcome.statistics = await self._refresh_statistics()
        return outcome

    async def _refresh_statistics(self) -> ScanStatistics | None:
        try:
            statistics = await self._repository.get_scan_statistics(self._operator.business_id)
        except Exception as e:
            logger.warning("statistics_refresh_failed", error=str(e))
            return None

        await self._listener.on_statistics(statistics)
        return statistics

    def _cancelled(self, record: LicenseRecord, duplicates: list[DuplicateMatch]) -> ScanOutcome:
        logger.info("scan_cancelled", license_number=record.license_number)
        self._cancel_requested = False
        self._transition(ScanState.IDLE)
        return ScanOutcome(record=record, duplicates=duplicates, cancelled=True)

    def _transition(self, state: ScanState) -> None:
        logger.debug("scan_state_changed", from_state=self._state.value, to_state=state.value)
        self._state = state
        self._history.append(state)

    @staticmethod
    def _to_input(payload: str | bytes) -> RawScanInput:
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8", errors="replace")
        return RawScanInput(payload=payload or "")
