"""Application layer package - use cases and services."""

from licensedisk.application.duplicate_detector import DuplicateDetector
from licensedisk.application.scan_lifecycle import (
    FAILURE_MESSAGES,
    ScanFailureKind,
    ScanLifecycleController,
    ScanListener,
    ScanOutcome,
    ScanState,
)
from licensedisk.application.scan_service import VehicleScanService

__all__ = [
    "DuplicateDetector",
    "FAILURE_MESSAGES",
    "ScanFailureKind",
    "ScanLifecycleController",
    "ScanListener",
    "ScanOutcome",
    "ScanState",
    "VehicleScanService",
]
