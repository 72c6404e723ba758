"""Domain layer package - business rules and core models."""

from licensedisk.domain.models import (
    DEFAULT_VEHICLE_TYPE,
    FIELD_MAX_LENGTHS,
    MAX_LICENSE_LENGTH,
    UNKNOWN,
    CaptureMethod,
    DuplicateMatch,
    ExtractionSource,
    LicenseRecord,
    NewVehicleScan,
    RawScanInput,
    ScanFilters,
    ScanQuality,
    ScanStatistics,
    VehicleDetails,
    VehicleScan,
    clip_field,
)
from licensedisk.domain.normalization import FieldNormalizer
from licensedisk.domain.parser import ExtractionRule, FieldKind, LicenseDataParser
from licensedisk.domain.services import ScanQualityAssessor
from licensedisk.domain.statistics import StatisticsWindows, statistics_windows

__all__ = [
    # Models
    "DEFAULT_VEHICLE_TYPE",
    "FIELD_MAX_LENGTHS",
    "MAX_LICENSE_LENGTH",
    "UNKNOWN",
    "CaptureMethod",
    "DuplicateMatch",
    "ExtractionSource",
    "LicenseRecord",
    "NewVehicleScan",
    "RawScanInput",
    "ScanFilters",
    "ScanQuality",
    "ScanStatistics",
    "VehicleDetails",
    "VehicleScan",
    "clip_field",
    # Services
    "ExtractionRule",
    "FieldKind",
    "FieldNormalizer",
    "LicenseDataParser",
    "ScanQualityAssessor",
    "StatisticsWindows",
    "statistics_windows",
]
