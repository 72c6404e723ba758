"""
Domain models for the license disk scanning core.

These are pure domain objects with no infrastructure dependencies.
They represent a capture, what was read off the disk, and the scan
record kept for a business.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

UNKNOWN = "Unknown"
DEFAULT_VEHICLE_TYPE = "Motor Vehicle"

# Column widths of the scan store.
FIELD_MAX_LENGTHS: dict[str, int] = {
    "license_number": 32,
    "province": 64,
    "expiry_date": 32,
    "vehicle_type": 64,
    "make": 100,
    "model": 100,
    "year": 10,
    "vin": 32,
    "owner_name": 200,
    "owner_id_number": 32,
}
MAX_LICENSE_LENGTH = FIELD_MAX_LENGTHS["license_number"]


def clip_field(name: str, value: str) -> str:
    """Truncate free text read off a disk to the width of its column."""
    limit = FIELD_MAX_LENGTHS.get(name)
    return value[:limit] if limit else value


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class CaptureMethod(str, Enum):
    """How the raw payload was obtained."""

    BARCODE = "barcode"
    OCR_IMAGE = "ocr_image"


class ExtractionSource(str, Enum):
    """
    Which parsing phase produced a record.

    STRUCTURED: pipe-delimited positional payload (PDF417 decode).
    HEURISTIC: pattern search over free text (OCR output).
    """

    STRUCTURED = "structured"
    HEURISTIC = "heuristic"


class ScanQuality(str, Enum):
    """Confidence in the data captured for a scan."""

    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


@dataclass(frozen=True)
class RawScanInput:
    """
    One payload delivered by the capture source.

    Transient: created per capture and discarded after parsing.

    Attributes:
        payload: Decoded barcode text or OCR output.
        capture_method: Barcode decoder or OCR pass over an image.
        captured_at: When the capture happened.
    """

    payload: str
    capture_method: CaptureMethod = CaptureMethod.BARCODE
    captured_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class LicenseRecord:
    """
    Structured data read off a license disk.

    license_number is never empty. province, expiry_date and vehicle_type
    always hold a canonical value or "Unknown".

    Attributes:
        license_number: Vehicle registration number.
        province: Full province name.
        expiry_date: YYYY-MM-DD or YYYY-MM.
        vehicle_type: Canonical vehicle type.
        raw_payload: Payload the record was parsed from.
        scanned_at: When the disk was scanned.
        source: Parsing phase that produced the record.
    """

    license_number: str
    province: str
    expiry_date: str
    vehicle_type: str
    raw_payload: str
    scanned_at: datetime
    source: ExtractionSource = ExtractionSource.STRUCTURED


@dataclass(frozen=True)
class VehicleDetails:
    """Vehicle and owner fields some disk layouts carry besides the license data."""

    make: str = UNKNOWN
    model: str = UNKNOWN
    year: str = UNKNOWN
    vin: str = UNKNOWN
    owner_name: str = UNKNOWN
    owner_id_number: str = UNKNOWN


@dataclass
class NewVehicleScan:
    """
    Data needed to create a scan record.

    Attributes:
        license_number: Trimmed license number.
        scanned_by: Operator user ID.
        scanned_by_email: Operator e-mail, if known.
        scan_quality: Quality assessment of the captured data.
        capture_method: How the payload was captured.
        scanned_at: Capture time; defaults to now.
    """

    license_number: str
    scanned_by: str
    province: str = UNKNOWN
    expiry_date: str = UNKNOWN
    vehicle_type: str = DEFAULT_VEHICLE_TYPE
    raw_payload: str = ""
    make: str = UNKNOWN
    model: str = UNKNOWN
    year: str = UNKNOWN
    vin: str = UNKNOWN
    owner_name: str = UNKNOWN
    owner_id_number: str = UNKNOWN
    scanned_by_email: str | None = None
    scan_quality: ScanQuality = ScanQuality.GOOD
    capture_method: CaptureMethod = CaptureMethod.BARCODE
    notes: str | None = None
    scanned_at: datetime | None = None

    @classmethod
    def from_record(
        cls,
        record: LicenseRecord,
        details: VehicleDetails,
        scanned_by: str,
        scanned_by_email: str | None = None,
        scan_quality: ScanQuality = ScanQuality.GOOD,
        capture_method: CaptureMethod = CaptureMethod.BARCODE,
        notes: str | None = None,
    ) -> "NewVehicleScan":
        """
        Combine a parsed record and vehicle details into create data.

        Unrecognised tokens pass through the parser verbatim, so every
        text field is clipped to its column width here. The license
        number is left whole; the parser already bounds it.
        """
        return cls(
            license_number=record.license_number.strip(),
            province=clip_field("province", record.province),
            expiry_date=clip_field("expiry_date", record.expiry_date),
            vehicle_type=clip_field("vehicle_type", record.vehicle_type),
            raw_payload=record.raw_payload,
            make=clip_field("make", details.make),
            model=clip_field("model", details.model),
            year=clip_field("year", details.year),
            vin=clip_field("vin", details.vin),
            owner_name=clip_field("owner_name", details.owner_name),
            owner_id_number=clip_field("owner_id_number", details.owner_id_number),
            scanned_by=scanned_by,
            scanned_by_email=scanned_by_email,
            scan_quality=scan_quality,
            capture_method=capture_method,
            notes=notes,
            scanned_at=record.scanned_at,
        )


@dataclass
class VehicleScan:
    """
    A persisted license disk scan.

    id never changes after creation. verified only moves from False
    to True.
    """

    id: str
    business_id: str
    scanned_by: str
    license_number: str
    province: str
    expiry_date: str
    vehicle_type: str
    raw_payload: str
    scanned_at: datetime
    make: str = UNKNOWN
    model: str = UNKNOWN
    year: str = UNKNOWN
    vin: str = UNKNOWN
    owner_name: str = UNKNOWN
    owner_id_number: str = UNKNOWN
    scanned_by_email: str | None = None
    scan_quality: ScanQuality = ScanQuality.GOOD
    capture_method: CaptureMethod = CaptureMethod.BARCODE
    verified: bool = False
    verified_by: str | None = None
    verified_at: datetime | None = None
    notes: str | None = None


@dataclass(frozen=True)
class DuplicateMatch:
    """Read-only projection of an earlier scan of the same license number."""

    scan_id: str
    scanned_at: datetime
    scanned_by_email: str | None


@dataclass(frozen=True)
class ScanStatistics:
    """Scan counts for one business."""

    total_scans: int = 0
    scans_today: int = 0
    scans_this_week: int = 0
    scans_this_month: int = 0
    unique_scanners: int = 0
    unique_vehicles: int = 0


@dataclass(frozen=True)
class ScanFilters:
    """
    Optional filters for listing scans.

    license_number and make match case-insensitive substrings; the
    date bounds are inclusive.
    """

    license_number: str | None = None
    make: str | None = None
    scanned_by: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    verified: bool | None = None

    def cache_shape(self) -> str:
        """Stable string form used as part of a cache key."""
        parts = [
            f"license_number={self.license_number or ''}",
            f"make={self.make or ''}",
            f"scanned_by={self.scanned_by or ''}",
            f"date_from={self.date_from.isoformat() if self.date_from else ''}",
            f"date_to={self.date_to.isoformat() if self.date_to else ''}",
            f"verified={'' if self.verified is None else self.verified}",
        ]
        return "&".join(parts)


# Fields of a scan that an edit may change.
UPDATABLE_SCAN_FIELDS = frozenset({
    "license_number",
    "province",
    "expiry_date",
    "vehicle_type",
    "make",
    "model",
    "year",
    "vin",
    "owner_name",
    "owner_id_number",
    "scan_quality",
    "notes",
})
