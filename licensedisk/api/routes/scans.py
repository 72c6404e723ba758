"""
License disk scan API routes.

Provides parsing, scan submission (parse, duplicate check, save),
history, statistics, edit, verification and deletion endpoints.
"""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, Query, status
from pydantic import BaseModel, ConfigDict, Field

from licensedisk.api.deps import ApiKeyAuth, CurrentOperator, RateLimited, Repository, ScanSvc
from licensedisk.application.scan_lifecycle import (
    ScanFailureKind,
    ScanLifecycleController,
    ScanListener,
)
from licensedisk.core.config import get_settings
from licensedisk.core.logging import get_logger
from licensedisk.domain.models import (
    FIELD_MAX_LENGTHS,
    CaptureMethod,
    DuplicateMatch,
    ExtractionSource,
    LicenseRecord,
    RawScanInput,
    ScanFilters,
    ScanQuality,
)
from licensedisk.domain.parser import LicenseDataParser
from licensedisk.domain.services import ScanQualityAssessor

logger = get_logger(__name__)

router = APIRouter(prefix="/scans", tags=["scans"])


class ScanResponse(BaseModel):
    """Response model for a saved scan."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    business_id: str
    scanned_by: str
    scanned_by_email: str | None
    license_number: str
    province: str
    expiry_date: str
    vehicle_type: str
    make: str
    model: str
    year: str
    vin: str
    owner_name: str
    owner_id_number: str
    scan_quality: ScanQuality
    capture_method: CaptureMethod
    verified: bool
    verified_by: str | None
    verified_at: datetime | None
    notes: str | None
    scanned_at: datetime


class ScanListResponse(BaseModel):
    """Response for listing scans."""

    scans: list[ScanResponse]
    count: int
    limit: int
    offset: int


class DuplicateMatchResponse(BaseModel):
    """An earlier scan of the same license number."""

    model_config = ConfigDict(from_attributes=True)

    scan_id: str
    scanned_at: datetime
    scanned_by_email: str | None


class DuplicateListResponse(BaseModel):
    """Response for a duplicate lookup."""

    license_number: str
    matches: list[DuplicateMatchResponse]
    count: int


class StatisticsResponse(BaseModel):
    """Scan counts for the business."""

    model_config = ConfigDict(from_attributes=True)

    total_scans: int
    scans_today: int
    scans_this_week: int
    scans_this_month: int
    unique_scanners: int
    unique_vehicles: int


class LicenseRecordResponse(BaseModel):
    """Fields read off a disk."""

    model_config = ConfigDict(from_attributes=True)

    license_number: str
    province: str
    expiry_date: str
    vehicle_type: str
    source: ExtractionSource


class VehicleDetailsResponse(BaseModel):
    """Vehicle and owner fields read off a disk."""

    model_config = ConfigDict(from_attributes=True)

    make: str
    model: str
    year: str
    vin: str
    owner_name: str
    owner_id_number: str


class ParseRequest(BaseModel):
    """Raw payload from the capture source."""

    payload: str = Field(..., max_length=8192)
    capture_method: CaptureMethod = CaptureMethod.BARCODE


class ParseResponse(BaseModel):
    """Result of parsing a payload without saving it."""

    record: LicenseRecordResponse
    vehicle: VehicleDetailsResponse
    scan_quality: ScanQuality


class ScanCreateRequest(ParseRequest):
    """Request to parse and save a scan."""

    allow_duplicate: bool = Field(
        default=False,
        description="Save even if the license number was scanned before",
    )


class ScanCreateResponse(BaseModel):
    """A saved scan with the duplicates that were accepted."""

    scan: ScanResponse
    duplicates: list[DuplicateMatchResponse]
    statistics: StatisticsResponse | None


class ScanUpdateRequest(BaseModel):
    """Request to edit a scan."""

    license_number: str | None = Field(None, min_length=1, max_length=FIELD_MAX_LENGTHS["license_number"])
    province: str | None = Field(None, max_length=FIELD_MAX_LENGTHS["province"])
    expiry_date: str | None = Field(None, max_length=FIELD_MAX_LENGTHS["expiry_date"])
    vehicle_type: str | None = Field(None, max_length=FIELD_MAX_LENGTHS["vehicle_type"])
    make: str | None = Field(None, max_length=FIELD_MAX_LENGTHS["make"])
    model: str | None = Field(None, max_length=FIELD_MAX_LENGTHS["model"])
    year: str | None = Field(None, max_length=FIELD_MAX_LENGTHS["year"])
    vin: str | None = Field(None, max_length=FIELD_MAX_LENGTHS["vin"])
    owner_name: str | None = Field(None, max_length=FIELD_MAX_LENGTHS["owner_name"])
    owner_id_number: str | None = Field(None, max_length=FIELD_MAX_LENGTHS["owner_id_number"])
    scan_quality: ScanQuality | None = None
    notes: str | None = None


class _PresetDecision(ScanListener):
    """Answers the duplicate prompt with the choice sent in the request."""

    def __init__(self, allow_duplicate: bool):
        self._allow_duplicate = allow_duplicate

    async def on_duplicates(
        self,
        record: LicenseRecord,
        duplicates: list[DuplicateMatch],
    ) -> bool:
        return self._allow_duplicate


def _duplicates_payload(duplicates: list[DuplicateMatch]) -> list[dict]:
    return [
        DuplicateMatchResponse.model_validate(match).model_dump(mode="json")
        for match in duplicates
    ]


@router.post(
    "/parse",
    response_model=ParseResponse,
    summary="Parse a license disk payload",
    description="Read license and vehicle data from a barcode or OCR payload without saving.",
)
async def parse_payload(
    request: ParseRequest,
    _: ApiKeyAuth,
    __: RateLimited,
) -> ParseResponse:
    """Parse a payload and grade the result."""
    parser = LicenseDataParser()
    record = parser.parse(request.payload)

    if record is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "code": ScanFailureKind.PARSE_FAILURE.value,
                "message": "No license number found in payload",
            },
        )

    return ParseResponse(
        record=LicenseRecordResponse.model_validate(record),
        vehicle=VehicleDetailsResponse.model_validate(parser.extract_vehicle_details(request.payload)),
        scan_quality=ScanQualityAssessor().assess(record),
    )


@router.post(
    "",
    response_model=ScanCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a scan",
    description=(
        "Parse a payload, check for earlier scans of the license number, "
        "and save it. Duplicates are saved only when allow_duplicate is set."
    ),
)
async def create_scan(
    request: ScanCreateRequest,
    _: ApiKeyAuth,
    __: RateLimited,
    repository: Repository,
    operator: CurrentOperator,
) -> ScanCreateResponse:
    """Run one scan attempt through the lifecycle."""
    controller = ScanLifecycleController(
        repository,
        operator,
        listener=_PresetDecision(request.allow_duplicate),
    )
    controller.activate()
    outcome = await controller.on_payload(
        RawScanInput(payload=request.payload, capture_method=request.capture_method)
    )

    if outcome.failure is not None:
        logger.info(
            "scan_submission_rejected",
            reason=outcome.failure.value,
            business_id=operator.business_id,
        )

    if outcome.failure == ScanFailureKind.PARSE_FAILURE:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"code": outcome.failure.value, "message": outcome.message},
        )

    if outcome.failure == ScanFailureKind.DUPLICATE_DECLINED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "code": outcome.failure.value,
                "message": outcome.message,
                "license_number": outcome.record.license_number,
                "duplicates": _duplicates_payload(outcome.duplicates),
            },
        )

    if outcome.failure == ScanFailureKind.PERSISTENCE_ERROR:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "code": outcome.failure.value,
                "message": outcome.message,
                "detail": outcome.detail,
            },
        )

    return ScanCreateResponse(
        scan=ScanResponse.model_validate(outcome.scan),
        duplicates=[DuplicateMatchResponse.model_validate(m) for m in outcome.duplicates],
        statistics=(
            StatisticsResponse.model_validate(outcome.statistics)
            if outcome.statistics is not None
            else None
        ),
    )


@router.get(
    "",
    response_model=ScanListResponse,
    summary="List scans",
    description="Get scans of the business, newest first, with optional filters.",
)
async def list_scans(
    _: ApiKeyAuth,
    __: RateLimited,
    service: ScanSvc,
    license_number: str | None = None,
    make: str | None = None,
    scanned_by: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    verified: bool | None = None,
    limit: int | None = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
) -> ScanListResponse:
    """List scans with filtering and pagination."""
    settings = get_settings()
    limit = min(limit or settings.scan_page_size, settings.scan_page_size_max)

    filters = ScanFilters(
        license_number=license_number,
        make=make,
        scanned_by=scanned_by,
        date_from=date_from,
        date_to=date_to,
        verified=verified,
    )
    scans = await service.list_scans(filters, limit=limit, offset=offset)

    return ScanListResponse(
        scans=[ScanResponse.model_validate(scan) for scan in scans],
        count=len(scans),
        limit=limit,
        offset=offset,
    )


@router.get(
    "/statistics",
    response_model=StatisticsResponse,
    summary="Scan statistics",
    description="Scan counts for today, this week, this month and overall.",
)
async def get_statistics(
    _: ApiKeyAuth,
    __: RateLimited,
    service: ScanSvc,
) -> StatisticsResponse:
    """Get scan counts for the business."""
    return StatisticsResponse.model_validate(await service.get_statistics())


@router.get(
    "/duplicates",
    response_model=DuplicateListResponse,
    summary="Check for duplicate license",
    description="Find earlier scans of a license number in the business.",
)
async def check_duplicates(
    _: ApiKeyAuth,
    __: RateLimited,
    service: ScanSvc,
    license_number: str = Query(..., min_length=1),
    exclude_scan_id: str | None = None,
) -> DuplicateListResponse:
    """Look up earlier scans of a license number."""
    matches = await service.check_duplicates(license_number, exclude_scan_id=exclude_scan_id)

    return DuplicateListResponse(
        license_number=license_number.strip(),
        matches=[DuplicateMatchResponse.model_validate(m) for m in matches],
        count=len(matches),
    )


@router.get(
    "/{scan_id}",
    response_model=ScanResponse,
    summary="Get scan",
)
async def get_scan(
    scan_id: Annotated[str, Path(description="Scan ID")],
    _: ApiKeyAuth,
    __: RateLimited,
    service: ScanSvc,
) -> ScanResponse:
    """Get a scan by ID."""
    return ScanResponse.model_validate(await service.get_scan(scan_id))


@router.patch(
    "/{scan_id}",
    response_model=ScanResponse,
    summary="Edit scan",
    description="Correct the fields of a saved scan.",
)
async def update_scan(
    scan_id: Annotated[str, Path(description="Scan ID")],
    request: ScanUpdateRequest,
    _: ApiKeyAuth,
    __: RateLimited,
    service: ScanSvc,
) -> ScanResponse:
    """Edit a scan."""
    updates = {
        name: value
        for name, value in request.model_dump(exclude_unset=True).items()
        if value is not None or name == "notes"
    }
    return ScanResponse.model_validate(await service.update(scan_id, updates))


@router.post(
    "/{scan_id}/verify",
    response_model=ScanResponse,
    summary="Verify scan",
    description="Mark a scan as checked by the current operator.",
)
async def verify_scan(
    scan_id: Annotated[str, Path(description="Scan ID")],
    _: ApiKeyAuth,
    __: RateLimited,
    service: ScanSvc,
) -> ScanResponse:
    """Verify a scan."""
    return ScanResponse.model_validate(await service.verify(scan_id))


@router.delete(
    "/{scan_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete scan",
)
async def delete_scan(
    scan_id: Annotated[str, Path(description="Scan ID")],
    _: ApiKeyAuth,
    __: RateLimited,
    service: ScanSvc,
) -> None:
    """Delete a scan permanently."""
    await service.delete(scan_id)
