"""
Repository pattern implementations for scan data access.

Repositories abstract database operations and provide a clean interface
for the application layer. Every operation takes a business_id and
never reads or writes rows of another business.
"""

import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from sqlalchemy import case, distinct, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from licensedisk.domain.models import (
    FIELD_MAX_LENGTHS,
    MAX_LICENSE_LENGTH,
    UPDATABLE_SCAN_FIELDS,
    CaptureMethod,
    DuplicateMatch,
    NewVehicleScan,
    ScanFilters,
    ScanQuality,
    ScanStatistics,
    VehicleScan,
    utcnow,
)
from licensedisk.domain.statistics import statistics_windows
from licensedisk.infrastructure.db.models import VehicleScanDB

DEFAULT_PAGE_SIZE = 50


def _contains(text: str) -> str:
    """LIKE pattern matching text anywhere, with wildcards in text taken literally."""
    escaped = text.strip().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class RepositoryError(Exception):
    """
    Structured rejection from the scan store.

    Attributes:
        code: Machine-readable reason (database_error, not_found, ...).
        message: Human-readable description, shown to the operator verbatim.
    """

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


def require_business_id(business_id: str | None) -> str:
    """
    Validate a business scope.

    Raises:
        RepositoryError: If business_id is missing or blank.
    """
    if not business_id or not str(business_id).strip():
        raise RepositoryError("missing_business_id", "Business ID is required")
    return str(business_id).strip()


class ScanRepository(ABC):
    """
    Abstract store of vehicle scans.

    Implementations must scope every call to business_id and reject
    with RepositoryError.
    """

    @abstractmethod
    async def create_scan(self, data: NewVehicleScan, business_id: str) -> VehicleScan:
        """Persist a new scan and return it with its ID."""

    @abstractmethod
    async def get_scans(
        self,
        business_id: str,
        filters: ScanFilters | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> list[VehicleScan]:
        """List scans of a business, newest first."""

    @abstractmethod
    async def get_scan_by_id(self, scan_id: str, business_id: str) -> VehicleScan | None:
        """Get one scan of a business."""

    @abstractmethod
    async def get_scan_statistics(
        self,
        business_id: str,
        now: datetime | None = None,
    ) -> ScanStatistics:
        """Aggregate scan counts for a business."""

    @abstractmethod
    async def find_scans_by_license(
        self,
        license_number: str,
        business_id: str,
        exclude_scan_id: str | None = None,
    ) -> list[DuplicateMatch]:
        """Earlier scans of an exact license number, newest first."""

    @abstractmethod
    async def update_scan(
        self,
        scan_id: str,
        business_id: str,
        updates: dict[str, Any],
    ) -> VehicleScan:
        """Apply an edit to a scan."""

    @abstractmethod
    async def verify_scan(self, scan_id: str, business_id: str, verified_by: str) -> VehicleScan:
        """Mark a scan verified."""

    @abstractmethod
    async def delete_scan(self, scan_id: str, business_id: str) -> None:
        """Hard-delete a scan."""


class SqlScanRepository(ScanRepository):
    """
    SQLAlchemy implementation of the scan store.

    Database failures roll the session back and surface as
    RepositoryError(code="database_error").
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize repository with database session.

        Args:
            session: Async SQLAlchemy session.
        """
        self._session = session

    @asynccontextmanager
    async def _translate_errors(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            await self._session.rollback()
            raise RepositoryError(
                "database_error",
                f"Failed to {operation}: {e.__class__.__name__}",
            ) from e

    async def create_scan(self, data: NewVehicleScan, business_id: str) -> VehicleScan:
        """
        Create a new scan.

        Args:
            data: Scan fields.
            business_id: Owning business.

        Returns:
            VehicleScan: Created scan with ID populated.

        Raises:
            RepositoryError: If the scope or license number is missing, or
                the insert fails.
        """
        business_id = require_business_id(business_id)
        license_number = (data.license_number or "").strip()
        if not license_number:
            raise RepositoryError("invalid_license_number", "License number is required")
        if len(license_number) > MAX_LICENSE_LENGTH:
            raise RepositoryError(
                "invalid_license_number",
                f"License number is longer than {MAX_LICENSE_LENGTH} characters",
            )

        db_scan = VehicleScanDB(
            id=str(uuid.uuid4()),
            business_id=business_id,
            scanned_by=data.scanned_by,
            scanned_by_email=data.scanned_by_email,
            license_number=license_number,
            province=data.province,
            expiry_date=data.expiry_date,
            vehicle_type=data.vehicle_type,
            raw_payload=data.raw_payload,
            make=data.make,
            model=data.model,
            year=data.year,
            vin=data.vin,
            owner_name=data.owner_name,
            owner_id_number=data.owner_id_number,
            scan_quality=ScanQuality(data.scan_quality).value,
            capture_method=CaptureMethod(data.capture_method).value,
            verified=False,
            notes=data.notes,
            scanned_at=data.scanned_at or utcnow(),
        )

        async with self._translate_errors("create vehicle scan"):
            self._session.add(db_scan)
            await self._session.flush()

        return self._to_domain(db_scan)

    async def get_scans(
        self,
        business_id: str,
        filters: ScanFilters | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> list[VehicleScan]:
        """
        List scans of a business with optional filters.

        Args:
            business_id: Business scope.
            filters: Optional filters.
            limit: Maximum scans to return.
            offset: Pagination offset.

        Returns:
            list: Scans ordered by scanned_at, newest first.
        """
        business_id = require_business_id(business_id)
        filters = filters or ScanFilters()

        stmt = select(VehicleScanDB).where(VehicleScanDB.business_id == business_id)

        if filters.license_number:
            stmt = stmt.where(
                VehicleScanDB.license_number.ilike(_contains(filters.license_number), escape="\\")
            )
        if filters.make:
            stmt = stmt.where(VehicleScanDB.make.ilike(_contains(filters.make), escape="\\"))
        if filters.scanned_by:
            stmt = stmt.where(VehicleScanDB.scanned_by == filters.scanned_by)
        if filters.date_from:
            stmt = stmt.where(VehicleScanDB.scanned_at >= filters.date_from)
        if filters.date_to:
            stmt = stmt.where(VehicleScanDB.scanned_at <= filters.date_to)
        if filters.verified is not None:
            stmt = stmt.where(VehicleScanDB.verified == filters.verified)

        stmt = (
            stmt.order_by(VehicleScanDB.scanned_at.desc(), VehicleScanDB.created_at.desc())
            .limit(limit)
            .offset(offset)
        )

        async with self._translate_errors("fetch vehicle scans"):
            result = await self._session.execute(stmt)
            return [self._to_domain(row) for row in result.scalars().all()]

    async def get_scan_by_id(self, scan_id: str, business_id: str) -> VehicleScan | None:
        """
        Get a scan by ID within a business.

        Returns:
            VehicleScan: Domain model if found, None otherwise.
        """
        business_id = require_business_id(business_id)
        async with self._translate_errors("fetch vehicle scan"):
            db_scan = await self._get_row(scan_id, business_id)

        if db_scan is None:
            return None

        return self._to_domain(db_scan)

    async def get_scan_statistics(
        self,
        business_id: str,
        now: datetime | None = None,
    ) -> ScanStatistics:
        """
        Aggregate scan counts for a business.

        Args:
            business_id: Business scope.
            now: Reference time for the today/week/month windows.

        Returns:
            ScanStatistics: Counts; all zero for a business with no scans.
        """
        business_id = require_business_id(business_id)
        windows = statistics_windows(now)

        stmt = select(
            func.count(VehicleScanDB.id),
            func.count(case((VehicleScanDB.scanned_at >= windows.today, 1))),
            func.count(case((VehicleScanDB.scanned_at >= windows.week, 1))),
            func.count(case((VehicleScanDB.scanned_at >= windows.month, 1))),
            func.count(distinct(VehicleScanDB.scanned_by)),
            func.count(distinct(VehicleScanDB.license_number)),
        ).where(VehicleScanDB.business_id == business_id)

        async with self._translate_errors("fetch scan statistics"):
            result = await self._session.execute(stmt)
            row = result.one()

        total, today, week, month, scanners, vehicles = (int(value or 0) for value in row)
        return ScanStatistics(
            total_scans=total,
            scans_today=today,
            scans_this_week=week,
            scans_this_month=month,
            unique_scanners=scanners,
            unique_vehicles=vehicles,
        )

    async def find_scans_by_license(
        self,
        license_number: str,
        business_id: str,
        exclude_scan_id: str | None = None,
    ) -> list[DuplicateMatch]:
        """
        Find earlier scans of an exact license number.

        Args:
            license_number: Trimmed license number.
            business_id: Business scope.
            exclude_scan_id: Scan to leave out (the one being edited).

        Returns:
            list: Matches ordered newest first.
        """
        business_id = require_business_id(business_id)

        stmt = select(
            VehicleScanDB.id,
            VehicleScanDB.scanned_at,
            VehicleScanDB.scanned_by_email,
        ).where(
            VehicleScanDB.business_id == business_id,
            VehicleScanDB.license_number == license_number,
        )
        if exclude_scan_id:
            stmt = stmt.where(VehicleScanDB.id != exclude_scan_id)
        stmt = stmt.order_by(VehicleScanDB.scanned_at.desc(), VehicleScanDB.created_at.desc())

        async with self._translate_errors("check duplicate license"):
            result = await self._session.execute(stmt)
            rows = result.all()

        return [
            DuplicateMatch(scan_id=row.id, scanned_at=row.scanned_at, scanned_by_email=row.scanned_by_email)
            for row in rows
        ]

    async def update_scan(
        self,
        scan_id: str,
        business_id: str,
        updates: dict[str, Any],
    ) -> VehicleScan:
        """
        Apply an edit to a scan.

        Only fields in UPDATABLE_SCAN_FIELDS may change; id, business and
        verification fields never do.

        Raises:
            RepositoryError: not_found, invalid_field, invalid_license_number
                or database_error.
        """
        business_id = require_business_id(business_id)

        unknown = set(updates) - UPDATABLE_SCAN_FIELDS
        if unknown:
            raise RepositoryError(
                "invalid_field",
                f"Fields cannot be updated: {', '.join(sorted(unknown))}",
            )
        too_long = sorted(
            name
            for name, value in updates.items()
            if name in FIELD_MAX_LENGTHS
            and isinstance(value, str)
            and len(value.strip() if name == "license_number" else value) > FIELD_MAX_LENGTHS[name]
        )
        if too_long:
            raise RepositoryError(
                "invalid_field",
                f"Values too long for: {', '.join(too_long)}",
            )

        async with self._translate_errors("update vehicle scan"):
            db_scan = await self._get_row(scan_id, business_id)
            if db_scan is None:
                raise RepositoryError("not_found", f"Vehicle scan {scan_id} not found")

            for name, value in updates.items():
                if name == "license_number":
                    value = (value or "").strip()
                    if not value:
                        raise RepositoryError("invalid_license_number", "License number is required")
                elif name == "scan_quality":
                    value = ScanQuality(value).value
                setattr(db_scan, name, value)

            await self._session.flush()

        return self._to_domain(db_scan)

    async def verify_scan(self, scan_id: str, business_id: str, verified_by: str) -> VehicleScan:
        """
        Mark a scan as verified.

        Verification is one-way: a scan that is already verified is
        returned unchanged.

        Raises:
            RepositoryError: If the scan does not exist in this business.
        """
        business_id = require_business_id(business_id)

        async with self._translate_errors("verify vehicle scan"):
            db_scan = await self._get_row(scan_id, business_id)
            if db_scan is None:
                raise RepositoryError("not_found", f"Vehicle scan {scan_id} not found")

            if not db_scan.verified:
                db_scan.verified = True
                db_scan.verified_by = verified_by
                db_scan.verified_at = utcnow()
                await self._session.flush()

        return self._to_domain(db_scan)

    async def delete_scan(self, scan_id: str, business_id: str) -> None:
        """
        Delete a scan permanently.

        Raises:
            RepositoryError: If the scan does not exist in this business.
        """
        business_id = require_business_id(business_id)

        async with self._translate_errors("delete vehicle scan"):
            db_scan = await self._get_row(scan_id, business_id)
            if db_scan is None:
                raise RepositoryError("not_found", f"Vehicle scan {scan_id} not found")

            await self._session.delete(db_scan)
            await self._session.flush()

    async def _get_row(self, scan_id: str, business_id: str) -> VehicleScanDB | None:
        stmt = select(VehicleScanDB).where(
            VehicleScanDB.id == scan_id,
            VehicleScanDB.business_id == business_id,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    def _to_domain(self, db_scan: VehicleScanDB) -> VehicleScan:
        """Convert database model to domain model."""
        return VehicleScan(
            id=db_scan.id,
            business_id=db_scan.business_id,
            scanned_by=db_scan.scanned_by,
            scanned_by_email=db_scan.scanned_by_email,
            license_number=db_scan.license_number,
            province=db_scan.province,
            expiry_date=db_scan.expiry_date,
            vehicle_type=db_scan.vehicle_type,
            raw_payload=db_scan.raw_payload,
            scanned_at=db_scan.scanned_at,
            make=db_scan.make,
            model=db_scan.model,
            year=db_scan.year,
            vin=db_scan.vin,
            owner_name=db_scan.owner_name,
            owner_id_number=db_scan.owner_id_number,
            scan_quality=ScanQuality(db_scan.scan_quality),
            capture_method=CaptureMethod(db_scan.capture_method),
            verified=db_scan.verified,
            verified_by=db_scan.verified_by,
            verified_at=db_scan.verified_at,
            notes=db_scan.notes,
        )
