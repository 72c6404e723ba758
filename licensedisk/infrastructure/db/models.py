"""
SQLAlchemy ORM models for database tables.

These models define the database schema and provide
persistence for domain entities.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from licensedisk.domain.models import FIELD_MAX_LENGTHS


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class VehicleScanDB(Base):
    """
    Database model for license disk scans.

    One row per saved scan. Every query filters on business_id; the
    (business_id, license_number) index backs duplicate lookups.
    """

    __tablename__ = "vehicle_scans"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    business_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    scanned_by: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    scanned_by_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    license_number: Mapped[str] = mapped_column(String(FIELD_MAX_LENGTHS["license_number"]), nullable=False)
    province: Mapped[str] = mapped_column(String(FIELD_MAX_LENGTHS["province"]), nullable=False, default="Unknown")
    expiry_date: Mapped[str] = mapped_column(String(FIELD_MAX_LENGTHS["expiry_date"]), nullable=False, default="Unknown")
    vehicle_type: Mapped[str] = mapped_column(String(FIELD_MAX_LENGTHS["vehicle_type"]), nullable=False, default="Motor Vehicle")
    raw_payload: Mapped[str] = mapped_column(Text, nullable=False, default="")

    make: Mapped[str] = mapped_column(String(FIELD_MAX_LENGTHS["make"]), nullable=False, default="Unknown")
    model: Mapped[str] = mapped_column(String(FIELD_MAX_LENGTHS["model"]), nullable=False, default="Unknown")
    year: Mapped[str] = mapped_column(String(FIELD_MAX_LENGTHS["year"]), nullable=False, default="Unknown")
    vin: Mapped[str] = mapped_column(String(FIELD_MAX_LENGTHS["vin"]), nullable=False, default="Unknown")
    owner_name: Mapped[str] = mapped_column(String(FIELD_MAX_LENGTHS["owner_name"]), nullable=False, default="Unknown")
    owner_id_number: Mapped[str] = mapped_column(String(FIELD_MAX_LENGTHS["owner_id_number"]), nullable=False, default="Unknown")

    scan_quality: Mapped[str] = mapped_column(String(10), nullable=False, default="good")
    capture_method: Mapped[str] = mapped_column(String(20), nullable=False, default="barcode")
    verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    verified_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    scanned_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_vehicle_scans_business_license", "business_id", "license_number"),
        Index("ix_vehicle_scans_business_time", "business_id", "scanned_at"),
    )

    def __repr__(self) -> str:
        return f"<VehicleScan(license={self.license_number}, business={self.business_id})>"
