"""
License disk payload parsing.

Turns the raw text produced by a PDF417 decoder or an OCR pass into a
LicenseRecord. Two phases are tried:

1. Structured: a sanitized payload with at least four pipe-delimited
   tokens is read positionally as province | license | expiry | type.
   A blank or over-long license token is a parse failure.
2. Heuristic: otherwise each line is searched with an ordered cascade
   of extraction rules, first match per field wins.

The parser is pure and never raises; anything it cannot read yields None.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import ClassVar

from licensedisk.core.logging import get_logger
from licensedisk.domain.models import (
    DEFAULT_VEHICLE_TYPE,
    MAX_LICENSE_LENGTH,
    UNKNOWN,
    ExtractionSource,
    LicenseRecord,
    VehicleDetails,
    utcnow,
)
from licensedisk.domain.normalization import FieldNormalizer

logger = get_logger(__name__)

# Characters kept by sanitization. Newlines survive as line separators.
DISALLOWED_CHARS = re.compile(r"[^A-Za-z0-9 |/\-:.\n]")
MIN_STRUCTURED_TOKENS = 4


class FieldKind(str, Enum):
    """Field an extraction rule produces."""

    LICENSE_NUMBER = "license_number"
    DATE = "date"
    VEHICLE_TYPE = "vehicle_type"


@dataclass(frozen=True)
class ExtractionRule:
    """
    One candidate pattern for a field.

    Rules of the same kind are evaluated in ascending priority; the first
    rule that matches a line wins.

    Attributes:
        kind: Field produced by the rule.
        priority: Evaluation order within the kind (lower first).
        pattern: Compiled regex searched within a line.
        name: Short label used in logs and tests.
    """

    kind: FieldKind
    priority: int
    pattern: re.Pattern[str]
    name: str

    def match(self, line: str) -> str | None:
        """Return the matched text in line, or None."""
        found = self.pattern.search(line)
        return found.group(0) if found else None


def _rule(kind: FieldKind, priority: int, regex: str, name: str, flags: int = 0) -> ExtractionRule:
    return ExtractionRule(kind=kind, priority=priority, pattern=re.compile(regex, flags), name=name)


DEFAULT_RULES: tuple[ExtractionRule, ...] = (
    # License number shapes
    _rule(FieldKind.LICENSE_NUMBER, 10, r"[A-Z]{2,3}\d{3,6}[A-Z]{2}", "letters_digits_province"),
    _rule(FieldKind.LICENSE_NUMBER, 20, r"\d{3}[A-Z]{3}\d{3}", "digits_letters_digits"),
    _rule(FieldKind.LICENSE_NUMBER, 30, r"[A-Z]{2}\d{6}", "letters_six_digits"),
    _rule(FieldKind.LICENSE_NUMBER, 40, r"[A-Z]{3}\d{3}[A-Z]{2}", "three_letters_three_digits"),
    # Date shapes, full dates before partial ones
    _rule(FieldKind.DATE, 10, r"(?<!\d)\d{4}[-/]\d{2}[-/]\d{2}(?!\d)", "year_month_day"),
    _rule(FieldKind.DATE, 20, r"(?<!\d)\d{2}[-/]\d{2}[-/]\d{4}(?!\d)", "day_month_year"),
    _rule(FieldKind.DATE, 30, r"(?<![\d/-])\d{4}-\d{2}(?![\d/-])", "year_month"),
    _rule(FieldKind.DATE, 40, r"(?<![\d/-])\d{2}/\d{4}(?![\d/-])", "month_year"),
    # Vehicle type keywords, longest first
    _rule(FieldKind.VEHICLE_TYPE, 10, r"\bMOTOR\s+VEHICLE\b", "motor_vehicle", re.IGNORECASE),
    _rule(FieldKind.VEHICLE_TYPE, 20, r"\bMOTORCYCLE\b", "motorcycle", re.IGNORECASE),
    _rule(FieldKind.VEHICLE_TYPE, 30, r"\bTRAILER\b", "trailer", re.IGNORECASE),
    _rule(FieldKind.VEHICLE_TYPE, 40, r"\bBUS\b", "bus", re.IGNORECASE),
    _rule(FieldKind.VEHICLE_TYPE, 50, r"\bTRUCK\b", "truck", re.IGNORECASE),
    _rule(FieldKind.VEHICLE_TYPE, 60, r"\bTAXI\b", "taxi", re.IGNORECASE),
)


def sanitize_payload(raw: str) -> str:
    """
    Strip characters outside the payload allow-list.

    Allowed: letters, digits, space, and | / - : . plus newlines, which
    separate candidate lines for the heuristic phase.
    """
    text = raw.replace("\r\n", "\n").replace("\r", "\n")
    return DISALLOWED_CHARS.sub("", text)


class LicenseDataParser:
    """
    Parses raw license disk payloads into LicenseRecord objects.

    Example:
        >>> parser = LicenseDataParser()
        >>> record = parser.parse("GP|ABC123GP|2024-12|MOTOR VEHICLE")
        >>> record.province
        'Gauteng'
        >>> parser.parse("no license here") is None
        True
    """

    # Keys of the tagged barcode layout L:...|M:...|V:...
    DETAIL_TAGS: ClassVar[dict[str, str]] = {
        "M": "make",
        "C": "model",
        "Y": "year",
        "V": "vin",
        "R": "owner_name",
        "ID": "owner_id_number",
    }

    def __init__(
        self,
        normalizer: FieldNormalizer | None = None,
        rules: tuple[ExtractionRule, ...] = DEFAULT_RULES,
    ):
        """
        Initialize the parser.

        Args:
            normalizer: Optional custom field normalizer.
            rules: Extraction rules for the heuristic phase.
        """
        self._normalizer = normalizer or FieldNormalizer()
        self._rules: dict[FieldKind, list[ExtractionRule]] = {kind: [] for kind in FieldKind}
        for rule in sorted(rules, key=lambda r: r.priority):
            self._rules[rule.kind].append(rule)

    def rules_for(self, kind: FieldKind) -> list[ExtractionRule]:
        """Rules of one kind in evaluation order."""
        return list(self._rules[kind])

    def parse(self, raw: str | bytes | None, scanned_at: datetime | None = None) -> LicenseRecord | None:
        """
        Parse a raw payload.

        Args:
            raw: Text from the capture source.
            scanned_at: Capture time to stamp on the record. Defaults to now.

        Returns:
            LicenseRecord: Parsed record, or None when no license number
            could be found.
        """
        try:
            return self._parse(raw, scanned_at)
        except Exception as e:
            logger.debug("payload_parse_error", error=str(e))
            return None

    def _parse(self, raw: str | bytes | None, scanned_at: datetime | None) -> LicenseRecord | None:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="ignore")
        if not isinstance(raw, str) or not raw:
            return None

        sanitized = sanitize_payload(raw)
        tokens = sanitized.split("|")

        if len(tokens) >= MIN_STRUCTURED_TOKENS:
            fields = self._parse_structured(tokens)
            source = ExtractionSource.STRUCTURED
        else:
            fields = self._parse_heuristic(sanitized)
            source = ExtractionSource.HEURISTIC

        if fields is None:
            return None

        license_number, province, expiry_date, vehicle_type = fields
        return LicenseRecord(
            license_number=license_number,
            province=province,
            expiry_date=expiry_date,
            vehicle_type=vehicle_type,
            raw_payload=raw,
            scanned_at=scanned_at or utcnow(),
            source=source,
        )

    def _parse_structured(self, tokens: list[str]) -> tuple[str, str, str, str] | None:
        """Read province | license | expiry | vehicle type positionally."""
        province_token, license_token, expiry_token, type_token = (
            token.strip() for token in tokens[:MIN_STRUCTURED_TOKENS]
        )

        if not license_token or len(license_token) > MAX_LICENSE_LENGTH:
            return None

        province = self._normalizer.map_province_code(province_token)
        expiry_date = self._normalizer.format_date(expiry_token) if expiry_token else UNKNOWN
        vehicle_type = self._normalizer.map_vehicle_type(type_token)

        return license_token, province, expiry_date, vehicle_type

    def _parse_heuristic(self, sanitized: str) -> tuple[str, str, str, str] | None:
        """Search candidate lines with the rule cascade."""
        lines = [line.strip() for line in re.split(r"[\n|]", sanitized)]
        lines = [line for line in lines if line]

        license_number = self._first_match(FieldKind.LICENSE_NUMBER, lines)
        if not license_number:
            return None

        province = self._normalizer.extract_province_from_license(license_number)

        date_token = self._first_match(FieldKind.DATE, lines)
        type_token = self._first_match(FieldKind.VEHICLE_TYPE, lines)

        return (
            license_number,
            self._normalizer.map_province_code(province),
            self._normalizer.format_date(date_token) if date_token else UNKNOWN,
            self._normalizer.map_vehicle_type(type_token) if type_token else DEFAULT_VEHICLE_TYPE,
        )

    def _first_match(self, kind: FieldKind, lines: list[str]) -> str | None:
        """First match of any rule of kind, scanning lines in order."""
        for line in lines:
            for rule in self._rules[kind]:
                matched = rule.match(line)
                if matched:
                    return matched
        return None

    def extract_vehicle_details(self, raw: str | bytes | None) -> VehicleDetails:
        """
        Read vehicle and owner fields from a payload.

        Understands the tagged layout "L:...|M:...|V:...|C:...|Y:...|R:...|ID:..."
        and, for positional payloads, takes owner name and ID number from
        the fifth and sixth tokens. Never raises.

        Args:
            raw: Text from the capture source.

        Returns:
            VehicleDetails: Extracted fields, "Unknown" where absent.
        """
        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8", errors="ignore")
            if not isinstance(raw, str) or not raw:
                return VehicleDetails()

            tokens = [token.strip() for token in sanitize_payload(raw).split("|")]

            tagged: dict[str, str] = {}
            for token in tokens:
                key, sep, value = token.partition(":")
                field_name = self.DETAIL_TAGS.get(key.strip().upper())
                if sep and field_name and value.strip():
                    tagged[field_name] = value.strip()
            if tagged:
                return VehicleDetails(**tagged)

            if len(tokens) >= 6:
                return VehicleDetails(
                    owner_name=tokens[4] or UNKNOWN,
                    owner_id_number=tokens[5] or UNKNOWN,
                )
        except Exception as e:
            logger.debug("vehicle_details_error", error=str(e))

        return VehicleDetails()
