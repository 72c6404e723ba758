"""
Field normalization for South African license disk data.

Maps raw province, date and vehicle type tokens to canonical forms.
Every method is total: it never raises, and unresolvable input is
passed through or replaced by "Unknown" as documented per method.
"""

import re
from dataclasses import dataclass
from typing import ClassVar

from licensedisk.domain.models import DEFAULT_VEHICLE_TYPE, UNKNOWN


@dataclass
class FieldNormalizer:
    """
    Canonicalizes individual license disk fields.

    Example:
        >>> normalizer = FieldNormalizer()
        >>> normalizer.map_province_code("kzn")
        'KwaZulu-Natal'
        >>> normalizer.format_date("12/2024")
        '2024-12'
        >>> normalizer.map_vehicle_type("MV")
        'Motor Vehicle'
    """

    PROVINCES: ClassVar[dict[str, str]] = {
        "GP": "Gauteng",
        "WC": "Western Cape",
        "KZN": "KwaZulu-Natal",
        "EC": "Eastern Cape",
        "FS": "Free State",
        "LP": "Limpopo",
        "MP": "Mpumalanga",
        "NC": "Northern Cape",
        "NW": "North West",
    }

    # Longest first so "KZN" is never shadowed by a two-letter suffix
    SUFFIX_ORDER: ClassVar[tuple[str, ...]] = tuple(
        sorted(PROVINCES, key=len, reverse=True)
    )

    VEHICLE_TYPES: ClassVar[dict[str, str]] = {
        "MV": "Motor Vehicle",
        "MC": "Motorcycle",
        "TR": "Trailer",
        "MOTOR VEHICLE": "Motor Vehicle",
        "MOTORCYCLE": "Motorcycle",
        "TRAILER": "Trailer",
        "BUS": "BUS",
        "TRUCK": "TRUCK",
        "TAXI": "TAXI",
    }

    # (pattern, order of year/month/day groups in the output)
    DATE_SHAPES: ClassVar[tuple[tuple[re.Pattern[str], str], ...]] = (
        (re.compile(r"(\d{4})[-/](\d{2})[-/](\d{2})"), "ymd"),
        (re.compile(r"(\d{2})[-/](\d{2})[-/](\d{4})"), "dmy"),
        (re.compile(r"(\d{4})-(\d{2})"), "ym"),
        (re.compile(r"(\d{2})/(\d{4})"), "my"),
    )

    def map_province_code(self, code: str | None) -> str:
        """
        Map a province code to the full province name.

        Lookup is exact and case-insensitive against the nine codes.

        Args:
            code: Raw province token.

        Returns:
            str: Full name, the input unchanged if it is not a known code,
            or "Unknown" for empty input.
        """
        if not isinstance(code, str):
            return UNKNOWN

        stripped = code.strip()
        if not stripped:
            return UNKNOWN

        return self.PROVINCES.get(stripped.upper(), code)

    def extract_province_from_license(self, license_number: str | None) -> str:
        """
        Find the province code a license number ends with.

        Args:
            license_number: License number such as "ABC123GP".

        Returns:
            str: The matching province code, or "" when none matches.
        """
        if not isinstance(license_number, str):
            return ""

        candidate = license_number.strip().upper()
        for code in self.SUFFIX_ORDER:
            if candidate.endswith(code):
                return code

        return ""

    def format_date(self, token: str | None) -> str:
        """
        Canonicalize a date token to YYYY-MM-DD or YYYY-MM.

        Recognized shapes are YYYY-MM-DD, YYYY/MM/DD, DD-MM-YYYY,
        DD/MM/YYYY, YYYY-MM and MM/YYYY. Day-first and month-first
        shapes are reordered. Anything else is returned verbatim, which
        makes the function idempotent.

        Args:
            token: Raw date token.

        Returns:
            str: Canonical date, or the input unchanged.
        """
        if not isinstance(token, str):
            return UNKNOWN

        stripped = token.strip()
        for pattern, order in self.DATE_SHAPES:
            match = pattern.fullmatch(stripped)
            if match is None:
                continue

            groups = match.groups()
            if order == "ymd":
                year, month, day = groups
            elif order == "dmy":
                day, month, year = groups
            elif order == "ym":
                year, month = groups
                return f"{year}-{month}"
            else:
                month, year = groups
                return f"{year}-{month}"
            return f"{year}-{month}-{day}"

        return token

    def map_vehicle_type(self, token: str | None) -> str:
        """
        Map a vehicle type token or abbreviation to its canonical name.

        Args:
            token: Raw vehicle type token.

        Returns:
            str: Canonical name, "Motor Vehicle" for empty input, or the
            input unchanged if it is not recognized.
        """
        if not isinstance(token, str):
            return DEFAULT_VEHICLE_TYPE

        stripped = token.strip()
        if not stripped:
            return DEFAULT_VEHICLE_TYPE

        key = " ".join(stripped.upper().split())
        return self.VEHICLE_TYPES.get(key, token)
