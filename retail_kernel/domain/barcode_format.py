"""
Barcode format -- composition, validation and parsing of registry barcodes.

Responsibility:
    Defines the canonical barcode shape ``PREFIX + {U|P} + NNNNNN`` minted by
    the registry, validates candidate strings against the CODE128-compatible
    character set and that shape, and parses barcodes back into their parts.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - compose_barcode never produces a string that fails validate_code128;
      counters that would need more than COUNTER_WIDTH digits are refused
      with BarcodeCounterOverflowError instead of silently widening.
    - validate_code128 and parse_barcode_info never raise on bad input.

Failure modes:
    - BarcodeCounterOverflowError from compose_barcode.
    - BarcodeFormatError from BarcodeValidationResult.raise_if_invalid().
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from retail_kernel.exceptions import BarcodeCounterOverflowError, BarcodeFormatError

FORMAT_CODE128 = "CODE128"
FORMAT_INVALID = "INVALID"

COUNTER_WIDTH = 6
MAX_COUNTER = 10**COUNTER_WIDTH - 1

MIN_LENGTH = 4
MAX_LENGTH = 25

_PRINTABLE_MIN = 0x20
_PRINTABLE_MAX = 0x7E

CANONICAL_PATTERN = re.compile(r"^([A-Z]+)([UP])(\d{6})$")


class BarcodeType(str, Enum):
    """Counter namespace a barcode is drawn from."""

    UNIT = "unit"
    PRODUCT = "product"

    @property
    def type_code(self) -> str:
        return "U" if self is BarcodeType.UNIT else "P"


class EntityType(str, Enum):
    """Kind of domain object a barcode identifies."""

    PRODUCT = "product"
    PRODUCT_UNIT = "product_unit"


UNKNOWN_TYPE = "unknown"


@dataclass(frozen=True)
class BarcodeValidationResult:
    """Outcome of validate_code128. Errors are accumulated, never raised."""

    is_valid: bool
    format: str
    errors: tuple[str, ...] = field(default_factory=tuple)

    def raise_if_invalid(self, barcode: object) -> None:
        """Escalate an invalid result for callers that need hard failure."""
        if not self.is_valid:
            raise BarcodeFormatError(barcode, list(self.errors))


@dataclass(frozen=True)
class ParsedBarcode:
    """Parts of a canonical barcode. ``type`` is 'unit', 'product' or 'unknown'."""

    prefix: str
    type: str
    counter: int
    is_valid: bool


def compose_barcode(prefix: str, barcode_type: BarcodeType | str, counter: int) -> str:
    """
    Build ``prefix + type code + zero-padded counter``.

    Raises:
        BarcodeCounterOverflowError: counter does not fit COUNTER_WIDTH digits.
    """
    barcode_type = BarcodeType(barcode_type)
    if counter < 0 or counter > MAX_COUNTER:
        raise BarcodeCounterOverflowError(barcode_type.value, counter, MAX_COUNTER)
    return f"{prefix}{barcode_type.type_code}{counter:0{COUNTER_WIDTH}d}"


def validate_code128(barcode: object) -> BarcodeValidationResult:
    """
    Validate a barcode against the CODE128 character set and canonical shape.

    Every applicable violation is reported.  Non-string or empty input yields a
    single error since no further check is meaningful.
    """
    if not isinstance(barcode, str) or not barcode:
        return BarcodeValidationResult(
            is_valid=False,
            format=FORMAT_INVALID,
            errors=("Barcode must be a non-empty string",),
        )

    errors: list[str] = []

    if len(barcode) < MIN_LENGTH or len(barcode) > MAX_LENGTH:
        errors.append(
            f"Barcode length must be between {MIN_LENGTH} and {MAX_LENGTH} characters"
        )

    invalid_chars = [
        ch for ch in barcode if not _PRINTABLE_MIN <= ord(ch) <= _PRINTABLE_MAX
    ]
    if invalid_chars:
        rendered = ", ".join(repr(ch) for ch in invalid_chars)
        errors.append(f"Invalid characters found: {rendered}")

    if not CANONICAL_PATTERN.match(barcode):
        errors.append("Barcode does not follow PREFIX[U|P]NNNNNN format")

    return BarcodeValidationResult(
        is_valid=not errors,
        format=FORMAT_CODE128,
        errors=tuple(errors),
    )


def parse_barcode_info(barcode: object) -> ParsedBarcode:
    """Inverse of compose_barcode. Returns is_valid=False for anything else."""
    if not validate_code128(barcode).is_valid:
        return ParsedBarcode(prefix="", type=UNKNOWN_TYPE, counter=0, is_valid=False)

    match = CANONICAL_PATTERN.match(barcode)  # type: ignore[arg-type]
    prefix, type_code, digits = match.groups()
    barcode_type = BarcodeType.UNIT if type_code == "U" else BarcodeType.PRODUCT
    return ParsedBarcode(
        prefix=prefix,
        type=barcode_type.value,
        counter=int(digits),
        is_valid=True,
    )
