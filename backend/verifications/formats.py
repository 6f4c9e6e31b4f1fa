"""Plate normalization and format checks shared by plate registration and verification."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

US_STATES = (
    "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "FL", "GA",
    "HI", "ID", "IL", "IN", "IA", "KS", "KY", "LA", "ME", "MD",
    "MA", "MI", "MN", "MS", "MO", "MT", "NE", "NV", "NH", "NJ",
    "NM", "NY", "NC", "ND", "OH", "OK", "OR", "PA", "RI", "SC",
    "SD", "TN", "TX", "UT", "VT", "VA", "WA", "WV", "WI", "WY",
)

PLATE_MIN_LENGTH = 2
PLATE_MAX_LENGTH = 8
PLATE_CHARS_RE = re.compile(r"^[A-Z0-9\-\.]+$")
_WHITESPACE_RE = re.compile(r"\s+")

# Simplified per-state shapes; states not listed only get the generic checks.
STATE_PATTERNS = {
    "CA": re.compile(r"^[A-Z0-9]{1,7}$"),
    "NY": re.compile(r"^[A-Z0-9]{1,8}$"),
    "TX": re.compile(r"^[A-Z0-9]{1,7}$"),
    "FL": re.compile(r"^[A-Z0-9]{1,7}$"),
    "IL": re.compile(r"^[A-Z0-9]{1,7}$"),
}


@dataclass(frozen=True)
class VerificationResult:
    success: bool
    message: str
    confidence: float | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success, "message": self.message}
        if self.confidence is not None:
            payload["confidence"] = self.confidence
        if self.details:
            payload["details"] = self.details
        return payload


def normalize_plate(value: str | None) -> str:
    """Uppercase and drop every whitespace character."""
    return _WHITESPACE_RE.sub("", value or "").upper()


def normalize_state(value: str | None) -> str:
    return (value or "").strip().upper()


def validate_plate_format(plate: str, state: str) -> VerificationResult:
    clean_plate = normalize_plate(plate)
    clean_state = normalize_state(state)

    if not PLATE_MIN_LENGTH <= len(clean_plate) <= PLATE_MAX_LENGTH:
        return VerificationResult(
            success=False,
            message=(
                f"License plate must be {PLATE_MIN_LENGTH}-{PLATE_MAX_LENGTH} characters long"
            ),
        )
    if not PLATE_CHARS_RE.match(clean_plate):
        return VerificationResult(
            success=False,
            message="License plate contains invalid characters",
        )
    if clean_state not in US_STATES:
        return VerificationResult(success=False, message=f"Unknown state '{state}'")

    pattern = STATE_PATTERNS.get(clean_state)
    if pattern and not pattern.match(clean_plate):
        return VerificationResult(
            success=False,
            message=f"License plate format is not valid for {clean_state}",
        )

    return VerificationResult(
        success=True,
        message="License plate format is valid",
        confidence=0.8,
    )
