"""
Abnormal-value classification for lab results and vital signs.

Lab results carry their own printed reference range ("10-20", "<5", ">100").
Vital signs are checked against fixed adult thresholds.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional


@dataclass
class Classification:
    is_abnormal: bool
    severity: Optional[str] = None  # "medium" | "high" when abnormal


@dataclass
class ParsedRange:
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    # "between" for min-max, "below" for <x, "above" for >x
    shape: str = "between"


NORMAL = Classification(is_abnormal=False, severity=None)

_NUMBER = r"(-?\d+(?:\.\d+)?)"
_BETWEEN = re.compile(rf"^{_NUMBER}\s*-\s*{_NUMBER}$")
_BELOW = re.compile(rf"^<\s*{_NUMBER}$")
_ABOVE = re.compile(rf"^>\s*{_NUMBER}$")


def parse_reference_range(text: Optional[str]) -> Optional[ParsedRange]:
    """Parse a printed reference range. Returns None when it cannot be read."""
    if not text:
        return None
    cleaned = text.strip().lower()

    m = _BETWEEN.match(cleaned)
    if m:
        low, high = float(m.group(1)), float(m.group(2))
        if low > high:
            low, high = high, low
        return ParsedRange(min_value=low, max_value=high, shape="between")

    m = _BELOW.match(cleaned)
    if m:
        return ParsedRange(max_value=float(m.group(1)), shape="below")

    m = _ABOVE.match(cleaned)
    if m:
        return ParsedRange(min_value=float(m.group(1)), shape="above")

    return None


def classify_lab(value: Optional[float], reference_range: Optional[str]) -> Classification:
    """Classify a lab value against its printed reference range.

    For a min-max range the severity is "high" when the distance to the
    farther bound exceeds half the range width; every other abnormal
    shape is "medium".
    """
    if value is None:
        return NORMAL
    rr = parse_reference_range(reference_range)
    if rr is None:
        return NORMAL

    if rr.shape == "below":
        if value >= rr.max_value:
            return Classification(True, "medium")
        return NORMAL

    if rr.shape == "above":
        if value <= rr.min_value:
            return Classification(True, "medium")
        return NORMAL

    if rr.min_value <= value <= rr.max_value:
        return NORMAL
    width = rr.max_value - rr.min_value
    deviation = max(abs(value - rr.min_value), abs(value - rr.max_value))
    return Classification(True, "high" if deviation > width * 0.5 else "medium")


# Default display units per vital type
_VITAL_UNITS = {
    "blood_pressure": "mmHg",
    "heart_rate": "bpm",
    "temperature": "°F",
    "weight": "lbs",
    "height": "in",
    "bmi": "kg/m²",
    "oxygen_saturation": "%",
    "respiratory_rate": "breaths/min",
}

# Values outside these bounds are rejected as data-entry errors
_PLAUSIBLE_LIMITS = {
    "heart_rate": (20.0, 300.0, "Heart rate must be between 20-300 bpm"),
    "temperature": (90.0, 110.0, "Temperature must be between 90-110°F"),
    "oxygen_saturation": (0.0, 100.0, "Oxygen saturation must be between 0-100%"),
    "weight": (0.0, 1000.0, "Please enter a valid weight"),
}


def default_vital_unit(vital_type: str) -> str:
    return _VITAL_UNITS.get(vital_type, "")


def validate_vital(
    vital_type: str,
    value: Optional[float] = None,
    systolic: Optional[float] = None,
    diastolic: Optional[float] = None,
) -> None:
    """Raise ValueError when a vital reading is missing or implausible."""
    if vital_type == "blood_pressure":
        if systolic is None or diastolic is None:
            raise ValueError("Please enter both systolic and diastolic values")
        if systolic < 40 or systolic > 300 or diastolic < 20 or diastolic > 200:
            raise ValueError("Blood pressure values are outside the plausible range")
        if systolic <= diastolic:
            raise ValueError("Systolic pressure must be greater than diastolic pressure")
        return

    if value is None:
        raise ValueError(f"A value is required for {vital_type}")
    limits = _PLAUSIBLE_LIMITS.get(vital_type)
    if limits is not None:
        low, high, message = limits
        if value < low or value > high:
            raise ValueError(message)


def classify_vital(
    vital_type: str,
    value: Optional[float] = None,
    systolic: Optional[float] = None,
    diastolic: Optional[float] = None,
) -> Classification:
    """Classify a vital sign reading against adult thresholds."""
    if vital_type == "blood_pressure":
        if systolic is None or diastolic is None:
            return NORMAL
        abnormal = systolic >= 140 or diastolic >= 90 or systolic < 90 or diastolic < 60
        if not abnormal:
            return NORMAL
        severe = systolic >= 180 or diastolic >= 110 or systolic < 80 or diastolic < 50
        return Classification(True, "high" if severe else "medium")

    if value is None:
        return NORMAL

    if vital_type == "heart_rate":
        if 60 <= value <= 100:
            return NORMAL
        return Classification(True, "high" if value < 50 or value > 120 else "medium")

    if vital_type == "temperature":
        if 97 <= value <= 99:
            return NORMAL
        return Classification(True, "high" if value >= 102 or value < 95 else "medium")

    if vital_type == "oxygen_saturation":
        if value >= 95:
            return NORMAL
        return Classification(True, "high" if value < 90 else "medium")

    if vital_type == "respiratory_rate":
        if 12 <= value <= 20:
            return NORMAL
        return Classification(True, "medium")

    if vital_type == "bmi":
        if 18.5 <= value <= 24.9:
            return NORMAL
        return Classification(True, "medium")

    # weight, height
    return NORMAL
