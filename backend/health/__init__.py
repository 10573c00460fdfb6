"""Health record domain rules: abnormal-value classification and the disease catalog."""

from health.catalog import DISEASE_FACTS, get_disease_fact
from health.reference_ranges import (
    Classification,
    classify_lab,
    classify_vital,
    default_vital_unit,
    parse_reference_range,
    validate_vital,
)

__all__ = [
    "DISEASE_FACTS",
    "get_disease_fact",
    "Classification",
    "classify_lab",
    "classify_vital",
    "default_vital_unit",
    "parse_reference_range",
    "validate_vital",
]
