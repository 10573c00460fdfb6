"""Disease catalog offered when a patient adds a condition."""

from __future__ import annotations

from typing import Optional

DISEASE_FACTS: list[dict[str, str]] = [
    {"id": "123e4567-e89b-12d3-a456-426614174001", "name": "Type 2 Diabetes", "code": "E11.9"},
    {"id": "123e4567-e89b-12d3-a456-426614174002", "name": "Hypertension", "code": "I10"},
    {"id": "123e4567-e89b-12d3-a456-426614174003", "name": "Asthma", "code": "J45.909"},
    {"id": "123e4567-e89b-12d3-a456-426614174004", "name": "Migraine", "code": "G43.909"},
    {"id": "123e4567-e89b-12d3-a456-426614174005", "name": "Depression", "code": "F32.9"},
    {"id": "123e4567-e89b-12d3-a456-426614174006", "name": "Anxiety Disorder", "code": "F41.9"},
    {"id": "123e4567-e89b-12d3-a456-426614174007", "name": "Hypothyroidism", "code": "E03.9"},
    {"id": "123e4567-e89b-12d3-a456-426614174008", "name": "GERD", "code": "K21.9"},
    {"id": "123e4567-e89b-12d3-a456-426614174009", "name": "Chronic Kidney Disease", "code": "N18.9"},
    {"id": "123e4567-e89b-12d3-a456-426614174010", "name": "COPD", "code": "J44.9"},
]

_BY_ID = {fact["id"]: fact for fact in DISEASE_FACTS}


def get_disease_fact(disease_id: str) -> Optional[dict[str, str]]:
    return _BY_ID.get(disease_id)
