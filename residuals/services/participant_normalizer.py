"""Participant normalization.

Folds the historical participant shapes (``partner_id`` / ``partner_airtable_id``,
``name`` / ``partner_name``, ``role`` / ``partner_role``, ``split`` /
``split_pct``) into one canonical ``NormalizedParticipant`` and applies the
fixed role overrides for the two Lumino legal entities.

There is no failure path: the function also runs over already-stored legacy
data, so missing or malformed fields degrade to defaults.
"""
from __future__ import annotations

import math
from typing import Any, Iterable, Mapping

from pydantic import BaseModel

from residuals.config import INGESTION_SETTINGS
from residuals.models.schemas.participants import NormalizedParticipant

DEFAULT_ROLE = INGESTION_SETTINGS["default_participant_role"]


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def _first_truthy(record: Mapping[str, Any], *keys: str) -> str:
    for key in keys:
        value = _text(record.get(key))
        if value:
            return value
    return ""


def _split(record: Mapping[str, Any]) -> float:
    # Unlike the text fields, an explicit 0 split wins over the legacy alias
    for key in ("split_pct", "split"):
        value = record.get(key)
        if value is None:
            continue
        try:
            parsed = float(value)
        except (TypeError, ValueError):
            return 0.0
        return parsed if math.isfinite(parsed) else 0.0
    return 0.0


def normalize_role(partner_name: str, current_role: str) -> str:
    lowered = partner_name.lower()
    if "lumino income fund" in lowered:
        return "Fund I"
    if "lumino (company)" in lowered or lowered.strip() == "lumino":
        return "Company"
    return current_role or DEFAULT_ROLE


def normalize_participant(raw: Mapping[str, Any] | BaseModel | None) -> NormalizedParticipant:
    if isinstance(raw, BaseModel):
        record: Mapping[str, Any] = raw.model_dump()
    elif isinstance(raw, Mapping):
        record = raw
    else:
        record = {}

    name = _first_truthy(record, "partner_name", "name")
    raw_role = _first_truthy(record, "partner_role", "role") or DEFAULT_ROLE
    return NormalizedParticipant(
        partner_airtable_id=_first_truthy(record, "partner_airtable_id", "partner_id").strip(),
        partner_name=name,
        partner_role=normalize_role(name, raw_role),
        split_pct=_split(record),
    )


def normalize_participants(raw_participants: Iterable[Any] | None) -> list[NormalizedParticipant]:
    return [normalize_participant(p) for p in (raw_participants or [])]


__all__ = ["normalize_participant", "normalize_participants", "normalize_role"]
