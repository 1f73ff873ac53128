"""CSV ingestion of residual events.

``parse`` turns raw CSV text into canonical rows plus a list of row-level
errors; a malformed row never stops the rest of the file. ``import_rows``
persists parsed rows, relying on the unique ``row_hash`` to make re-imports of
the same file a no-op.

Wire details that must stay stable across implementations, or re-imports stop
being idempotent:
  * header synonyms in ``HEADER_MAPPING`` (case-insensitive, trimmed)
  * hash input ``f"{mid}|{payout_month}|{volume}|{fees}"`` with numbers
    rendered the way a JavaScript runtime stringifies them (1000, not 1000.0)
"""
from __future__ import annotations

import csv
import hashlib
import io
import math
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy.orm import Session

from residuals.config import BATCH_SETTINGS, FEATURE_FLAGS, INGESTION_SETTINGS, FeatureFlags
from residuals.models.db import AssignmentStatus, ResidualEvent
from residuals.services.status_validator import validate_assignment_status
from residuals.utils import get_logger, log_business_event
from residuals.utils.chunking import chunked
from residuals.utils.time import current_month, utc_now
from residuals.utils.upsert import upsert_rows

logger = get_logger(__name__)

HEADER_MAPPING: dict[str, str] = {
    "merchant id": "mid",
    "mid": "mid",
    "merchant name": "merchant_name",
    "name": "merchant_name",
    "volume": "volume",
    "amount": "volume",
    "payouts": "fees",
    "fees": "fees",
    "commission": "fees",
    "date": "date",
    "transaction date": "date",
    "processing month": "payout_month",
    "payout month": "payout_month",
    "month": "payout_month",
}

_LEADING_NUMBER = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

_DATE_FORMATS = (
    "%m/%d/%Y",
    "%m/%d/%y",
    "%m-%d-%Y",
    "%Y/%m/%d",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y %H:%M:%S",
    "%b %d, %Y",
    "%B %d, %Y",
    "%d %b %Y",
    "%d %B %Y",
    "%Y-%m",
)


@dataclass
class ParsedCsvRow:
    mid: str
    merchant_name: str
    volume: float
    fees: float
    date: datetime
    payout_month: str
    row_hash: str
    raw_data: dict[str, Any] = field(default_factory=dict)


@dataclass
class CsvParseResult:
    rows: list[ParsedCsvRow]
    errors: list[str]


def normalize_header(header: str) -> str:
    normalized = (header or "").strip().lower()
    return HEADER_MAPPING.get(normalized, normalized)


def parse_currency(value: Any) -> float:
    """Strip ``$`` and ``,`` and parse the leading number; 0 on failure."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else 0.0
    if value is None:
        return 0.0
    cleaned = re.sub(r"[$,]", "", str(value)).strip()
    match = _LEADING_NUMBER.match(cleaned)
    if not match:
        return 0.0
    parsed = float(match.group(0))
    return parsed if math.isfinite(parsed) else 0.0


def parse_date(value: str) -> Optional[datetime]:
    """Parse a report date; None when no known format matches."""
    text = value.strip()
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        parsed = None
        for fmt in _DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_number(value: float) -> str:
    """Render a float the way ``String(number)`` does in JavaScript."""
    if math.isfinite(value) and value == int(value) and abs(value) < 1e21:
        return str(int(value))
    text = repr(value)
    if "e" in text and 1e-6 <= abs(value) < 1e21:
        # JavaScript stays positional over this range; repr switches below 1e-4
        return format(Decimal(text), "f")
    if "e" in text:
        mantissa, exponent = text.split("e")
        sign = "-" if exponent.startswith("-") else "+"
        text = f"{mantissa}e{sign}{exponent.lstrip('+-').lstrip('0') or '0'}"
    return text


def _rolling_hash(text: str) -> str:
    # 32-bit shift-and-add over UTF-16 code units; only used when no digest is available
    encoded = text.encode("utf-16-le")
    h = 0
    for i in range(0, len(encoded), 2):
        unit = encoded[i] | (encoded[i + 1] << 8)
        h = ((h << 5) - h + unit) & 0xFFFFFFFF
    if h & 0x80000000:
        h -= 1 << 32
    return format(abs(h), "x").rjust(8, "0")


def compute_row_hash(mid: str, payout_month: str, volume: float, fees: float, *, algorithm: Optional[str] = None) -> str:
    """Dedup key over ``mid|payout_month|volume|fees``.

    The digest is an opaque equality key, never security material; environments
    without the configured digest fall back to a weaker rolling hash.
    """
    hash_input = f"{mid}|{payout_month}|{format_number(volume)}|{format_number(fees)}"
    try:
        digest = hashlib.new(algorithm or INGESTION_SETTINGS["hash_algorithm"])
    except ValueError:
        logger.warning("Digest unavailable, using rolling hash", algorithm=algorithm)
        return _rolling_hash(hash_input)
    digest.update(hash_input.encode("utf-8"))
    return digest.hexdigest()


class CsvIngestor:
    """Parses residual CSV exports and persists them as ``csv_data`` rows."""

    def __init__(self, flags: FeatureFlags | None = None, *, chunk_size: int | None = None):
        self.flags = flags or FEATURE_FLAGS
        self.chunk_size = int(chunk_size or BATCH_SETTINGS["csv_import_chunk_size"])

    def parse(self, raw_text: str, *, payout_month: Optional[str] = None) -> CsvParseResult:
        rows: list[ParsedCsvRow] = []
        errors: list[str] = []

        reader = csv.reader(io.StringIO(raw_text.lstrip("\ufeff")))
        try:
            header_row = next(reader)
        except StopIteration:
            return CsvParseResult(rows=[], errors=[])
        except csv.Error as exc:
            return CsvParseResult(rows=[], errors=[str(exc)])
        headers = [normalize_header(h) for h in header_row]

        index = 0
        while True:
            try:
                values = next(reader)
            except StopIteration:
                break
            except csv.Error as exc:
                errors.append(f"Line {reader.line_num}: {exc}")
                logger.warning("CSV line unreadable", line=reader.line_num, error=str(exc))
                continue
            if not any(v.strip() for v in values):
                continue
            line_number = index + 2  # header is line 1
            index += 1

            if len(values) != len(headers):
                kind = "Too few fields" if len(values) < len(headers) else "Too many fields"
                errors.append(f"Line {line_number}: {kind}: expected {len(headers)} fields but parsed {len(values)}")
            record: dict[str, Any] = {}
            for position, header in enumerate(headers):
                record[header] = values[position] if position < len(values) else None
            if len(values) > len(headers):
                record["__parsed_extra"] = values[len(headers):]

            parsed = self._parse_record(record, line_number, payout_month, errors)
            if parsed is not None:
                rows.append(parsed)

        return CsvParseResult(rows=rows, errors=errors)

    def _parse_record(
        self,
        record: dict[str, Any],
        line_number: int,
        payout_month: Optional[str],
        errors: list[str],
    ) -> Optional[ParsedCsvRow]:
        # Keep the identifier verbatim (trimmed); numeric coercion drops leading zeros
        mid = str(record.get("mid") or "").strip()
        if not mid:
            # Blank and footer/total rows carry no merchant id
            return None

        volume = parse_currency(record.get("volume") or "0")
        fees = parse_currency(record.get("fees") or "0")

        raw_date = record.get("date") or ""
        if raw_date.strip():
            date = parse_date(raw_date)
            if date is None:
                errors.append(f'Row {line_number}: Invalid date format "{raw_date}"')
                logger.warning("CSV row dropped: invalid date", row=line_number, mid=mid, date=raw_date)
                return None
        else:
            date = utc_now()

        merchant_name = (record.get("merchant_name") or "").strip() or f"Merchant {mid}"
        month = payout_month or (record.get("payout_month") or "").strip() or current_month()

        return ParsedCsvRow(
            mid=mid,
            merchant_name=merchant_name,
            volume=volume,
            fees=fees,
            date=date,
            payout_month=month,
            row_hash=compute_row_hash(mid, month, volume, fees),
            raw_data=record,
        )

    def import_rows(
        self,
        session: Session,
        rows: Sequence[ParsedCsvRow],
        *,
        batch_id: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> tuple[str, int, int]:
        """Insert parsed rows, skipping any whose hash already exists.

        Returns ``(batch_id, inserted, duplicates)``. Commits per chunk so a
        concurrent import of overlapping rows only ever loses the race on the
        unique hash, never on a half-written chunk.
        """
        batch_id = batch_id or f"batch_{uuid.uuid4().hex[:12]}"
        status = AssignmentStatus.UNASSIGNED.value
        if self.flags.validate_status_fields:
            status = validate_assignment_status(status).value

        unique: dict[str, ParsedCsvRow] = {}
        for row in rows:
            unique.setdefault(row.row_hash, row)
        values = [
            {
                "batch_id": batch_id,
                "mid": row.mid,
                "merchant_name": row.merchant_name,
                "volume": row.volume,
                "fees": row.fees,
                "adjustments": 0.0,
                "chargebacks": 0.0,
                "date": row.date,
                "payout_month": row.payout_month,
                "row_hash": row.row_hash,
                "assignment_status": status,
                "payout_type": INGESTION_SETTINGS["default_payout_type"],
                "raw_data": row.raw_data,
                "created_at": utc_now(),
                "updated_at": utc_now(),
            }
            for row in unique.values()
        ]

        inserted = 0
        for number, chunk in chunked(values, self.chunk_size):
            inserted += upsert_rows(session, ResidualEvent, chunk, conflict_columns=["row_hash"], ignore_duplicates=True)
            session.commit()
            logger.debug("CSV import chunk committed", batch_id=batch_id, chunk=number, rows=len(chunk))

        duplicates = len(rows) - inserted
        log_business_event(
            "csv_imported",
            {"batch_id": batch_id, "rows": len(rows), "inserted": inserted, "duplicates": duplicates},
            request_id=request_id,
        )
        return batch_id, inserted, duplicates


def parse_csv(raw_text: str, *, payout_month: Optional[str] = None) -> CsvParseResult:
    return CsvIngestor().parse(raw_text, payout_month=payout_month)


__all__ = [
    "HEADER_MAPPING",
    "ParsedCsvRow",
    "CsvParseResult",
    "CsvIngestor",
    "parse_csv",
    "parse_currency",
    "parse_date",
    "compute_row_hash",
    "format_number",
    "normalize_header",
]
