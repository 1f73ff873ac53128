"""Core application configuration & tunable rules.

Batch sizes, ingestion constants, feature flags for the legacy -> normalized
schema rollout and the partner directory client settings are centralized here
so they can be adjusted without diving into service logic. Values are read from
the environment once at import; components never read the flag globals
directly, they receive a ``FeatureFlags`` instance at construction.
"""
from __future__ import annotations

import os
from dataclasses import dataclass


def _env_true(name: str) -> bool:
	return os.getenv(name, "").strip().lower() == "true"


# ----------------------------- Feature Flags ------------------------------ #
# Rollout order:
#   1. validate_status_fields       (on unless explicitly "false")
#   2. dual_write_deal_participants (participants_json + deal_participants)
#   3. write_partner_id_to_payouts  (normalized partner uuid on payouts)
#   4. read_from_normalized_tables  (final step, only after consistency check)
@dataclass(frozen=True)
class FeatureFlags:
	dual_write_deal_participants: bool = False
	write_partner_id_to_payouts: bool = False
	read_from_normalized_tables: bool = False
	validate_status_fields: bool = True

	@classmethod
	def from_env(cls) -> "FeatureFlags":
		return cls(
			dual_write_deal_participants=_env_true("FEATURE_DUAL_WRITE_PARTICIPANTS"),
			write_partner_id_to_payouts=_env_true("FEATURE_WRITE_PARTNER_ID"),
			read_from_normalized_tables=_env_true("FEATURE_READ_NORMALIZED"),
			validate_status_fields=os.getenv("FEATURE_VALIDATE_STATUS", "").strip().lower() != "false",
		)


FEATURE_FLAGS: FeatureFlags = FeatureFlags.from_env()

# ------------------------------- Batching --------------------------------- #
# Chunks are processed sequentially and independently; a failed chunk is
# reported and the next one still runs.
BATCH_SETTINGS: dict[str, int] = {
	"deal_reconstruction_batch_size": int(os.getenv("DEAL_RECONSTRUCTION_BATCH_SIZE", "50")),
	"bulk_reject_chunk_size": 100,
	"mass_mark_paid_chunk_size": 100,
	"csv_import_chunk_size": 500,
}

# ------------------------------- Ingestion -------------------------------- #
INGESTION_SETTINGS: dict[str, str] = {
	"hash_algorithm": os.getenv("ROW_HASH_ALGORITHM", "sha256"),
	"default_payout_type": "residual",
	"default_participant_role": "Partner",
}

# --------------------------- Partner Directory ---------------------------- #
DIRECTORY_SETTINGS: dict[str, str | int | float | None] = {
	"base_url": os.getenv("DIRECTORY_BASE_URL", "https://api.airtable.com/v0"),
	"base_id": os.getenv("AIRTABLE_BASE_ID") or None,
	"partners_table_id": os.getenv("DIRECTORY_PARTNERS_TABLE", "tbl4Ea0fxLzlGpuUd"),
	"api_key": os.getenv("AIRTABLE_API_KEY") or None,
	"page_size": 100,
	"timeout_seconds": float(os.getenv("DIRECTORY_TIMEOUT_SECONDS", "10")),
}

# Static name -> reference mappings for partners that never lived in the
# directory. Keys are matched exactly and lower-cased.
KNOWN_PARTNER_REFERENCES: dict[str, str] = {
	"Lumino (Company)": "lumino-company",
	"lumino (company)": "lumino-company",
}

# ----------------------------- Circuit Breaker ---------------------------- #
CIRCUIT_BREAKER: dict[str, int | float] = {
	"failure_threshold": 5,          # Consecutive failures before OPEN
	"open_cooldown_seconds": 300,    # Stay OPEN for 5 minutes
	"half_open_probe_count": 3,      # Probes allowed in HALF_OPEN
}

# --------------------------------- Backoff -------------------------------- #
BACKOFF_POLICY: dict[str, int | float] = {
	"base_seconds": 1,
	"factor": 2,
	"max_seconds": 30,
	"max_attempts": 3,
	"jitter_pct": 0.10,   # +/-10% jitter
}

__all__ = [
	"FeatureFlags",
	"FEATURE_FLAGS",
	"BATCH_SETTINGS",
	"INGESTION_SETTINGS",
	"DIRECTORY_SETTINGS",
	"KNOWN_PARTNER_REFERENCES",
	"CIRCUIT_BREAKER",
	"BACKOFF_POLICY",
]
