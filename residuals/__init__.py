"""Residual reconciliation & ingestion engine.

Ingests CSV residual events, confirms them into per-partner payouts, rebuilds
deals from payout history and groups the audit log into adjustment batches.
"""

__all__: list[str] = []
