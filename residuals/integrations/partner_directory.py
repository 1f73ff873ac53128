"""Read-only client for the external partner directory (Airtable partners table).

The engine never writes to the directory; it only reads
reference <-> name mappings for the backfill and partner mirror flows. Pages are
walked with the ``pageSize``/``offset`` cursor. Each page request goes through
the process-local circuit breaker and is retried with jittered exponential
backoff on transport errors, 429 and 5xx responses. Auth failures are terminal.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import aiohttp

from residuals.config import BACKOFF_POLICY, DIRECTORY_SETTINGS, KNOWN_PARTNER_REFERENCES
from residuals.errors import DependencyError
from residuals.utils import get_logger
from residuals.utils.backoff import compute_backoff_seconds
from residuals.utils.circuit_breaker import GLOBAL_CIRCUIT_BREAKER, CircuitBreaker

logger = get_logger(__name__)

DEPENDENCY_NAME = "partner_directory"


@dataclass(frozen=True)
class DirectoryPartner:
    reference: str
    name: str
    email: str = ""
    role: str = "Partner"
    default_split_pct: float = 0.0
    status: str = "Active"

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Optional["DirectoryPartner"]:
        fields = record.get("fields") or {}
        name = fields.get("Partner Name")
        if not name or not record.get("id"):
            return None
        return cls(
            reference=record["id"],
            name=name,
            email=fields.get("Email") or "",
            role=fields.get("Role") or "Partner",
            default_split_pct=float(fields.get("Default Split %") or 0),
            status=fields.get("Status") or "Active",
        )


class _RetryableResponse(Exception):
    def __init__(self, status: int, body: str):
        super().__init__(f"Directory API error: {status}")
        self.status = status
        self.body = body


class PartnerDirectoryClient:
    """Paginated reader for the partners table."""

    def __init__(
        self,
        settings: dict[str, Any] | None = None,
        *,
        http_session: Any = None,
        breaker: CircuitBreaker | None = None,
        max_attempts: int | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.settings = {**DIRECTORY_SETTINGS, **(settings or {})}
        self._http_session = http_session
        self.breaker = breaker or GLOBAL_CIRCUIT_BREAKER
        self.max_attempts = int(max_attempts or BACKOFF_POLICY["max_attempts"])
        self._sleep = sleep

    @property
    def table_url(self) -> str:
        base = str(self.settings["base_url"]).rstrip("/")
        return f"{base}/{self.settings['base_id']}/{self.settings['partners_table_id']}"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings['api_key']}",
            "Content-Type": "application/json",
        }

    async def _get_page(self, http: Any, offset: Optional[str]) -> dict[str, Any]:
        params = {"pageSize": str(self.settings["page_size"])}
        if offset:
            params["offset"] = offset
        async with http.get(self.table_url, params=params, headers=self._headers()) as response:
            if response.status in (401, 403):
                raise DependencyError("Partner directory rejected credentials", status=response.status)
            if response.status == 429 or response.status >= 500:
                raise _RetryableResponse(response.status, await response.text())
            if response.status != 200:
                body = await response.text()
                raise DependencyError(f"Directory API error: {response.status}", status=response.status, body=body[:500])
            return await response.json()

    async def _fetch_page(self, http: Any, offset: Optional[str]) -> dict[str, Any]:
        attempts = 0
        while True:
            allow, reason = self.breaker.allow_call(DEPENDENCY_NAME)
            if not allow:
                logger.warning("Partner directory call skipped due to circuit breaker", reason=reason)
                raise DependencyError(f"Circuit breaker denies call: {reason}", dependency=DEPENDENCY_NAME)

            attempts += 1
            try:
                data = await self._get_page(http, offset)
            except DependencyError:
                self.breaker.record_failure(DEPENDENCY_NAME)
                raise
            except (aiohttp.ClientError, asyncio.TimeoutError, _RetryableResponse) as exc:
                self.breaker.record_failure(DEPENDENCY_NAME)
                if attempts >= self.max_attempts:
                    logger.error("Partner directory page failed", offset=offset, attempts=attempts, error=str(exc))
                    raise DependencyError("Partner directory unavailable", attempts=attempts, cause=str(exc)) from exc
                backoff = compute_backoff_seconds(attempts)
                logger.warning(
                    "Partner directory retry scheduled",
                    attempt=attempts,
                    backoff_seconds=round(backoff, 2),
                    error=str(exc),
                )
                await self._sleep(backoff)
                continue

            self.breaker.record_success(DEPENDENCY_NAME)
            return data

    async def _walk(self, http: Any) -> list[DirectoryPartner]:
        partners: list[DirectoryPartner] = []
        offset: Optional[str] = None
        page = 0
        while True:
            data = await self._fetch_page(http, offset)
            records = data.get("records") or []
            page += 1
            for record in records:
                partner = DirectoryPartner.from_record(record)
                if partner is not None:
                    partners.append(partner)
            offset = data.get("offset")
            logger.debug("Partner directory page fetched", page=page, records=len(records), has_more=bool(offset))
            if not offset:
                break
        partners.sort(key=lambda p: p.name)
        return partners

    async def fetch_all(self) -> list[DirectoryPartner]:
        """Every directory record that has a partner name, sorted by name."""
        if not self.settings.get("api_key") or not self.settings.get("base_id"):
            raise DependencyError("Partner directory not configured")

        if self._http_session is not None:
            partners = await self._walk(self._http_session)
        else:
            timeout = aiohttp.ClientTimeout(total=float(self.settings["timeout_seconds"]))
            async with aiohttp.ClientSession(timeout=timeout) as http:
                partners = await self._walk(http)

        logger.info("Partner directory loaded", partners=len(partners))
        return partners


def build_name_map(partners: list[DirectoryPartner]) -> dict[str, str]:
    """Name -> reference lookup with exact and lower-cased keys plus static entries."""
    name_map: dict[str, str] = {}
    for partner in partners:
        name_map[partner.name] = partner.reference
        name_map[partner.name.lower().strip()] = partner.reference
    name_map.update(KNOWN_PARTNER_REFERENCES)
    return name_map


__all__ = ["DirectoryPartner", "PartnerDirectoryClient", "build_name_map", "DEPENDENCY_NAME"]
