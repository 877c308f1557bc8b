"""Usage and revenue analytics for endpoint owners.

Providers report each call they serve; owners read back aggregates scoped to
the endpoints they registered.
"""

import logging
import re
from collections import defaultdict
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

from x402_registry.registry.endpoints import EndpointService
from x402_registry.registry.errors import NotAuthorizedError, ValidationError
from x402_registry.registry.models import CallRecord, RecordCallRequest, Token

logger = logging.getLogger(__name__)

DEFAULT_PERIOD = timedelta(days=7)
TOP_ENDPOINTS = 10
TOP_CALLERS = 50

_PERIOD = re.compile(r"^(\d+)([hdwm])$")
_PERIOD_UNITS = {
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
    "m": timedelta(days=30),
}


def parse_period(period: str | None) -> timedelta:
    """Parse ``24h``, ``7d``, ``4w`` or ``3m``; anything else means seven days."""
    match = _PERIOD.match(period or "")
    if match is None:
        return DEFAULT_PERIOD
    return int(match.group(1)) * _PERIOD_UNITS[match.group(2)]


class CallLog(Protocol):
    async def append(self, record: CallRecord) -> None: ...

    async def calls_for(self, endpoint_ids: list[str], since: datetime | None = None) -> list[CallRecord]: ...


class InMemoryCallLog:
    def __init__(self) -> None:
        self._records: list[CallRecord] = []

    async def append(self, record: CallRecord) -> None:
        self._records.append(record)

    async def calls_for(self, endpoint_ids: list[str], since: datetime | None = None) -> list[CallRecord]:
        wanted = set(endpoint_ids)
        return [
            r for r in self._records if r.endpoint_id in wanted and (since is None or r.called_at >= since)
        ]


def _average(values: list[int]) -> int:
    return round(sum(values) / len(values)) if values else 0


class AnalyticsService:
    def __init__(self, call_log: CallLog, endpoints: EndpointService):
        self._call_log = call_log
        self._endpoints = endpoints

    async def record_call(self, payload: RecordCallRequest) -> CallRecord:
        """Append one served call to the log.

        Raises:
            ValidationError: If endpointId or caller is missing
            NotFoundError: If the endpoint is not registered
        """
        missing = [
            name for name, value in (("endpointId", payload.endpoint_id), ("caller", payload.caller)) if not value
        ]
        if missing:
            raise ValidationError("Required: endpointId, caller", fields=missing)
        assert payload.endpoint_id and payload.caller

        endpoint = await self._endpoints.get(payload.endpoint_id)
        record = CallRecord(
            endpoint_id=endpoint.id,
            caller=payload.caller,
            response_time=payload.response_time,
            paid=payload.paid,
            token=payload.token or endpoint.token or Token.SBTC,
        )
        await self._call_log.append(record)
        logger.debug(f"Call recorded for {endpoint.id} from {record.caller}")
        return record

    async def my_endpoints(self, owner: str) -> dict[str, Any]:
        endpoint_ids = await self._endpoints.owned_by(owner)
        records = await self._call_log.calls_for(endpoint_ids)
        day_ago = datetime.now(UTC) - timedelta(hours=24)

        by_endpoint: dict[str, list[CallRecord]] = defaultdict(list)
        for record in records:
            by_endpoint[record.endpoint_id].append(record)

        rows = []
        for endpoint_id in endpoint_ids:
            calls = by_endpoint.get(endpoint_id, [])
            recent = [r for r in calls if r.called_at >= day_ago]
            rows.append(
                {
                    "endpointId": endpoint_id,
                    "totalCalls": len(calls),
                    "calls24h": len(recent),
                    "totalRevenue": sum(r.paid for r in calls),
                    "revenue24h": sum(r.paid for r in recent),
                    "avgResponseTime": _average([r.response_time for r in calls]),
                }
            )

        return {
            "owner": owner,
            "endpoints": rows,
            "summary": {
                "totalEndpoints": len(rows),
                "totalCalls": sum(row["totalCalls"] for row in rows),
                "calls24h": sum(row["calls24h"] for row in rows),
                "totalRevenue": sum(row["totalRevenue"] for row in rows),
                "revenue24h": sum(row["revenue24h"] for row in rows),
            },
        }

    async def revenue(self, owner: str, period: str | None = None) -> dict[str, Any]:
        window = parse_period(period)
        since = datetime.now(UTC) - window
        endpoint_ids = await self._endpoints.owned_by(owner)
        records = await self._call_log.calls_for(endpoint_ids, since=since)

        daily: dict[str, dict[str, Any]] = {}
        per_endpoint: dict[str, dict[str, int]] = defaultdict(lambda: {"calls": 0, "revenue": 0})
        totals = {str(token): 0 for token in (Token.SBTC, Token.STX, Token.USDH)}
        for record in records:
            day = record.called_at.date().isoformat()
            bucket = daily.setdefault(day, {"date": day, **{token: 0 for token in totals}})
            bucket[str(record.token)] += record.paid
            totals[str(record.token)] += record.paid
            per_endpoint[record.endpoint_id]["calls"] += 1
            per_endpoint[record.endpoint_id]["revenue"] += record.paid

        top = sorted(per_endpoint.items(), key=lambda item: item[1]["revenue"], reverse=True)
        return {
            "period": period or "7d",
            "since": since.isoformat(),
            "dailyRevenue": [daily[day] for day in sorted(daily)],
            "topEndpoints": [{"endpointId": eid, **figures} for eid, figures in top[:TOP_ENDPOINTS]],
            "totals": totals,
            "totalCalls": len(records),
        }

    async def callers(self, owner: str, endpoint_id: str | None = None) -> dict[str, Any]:
        """Top callers across the owner's endpoints, or of one of them.

        Raises:
            NotAuthorizedError: If ``endpoint_id`` belongs to someone else
        """
        endpoint_ids = await self._endpoints.owned_by(owner)
        if endpoint_id is not None:
            if endpoint_id not in endpoint_ids:
                raise NotAuthorizedError()
            endpoint_ids = [endpoint_id]
        records = await self._call_log.calls_for(endpoint_ids)

        by_caller: dict[str, list[CallRecord]] = defaultdict(list)
        for record in records:
            by_caller[record.caller].append(record)

        ranked = sorted(by_caller.items(), key=lambda item: len(item[1]), reverse=True)
        return {
            "endpoint": endpoint_id or "all",
            "uniqueCallers": len(by_caller),
            "topCallers": [
                {
                    "address": address,
                    "calls": len(calls),
                    "totalPaid": sum(r.paid for r in calls),
                    "avgResponseTime": _average([r.response_time for r in calls]),
                    "lastSeen": max(r.called_at for r in calls).isoformat(),
                }
                for address, calls in ranked[:TOP_CALLERS]
            ],
        }
