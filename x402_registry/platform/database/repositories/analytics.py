"""Reported endpoint calls in PostgreSQL."""

from datetime import datetime

import sqlalchemy as sa

from x402_registry.platform.database.engine import DbEngine
from x402_registry.platform.database.tables import endpoint_calls
from x402_registry.registry.models import CallRecord, Token


class SqlCallLog:
    """``CallLog`` backed by the append-only ``endpoint_calls`` table."""

    def __init__(self, db_engine: DbEngine) -> None:
        self._db = db_engine

    async def append(self, record: CallRecord) -> None:
        async with self._db.get_session() as session:
            await session.execute(
                sa.insert(endpoint_calls).values(
                    endpoint_id=record.endpoint_id,
                    caller=record.caller,
                    response_time=record.response_time,
                    paid=record.paid,
                    token=str(record.token),
                    called_at=record.called_at,
                )
            )

    async def calls_for(self, endpoint_ids: list[str], since: datetime | None = None) -> list[CallRecord]:
        if not endpoint_ids:
            return []
        select = (
            sa.select(endpoint_calls)
            .where(endpoint_calls.c.endpoint_id.in_(endpoint_ids))
            .order_by(endpoint_calls.c.called_at)
        )
        if since is not None:
            select = select.where(endpoint_calls.c.called_at >= since)
        async with self._db.get_session() as session:
            rows = (await session.execute(select)).fetchall()
        return [
            CallRecord(
                endpoint_id=row.endpoint_id,
                caller=row.caller,
                response_time=row.response_time,
                paid=row.paid,
                token=Token(row.token),
                called_at=row.called_at,
            )
            for row in rows
        ]
