"""Endpoint records in PostgreSQL."""

from datetime import datetime
from typing import Any

import sqlalchemy as sa

from x402_registry.platform.database.engine import DbEngine
from x402_registry.platform.database.tables import endpoints
from x402_registry.registry.endpoints import EndpointOrder, EndpointQuery
from x402_registry.registry.models import Endpoint, EndpointStats, Token, utc_now_iso

_ORDER_COLUMNS = {
    EndpointOrder.TRENDING: endpoints.c.calls_24h,
    EndpointOrder.NEWEST: endpoints.c.created_at,
}


def _row_to_endpoint(row: Any) -> Endpoint:
    return Endpoint(
        id=row.id,
        url=row.url,
        name=row.name,
        description=row.description or "",
        owner=row.owner,
        price=row.price,
        token=Token(row.token),
        tags=tuple(row.tags or ()),
        category=row.category or "utility",
        open_api_spec=row.open_api_spec,
        verified=bool(row.verified),
        created_at=row.created_at.isoformat(),
        updated_at=row.updated_at.isoformat(),
        stats=EndpointStats(
            total_calls=row.total_calls,
            calls_24h=row.calls_24h,
            revenue_24h=row.revenue_24h,
            avg_response_time=row.avg_response_time,
            uptime=row.uptime,
            last_checked=row.last_checked.isoformat() if row.last_checked else utc_now_iso(),
        ),
    )


def _filters(query: EndpointQuery) -> list[sa.ColumnElement[bool]]:
    clauses = []
    if query.category:
        clauses.append(endpoints.c.category == query.category)
    if query.token:
        clauses.append(endpoints.c.token == query.token)
    if query.q:
        pattern = f"%{query.q}%"
        clauses.append(sa.or_(endpoints.c.name.ilike(pattern), endpoints.c.description.ilike(pattern)))
    return clauses


class SqlEndpointRepository:
    """``EndpointRepository`` backed by the ``endpoints`` table."""

    def __init__(self, db_engine: DbEngine) -> None:
        self._db = db_engine

    async def insert_endpoint(self, endpoint: Endpoint) -> None:
        async with self._db.get_session() as session:
            await session.execute(
                sa.insert(endpoints).values(
                    id=endpoint.id,
                    url=endpoint.url,
                    name=endpoint.name,
                    description=endpoint.description,
                    owner=endpoint.owner,
                    price=endpoint.price,
                    token=str(endpoint.token),
                    tags=list(endpoint.tags),
                    category=endpoint.category,
                    open_api_spec=endpoint.open_api_spec,
                    verified=endpoint.verified,
                    created_at=datetime.fromisoformat(endpoint.created_at),
                    updated_at=datetime.fromisoformat(endpoint.updated_at),
                    total_calls=endpoint.stats.total_calls,
                    calls_24h=endpoint.stats.calls_24h,
                    revenue_24h=endpoint.stats.revenue_24h,
                    avg_response_time=endpoint.stats.avg_response_time,
                    uptime=endpoint.stats.uptime,
                    last_checked=datetime.fromisoformat(endpoint.stats.last_checked),
                )
            )

    async def get_endpoint(self, endpoint_id: str) -> Endpoint | None:
        async with self._db.get_session() as session:
            result = await session.execute(sa.select(endpoints).where(endpoints.c.id == endpoint_id))
            row = result.first()
        return _row_to_endpoint(row) if row else None

    async def search_endpoints(self, query: EndpointQuery) -> tuple[list[Endpoint], int]:
        clauses = _filters(query)
        select = (
            sa.select(endpoints)
            .where(*clauses)
            .order_by(endpoints.c.calls_24h.desc(), endpoints.c.created_at)
            .limit(query.limit)
            .offset(query.offset)
        )
        count = sa.select(sa.func.count()).select_from(endpoints).where(*clauses)

        async with self._db.get_session() as session:
            rows = (await session.execute(select)).fetchall()
            total = (await session.execute(count)).scalar() or 0
        return [_row_to_endpoint(row) for row in rows], total

    async def list_endpoints(
        self, order: EndpointOrder, limit: int, category: str | None = None
    ) -> list[Endpoint]:
        select = sa.select(endpoints).order_by(_ORDER_COLUMNS[order].desc()).limit(limit)
        if category is not None:
            select = select.where(endpoints.c.category == category)
        async with self._db.get_session() as session:
            rows = (await session.execute(select)).fetchall()
        return [_row_to_endpoint(row) for row in rows]

    async def list_categories(self) -> list[str]:
        select = sa.select(endpoints.c.category).distinct().order_by(endpoints.c.category)
        async with self._db.get_session() as session:
            result = await session.execute(select)
            return [row.category for row in result.fetchall()]

    async def count_endpoints(self) -> int:
        async with self._db.get_session() as session:
            result = await session.execute(sa.select(sa.func.count()).select_from(endpoints))
            return result.scalar() or 0

    async def total_calls_24h(self) -> int:
        select = sa.select(sa.func.coalesce(sa.func.sum(endpoints.c.calls_24h), 0))
        async with self._db.get_session() as session:
            result = await session.execute(select)
            return int(result.scalar() or 0)

    async def owned_endpoint_ids(self, owner: str) -> list[str]:
        select = sa.select(endpoints.c.id).where(endpoints.c.owner == owner).order_by(endpoints.c.created_at)
        async with self._db.get_session() as session:
            result = await session.execute(select)
            return [row.id for row in result.fetchall()]

    async def update_endpoint(self, endpoint_id: str, changes: dict[str, Any]) -> Endpoint | None:
        values = dict(changes)
        if "tags" in values:
            values["tags"] = list(values["tags"])
        if "updated_at" in values:
            values["updated_at"] = datetime.fromisoformat(values["updated_at"])

        async with self._db.get_session() as session:
            result = await session.execute(
                sa.update(endpoints).where(endpoints.c.id == endpoint_id).values(**values).returning(endpoints)
            )
            row = result.first()
        return _row_to_endpoint(row) if row else None

    async def delete_endpoint(self, endpoint_id: str) -> bool:
        async with self._db.get_session() as session:
            result = await session.execute(sa.delete(endpoints).where(endpoints.c.id == endpoint_id))
            return bool(result.rowcount)  # type: ignore[attr-defined]
