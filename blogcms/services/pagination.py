import math
from typing import Callable, Sequence

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from blogcms.schemas import PaginatedResponse


async def paginate(
    db: AsyncSession,
    filtered: Select,
    page: int,
    page_size: int,
    serialize: Callable,
    order_by: Sequence = (),
    options: Sequence = (),
) -> PaginatedResponse:
    """
    Run *filtered* as a COUNT plus one LIMIT/OFFSET page.

    *filtered* must be a plain ``select(Model).where(...)``; ordering and
    eager-loading options are applied only to the page query so the
    COUNT stays a cheap subquery.
    """
    count_q = select(func.count()).select_from(filtered.subquery())
    total: int = (await db.execute(count_q)).scalar_one()

    page_q = (
        filtered.options(*options)
        .order_by(*order_by)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    rows = (await db.execute(page_q)).unique().scalars().all()

    return PaginatedResponse(
        items=[serialize(r) for r in rows],
        total=total,
        page=page,
        page_size=page_size,
        pages=math.ceil(total / page_size) if total > 0 else 0,
    )
