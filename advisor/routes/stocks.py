from __future__ import annotations
"""
Advisor — Stocks Route
=======================
Paginated view over the cached market snapshot.
"""
from fastapi import APIRouter, Depends, Query

from advisor.services import AdvisorServices, get_services

router = APIRouter()


@router.get("/api/stocks/all")
async def list_stocks(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=500),
    services: AdvisorServices = Depends(get_services),
):
    rows = await services.market.snapshot()
    start = (page - 1) * limit
    return {
        "total": len(rows),
        "page": page,
        "limit": limit,
        "results": [row.to_dict() for row in rows[start:start + limit]],
    }
