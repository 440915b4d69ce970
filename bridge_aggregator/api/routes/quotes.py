"""
Quote Routes

GET /api/quotes?fromChain=ethereum&toChain=polygon&amount=100&token=usdc

Returns 200 with the aggregate, including when no provider produced a
quote (``success`` is false and ``errors`` explains why). Validation,
rate-limit and cache-store failures are mapped to 400, 429 and 503 by the
registered exception handlers.
"""

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from bridge_aggregator.api.dependencies import AggregatorDep, ClientIdentityDep
from bridge_aggregator.api.middleware.error_handler import rate_limit_headers
from bridge_aggregator.core.logging.logger import get_logger

router = APIRouter(tags=["Quotes"])
logger = get_logger(__name__)


@router.get("/quotes")
async def get_quotes(
    aggregator: AggregatorDep,
    identity: ClientIdentityDep,
    from_chain: str | None = Query(default=None, alias="fromChain"),
    to_chain: str | None = Query(default=None, alias="toChain"),
    amount: str | None = Query(default=None),
    token: str | None = Query(default="usdc"),
) -> JSONResponse:
    """Compare bridge quotes for one transfer, cheapest first."""
    result = await aggregator.get_quotes(
        from_chain, to_chain, amount, token, client_identity=identity
    )

    headers: dict[str, str] = {}
    rate_limit = result.rate_limit
    if rate_limit is not None and not rate_limit.failed_open:
        headers = rate_limit_headers(rate_limit.limit, rate_limit.remaining, rate_limit.reset_at)

    return JSONResponse(content=result.model_dump(mode="json"), headers=headers)
