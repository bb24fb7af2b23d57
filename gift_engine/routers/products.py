from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from ..models import AuthenticatedUser, ProductSearchRequest, ProductSearchResponse
from ..services.errors import BadRequestError, ProductSearchError
from ..services.product_search import ProductSearchClient
from ..utils.logging import get_request_logger
from .dependencies import get_current_user, get_product_search_client, get_trace_id

router = APIRouter(prefix="/api/products", tags=["products"])
logger = logging.getLogger(__name__)


@router.post("/search", response_model=ProductSearchResponse)
async def search_products(
    request: ProductSearchRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    client: ProductSearchClient = Depends(get_product_search_client),
    trace_id: str = Depends(get_trace_id),
) -> ProductSearchResponse:
    query = request.query.strip()
    if not query:
        raise BadRequestError("query is required", reason="empty_query")

    request_logger = get_request_logger(logger, trace_id=trace_id, user_id=user.id)
    try:
        products = await client.search(
            query,
            budget_min=request.budget_min,
            budget_max=request.budget_max,
            max_results=request.max_results,
            trace_id=trace_id,
            user_id=user.id,
        )
    except ProductSearchError as exc:
        # Search is best-effort for the caller.
        request_logger.warning("Product search failed, returning no products: %s", exc)
        products = []
    return ProductSearchResponse(products=products)
