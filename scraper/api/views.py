"""
Read-only operational API.

Exposes the current visible price set so operators can verify what the
guardrails let through after a recompute.
"""

import logging
import uuid

from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from scraper.models import CurrentVisiblePrice

logger = logging.getLogger(__name__)


class VisiblePricePagination(PageNumberPagination):
    page_size = 100
    page_size_query_param = "page_size"
    max_page_size = 500


def serialize_visible_price(row: CurrentVisiblePrice) -> dict:
    return {
        "id": str(row.id),
        "product_id": str(row.product_id),
        "retailer_id": str(row.retailer_id),
        "source_id": str(row.source_id) if row.source_id else None,
        "source_product_id": str(row.source_product_id),
        "price": str(row.price),
        "currency": row.currency,
        "url": row.url,
        "in_stock": row.in_stock,
        "observed_at": row.observed_at.isoformat(),
        "ingestion_run_type": row.ingestion_run_type,
        "recompute_run_label": row.recompute_run_label,
        "computed_at": row.computed_at.isoformat(),
    }


def _parse_uuid(value, name):
    try:
        return uuid.UUID(str(value)), None
    except ValueError:
        return None, Response(
            {"error": f"Invalid {name}: {value}"}, status=status.HTTP_400_BAD_REQUEST
        )


@extend_schema(
    tags=["Prices"],
    summary="List current visible prices",
    description=(
        "Prices that passed the visibility guardrails at the last recompute. "
        "Filter by product or source."
    ),
    parameters=[
        OpenApiParameter(
            name="product_id", type=str, location=OpenApiParameter.QUERY, required=False
        ),
        OpenApiParameter(
            name="source_id", type=str, location=OpenApiParameter.QUERY, required=False
        ),
        OpenApiParameter(name="page", type=int, location=OpenApiParameter.QUERY, required=False),
    ],
    responses={
        200: {
            "description": "Paginated visible prices",
            "content": {
                "application/json": {
                    "example": {
                        "count": 1,
                        "next": None,
                        "previous": None,
                        "results": [
                            {
                                "product_id": "5b0c...",
                                "price": "19.99",
                                "currency": "USD",
                                "in_stock": True,
                            }
                        ],
                    }
                }
            },
        },
        400: {"description": "Invalid filter value"},
    },
)
@api_view(["GET"])
@permission_classes([AllowAny])
def list_visible_prices(request):
    """List CurrentVisiblePrice rows, cheapest first within a product."""
    queryset = CurrentVisiblePrice.objects.all().order_by("product_id", "price", "id")

    product_id = request.query_params.get("product_id")
    if product_id:
        parsed, error = _parse_uuid(product_id, "product_id")
        if error is not None:
            return error
        queryset = queryset.filter(product_id=parsed)

    source_id = request.query_params.get("source_id")
    if source_id:
        parsed, error = _parse_uuid(source_id, "source_id")
        if error is not None:
            return error
        queryset = queryset.filter(source_id=parsed)

    paginator = VisiblePricePagination()
    page = paginator.paginate_queryset(queryset, request)
    return paginator.get_paginated_response([serialize_visible_price(row) for row in page])
