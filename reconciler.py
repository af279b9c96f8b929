"""Turns the model's product picks into presentable products.

The model is asked for JSON, but nothing guarantees it sends valid JSON or
real product ids. Picks are matched against the fetched catalog by id, and
when nothing usable survives the first catalog entries are shown instead.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional, Union
from urllib.parse import urlencode

from pydantic import BaseModel, computed_field

from catalog_fetcher import CatalogEntry

logger = logging.getLogger(__name__)

IMAGE_ORIGIN = "https://cdn-image.oliveyoung.com/"
DETAIL_BASE_URL = "https://global.oliveyoung.com/product/detail"

MAX_PRODUCTS = 4
DEFAULT_REASON = "Recommended for you."
DEFAULT_DESCRIPTION = "A custom curated look for you."

FALLBACK_REASONS = (
    "Essential for achieving that signature K-Beauty glass skin finish.",
    "A top-rated favorite known for its hydrating and soothing properties.",
    "Perfect for creating a natural, radiant look suitable for daily wear.",
    "Highly effective for enhancing skin texture and tone to match the generated look.",
)

_CODE_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)


class PresentedProduct(BaseModel):
    id: str
    name: str
    price: float
    thumbnailUrl: str
    description: str
    url: str

    @computed_field
    @property
    def price_display(self) -> str:
        return f"{self.price:.2f}"


class RecommendationResult(BaseModel):
    description: str
    products: list[PresentedProduct]


@dataclass(frozen=True)
class ParsedPayload:
    description: Optional[str] = None
    recommendations: list = field(default_factory=list)


@dataclass(frozen=True)
class Unparseable:
    reason: str


RawRecommendationPayload = Union[ParsedPayload, Unparseable]


def image_url(path: str) -> str:
    if path.startswith(("http://", "https://")):
        return path
    clean_path = path[1:] if path.startswith("/") else path
    return f"{IMAGE_ORIGIN}{clean_path}"


def detail_url(product_id: str) -> str:
    return f"{DETAIL_BASE_URL}?{urlencode({'prdtNo': product_id})}"


def parse_price(raw: str) -> float:
    """Parse an upstream price string; anything unusable or negative becomes 0."""
    try:
        price = float(raw)
    except (TypeError, ValueError):
        return 0.0
    if price != price or price < 0:  # NaN fails the first comparison
        return 0.0
    return price


def strip_code_fences(text: str) -> str:
    return _CODE_FENCE.sub("", text).strip()


def parse_payload(text: str) -> RawRecommendationPayload:
    try:
        data = json.loads(strip_code_fences(text or ""))
    except (json.JSONDecodeError, RecursionError) as e:
        return Unparseable(f"invalid JSON: {e}")
    if not isinstance(data, dict):
        return Unparseable(f"expected an object, got {type(data).__name__}")

    description = data.get("description")
    if not isinstance(description, str) or not description.strip():
        description = None
    recommendations = data.get("recommendations")
    if not isinstance(recommendations, list):
        recommendations = []
    return ParsedPayload(description=description, recommendations=recommendations)


def present(entry: CatalogEntry, reason: str) -> PresentedProduct:
    return PresentedProduct(
        id=entry.prdtNo,
        name=entry.prdtName,
        price=parse_price(entry.saleAmt),
        thumbnailUrl=image_url(entry.imagePath),
        description=reason,
        url=detail_url(entry.prdtNo),
    )


def _reason_of(item: dict) -> str:
    reason = item.get("reason")
    if isinstance(reason, str) and reason.strip():
        return reason
    return DEFAULT_REASON


def match_recommendations(recommendations: list, catalog: list[CatalogEntry]) -> list[PresentedProduct]:
    """Keep picks whose id is in the catalog, in the order the model gave them."""
    by_id = {}
    for entry in catalog:
        by_id.setdefault(entry.prdtNo, entry)

    products: list[PresentedProduct] = []
    seen: set[str] = set()
    for item in recommendations:
        if not isinstance(item, dict):
            continue
        product_id = item.get("id")
        if not isinstance(product_id, str) or product_id not in by_id or product_id in seen:
            continue
        seen.add(product_id)
        products.append(present(by_id[product_id], _reason_of(item)))
        if len(products) == MAX_PRODUCTS:
            break
    return products


def repair(catalog: list[CatalogEntry]) -> list[PresentedProduct]:
    return [
        present(entry, FALLBACK_REASONS[i % len(FALLBACK_REASONS)])
        for i, entry in enumerate(catalog[:MAX_PRODUCTS])
    ]


def reconcile(raw_payload_text: str, catalog: list[CatalogEntry]) -> RecommendationResult:
    payload = parse_payload(raw_payload_text)

    if isinstance(payload, Unparseable):
        logger.warning("Recommendation payload unusable (%s), repairing from catalog", payload.reason)
        description, products = None, []
    else:
        description = payload.description
        products = match_recommendations(payload.recommendations, catalog)
        if not products:
            logger.warning("No recommended ids matched the catalog, repairing from catalog")

    if not products:
        products = repair(catalog)

    return RecommendationResult(description=description or DEFAULT_DESCRIPTION, products=products)
