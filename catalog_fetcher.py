"""Best-seller catalog retrieval through public CORS relays.

The upstream listing cannot be fetched from a browser directly, so the
request goes through a short, ordered list of third-party relays. Relays are
tried one after another and the first one that yields usable entries wins.
When every relay fails a small embedded sample catalog is returned instead,
so callers always get at least one entry back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ConfigDict, field_validator

import config

logger = logging.getLogger(__name__)

TARGET_URL = "https://global.oliveyoung.com/display/product/best-seller/order-best"

# Ordered by reliability; "{url}" receives the percent-encoded target URL
RELAY_TEMPLATES = (
    "https://corsproxy.io/?{url}",
    "https://api.codetabs.com/v1/proxy?quest={url}",
    "https://api.allorigins.win/raw?url={url}",
)

MAX_CATALOG_ENTRIES = 50


class CatalogEntry(BaseModel):
    """One product as the upstream listing describes it."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    prdtNo: str
    prdtName: str
    saleAmt: str = "0"
    imagePath: str = ""

    @field_validator("prdtNo", "prdtName", "saleAmt", "imagePath", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> str:
        return "" if value is None else str(value)


FALLBACK_CATALOG = (
    CatalogEntry(
        prdtName="COSRX Advanced Snail 96 Mucin Power Essence 100ml",
        prdtNo="GA210410161",
        saleAmt="19.00",
        imagePath="https://image.oliveyoung.com/uploads/images/goods/550/10/0000/0014/A00000014557907ko.jpg?l=ko",
    ),
    CatalogEntry(
        prdtName="Round Lab 1025 Dokdo Toner 200ml",
        prdtNo="GA210001004",
        saleAmt="17.00",
        imagePath="https://image.oliveyoung.com/uploads/images/goods/550/10/0000/0012/A00000012727605ko.jpg?l=ko",
    ),
    CatalogEntry(
        prdtName="Beauty of Joseon Relief Sun : Rice + Probiotics 50ml",
        prdtNo="GA220615365",
        saleAmt="18.00",
        imagePath="https://image.oliveyoung.com/uploads/images/goods/550/10/0000/0016/A00000016643209ko.jpg?l=ko",
    ),
    CatalogEntry(
        prdtName="Torriden Dive-In Low Molecular Hyaluronic Acid Serum 50ml",
        prdtNo="GA210002192",
        saleAmt="22.00",
        imagePath="https://image.oliveyoung.com/uploads/images/goods/550/10/0000/0013/A00000013328205ko.jpg?l=ko",
    ),
    CatalogEntry(
        prdtName="CLIO Kill Cover Mesh Glow Cushion",
        prdtNo="GA221217316",
        saleAmt="28.00",
        imagePath="https://image.oliveyoung.com/uploads/images/goods/550/10/0000/0017/A00000017448805ko.jpg?l=ko",
    ),
)


@dataclass(frozen=True)
class RelayResult:
    """Outcome of a single relay attempt: either entries or an error message."""

    relay_url: str
    entries: list[CatalogEntry] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and len(self.entries) > 0


def is_valid_item(item: Any) -> bool:
    return isinstance(item, dict) and bool(item.get("prdtName")) and bool(item.get("prdtNo"))


def extract_items(data: Any) -> list:
    """Accept a bare list, or an object wrapping the list in ``data``."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get("data"), list):
        return data["data"]
    return []


def relay_url(template: str, target_url: str = TARGET_URL) -> str:
    return template.format(url=quote(target_url, safe=""))


class CatalogFetcher:
    def __init__(
        self,
        target_url: str = TARGET_URL,
        relays: tuple[str, ...] = RELAY_TEMPLATES,
        timeout: float = config.RELAY_TIMEOUT_SECONDS,
        max_entries: int = MAX_CATALOG_ENTRIES,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.target_url = target_url
        self.relays = relays
        self.timeout = timeout
        self.max_entries = max_entries
        self.transport = transport

    def relay_urls(self) -> list[str]:
        return [relay_url(template, self.target_url) for template in self.relays]

    async def fetch(self) -> list[CatalogEntry]:
        """Return the first non-empty relay result, or the fallback catalog."""
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self.transport, follow_redirects=True
        ) as client:
            for url in self.relay_urls():
                result = await self._try_relay(client, url)
                if result.ok:
                    logger.info("Fetched %d products via %s", len(result.entries), url)
                    return list(result.entries)
                logger.warning("Relay %s gave no products: %s", url, result.error or "empty result")

        logger.warning("All relays failed, using fallback catalog")
        return list(FALLBACK_CATALOG)

    async def _try_relay(self, client: httpx.AsyncClient, url: str) -> RelayResult:
        logger.info("Trying relay: %s", url)
        try:
            response = await client.get(url, headers={"Accept": "application/json"})
            response.raise_for_status()
            items = extract_items(response.json())
            entries = [
                CatalogEntry.model_validate(item) for item in items if is_valid_item(item)
            ][: self.max_entries]
        except httpx.HTTPStatusError as e:
            return RelayResult(url, error=f"status {e.response.status_code}")
        except (httpx.HTTPError, ValueError, RecursionError) as e:
            return RelayResult(url, error=f"{type(e).__name__}: {e}")
        return RelayResult(url, entries=entries)
