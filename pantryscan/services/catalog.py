"""Open Food Facts lookups used to enrich newly scanned products."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from ..core.barcodes import is_catalog_barcode
from ..core.errors import CatalogUnavailable

logger = logging.getLogger(__name__)

MAX_CATEGORIES = 10
_LANG_PREFIX_RE = re.compile(r"^[a-z]{2}:")

_NUTRIMENT_KEYS = {
    "fat": ("fat_100g", "fat"),
    "saturated_fat": ("saturated-fat_100g", "saturated_fat"),
    "carbohydrates": ("carbohydrates_100g", "carbohydrates"),
    "sugars": ("sugars_100g", "sugars"),
    "proteins": ("proteins_100g", "proteins"),
    "salt": ("salt_100g", "salt"),
    "fiber": ("fiber_100g", "fiber"),
    "sodium": ("sodium_100g",),
}

_CARBON_KEYS = {
    "total": "co2_total",
    "agriculture": "co2_agriculture",
    "consumption": "co2_consumption",
    "distribution": "co2_distribution",
    "packaging": "co2_packaging",
    "processing": "co2_processing",
    "transportation": "co2_transportation",
}


@dataclass
class CatalogProduct:
    """The subset of a catalog record that maps onto ``Product`` columns."""

    barcode: str
    name: Optional[str] = None
    brand: Optional[str] = None
    categories: List[str] = field(default_factory=list)
    image_url: Optional[str] = None
    quantity_label: Optional[str] = None
    ingredients: Optional[str] = None
    nutriscore: Optional[str] = None
    ecoscore: Optional[str] = None
    nova_group: Optional[int] = None
    nutritional_values: Optional[Dict[str, Any]] = None
    allergens: Optional[str] = None
    origin: Optional[str] = None
    packaging: Optional[str] = None
    labels: Optional[str] = None
    carbon_footprint: Optional[Dict[str, Any]] = None

    @property
    def category(self) -> Optional[str]:
        return self.categories[0] if self.categories else None

    def product_fields(self) -> Dict[str, Any]:
        return {
            "brand": self.brand,
            "category": self.category,
            "image_url": self.image_url,
            "quantity_label": self.quantity_label,
            "ingredients": self.ingredients,
            "nutriscore": self.nutriscore,
            "ecoscore": self.ecoscore,
            "nova_group": self.nova_group,
            "nutritional_values": self.nutritional_values,
            "allergens": self.allergens,
            "origin": self.origin,
            "packaging": self.packaging,
            "labels": self.labels,
            "carbon_footprint": self.carbon_footprint,
        }


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _clean_tag(tag: str) -> str:
    return _LANG_PREFIX_RE.sub("", tag).strip()


def extract_categories(product: Dict[str, Any], limit: int = MAX_CATEGORIES) -> List[str]:
    """Collect de-duplicated category names, preferring ``categories_tags``."""

    categories: List[str] = []

    def add(candidate: str) -> None:
        if candidate and candidate not in categories:
            categories.append(candidate)

    tags = product.get("categories_tags")
    if isinstance(tags, list):
        for tag in tags:
            if isinstance(tag, str):
                add(_clean_tag(tag))

    if not categories and isinstance(product.get("categories"), str):
        for raw in product["categories"].split(","):
            add(raw.strip())

    return categories[:limit]


def _parse_nutriments(nutriments: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(nutriments, dict):
        return None

    energy = None
    energy_value = _number(nutriments.get("energy_value"))
    if energy_value:
        energy = f"{nutriments.get('energy_value')} {nutriments.get('energy_unit') or 'kJ'}"

    values: Dict[str, Any] = {
        "energy": energy,
        "energy_kcal": _number(nutriments.get("energy-kcal_100g")),
    }
    for name, keys in _NUTRIMENT_KEYS.items():
        values[name] = None
        for key in keys:
            number = _number(nutriments.get(key))
            if number is not None:
                values[name] = number
                break
    return values


def _parse_carbon_footprint(product: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    ecoscore_data = product.get("ecoscore_data")
    if not isinstance(ecoscore_data, dict):
        return None
    agribalyse = ecoscore_data.get("agribalyse")
    if not isinstance(agribalyse, dict):
        return None
    return {name: _number(agribalyse.get(key)) for name, key in _CARBON_KEYS.items()}


def parse_catalog_product(barcode: str, product: Dict[str, Any]) -> CatalogProduct:
    """Map a raw catalog ``product`` object; empty strings become ``None``."""

    nova_group = product.get("nova_group")
    try:
        nova_group = int(nova_group) if nova_group not in (None, "") else None
    except (TypeError, ValueError):
        nova_group = None

    return CatalogProduct(
        barcode=barcode,
        name=_text(product.get("product_name")),
        brand=_text(product.get("brands")),
        categories=extract_categories(product),
        image_url=_text(
            product.get("image_front_url") or product.get("image_url") or product.get("image_small_url")
        ),
        quantity_label=_text(product.get("quantity")),
        ingredients=_text(product.get("ingredients_text_it") or product.get("ingredients_text")),
        nutriscore=_text(product.get("nutriscore_grade")),
        ecoscore=_text(product.get("ecoscore_grade")),
        nova_group=nova_group or None,
        nutritional_values=_parse_nutriments(product.get("nutriments")),
        allergens=_text(product.get("allergens")),
        origin=_text(product.get("origins")),
        packaging=_text(product.get("packaging")),
        labels=_text(product.get("labels")),
        carbon_footprint=_parse_carbon_footprint(product),
    )


class CatalogClient:
    """Thin async client around the public product catalog.

    ``lookup`` returns ``None`` when the catalog has no record for a barcode and
    raises ``CatalogUnavailable`` for anything else that goes wrong, timeouts
    included. Callers are expected to treat both the same way.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 5.0,
        user_agent: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if user_agent:
            headers["User-Agent"] = user_agent
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers=headers,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def lookup(self, barcode: str) -> Optional[CatalogProduct]:
        if not is_catalog_barcode(barcode):
            return None

        url = f"{self.base_url}/{barcode}.json"
        try:
            response = await asyncio.wait_for(self._client.get(url), timeout=self.timeout)
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            logger.warning("Catalog lookup for %s timed out", barcode)
            raise CatalogUnavailable("Catalog lookup timed out") from exc
        except httpx.HTTPError as exc:
            logger.warning("Catalog lookup for %s failed: %s", barcode, exc)
            raise CatalogUnavailable(str(exc)) from exc

        if response.status_code == 404:
            logger.info("Catalog has no product for %s", barcode)
            return None
        if response.status_code >= 400:
            logger.warning("Catalog error %s for %s", response.status_code, barcode)
            raise CatalogUnavailable(f"Catalog returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            logger.warning("Catalog returned invalid JSON for %s", barcode)
            raise CatalogUnavailable("Catalog returned invalid JSON") from exc

        if not isinstance(data, dict):
            raise CatalogUnavailable("Catalog returned an unexpected payload")
        product = data.get("product")
        if data.get("status") != 1 or not isinstance(product, dict):
            logger.info("Catalog has no product for %s", barcode)
            return None

        return parse_catalog_product(barcode, product)
