"""
Field mapping between catalog products and Shopify products.

Inbound data arrives in three shapes: GraphQL product nodes, bulk export
products, and REST-style webhook payloads. All of them end up as a dict of
Product column values.
"""
import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from catalog_sync.models.product import Product, ProductStatus
from catalog_sync.services.bulk_reconstruct import BulkProduct

_TAG_PATTERN = re.compile(r"<[^>]*>")

_STATUS_TO_SHOPIFY = {
    ProductStatus.ACTIVE.value: "ACTIVE",
    ProductStatus.INACTIVE.value: "ARCHIVED",
    ProductStatus.DRAFT.value: "DRAFT",
}
_STATUS_FROM_SHOPIFY = {
    "ACTIVE": ProductStatus.ACTIVE.value,
    "ARCHIVED": ProductStatus.INACTIVE.value,
    "DRAFT": ProductStatus.DRAFT.value,
}

_KG_PER_UNIT = {
    "KILOGRAMS": Decimal("1"),
    "KG": Decimal("1"),
    "GRAMS": Decimal("0.001"),
    "G": Decimal("0.001"),
    "POUNDS": Decimal("0.45359237"),
    "LB": Decimal("0.45359237"),
    "OUNCES": Decimal("0.028349523125"),
    "OZ": Decimal("0.028349523125"),
}


def strip_html(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return _TAG_PATTERN.sub("", value).strip()


def status_to_shopify(status: Optional[str]) -> str:
    return _STATUS_TO_SHOPIFY.get((status or "").lower(), "DRAFT")


def status_from_shopify(status: Optional[str]) -> str:
    """Case-insensitive; anything unrecognised becomes draft."""
    return _STATUS_FROM_SHOPIFY.get((status or "").upper(), ProductStatus.DRAFT.value)


def parse_tags(tags: Any) -> list[str]:
    """Accept a comma separated string or a list of tags."""
    if not tags:
        return []
    if isinstance(tags, str):
        tags = tags.split(",")
    return [str(tag).strip() for tag in tags if str(tag).strip()]


def join_tags(tags: Optional[list[str]]) -> str:
    return ", ".join(tag.strip() for tag in tags or [] if tag and tag.strip())


def parse_price(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def format_price(value: Optional[Decimal]) -> Optional[str]:
    if value is None:
        return None
    return f"{Decimal(value):.2f}"


def weight_to_kg(value: Any, unit: Optional[str] = None) -> Optional[Decimal]:
    """Normalise a weight to kilograms. No unit means kilograms."""
    amount = parse_price(value)
    if amount is None:
        return None
    factor = _KG_PER_UNIT.get((unit or "KILOGRAMS").upper(), Decimal("1"))
    return (amount * factor).quantize(Decimal("0.001"))


def parse_shopify_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def product_gid(external_id: str | int) -> str:
    external_id = str(external_id)
    if external_id.startswith("gid://"):
        return external_id
    return f"gid://shopify/Product/{external_id}"


def product_to_shopify_input(
    product: Product,
    external_id: Optional[str] = None,
) -> tuple[dict[str, Any], list[dict[str, Any]]]:
    """Build ProductInput plus media inputs for productCreate/productUpdate.

    Variant fields are not part of ProductInput; see variant_to_shopify_input.
    """
    product_input: dict[str, Any] = {
        "title": product.title,
        "descriptionHtml": product.description or "",
        "vendor": product.brand or "",
        "productType": product.category or "",
        "tags": join_tags(product.tags),
        "status": status_to_shopify(product.status),
    }
    if external_id:
        product_input["id"] = product_gid(external_id)

    media = [
        {"originalSource": url, "mediaContentType": "IMAGE", "alt": product.title}
        for url in product.images or []
    ]
    return product_input, media


def variant_to_shopify_input(product: Product, variant_id: str) -> dict[str, Any]:
    """ProductVariantsBulkInput carrying price, SKU and weight for the first variant."""
    inventory_item: dict[str, Any] = {"tracked": True}
    if product.sku:
        inventory_item["sku"] = product.sku
    if product.weight is not None:
        inventory_item["measurement"] = {
            "weight": {"value": float(product.weight), "unit": "KILOGRAMS"},
        }

    variant: dict[str, Any] = {"id": variant_id, "inventoryItem": inventory_item}
    if product.price is not None:
        variant["price"] = format_price(product.price)
    return variant


def inventory_set_input(inventory_item_id: str, location_id: str, quantity: int) -> dict[str, Any]:
    """InventorySetQuantitiesInput setting the available quantity at one location."""
    return {
        "name": "available",
        "reason": "correction",
        "ignoreCompareQuantity": True,
        "quantities": [
            {
                "inventoryItemId": inventory_item_id,
                "locationId": location_id,
                "quantity": max(0, int(quantity or 0)),
            }
        ],
    }


def _edges(connection: Any) -> list[dict[str, Any]]:
    if isinstance(connection, list):
        return connection
    if isinstance(connection, dict):
        return [edge.get("node", {}) for edge in connection.get("edges", [])]
    return []


def _image_urls(node: dict[str, Any]) -> list[str]:
    urls = []
    for image in _edges(node.get("images")):
        url = image.get("url") or image.get("src") or image.get("originalSrc")
        if url:
            urls.append(url)
    if not urls:
        for media in _edges(node.get("media")):
            url = (media.get("image") or {}).get("url")
            if url:
                urls.append(url)
    if not urls and isinstance(node.get("image"), dict):
        url = node["image"].get("src") or node["image"].get("url")
        if url:
            urls.append(url)
    return urls


def shopify_to_product_fields(node: dict[str, Any]) -> dict[str, Any]:
    """Map a GraphQL product node or a webhook payload to Product columns."""
    variants = _edges(node.get("variants"))
    first = variants[0] if variants else {}

    measured = (((first.get("inventoryItem") or {}).get("measurement") or {}).get("weight")) or {}
    if measured.get("value") is not None:
        weight = weight_to_kg(measured["value"], measured.get("unit"))
    else:
        weight = weight_to_kg(first.get("weight"), first.get("weightUnit") or first.get("weight_unit"))

    inventory = first.get("inventoryQuantity", first.get("inventory_quantity"))
    description = node.get("descriptionHtml", node.get("body_html", node.get("description")))

    return {
        "title": node.get("title") or "Untitled product",
        "description": strip_html(description),
        "price": parse_price(first.get("price")),
        "inventory": max(0, int(inventory or 0)),
        "sku": first.get("sku") or (first.get("inventoryItem") or {}).get("sku") or None,
        "brand": node.get("vendor") or None,
        "category": node.get("productType", node.get("product_type")) or None,
        "weight": weight,
        "tags": parse_tags(node.get("tags")),
        "images": _image_urls(node),
        "status": status_from_shopify(node.get("status")),
    }


def bulk_product_to_fields(product: BulkProduct) -> dict[str, Any]:
    """Map a reconstructed bulk product to Product columns."""
    first = product.variants[0] if product.variants else None
    return {
        "title": product.title or "Untitled product",
        "description": strip_html(product.description_html),
        "price": parse_price(first.price) if first else None,
        "inventory": max(0, int(first.inventory_quantity or 0)) if first else 0,
        "sku": first.sku if first and first.sku else None,
        "brand": product.vendor or None,
        "category": product.product_type or None,
        "weight": weight_to_kg(first.weight, first.weight_unit) if first else None,
        "tags": parse_tags(product.tags),
        "images": [image.url for image in product.images if image.url],
        "status": status_from_shopify(product.status),
    }


def external_id_from_payload(payload: dict[str, Any]) -> Optional[str]:
    """Webhook payloads carry a numeric id and usually an admin_graphql_api_id."""
    gid = payload.get("admin_graphql_api_id")
    if gid:
        return gid
    if payload.get("id") is not None:
        return product_gid(payload["id"])
    return None
