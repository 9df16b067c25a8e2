"""
Rebuild nested products from a Shopify bulk export.

A bulk export is JSONL: one flattened node per line, children pointing at
their product with ``__parentId``. Node kind is taken from the GID prefix of
``id`` (``gid://shopify/ProductVariant/1``); older exports without ids are
classified by ``__typename``. Children are attached only after every line
has been read, so line order does not matter.
"""
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional

from catalog_sync.core.logging import get_logger

logger = get_logger(__name__)


class NodeKind(str, Enum):
    PRODUCT = "product"
    VARIANT = "variant"
    IMAGE = "image"
    METAFIELD = "metafield"
    UNKNOWN = "unknown"


_GID_KINDS: dict[str, NodeKind] = {
    "Product": NodeKind.PRODUCT,
    "ProductVariant": NodeKind.VARIANT,
    "ProductImage": NodeKind.IMAGE,
    "MediaImage": NodeKind.IMAGE,
    "ImageSource": NodeKind.IMAGE,
    "Metafield": NodeKind.METAFIELD,
}

_TYPENAME_KINDS: dict[str, NodeKind] = {
    "Product": NodeKind.PRODUCT,
    "ProductVariant": NodeKind.VARIANT,
    "Image": NodeKind.IMAGE,
    "MediaImage": NodeKind.IMAGE,
    "Metafield": NodeKind.METAFIELD,
}


def gid_type(gid: Optional[str]) -> Optional[str]:
    """``gid://shopify/ProductVariant/42`` -> ``ProductVariant``."""
    if not gid or not gid.startswith("gid://shopify/"):
        return None
    parts = gid[len("gid://shopify/"):].split("/")
    return parts[0] or None


def classify_node(node: dict[str, Any]) -> NodeKind:
    type_name = gid_type(node.get("id"))
    if type_name is not None:
        return _GID_KINDS.get(type_name, NodeKind.UNKNOWN)
    return _TYPENAME_KINDS.get(node.get("__typename", ""), NodeKind.UNKNOWN)


@dataclass
class BulkVariant:
    id: Optional[str]
    title: Optional[str] = None
    price: Optional[str] = None
    sku: Optional[str] = None
    inventory_quantity: Optional[int] = None
    weight: Optional[float] = None
    weight_unit: Optional[str] = None

    @classmethod
    def from_node(cls, node: dict[str, Any]) -> "BulkVariant":
        weight = node.get("weight")
        weight_unit = node.get("weightUnit")
        measured = (((node.get("inventoryItem") or {}).get("measurement") or {}).get("weight")) or {}
        if measured.get("value") is not None:
            weight = measured["value"]
            weight_unit = measured.get("unit")
        return cls(
            id=node.get("id"),
            title=node.get("title"),
            price=node.get("price"),
            sku=node.get("sku"),
            inventory_quantity=node.get("inventoryQuantity"),
            weight=weight,
            weight_unit=weight_unit,
        )


@dataclass
class BulkImage:
    id: Optional[str]
    url: Optional[str]
    alt_text: Optional[str] = None

    @classmethod
    def from_node(cls, node: dict[str, Any]) -> "BulkImage":
        nested = node.get("image") or {}
        url = (
            nested.get("url")
            or node.get("url")
            or node.get("src")
            or node.get("originalSource")
        )
        return cls(
            id=node.get("id"),
            url=url,
            alt_text=nested.get("altText") or node.get("altText"),
        )


@dataclass
class BulkMetafield:
    namespace: str
    key: str
    value: Any
    type: Optional[str] = None
    id: Optional[str] = None

    @classmethod
    def from_node(cls, node: dict[str, Any]) -> "BulkMetafield":
        return cls(
            namespace=node.get("namespace", ""),
            key=node.get("key", ""),
            value=node.get("value"),
            type=node.get("type"),
            id=node.get("id"),
        )


@dataclass
class BulkProduct:
    id: str
    title: str
    description_html: Optional[str] = None
    product_type: Optional[str] = None
    vendor: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    status: Optional[str] = None
    handle: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    variants: list[BulkVariant] = field(default_factory=list)
    images: list[BulkImage] = field(default_factory=list)
    metafields: list[BulkMetafield] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_node(cls, node: dict[str, Any]) -> "BulkProduct":
        tags = node.get("tags") or []
        if isinstance(tags, str):
            tags = [tag.strip() for tag in tags.split(",") if tag.strip()]
        return cls(
            id=node["id"],
            title=node.get("title") or "",
            description_html=node.get("descriptionHtml") or node.get("description"),
            product_type=node.get("productType"),
            vendor=node.get("vendor"),
            tags=list(tags),
            status=node.get("status"),
            handle=node.get("handle"),
            created_at=node.get("createdAt"),
            updated_at=node.get("updatedAt"),
            raw=node,
        )

    def sync_data(self) -> dict[str, Any]:
        """Summary stored on the channel mapping."""
        return {
            "shopify_product": self.raw,
            "variant_ids": [variant.id for variant in self.variants if variant.id],
            "image_count": len(self.images),
            "metafields": {f"{m.namespace}.{m.key}": m.value for m in self.metafields},
        }


class BulkResultAssembler:
    """Collects JSONL lines and folds children into their products."""

    def __init__(self) -> None:
        self._products: dict[str, BulkProduct] = {}
        self._variants: dict[str, list[BulkVariant]] = {}
        self._images: dict[str, list[BulkImage]] = {}
        self._metafields: dict[str, list[BulkMetafield]] = {}
        self.line_count = 0
        self.skipped_lines = 0

    def feed(self, line: str) -> None:
        line = line.strip()
        if not line:
            return
        self.line_count += 1

        try:
            node = json.loads(line)
        except json.JSONDecodeError as e:
            self.skipped_lines += 1
            logger.warning("Skipping malformed bulk line", line_number=self.line_count, error=str(e))
            return
        if not isinstance(node, dict):
            self.skipped_lines += 1
            logger.warning("Skipping non-object bulk line", line_number=self.line_count)
            return

        kind = classify_node(node)
        parent_id = node.get("__parentId")

        if kind == NodeKind.PRODUCT and node.get("id"):
            self._products[node["id"]] = BulkProduct.from_node(node)
        elif kind == NodeKind.VARIANT and parent_id:
            self._variants.setdefault(parent_id, []).append(BulkVariant.from_node(node))
        elif kind == NodeKind.IMAGE and parent_id:
            self._images.setdefault(parent_id, []).append(BulkImage.from_node(node))
        elif kind == NodeKind.METAFIELD and parent_id:
            self._metafields.setdefault(parent_id, []).append(BulkMetafield.from_node(node))
        else:
            self.skipped_lines += 1
            logger.debug("Ignoring unclassified bulk node", line_number=self.line_count, kind=kind.value)

    def feed_lines(self, lines: Iterable[str]) -> "BulkResultAssembler":
        for line in lines:
            self.feed(line)
        return self

    def products(self) -> list[BulkProduct]:
        """Products with their children attached, in first-seen order."""
        assembled = []
        for product_id, product in self._products.items():
            product.variants = list(self._variants.get(product_id, []))
            product.images = [image for image in self._images.get(product_id, []) if image.url]
            product.metafields = list(self._metafields.get(product_id, []))
            assembled.append(product)

        orphans = set(self._variants) | set(self._images) | set(self._metafields)
        orphans -= set(self._products)
        if orphans:
            logger.warning("Bulk children without a parent product", parent_count=len(orphans))
        return assembled


def reconstruct_products(lines: Iterable[str]) -> list[BulkProduct]:
    """Parse a complete JSONL export into nested products."""
    return BulkResultAssembler().feed_lines(lines).products()
