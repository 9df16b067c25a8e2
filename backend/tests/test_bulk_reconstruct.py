"""
Tests for rebuilding nested products from bulk JSONL exports.
"""
import json
import random

from catalog_sync.services.bulk_reconstruct import (
    BulkResultAssembler,
    NodeKind,
    classify_node,
    gid_type,
    reconstruct_products,
)

PRODUCT_GID = "gid://shopify/Product/1"


def export_lines() -> list[str]:
    """One product with two variants, three images and one metafield."""
    nodes = [
        {
            "id": PRODUCT_GID,
            "title": "Linen Shirt",
            "descriptionHtml": "<p>Breathable</p>",
            "vendor": "Acme",
            "productType": "Shirts",
            "tags": ["summer", "linen"],
            "status": "ACTIVE",
            "updatedAt": "2026-01-02T10:00:00Z",
        },
        {
            "id": "gid://shopify/ProductVariant/11",
            "title": "S",
            "price": "49.00",
            "sku": "LS-S",
            "inventoryQuantity": 4,
            "inventoryItem": {"measurement": {"weight": {"value": 250, "unit": "GRAMS"}}},
            "__parentId": PRODUCT_GID,
        },
        {
            "id": "gid://shopify/ProductVariant/12",
            "title": "M",
            "price": "49.00",
            "sku": "LS-M",
            "inventoryQuantity": 6,
            "__parentId": PRODUCT_GID,
        },
        {
            "id": "gid://shopify/MediaImage/21",
            "image": {"url": "https://cdn.example.com/1.jpg", "altText": "Front"},
            "__parentId": PRODUCT_GID,
        },
        {
            "id": "gid://shopify/MediaImage/22",
            "image": {"url": "https://cdn.example.com/2.jpg"},
            "__parentId": PRODUCT_GID,
        },
        {
            "id": "gid://shopify/MediaImage/23",
            "image": {"url": "https://cdn.example.com/3.jpg"},
            "__parentId": PRODUCT_GID,
        },
        {
            "id": "gid://shopify/Metafield/31",
            "namespace": "custom",
            "key": "material",
            "value": "linen",
            "type": "single_line_text_field",
            "__parentId": PRODUCT_GID,
        },
    ]
    return [json.dumps(node) for node in nodes]


def summarize(products) -> list[tuple]:
    return [
        (
            product.id,
            product.title,
            sorted(variant.id for variant in product.variants),
            sorted(image.url for image in product.images),
            sorted((m.namespace, m.key, m.value) for m in product.metafields),
        )
        for product in products
    ]


def test_gid_type():
    assert gid_type("gid://shopify/ProductVariant/42") == "ProductVariant"
    assert gid_type("12345") is None
    assert gid_type(None) is None


def test_classify_by_gid_prefix_first():
    # GID wins over a contradicting __typename
    node = {"id": "gid://shopify/ProductVariant/1", "__typename": "Product"}

    assert classify_node(node) == NodeKind.VARIANT


def test_classify_by_typename_without_gid():
    assert classify_node({"__typename": "Image", "src": "x"}) == NodeKind.IMAGE
    assert classify_node({"__typename": "Metafield"}) == NodeKind.METAFIELD
    assert classify_node({"title": "mystery"}) == NodeKind.UNKNOWN


def test_reconstructs_complete_product():
    products = reconstruct_products(export_lines())

    assert len(products) == 1
    product = products[0]
    assert product.title == "Linen Shirt"
    assert [variant.sku for variant in product.variants] == ["LS-S", "LS-M"]
    assert product.variants[0].weight == 250
    assert product.variants[0].weight_unit == "GRAMS"
    assert len(product.images) == 3
    assert product.images[0].alt_text == "Front"
    assert len(product.metafields) == 1
    assert product.metafields[0].value == "linen"


def test_line_order_does_not_matter():
    lines = export_lines()
    expected = summarize(reconstruct_products(lines))

    shuffled = list(lines)
    random.Random(7).shuffle(shuffled)
    reversed_lines = list(reversed(lines))

    assert summarize(reconstruct_products(shuffled)) == expected
    # Children before their parent
    assert summarize(reconstruct_products(reversed_lines)) == expected


def test_malformed_lines_are_skipped():
    lines = export_lines()
    lines.insert(2, "{not json")
    lines.insert(4, "[1, 2, 3]")

    assembler = BulkResultAssembler().feed_lines(lines)
    products = assembler.products()

    assert assembler.skipped_lines == 2
    assert len(products) == 1
    assert len(products[0].variants) == 2


def test_orphan_children_are_dropped():
    lines = [
        json.dumps({"id": "gid://shopify/ProductVariant/99", "__parentId": "gid://shopify/Product/404"}),
        json.dumps({"id": PRODUCT_GID, "title": "Only"}),
    ]

    products = reconstruct_products(lines)

    assert len(products) == 1
    assert products[0].variants == []


def test_legacy_typename_export():
    lines = [
        json.dumps({"__typename": "Product", "id": "7", "title": "Legacy"}),
        json.dumps({"__typename": "ProductVariant", "id": "8", "sku": "L-1", "__parentId": "7"}),
        json.dumps({"__typename": "Image", "src": "https://cdn.example.com/legacy.jpg", "__parentId": "7"}),
    ]

    products = reconstruct_products(lines)

    assert len(products) == 1
    assert products[0].variants[0].sku == "L-1"
    assert products[0].images[0].url == "https://cdn.example.com/legacy.jpg"


def test_images_without_url_are_dropped():
    lines = [
        json.dumps({"id": PRODUCT_GID, "title": "No image"}),
        json.dumps({"id": "gid://shopify/MediaImage/1", "image": None, "__parentId": PRODUCT_GID}),
    ]

    products = reconstruct_products(lines)

    assert products[0].images == []


def test_sync_data_summary():
    product = reconstruct_products(export_lines())[0]

    data = product.sync_data()

    assert data["variant_ids"] == ["gid://shopify/ProductVariant/11", "gid://shopify/ProductVariant/12"]
    assert data["image_count"] == 3
    assert data["metafields"] == {"custom.material": "linen"}
