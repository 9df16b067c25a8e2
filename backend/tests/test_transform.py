"""
Tests for mapping products to and from Shopify shapes.
"""
from decimal import Decimal

import pytest

from catalog_sync.models.product import Product
from catalog_sync.services.bulk_reconstruct import BulkImage, BulkProduct, BulkVariant
from catalog_sync.services.transform import (
    bulk_product_to_fields,
    external_id_from_payload,
    inventory_set_input,
    join_tags,
    parse_shopify_datetime,
    parse_tags,
    product_gid,
    product_to_shopify_input,
    shopify_to_product_fields,
    status_from_shopify,
    status_to_shopify,
    strip_html,
    variant_to_shopify_input,
    weight_to_kg,
)


def make_product(**overrides) -> Product:
    fields = {
        "owner_id": "user_1",
        "title": "Canvas Tote",
        "description": "Sturdy bag",
        "price": Decimal("24.5"),
        "inventory": 12,
        "sku": "TOTE-1",
        "brand": "Acme",
        "category": "Bags",
        "weight": Decimal("0.400"),
        "tags": ["eco", " canvas "],
        "images": ["https://cdn.example.com/tote.jpg", "https://cdn.example.com/tote-2.jpg"],
        "status": "active",
    }
    fields.update(overrides)
    return Product(**fields)


class TestStatusMapping:
    @pytest.mark.parametrize(
        "local,remote",
        [("active", "ACTIVE"), ("inactive", "ARCHIVED"), ("draft", "DRAFT"), ("unknown", "DRAFT")],
    )
    def test_outbound(self, local, remote):
        assert status_to_shopify(local) == remote

    @pytest.mark.parametrize(
        "remote,local",
        [("ACTIVE", "active"), ("archived", "inactive"), ("Draft", "draft"), ("UNLISTED", "draft"), (None, "draft")],
    )
    def test_inbound_is_case_insensitive(self, remote, local):
        assert status_from_shopify(remote) == local


class TestTags:
    def test_parse_comma_string(self):
        assert parse_tags("summer, linen ,, sale") == ["summer", "linen", "sale"]

    def test_parse_list(self):
        assert parse_tags([" a ", "", "b"]) == ["a", "b"]

    def test_parse_empty(self):
        assert parse_tags(None) == []
        assert parse_tags("") == []

    def test_join(self):
        assert join_tags(["eco", " canvas ", ""]) == "eco, canvas"
        assert join_tags(None) == ""


class TestScalars:
    def test_strip_html(self):
        assert strip_html("<p>Soft <b>cotton</b></p>") == "Soft cotton"
        assert strip_html(None) is None

    @pytest.mark.parametrize(
        "value,unit,expected",
        [
            ("250", "GRAMS", Decimal("0.250")),
            (2, "KILOGRAMS", Decimal("2.000")),
            (1, "POUNDS", Decimal("0.454")),
            (16, "OUNCES", Decimal("0.454")),
            ("1.5", None, Decimal("1.500")),
        ],
    )
    def test_weight_to_kg(self, value, unit, expected):
        assert weight_to_kg(value, unit) == expected

    def test_weight_missing(self):
        assert weight_to_kg(None, "GRAMS") is None
        assert weight_to_kg("heavy", "GRAMS") is None

    def test_parse_datetime(self):
        parsed = parse_shopify_datetime("2026-03-01T12:00:00Z")
        assert parsed.tzinfo is not None
        assert parsed.hour == 12
        assert parse_shopify_datetime(None) is None

    def test_product_gid(self):
        assert product_gid(42) == "gid://shopify/Product/42"
        assert product_gid("gid://shopify/Product/42") == "gid://shopify/Product/42"


class TestOutbound:
    def test_product_input(self):
        product_input, media = product_to_shopify_input(make_product())

        assert product_input["title"] == "Canvas Tote"
        assert product_input["descriptionHtml"] == "Sturdy bag"
        assert product_input["vendor"] == "Acme"
        assert product_input["productType"] == "Bags"
        assert product_input["tags"] == "eco, canvas"
        assert product_input["status"] == "ACTIVE"
        assert "id" not in product_input
        assert "variants" not in product_input

        assert [m["originalSource"] for m in media] == [
            "https://cdn.example.com/tote.jpg",
            "https://cdn.example.com/tote-2.jpg",
        ]

    def test_update_input_carries_gid(self):
        product_input, _ = product_to_shopify_input(make_product(), external_id="77")

        assert product_input["id"] == "gid://shopify/Product/77"

    def test_optional_fields_omitted(self):
        product_input, media = product_to_shopify_input(
            make_product(price=None, sku=None, weight=None, images=[], description=None)
        )

        assert product_input["descriptionHtml"] == ""
        assert media == []

    def test_variant_input(self):
        variant = variant_to_shopify_input(make_product(), "gid://shopify/ProductVariant/9")

        assert variant == {
            "id": "gid://shopify/ProductVariant/9",
            "price": "24.50",
            "inventoryItem": {
                "tracked": True,
                "sku": "TOTE-1",
                "measurement": {"weight": {"value": 0.4, "unit": "KILOGRAMS"}},
            },
        }

    def test_variant_input_optional_fields_omitted(self):
        variant = variant_to_shopify_input(make_product(price=None, sku=None, weight=None), "v1")

        assert variant == {"id": "v1", "inventoryItem": {"tracked": True}}

    def test_inventory_input_clamps_negative(self):
        data = inventory_set_input("gid://shopify/InventoryItem/1", "gid://shopify/Location/1", -3)

        assert data["name"] == "available"
        assert data["ignoreCompareQuantity"] is True
        assert data["quantities"] == [{
            "inventoryItemId": "gid://shopify/InventoryItem/1",
            "locationId": "gid://shopify/Location/1",
            "quantity": 0,
        }]


class TestInbound:
    def test_graphql_node(self):
        node = {
            "id": "gid://shopify/Product/5",
            "title": "Wool Hat",
            "descriptionHtml": "<p>Warm</p>",
            "vendor": "Acme",
            "productType": "Hats",
            "tags": ["winter"],
            "status": "ARCHIVED",
            "variants": {
                "edges": [
                    {
                        "node": {
                            "price": "19.99",
                            "sku": "HAT-1",
                            "inventoryQuantity": -3,
                            "inventoryItem": {"measurement": {"weight": {"value": 120, "unit": "GRAMS"}}},
                        }
                    }
                ]
            },
            "images": {"edges": [{"node": {"url": "https://cdn.example.com/hat.jpg"}}]},
        }

        fields = shopify_to_product_fields(node)

        assert fields["title"] == "Wool Hat"
        assert fields["description"] == "Warm"
        assert fields["price"] == Decimal("19.99")
        assert fields["inventory"] == 0
        assert fields["sku"] == "HAT-1"
        assert fields["category"] == "Hats"
        assert fields["weight"] == Decimal("0.120")
        assert fields["tags"] == ["winter"]
        assert fields["images"] == ["https://cdn.example.com/hat.jpg"]
        assert fields["status"] == "inactive"

    def test_webhook_payload(self):
        payload = {
            "id": 5,
            "title": "Wool Hat",
            "body_html": "<b>Warm</b>",
            "product_type": "Hats",
            "tags": "winter, wool",
            "status": "active",
            "variants": [{"price": "21.00", "inventory_quantity": 8, "weight": 0.2, "weight_unit": "kg"}],
            "images": [{"src": "https://cdn.example.com/hat.jpg"}],
        }

        fields = shopify_to_product_fields(payload)

        assert fields["description"] == "Warm"
        assert fields["price"] == Decimal("21.00")
        assert fields["inventory"] == 8
        assert fields["weight"] == Decimal("0.200")
        assert fields["tags"] == ["winter", "wool"]
        assert fields["images"] == ["https://cdn.example.com/hat.jpg"]
        assert fields["status"] == "active"

    def test_empty_node_defaults(self):
        fields = shopify_to_product_fields({})

        assert fields["title"] == "Untitled product"
        assert fields["price"] is None
        assert fields["inventory"] == 0
        assert fields["status"] == "draft"

    def test_bulk_product(self):
        product = BulkProduct(
            id="gid://shopify/Product/9",
            title="Mug",
            description_html="<p>Ceramic</p>",
            vendor="Acme",
            product_type="Kitchen",
            tags=["gift"],
            status="DRAFT",
            variants=[BulkVariant(id="v1", price="12.00", sku="MUG", inventory_quantity=3, weight=1, weight_unit="POUNDS")],
            images=[BulkImage(id="i1", url="https://cdn.example.com/mug.jpg"), BulkImage(id="i2", url=None)],
        )

        fields = bulk_product_to_fields(product)

        assert fields["description"] == "Ceramic"
        assert fields["price"] == Decimal("12.00")
        assert fields["inventory"] == 3
        assert fields["weight"] == Decimal("0.454")
        assert fields["images"] == ["https://cdn.example.com/mug.jpg"]
        assert fields["status"] == "draft"

    def test_bulk_product_without_variants(self):
        fields = bulk_product_to_fields(BulkProduct(id="gid://shopify/Product/9", title=""))

        assert fields["title"] == "Untitled product"
        assert fields["price"] is None
        assert fields["inventory"] == 0
        assert fields["weight"] is None

    def test_external_id_from_payload(self):
        assert external_id_from_payload({"admin_graphql_api_id": "gid://shopify/Product/3", "id": 3}) == (
            "gid://shopify/Product/3"
        )
        assert external_id_from_payload({"id": 3}) == "gid://shopify/Product/3"
        assert external_id_from_payload({}) is None


def test_outbound_then_inbound_keeps_catalog_fields():
    product = make_product()
    product_input, media = product_to_shopify_input(product)
    variant = variant_to_shopify_input(product, "gid://shopify/ProductVariant/1")

    # Shape the outbound payloads the way Shopify echoes them back
    echoed = {
        **product_input,
        "variants": {"edges": [{"node": {**variant, "inventoryQuantity": product.inventory}}]},
        "images": {"edges": [{"node": {"url": m["originalSource"]}} for m in media]},
    }
    fields = shopify_to_product_fields(echoed)

    assert fields["title"] == product.title
    assert fields["price"] == Decimal("24.50")
    assert fields["inventory"] == product.inventory
    assert fields["sku"] == product.sku
    assert fields["weight"] == Decimal("0.400")
    assert fields["tags"] == ["eco", "canvas"]
    assert fields["images"] == product.images
    assert fields["status"] == "active"
