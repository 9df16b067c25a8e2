"""
GraphQL documents used against the Shopify Admin API.

Bulk queries request ``id`` on every node so the JSONL export can be
classified by GID prefix.
"""

SHOP_QUERY = """
query GetShop {
    shop {
        id
        name
        email
        myshopifyDomain
        currencyCode
        plan {
            displayName
            shopifyPlus
        }
    }
}
"""

PRODUCT_BY_ID_QUERY = """
query GetProduct($id: ID!) {
    product(id: $id) {
        id
        title
        handle
        descriptionHtml
        productType
        vendor
        tags
        status
        createdAt
        updatedAt
        variants(first: 1) {
            edges {
                node {
                    id
                    price
                    sku
                    inventoryQuantity
                    inventoryItem {
                        measurement {
                            weight {
                                value
                                unit
                            }
                        }
                    }
                }
            }
        }
        images(first: 250) {
            edges {
                node {
                    id
                    url
                    altText
                }
            }
        }
    }
}
"""

PRODUCT_CREATE_MUTATION = """
mutation CreateProduct($input: ProductInput!, $media: [CreateMediaInput!]) {
    productCreate(input: $input, media: $media) {
        product {
            id
            title
            handle
            status
            createdAt
            variants(first: 1) {
                edges {
                    node {
                        id
                        inventoryItem {
                            id
                        }
                    }
                }
            }
        }
        userErrors {
            field
            message
        }
    }
}
"""

PRODUCT_UPDATE_MUTATION = """
mutation UpdateProduct($input: ProductInput!) {
    productUpdate(input: $input) {
        product {
            id
            title
            handle
            status
            updatedAt
            variants(first: 1) {
                edges {
                    node {
                        id
                        inventoryItem {
                            id
                        }
                    }
                }
            }
        }
        userErrors {
            field
            message
        }
    }
}
"""

PRODUCT_VARIANTS_BULK_UPDATE_MUTATION = """
mutation UpdateProductVariants($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {
    productVariantsBulkUpdate(productId: $productId, variants: $variants) {
        productVariants {
            id
            price
            inventoryItem {
                id
                sku
            }
        }
        userErrors {
            field
            message
        }
    }
}
"""

PRIMARY_LOCATION_QUERY = """
query PrimaryLocation {
    location {
        id
        name
    }
}
"""

INVENTORY_SET_QUANTITIES_MUTATION = """
mutation SetInventoryQuantities($input: InventorySetQuantitiesInput!) {
    inventorySetQuantities(input: $input) {
        inventoryAdjustmentGroup {
            reason
        }
        userErrors {
            field
            message
        }
    }
}
"""

PRODUCT_DELETE_MUTATION = """
mutation DeleteProduct($input: ProductDeleteInput!) {
    productDelete(input: $input) {
        deletedProductId
        userErrors {
            field
            message
        }
    }
}
"""

METAFIELDS_SET_MUTATION = """
mutation SetMetafields($metafields: [MetafieldsSetInput!]!) {
    metafieldsSet(metafields: $metafields) {
        metafields {
            id
            namespace
            key
            value
        }
        userErrors {
            field
            message
            code
        }
    }
}
"""

BULK_OPERATION_RUN_MUTATION = """
mutation RunBulkQuery($query: String!) {
    bulkOperationRunQuery(query: $query) {
        bulkOperation {
            id
            status
        }
        userErrors {
            field
            message
        }
    }
}
"""

BULK_OPERATION_STATUS_QUERY = """
query BulkOperationStatus($id: ID!) {
    node(id: $id) {
        ... on BulkOperation {
            id
            status
            errorCode
            objectCount
            fileSize
            url
            partialDataUrl
        }
    }
}
"""

_BULK_PRODUCT_FIELDS = """
            id
            title
            handle
            descriptionHtml
            productType
            vendor
            tags
            status
            createdAt
            updatedAt
            variants {
                edges {
                    node {
                        id
                        title
                        price
                        sku
                        inventoryQuantity
                        inventoryItem {
                            measurement {
                                weight {
                                    value
                                    unit
                                }
                            }
                        }
                    }
                }
            }
            media {
                edges {
                    node {
                        ... on MediaImage {
                            id
                            image {
                                url
                                altText
                            }
                        }
                    }
                }
            }
            metafields {
                edges {
                    node {
                        id
                        namespace
                        key
                        value
                        type
                    }
                }
            }
"""


def bulk_products_query(search: str | None = None) -> str:
    """Bulk export of all products, optionally narrowed by a search filter."""
    arguments = f'(query: "{search}")' if search else ""
    return "{\n    products%s {\n        edges {\n            node {%s            }\n        }\n    }\n}\n" % (
        arguments,
        _BULK_PRODUCT_FIELDS,
    )
