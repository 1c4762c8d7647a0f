import json
import logging
from typing import Dict, List, Optional

import shopify

logger = logging.getLogger(__name__)


class ShopifyAPIError(Exception):
    pass


PRODUCT_FIELDS = """
    id
    title
    description
    handle
    images(first: 5) {
      edges { node { id url altText } }
    }
    variants(first: 10) {
      edges {
        node {
          id
          title
          price
          compareAtPrice
          availableForSale
          selectedOptions { name value }
        }
      }
    }
    tags
    productType
    vendor
    createdAt
    updatedAt
"""

SEARCH_PRODUCTS_QUERY = """
query searchProducts($query: String!, $first: Int!) {
  products(first: $first, query: $query) {
    edges { node { %s } }
  }
}
""" % PRODUCT_FIELDS

COLLECTION_PRODUCTS_QUERY = """
query collectionProducts($id: ID!, $first: Int!) {
  collection(id: $id) {
    products(first: $first) {
      edges { node { %s } }
    }
  }
}
""" % PRODUCT_FIELDS

GET_PRODUCT_QUERY = """
query getProduct($id: ID!) {
  product(id: $id) { %s }
}
""" % PRODUCT_FIELDS

ORDER_FIELDS = """
    id
    name
    orderNumber: number
    processedAt
    totalPriceSet { shopMoney { amount currencyCode } }
    subtotalPriceSet { shopMoney { amount currencyCode } }
    totalTaxSet { shopMoney { amount currencyCode } }
    displayFulfillmentStatus
    displayFinancialStatus
    lineItems(first: 50) {
      edges {
        node {
          id
          title
          quantity
          originalUnitPriceSet { shopMoney { amount currencyCode } }
          variant { id title }
        }
      }
    }
    shippingAddress { firstName lastName address1 city province country zip }
    fulfillments { trackingInfo { number url company } }
"""

GET_ORDER_QUERY = """
query getOrder($id: ID!) {
  order(id: $id) { %s }
}
""" % ORDER_FIELDS

FIND_ORDER_QUERY = """
query findOrder($query: String!) {
  orders(first: 1, query: $query) {
    edges { node { %s } }
  }
}
""" % ORDER_FIELDS

COLLECTIONS_QUERY = """
query getCollections($first: Int!) {
  collections(first: $first) {
    edges { node { id title handle } }
  }
}
"""

SHOP_QUERY = """
query { shop { myshopifyDomain } }
"""


def _edges(connection: Optional[Dict]) -> List[Dict]:
    if not connection:
        return []
    return [edge["node"] for edge in connection.get("edges", [])]


def _money(money_set: Optional[Dict]) -> Optional[str]:
    if not money_set:
        return None
    shop_money = money_set["shopMoney"]
    return f"{shop_money['amount']} {shop_money['currencyCode']}"


def transform_product(node: Dict) -> Dict:
    return {
        "id": node["id"],
        "title": node.get("title", ""),
        "description": node.get("description") or "",
        "handle": node.get("handle", ""),
        "images": [
            {"id": img.get("id"), "url": img.get("url"), "altText": img.get("altText")}
            for img in _edges(node.get("images"))
        ],
        "variants": [
            {
                "id": variant["id"],
                "title": variant.get("title"),
                "price": variant.get("price"),
                "compareAtPrice": variant.get("compareAtPrice"),
                "available": variant.get("availableForSale", False),
                "selectedOptions": variant.get("selectedOptions", []),
            }
            for variant in _edges(node.get("variants"))
        ],
        "tags": node.get("tags", []),
        "productType": node.get("productType", ""),
        "vendor": node.get("vendor", ""),
        "createdAt": node.get("createdAt"),
        "updatedAt": node.get("updatedAt"),
    }


def transform_order(node: Dict) -> Dict:
    return {
        "id": node["id"],
        "name": node.get("name"),
        "orderNumber": node.get("orderNumber"),
        "processedAt": node.get("processedAt"),
        "totalPrice": _money(node.get("totalPriceSet")),
        "subtotalPrice": _money(node.get("subtotalPriceSet")),
        "totalTax": _money(node.get("totalTaxSet")),
        "fulfillmentStatus": node.get("displayFulfillmentStatus"),
        "financialStatus": node.get("displayFinancialStatus"),
        "lineItems": [
            {
                "id": item["id"],
                "title": item.get("title"),
                "quantity": item.get("quantity"),
                "price": _money(item.get("originalUnitPriceSet")),
                "variant": {
                    "id": item["variant"]["id"],
                    "title": item["variant"].get("title"),
                } if item.get("variant") else None,
            }
            for item in _edges(node.get("lineItems"))
        ],
        "shippingAddress": node.get("shippingAddress"),
        "trackingInfo": [
            {"number": info.get("number"), "url": info.get("url"), "company": info.get("company")}
            for fulfillment in node.get("fulfillments") or []
            for info in fulfillment.get("trackingInfo") or []
        ],
    }


class ShopifyAdminService:
    """Thin Admin GraphQL client for one installed shop"""

    def __init__(self, shop_domain: str, access_token: str, api_version: str = "2024-10"):
        self.shop_domain = shop_domain
        self.access_token = access_token
        self.api_version = api_version

    def _execute(self, query: str, variables: Optional[Dict] = None) -> Dict:
        session = shopify.Session(self.shop_domain, self.api_version, self.access_token)
        shopify.ShopifyResource.activate_session(session)
        try:
            raw = shopify.GraphQL().execute(query, variables=variables)
        except Exception as e:
            logger.error(f"🔧 GraphQL request to {self.shop_domain} failed: {e}")
            raise ShopifyAPIError(str(e)) from e
        finally:
            shopify.ShopifyResource.clear_session()

        data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw

        if data.get("errors"):
            raise ShopifyAPIError(f"GraphQL errors: {json.dumps(data['errors'])}")

        return data.get("data") or {}

    def search_products(self, query: str, limit: int = 10, collection_id: Optional[str] = None) -> List[Dict]:
        logger.info(f"🛍️ Searching products on {self.shop_domain}: '{query}'")

        if collection_id:
            data = self._execute(COLLECTION_PRODUCTS_QUERY, {"id": collection_id, "first": limit})
            collection = data.get("collection") or {}
            nodes = _edges(collection.get("products"))
            # The collection connection takes no search string, so filter locally
            needle = query.lower()
            nodes = [n for n in nodes if needle in n.get("title", "").lower()] or nodes
        else:
            data = self._execute(SEARCH_PRODUCTS_QUERY, {"query": query, "first": limit})
            nodes = _edges(data.get("products"))

        products = [transform_product(node) for node in nodes]
        logger.info(f"🛍️ Search complete: {len(products)} products found")
        return products

    def get_product(self, product_id: str) -> Optional[Dict]:
        data = self._execute(GET_PRODUCT_QUERY, {"id": product_id})
        node = data.get("product")
        return transform_product(node) if node else None

    def get_order(self, order_id: str) -> Optional[Dict]:
        """
        Look up an order by gid, or by its number as shown to shoppers (#1001)
        """
        order_id = str(order_id).strip()
        logger.info(f"📦 Looking up order {order_id}")

        if order_id.startswith("gid://"):
            node = self._execute(GET_ORDER_QUERY, {"id": order_id}).get("order")
        else:
            name = order_id if order_id.startswith("#") else f"#{order_id}"
            data = self._execute(FIND_ORDER_QUERY, {"query": f"name:{name}"})
            nodes = _edges(data.get("orders"))
            node = nodes[0] if nodes else None

        return transform_order(node) if node else None

    def get_collections(self, limit: int = 10) -> List[Dict]:
        data = self._execute(COLLECTIONS_QUERY, {"first": limit})
        return [
            {"id": node["id"], "title": node.get("title"), "handle": node.get("handle")}
            for node in _edges(data.get("collections"))
        ]

    def get_shop_domain(self) -> str:
        data = self._execute(SHOP_QUERY)
        shop = data.get("shop") or {}
        return shop.get("myshopifyDomain") or self.shop_domain
