import json
import logging
from typing import Dict, List, Optional

from services.cart_service import CartService, CartError
from services.shopify_admin_service import ShopifyAdminService, ShopifyAPIError

logger = logging.getLogger(__name__)


class ToolError(Exception):
    pass


CART_ITEM_SCHEMA = {
    "type": "object",
    "properties": {
        "product_id": {"type": "string"},
        "variant_id": {"type": "string"},
        "quantity": {"type": "integer", "minimum": 1},
    },
    "required": ["product_id", "variant_id", "quantity"],
}

TOOL_DEFINITIONS = [
    {
        "name": "query_products",
        "description": "Search and retrieve product information from the Shopify store",
        "inputSchema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search query for products"},
                "limit": {
                    "type": "integer",
                    "description": "Maximum number of products to return (default: 10)",
                    "default": 10,
                },
                "collection_id": {
                    "type": "string",
                    "description": "Optional collection ID to filter products",
                },
            },
            "required": ["query"],
        },
    },
    {
        "name": "create_cart",
        "description": "Initialize a new shopping cart session",
        "inputSchema": {"type": "object", "properties": {}},
    },
    {
        "name": "add_to_cart",
        "description": "Add specified products with quantities to cart",
        "inputSchema": {
            "type": "object",
            "properties": {
                "cart_id": {"type": "string", "description": "Cart ID to add items to"},
                "items": {
                    "type": "array",
                    "description": "Array of items to add to cart",
                    "items": CART_ITEM_SCHEMA,
                },
            },
            "required": ["cart_id", "items"],
        },
    },
    {
        "name": "remove_from_cart",
        "description": "Remove items from existing cart",
        "inputSchema": {
            "type": "object",
            "properties": {
                "cart_id": {"type": "string", "description": "Cart ID to remove items from"},
                "item_ids": {
                    "type": "array",
                    "description": "Product or variant IDs to remove",
                    "items": {"type": "string"},
                },
            },
            "required": ["cart_id", "item_ids"],
        },
    },
    {
        "name": "view_cart",
        "description": "Show the contents of a cart",
        "inputSchema": {
            "type": "object",
            "properties": {"cart_id": {"type": "string", "description": "Cart ID to show"}},
            "required": ["cart_id"],
        },
    },
    {
        "name": "begin_checkout",
        "description": "Initiate the checkout process",
        "inputSchema": {
            "type": "object",
            "properties": {"cart_id": {"type": "string", "description": "Cart ID to checkout"}},
            "required": ["cart_id"],
        },
    },
    {
        "name": "order_status",
        "description": "Check status of existing orders",
        "inputSchema": {
            "type": "object",
            "properties": {
                "order_id": {"type": "string", "description": "Order ID to check status for"},
            },
            "required": ["order_id"],
        },
    },
]

_DEFINITIONS_BY_NAME = {tool["name"]: tool for tool in TOOL_DEFINITIONS}

_JSON_TYPES = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "array": (list,),
    "object": (dict,),
}


def check_argument(path: str, value, schema: Dict) -> None:
    """Raise ToolError when value does not have the JSON schema type declared for it"""
    expected = schema.get("type")
    types = _JSON_TYPES.get(expected)
    if types and (not isinstance(value, types) or isinstance(value, bool)):
        raise ToolError(f"Invalid parameter {path}: expected {expected}")

    if expected == "array":
        for index, item in enumerate(value):
            check_argument(f"{path}[{index}]", item, schema.get("items", {}))
    elif expected == "object":
        for field in schema.get("required", []):
            if value.get(field) in (None, ""):
                raise ToolError(f"Missing required parameter: {path}.{field}")
        for field, field_schema in schema.get("properties", {}).items():
            if value.get(field) is not None:
                check_argument(f"{path}.{field}", value[field], field_schema)


MOCK_PRODUCTS = [
    {
        "id": "gid://shopify/Product/1",
        "title": "Sample Product 1",
        "description": "A great product for testing",
        "handle": "sample-product-1",
        "images": [{"id": "gid://shopify/ProductImage/1", "url": "https://example.com/image1.jpg", "altText": None}],
        "variants": [
            {
                "id": "gid://shopify/ProductVariant/1",
                "title": "Default Title",
                "price": "29.99",
                "compareAtPrice": None,
                "available": True,
                "selectedOptions": [],
            }
        ],
        "tags": [],
        "productType": "",
        "vendor": "",
        "createdAt": None,
        "updatedAt": None,
    }
]

MOCK_ORDER = {
    "fulfillmentStatus": "FULFILLED",
    "financialStatus": "PAID",
    "totalPrice": "59.98 USD",
    "processedAt": "2024-01-15T10:30:00Z",
    "trackingInfo": [{"number": "1Z999AA1234567890", "url": None, "company": "UPS"}],
}


class ToolService:
    """Dispatches commerce tool calls to the cart store and the Shopify admin client"""

    def __init__(self, cart_service: CartService, fallback_shop_domain: str = "example.myshopify.com"):
        self.cart_service = cart_service
        self.fallback_shop_domain = fallback_shop_domain
        self._handlers = {
            "query_products": self._query_products,
            "create_cart": self._create_cart,
            "add_to_cart": self._add_to_cart,
            "remove_from_cart": self._remove_from_cart,
            "view_cart": self._view_cart,
            "begin_checkout": self._begin_checkout,
            "order_status": self._order_status,
        }

    def list_tools(self) -> List[Dict]:
        return TOOL_DEFINITIONS

    def execute(self, tool_name: str, params: Optional[Dict] = None,
                admin: Optional[ShopifyAdminService] = None) -> Dict:
        handler = self._handlers.get(tool_name)
        if not handler:
            raise ToolError(f"Unknown tool: {tool_name}")

        if params is None:
            params = {}
        if not isinstance(params, dict):
            raise ToolError("Tool arguments must be an object")

        schema = _DEFINITIONS_BY_NAME[tool_name]["inputSchema"]
        for field in schema.get("required", []):
            if params.get(field) in (None, "", []):
                raise ToolError(f"Missing required parameter: {field}")
        for field, field_schema in schema.get("properties", {}).items():
            if params.get(field) is not None:
                check_argument(field, params[field], field_schema)

        logger.info(f"🔧 Executing tool {tool_name}: {json.dumps(params, default=str)}")
        return handler(params, admin)

    def execute_tool_calls(self, tool_calls: List[Dict],
                           admin: Optional[ShopifyAdminService] = None) -> List[Dict]:
        results = []
        for call in tool_calls:
            results.append(self.execute_tool_call(call, admin))
        return results

    def execute_tool_call(self, call: Dict, admin: Optional[ShopifyAdminService] = None) -> Dict:
        """Run one {tool, params} call; failures come back as {error} results"""
        try:
            result = self.execute(call["tool"], call.get("params"), admin)
            return {"tool": call["tool"], "result": result, "success": True}
        except (ToolError, CartError, ShopifyAPIError) as e:
            logger.warning(f"🔧 Tool {call['tool']} failed: {e}")
            return {"tool": call["tool"], "result": {"error": str(e)}, "success": False}
        except Exception as e:
            logger.exception(f"🔧 Unexpected error in tool {call['tool']}")
            return {"tool": call["tool"], "result": {"error": str(e)}, "success": False}

    # Handlers

    def _query_products(self, params: Dict, admin: Optional[ShopifyAdminService]) -> Dict:
        query = params["query"]
        limit = int(params.get("limit") or 10)

        if admin:
            try:
                products = admin.search_products(query, limit, params.get("collection_id"))
            except ShopifyAPIError as e:
                raise ToolError(f"Failed to search products: {e}") from e
        else:
            logger.info("🛍️ No shop session, using mock catalogue")
            products = MOCK_PRODUCTS[:limit]

        return {"products": products, "count": len(products), "query": query}

    def _create_cart(self, params: Dict, admin: Optional[ShopifyAdminService]) -> Dict:
        cart = self.cart_service.create_cart()
        return {"cart_id": cart["id"], "message": "Cart created successfully", "items": []}

    def _add_to_cart(self, params: Dict, admin: Optional[ShopifyAdminService]) -> Dict:
        items = params["items"]
        cart = self.cart_service.add_items(params["cart_id"], items)
        return {
            "cart_id": cart["id"],
            "message": f"Added {len(items)} item(s) to cart",
            "items": items,
            "cart": cart,
            "item_count": self.cart_service.item_count(cart),
        }

    def _remove_from_cart(self, params: Dict, admin: Optional[ShopifyAdminService]) -> Dict:
        item_ids = params["item_ids"]
        cart = self.cart_service.remove_items(params["cart_id"], item_ids)
        return {
            "cart_id": cart["id"],
            "message": f"Removed {len(item_ids)} item(s) from cart",
            "removed_items": item_ids,
            "cart": cart,
        }

    def _view_cart(self, params: Dict, admin: Optional[ShopifyAdminService]) -> Dict:
        cart = self.cart_service.get_cart(params["cart_id"])
        return {
            "cart_id": cart["id"],
            "cart": cart,
            "item_count": self.cart_service.item_count(cart),
        }

    def _begin_checkout(self, params: Dict, admin: Optional[ShopifyAdminService]) -> Dict:
        shop_domain = self.fallback_shop_domain
        if admin:
            try:
                shop_domain = admin.get_shop_domain()
            except ShopifyAPIError as e:
                raise ToolError(f"Failed to create checkout: {e}") from e

        checkout = self.cart_service.begin_checkout(params["cart_id"], shop_domain)
        return {
            "cart_id": params["cart_id"],
            "checkout_url": checkout["checkout_url"],
            "message": "Checkout initiated successfully",
            "cart": checkout["cart"],
        }

    def _order_status(self, params: Dict, admin: Optional[ShopifyAdminService]) -> Dict:
        order_id = str(params["order_id"])

        if not admin:
            order = {"id": order_id, "name": f"#{order_id.lstrip('#')}", **MOCK_ORDER}
            return {"order_id": order_id, "order": order, "found": True, "mock": True}

        try:
            order = admin.get_order(order_id)
        except ShopifyAPIError as e:
            return {
                "order_id": order_id,
                "message": "Unable to retrieve order status at this time",
                "error": str(e),
                "found": False,
            }

        if not order:
            return {"order_id": order_id, "message": "Order not found", "found": False}

        return {"order_id": order_id, "order": order, "found": True}
