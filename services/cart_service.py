import uuid
import logging
import threading
from datetime import datetime
from typing import Dict, List

logger = logging.getLogger(__name__)


class CartError(Exception):
    pass


class CartNotFoundError(CartError):
    def __init__(self, cart_id: str):
        super().__init__("Cart not found")
        self.cart_id = cart_id


class EmptyCartError(CartError):
    def __init__(self):
        super().__init__("Cannot checkout empty cart")


def numeric_id(gid: str) -> str:
    """gid://shopify/ProductVariant/123 -> 123"""
    return str(gid).rsplit("/", 1)[-1]


class CartService:
    """In-memory shopping carts keyed by uuid"""

    def __init__(self):
        self._carts: Dict[str, Dict] = {}
        self._lock = threading.Lock()

    def create_cart(self) -> Dict:
        now = datetime.utcnow().isoformat()
        cart = {
            "id": str(uuid.uuid4()),
            "items": [],
            "created_at": now,
            "updated_at": now,
        }
        with self._lock:
            self._carts[cart["id"]] = cart

        logger.info(f"🛒 Created cart {cart['id']}")
        return cart

    def get_cart(self, cart_id: str) -> Dict:
        with self._lock:
            cart = self._carts.get(cart_id)
        if cart is None:
            raise CartNotFoundError(cart_id)
        return cart

    def add_items(self, cart_id: str, items: List[Dict]) -> Dict:
        cart = self.get_cart(cart_id)

        if not items:
            raise CartError("No items to add")

        for item in items:
            for field in ("product_id", "variant_id", "quantity"):
                if not item.get(field):
                    raise CartError(f"Missing required item field: {field}")
            quantity = item["quantity"]
            if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
                raise CartError("Quantity must be a positive integer")

        with self._lock:
            for item in items:
                existing = next(
                    (line for line in cart["items"] if line["variant_id"] == item["variant_id"]),
                    None,
                )
                if existing:
                    existing["quantity"] += item["quantity"]
                else:
                    cart["items"].append({
                        "product_id": item["product_id"],
                        "variant_id": item["variant_id"],
                        "quantity": item["quantity"],
                        "title": item.get("title", ""),
                        "price": item.get("price"),
                    })
            cart["updated_at"] = datetime.utcnow().isoformat()

        logger.info(f"🛒 Added {len(items)} item(s) to cart {cart_id}")
        return cart

    def remove_items(self, cart_id: str, item_ids: List[str]) -> Dict:
        """Remove lines whose product_id or variant_id is listed"""
        cart = self.get_cart(cart_id)
        targets = set(item_ids or [])

        with self._lock:
            cart["items"] = [
                line for line in cart["items"]
                if line["product_id"] not in targets and line["variant_id"] not in targets
            ]
            cart["updated_at"] = datetime.utcnow().isoformat()

        logger.info(f"🗑️ Removed {len(targets)} item id(s) from cart {cart_id}")
        return cart

    @staticmethod
    def item_count(cart: Dict) -> int:
        return sum(line["quantity"] for line in cart["items"])

    @staticmethod
    def build_checkout_url(shop_domain: str, cart: Dict) -> str:
        """Shopify cart permalink: /cart/<variant>:<qty>,<variant>:<qty>"""
        lines = ",".join(
            f"{numeric_id(line['variant_id'])}:{line['quantity']}" for line in cart["items"]
        )
        return f"https://{shop_domain}/cart/{lines}"

    def begin_checkout(self, cart_id: str, shop_domain: str) -> Dict:
        cart = self.get_cart(cart_id)
        if not cart["items"]:
            raise EmptyCartError()

        checkout_url = self.build_checkout_url(shop_domain, cart)
        logger.info(f"💳 Checkout started for cart {cart_id}")
        return {"checkout_url": checkout_url, "cart": cart}

    def delete_cart(self, cart_id: str) -> bool:
        with self._lock:
            removed = self._carts.pop(cart_id, None)
        if removed:
            logger.info(f"🛒 Deleted cart {cart_id}")
        return removed is not None

    def cart_count(self) -> int:
        with self._lock:
            return len(self._carts)
