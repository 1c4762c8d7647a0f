import re
import logging
from enum import Enum
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)


class ChatIntent(str, Enum):
    PRODUCT_SEARCH = "product_search"
    ADD_TO_CART = "add_to_cart"
    REMOVE_FROM_CART = "remove_from_cart"
    VIEW_CART = "view_cart"
    CHECKOUT = "checkout"
    ORDER_STATUS = "order_status"
    GENERAL_HELP = "general_help"
    GREETING = "greeting"


# Checked top to bottom, first hit wins
INTENT_KEYWORDS: List[Tuple[ChatIntent, Tuple[str, ...]]] = [
    (ChatIntent.ADD_TO_CART, ("add to cart", "add", "buy", "purchase")),
    (ChatIntent.REMOVE_FROM_CART, ("remove", "delete", "take out")),
    (ChatIntent.VIEW_CART, ("cart", "basket")),
    (ChatIntent.CHECKOUT, ("checkout", "check out", "pay", "order now")),
    (ChatIntent.ORDER_STATUS, ("order status", "my order", "track", "tracking", "delivery")),
    (ChatIntent.PRODUCT_SEARCH, ("search", "find", "looking for", "show me", "do you have", "i need")),
    (ChatIntent.GREETING, ("hello", "hi", "hey")),
]

SEARCH_PATTERNS = [
    re.compile(r"looking for (.+)", re.IGNORECASE),
    re.compile(r"search for (.+)", re.IGNORECASE),
    re.compile(r"find (.+)", re.IGNORECASE),
    re.compile(r"show me (.+)", re.IGNORECASE),
    re.compile(r"i want (.+)", re.IGNORECASE),
    re.compile(r"need (.+)", re.IGNORECASE),
]

STOP_WORDS = {"i", "am", "looking", "for", "a", "an", "the", "some", "any"}

ORDER_ID_PATTERNS = [
    re.compile(r"#(\d+)"),
    re.compile(r"order\s+#?(\d+)", re.IGNORECASE),
]

ORDINALS = {
    "first": 1, "second": 2, "third": 3, "fourth": 4, "fifth": 5,
    "sixth": 6, "seventh": 7, "eighth": 8, "ninth": 9, "tenth": 10,
    "1st": 1, "2nd": 2, "3rd": 3, "4th": 4, "5th": 5,
    "last": -1,
}

POSITION_PATTERN = re.compile(r"(?:\bitem|\bnumber|\bno\.?|#)\s*(\d+)\b", re.IGNORECASE)
QUANTITY_PATTERNS = [
    re.compile(r"\b(?:quantity|qty)\s*:?\s*(\d+)\b", re.IGNORECASE),
    re.compile(r"\b(\d+)\s*(?:x|of|pieces|pcs|units)\b", re.IGNORECASE),
]


def _keyword_pattern(keyword: str) -> re.Pattern:
    return re.compile(r"\b" + r"\s+".join(re.escape(part) for part in keyword.split()) + r"\b")


_COMPILED_KEYWORDS = [
    (intent, [_keyword_pattern(k) for k in keywords]) for intent, keywords in INTENT_KEYWORDS
]


class IntentClassifier:
    """Keyword based intent detection and slot extraction for shopper messages"""

    def classify(self, message: str) -> ChatIntent:
        lower_message = (message or "").lower()

        for intent, patterns in _COMPILED_KEYWORDS:
            if any(p.search(lower_message) for p in patterns):
                logger.debug(f"🎯 Intent '{intent.value}' for message: {message!r}")
                return intent

        return ChatIntent.GENERAL_HELP

    def extract_search_query(self, message: str) -> Optional[str]:
        for pattern in SEARCH_PATTERNS:
            match = pattern.search(message)
            if match:
                query = match.group(1).strip().rstrip("?.!").strip()
                if query:
                    return query

        # No phrase matched: fall back to the message minus stop words
        words = [w for w in message.lower().split() if w not in STOP_WORDS]
        return " ".join(words) if words else None

    def extract_order_id(self, message: str) -> Optional[str]:
        for pattern in ORDER_ID_PATTERNS:
            match = pattern.search(message)
            if match:
                return match.group(1)
        return None

    def extract_item_position(self, message: str) -> Optional[int]:
        """
        Find which listed item the shopper refers to

        Returns:
            1-based position, -1 for "last", or None
        """
        for word in re.findall(r"[a-z0-9]+", message.lower()):
            if word in ORDINALS:
                return ORDINALS[word]

        match = POSITION_PATTERN.search(message)
        if match:
            return int(match.group(1))
        return None

    def extract_quantity(self, message: str) -> int:
        for pattern in QUANTITY_PATTERNS:
            match = pattern.search(message)
            if match:
                quantity = int(match.group(1))
                if quantity > 0:
                    return quantity
        return 1
