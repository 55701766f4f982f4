"""
Cart Store with Durable Local Storage

Client-local staging area for an order: product -> {quantity, note}.
Each cart is one JSON blob on disk, rewritten after every mutation.

Writes go to a temporary file that replaces the blob atomically while a
file lock is held, so a crash can lose the last mutation but never
leaves a half-written cart behind.

Keys:
    - "cart": the personal cart of a signed-in customer
    - "table_cart:<table_id>": the cart of a scanned table session

Author: Tableside Team
Version: 1.0.0
"""

import json
import logging
import os
from dataclasses import asdict, dataclass
from decimal import Decimal
from pathlib import Path
from typing import Optional

from filelock import FileLock, Timeout

from tableside.core.config import Settings, get_settings
from tableside.errors import ValidationError
from tableside.money import ZERO, to_money
from tableside.schemas import ProductResponse

logger = logging.getLogger(__name__)

PERSONAL_CART_KEY = "cart"


def table_cart_key(table_id: int) -> str:
    return f"table_cart:{table_id}"


@dataclass
class CartItem:
    """
    Cart entry. ``unit_price`` is the last price seen by the client and
    is advisory only; orders are repriced at submission.
    """
    product_id: int
    name: str
    unit_price: Decimal
    quantity: int
    note: Optional[str] = None

    @property
    def subtotal(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["unit_price"] = str(self.unit_price)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "CartItem":
        return cls(
            product_id=int(data["product_id"]),
            name=data.get("name", ""),
            unit_price=to_money(data.get("unit_price", "0")),
            quantity=int(data["quantity"]),
            note=data.get("note"),
        )


class FileCartStorage:
    """
    Keyed JSON blob storage under a directory.

    Attributes:
        directory: Where the blobs live
        lock_timeout: Seconds to wait for a blob lock
    """

    def __init__(self, directory, lock_timeout: int = 5):
        self.directory = Path(directory)
        self.lock_timeout = lock_timeout

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "FileCartStorage":
        settings = settings or get_settings()
        return cls(settings.cart_storage_dir, lock_timeout=settings.cart_lock_timeout)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key.replace(':', '_')}.json"

    def _lock(self, key: str) -> FileLock:
        return FileLock(str(self._path(key)) + ".lock", timeout=self.lock_timeout)

    def _ensure_dir(self) -> None:
        if not self.directory.exists():
            self.directory.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created cart directory: {self.directory}")

    def load(self, key: str) -> list[dict]:
        """Read a blob. Missing or unreadable blobs load as an empty cart."""
        path = self._path(key)
        if not path.exists():
            return []
        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Discarding unreadable cart '{key}': {e}")
            return []
        if not isinstance(data, list):
            logger.warning(f"Discarding malformed cart '{key}'")
            return []
        return data

    def save(self, key: str, items: list[dict]) -> bool:
        """Atomically replace a blob. Returns False if the lock timed out."""
        self._ensure_dir()
        path = self._path(key)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            with self._lock(key):
                with tmp_path.open("w", encoding="utf-8") as f:
                    json.dump(items, f)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_path, path)
        except Timeout:
            logger.error(f"Lock timeout ({self.lock_timeout}s) saving cart '{key}'")
            return False
        return True


class CartStore:
    """
    One cart, restored once at construction and persisted on every change.

    Example:
        >>> cart = CartStore(FileCartStorage("data/carts"))
        >>> cart.add(burger, quantity=2, note="No onions")
        >>> cart.item_count
        2
    """

    def __init__(self, storage: FileCartStorage, key: str = PERSONAL_CART_KEY):
        self.storage = storage
        self.key = key
        self._items: dict[int, CartItem] = {}

        for raw in storage.load(key):
            try:
                item = CartItem.from_dict(raw)
            except (KeyError, TypeError, ValueError, ArithmeticError) as e:
                logger.warning(f"Skipping malformed entry in cart '{key}': {e}")
                continue
            if item.quantity >= 1:
                self._items[item.product_id] = item

    def _persist(self) -> None:
        self.storage.save(self.key, [item.to_dict() for item in self._items.values()])

    def add(self, product: ProductResponse, quantity: int = 1, note: Optional[str] = None) -> CartItem:
        """
        Add a product, merging with an existing entry.

        Quantities are summed; the note is overwritten only when given.

        Raises:
            ValidationError: quantity < 1
        """
        if quantity < 1:
            raise ValidationError(f"Quantity must be at least 1, got {quantity}")

        item = self._items.get(product.id)
        if item is None:
            item = CartItem(
                product_id=product.id,
                name=product.name,
                unit_price=to_money(product.price),
                quantity=quantity,
                note=note,
            )
            self._items[product.id] = item
        else:
            item.quantity += quantity
            item.unit_price = to_money(product.price)
            if note is not None:
                item.note = note

        self._persist()
        return item

    def remove(self, product_id: int) -> None:
        if self._items.pop(product_id, None) is not None:
            self._persist()

    def set_quantity(self, product_id: int, quantity: int) -> None:
        """Set an entry's quantity; zero or less removes it."""
        if quantity <= 0:
            self.remove(product_id)
            return
        item = self._items.get(product_id)
        if item is None:
            return
        item.quantity = quantity
        self._persist()

    def set_note(self, product_id: int, note: Optional[str]) -> None:
        item = self._items.get(product_id)
        if item is None:
            return
        item.note = note
        self._persist()

    def clear(self) -> None:
        self._items.clear()
        self._persist()

    @property
    def items(self) -> list[CartItem]:
        return list(self._items.values())

    def get(self, product_id: int) -> Optional[CartItem]:
        return self._items.get(product_id)

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self._items.values())

    @property
    def subtotal(self) -> Decimal:
        """Advisory subtotal from last-known prices."""
        return to_money(sum((item.subtotal for item in self._items.values()), ZERO))

    @property
    def is_empty(self) -> bool:
        return not self._items
