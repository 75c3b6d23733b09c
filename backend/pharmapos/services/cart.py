# Overview: Point-of-sale cart; builds the denormalized line items a sale embeds.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from ..domain import jsonable, to_money


class CartError(ValueError):
    """Raised when a cart edit would exceed cached stock or is otherwise invalid."""
    pass


@dataclass
class CartItem:
    """
    Product snapshot taken when the item was added, plus the quantity sold.

    `available` is the on-hand quantity the snapshot showed at that time; it
    bounds edits in the cart but is never written back to the store.
    """
    product_id: int
    name: str
    form: str
    content: str
    line: str
    batch: str | None
    barcode: str | None
    price: Decimal
    cost: Decimal
    available: int
    sale_quantity: int = 1

    @classmethod
    def from_product(cls, product: dict, quantity: int = 1) -> "CartItem":
        return cls(
            product_id=product["id"],
            name=product["name"],
            form=product.get("form") or "",
            content=product.get("content") or "",
            line=product.get("line") or "",
            batch=product.get("batch"),
            barcode=product.get("barcode"),
            price=to_money(product.get("price")),
            cost=to_money(product.get("cost")),
            available=int(product.get("quantity") or 0),
            sale_quantity=quantity,
        )

    @property
    def subtotal(self) -> Decimal:
        return to_money(self.price * self.sale_quantity)

    def to_record(self) -> dict:
        """JSON-safe line item as stored inside Sale.items."""
        return jsonable({
            "id": self.product_id,
            "name": self.name,
            "form": self.form,
            "content": self.content,
            "line": self.line,
            "batch": self.batch,
            "barcode": self.barcode,
            "price": self.price,
            "cost": self.cost,
            "saleQuantity": self.sale_quantity,
            "subtotal": self.subtotal,
        })


class Cart:
    """Ordered collection of CartItems, one per product."""

    def __init__(self):
        self._items: dict[int, CartItem] = {}

    def __len__(self) -> int:
        return len(self._items)

    @property
    def items(self) -> list[CartItem]:
        return list(self._items.values())

    @property
    def is_empty(self) -> bool:
        return not self._items

    def add(self, product: dict, quantity: int = 1) -> CartItem:
        """
        Add units of a product; adding an existing product increments it.

        Never goes beyond the stock the product dict shows.
        """
        if quantity < 1:
            raise CartError("quantity must be at least 1")

        available = int(product.get("quantity") or 0)
        if available <= 0:
            raise CartError(f"{product.get('name')} is out of stock")

        if not self.has_room(product, quantity):
            raise CartError(
                f"Insufficient stock for {product.get('name')}: {available} available"
            )

        existing = self._items.get(product["id"])
        if existing:
            existing.sale_quantity += quantity
            existing.available = available
            return existing

        item = CartItem.from_product(product, quantity)
        self._items[item.product_id] = item
        return item

    def set_quantity(self, product_id: int, quantity: int) -> CartItem:
        item = self._items.get(product_id)
        if item is None:
            raise CartError("Product is not in the cart")
        if quantity < 1:
            raise CartError("quantity must be at least 1")
        if quantity > item.available:
            raise CartError(f"Insufficient stock for {item.name}: {item.available} available")
        item.sale_quantity = quantity
        return item

    def remove(self, product_id: int) -> None:
        self._items.pop(product_id, None)

    def clear(self) -> None:
        self._items.clear()

    def total(self) -> Decimal:
        return to_money(sum((item.subtotal for item in self._items.values()), Decimal("0")))

    def has_room(self, product: dict | None, quantity: int) -> bool:
        """Whether the product dict shows enough stock for quantity more units."""
        if product is None:
            return False
        existing = self._items.get(product["id"])
        current = existing.sale_quantity if existing else 0
        return current + quantity <= int(product.get("quantity") or 0)

    @classmethod
    def from_lines(cls, lines, snapshot, refresh=None) -> "Cart":
        """
        Build a cart from [{"productId", "saleQuantity"}] against the snapshot.

        Raises CartError for unknown products, bad quantities or lines that
        exceed cached stock. When given, refresh(product_ids) is called to
        re-read a product from the store before its line is refused, since
        another worker may have created or restocked it.
        """
        if not isinstance(lines, list):
            raise CartError("items must be a list")

        cart = cls()
        for line in lines:
            if not isinstance(line, dict):
                raise CartError("each item must be an object")
            product_id = line.get("productId", line.get("id"))
            quantity = line.get("saleQuantity", line.get("quantity", 1))
            if isinstance(quantity, bool) or not isinstance(quantity, int):
                raise CartError("saleQuantity must be an integer")

            product = snapshot.get("products", product_id)
            stale = quantity >= 1 and isinstance(product_id, int) and not cart.has_room(product, quantity)
            if refresh is not None and stale:
                refresh([product_id])
                product = snapshot.get("products", product_id)
            if product is None:
                raise CartError(f"Product {product_id} not found")
            cart.add(product, quantity)
        return cart
