from dataclasses import replace
from decimal import Decimal

from pdv.domain.errors import InvalidDiscount, InvalidQuantity, LineNotFound, StockExceeded
from pdv.domain.models import CartLine, Product


class Cart:
    """
    Per-session cart: at most one line per product id, insertion ordered.

    A rejected operation leaves the cart exactly as it was.
    """

    def __init__(self) -> None:
        self._lines: dict[str, CartLine] = {}

    def __len__(self) -> int:
        return len(self._lines)

    @property
    def is_empty(self) -> bool:
        return not self._lines

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self._lines.values())

    def lines(self) -> tuple[CartLine, ...]:
        return tuple(self._lines.values())

    def get(self, product_id: str) -> CartLine | None:
        return self._lines.get(product_id)

    def add_item(self, product: Product, quantity: int = 1) -> CartLine:
        if quantity <= 0:
            raise InvalidQuantity(
                f"Quantity for {product.name} must be at least 1, got {quantity}",
                product_id=product.id,
            )

        existing = self._lines.get(product.id)
        new_qty = quantity + (existing.quantity if existing else 0)
        if new_qty > product.stock:
            raise StockExceeded(
                f"Only {product.stock} of {product.name} in stock, cannot hold {new_qty}",
                product_id=product.id,
            )

        if existing:
            line = replace(existing, product=product, quantity=new_qty)
        else:
            line = CartLine(product=product, quantity=new_qty)
        self._lines[product.id] = line
        return line

    def set_quantity(self, product_id: str, quantity: int) -> CartLine | None:
        line = self._require(product_id)
        if quantity == 0:
            self.remove_item(product_id)
            return None
        if quantity < 0:
            raise InvalidQuantity(
                f"Quantity for {line.product.name} cannot be negative, got {quantity}",
                product_id=product_id,
            )
        if quantity > line.product.stock:
            raise StockExceeded(
                f"Only {line.product.stock} of {line.product.name} in stock, cannot hold {quantity}",
                product_id=product_id,
            )

        line = replace(line, quantity=quantity)
        self._lines[product_id] = line
        return line

    def remove_item(self, product_id: str) -> None:
        self._lines.pop(product_id, None)

    def set_discount(self, product_id: str, percent) -> CartLine:
        line = self._require(product_id)
        percent = Decimal(str(percent))
        if not percent.is_finite() or percent < 0 or percent > 100:
            raise InvalidDiscount(
                f"Discount for {line.product.name} must be between 0 and 100%, got {percent}",
                product_id=product_id,
            )

        line = replace(line, discount_percent=percent)
        self._lines[product_id] = line
        return line

    def refresh_product(self, product: Product) -> CartLine | None:
        """Swap in a fresh product snapshot, e.g. after re-reading stock.

        The quantity is kept as is; a line that no longer fits the stock is
        caught by sale validation.
        """
        line = self._lines.get(product.id)
        if line is None:
            return None
        line = replace(line, product=product)
        self._lines[product.id] = line
        return line

    def clear(self) -> None:
        self._lines.clear()

    def _require(self, product_id: str) -> CartLine:
        line = self._lines.get(product_id)
        if line is None:
            raise LineNotFound(f"Product {product_id} is not in the cart", product_id=product_id)
        return line
