"""Error kinds raised by the cart, the calculator, the validator and checkout.

Every error carries a message an operator can act on: which product and which
constraint. Cart and calculator errors leave prior state untouched.
"""

from typing import Sequence


class PosError(Exception):
    code = "pos_error"

    def __init__(self, message: str, product_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.product_id = product_id

    def to_dict(self) -> dict:
        body = {"code": self.code, "message": self.message}
        if self.product_id is not None:
            body["product_id"] = self.product_id
        return body


class LineNotFound(PosError):
    code = "line_not_found"


class StockExceeded(PosError):
    code = "stock_exceeded"


class InvalidDiscount(PosError):
    code = "invalid_discount"


class SaleValidationError(PosError):
    """Base for the reasons a cart cannot be turned into a sale."""


class EmptyCart(SaleValidationError):
    code = "empty_cart"


class MissingPaymentMethod(SaleValidationError):
    code = "missing_payment_method"


class NegativeDiscount(SaleValidationError):
    code = "negative_discount"


class InvalidTaxRate(SaleValidationError):
    code = "invalid_tax_rate"


class InvalidQuantity(SaleValidationError):
    code = "invalid_quantity"


class InvalidPrice(SaleValidationError):
    code = "invalid_price"


class InsufficientStock(SaleValidationError):
    code = "insufficient_stock"


class PersistenceFailure(PosError):
    code = "persistence_failure"


class PartialCommitFailure(PosError):
    """The sale was written but stock decrements did not all apply.

    Needs manual reconciliation: ``decremented`` lists the product ids whose
    stock was already reduced, ``failed_product_id`` is where it stopped.
    """

    code = "partial_commit_failure"

    def __init__(
        self,
        message: str,
        sale_id: str,
        decremented: Sequence[str],
        failed_product_id: str | None,
    ):
        super().__init__(message, product_id=failed_product_id)
        self.sale_id = sale_id
        self.decremented = list(decremented)
        self.failed_product_id = failed_product_id

    def to_dict(self) -> dict:
        body = super().to_dict()
        body.update(
            {
                "sale_id": self.sale_id,
                "decremented": self.decremented,
                "failed_product_id": self.failed_product_id,
            }
        )
        return body
