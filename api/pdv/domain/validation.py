"""Checks a cart must pass before it becomes a sale.

``collect_errors`` returns every problem in check order so a screen can show
them all at once; ``validate`` raises the first one.
"""

from dataclasses import dataclass
from decimal import Decimal

from pdv.domain.cart import Cart
from pdv.domain.errors import (
    EmptyCart,
    InsufficientStock,
    InvalidPrice,
    InvalidQuantity,
    InvalidTaxRate,
    MissingPaymentMethod,
    NegativeDiscount,
    SaleValidationError,
)
from pdv.domain.models import CartLine, OrderTotals, PaymentMethod
from pdv.domain.totals import compute_totals, to_decimal


@dataclass(frozen=True, slots=True)
class ValidatedSale:
    lines: tuple[CartLine, ...]
    payment_method: PaymentMethod
    aggregate_discount: Decimal
    tax_rate: Decimal
    totals: OrderTotals


def collect_errors(cart: Cart, payment_method, aggregate_discount, tax_rate) -> list[SaleValidationError]:
    errors: list[SaleValidationError] = []

    if cart.is_empty:
        errors.append(EmptyCart("Cart is empty"))

    if PaymentMethod.parse(payment_method) is None:
        allowed = ", ".join(m.value for m in PaymentMethod)
        errors.append(MissingPaymentMethod(f"Payment method is required (one of: {allowed})"))

    discount = to_decimal(aggregate_discount)
    if not discount.is_finite() or discount < 0:
        errors.append(NegativeDiscount(f"Order discount must be a non-negative amount, got {discount}"))

    rate = to_decimal(tax_rate)
    if not rate.is_finite() or rate < 0 or rate > 100:
        errors.append(InvalidTaxRate(f"Tax rate must be between 0 and 100%, got {rate}"))

    for line in cart.lines():
        product = line.product
        if line.quantity <= 0:
            errors.append(InvalidQuantity(f"Invalid quantity for {product.name}", product_id=product.id))
        if product.price < 0:
            errors.append(InvalidPrice(f"Invalid price for {product.name}", product_id=product.id))
        if line.quantity > product.stock:
            errors.append(
                InsufficientStock(
                    f"Insufficient stock for {product.name}: have={product.stock}, need={line.quantity}",
                    product_id=product.id,
                )
            )

    return errors


def validate(cart: Cart, payment_method, aggregate_discount, tax_rate) -> ValidatedSale:
    errors = collect_errors(cart, payment_method, aggregate_discount, tax_rate)
    if errors:
        raise errors[0]

    return ValidatedSale(
        lines=cart.lines(),
        payment_method=PaymentMethod.parse(payment_method),
        aggregate_discount=to_decimal(aggregate_discount),
        tax_rate=to_decimal(tax_rate),
        totals=compute_totals(cart, tax_rate, aggregate_discount),
    )
