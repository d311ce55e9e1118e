"""Order total arithmetic.

Everything here is computed with ``Decimal`` at full context precision and is
never rounded; ``round_money`` is for presentation and currency columns only.
Totals are derived from the cart's current lines on every call.
"""

from decimal import ROUND_HALF_UP, Decimal

from pdv.domain.cart import Cart
from pdv.domain.errors import InvalidDiscount, InvalidTaxRate
from pdv.domain.models import CartLine, OrderTotals

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value) -> Decimal:
    # ROUND_HALF_UP rounds ties away from zero for negatives too.
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(line: CartLine) -> Decimal:
    return to_decimal(line.product.price) * line.quantity


def line_discount_amount(line: CartLine) -> Decimal:
    return line_total(line) * to_decimal(line.discount_percent or 0) / HUNDRED


def line_net(line: CartLine) -> Decimal:
    return line_total(line) - line_discount_amount(line)


def subtotal(cart: Cart) -> Decimal:
    return sum((line_net(line) for line in cart.lines()), ZERO)


def check_tax_rate(tax_rate) -> Decimal:
    rate = to_decimal(tax_rate)
    if not rate.is_finite() or rate < 0 or rate > HUNDRED:
        raise InvalidTaxRate(f"Tax rate must be between 0 and 100%, got {rate}")
    return rate


def check_aggregate_discount(aggregate_discount) -> Decimal:
    discount = to_decimal(aggregate_discount)
    if not discount.is_finite() or discount < 0:
        raise InvalidDiscount(f"Order discount must be a non-negative amount, got {discount}")
    return discount


def tax_amount(cart: Cart, tax_rate) -> Decimal:
    rate = check_tax_rate(tax_rate)
    return subtotal(cart) * rate / HUNDRED


def compute_totals(cart: Cart, tax_rate, aggregate_discount=ZERO) -> OrderTotals:
    """Subtotal, tax, effective discount and grand total for ``cart``.

    The grand total never goes below zero: a discount larger than
    ``subtotal + tax`` is capped there, and the capped value is what
    ``discount_amount`` reports.
    """
    rate = check_tax_rate(tax_rate)
    discount = check_aggregate_discount(aggregate_discount)

    sub = subtotal(cart)
    tax = sub * rate / HUNDRED
    gross = sub + tax
    effective_discount = min(discount, gross)
    return OrderTotals(
        subtotal=sub,
        tax_amount=tax,
        discount_amount=effective_discount,
        grand_total=gross - effective_discount,
    )


def grand_total(cart: Cart, tax_rate, aggregate_discount=ZERO) -> Decimal:
    return compute_totals(cart, tax_rate, aggregate_discount).grand_total
