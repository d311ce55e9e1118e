from decimal import Decimal

from pdv.domain.models import Sale, StoreSettings
from pdv.domain.totals import round_money, to_decimal

RULE = "=" * 32


def short_id(sale_id: str) -> str:
    return sale_id[-8:]


def receipt_filename(sale: Sale) -> str:
    return f"receipt-{short_id(sale.id)}.txt"


def format_currency(amount, symbol: str) -> str:
    return f"{symbol} {round_money(amount):.2f}"


def format_percent(value) -> str:
    pct = to_decimal(value)
    if pct == pct.to_integral_value():
        return str(int(pct))
    return str(pct.normalize())


def render_receipt(sale: Sale, settings: StoreSettings) -> str:
    """Plain-text receipt for a persisted sale, newline separated."""
    def money(amount) -> str:
        return format_currency(amount, settings.currency_symbol)

    lines = [
        settings.company_name,
        RULE,
        f"Sale #: {short_id(sale.id)}",
        f"Date: {sale.created_at.strftime('%d/%m/%Y %H:%M:%S')}",
    ]
    if sale.customer_name:
        lines.append(f"Customer: {sale.customer_name}")
    lines.append(f"Payment: {sale.payment_method.upper()}")
    lines.append(RULE)

    for index, item in enumerate(sale.items, start=1):
        lines.append(f"{index}. {item.product_name or 'Product'}")
        lines.append(f"   {item.quantity} x {money(item.unit_price)} = {money(item.total_price)}")
        if to_decimal(item.discount_percentage) > 0:
            lines.append(f"   Discount: {format_percent(item.discount_percentage)}%")

    # Only the net fields are stored; the subtotal is recovered from them.
    total = to_decimal(sale.total_amount)
    tax = to_decimal(sale.tax_amount)
    discount = to_decimal(sale.discount_amount)
    lines.append(RULE)
    lines.append(f"Subtotal: {money(total - tax + discount)}")
    if discount > 0:
        lines.append(f"Discount: -{money(discount)}")
    if tax > Decimal("0"):
        lines.append(f"Tax ({format_percent(settings.tax_rate)}%): {money(tax)}")
    lines.append(f"TOTAL: {money(total)}")

    if sale.notes:
        lines.append(RULE)
        lines.append("Notes:")
        lines.append(sale.notes)

    lines.append(RULE)
    lines.append(settings.receipt_footer)
    return "\n".join(lines) + "\n"
