import csv
import io
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable

from pdv.domain.models import Sale
from pdv.domain.totals import ZERO, round_money, to_decimal

CSV_COLUMNS = ["ID", "Date", "Customer", "Total", "Payment", "Items"]


@dataclass(frozen=True, slots=True)
class SalesSummary:
    total_sales: int
    total_revenue: Decimal
    average_sale: Decimal


def sales_to_csv(sales: Iterable[Sale]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for sale in sales:
        writer.writerow(
            [
                sale.id,
                sale.created_at.strftime("%d/%m/%Y"),
                sale.customer_name or "N/A",
                f"{round_money(sale.total_amount):.2f}",
                sale.payment_method,
                len(sale.items),
            ]
        )
    return buffer.getvalue()


def summarize_sales(sales: Iterable[Sale], day: date | None = None) -> SalesSummary:
    """Count, revenue and average ticket, optionally restricted to one day."""
    selected = [s for s in sales if day is None or s.created_at.date() == day]
    revenue = sum((to_decimal(s.total_amount) for s in selected), ZERO)
    average = revenue / len(selected) if selected else ZERO
    return SalesSummary(total_sales=len(selected), total_revenue=revenue, average_sale=average)


def revenue_by_payment_method(sales: Iterable[Sale]) -> dict[str, Decimal]:
    totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for sale in sales:
        totals[sale.payment_method] += to_decimal(sale.total_amount)
    return dict(totals)
