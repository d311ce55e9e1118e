"""Turns a validated cart into a persisted sale and applies the stock decrement.

The store writes the sale with its items, then decrements each product's stock
with a conditional update. A transactional store rolls everything back on
failure. A store without transactions cannot undo the sale row, so a failed
decrement there is reported as ``PartialCommitFailure`` for manual
reconciliation.
"""

import logging
from typing import Protocol

from pdv.domain.cart import Cart
from pdv.domain.errors import (
    InsufficientStock,
    PartialCommitFailure,
    PersistenceFailure,
    PosError,
)
from pdv.domain.models import Sale, SaleDraft, SaleItemDraft
from pdv.domain.totals import line_net, round_money, to_decimal
from pdv.domain.validation import ValidatedSale, validate

logger = logging.getLogger(__name__)


class SaleStore(Protocol):
    transactional: bool

    def insert_sale(self, draft: SaleDraft) -> Sale: ...

    def decrement_stock(self, product_id: str, quantity: int) -> None:
        """Decrement only if current stock >= quantity, else raise InsufficientStock."""

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


def build_sale_draft(
    validated: ValidatedSale,
    cashier_id: str,
    customer_id: str | None = None,
    notes: str | None = None,
) -> SaleDraft:
    items = tuple(
        SaleItemDraft(
            product_id=line.product.id,
            quantity=line.quantity,
            unit_price=round_money(line.product.price),
            discount_percentage=to_decimal(line.discount_percent or 0),
            total_price=round_money(line_net(line)),
        )
        for line in validated.lines
    )
    totals = validated.totals
    return SaleDraft(
        cashier_id=cashier_id,
        customer_id=customer_id,
        total_amount=round_money(totals.grand_total),
        discount_amount=round_money(totals.discount_amount),
        tax_amount=round_money(totals.tax_amount),
        payment_method=validated.payment_method,
        notes=notes.strip() if notes and notes.strip() else None,
        items=items,
    )


def submit_sale(
    store: SaleStore,
    cart: Cart,
    payment_method,
    aggregate_discount,
    tax_rate,
    cashier_id: str,
    customer_id: str | None = None,
    notes: str | None = None,
) -> Sale:
    validated = validate(cart, payment_method, aggregate_discount, tax_rate)
    draft = build_sale_draft(validated, cashier_id, customer_id=customer_id, notes=notes)
    logger.info(
        "checkout start cashier=%s lines=%d total=%s payment=%s",
        cashier_id,
        len(draft.items),
        draft.total_amount,
        draft.payment_method.value,
    )

    try:
        sale = store.insert_sale(draft)
    except Exception as exc:
        store.rollback()
        logger.error("checkout failed writing sale: %s", exc)
        raise PersistenceFailure(f"Could not record sale: {exc}") from exc

    logger.info("[sale=%s] recorded with %d items", sale.id, len(sale.items))

    decremented: list[str] = []
    for item in draft.items:
        try:
            store.decrement_stock(item.product_id, item.quantity)
        except Exception as exc:
            _abort_after_insert(store, sale, decremented, item.product_id, exc)
        decremented.append(item.product_id)
        logger.info("[sale=%s] stock decremented product=%s qty=%d", sale.id, item.product_id, item.quantity)

    try:
        store.commit()
    except Exception as exc:
        if not store.transactional:
            logger.error(
                "[sale=%s] PARTIAL COMMIT: commit failed after decremented=%s: %s",
                sale.id,
                decremented,
                exc,
            )
            raise PartialCommitFailure(
                f"Sale {sale.id} and its stock updates were written but the commit failed ({exc}); "
                "reconcile manually",
                sale_id=sale.id,
                decremented=decremented,
                failed_product_id=None,
            ) from exc
        store.rollback()
        logger.error("[sale=%s] commit failed: %s", sale.id, exc)
        raise PersistenceFailure(f"Could not commit sale {sale.id}: {exc}") from exc

    cart.clear()
    logger.info("[sale=%s] checkout OK total=%s", sale.id, sale.total_amount)
    return sale


def _abort_after_insert(
    store: SaleStore,
    sale: Sale,
    decremented: list[str],
    product_id: str,
    exc: Exception,
) -> None:
    if store.transactional:
        store.rollback()
        logger.warning("[sale=%s] rolled back, stock update failed for product=%s: %s", sale.id, product_id, exc)
        if isinstance(exc, PosError):
            raise exc
        raise PersistenceFailure(f"Could not update stock for product {product_id}: {exc}", product_id) from exc

    logger.error(
        "[sale=%s] PARTIAL COMMIT: sale recorded, decremented=%s, failed product=%s: %s",
        sale.id,
        decremented,
        product_id,
        exc,
    )
    reason = exc.message if isinstance(exc, InsufficientStock) else str(exc)
    raise PartialCommitFailure(
        f"Sale {sale.id} was recorded but stock for product {product_id} could not be updated "
        f"({reason}); reconcile manually",
        sale_id=sale.id,
        decremented=decremented,
        failed_product_id=product_id,
    ) from exc
