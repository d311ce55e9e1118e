from typing import Sequence

from pdv.domain.models import Product


def search_products(products: Sequence[Product], term: str) -> list[Product]:
    """Case-insensitive match on name or category, substring match on barcode."""
    term = term.strip()
    if not term:
        return list(products)
    needle = term.lower()
    return [
        p
        for p in products
        if needle in p.name.lower()
        or needle in (p.category or "").lower()
        or (p.barcode is not None and term in p.barcode)
    ]


def is_low_stock(product: Product, default_threshold: int = 5) -> bool:
    threshold = product.min_stock if product.min_stock is not None else default_threshold
    return product.stock <= threshold


def low_stock(products: Sequence[Product], default_threshold: int = 5) -> list[Product]:
    flagged = [p for p in products if is_low_stock(p, default_threshold)]
    return sorted(flagged, key=lambda p: (p.stock, p.name))
