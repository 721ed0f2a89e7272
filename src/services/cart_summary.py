"""Cart summary aggregation over line items."""

import logging
from collections.abc import Iterable
from decimal import Decimal

from src.schemas.cart import CartSummary, LineItem
from src.services.pricing import compute_subtotal, quantize

logger = logging.getLogger(__name__)


def fold_cart(
    items: Iterable[LineItem],
    tax: Decimal = Decimal("0"),
    shipping_fee: Decimal = Decimal("0"),
) -> CartSummary:
    """Fold line items into a cart summary.

    Always a full pass over the current items; there is no incremental
    update. Tax and shipping are supplied by the caller because they depend
    on shop and jurisdiction rules.

    Args:
        items: Line items in cart order.
        tax: Tax amount for the cart.
        shipping_fee: Shipping fee for the cart.

    Returns:
        CartSummary: Counts and totals with total = subtotal + tax + shipping_fee.
    """
    items = tuple(items)
    subtotal = quantize(sum((compute_subtotal(item) for item in items), Decimal("0")))
    tax = quantize(Decimal(tax))
    shipping_fee = quantize(Decimal(shipping_fee))
    if tax < 0 or shipping_fee < 0:
        raise ValueError("Tax and shipping fee must be non-negative")

    return CartSummary(
        items=items,
        item_count=sum(item.quantity for item in items),
        subtotal=subtotal,
        tax=tax,
        shipping_fee=shipping_fee,
        total=subtotal + tax + shipping_fee,
    )


def check_summary(summary: CartSummary, reported_total: Decimal | None) -> CartSummary:
    """Compare a separately reported total with the folded one.

    A mismatch is logged and flagged on the returned summary; it is never
    raised, so the cart still renders.
    """
    if reported_total is None:
        return summary
    reported = quantize(Decimal(reported_total))
    if reported == summary.total:
        return summary

    logger.warning(
        "Cart total mismatch: reported %s, computed %s",
        reported,
        summary.total,
        extra={"reported_total": str(reported), "computed_total": str(summary.total)},
    )
    return summary.model_copy(update={"consistent": False})
