import logging
from datetime import datetime
from time import perf_counter
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from app.dependencies.discounts import DiscountServices, get_discount_services
from app.schemas.context import CustomerContext, EvaluationContext
from app.schemas.pricing import CalculatePriceResponse
from app.services.product_service import get_product, to_product_ref

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Pricing & Calculation"])


@router.get("/products/{product_id}/calculate-price", response_model=CalculatePriceResponse)
def calculate_price(
    product_id: str,
    quantity: int = 1,
    customer_id: Optional[str] = None,
    services: DiscountServices = Depends(get_discount_services),
):
    """
    Final unit price of a product after price rules and event sales.

    Never changes rule usage; calling it twice gives the same answer.
    """

    if quantity <= 0:
        raise HTTPException(status_code=400, detail="Quantity must be positive")

    product = get_product(services.db, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    product_ref = to_product_ref(services.db, product)
    context = EvaluationContext(
        customer=CustomerContext(customer_id=customer_id, logged_in=customer_id is not None),
        now=datetime.utcnow(),
    )

    # ---- measure calculation time ----
    start = perf_counter()
    quote = services.price_engine.quote_price(
        product_ref, product.regular_price, quantity=quantity, context=context
    )
    table = services.price_engine.quantity_price_table(product_ref, product.regular_price, context)
    duration_ms = (perf_counter() - start) * 1000.0

    if duration_ms > 30.0:
        logger.warning(
            "Price calculation for product %s took %.2f ms (quantity=%s)",
            product_id, duration_ms, quantity,
        )

    if quote.applied_rule_ids:
        message = f"{len(quote.applied_rule_ids)} discount rule(s) applied."
    else:
        message = "No discount applies. Regular price."

    return CalculatePriceResponse(
        message=message,
        product_id=product.product_id,
        name=product.name,
        currency=product.currency,
        quantity_requested=quantity,
        regular_price=quote.regular_price,
        unit_final_price=quote.final_price,
        total_final_price=quote.final_price * quantity,
        savings=quote.savings,
        applied_discount_rules=quote.applied_rule_ids,
        quantity_price_table=table,
        calculated_in_ms=duration_ms,
    )
