from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException

from app.dependencies.discounts import DiscountServices, get_discount_services
from app.schemas.context import EvaluationContext
from app.schemas.pricing import (
    CartDiscountRequest,
    CartDiscountResponse,
    RecordUsageRequest,
    RecordUsageResponse,
)
from app.services.discount_engine.cart_pipeline import SESSION_KEY

router = APIRouter(tags=["Cart Discounts"])


@router.post("/cart/discounts", response_model=CartDiscountResponse)
def cart_discounts(
    request: CartDiscountRequest,
    services: DiscountServices = Depends(get_discount_services),
):
    """
    Fees, line price overrides and gift line changes for a cart.

    The returned session carries the applied cart rules to the order step.
    """
    context = EvaluationContext(customer=request.customer, cart=request.cart, now=datetime.utcnow())
    session = dict(request.session)

    adjustments = services.pipeline.recalculate(
        request.cart, context, pass_id=request.pass_id, session=session
    )
    return CartDiscountResponse(
        adjustments=adjustments,
        applied_rule_ids=adjustments.applied_rule_ids,
        session=session,
    )


@router.post("/orders/{order_id}/applied-rules", response_model=RecordUsageResponse)
def record_applied_rules(
    order_id: str,
    request: RecordUsageRequest,
    services: DiscountServices = Depends(get_discount_services),
):
    if not order_id.strip():
        raise HTTPException(status_code=400, detail="order_id is required")

    session = {SESSION_KEY: list(request.applied_rules)}
    recorded = services.pipeline.complete_order(order_id, session, user_id=request.user_id)

    return RecordUsageResponse(
        order_id=order_id,
        recorded_rule_ids=recorded,
        skipped_rule_ids=[a.rule_id for a in request.applied_rules if a.rule_id not in recorded],
    )
