from fastapi import APIRouter

from mostrador.dependencies.dbDependencies import db_dependency
from mostrador.dependencies.userDependencies import cashier_dependency
from mostrador.modules.coupons.service import CouponService
from mostrador.modules.coupons.schemas import CouponValidateRequest, CouponValidationOut

coupons_router = APIRouter(prefix="/coupons", tags=["Coupons"])


@coupons_router.post("/validate", response_model=CouponValidationOut)
def validate_coupon(
    request: CouponValidateRequest,
    db: db_dependency,
    auth_context: cashier_dependency,
):
    """
    Validar un cupón antes de cobrar.

    Errores posibles (campo `reason`): not_cash_payment, empty_code,
    not_found, inactive, below_minimum_order, usage_limit_reached,
    not_yet_valid, expired.
    """
    service = CouponService(db)
    validation = service.validate(
        request.code,
        request.order_total,
        request.payment_method,
        prior_cash_amount=request.prior_cash_amount,
    )
    return CouponValidationOut(
        coupon_id=validation.coupon_id,
        code=validation.code,
        discount_percentage=validation.discount_percentage,
    )
