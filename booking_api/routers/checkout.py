from fastapi import APIRouter

from ..pricing import calculate_pricing
from ..schemas import PricingRequest
from ..time_slots import generate_time_slots
from ..utils import success_response

router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.post("/pricing")
def pricing(payload: PricingRequest):
    breakdown = calculate_pricing(payload.items, payload.discount)
    return success_response(breakdown.model_dump(), "Pricing calculated")


@router.get("/time-slots")
def time_slots():
    return success_response({"available_time_slots": generate_time_slots()})
