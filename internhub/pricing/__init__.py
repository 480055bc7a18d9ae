# Façade 'pricing'
from .calculator import (
    AppliedCoupon,
    PricingBreakdown,
    calculate_pricing,
    internship_discount,
    pricing_message,
    savings_percent,
)
from .service import PricingService

__all__ = [
    "AppliedCoupon",
    "PricingBreakdown",
    "calculate_pricing",
    "internship_discount",
    "pricing_message",
    "savings_percent",
    "PricingService",
]
