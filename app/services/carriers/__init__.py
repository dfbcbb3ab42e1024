from app.services.carriers.adapter import (
    CarrierAdapter,
    CarrierError,
    CarrierPolicyOutcome,
    CarrierResult,
    RateEngine,
    RateQuote,
    RateQuoteRequest,
)
from app.services.carriers.registry import CarrierRegistry, build_default_registry

__all__ = [
    "CarrierAdapter",
    "CarrierError",
    "CarrierPolicyOutcome",
    "CarrierRegistry",
    "CarrierResult",
    "RateEngine",
    "RateQuote",
    "RateQuoteRequest",
    "build_default_registry",
]
