from __future__ import annotations

from typing import Callable

from app.core.settings import settings
from app.services.carriers.adapter import CarrierAdapter
from app.services.carriers.allstate import AllstateEnrollmentAdapter
from app.services.enrollment_errors import UnsupportedCarrierError

AdapterFactory = Callable[[], CarrierAdapter]


class CarrierRegistry:
    """Carrier adapters keyed by insurance company slug."""

    def __init__(self, factories: dict[str, AdapterFactory] | None = None) -> None:
        self._factories: dict[str, AdapterFactory] = dict(factories or {})

    def register(self, slug: str, factory: AdapterFactory) -> None:
        self._factories[slug.lower()] = factory

    def slugs(self) -> list[str]:
        return sorted(self._factories)

    def get(self, slug: str | None) -> CarrierAdapter:
        key = (slug or settings.default_carrier_slug).lower()
        factory = self._factories.get(key)
        if factory is None:
            raise UnsupportedCarrierError(
                f"Carrier {key} is not supported for enrollment submission",
                details={"carrier": key, "supported": self.slugs()},
            )
        return factory()


def build_default_registry() -> CarrierRegistry:
    registry = CarrierRegistry()
    registry.register(AllstateEnrollmentAdapter.slug, AllstateEnrollmentAdapter)
    return registry
