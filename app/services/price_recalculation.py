"""Re-price each coverage line against the carrier's rate engine right before submission.

Every line is handled on its own: a rate-engine failure or an unresolvable
product code only affects that line, and the payload builder falls back to the
persisted premium for it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Mapping, Sequence

from app.core.settings import settings
from app.models.coverage import Coverage
from app.services.carriers.adapter import RateEngine, RateQuote, RateQuoteRequest

logger = logging.getLogger(__name__)


class RecalculationStatus(str, Enum):
    RECALCULATED = "recalculated"
    FAILED = "failed"
    PRODUCT_CODE_UNRESOLVED = "product_code_unresolved"


@dataclass(slots=True)
class LineRecalculation:
    plan_key: str
    status: RecalculationStatus
    price: Decimal | None = None
    product_code: str | None = None
    product_code_source: str | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class ProductCodeContext:
    coverage_line: Mapping[str, Any]
    persisted: Coverage | None
    selected_plans: Sequence[Mapping[str, Any]]


@dataclass(frozen=True, slots=True)
class ProductCodeStrategy:
    name: str
    lookup: Callable[[ProductCodeContext], Any]


def _from_draft_line(ctx: ProductCodeContext) -> Any:
    return ctx.coverage_line.get("productCode")


def _from_persisted_metadata(ctx: ProductCodeContext) -> Any:
    return ctx.persisted.product_code if ctx.persisted is not None else None


def _from_selected_plans(ctx: ProductCodeContext) -> Any:
    plan_key = ctx.coverage_line.get("planKey")
    for plan in ctx.selected_plans:
        if isinstance(plan, Mapping) and plan.get("planKey") == plan_key:
            return plan.get("productCode")
    return None


PRODUCT_CODE_STRATEGIES: tuple[ProductCodeStrategy, ...] = (
    ProductCodeStrategy("draft_coverage_line", _from_draft_line),
    ProductCodeStrategy("persisted_coverage_metadata", _from_persisted_metadata),
    ProductCodeStrategy("selected_plans", _from_selected_plans),
)


def resolve_product_code(
    ctx: ProductCodeContext,
    strategies: Sequence[ProductCodeStrategy] = PRODUCT_CODE_STRATEGIES,
) -> tuple[str | None, str | None]:
    """Try each strategy in order; return ``(product_code, strategy_name)``."""
    for strategy in strategies:
        value = strategy.lookup(ctx)
        if value:
            logger.debug(
                "Product code for plan %s resolved via %s",
                ctx.coverage_line.get("planKey"),
                strategy.name,
            )
            return str(value), strategy.name
    return None, None


class PriceRecalculationClient:
    def __init__(self, rate_engine: RateEngine, *, parallel: bool | None = None) -> None:
        self.rate_engine = rate_engine
        self.parallel = settings.parallel_price_recalculation if parallel is None else parallel

    async def recalculate(
        self,
        plan_key: str,
        product_code: str,
        applicants: list[dict[str, Any]],
        location: Mapping[str, Any],
        effective_date: str,
        frequency: str,
    ) -> RateQuote:
        request = RateQuoteRequest(
            plan_key=plan_key,
            product_code=product_code,
            applicants=applicants,
            zip_code=str(location.get("zipCode") or ""),
            state=str(location.get("state") or ""),
            effective_date=effective_date,
            payment_frequency=frequency or "Monthly",
        )
        try:
            return await self.rate_engine.quote(request)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Rate engine raised for plan %s", plan_key)
            return RateQuote.failed(str(exc) or exc.__class__.__name__)

    async def _recalculate_line(
        self,
        line: Mapping[str, Any],
        *,
        persisted: Coverage | None,
        selected_plans: Sequence[Mapping[str, Any]],
        applicants: list[dict[str, Any]],
        location: Mapping[str, Any],
        default_effective_date: str,
    ) -> LineRecalculation:
        plan_key = str(line["planKey"])
        product_code, source = resolve_product_code(
            ProductCodeContext(line, persisted, selected_plans)
        )
        if product_code is None:
            logger.warning(
                "No product code for plan %s; keeping fallback pricing",
                plan_key,
                extra={"step": "recalculate"},
            )
            return LineRecalculation(plan_key, RecalculationStatus.PRODUCT_CODE_UNRESOLVED)

        quote = await self.recalculate(
            plan_key,
            product_code,
            applicants,
            location,
            str(line.get("effectiveDate") or default_effective_date or ""),
            str(line.get("paymentFrequency") or "Monthly"),
        )
        if quote.success and quote.price is not None:
            logger.info(
                "Plan %s re-priced at %s (product code via %s)",
                plan_key,
                quote.price,
                source,
                extra={"step": "recalculate"},
            )
            return LineRecalculation(
                plan_key,
                RecalculationStatus.RECALCULATED,
                price=quote.price,
                product_code=product_code,
                product_code_source=source,
            )

        logger.warning(
            "Could not re-price plan %s: %s",
            plan_key,
            quote.error,
            extra={"step": "recalculate"},
        )
        return LineRecalculation(
            plan_key,
            RecalculationStatus.FAILED,
            product_code=product_code,
            product_code_source=source,
            error=quote.error,
        )

    async def recalculate_all(
        self,
        enrollment_data: Mapping[str, Any],
        persisted_coverages: Sequence[Coverage],
        *,
        default_effective_date: str = "",
    ) -> dict[str, LineRecalculation]:
        lines = [
            line
            for line in enrollment_data.get("coverages") or []
            if isinstance(line, Mapping) and line.get("planKey")
        ]
        if not lines:
            return {}

        demographics = enrollment_data.get("demographics") or {}
        applicants = list(demographics.get("applicants") or enrollment_data.get("applicants") or [])
        selected_plans = enrollment_data.get("selectedPlans") or []
        by_plan = {coverage.plan_key: coverage for coverage in persisted_coverages}

        calls = [
            self._recalculate_line(
                line,
                persisted=by_plan.get(line["planKey"]),
                selected_plans=selected_plans,
                applicants=applicants,
                location=demographics,
                default_effective_date=default_effective_date,
            )
            for line in lines
        ]
        if self.parallel:
            outcomes = await asyncio.gather(*calls)
        else:
            outcomes = [await call for call in calls]
        return {outcome.plan_key: outcome for outcome in outcomes}
