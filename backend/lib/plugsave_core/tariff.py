import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional, Sequence


@dataclass(frozen=True)
class TariffTier:
    max_kwh: float
    rate: float


# SEC residential schedule, SAR per kWh
SEC_TIERS = (
    TariffTier(2000, 0.18),
    TariffTier(4000, 0.24),
    TariffTier(6000, 0.30),
    TariffTier(math.inf, 0.32),
)


def _usable(usage_kwh) -> Optional[float]:
    """Return usage as a positive float, or None for missing, NaN, infinite or non-positive input."""
    if usage_kwh is None or isinstance(usage_kwh, bool):
        return None
    try:
        value = float(usage_kwh)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return value


def round_money(amount: float) -> float:
    # ROUND_HALF_UP rather than banker's rounding
    return float(Decimal(str(amount)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))


class TariffCalculator:
    def __init__(self, tiers: Sequence[TariffTier] = SEC_TIERS, currency: str = "SAR"):
        """
        tiers: ascending upper bounds, the last one unbounded (math.inf)
        """
        tiers = tuple(tiers)
        if not tiers:
            raise ValueError("at least one tier is required")
        bounds = [t.max_kwh for t in tiers]
        if any(b >= n for b, n in zip(bounds, bounds[1:])):
            raise ValueError("tier bounds must be strictly ascending")
        if not math.isinf(bounds[-1]):
            raise ValueError("last tier must be unbounded")
        self.tiers = tiers
        self.currency = currency

    @property
    def base_rate(self) -> float:
        return self.tiers[0].rate

    def rate_for_usage(self, usage_kwh) -> float:
        """
        Marginal rate of the tier containing usage_kwh.
        Missing, NaN, negative or zero usage gets the first tier's rate.
        """
        usage = _usable(usage_kwh)
        if usage is None:
            return self.base_rate
        for tier in self.tiers:
            if usage <= tier.max_kwh:
                return tier.rate
        return self.tiers[-1].rate

    def cost_for_usage(self, usage_kwh) -> float:
        """
        Progressive cost: each tier bills only the kWh falling inside its band.
        Missing, NaN or non-positive usage costs 0.
        """
        usage = _usable(usage_kwh)
        if usage is None:
            return 0.0
        remaining = usage
        previous_max = 0.0
        total = 0.0
        for tier in self.tiers:
            band_kwh = min(remaining, tier.max_kwh - previous_max)
            total += band_kwh * tier.rate
            remaining -= band_kwh
            previous_max = tier.max_kwh
            if remaining <= 0:
                break
        return total

    def quote(self, usage_kwh) -> Dict:
        usage = _usable(usage_kwh) or 0.0
        return {
            "usage_kwh": usage,
            "rate": self.rate_for_usage(usage_kwh),
            "cost": round_money(self.cost_for_usage(usage_kwh)),
            "currency": self.currency,
        }


default_calculator = TariffCalculator()


def rate_for_usage(usage_kwh) -> float:
    return default_calculator.rate_for_usage(usage_kwh)


def cost_for_usage(usage_kwh) -> float:
    return default_calculator.cost_for_usage(usage_kwh)
