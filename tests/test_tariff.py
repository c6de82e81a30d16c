import math

import pytest

from backend.lib.plugsave_core.tariff import (
    TariffCalculator,
    TariffTier,
    cost_for_usage,
    rate_for_usage,
    round_money,
)


def test_rate_defaults_to_first_tier():
    assert rate_for_usage(0) == 0.18
    assert rate_for_usage(-5) == 0.18
    assert rate_for_usage(float("nan")) == 0.18
    assert rate_for_usage(None) == 0.18
    assert rate_for_usage("lots") == 0.18


def test_rate_tier_boundaries():
    assert rate_for_usage(1) == 0.18
    assert rate_for_usage(2000) == 0.18
    assert rate_for_usage(2000.01) == 0.24
    assert rate_for_usage(4000) == 0.24
    assert rate_for_usage(5999) == 0.30
    assert rate_for_usage(6001) == 0.32
    assert rate_for_usage(1_000_000) == 0.32


def test_rate_is_non_decreasing():
    rates = [rate_for_usage(u) for u in range(0, 9000, 50)]
    assert all(a <= b for a, b in zip(rates, rates[1:]))


def test_cost_examples():
    assert cost_for_usage(2000) == pytest.approx(360.0)
    assert cost_for_usage(2500) == pytest.approx(480.0)
    assert cost_for_usage(6000) == pytest.approx(1440.0)
    assert cost_for_usage(7000) == pytest.approx(1760.0)


def test_cost_is_zero_for_bad_usage():
    assert cost_for_usage(0) == 0
    assert cost_for_usage(-10) == 0
    assert cost_for_usage(None) == 0
    assert cost_for_usage(float("nan")) == 0


def test_cost_matches_sum_of_one_kwh_slices():
    # billing each kWh at the rate of its own band gives the progressive cost
    usage = 4500
    sliced = sum(rate_for_usage(k) for k in range(1, usage + 1))
    assert cost_for_usage(usage) == pytest.approx(sliced)


def test_custom_schedule_and_quote():
    calc = TariffCalculator([TariffTier(100, 0.1), TariffTier(math.inf, 0.5)], currency="EUR")
    assert calc.cost_for_usage(150) == pytest.approx(35.0)
    assert calc.rate_for_usage(-1) == 0.1
    quote = calc.quote(150.333)
    assert quote == {"usage_kwh": 150.333, "rate": 0.5, "cost": 35.17, "currency": "EUR"}


def test_schedule_validation():
    with pytest.raises(ValueError):
        TariffCalculator([TariffTier(100, 0.1)])
    with pytest.raises(ValueError):
        TariffCalculator([TariffTier(200, 0.1), TariffTier(100, 0.2), TariffTier(math.inf, 0.3)])
    with pytest.raises(ValueError):
        TariffCalculator([])


def test_round_money_half_up():
    assert round_money(2.375) == 2.38
    assert round_money(0.125) == 0.13
