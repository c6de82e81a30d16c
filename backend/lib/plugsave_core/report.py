from typing import Dict, Iterable

from .classifier import DeviceClassifier, default_classifier
from .models import Device
from .tariff import TariffCalculator, default_calculator, round_money

DEVICE_SAVINGS_PCT = 0.20
ANNUAL_SAVINGS_PCT = 0.15


def summarize_devices(records: Iterable[Dict],
                      calculator: TariffCalculator = None,
                      classifier: DeviceClassifier = None) -> Dict:
    """
    Owner-level usage summary for the report page.

    Each device is billed on its own monthly counter; the total is the
    tiered cost of the combined monthly kWh, so it is not the sum of the
    per-device costs once the owner crosses into a higher tier.
    """
    calculator = calculator or default_calculator
    classifier = classifier or default_classifier
    devices = [Device.from_record(r) for r in records]

    rows = []
    for d in devices:
        monthly_cost = calculator.cost_for_usage(d.monthly_usage)
        rows.append({
            "id": d.id,
            "name": d.name or "Unnamed Device",
            "device_class": classifier.classify(d.name, d.device_type),
            "power_status": d.power_status,
            "monthly_kwh": round(d.monthly_usage, 3),
            "monthly_cost": round_money(monthly_cost),
            "potential_savings": round_money(monthly_cost * DEVICE_SAVINGS_PCT),
        })

    total_daily = sum(d.daily_usage for d in devices)
    total_monthly = sum(d.monthly_usage for d in devices)
    total_cost = calculator.cost_for_usage(total_monthly)

    return {
        "total_devices": len(devices),
        "active_devices": sum(1 for d in devices if d.power_status),
        "total_daily_kwh": round(total_daily, 3),
        "total_monthly_kwh": round(total_monthly, 3),
        "total_monthly_cost": round_money(total_cost),
        "marginal_rate": calculator.rate_for_usage(total_monthly),
        "projected_annual_savings": round_money(total_cost * ANNUAL_SAVINGS_PCT * 12),
        "currency": calculator.currency,
        "devices": rows,
    }
