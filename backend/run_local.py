from backend.lib.local_store import LocalDeviceStore
from backend.lib.plugsave_core.session import ActiveSession
from backend.lib.plugsave_core.simulator import ConsumptionSimulator, SimulationSettings
from backend.lib.plugsave_core.tariff import cost_for_usage
import random
import sys
from pathlib import Path

DEMO_OWNER = "demo-user"

DEMO_DEVICES = [
    {"id": "demo-heater", "name": "Bedroom Heater", "power_status": True, "daily_limit": 0.5},
    {"id": "demo-fridge", "name": "Kitchen Refrigerator", "power_status": True,
     "daily_usage": 1.2, "monthly_usage": 35.0},
    {"id": "demo-ac", "name": "Office AC", "device_type": "air-conditioner", "power_status": True,
     "daily_usage": 4.0, "monthly_usage": 120.0, "monthly_limit": 21.7},
    {"id": "demo-lamp", "name": "Desk Lamp", "power_status": False},
]


def seed(store):
    for d in DEMO_DEVICES:
        record = {"user_id": DEMO_OWNER, "daily_usage": 0.0, "monthly_usage": 0.0,
                  "current_consumption": 0.0, "device_type": None}
        record.update(d)
        store.put_device(record)


def main(ticks, interval_ms, path="backend/data/demo_devices.json"):
    store = LocalDeviceStore(Path(path))
    seed(store)
    sim = ConsumptionSimulator(store, ActiveSession(DEMO_OWNER),
                               settings=SimulationSettings(interval_ms=interval_ms),
                               rng=random.Random(7))
    for i in range(ticks):
        report = sim.force_update()
        print(f"Tick {i + 1}: {report.processed} processed, "
              f"{len(report.shutoffs)} shut off, {len(report.skipped)} off")
    for d in store.get_devices_for_owner(DEMO_OWNER):
        state = "ON" if d.get("power_status") else "OFF"
        print(f" - {d['name']} [{state}] daily {d['daily_usage']:.3f} kWh, "
              f"monthly {d['monthly_usage']:.3f} kWh ({cost_for_usage(d['monthly_usage']):.2f} SAR)")


if __name__ == "__main__":
    ticks = int(sys.argv[1]) if len(sys.argv) > 1 else 10
    interval = int(sys.argv[2]) if len(sys.argv) > 2 else 2000
    main(ticks, interval)
