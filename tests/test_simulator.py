import random
import threading

import pytest

from backend.lib.plugsave_core.classifier import CONSUMPTION_RANGES
from backend.lib.plugsave_core.models import Device
from backend.lib.plugsave_core.session import ActiveSession
from backend.lib.plugsave_core.simulator import (
    ConsumptionSimulator,
    SimulationSettings,
    is_new_device,
    next_increment,
)
from backend.lib.plugsave_core.tariff import cost_for_usage

NOW = "2025-06-01T12:00:00+00:00"


def make_sim(store, owner="user-1", seed=1, interval_ms=2000):
    return ConsumptionSimulator(
        store,
        ActiveSession(owner),
        settings=SimulationSettings(interval_ms=interval_ms),
        rng=random.Random(seed),
        clock=lambda: NOW,
    )


def test_powered_off_device_is_untouched(store, make_device):
    store.put_device(make_device("d1", power_status=False, daily_usage=3.0, monthly_usage=9.0))
    report = make_sim(store).tick()

    record = store.get_device("d1")
    assert record["daily_usage"] == 3.0
    assert record["monthly_usage"] == 9.0
    assert record["updated_at"] == "2025-01-01T00:00:00+00:00"
    assert report.skipped == ["d1"]
    assert store.updates == []


def test_both_counters_get_the_same_increment(store, make_device):
    store.put_device(make_device("d1", daily_usage=2.0, monthly_usage=50.0))
    report = make_sim(store).tick()

    record = store.get_device("d1")
    daily_step = record["daily_usage"] - 2.0
    monthly_step = record["monthly_usage"] - 50.0
    assert daily_step > 0
    assert daily_step == pytest.approx(monthly_step)
    assert record["updated_at"] == NOW
    assert record["power_status"] is True
    assert report.updated == ["d1"]


def test_monthly_limit_shuts_device_off(store, make_device):
    # cost(100 kWh) is exactly 18.0, any increment pushes it past the limit
    store.put_device(make_device("d1", daily_usage=1.0, monthly_usage=100.0, monthly_limit=18.0))
    report = make_sim(store).tick()

    record = store.get_device("d1")
    assert record["power_status"] is False
    assert record["monthly_limit"] is None
    assert record["monthly_usage"] > 100.0
    assert record["daily_usage"] > 1.0
    assert record["current_consumption"] == 0.0
    assert record["updated_at"] == NOW
    assert [s.period for s in report.shutoffs] == ["monthly"]
    assert report.shutoffs[0].cost == pytest.approx(cost_for_usage(record["monthly_usage"]))


def test_limit_met_exactly_triggers(store, make_device):
    store.put_device(make_device("d1", daily_usage=5.0, monthly_usage=5.0, daily_limit=0.9))
    make_sim(store).tick()
    assert store.get_device("d1")["power_status"] is False


def test_daily_limit_checked_before_monthly(store, make_device):
    store.put_device(make_device("d1", daily_usage=100.0, monthly_usage=100.0,
                                 daily_limit=1.0, monthly_limit=1.0))
    report = make_sim(store).tick()

    record = store.get_device("d1")
    assert record["power_status"] is False
    assert record["daily_limit"] is None
    assert record["monthly_limit"] == 1.0
    assert report.shutoffs[0].period == "daily"
    # one write per device per tick
    assert len(store.updates) == 1


def test_weekly_cost_is_estimated_from_daily(store, make_device):
    # daily cost ~1.8, weekly estimate ~12.6
    store.put_device(make_device("d1", daily_usage=10.0, monthly_usage=10.0,
                                 daily_limit=5.0, weekly_limit=12.0))
    report = make_sim(store).tick()

    record = store.get_device("d1")
    assert report.shutoffs[0].period == "weekly"
    assert record["weekly_limit"] is None
    assert record["daily_limit"] == 5.0


def test_limit_not_reached_keeps_device_on(store, make_device):
    store.put_device(make_device("d1", daily_usage=1.0, monthly_usage=1.0,
                                 daily_limit=50.0, weekly_limit=500.0, monthly_limit=500.0))
    report = make_sim(store).tick()

    record = store.get_device("d1")
    assert record["power_status"] is True
    assert record["daily_limit"] == 50.0
    assert report.shutoffs == []


def test_only_session_owner_devices_are_processed(store, make_device):
    store.put_device(make_device("mine", daily_usage=1.0, monthly_usage=1.0))
    store.put_device(make_device("theirs", owner="user-2", daily_usage=1.0, monthly_usage=1.0))
    make_sim(store).tick()

    assert store.get_device("mine")["daily_usage"] > 1.0
    assert store.get_device("theirs")["daily_usage"] == 1.0


def test_no_session_is_a_no_op(store, make_device):
    store.put_device(make_device("d1", daily_usage=1.0, monthly_usage=1.0))
    report = make_sim(store, owner=None).tick()

    assert report.owner_id is None
    assert store.updates == []


def test_bootstrap_increment_is_smaller_than_steady_state():
    new = Device(id="a", owner="u", name="Heater", power_status=True)
    old = Device(id="b", owner="u", name="Heater", power_status=True,
                 daily_usage=3.0, monthly_usage=40.0)
    for seed in range(20):
        first = next_increment(new, 2000, random.Random(seed))
        steady = next_increment(old, 2000, random.Random(seed))
        assert first < steady


def test_new_light_gets_the_minimum_bootstrap_step():
    lamp = Device(id="a", owner="u", name="Desk lamp", power_status=True)
    for seed in range(20):
        assert next_increment(lamp, 2000, random.Random(seed)) == 0.001


def test_new_devices_of_every_class_ramp_up(store, make_device):
    for device_class in CONSUMPTION_RANGES:
        store.put_device(make_device(device_class, name="Device", device_type=device_class))
    sim = make_sim(store, seed=0)

    for _ in range(30):
        sim.tick()

    for device_class in CONSUMPTION_RANGES:
        record = store.get_device(device_class)
        assert record["daily_usage"] > 0, device_class
        assert record["monthly_usage"] > 0, device_class
        assert not is_new_device(Device.from_record(record)), device_class


def test_concurrent_start_arms_a_single_chain(store):
    sim = make_sim(store, interval_ms=60000)
    barrier = threading.Barrier(8)
    results = []

    def start():
        barrier.wait()
        results.append(sim.start())

    threads = [threading.Thread(target=start) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    try:
        assert results.count(True) == 1
        assert sim._generation == 1
    finally:
        sim.stop()


def test_steady_increment_stays_in_class_bounds():
    device = Device(id="b", owner="u", name="Heater", power_status=True,
                    daily_usage=3.0, monthly_usage=40.0)
    rng = random.Random(42)
    per_tick = 2000 / 3600000 * 50
    low = round(1.0 * 0.8 * per_tick, 3)
    high = round(2.0 * 1.2 * per_tick, 3)
    for _ in range(200):
        step = next_increment(device, 2000, rng)
        assert low <= step <= high
        assert step == round(step, 3)


def test_failed_update_is_reported_and_others_continue(store, make_device):
    store.put_device(make_device("d1", daily_usage=1.0, monthly_usage=1.0))
    store.put_device(make_device("d2", daily_usage=1.0, monthly_usage=1.0))
    store.fail_updates_for.add("d1")
    report = make_sim(store).tick()

    assert report.failed == ["d1"]
    assert report.updated == ["d2"]
    assert store.get_device("d1")["daily_usage"] == 1.0


def test_store_exception_is_swallowed(make_device):
    class BrokenStore:
        def get_devices_for_owner(self, owner_id):
            raise RuntimeError("connection reset")

    report = make_sim(BrokenStore()).tick()
    assert report.updated == []


def test_force_update_while_running_is_a_no_op(store, make_device):
    store.put_device(make_device("d1", daily_usage=1.0, monthly_usage=1.0))
    sim = make_sim(store)
    nested = []

    original = store.get_devices_for_owner

    def fetch_and_force(owner_id):
        nested.append(sim.force_update())
        return original(owner_id)

    store.get_devices_for_owner = fetch_and_force
    report = sim.force_update()

    assert nested == [None]
    assert report.updated == ["d1"]
    assert len(store.updates) == 1
    assert sim.running is False


def test_shutoff_listeners_are_called_and_failures_ignored(store, make_device):
    store.put_device(make_device("d1", daily_usage=100.0, monthly_usage=100.0, daily_limit=1.0))
    sim = make_sim(store)
    calls = []

    def broken(device, period, limit, cost):
        raise RuntimeError("smtp down")

    sim.add_shutoff_listener(broken)
    sim.add_shutoff_listener(lambda device, period, limit, cost: calls.append((device.id, period, limit)))
    report = sim.tick()

    assert calls == [("d1", "daily", 1.0)]
    assert len(report.shutoffs) == 1


def test_start_schedules_ticks_until_stopped(store, make_device):
    store.put_device(make_device("d1", daily_usage=1.0, monthly_usage=1.0))
    sim = make_sim(store, interval_ms=10)
    ticked = threading.Event()

    original = store.update_device

    def update_and_signal(device_id, fields):
        result = original(device_id, fields)
        if len(store.updates) >= 3:
            ticked.set()
        return result

    store.update_device = update_and_signal

    assert sim.start() is True
    assert sim.start() is False
    try:
        assert ticked.wait(timeout=5)
    finally:
        sim.stop()

    status = sim.status()
    assert status["enabled"] is False
    assert status["interval_ms"] == 10
    assert store.get_device("d1")["daily_usage"] > 1.0
