import random
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .classifier import DeviceClassifier, default_classifier
from .models import LIMIT_PERIODS, Device, Shutoff, TickReport
from .tariff import TariffCalculator, default_calculator

MS_PER_HOUR = 3600 * 1000


@dataclass
class SimulationSettings:
    interval_ms: int = 2000
    # increments are scaled up so they show on a dashboard within minutes
    visibility_scale: float = 50.0
    bootstrap_scale: float = 5.0
    new_device_epsilon: float = 0.01
    # smallest step that survives rounding to 3 decimals
    min_bootstrap_step: float = 0.001


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def is_new_device(device: Device, epsilon: float = 0.01) -> bool:
    return device.daily_usage < epsilon and device.monthly_usage < epsilon


def next_increment(device: Device,
                   tick_interval_ms: float,
                   rng: random.Random = None,
                   classifier: DeviceClassifier = None,
                   settings: SimulationSettings = None) -> float:
    """
    kWh to add to a powered-on device for one tick.

    New devices (both counters below the epsilon) get a small bootstrap
    increment of 15-20% of the class minimum, so they ramp up gradually.
    The bootstrap step never rounds below settings.min_bootstrap_step,
    otherwise low-draw classes would stay at zero forever.
    Established devices draw a rate uniformly from the class range with
    +/-20% jitter. Both are converted from hourly kW to one tick and
    rounded to 3 decimals.
    """
    rng = rng or random
    classifier = classifier or default_classifier
    settings = settings or SimulationSettings()
    draw = classifier.range_for_device(device.name, device.device_type)
    per_tick = tick_interval_ms / MS_PER_HOUR

    if is_new_device(device, settings.new_device_epsilon):
        fraction = 0.15 + rng.random() * 0.05
        increment = draw.min_kw * fraction * per_tick * settings.bootstrap_scale
        return max(round(increment, 3), settings.min_bootstrap_step)

    hourly = draw.min_kw + rng.random() * (draw.max_kw - draw.min_kw)
    jitter = 0.8 + rng.random() * 0.4
    increment = hourly * jitter * per_tick * settings.visibility_scale
    return round(increment, 3)


def current_draw(device: Device,
                 rng: random.Random = None,
                 classifier: DeviceClassifier = None,
                 settings: SimulationSettings = None) -> float:
    """Instantaneous kW shown on the gauge: low in the range for new devices, mid-range otherwise."""
    rng = rng or random
    classifier = classifier or default_classifier
    settings = settings or SimulationSettings()
    draw = classifier.range_for_device(device.name, device.device_type)
    if is_new_device(device, settings.new_device_epsilon):
        position = 0.2 + rng.random() * 0.2
    else:
        position = 0.4 + rng.random() * 0.4
    return round(draw.min_kw + (draw.max_kw - draw.min_kw) * position, 2)


ShutoffListener = Callable[[Device, str, float, float], None]


class ConsumptionSimulator:
    """
    Periodically advances the usage counters of the session owner's
    powered-on devices and switches a device off once one of its cost
    limits is reached.

    One instance per process. Ticks are single-flight: a tick that finds
    another one in progress is dropped, not queued. There is no
    coordination between processes, so two simulators working on the
    same rows can lose each other's increments (last write wins).

    Usage:
        sim = ConsumptionSimulator(store, session)
        sim.start()            # re-arms itself every interval_ms
        sim.force_update()     # one tick now, unless one is running
        sim.stop()
    """

    def __init__(self,
                 store,
                 session: Callable[[], Optional[str]],
                 calculator: TariffCalculator = None,
                 classifier: DeviceClassifier = None,
                 settings: SimulationSettings = None,
                 rng: random.Random = None,
                 clock: Callable[[], str] = None):
        self.store = store
        self.session = session
        self.calculator = calculator or default_calculator
        self.classifier = classifier or default_classifier
        self.settings = settings or SimulationSettings()
        self.rng = rng or random.Random()
        self.clock = clock or utc_now_iso
        self.enabled = False
        self._tick_lock = threading.Lock()
        self._timer_lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._generation = 0
        self._listeners: List[ShutoffListener] = []

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._tick_lock.locked()

    def status(self) -> dict:
        return {
            "enabled": self.enabled,
            "running": self.running,
            "interval_ms": self.settings.interval_ms,
        }

    def start(self) -> bool:
        """Enable the schedule. Returns False if it was already enabled."""
        with self._timer_lock:
            if self.enabled:
                return False
            self.enabled = True
            self._generation += 1
            generation = self._generation
        print(f"Simulation started (every {self.settings.interval_ms} ms)")
        self._schedule(0, generation)
        return True

    def stop(self) -> None:
        # an in-flight tick finishes; only the next one is prevented
        with self._timer_lock:
            self.enabled = False
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        print("Simulation stopped")

    def force_update(self) -> Optional[TickReport]:
        """Run one tick now. Returns None when a tick is already in progress."""
        return self.tick()

    def add_shutoff_listener(self, listener: ShutoffListener) -> None:
        self._listeners.append(listener)

    def _schedule(self, delay_ms: float, generation: int) -> None:
        with self._timer_lock:
            # a stop/start cycle leaves the older chain to die out
            if not self.enabled or generation != self._generation:
                return
            timer = threading.Timer(delay_ms / 1000.0, self._run_scheduled, args=(generation,))
            timer.daemon = True
            self._timer = timer
            timer.start()

    def _run_scheduled(self, generation: int) -> None:
        try:
            self.tick()
        finally:
            self._schedule(self.settings.interval_ms, generation)

    # ------------------------------------------------------------------
    # tick
    # ------------------------------------------------------------------

    def tick(self) -> Optional[TickReport]:
        if not self._tick_lock.acquire(blocking=False):
            print("Simulation already in progress, skipping tick")
            return None
        report = TickReport()
        try:
            owner_id = self.session()
            if not owner_id:
                print("No active session, skipping simulation")
                return report
            report.owner_id = owner_id

            # the store logs its own errors and returns [] on failure
            records = self.store.get_devices_for_owner(owner_id)
            if not records:
                print("No devices found for simulation")
                return report

            for record in records:
                self._process(record, report)
        except Exception as e:
            print(f"Error in consumption simulation: {e}")
        finally:
            self._tick_lock.release()
        return report

    def _process(self, record: dict, report: TickReport) -> None:
        device_id = str(record.get("id"))
        try:
            device = Device.from_record(record)
            if not device.power_status:
                report.skipped.append(device.id)
                return
            self._advance(device, report)
        except Exception as e:
            print(f"Error updating device {device_id}: {e}")
            report.failed.append(device_id)

    def _advance(self, device: Device, report: TickReport) -> None:
        increment = next_increment(device, self.settings.interval_ms,
                                   self.rng, self.classifier, self.settings)
        new_daily = device.daily_usage + increment
        new_monthly = device.monthly_usage + increment

        costs = {
            "daily": self.calculator.cost_for_usage(new_daily),
            # weekly is estimated from the daily counter
            "weekly": self.calculator.cost_for_usage(new_daily * 7),
            "monthly": self.calculator.cost_for_usage(new_monthly),
        }
        now = self.clock()

        for period in LIMIT_PERIODS:
            limit = device.limit_for(period)
            if limit is not None and costs[period] >= limit:
                self._shut_off(device, period, limit, costs[period],
                               new_daily, new_monthly, now, report)
                return

        fields = {
            "current_consumption": current_draw(device, self.rng, self.classifier, self.settings),
            "daily_usage": new_daily,
            "monthly_usage": new_monthly,
            "updated_at": now,
        }
        if self.store.update_device(device.id, fields):
            report.updated.append(device.id)
            print(f"Updated {device.name}: +{increment:.3f} kWh "
                  f"(Daily: {new_daily:.3f}, Monthly: {new_monthly:.3f})")
        else:
            report.failed.append(device.id)

    def _shut_off(self, device: Device, period: str, limit: float, cost: float,
                  new_daily: float, new_monthly: float, now: str,
                  report: TickReport) -> None:
        fields = {
            "power_status": False,
            "current_consumption": 0.0,
            "daily_usage": new_daily,
            "monthly_usage": new_monthly,
            f"{period}_limit": None,
            "updated_at": now,
        }
        if not self.store.update_device(device.id, fields):
            report.failed.append(device.id)
            return

        report.shutoffs.append(Shutoff(device.id, period, limit, cost))
        print(f"Device {device.name} turned off: {period} cost limit of {limit} reached and has been reset")
        for listener in self._listeners:
            try:
                listener(device, period, limit, cost)
            except Exception as e:
                print(f"Shutoff listener failed for {device.id}: {e}")
