import math
from typing import Callable

from .errors import DeviceNotFound, InvalidLimit, InvalidName, PermissionDenied, StoreError
from .models import LIMIT_PERIODS, Device
from .simulator import utc_now_iso


def load_owned_device(store, device_id: str, owner_id: str) -> Device:
    record = store.get_device(device_id)
    if not record:
        raise DeviceNotFound(device_id)
    device = Device.from_record(record)
    if device.owner != owner_id:
        raise PermissionDenied(device_id)
    return device


def _write(store, device_id: str, fields: dict) -> None:
    if not store.update_device(device_id, fields):
        raise StoreError(f"Failed to update device {device_id}")


def toggle_power(store, device_id: str, owner_id: str,
                 clock: Callable[[], str] = utc_now_iso) -> bool:
    """Flip power_status and return the new value."""
    device = load_owned_device(store, device_id, owner_id)
    new_status = not device.power_status
    fields = {"power_status": new_status, "updated_at": clock()}
    if not new_status:
        fields["current_consumption"] = 0.0
    _write(store, device_id, fields)
    return new_status


def set_cost_limit(store, device_id: str, owner_id: str, period: str, amount,
                   clock: Callable[[], str] = utc_now_iso) -> float:
    if period not in LIMIT_PERIODS:
        raise InvalidLimit(f"period must be one of {', '.join(LIMIT_PERIODS)}")
    try:
        limit = float(amount)
    except (TypeError, ValueError):
        raise InvalidLimit("Please enter a valid cost limit (must be a positive number)")
    if math.isnan(limit) or math.isinf(limit) or limit <= 0:
        raise InvalidLimit("Please enter a valid cost limit (must be a positive number)")

    load_owned_device(store, device_id, owner_id)
    _write(store, device_id, {f"{period}_limit": limit, "updated_at": clock()})
    return limit


def reset_limits(store, device_id: str, owner_id: str, which: str = "all",
                 clock: Callable[[], str] = utc_now_iso) -> list:
    """Unset one limit, or all three with which='all'. Returns the periods cleared."""
    if which == "all":
        periods = list(LIMIT_PERIODS)
    elif which in LIMIT_PERIODS:
        periods = [which]
    else:
        raise InvalidLimit(f"unknown limit period: {which}")

    load_owned_device(store, device_id, owner_id)
    fields = {f"{p}_limit": None for p in periods}
    fields["updated_at"] = clock()
    _write(store, device_id, fields)
    return periods


def rename_device(store, device_id: str, owner_id: str, name,
                  clock: Callable[[], str] = utc_now_iso) -> str:
    new_name = name.strip() if isinstance(name, str) else ""
    if not new_name:
        raise InvalidName("Please enter a valid device name")
    load_owned_device(store, device_id, owner_id)
    _write(store, device_id, {"name": new_name, "updated_at": clock()})
    return new_name
