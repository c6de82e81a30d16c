import copy

import pytest


class MemoryStore:
    """In-memory device store with the same interface as the real ones."""

    def __init__(self, records=()):
        self.records = {r["id"]: copy.deepcopy(r) for r in records}
        self.updates = []
        self.fail_updates_for = set()

    def get_devices_for_owner(self, owner_id):
        return [copy.deepcopy(r) for r in self.records.values() if r.get("user_id") == owner_id]

    def get_device(self, device_id):
        record = self.records.get(device_id)
        return copy.deepcopy(record) if record else None

    def update_device(self, device_id, fields):
        if device_id in self.fail_updates_for or device_id not in self.records:
            return False
        self.updates.append((device_id, dict(fields)))
        self.records[device_id].update(fields)
        return True

    def put_device(self, record):
        self.records[record["id"]] = copy.deepcopy(record)
        return True

    def delete_device(self, device_id):
        return self.records.pop(device_id, None) is not None


def build_device(device_id, owner="user-1", **fields):
    record = {
        "id": device_id,
        "user_id": owner,
        "name": "Heater",
        "device_type": None,
        "power_status": True,
        "current_consumption": 0.0,
        "daily_usage": 0.0,
        "monthly_usage": 0.0,
        "daily_limit": None,
        "weekly_limit": None,
        "monthly_limit": None,
        "updated_at": "2025-01-01T00:00:00+00:00",
    }
    record.update(fields)
    return record


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def make_device():
    return build_device
