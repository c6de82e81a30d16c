"""
Local device store - used when DynamoDB is not enabled.

Devices are kept in a single JSON file (a list of records). Every
operation reads the file, and writes go back to it, so two processes
pointed at the same file behave like two browser tabs on the same
remote table: last writer wins.
"""
import json
import os
import threading
from pathlib import Path
from typing import Dict, List, Optional


class LocalDeviceStore:
    def __init__(self, path=None):
        self.path = Path(path or os.getenv('LOCAL_DEVICES_FILE', 'backend/data/devices.json'))
        # serialises read-modify-write inside this process only
        self._lock = threading.Lock()

    def _load(self) -> List[Dict]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            print(f"Failed to read {self.path}: {e}")
            return []
        return data if isinstance(data, list) else []

    def _save(self, devices: List[Dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(devices, indent=4), encoding="utf-8")
        tmp.replace(self.path)

    def get_devices_for_owner(self, owner_id: str) -> List[Dict]:
        with self._lock:
            return [d for d in self._load() if d.get("user_id") == owner_id]

    def get_device(self, device_id: str) -> Optional[Dict]:
        with self._lock:
            for d in self._load():
                if d.get("id") == device_id:
                    return d
        return None

    def update_device(self, device_id: str, fields: Dict) -> bool:
        with self._lock:
            devices = self._load()
            for d in devices:
                if d.get("id") == device_id:
                    d.update(fields)
                    break
            else:
                print(f"Device {device_id} no longer exists, update dropped")
                return False
            try:
                self._save(devices)
            except OSError as e:
                print(f"Error updating device {device_id}: {e}")
                return False
        return True

    def put_device(self, record: Dict) -> bool:
        if not record.get("id"):
            print("Failed to put device: id missing")
            return False
        with self._lock:
            devices = [d for d in self._load() if d.get("id") != record["id"]]
            devices.append(dict(record))
            try:
                self._save(devices)
            except OSError as e:
                print(f"Failed to put device: {e}")
                return False
        return True

    def delete_device(self, device_id: str) -> bool:
        with self._lock:
            devices = self._load()
            remaining = [d for d in devices if d.get("id") != device_id]
            if len(remaining) == len(devices):
                return False
            try:
                self._save(remaining)
            except OSError as e:
                print(f"Failed to delete device: {e}")
                return False
        return True
