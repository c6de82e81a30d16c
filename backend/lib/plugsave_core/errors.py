class PlugSaveError(Exception):
    """Base class for device control errors."""


class DeviceNotFound(PlugSaveError):
    def __init__(self, device_id: str):
        super().__init__(f"Device not found: {device_id}")
        self.device_id = device_id


class PermissionDenied(PlugSaveError):
    def __init__(self, device_id: str):
        super().__init__(f"You do not have permission to control device {device_id}")
        self.device_id = device_id


class InvalidLimit(PlugSaveError):
    pass


class InvalidName(PlugSaveError):
    pass


class StoreError(PlugSaveError):
    pass
