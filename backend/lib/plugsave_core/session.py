import threading
from typing import Optional


class ActiveSession:
    """
    Holds the owner id of the signed-in account. Calling the instance
    returns that id (or None), so it can be handed to the simulator as
    its session provider.
    """

    def __init__(self, owner_id: Optional[str] = None):
        self._lock = threading.Lock()
        self._owner_id = owner_id or None

    def sign_in(self, owner_id: str) -> None:
        if not owner_id:
            raise ValueError("owner_id required")
        with self._lock:
            self._owner_id = owner_id

    def sign_out(self) -> None:
        with self._lock:
            self._owner_id = None

    def __call__(self) -> Optional[str]:
        with self._lock:
            return self._owner_id
