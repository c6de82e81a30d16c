from dataclasses import dataclass, field
from typing import Dict, List, Optional

LIMIT_PERIODS = ("daily", "weekly", "monthly")


def _as_float(value) -> float:
    # store rows may carry None, strings or Decimal
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _as_limit(value) -> Optional[float]:
    if value is None:
        return None
    try:
        limit = float(value)
    except (TypeError, ValueError):
        return None
    return limit if limit > 0 else None


@dataclass
class Device:
    id: str
    owner: str
    name: str = ""
    device_type: Optional[str] = None
    power_status: bool = False
    current_consumption: float = 0.0
    daily_usage: float = 0.0
    monthly_usage: float = 0.0
    daily_limit: Optional[float] = None
    weekly_limit: Optional[float] = None
    monthly_limit: Optional[float] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_record(cls, record: Dict) -> "Device":
        """
        Build a Device from a store row (snake_case columns, owner in 'user_id').
        """
        return cls(
            id=str(record["id"]),
            owner=str(record.get("user_id", "")),
            name=record.get("name") or "",
            device_type=record.get("device_type") or None,
            power_status=record.get("power_status") is True,
            current_consumption=_as_float(record.get("current_consumption")),
            daily_usage=_as_float(record.get("daily_usage")),
            monthly_usage=_as_float(record.get("monthly_usage")),
            daily_limit=_as_limit(record.get("daily_limit")),
            weekly_limit=_as_limit(record.get("weekly_limit")),
            monthly_limit=_as_limit(record.get("monthly_limit")),
            updated_at=record.get("updated_at"),
        )

    def to_record(self) -> Dict:
        return {
            "id": self.id,
            "user_id": self.owner,
            "name": self.name,
            "device_type": self.device_type,
            "power_status": self.power_status,
            "current_consumption": self.current_consumption,
            "daily_usage": self.daily_usage,
            "monthly_usage": self.monthly_usage,
            "daily_limit": self.daily_limit,
            "weekly_limit": self.weekly_limit,
            "monthly_limit": self.monthly_limit,
            "updated_at": self.updated_at,
        }

    def limit_for(self, period: str) -> Optional[float]:
        return getattr(self, f"{period}_limit")


@dataclass
class Shutoff:
    device_id: str
    period: str
    limit: float
    cost: float


@dataclass
class TickReport:
    owner_id: Optional[str] = None
    updated: List[str] = field(default_factory=list)
    shutoffs: List[Shutoff] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.updated) + len(self.shutoffs)

    def to_dict(self) -> Dict:
        return {
            "owner_id": self.owner_id,
            "updated": list(self.updated),
            "shutoffs": [
                {"device_id": s.device_id, "period": s.period, "limit": s.limit, "cost": s.cost}
                for s in self.shutoffs
            ],
            "skipped": list(self.skipped),
            "failed": list(self.failed),
        }
