from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence, Tuple

DEFAULT_CLASS = "default"


@dataclass(frozen=True)
class ConsumptionRange:
    min_kw: float
    max_kw: float


# Typical hourly draw per device class, in kW
CONSUMPTION_RANGES: Dict[str, ConsumptionRange] = {
    "default": ConsumptionRange(0.05, 0.2),
    "tv": ConsumptionRange(0.1, 0.3),
    "fridge": ConsumptionRange(0.05, 0.15),
    "air-conditioner": ConsumptionRange(0.8, 1.5),
    "computer": ConsumptionRange(0.1, 0.4),
    "light": ConsumptionRange(0.01, 0.06),
    "washer": ConsumptionRange(0.4, 0.8),
    "heater": ConsumptionRange(1.0, 2.0),
    "water-heater": ConsumptionRange(1.0, 1.5),
    "fan": ConsumptionRange(0.03, 0.07),
    "kitchen": ConsumptionRange(0.2, 0.5),
}

# Evaluated top to bottom, first hit wins
KEYWORD_RULES: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("heater", "boiler"), "heater"),
    (("fridge", "refrigerator"), "fridge"),
    (("tv", "television"), "tv"),
    (("light", "lamp"), "light"),
    (("pc", "computer"), "computer"),
)


def normalize_type(device_type: Optional[str]) -> Optional[str]:
    """'Air Conditioner' / 'air_conditioner' -> 'air-conditioner'."""
    if not device_type:
        return None
    tag = "-".join(str(device_type).strip().lower().replace("_", " ").split())
    return tag or None


class DeviceClassifier:
    """
    Assigns a device to a consumption class, either from its explicit
    device_type or by keyword matching on its name.

    Usage:
        classifier = DeviceClassifier()
        classifier.classify("Living room TV", None)   # -> "tv"
        classifier.range_for("tv")                    # -> ConsumptionRange(0.1, 0.3)
    """

    def __init__(self,
                 ranges: Mapping[str, ConsumptionRange] = None,
                 rules: Sequence[Tuple[Sequence[str], str]] = None):
        self.ranges = dict(CONSUMPTION_RANGES if ranges is None else ranges)
        if DEFAULT_CLASS not in self.ranges:
            raise ValueError("ranges must include a 'default' class")
        self.rules = tuple(
            (tuple(k.lower() for k in keywords), device_class)
            for keywords, device_class in (KEYWORD_RULES if rules is None else rules)
        )
        unknown = [c for _, c in self.rules if c not in self.ranges]
        if unknown:
            raise ValueError(f"rules reference unknown classes: {unknown}")

    def classify(self, name: Optional[str], explicit_type: Optional[str] = None) -> str:
        tag = normalize_type(explicit_type)
        if tag in self.ranges:
            return tag
        name_lower = (name or "").lower()
        for keywords, device_class in self.rules:
            if any(k in name_lower for k in keywords):
                return device_class
        return DEFAULT_CLASS

    def range_for(self, device_class: str) -> ConsumptionRange:
        return self.ranges.get(device_class, self.ranges[DEFAULT_CLASS])

    def range_for_device(self, name: Optional[str], explicit_type: Optional[str] = None) -> ConsumptionRange:
        return self.range_for(self.classify(name, explicit_type))


default_classifier = DeviceClassifier()


def classify_device(name: Optional[str], explicit_type: Optional[str] = None) -> str:
    return default_classifier.classify(name, explicit_type)
