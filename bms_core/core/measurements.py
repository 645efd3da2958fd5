"""
Measurement model.

Data shapes exchanged between the estimator, thermal controller, safety
monitor and optimizer. Current sign convention: positive = charging.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Mapping, NamedTuple, Optional, Tuple


class BMSError(Exception):
    """Base class for battery management errors."""


class MeasurementError(BMSError, ValueError):
    """Measurement is missing a required field or is outside its declared range."""


class AlarmLevel(str, Enum):
    NORMAL = "NORMAL"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class OperatingState(str, Enum):
    NORMAL = "NORMAL"
    CAUTIOUS = "CAUTIOUS"
    RESTRICTED = "RESTRICTED"
    EMERGENCY = "EMERGENCY"
    FAIL_SAFE = "FAIL_SAFE"


@dataclass(frozen=True)
class RawSample:
    """One sampling tick as delivered by the measurement source."""
    voltage: float
    current: float
    temperature: float
    state_of_charge: Optional[float] = None
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class FilteredSample:
    voltage: float
    current: float
    temperature: float


@dataclass(frozen=True)
class BatteryHealth:
    """Health indicators in percent."""
    state_of_health: float = 100.0
    voltage_health: float = 100.0
    resistance_health: float = 100.0


@dataclass(frozen=True)
class BatteryState:
    """Estimated battery state for one cycle."""
    voltage: float
    current: float
    temperature: float
    state_of_charge: float
    health: BatteryHealth
    internal_resistance: float
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class ThermalControl:
    fan_speed: float
    target_temperature: float
    predicted_temperature: float
    temperature_rate: float


# Declared physical ranges of the safety monitor input.
MEASUREMENT_RANGES = {
    "voltage": (0.0, 5.0),
    "current": (-150.0, 150.0),
    "temperature": (-20.0, 60.0),
    "soc": (0.0, 100.0),
}


def _checked(name: str, value) -> float:
    """Convert a measurement to float and check it against its declared range."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise MeasurementError(f"Measurement '{name}' is not numeric: {value!r}")
    lower, upper = MEASUREMENT_RANGES[name]
    if not math.isfinite(value) or not lower <= value <= upper:
        raise MeasurementError(
            f"Measurement '{name}' = {value} outside declared range [{lower}, {upper}]"
        )
    return value


@dataclass(frozen=True)
class Measurements:
    """
    Safety monitor input.

    Required fields and declared ranges are enforced at construction, an
    invalid instance cannot exist.
    """
    voltage: float
    current: float
    temperature: float
    soc: float
    timestamp: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        for name in MEASUREMENT_RANGES:
            object.__setattr__(self, name, _checked(name, getattr(self, name)))
        if not isinstance(self.timestamp, datetime):
            raise MeasurementError(f"Timestamp is not a datetime: {self.timestamp!r}")

    @classmethod
    def from_mapping(cls, data: Mapping) -> "Measurements":
        """
        Build measurements from a loosely typed mapping.

        Args:
            data: Mapping with voltage, current, temperature and soc
                  (or state_of_charge), optionally timestamp

        Returns:
            Validated Measurements

        Raises:
            MeasurementError: if a required field is missing or invalid
        """
        values = dict(data)
        if "soc" not in values and "state_of_charge" in values:
            values["soc"] = values["state_of_charge"]
        for name in MEASUREMENT_RANGES:
            if values.get(name) is None:
                raise MeasurementError(f"Missing required measurement: {name}")
        timestamp = values.get("timestamp") or datetime.now()
        return cls(
            voltage=values["voltage"],
            current=values["current"],
            temperature=values["temperature"],
            soc=values["soc"],
            timestamp=timestamp,
        )

    @classmethod
    def from_sample(cls, sample: RawSample, soc: Optional[float] = None) -> "Measurements":
        """
        Build measurements from a raw sample.

        Args:
            sample: Raw sample
            soc: SOC to use when the sample carries none

        Returns:
            Validated Measurements
        """
        sample_soc = sample.state_of_charge if sample.state_of_charge is not None else soc
        if sample_soc is None:
            raise MeasurementError("Missing required measurement: soc")
        return cls(
            voltage=sample.voltage,
            current=sample.current,
            temperature=sample.temperature,
            soc=sample_soc,
            timestamp=sample.timestamp,
        )


@dataclass(frozen=True)
class Alarm:
    parameter: str
    level: AlarmLevel
    message: str
    value: float


_LEVEL_ORDER = {AlarmLevel.NORMAL: 0, AlarmLevel.WARNING: 1, AlarmLevel.CRITICAL: 2}


@dataclass(frozen=True)
class SafetyVerdict:
    """Operating posture and active alarms after one safety check."""
    operating_state: OperatingState
    alarms: Tuple[Alarm, ...] = ()
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def worst_level(self) -> AlarmLevel:
        """Most severe alarm level of the cycle."""
        return max((a.level for a in self.alarms),
                   key=_LEVEL_ORDER.__getitem__, default=AlarmLevel.NORMAL)

    @property
    def is_fail_safe(self) -> bool:
        return self.operating_state == OperatingState.FAIL_SAFE


@dataclass
class FaultCounters:
    """Per-channel fault counters, owned by the safety monitor."""
    voltage: int = 0
    current: int = 0
    temperature: int = 0
    soc: int = 0
    rate_of_change: int = 0
    consecutive: int = 0
    reset_time: datetime = field(default_factory=datetime.now)


class OptimizationResult(NamedTuple):
    optimal_current: float
    thermal_control: ThermalControl
