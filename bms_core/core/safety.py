"""
Safety monitor.

Classifies each measurement channel against absolute, critical (with
hysteresis) and warning limits, checks rates of change, keeps fault
counters and escalates the operating posture of the system.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Mapping, Optional, Tuple

from bms_core.core.measurements import (
    Alarm,
    AlarmLevel,
    FaultCounters,
    MeasurementError,
    Measurements,
    OperatingState,
    SafetyVerdict,
)

logger = logging.getLogger(__name__)


DEFAULT_THRESHOLDS = {
    "voltage": {
        "absolute_min": 2.5, "absolute_max": 4.2,
        "critical_low": 2.6, "critical_high": 4.15,
        "warning_low": 2.8, "warning_high": 4.1,
        "hysteresis": 0.1, "unit": "V",
    },
    "current": {
        "absolute_min": -100.0, "absolute_max": 100.0,
        "critical_low": -90.0, "critical_high": 90.0,
        "warning_low": -80.0, "warning_high": 80.0,
        "hysteresis": 5.0, "unit": "A",
    },
    "temperature": {
        "absolute_min": 0.0, "absolute_max": 45.0,
        "critical_low": 2.0, "critical_high": 43.0,
        "warning_low": 5.0, "warning_high": 40.0,
        "hysteresis": 2.0, "unit": "°C",
    },
    "soc": {
        "absolute_min": None, "absolute_max": None,
        "critical_low": 5.0, "critical_high": 95.0,
        "warning_low": 10.0, "warning_high": 90.0,
        "hysteresis": 2.0, "unit": "%",
    },
}

defaults = {
    "voltage_thresholds": {},         # Partial overrides of DEFAULT_THRESHOLDS
    "current_thresholds": {},
    "temperature_thresholds": {},
    "soc_thresholds": {},
    "max_consecutive_faults": 3,
    "fault_counter_reset_s": 3600.0,  # Fault counter decay window (s)
    "max_rate_voltage": 0.1,          # V/s
    "max_rate_current": 10.0,         # A/s
    "max_rate_temperature": 1.0,      # °C/s
}

CHANNELS = ("voltage", "current", "temperature", "soc")


@dataclass(frozen=True)
class ChannelThresholds:
    """Nested limit bands of one measurement channel."""
    critical_low: float
    critical_high: float
    warning_low: float
    warning_high: float
    hysteresis: float = 0.0
    absolute_min: Optional[float] = None
    absolute_max: Optional[float] = None
    unit: str = ""


def classify(value: float, operating_state: OperatingState,
             thresholds: ChannelThresholds, parameter: str = "value") -> Tuple[AlarmLevel, str]:
    """
    Classify one channel value.

    Pure function: the posture is only read, never changed. The critical
    band is evaluated only once the system has left NORMAL; while alarmed
    it is widened by the hysteresis so the level does not flap at the
    boundary.

    Args:
        value: Measured value
        operating_state: Current operating posture
        thresholds: Limit bands of the channel
        parameter: Channel name used in the message

    Returns:
        Tuple of (AlarmLevel, message)
    """
    t = thresholds
    label = f"{parameter.capitalize()} ({value:.2f}{t.unit})"

    if ((t.absolute_min is not None and value <= t.absolute_min)
            or (t.absolute_max is not None and value >= t.absolute_max)):
        return AlarmLevel.CRITICAL, f"{label} outside absolute limits"

    if operating_state != OperatingState.NORMAL:
        if (value <= t.critical_low + t.hysteresis
                or value >= t.critical_high - t.hysteresis):
            return AlarmLevel.WARNING, f"{label} at critical level"

    if value <= t.warning_low or value >= t.warning_high:
        return AlarmLevel.WARNING, f"{label} approaching limits"

    return AlarmLevel.NORMAL, ""


class SafetyMonitor:
    """Safety state machine for a single monitored device."""

    def __init__(self, basic_data_set: dict = None):
        """
        Initialize monitor with thresholds and escalation settings.

        Args:
            basic_data_set: Configuration dictionary, threshold entries
                            are merged over DEFAULT_THRESHOLDS
        """
        self.basic_data_set = basic_data_set.copy() if basic_data_set else {}

        for k, v in defaults.items():
            self.basic_data_set.setdefault(k, v)
            setattr(self, k, self.basic_data_set[k])

        self.thresholds = {
            channel: ChannelThresholds(**{
                **DEFAULT_THRESHOLDS[channel],
                **self.basic_data_set[f"{channel}_thresholds"],
            })
            for channel in CHANNELS
        }
        self.max_rates = {
            "voltage": self.max_rate_voltage,
            "current": self.max_rate_current,
            "temperature": self.max_rate_temperature,
        }
        self.reset()

    def reset(self):
        """External reset: counters cleared, posture back to NORMAL."""
        self.operating_state = OperatingState.NORMAL
        self.fault_counters = None
        self.last_measurements = None
        self.last_verdict = None

    def check_safety(self, measurements) -> SafetyVerdict:
        """
        Run one safety check.

        Args:
            measurements: Measurements or mapping with voltage, current,
                          temperature, soc and optional timestamp

        Returns:
            SafetyVerdict of the cycle

        Raises:
            MeasurementError: on structurally invalid input; the caller is
                              expected to degrade the cycle with fail_safe()
        """
        if not isinstance(measurements, Measurements):
            if not isinstance(measurements, Mapping):
                raise MeasurementError(
                    f"Unsupported measurement type: {type(measurements).__name__}")
            measurements = Measurements.from_mapping(measurements)

        # Identical measurements: replay of the cycle already counted
        if self.last_verdict is not None and measurements == self.last_measurements:
            logger.debug("Cycle %s already checked", measurements.timestamp)
            return self.last_verdict

        try:
            verdict = self._evaluate(measurements)
        except Exception as exc:
            return self.fail_safe(exc, measurements.timestamp)

        self.last_measurements = measurements
        self.last_verdict = verdict
        return verdict

    def fail_safe(self, error: Exception = None, timestamp: datetime = None) -> SafetyVerdict:
        """
        Degrade the current cycle to FAIL_SAFE.

        The consecutive fault counter advances, so repeated failures
        escalate to EMERGENCY.

        Args:
            error: The failure that invalidated the cycle
            timestamp: Cycle timestamp, defaults to now

        Returns:
            FAIL_SAFE (or EMERGENCY) verdict with a single system alarm
        """
        timestamp = timestamp if isinstance(timestamp, datetime) else datetime.now()
        logger.warning("Safety monitoring error: %s", error)

        counters = self._counters(timestamp)
        counters.consecutive += 1

        previous = self.operating_state
        if (previous == OperatingState.EMERGENCY
                or counters.consecutive >= self.max_consecutive_faults):
            self.operating_state = OperatingState.EMERGENCY
        else:
            self.operating_state = OperatingState.FAIL_SAFE
        self._log_transition(previous)

        verdict = SafetyVerdict(
            operating_state=self.operating_state,
            alarms=(Alarm("system", AlarmLevel.CRITICAL,
                          "System entering fail-safe mode", float("nan")),),
            timestamp=timestamp,
        )
        self.last_verdict = verdict
        return verdict

    def _counters(self, timestamp: datetime) -> FaultCounters:
        if self.fault_counters is None:
            self.fault_counters = FaultCounters(reset_time=timestamp)
        return self.fault_counters

    def _evaluate(self, m: Measurements) -> SafetyVerdict:
        self._decay_counters(m.timestamp)

        statuses = [self._channel_alarm(channel, getattr(m, channel)) for channel in CHANNELS]
        statuses.append(self._rate_alarm(m))
        alarms = tuple(s for s in statuses if s.level != AlarmLevel.NORMAL)

        self._count_faults(alarms)
        self._update_operating_state(alarms)

        for alarm in alarms:
            logger.info("%s alarm: %s", alarm.level.value, alarm.message)
        return SafetyVerdict(self.operating_state, alarms, m.timestamp)

    def _decay_counters(self, timestamp: datetime):
        counters = self._counters(timestamp)
        if timestamp - counters.reset_time > timedelta(seconds=self.fault_counter_reset_s):
            logger.info("Fault counters reset after %.0f s", self.fault_counter_reset_s)
            self.fault_counters = FaultCounters(reset_time=timestamp)
            previous = self.operating_state
            self.operating_state = OperatingState.NORMAL
            self._log_transition(previous)

    def _channel_alarm(self, channel: str, value: float) -> Alarm:
        level, message = classify(value, self.operating_state, self.thresholds[channel], channel)
        return Alarm(channel, level, message, value)

    def _rate_alarm(self, m: Measurements) -> Alarm:
        """Rate-of-change check against the previous cycle."""
        previous = self.last_measurements
        if previous is None:
            return Alarm("rate_of_change", AlarmLevel.NORMAL, "", 0.0)

        dt = (m.timestamp - previous.timestamp).total_seconds()
        if dt <= 0:
            return Alarm("rate_of_change", AlarmLevel.NORMAL, "", 0.0)

        rates = {
            channel: abs(getattr(m, channel) - getattr(previous, channel)) / dt
            for channel in self.max_rates
        }
        exceeded = [channel for channel, rate in rates.items() if rate > self.max_rates[channel]]
        if not exceeded:
            return Alarm("rate_of_change", AlarmLevel.NORMAL, "", 0.0)

        return Alarm(
            "rate_of_change",
            AlarmLevel.WARNING,
            f"Rapid parameter change detected: {', '.join(exceeded)}",
            rates[exceeded[0]],
        )

    def _count_faults(self, alarms: Tuple[Alarm, ...]):
        counters = self.fault_counters
        for alarm in alarms:
            setattr(counters, alarm.parameter, getattr(counters, alarm.parameter) + 1)
        counters.consecutive = counters.consecutive + 1 if alarms else 0

    def _update_operating_state(self, alarms: Tuple[Alarm, ...]):
        previous = self.operating_state
        levels = {alarm.level for alarm in alarms}

        if previous == OperatingState.EMERGENCY:
            pass  # terminal until reset or counter decay
        elif self.fault_counters.consecutive >= self.max_consecutive_faults:
            self.operating_state = OperatingState.EMERGENCY
        elif AlarmLevel.CRITICAL in levels:
            self.operating_state = OperatingState.RESTRICTED
        elif AlarmLevel.WARNING in levels:
            self.operating_state = OperatingState.CAUTIOUS
        # A clean cycle keeps the posture

        self._log_transition(previous)

    def _log_transition(self, previous: OperatingState):
        if self.operating_state != previous:
            logger.warning("Operating state %s -> %s",
                           previous.value, self.operating_state.value)
