"""
Battery Management System.

Runs one control cycle per sample: optimizer decision, independent safety
check and the posture override that gates actuation.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace

from bms_core.core.measurements import (
    BatteryState,
    MeasurementError,
    Measurements,
    OperatingState,
    RawSample,
    SafetyVerdict,
    ThermalControl,
)

logger = logging.getLogger(__name__)


class ChargeStrategy(ABC):
    """Abstract strategy for the charge/discharge current decision."""

    def __init__(self, basic_data_set: dict):
        """
        Initialize strategy with configuration.

        Args:
            basic_data_set: Configuration dictionary
        """
        self.basic_data_set = basic_data_set.copy() if basic_data_set else {}

    @abstractmethod
    def calculate_current(self, soc: float, temperature: float, voltage: float) -> float:
        """
        Calculate the target current for this cycle.

        Args:
            soc: State of charge (%)
            temperature: Cell temperature (°C)
            voltage: Cell voltage (V)

        Returns:
            Target current (A)
        """
        pass


defaults = {
    # Fraction of the optimal current allowed in each operating state
    "posture_current_limits": {
        OperatingState.NORMAL: 1.0,
        OperatingState.CAUTIOUS: 1.0,
        OperatingState.RESTRICTED: 0.5,
        OperatingState.EMERGENCY: 0.0,
        OperatingState.FAIL_SAFE: 0.0,
    },
}

SHUTDOWN_STATES = (OperatingState.EMERGENCY, OperatingState.FAIL_SAFE)


@dataclass(frozen=True)
class CycleResult:
    """Combined decision of one control cycle."""
    state: BatteryState
    optimal_current: float
    commanded_current: float
    thermal_control: ThermalControl
    verdict: SafetyVerdict

    def as_record(self) -> dict:
        """Flat dict for tabular output."""
        return {
            "timestamp": self.state.timestamp,
            "voltage": self.state.voltage,
            "current": self.state.current,
            "temperature": self.state.temperature,
            "soc": self.state.state_of_charge,
            "soh": self.state.health.state_of_health,
            "resistance": self.state.internal_resistance,
            "optimal_current": self.optimal_current,
            "commanded_current": self.commanded_current,
            "fan_speed": self.thermal_control.fan_speed,
            "predicted_temperature": self.thermal_control.predicted_temperature,
            "temperature_rate": self.thermal_control.temperature_rate,
            "operating_state": self.verdict.operating_state.value,
            "alarm_level": self.verdict.worst_level.value,
            "alarms": "; ".join(a.message for a in self.verdict.alarms),
        }


class BatteryManagementSystem:
    """Core BMS - one optimizer and one safety monitor per device."""

    def __init__(self, optimizer, safety_monitor, basic_data_set: dict = None):
        """
        Initialize BMS with its per-device components.

        Args:
            optimizer: BatteryOptimizer instance
            safety_monitor: SafetyMonitor instance
            basic_data_set: Configuration dictionary
        """
        self.optimizer = optimizer
        self.safety_monitor = safety_monitor
        self.basic_data_set = basic_data_set.copy() if basic_data_set else {}

        limits = dict(defaults["posture_current_limits"])
        limits.update({
            OperatingState(k): v
            for k, v in self.basic_data_set.get("posture_current_limits", {}).items()
        })
        self.posture_current_limits = limits

    def step(self, sample: RawSample) -> CycleResult:
        """
        Execute one control cycle.

        Args:
            sample: Raw measurement sample of this tick

        Returns:
            CycleResult with the gated actuation commands
        """
        try:
            optimal_current, thermal_control = self.optimizer.optimize(sample)
            state = self.optimizer.last_state
        except MeasurementError as exc:
            # Nothing trustworthy to act on: zero current, full cooling
            logger.warning("Optimizer rejected sample: %s", exc)
            optimal_current = 0.0
            thermal_control = self.optimizer.thermal_controller.fail_safe_control()
            state = self.optimizer.estimator.default_state(sample.timestamp)

        try:
            measurements = Measurements.from_sample(sample, soc=state.state_of_charge)
            verdict = self.safety_monitor.check_safety(measurements)
        except MeasurementError as exc:
            verdict = self.safety_monitor.fail_safe(exc, sample.timestamp)

        posture = verdict.operating_state
        commanded_current = optimal_current * self.posture_current_limits[posture]
        if posture in SHUTDOWN_STATES:
            thermal_control = replace(
                thermal_control,
                fan_speed=float(self.optimizer.thermal_controller.max_fan_speed),
            )

        logger.debug("Cycle %s: %s, current %.2f A (optimal %.2f A), fan %.1f %%",
                     sample.timestamp, posture.value, commanded_current,
                     optimal_current, thermal_control.fan_speed)

        return CycleResult(
            state=state,
            optimal_current=optimal_current,
            commanded_current=commanded_current,
            thermal_control=thermal_control,
            verdict=verdict,
        )
