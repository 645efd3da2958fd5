"""
Predictive thermal controller.

PID law on the cell temperature with a one-step thermal prediction feeding
the derivative term, plus hard fan overrides at the temperature limits.
"""

import logging
import math
from collections import deque

import numpy as np

from bms_core.core.measurements import ThermalControl

logger = logging.getLogger(__name__)


defaults = {
    "max_temp": 45.0,             # Fan forced to maximum at/above (°C)
    "min_temp": 15.0,             # Fan forced to minimum at/below (°C)
    "max_fan_speed": 100.0,       # %
    "min_fan_speed": 0.0,         # %
    "optimal_temp": 25.0,         # °C
    "kp": 2.5,
    "ki": 0.5,
    "kd": 1.0,
    "thermal_dt": 0.1,            # Sample period of the control loop
    "temp_history_length": 100,
    "rate_window": 10,            # History entries used for the temperature rate
}


class ThermalController:
    """Cooling controller for a single monitored device."""

    def __init__(self, basic_data_set: dict = None):
        """
        Initialize controller with safety limits and PID gains.

        Args:
            basic_data_set: Configuration dictionary
        """
        self.basic_data_set = basic_data_set.copy() if basic_data_set else {}

        for k, v in defaults.items():
            self.basic_data_set.setdefault(k, v)
            setattr(self, k, self.basic_data_set[k])

        self.temp_history = deque(maxlen=int(self.temp_history_length))

    def control(self, temperature: float, current: float, soc: float) -> ThermalControl:
        """
        Compute the cooling command for one cycle.

        Never raises: on failure the fail-safe control (full cooling) is
        returned.

        Args:
            temperature: Cell temperature (°C)
            current: Battery current (A)
            soc: State of charge (%)

        Returns:
            ThermalControl for this cycle
        """
        try:
            temperature, current, soc = float(temperature), float(current), float(soc)
            if not all(math.isfinite(v) for v in (temperature, current, soc)):
                raise FloatingPointError(
                    f"Non-finite thermal input T={temperature}, I={current}, SOC={soc}"
                )

            self.temp_history.append(temperature)
            rate = self.temperature_rate()
            predicted = self.predict_temperature(temperature, current, soc)
            fan_speed = self.pid_output(temperature, predicted)
        except Exception as exc:
            logger.warning("Thermal control error: %s", exc)
            return self.fail_safe_control()

        return ThermalControl(
            fan_speed=fan_speed,
            target_temperature=float(self.optimal_temp),
            predicted_temperature=predicted,
            temperature_rate=rate,
        )

    def temperature_rate(self) -> float:
        """Mean temperature change per sample period over the recent window."""
        recent = list(self.temp_history)[-int(self.rate_window):]
        if len(recent) < 2:
            return 0.0
        return float(np.mean(np.diff(recent))) / self.thermal_dt

    def predict_temperature(self, temperature: float, current: float, soc: float) -> float:
        """One-step prediction: joule and SOC heating against relaxation to optimum."""
        heat_generation = 0.01 * current ** 2 + 0.005 * soc
        cooling_effect = -0.1 * (temperature - self.optimal_temp)
        return temperature + (heat_generation + cooling_effect) * self.thermal_dt

    def pid_output(self, temperature: float, predicted: float) -> float:
        """
        Fan speed from the PID law, bounded and overridden at the limits.

        Args:
            temperature: Current temperature (°C)
            predicted: Predicted temperature (°C)

        Returns:
            Fan speed (%)
        """
        error = temperature - self.optimal_temp
        error_rate = (predicted - temperature) / self.thermal_dt
        integral = float(np.sum(np.asarray(self.temp_history) - self.optimal_temp)) * self.thermal_dt

        fan_speed = self.kp * error + self.ki * integral + self.kd * error_rate
        fan_speed = min(max(fan_speed, self.min_fan_speed), self.max_fan_speed)

        # Hard limits take precedence over the control law
        if temperature >= self.max_temp:
            fan_speed = self.max_fan_speed
        elif temperature <= self.min_temp:
            fan_speed = self.min_fan_speed
        return float(fan_speed)

    def fail_safe_control(self) -> ThermalControl:
        """Maximum cooling with an undefined prediction."""
        return ThermalControl(
            fan_speed=float(self.max_fan_speed),
            target_temperature=float(self.optimal_temp),
            predicted_temperature=math.nan,
            temperature_rate=0.0,
        )

    def reset(self):
        self.temp_history.clear()
