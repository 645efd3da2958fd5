"""
Battery state estimator.

Fuses voltage, current and temperature into a filtered battery state with
a dual-method SOC estimate (coulomb counting + OCV lookup) and a
health/resistance model.
"""

import logging
from collections import deque
from datetime import datetime
from typing import Mapping, Optional

import numpy as np

from bms_core.core.measurements import (
    BatteryHealth,
    BatteryState,
    FilteredSample,
    MeasurementError,
    RawSample,
)

logger = logging.getLogger(__name__)


defaults = {
    "capacity_ah": 100.0,             # Rated capacity (Ah)
    "nominal_voltage": 3.7,           # Nominal cell voltage (V)
    "internal_resistance": 0.1,       # Nominal internal resistance (Ω)
    "temp_coeff": 0.001,              # OCV temperature coefficient (V/°C)
    "sample_interval_h": 0.1,         # Coulomb counting step (h)
    "ocv_table": [(2.5, 0.0), (3.2, 25.0), (3.7, 50.0), (4.0, 75.0), (4.2, 100.0)],
    "process_noise": 0.01,
    "measurement_noise": 0.1,
    "initial_covariance": 0.1,
    "soc_history_length": 100,
    "voltage_limits": (2.5, 4.2),
    "current_limits": (-100.0, 100.0),
    "temperature_limits": (0.0, 60.0),
    "soc_limits": (0.0, 100.0),
    "cc_weight_mid": 0.8,             # Coulomb counting weight inside soc_mid_band
    "cc_weight_edge": 0.3,            # Coulomb counting weight outside soc_mid_band
    "soc_mid_band": (20.0, 80.0),
    "min_resistance_current": 1.0,    # Below this |I| resistance is not observable (A)
    "resistance_limits": (0.01, 1.0),
    "resistance_temp_coeff": 0.003,   # 0.3 % per °C
}

REFERENCE_TEMPERATURE = 25.0


def clamp(value: float, limits) -> float:
    lower, upper = limits
    return float(np.clip(value, lower, upper))


def coulomb_count(soc_prev: float, current: float, dt_h: float, capacity_ah: float) -> float:
    """
    Advance SOC by integrating current over one sample interval.

    Args:
        soc_prev: Previous SOC (%)
        current: Battery current (A), positive = charging
        dt_h: Sample interval (h)
        capacity_ah: Rated capacity (Ah)

    Returns:
        New SOC (%) within [0, 100]
    """
    soc = soc_prev + (current * dt_h / capacity_ah) * 100.0
    return clamp(soc, (0.0, 100.0))


def soc_from_ocv(voltage: float, temperature: float, ocv_table,
                 temp_coeff: float = 0.001) -> float:
    """
    Look up SOC from the open-circuit voltage curve.

    The voltage is compensated for the deviation from 25 °C, interpolated
    linearly in the table and extrapolated linearly beyond its ends.

    Args:
        voltage: Terminal voltage (V)
        temperature: Cell temperature (°C)
        ocv_table: Sequence of (voltage, soc) pairs with increasing voltage
        temp_coeff: Compensation coefficient (V/°C)

    Returns:
        SOC (%) within [0, 100]
    """
    table = np.asarray(ocv_table, dtype=float)
    volts, socs = table[:, 0], table[:, 1]
    v = voltage + (temperature - REFERENCE_TEMPERATURE) * temp_coeff

    if v < volts[0]:
        slope = (socs[1] - socs[0]) / (volts[1] - volts[0])
        soc = socs[0] + slope * (v - volts[0])
    elif v > volts[-1]:
        slope = (socs[-1] - socs[-2]) / (volts[-1] - volts[-2])
        soc = socs[-1] + slope * (v - volts[-1])
    else:
        soc = np.interp(v, volts, socs)
    return clamp(soc, (0.0, 100.0))


def fusion_weight(soc_cc: float, mid_band=(20.0, 80.0),
                  mid_weight: float = 0.8, edge_weight: float = 0.3) -> float:
    """Weight of the coulomb counting estimate, high where it is trusted."""
    lower, upper = mid_band
    return mid_weight if lower < soc_cc < upper else edge_weight


def fuse_soc(soc_cc: float, soc_ocv: float, **weight_options) -> float:
    """Weighted average of the coulomb counting and OCV estimates."""
    w_cc = fusion_weight(soc_cc, **weight_options)
    return clamp(w_cc * soc_cc + (1.0 - w_cc) * soc_ocv, (0.0, 100.0))


class KalmanFilter:
    """Linear filter over (voltage, current, temperature) with identity dynamics."""

    def __init__(self, process_noise: float = 0.01, measurement_noise: float = 0.1,
                 initial_covariance: float = 0.1, dim: int = 3):
        self.dim = dim
        self.A = np.eye(dim)
        self.Q = np.eye(dim) * process_noise
        self.R = np.eye(dim) * measurement_noise
        self.initial_covariance = initial_covariance
        self.reset()

    def reset(self):
        self.x = None
        self.P = np.eye(self.dim) * self.initial_covariance

    def update(self, z) -> np.ndarray:
        """
        Filter one measurement vector.

        Args:
            z: Measurement vector

        Returns:
            Filtered state vector (the first measurement initialises the state)
        """
        z = np.asarray(z, dtype=float)
        if not np.all(np.isfinite(z)):
            raise FloatingPointError(f"Non-finite measurement vector: {z}")

        if self.x is None:
            self.x = z.copy()
            return self.x.copy()

        # Prediction
        x_pred = self.A @ self.x
        P_pred = self.A @ self.P @ self.A.T + self.Q

        # Update
        K = P_pred @ np.linalg.inv(P_pred + self.R)
        x = x_pred + K @ (z - x_pred)
        P = (np.eye(self.dim) - K) @ P_pred

        if not np.all(np.isfinite(x)):
            raise FloatingPointError("Filter state diverged")
        self.x, self.P = x, P
        return x.copy()


class StateEstimator:
    """Battery state estimator for a single monitored device."""

    def __init__(self, basic_data_set: dict = None):
        """
        Initialize estimator with model parameters.

        Args:
            basic_data_set: Configuration dictionary, missing keys fall back
                            to the module defaults
        """
        self.basic_data_set = basic_data_set.copy() if basic_data_set else {}

        for k, v in defaults.items():
            self.basic_data_set.setdefault(k, v)
            setattr(self, k, self.basic_data_set[k])

        self.kalman_filter = KalmanFilter(
            process_noise=self.process_noise,
            measurement_noise=self.measurement_noise,
            initial_covariance=self.initial_covariance,
        )
        self.soc_history = deque(maxlen=int(self.soc_history_length))
        self.last_state = None

    def validate_sample(self, raw: RawSample) -> RawSample:
        """
        Clamp a raw sample into the physically plausible ranges.

        Out-of-range values are clamped, not rejected, so the control loop
        stays live.
        """
        values = np.array([raw.voltage, raw.current, raw.temperature], dtype=float)
        if not np.all(np.isfinite(values)):
            raise FloatingPointError(f"Non-finite measurement in {raw}")
        soc = raw.state_of_charge
        if soc is not None:
            soc = clamp(soc, self.soc_limits)
        return RawSample(
            voltage=clamp(raw.voltage, self.voltage_limits),
            current=clamp(raw.current, self.current_limits),
            temperature=clamp(raw.temperature, self.temperature_limits),
            state_of_charge=soc,
            timestamp=raw.timestamp,
        )

    def validate_state(self, state) -> RawSample:
        """
        Validate and clamp a caller supplied battery state.

        Args:
            state: BatteryState, RawSample or mapping with voltage, temperature
                   and optionally current (default 0 A) and soc/state_of_charge

        Returns:
            Clamped RawSample

        Raises:
            MeasurementError: if voltage or temperature is missing or not numeric
        """
        if isinstance(state, RawSample):
            values = {
                "voltage": state.voltage,
                "current": state.current,
                "temperature": state.temperature,
                "soc": state.state_of_charge,
                "timestamp": state.timestamp,
            }
        elif isinstance(state, BatteryState):
            values = {
                "voltage": state.voltage,
                "current": state.current,
                "temperature": state.temperature,
                "soc": state.state_of_charge,
                "timestamp": state.timestamp,
            }
        elif isinstance(state, Mapping):
            values = dict(state)
        else:
            raise MeasurementError(f"Unsupported state type: {type(state).__name__}")

        for name in ("voltage", "temperature"):
            if values.get(name) is None:
                raise MeasurementError(f"Missing required field: {name}")
        soc = values.get("soc", values.get("state_of_charge"))

        try:
            sample = RawSample(
                voltage=float(values["voltage"]),
                current=float(values.get("current") or 0.0),
                temperature=float(values["temperature"]),
                state_of_charge=None if soc is None else float(soc),
                timestamp=values.get("timestamp") or datetime.now(),
            )
            return self.validate_sample(sample)
        except (TypeError, ValueError, FloatingPointError) as exc:
            raise MeasurementError(f"Invalid battery state: {exc}") from exc

    def estimate(self, raw: RawSample) -> BatteryState:
        """
        Estimate the battery state from one raw sample.

        Never raises: any internal failure is logged and the safe default
        state is returned.

        Args:
            raw: Raw measurement sample

        Returns:
            Estimated BatteryState
        """
        try:
            sample = self.validate_sample(raw)
            x = self.kalman_filter.update([sample.voltage, sample.current, sample.temperature])
            filtered = FilteredSample(
                voltage=clamp(x[0], self.voltage_limits),
                current=clamp(x[1], self.current_limits),
                temperature=clamp(x[2], self.temperature_limits),
            )

            soc_ocv = soc_from_ocv(filtered.voltage, filtered.temperature,
                                   self.ocv_table, self.temp_coeff)
            if self.soc_history:
                soc_prev = self.soc_history[-1]
            elif sample.state_of_charge is not None:
                soc_prev = sample.state_of_charge
            else:
                soc_prev = soc_ocv
            soc_cc = coulomb_count(soc_prev, filtered.current,
                                   self.sample_interval_h, self.capacity_ah)
            soc = fuse_soc(soc_cc, soc_ocv,
                           mid_band=self.soc_mid_band,
                           mid_weight=self.cc_weight_mid,
                           edge_weight=self.cc_weight_edge)

            resistance = self.estimate_resistance(filtered)
            health = self.estimate_health(filtered, resistance)
        except Exception as exc:
            logger.warning("State estimation error: %s", exc)
            return self.default_state(getattr(raw, "timestamp", None))

        self.soc_history.append(soc)
        state = BatteryState(
            voltage=filtered.voltage,
            current=filtered.current,
            temperature=filtered.temperature,
            state_of_charge=soc,
            health=health,
            internal_resistance=resistance,
            timestamp=sample.timestamp,
        )
        self.last_state = state
        return state

    def estimate_resistance(self, filtered: FilteredSample) -> float:
        """
        Estimate internal resistance from the voltage deviation per ampere.

        Args:
            filtered: Filtered sample

        Returns:
            Resistance (Ω) within resistance_limits, nominal when the current
            is too small to observe it
        """
        if abs(filtered.current) <= self.min_resistance_current:
            return float(self.internal_resistance)

        delta_v = filtered.voltage - self.nominal_voltage
        resistance = abs(delta_v / filtered.current)
        temp_factor = 1.0 + self.resistance_temp_coeff * (filtered.temperature - REFERENCE_TEMPERATURE)
        return clamp(resistance * temp_factor, self.resistance_limits)

    def estimate_health(self, filtered: FilteredSample, resistance: float) -> BatteryHealth:
        """Combine voltage and resistance degradation into a health score."""
        voltage_health = filtered.voltage / self.nominal_voltage
        resistance_health = self.internal_resistance / resistance
        return BatteryHealth(
            state_of_health=min(100.0, (voltage_health + resistance_health) * 50.0),
            voltage_health=voltage_health * 100.0,
            resistance_health=resistance_health * 100.0,
        )

    def default_state(self, timestamp: Optional[datetime] = None) -> BatteryState:
        """Safe default state used when estimation cannot be trusted."""
        if not isinstance(timestamp, datetime):
            timestamp = datetime.now()
        return BatteryState(
            voltage=float(self.nominal_voltage),
            current=0.0,
            temperature=REFERENCE_TEMPERATURE,
            state_of_charge=50.0,
            health=BatteryHealth(),
            internal_resistance=float(self.internal_resistance),
            timestamp=timestamp,
        )

    def reset(self):
        """Reset filter and SOC history."""
        self.kalman_filter.reset()
        self.soc_history.clear()
        self.last_state = None
