"""
Battery optimizer.

Sequences state estimation, the charge current decision and thermal
control into one decision per cycle.
"""

import logging

from bms_core.core.estimator import StateEstimator
from bms_core.core.measurements import OptimizationResult
from bms_core.core.thermal import ThermalController

logger = logging.getLogger(__name__)


class BatteryOptimizer:
    """Per-cycle charge current and cooling decision for one device."""

    def __init__(self, basic_data_set: dict = None, strategy=None,
                 estimator: StateEstimator = None,
                 thermal_controller: ThermalController = None):
        """
        Initialize optimizer with its collaborators.

        Args:
            basic_data_set: Configuration dictionary shared with the
                            default collaborators
            strategy: ChargeStrategy, defaults to SocBandStrategy
            estimator: StateEstimator, created from basic_data_set if omitted
            thermal_controller: ThermalController, created if omitted
        """
        self.basic_data_set = basic_data_set.copy() if basic_data_set else {}

        if strategy is None:
            from bms_core.bms_strategies.soc_band import SocBandStrategy
            strategy = SocBandStrategy(self.basic_data_set)

        self.strategy = strategy
        self.estimator = estimator or StateEstimator(self.basic_data_set)
        self.thermal_controller = thermal_controller or ThermalController(self.basic_data_set)
        self.last_state = None

    def optimize(self, current_state) -> OptimizationResult:
        """
        Derive the optimal current and cooling command.

        Args:
            current_state: BatteryState, RawSample or mapping with voltage,
                           temperature and optional current and soc

        Returns:
            OptimizationResult(optimal_current, thermal_control)

        Raises:
            MeasurementError: if the state misses voltage or temperature
        """
        validated = self.estimator.validate_state(current_state)

        battery_state = self.estimator.estimate(validated)
        self.last_state = battery_state

        soc = validated.state_of_charge
        if soc is None:
            soc = battery_state.state_of_charge

        optimal_current = self.strategy.calculate_current(
            soc=soc,
            temperature=validated.temperature,
            voltage=validated.voltage,
        )

        thermal_control = self.thermal_controller.control(
            battery_state.temperature,
            battery_state.current,
            battery_state.state_of_charge,
        )

        logger.debug("Optimization result: current %.2f A, target %.1f °C, fan %.1f %%",
                     optimal_current, thermal_control.target_temperature,
                     thermal_control.fan_speed)
        return OptimizationResult(optimal_current, thermal_control)
