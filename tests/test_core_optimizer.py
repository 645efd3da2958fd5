"""
Tests for core/optimizer.py - Per-cycle current and cooling decision.
"""

import pytest

from bms_core.core.bms import ChargeStrategy
from bms_core.core.measurements import (
    BatteryState,
    MeasurementError,
    RawSample,
    ThermalControl,
)
from bms_core.core.optimizer import BatteryOptimizer
from bms_core.bms_strategies import STRATEGIES
from bms_core.bms_strategies.soc_band import SocBandStrategy


class FixedStrategy(ChargeStrategy):
    """Strategy returning a constant current and recording its inputs."""

    def __init__(self, basic_data_set):
        super().__init__(basic_data_set)
        self.calls = []

    def calculate_current(self, soc, temperature, voltage):
        self.calls.append((soc, temperature, voltage))
        return 42.0


@pytest.fixture
def optimizer():
    return BatteryOptimizer({"max_current": 100.0})


class TestBatteryOptimizer:
    """Test suite for BatteryOptimizer."""

    def test_high_soc_band(self, optimizer):
        """Test SOC above 80 % allows half the maximum current."""
        current, _ = optimizer.optimize({"voltage": 3.7, "temperature": 25.0, "soc": 85.0})

        assert current == pytest.approx(50.0)

    def test_hot_derating(self, optimizer):
        """Test above 40 °C the current is halved."""
        current, _ = optimizer.optimize({"voltage": 3.7, "temperature": 42.0, "soc": 85.0})

        assert current == pytest.approx(25.0)

    def test_warm_derating(self, optimizer):
        """Test between 35 and 40 °C the current is cut to 70 %."""
        current, _ = optimizer.optimize({"voltage": 3.7, "temperature": 38.0, "soc": 85.0})

        assert current == pytest.approx(35.0)

    def test_mid_band_warm(self, optimizer):
        """Test SOC 75 % at 40 °C is below the half-current limit."""
        current, _ = optimizer.optimize({"voltage": 3.7, "temperature": 40.0, "soc": 75.0})

        assert current == pytest.approx(49.0)
        assert current < 50.0

    def test_low_soc_full_current(self, optimizer):
        """Test SOC below 60 % allows full current."""
        current, _ = optimizer.optimize({"voltage": 3.7, "temperature": 25.0, "soc": 30.0})

        assert current == pytest.approx(100.0)

    @pytest.mark.parametrize("voltage", [4.2, 4.5])
    def test_voltage_ceiling(self, optimizer, voltage):
        """Test the voltage ceiling cuts the current to 30 %."""
        current, _ = optimizer.optimize({"voltage": voltage, "temperature": 25.0, "soc": 30.0})

        assert current == pytest.approx(30.0)

    def test_soc_from_estimate(self, optimizer):
        """Test a state without SOC uses the estimated SOC."""
        current, _ = optimizer.optimize({"voltage": 3.7, "temperature": 25.0, "current": 0.0})

        assert optimizer.last_state.state_of_charge == pytest.approx(50.0)
        assert current == pytest.approx(100.0)

    def test_thermal_control(self, optimizer):
        """Test the cooling command is returned with the current."""
        result = optimizer.optimize(RawSample(3.7, 2.0, 25.0, 75.0))

        assert isinstance(result.thermal_control, ThermalControl)
        assert result.thermal_control.target_temperature == 25.0
        assert 0.0 <= result.thermal_control.fan_speed <= 100.0
        assert result.optimal_current == pytest.approx(70.0)

    def test_last_state(self, optimizer):
        """Test the estimated state is kept for the caller."""
        optimizer.optimize(RawSample(3.7, 2.0, 25.0, 75.0))

        assert isinstance(optimizer.last_state, BatteryState)
        assert optimizer.last_state.state_of_charge == pytest.approx(70.16)

    @pytest.mark.parametrize("state", [
        {"temperature": 25.0, "soc": 50.0},
        {"voltage": 3.7, "soc": 50.0},
        {"voltage": None, "temperature": 25.0},
    ])
    def test_missing_fields(self, optimizer, state):
        """Test missing voltage or temperature raises MeasurementError."""
        with pytest.raises(MeasurementError):
            optimizer.optimize(state)

    def test_custom_strategy(self):
        """Test an injected strategy decides the current."""
        strategy = FixedStrategy({})
        optimizer = BatteryOptimizer(strategy=strategy)

        current, _ = optimizer.optimize({"voltage": 3.8, "temperature": 30.0, "soc": 40.0})

        assert current == 42.0
        assert strategy.calls == [(40.0, 30.0, 3.8)]

    def test_default_strategy(self, optimizer):
        """Test the SOC band strategy is used by default."""
        assert isinstance(optimizer.strategy, SocBandStrategy)


class TestSocBandStrategy:
    """Test suite for SocBandStrategy."""

    @pytest.fixture
    def strategy(self):
        return SocBandStrategy({"max_current": 100.0})

    @pytest.mark.parametrize("soc,fraction", [
        (100.0, 0.5),
        (80.0, 0.5),
        (79.9, 0.7),
        (60.0, 0.7),
        (59.9, 1.0),
        (0.0, 1.0),
    ])
    def test_base_fraction(self, strategy, soc, fraction):
        """Test the SOC bands."""
        assert strategy.base_fraction(soc) == fraction

    @pytest.mark.parametrize("temperature,multiplier", [
        (25.0, 1.0),
        (35.0, 1.0),
        (38.0, 0.7),
        (40.0, 0.7),
        (42.0, 0.5),
    ])
    def test_temperature_multiplier(self, strategy, temperature, multiplier):
        """Test the most restrictive derating step wins."""
        assert strategy.temperature_multiplier(temperature) == multiplier

    def test_combined_derating(self, strategy):
        """Test band, temperature and voltage cuts multiply."""
        assert strategy.calculate_current(85.0, 42.0, 4.2) == pytest.approx(7.5)

    def test_configured_bands(self):
        """Test bands and limits come from the configuration."""
        strategy = SocBandStrategy({"max_current": 50.0, "soc_bands": [(50.0, 0.2)]})

        assert strategy.calculate_current(55.0, 25.0, 3.7) == pytest.approx(10.0)
        assert strategy.calculate_current(45.0, 25.0, 3.7) == pytest.approx(50.0)

    def test_registry(self):
        """Test the strategy is registered by name."""
        assert STRATEGIES["soc_band"] is SocBandStrategy
