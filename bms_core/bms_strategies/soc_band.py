"""
SOC band strategy with temperature and voltage derating.

Full current at low SOC, tapering towards full charge, cut back when hot
or at the voltage ceiling.
"""

from bms_core.core.bms import ChargeStrategy


class SocBandStrategy(ChargeStrategy):
    """Charge current from SOC bands, derated by temperature and voltage."""

    def __init__(self, basic_data_set: dict):
        """
        Initialize strategy with band parameters.

        Args:
            basic_data_set: Configuration dict with:
                - max_current: Maximum charge current in A (default: 100)
                - max_voltage: Voltage ceiling in V (default: 4.2)
                - soc_bands: (min_soc, fraction) pairs, highest first
                  (default: 80 -> 0.5, 60 -> 0.7, else 1.0)
                - derate_steps: (temperature, multiplier) pairs
                  (default: >35 °C -> 0.7, >40 °C -> 0.5)
                - high_voltage_factor: Cut at the voltage ceiling (default: 0.3)
        """
        super().__init__(basic_data_set)
        self.max_current = basic_data_set.get("max_current", 100.0)
        self.max_voltage = basic_data_set.get("max_voltage", 4.2)
        self.soc_bands = basic_data_set.get("soc_bands", [(80.0, 0.5), (60.0, 0.7)])
        self.derate_steps = basic_data_set.get("derate_steps", [(35.0, 0.7), (40.0, 0.5)])
        self.high_voltage_factor = basic_data_set.get("high_voltage_factor", 0.3)

    def base_fraction(self, soc: float) -> float:
        """Fraction of max_current allowed in the SOC band."""
        for min_soc, fraction in self.soc_bands:
            if soc >= min_soc:
                return fraction
        return 1.0

    def temperature_multiplier(self, temperature: float) -> float:
        """
        Derating multiplier for the temperature.

        Every step whose threshold is exceeded applies; the most restrictive
        multiplier wins.
        """
        multiplier = 1.0
        for threshold, factor in self.derate_steps:
            if temperature > threshold:
                multiplier = min(multiplier, factor)
        return multiplier

    def calculate_current(self, soc: float, temperature: float, voltage: float) -> float:
        """
        Calculate the charge current.

        Args:
            soc: State of charge (%)
            temperature: Cell temperature (°C)
            voltage: Cell voltage (V)

        Returns:
            Charge current (A)
        """
        current = self.max_current * self.base_fraction(soc)
        current *= self.temperature_multiplier(temperature)

        if voltage >= self.max_voltage:
            current *= self.high_voltage_factor
        return current
