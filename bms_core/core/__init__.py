"""
Core modules of the battery management control loop.

This package provides the per-cycle components:
- measurements: Data shapes and validation errors
- estimator: Filtered state, SOC fusion, health and resistance
- thermal: Predictive PID cooling control
- safety: Hysteretic limit checks and operating posture
- bms: Charge strategy interface and the per-cycle BMS step
- optimizer: Current and cooling decision
- driver: Sample stream providers
"""

from .measurements import (
    Alarm,
    AlarmLevel,
    BatteryHealth,
    BatteryState,
    BMSError,
    FaultCounters,
    FilteredSample,
    MeasurementError,
    Measurements,
    OperatingState,
    OptimizationResult,
    RawSample,
    SafetyVerdict,
    ThermalControl,
)
from .estimator import StateEstimator
from .thermal import ThermalController
from .safety import SafetyMonitor, ChannelThresholds, classify
from .bms import BatteryManagementSystem, ChargeStrategy, CycleResult
from .optimizer import BatteryOptimizer
from .driver import SampleDriver

__all__ = [
    'Alarm',
    'AlarmLevel',
    'BatteryHealth',
    'BatteryState',
    'BMSError',
    'FaultCounters',
    'FilteredSample',
    'MeasurementError',
    'Measurements',
    'OperatingState',
    'OptimizationResult',
    'RawSample',
    'SafetyVerdict',
    'ThermalControl',
    'StateEstimator',
    'ThermalController',
    'SafetyMonitor',
    'ChannelThresholds',
    'classify',
    'BatteryManagementSystem',
    'ChargeStrategy',
    'CycleResult',
    'BatteryOptimizer',
    'SampleDriver',
]
