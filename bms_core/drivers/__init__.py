"""
Sample drivers for measurement logs.

Drivers load and prepare time-series measurements for the control loop:
- CsvSampleDriver: Generic time/voltage/current/temperature CSV
- SenecDriver: SENEC home battery monitoring export
"""

from .csv_driver import CsvSampleDriver
from .senec_driver import SenecDriver

DRIVERS = {
    "csv": CsvSampleDriver,
    "senec": SenecDriver,
}

__all__ = ['CsvSampleDriver', 'SenecDriver', 'DRIVERS']
