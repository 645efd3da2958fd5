"""
SENEC home battery driver.

Loads SENEC monitoring exports and converts the pack measurements into
per-cell samples.
"""

import logging
from datetime import datetime

import pandas as pd

from bms_core.core.driver import SampleDriver

logger = logging.getLogger(__name__)


class SenecDriver(SampleDriver):
    """Driver for SENEC home battery monitoring data."""

    def __init__(self, basic_data_set: dict):
        """
        Initialize SENEC driver.

        Args:
            basic_data_set: Configuration dict with:
                - cells_in_series: Cells per pack string (default: 14)
                - ambient_temperature: Temperature used for every sample,
                  the export has no cell temperature (default: 25.0)
        """
        super().__init__(basic_data_set)
        self.cells_in_series = self.basic_data_set.get("cells_in_series", 14)
        self.ambient_temperature = self.basic_data_set.get("ambient_temperature", 25.0)

    def load_data(self, csv_file_path: str) -> pd.DataFrame:
        """
        Load SENEC CSV data.

        Targets the semicolon separated monitoring export of the SENEC web
        portal, which starts with a UTF-8 byte order mark.

        Args:
            csv_file_path: Path to SENEC monitoring CSV file

        Returns:
            DataFrame with per-cell voltage, current and temperature
        """
        df = pd.read_csv(csv_file_path, sep=";", encoding="utf-8-sig")

        # Column mapping for SENEC format
        column_mapping = {}
        for col in df.columns:
            if 'Uhrzeit' in col:
                column_mapping[col] = 'stime'
            elif 'Akku Spannung [V]' in col:
                column_mapping[col] = 'act_battery_voltage'
            elif 'Akku Stromstärke [A]' in col:
                column_mapping[col] = 'act_battery_current'

        df = df.rename(columns=column_mapping)
        missing = [c for c in ('stime', 'act_battery_voltage', 'act_battery_current')
                   if c not in df.columns]
        if missing:
            raise ValueError(f"Not a SENEC export, missing {', '.join(missing)}: {csv_file_path}")

        df["time"] = [datetime.strptime(st, "%d.%m.%Y %H:%M:%S") for st in df["stime"]]
        df = df.set_index("time")

        # Pack string -> cell; the string current flows through every cell
        df["voltage"] = df["act_battery_voltage"] / self.cells_in_series
        df["current"] = df["act_battery_current"]
        df["temperature"] = float(self.ambient_temperature)

        # Logging gaps carry no measurement
        samples = df[["voltage", "current", "temperature"]].dropna(subset=["voltage", "current"])
        skipped = len(df) - len(samples)
        if skipped:
            logger.warning("Skipped %d SENEC records without battery voltage or current", skipped)

        df = self._set_data(samples)

        logger.info("Loaded %d SENEC records, %s to %s, average resolution %.1f minutes",
                    len(df), df.index.min(), df.index.max(), self.resolution * 60)
        return df
