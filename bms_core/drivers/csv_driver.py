"""
Generic CSV sample driver.

Loads time-stamped voltage/current/temperature (and optional SOC) columns.
"""

import logging

import pandas as pd

from bms_core.core.driver import SampleDriver

logger = logging.getLogger(__name__)


class CsvSampleDriver(SampleDriver):
    """Driver for plain CSV measurement logs."""

    def __init__(self, basic_data_set: dict):
        """
        Initialize CSV driver.

        Args:
            basic_data_set: Configuration dict with:
                - csv_separator: Field separator (default: ",")
                - csv_time_format: strftime format of the time column
                  (default: None, inferred)
                - csv_columns: Mapping of CSV column name to sample column
                  (time, voltage, current, temperature, soc)
        """
        super().__init__(basic_data_set)
        self.separator = self.basic_data_set.get("csv_separator", ",")
        self.time_format = self.basic_data_set.get("csv_time_format")
        self.column_mapping = self.basic_data_set.get("csv_columns", {})

    def load_data(self, csv_file_path: str) -> pd.DataFrame:
        """
        Load CSV measurement data.

        Args:
            csv_file_path: Path to CSV file

        Returns:
            DataFrame with voltage, current, temperature and optional soc
        """
        df = pd.read_csv(csv_file_path, sep=self.separator)
        df = df.rename(columns=self.column_mapping)

        if "time" not in df.columns:
            raise ValueError(f"No time column in {csv_file_path}")
        df["time"] = pd.to_datetime(df["time"], format=self.time_format)
        df = df.set_index("time")

        columns = [col for col in ("voltage", "current", "temperature", "soc") if col in df.columns]
        df = self._set_data(df[columns])

        logger.info("Loaded %d samples from %s to %s (resolution %.1f s)",
                    len(df), df.index.min(), df.index.max(), self.resolution * 3600)
        return df
