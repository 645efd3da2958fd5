"""
Sample driver base class.

Provides abstract interface for loading measurement time series and
handing them to the control loop one RawSample per tick.
"""

from abc import ABC, abstractmethod

import pandas as pd

from bms_core.core.measurements import RawSample

SAMPLE_COLUMNS = ("voltage", "current", "temperature")


class SampleDriver(ABC):
    """Abstract base class for measurement sample providers."""

    def __init__(self, basic_data_set: dict):
        """
        Initialize driver with configuration.

        Args:
            basic_data_set: Configuration dictionary containing driver-specific parameters
        """
        self.basic_data_set = basic_data_set.copy() if basic_data_set else {}
        self.resolution = None  # Time between samples in hours
        self._data = None

    @abstractmethod
    def load_data(self, data_source: str) -> pd.DataFrame:
        """
        Load and prepare data from source.

        Must create a DataFrame with at least these columns:
        - voltage: Cell voltage (V)
        - current: Cell current (A), positive = charging
        - temperature: Cell temperature (°C)
        - soc (optional): Reported state of charge (%)
        - DatetimeIndex: Timestamp for each row

        Must set self.resolution to the average timestep in hours.

        Args:
            data_source: Path to data file or data source identifier

        Returns:
            Prepared DataFrame
        """
        pass

    @property
    def data(self) -> pd.DataFrame:
        """Returns DataFrame with voltage, current and temperature columns."""
        if self._data is None:
            raise ValueError("No data loaded. Call load_data() first.")
        return self._data

    def _set_data(self, df: pd.DataFrame) -> pd.DataFrame:
        """Check required columns, sort by time and derive the resolution."""
        missing = [col for col in SAMPLE_COLUMNS if col not in df.columns]
        if missing:
            raise ValueError(f"Sample data is missing columns: {', '.join(missing)}")

        df = df.sort_index()
        if len(df) > 1:
            seconds = df.index.to_series().diff().dt.total_seconds().dropna()
            self.resolution = float(seconds.mean()) / 3600
        else:
            self.resolution = self.basic_data_set.get("default_resolution_h", 1 / 3600)

        self._data = df
        return df

    def get_sample(self, index: int) -> RawSample:
        """
        Get the raw sample of a specific timestep.

        Args:
            index: Timestep index (0-based)

        Returns:
            RawSample of the row
        """
        row = self.data.iloc[index]
        soc = row["soc"] if "soc" in self.data.columns else None
        if soc is not None and pd.isna(soc):
            soc = None
        return RawSample(
            voltage=float(row["voltage"]),
            current=float(row["current"]),
            temperature=float(row["temperature"]),
            state_of_charge=None if soc is None else float(soc),
            timestamp=self.data.index[index].to_pydatetime(),
        )

    def __iter__(self):
        for index in range(len(self)):
            yield self.get_sample(index)

    def __len__(self) -> int:
        """Return number of timesteps."""
        return len(self._data) if self._data is not None else 0
