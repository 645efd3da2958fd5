"""
Replay a measurement log through the battery management control loop.
"""

import logging
import os

import pandas as pd

from bms_core.bms_strategies import STRATEGIES
from bms_core.core.bms import BatteryManagementSystem
from bms_core.core.optimizer import BatteryOptimizer
from bms_core.core.safety import SafetyMonitor
from bms_core.drivers import DRIVERS

logging.basicConfig(level=logging.WARN)
logger = logging.getLogger(__name__)


# Default configuration
basic_data_set = {
    "strategy": "soc_band",
    "capacity_ah": 100.0,
    "max_current": 100.0,
    "max_voltage": 4.2,
    "max_consecutive_faults": 3,
}


def build_system(basic_data_set: dict) -> BatteryManagementSystem:
    """
    Create the per-device component set.

    Args:
        basic_data_set: Configuration shared by all components

    Returns:
        BatteryManagementSystem with fresh estimator, controller and monitor
    """
    strategy_name = basic_data_set.get("strategy", "soc_band")
    if strategy_name not in STRATEGIES:
        raise ValueError(f"Unknown strategy: {strategy_name}")

    strategy = STRATEGIES[strategy_name](basic_data_set)
    optimizer = BatteryOptimizer(basic_data_set, strategy=strategy)
    monitor = SafetyMonitor(basic_data_set)
    return BatteryManagementSystem(optimizer, monitor, basic_data_set)


def replay(driver, bms: BatteryManagementSystem) -> pd.DataFrame:
    """
    Run every sample of the driver through the BMS.

    Args:
        driver: SampleDriver with loaded data
        bms: BatteryManagementSystem

    Returns:
        DataFrame with one row per cycle, indexed by timestamp
    """
    records = [bms.step(sample).as_record() for sample in driver]
    df = pd.DataFrame(records)
    if not df.empty:
        df = df.set_index("timestamp")
    return df


def summarize(df: pd.DataFrame) -> pd.DataFrame:
    """Cycles, mean commanded current and peak fan speed per operating state."""
    if df.empty:
        return pd.DataFrame(columns=["cycles", "mean_current", "max_fan_speed"])
    return df.groupby("operating_state").agg(
        cycles=("commanded_current", "size"),
        mean_current=("commanded_current", "mean"),
        max_fan_speed=("fan_speed", "max"),
    )


def main(argv=None):
    """Main function."""
    from bms_core.utils.cli import create_parser, load_config

    parser = create_parser(
        prog="bmsreplay",
        description="Replay measurement logs through the BMS control loop",
    )
    args = parser.parse_args(argv)

    if not os.path.exists(args.data):
        print(f"Data file not found: {args.data}")
        return 1

    config = load_config(args.config, basic_data_set)

    driver = DRIVERS[args.driver](config)
    driver.load_data(args.data)
    config.setdefault("sample_interval_h", driver.resolution)

    bms = build_system(config)
    df = replay(driver, bms)

    with pd.option_context('display.max_columns', None):
        print(summarize(df))

    if args.output:
        df.to_csv(args.output)
        print(f"✓ Wrote {len(df)} cycles to {args.output}")
    return 0


if __name__ == "__main__":
    main()
