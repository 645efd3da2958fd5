"""
Shared CLI argument parser for bms-core commands.

Used by the bmsreplay entry point.
"""

import argparse
import json

DRIVERS = ["csv", "senec"]


def create_parser(prog: str, description: str, default_driver: str = "csv") -> argparse.ArgumentParser:
    """
    Create argument parser with common options.

    Args:
        prog: Program name (e.g. "bmsreplay")
        description: Short description for --help
        default_driver: Default sample driver name

    Returns:
        Configured ArgumentParser
    """
    parser = argparse.ArgumentParser(
        prog=prog,
        description=description,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""\
drivers:
  csv       time,voltage,current,temperature[,soc] columns
  senec     SENEC home battery monitoring export

examples:
  {prog} -d samples.csv
  {prog} -d senec_export.csv --driver senec -o decisions.csv
  {prog} -d samples.csv -c config.json
""")

    parser.add_argument(
        "-d", "--data",
        required=True,
        metavar="PATH",
        help="Path to the measurement CSV file"
    )

    parser.add_argument(
        "--driver",
        choices=DRIVERS,
        default=default_driver,
        help=f"Sample driver (default: {default_driver})"
    )

    parser.add_argument(
        "-c", "--config",
        default=None,
        metavar="PATH",
        help="JSON file merged over the default configuration"
    )

    parser.add_argument(
        "-o", "--output",
        default=None,
        metavar="PATH",
        help="Write per-cycle decisions to this CSV file"
    )

    return parser


def load_config(path: str, basic_data_set: dict = None) -> dict:
    """
    Merge a JSON configuration file over a configuration dict.

    Args:
        path: Path to JSON file, None to skip
        basic_data_set: Base configuration

    Returns:
        New merged configuration dict
    """
    config = dict(basic_data_set or {})
    if path:
        with open(path, "r") as f:
            overrides = json.load(f)
        if not isinstance(overrides, dict):
            raise ValueError(f"Configuration file must hold a JSON object: {path}")
        config.update(overrides)
    return config
