# scripts/run_simulation.py

"""
Run the ocean model in forward mode.

Configuration comes from the defaults, an optional JSON namelist and OCN_*
environment overrides, e.g.

    OCN_RUN_DURATION=2_00:00:00 OCN_TEST_CASE=baroclinic_channel \
        python3 scripts/run_simulation.py --namelist namelist.json

Under MPI:

    mpirun -n 4 python3 scripts/run_simulation.py --communicator mpi
"""

import argparse
import logging
import os
import sys

# Add the project root to the Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pyocean.config import ConfigPool
from pyocean.forward_mode import ForwardMode


def parse_args(argv=None):
    ap = argparse.ArgumentParser(description="Forward-mode ocean model run.")
    ap.add_argument("--namelist", type=str, default=None, help="JSON namelist with config_* options and streams.")
    ap.add_argument("--run-directory", type=str, default=None, help="Directory for streams and the restart marker.")
    ap.add_argument("--communicator", choices=("serial", "mpi"), default=None, help="Override config_communicator.")
    ap.add_argument("--test-case", type=str, default=None, help="Override config_test_case.")
    ap.add_argument("--restart", action="store_true", help="Start from the restart stream (config_do_restart).")
    ap.add_argument(
        "--log-level",
        default=os.getenv("OCN_LOG_LEVEL", "INFO"),
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
    )
    return ap.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.captureWarnings(True)

    config = ConfigPool.from_file(args.namelist) if args.namelist else ConfigPool.from_env()
    overrides = {}
    if args.run_directory:
        overrides["config_run_directory"] = args.run_directory
    if args.communicator:
        overrides["config_communicator"] = args.communicator
    if args.test_case:
        overrides["config_test_case"] = args.test_case
    if args.restart:
        overrides["config_do_restart"] = True
    if overrides:
        config = config.with_overrides(**overrides)

    model = ForwardMode(config)
    model.init()
    model.setup_clock()
    start = model.invariants()
    model.run()
    end = model.invariants()
    logging.getLogger("pyocean").info(
        "[Run] volume drift %.3e, heat drift %.3e (relative)",
        (end.volume - start.volume) / start.volume,
        (end.heat - start.heat) / start.heat if start.heat else 0.0,
    )
    model.finalize()
    return 0


if __name__ == "__main__":
    sys.exit(main())
