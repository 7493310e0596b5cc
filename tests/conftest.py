"""
pytest configuration

Goals:
- keep tests fast and deterministic (small doubly periodic meshes, short runs)
- no OCN_* overrides leak in from the calling environment
- every file a run writes lands in the test's tmp_path
"""

import os
import sys

import pytest

# Ensure project root on sys.path for 'pyocean' and 'scripts' imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from pyocean.config import ANALYSIS_MEMBER_NAMES, ConfigPool  # noqa: E402

SMALL_RUN = {
    "config_planar_nx": 8,
    "config_planar_ny": 8,
    "config_planar_dc": 10000.0,
    "config_planar_n_vert_levels": 4,
    "config_planar_bottom_depth": 1000.0,
    "config_dt": "00:05:00",
    "config_run_duration": "0_01:00:00",
    "config_n_btr_subcycles": 10,
    "config_test_case": "ssh_bump",
    "config_forcing_type": "none",
    "config_write_output_on_startup": False,
}


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("OCN_"):
            monkeypatch.delenv(key, raising=False)
    # Force non-interactive backend for matplotlib (avoid display requirements)
    monkeypatch.setenv("MPLBACKEND", os.getenv("MPLBACKEND", "Agg"))
    yield


@pytest.fixture
def make_config(tmp_path):
    """ConfigPool for a small run in tmp_path; every analysis member off unless asked for."""

    def factory(members=(), streams=None, **overrides):
        values = dict(SMALL_RUN)
        values["config_run_directory"] = str(tmp_path)
        for name in ANALYSIS_MEMBER_NAMES:
            values[f"config_AM_{name}_enable"] = name in members
        values.update(overrides)
        return ConfigPool(values, streams)

    return factory
