"""
Run-time configuration.

Options are resolved in three layers:

  1. DEFAULT_CONFIG / DEFAULT_STREAMS below (every option the model reads),
  2. an optional JSON namelist file ({"config_dt": "00:10:00", ..., "streams": {...}}),
  3. environment overrides: OCN_<NAME> for config_<name>, e.g.
       OCN_DT=00:10:00  OCN_VERT_COORD_MOVEMENT=fixed  OCN_AM_GLOBALSTATS_ENABLE=0

Values from layers 2 and 3 are coerced to the type of the default. Looking up
an option that is not defined anywhere raises ConfigMissing.
"""

from __future__ import annotations

import copy
import json
import logging
import os
from collections.abc import Mapping
from typing import Any, Iterator

from .errors import ConfigMissing, InvalidCombination

logger = logging.getLogger(__name__)

ENV_PREFIX = "OCN_"

# Analysis members shipped with the model (see pyocean.analysis.registry)
ANALYSIS_MEMBER_NAMES = (
    "globalStats",
    "testComputeInterval",
    "highFrequencyOutput",
    "surfaceAreaWeightedAverages",
    "layerVolumeWeightedAverage",
    "okuboWeiss",
    "zonalMean",
    "waterMassCensus",
    "meridionalHeatTransport",
)

DEFAULT_CONFIG: dict[str, Any] = {
    # --- run control ---
    "config_do_restart": False,
    "config_start_time": "0001-01-01_00:00:00",
    "config_stop_time": "none",
    "config_run_duration": "0_06:00:00",
    "config_calendar_type": "gregorian_noleap",
    "config_dt": "00:05:00",
    "config_restart_timestamp_name": "restart_timestamp",
    "config_write_output_on_startup": True,
    "config_run_directory": ".",
    "config_conduct_tests": False,
    # --- mesh / decomposition / parallel ---
    "config_mesh_file": "none",
    "config_planar_nx": 16,
    "config_planar_ny": 16,
    "config_planar_dc": 10000.0,
    "config_planar_n_vert_levels": 10,
    "config_planar_bottom_depth": 1000.0,
    "config_planar_f0": 1.0e-4,
    "config_planar_beta": 0.0,
    "config_planar_lat0": 0.0,
    "config_block_decomp_method": "uniform",
    "config_number_of_blocks": 0,
    "config_num_halos": 3,
    "config_communicator": "serial",
    # --- initial conditions ---
    "config_test_case": "none",
    "config_test_case_ssh_amplitude": 0.1,
    "config_test_case_surface_temperature": 15.0,
    "config_test_case_bottom_temperature": 5.0,
    "config_test_case_temperature_gradient": 2.0,
    "config_test_case_salinity": 35.0,
    # --- time integration ---
    "config_time_integrator": "split_explicit",
    "config_n_btr_subcycles": 20,
    "config_btr_cfl": 0.5,
    "config_filter_btr_mode": False,
    "config_vert_coord_movement": "uniform_stretching",
    "config_pressure_gradient_type": "pressure_and_zmid",
    "config_maxMeshDensity": -1.0,
    "config_min_thickness": 1.0e-3,
    # --- equation of state ---
    "config_eos_type": "linear",
    "config_density0": 1026.0,
    "config_eos_linear_alpha": 0.2,
    "config_eos_linear_beta": 0.8,
    "config_eos_linear_Tref": 5.0,
    "config_eos_linear_Sref": 35.0,
    "config_eos_linear_densityref": 1000.0,
    # --- momentum ---
    "config_use_mom_del2": True,
    "config_mom_del2": 10.0,
    "config_use_mom_del4": False,
    "config_mom_del4": 5.0e13,
    "config_bottom_drag_coeff": 1.0e-3,
    "config_use_rayleigh_friction": False,
    "config_rayleigh_damping_coeff": 0.0,
    # --- tracers ---
    "config_tracer_adv_order": 2,
    "config_use_tracer_del2": True,
    "config_tracer_del2": 10.0,
    # --- vertical mixing ---
    "config_vert_visc": 1.0e-4,
    "config_vert_diff": 1.0e-5,
    "config_use_convective_vmix": True,
    "config_convective_visc": 1.0,
    "config_convective_diff": 1.0,
    # --- forcing ---
    "config_forcing_type": "analytic",
    "config_wind_stress_type": "none",
    "config_wind_stress_amplitude": 0.1,
    "config_surface_heat_flux": 0.0,
    "config_surface_freshwater_flux": 0.0,
    "config_shortwave_flux": 0.0,
    "config_use_temperature_restoring": False,
    "config_temperature_piston_velocity": 1.585e-5,
    "config_restoring_temperature": 10.0,
    "config_sw_absorption_type": "jerlov",
    "config_jerlov_water_type": 1,
    # --- term switches ---
    "config_disable_thick_hadv": False,
    "config_disable_thick_vadv": False,
    "config_disable_thick_sflux": False,
    "config_disable_vel_coriolis": False,
    "config_disable_vel_pgrad": False,
    "config_disable_vel_hmix": False,
    "config_disable_vel_vadv": False,
    "config_disable_vel_forcing": False,
    "config_disable_vel_vmix": False,
    "config_disable_tr_adv": False,
    "config_disable_tr_hmix": False,
    "config_disable_tr_sflux": False,
    "config_disable_tr_vmix": False,
    # --- analysis member specific options ---
    "config_AM_okuboWeiss_normalization": 1.0e-10,
    "config_AM_okuboWeiss_threshold_value": -0.2,
    "config_AM_zonalMean_num_bins": 45,
    "config_AM_zonalMean_min_bin": -1.0e34,
    "config_AM_zonalMean_max_bin": -1.0e34,
    "config_AM_waterMassCensus_minTemperature": -2.0,
    "config_AM_waterMassCensus_maxTemperature": 30.0,
    "config_AM_waterMassCensus_minSalinity": 32.0,
    "config_AM_waterMassCensus_maxSalinity": 37.0,
    "config_AM_waterMassCensus_num_temperature_bins": 32,
    "config_AM_waterMassCensus_num_salinity_bins": 25,
    "config_AM_meridionalHeatTransport_num_bins": 180,
    "config_AM_meridionalHeatTransport_min_bin": -1.0e34,
    "config_AM_meridionalHeatTransport_max_bin": -1.0e34,
}


def _member_defaults(name: str, enable: bool) -> dict[str, Any]:
    return {
        f"config_AM_{name}_enable": enable,
        f"config_AM_{name}_compute_interval": "output_interval",
        f"config_AM_{name}_stream_name": f"{name}Output",
        f"config_AM_{name}_compute_on_startup": True,
        f"config_AM_{name}_write_on_startup": True,
    }


for _name in ANALYSIS_MEMBER_NAMES:
    DEFAULT_CONFIG.update(_member_defaults(_name, enable=_name == "globalStats"))
DEFAULT_CONFIG["config_AM_testComputeInterval_compute_interval"] = "00:10:00"
DEFAULT_CONFIG["config_AM_highFrequencyOutput_stream_name"] = "highFrequencyOutput"


def _member_stream(name: str, interval: str = "1_00:00:00") -> dict[str, Any]:
    return {
        "type": "output",
        "filename_template": f"analysis_members/{name}.$Y-$M-$D.nc",
        "output_interval": interval,
        "reference_time": "initial_time",
        "clobber_mode": "append",
        "fields": ["xtime", f"{name}AM"],
        "packages": [f"{name}AMPKGActive"],
    }


DEFAULT_STREAMS: dict[str, dict[str, Any]] = {
    "input": {
        "type": "input",
        "filename_template": "init.nc",
        "input_interval": "initial_only",
        "fields": ["layerThickness", "normalVelocity", "temperature", "salinity"],
    },
    "restart": {
        "type": "input;output",
        "filename_template": "restarts/restart.$Y-$M-$D_$h.$m.$s.nc",
        "input_interval": "initial_only",
        "output_interval": "1_00:00:00",
        "reference_time": "initial_time",
        "clobber_mode": "overwrite",
        "fields": ["xtime", "state", "vertTransportVelocityTop", "restartAM"],
    },
    "output": {
        "type": "output",
        "filename_template": "output/output.$Y-$M-$D_$h.$m.$s.nc",
        "output_interval": "0_06:00:00",
        "reference_time": "initial_time",
        "clobber_mode": "overwrite",
        "fields": [
            "xtime",
            "layerThickness",
            "normalVelocity",
            "temperature",
            "salinity",
            "ssh",
            "kineticEnergyCell",
            "relativeVorticityCell",
            "density",
            "average",
        ],
    },
    "highFrequencyOutput": _member_stream("highFrequencyOutput", "0_01:00:00"),
}
for _name in ANALYSIS_MEMBER_NAMES:
    if _name != "highFrequencyOutput":
        DEFAULT_STREAMS[f"{_name}Output"] = _member_stream(_name)


# ---------- coercion helpers ----------


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in ("1", "true", ".true.", "yes", "on"):
        return True
    if text in ("0", "false", ".false.", "no", "off"):
        return False
    raise InvalidCombination(f"Cannot interpret {value!r} as a logical value.")


def _coerce(name: str, value: Any, default: Any) -> Any:
    try:
        if isinstance(default, bool):
            return _as_bool(value)
        if isinstance(default, int):
            return int(value)
        if isinstance(default, float):
            return float(value)
        if isinstance(default, str):
            return str(value)
    except (TypeError, ValueError) as exc:
        raise InvalidCombination(f"Option {name}: cannot convert {value!r}: {exc}") from exc
    return value


def env_name(option: str) -> str:
    """OCN_<NAME> environment variable overriding config_<name>."""
    base = option[len("config_"):] if option.startswith("config_") else option
    return ENV_PREFIX + base.upper()


class ConfigPool(Mapping):
    """Typed, read-mostly configuration table.

    ``get_config(name)`` is the only lookup path used by the model; it raises
    ConfigMissing for undefined options. ``set_config`` exists for derived
    options computed during init (e.g. ``config_maxMeshDensity``).
    """

    def __init__(
        self,
        values: Mapping[str, Any] | None = None,
        streams: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> None:
        self._values: dict[str, Any] = dict(DEFAULT_CONFIG)
        self._streams: dict[str, dict[str, Any]] = copy.deepcopy(DEFAULT_STREAMS)
        if values:
            self.update(values)
        if streams:
            for name, definition in streams.items():
                self._streams[name] = dict(definition)

    # ---- Mapping protocol ----
    def __getitem__(self, name: str) -> Any:
        return self.get_config(name)

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    # ---- access ----
    def get_config(self, name: str) -> Any:
        try:
            return self._values[name]
        except KeyError:
            raise ConfigMissing(name) from None

    def set_config(self, name: str, value: Any) -> None:
        if name in DEFAULT_CONFIG:
            value = _coerce(name, value, DEFAULT_CONFIG[name])
        self._values[name] = value

    def update(self, values: Mapping[str, Any]) -> None:
        for name, value in values.items():
            if name not in DEFAULT_CONFIG:
                logger.warning("[Config] Option %s is not a known option; keeping it as given.", name)
            self.set_config(name, value)

    def member_option(self, member: str, option: str) -> Any:
        """config_AM_<member>_<option>."""
        return self.get_config(f"config_AM_{member}_{option}")

    @property
    def streams(self) -> dict[str, dict[str, Any]]:
        return self._streams

    def with_overrides(self, **values: Any) -> ConfigPool:
        """Copy of this pool with some options replaced."""
        pool = ConfigPool(streams=self._streams)
        pool._values = dict(self._values)
        pool.update(values)
        return pool

    # ---- construction ----
    @classmethod
    def from_file(cls, path: str, environ: Mapping[str, str] | None = None) -> ConfigPool:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
        streams = data.pop("streams", None)
        pool = cls(data, streams)
        pool.apply_env(environ)
        return pool

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ConfigPool:
        pool = cls()
        pool.apply_env(environ)
        return pool

    def apply_env(self, environ: Mapping[str, str] | None = None) -> None:
        env = os.environ if environ is None else environ
        for name in DEFAULT_CONFIG:
            key = env_name(name)
            if key in env:
                self.set_config(name, env[key])
                logger.debug("[Config] %s overridden from %s", name, key)


__all__ = [
    "ANALYSIS_MEMBER_NAMES",
    "DEFAULT_CONFIG",
    "DEFAULT_STREAMS",
    "ConfigPool",
    "env_name",
]
