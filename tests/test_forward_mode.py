import os

import numpy as np
import pytest
from netCDF4 import Dataset

from pyocean.config import DEFAULT_STREAMS, ConfigPool
from pyocean.errors import InvalidCombination, SetupError
from pyocean.parallel import SerialCommunicator
from pyocean.forward_mode import ForwardMode, build_mesh
from pyocean.streams import StreamManager
from pyocean.timekeeping import read_restart_timestamp, setup_clock

STATE = ("layerThickness", "normalVelocity", "temperature", "salinity", "ssh", "normalBarotropicVelocity")


def _restart_every(interval):
    return {"restart": dict(DEFAULT_STREAMS["restart"], output_interval=interval)}


def _counter_options():
    return {
        "config_AM_testComputeInterval_compute_interval": "dt",
        "config_AM_testComputeInterval_stream_name": "none",
        "config_AM_testComputeInterval_compute_on_startup": False,
        "config_AM_testComputeInterval_write_on_startup": False,
    }


def _run(config):
    model = ForwardMode(config)
    model.init()
    model.setup_clock()
    model.run()
    return model


def _counter(model):
    return float(model.domain.blocks[0].analysis["testComputeInterval"]["testComputeIntervalCounter"])


def test_life_cycle(make_config):
    model = ForwardMode(make_config())
    assert model.clock is None
    model.init()
    assert model.clock.timestamp == "0001-01-01_00:00:00"
    model.setup_clock()
    model.run()
    assert model.clock.timestamp == "0001-01-01_01:00:00"
    assert model.clock.step_count == 12
    for block in model.domain.blocks:
        assert block.diagnostics.xtime == "0001-01-01_01:00:00"
    model.finalize()
    assert model.clock is None


def test_restart_marker_only_when_the_restart_alarm_rings(make_config, tmp_path):
    model = _run(make_config(streams=_restart_every("0_02:00:00")))
    model.finalize()
    assert not os.path.exists(tmp_path / "restart_timestamp")
    assert not os.path.exists(tmp_path / "restarts")

    model = _run(make_config(streams=_restart_every("0_01:00:00")))
    model.finalize()
    assert read_restart_timestamp(str(tmp_path / "restart_timestamp")) == "0001-01-01_01:00:00"
    assert os.path.exists(tmp_path / "restarts" / "restart.0001-01-01_01.00.00.nc")


def test_restart_reproduces_the_continuous_run(make_config, tmp_path_factory):
    continuous = _run(
        make_config(
            members=("testComputeInterval",),
            config_run_duration="0_02:00:00",
            config_run_directory=str(tmp_path_factory.mktemp("continuous")),
            **_counter_options(),
        )
    )

    first = _run(
        make_config(members=("testComputeInterval",), streams=_restart_every("0_01:00:00"), **_counter_options())
    )
    first.finalize()
    second = _run(
        make_config(
            members=("testComputeInterval",),
            streams=_restart_every("0_01:00:00"),
            config_do_restart=True,
            config_start_time="file",
            **_counter_options(),
        )
    )
    try:
        assert second.clock.timestamp == continuous.clock.timestamp == "0001-01-01_02:00:00"
        for name in STATE:
            np.testing.assert_allclose(
                second.state_array(name), continuous.state_array(name), rtol=1e-12, atol=1e-14, err_msg=name
            )
        # the counter travels in the restart stream
        assert _counter(continuous) == 24.0
        assert _counter(second) == 24.0
    finally:
        continuous.finalize()
        second.finalize()


def test_missing_stop_condition_leaves_no_clock(make_config):
    model = ForwardMode(make_config(config_run_duration="none", config_stop_time="none"))
    with pytest.raises(InvalidCombination):
        model.init()
    assert model.clock is None


def test_setup_errors_are_reported_together(make_config):
    config = make_config(
        config_eos_type="jmd",
        config_forcing_type="bulk",
        config_vert_coord_movement="uniform_stretching",
        config_pressure_gradient_type="MontgomeryPotential",
    )
    model = ForwardMode(config)
    with pytest.raises(SetupError) as info:
        model.init()
    sources = {e.source for e in info.value.errors}
    assert {"tendency term eos", "forcing", "time integrator"} <= sources


def test_unknown_test_case(make_config):
    with pytest.raises(InvalidCombination, match="config_test_case"):
        ForwardMode(make_config(config_test_case="tsunami")).init()


def test_no_initial_state(make_config):
    config = make_config(config_test_case="none")
    config.streams.pop("input")
    with pytest.raises(InvalidCombination, match="No initial state"):
        ForwardMode(config).init()


def test_initial_state_from_the_input_stream(make_config, tmp_path):
    source = ForwardMode(make_config(config_test_case="ssh_bump"))
    source.init()
    writer = StreamManager(
        {
            "snapshot": {
                "type": "output",
                "filename_template": "init.nc",
                "output_interval": "none",
                "fields": ["xtime", "layerThickness", "normalVelocity", "temperature", "salinity"],
            }
        },
        setup_clock(source.config, str(tmp_path)),
        str(tmp_path),
    )
    writer.write(source.domain, "snapshot", force=True)

    model = ForwardMode(make_config(config_test_case="none"))
    model.init()
    try:
        for name in ("layerThickness", "temperature", "ssh"):
            np.testing.assert_allclose(model.state_array(name), source.state_array(name), rtol=1e-12, atol=1e-14)
        assert not model.clock.is_alarm_ringing("input_input")
    finally:
        source.finalize()
        model.finalize()


@pytest.mark.parametrize("case", ["resting", "ssh_bump", "baroclinic_channel"])
def test_test_cases_fill_the_state(make_config, case):
    model = ForwardMode(make_config(config_test_case=case))
    model.init()
    h = model.state_array("layerThickness")
    temperature = model.state_array("temperature")
    assert np.all(h > 0.0)
    np.testing.assert_allclose(model.state_array("ssh"), h.sum(axis=1) - model.mesh.bottom_depth, atol=1e-10)
    np.testing.assert_array_equal(model.state_array("normalVelocity"), 0.0)
    # stably stratified
    assert np.all(np.diff(temperature, axis=1) < 0.0)
    if case == "ssh_bump":
        assert 0.05 < model.state_array("ssh").max() <= 0.1
    if case == "baroclinic_channel":
        assert temperature[:, 0].max() - temperature[:, 0].min() > 1.0
    model.finalize()


def test_operator_self_tests_at_init(make_config):
    model = ForwardMode(make_config(config_conduct_tests=True, config_number_of_blocks=2))
    model.init()
    results = model.conduct_tests()
    assert results and all(results.values())
    model.finalize()


def test_output_on_startup_and_at_interval(make_config, tmp_path):
    output = dict(DEFAULT_STREAMS["output"], output_interval="00:30:00", filename_template="output/output.nc")
    model = _run(make_config(streams={"output": output}, config_write_output_on_startup=True))
    model.finalize()
    with Dataset(tmp_path / "output" / "output.nc") as ds:
        stamps = [b"".join(row.tolist()).decode().strip("\x00 ") for row in np.asarray(ds.variables["xtime"][:])]
        assert stamps == ["0001-01-01_00:00:00", "0001-01-01_00:30:00", "0001-01-01_01:00:00"]
        assert ds.variables["avgSsh"].shape == (3, 64)


def test_run_simulation_script(monkeypatch, tmp_path):
    from scripts.plot_stream import plot_fields
    from scripts.run_simulation import main

    for key, value in {
        "OCN_PLANAR_NX": "4",
        "OCN_PLANAR_NY": "4",
        "OCN_PLANAR_N_VERT_LEVELS": "3",
        "OCN_RUN_DURATION": "0_00:20:00",
        "OCN_FORCING_TYPE": "none",
    }.items():
        monkeypatch.setenv(key, value)
    assert main(["--run-directory", str(tmp_path), "--test-case", "ssh_bump", "--log-level", "WARNING"]) == 0

    path = tmp_path / "output" / "output.0001-01-01_00.00.00.nc"
    assert path.exists()
    mesh_file = str(tmp_path / "mesh.nc")
    build_mesh(ConfigPool.from_env()).to_netcdf(mesh_file)
    pngs = plot_fields(str(path), ["ssh", "temperature", "missing"], out_dir=str(tmp_path / "plots"), mesh_file=mesh_file)
    assert [os.path.basename(p) for p in pngs] == ["ssh_L0.png", "temperature_L0.png"]


def test_restart_at_a_time_missing_from_the_restart_file(make_config, tmp_path):
    restart = dict(
        DEFAULT_STREAMS["restart"], output_interval="0_01:00:00", filename_template="restarts/restart.nc"
    )
    first = _run(make_config(streams={"restart": restart}))
    first.finalize()
    assert os.path.exists(tmp_path / "restarts" / "restart.nc")

    model = ForwardMode(
        make_config(
            streams={"restart": restart},
            config_do_restart=True,
            config_start_time="0001-01-01_00:30:00",
        )
    )
    with pytest.raises(InvalidCombination, match="0001-01-01_00:30:00"):
        model.init()


class _TwoRanks(SerialCommunicator):
    size = 2

    def __init__(self):
        self.aborts = []

    def global_abort(self, message, exit_code=1):
        self.aborts.append((message, exit_code))


def test_setup_failure_aborts_every_rank(make_config, caplog):
    comm = _TwoRanks()
    model = ForwardMode(
        make_config(config_vert_coord_movement="sideways", config_number_of_blocks=2), comm=comm
    )
    with caplog.at_level("ERROR", logger="pyocean"):
        model.init()
    assert len(comm.aborts) == 1
    message, exit_code = comm.aborts[0]
    assert exit_code == 1
    assert message.startswith("Model setup failed")
    assert "time integrator" in message
    assert "Incorrect choice of config_vert_coord_movement" in message
    assert "Model setup failed" in caplog.text


def test_serial_failure_is_raised(make_config):
    model = ForwardMode(make_config(config_vert_coord_movement="sideways"))
    with pytest.raises(SetupError) as info:
        model.init()
    assert info.value.matches(InvalidCombination)
