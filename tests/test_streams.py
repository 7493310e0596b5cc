import os

import numpy as np
import pytest
from netCDF4 import Dataset

from pyocean.errors import ConfigMissing, InvalidCombination, StreamMissing
from pyocean.forward_mode import ForwardMode
from pyocean.streams import Stream, StreamManager, expand_template
from pyocean.timekeeping import setup_clock


@pytest.fixture
def model(make_config):
    fm = ForwardMode(make_config(config_test_case="baroclinic_channel"))
    fm.init()
    yield fm
    fm.finalize()


def _manager(model, tmp_path, **streams):
    clock = setup_clock(model.config, str(tmp_path))
    return StreamManager(streams, clock, str(tmp_path))


def _snapshot(clobber="overwrite", fields=("xtime", "state"), **extra):
    definition = {
        "type": "input;output",
        "filename_template": "snap/snap.$Y-$M-$D_$h.$m.$s.nc",
        "input_interval": "none",
        "output_interval": "00:10:00",
        "clobber_mode": clobber,
        "fields": list(fields),
    }
    definition.update(extra)
    return definition


def _xtimes(path):
    with Dataset(path) as ds:
        raw = ds.variables["xtime"][:]
        return [b"".join(row.tolist()).decode().strip("\x00 ") for row in np.asarray(raw)]


def test_expand_template():
    assert expand_template("out.$Y-$M-$D_$h.$m.$s.nc", "0003-02-01_04:05:06") == "out.0003-02-01_04.05.06.nc"


def test_stream_definition_checks():
    with pytest.raises(InvalidCombination):
        Stream.from_definition("bad", {"type": "sideways", "filename_template": "x.nc"})
    with pytest.raises(InvalidCombination):
        Stream.from_definition("bad", {"type": "output", "filename_template": "x.nc", "clobber_mode": "never"})
    stream = Stream.from_definition("both", {"type": "input;output", "filename_template": "x.nc"})
    assert stream.is_input and stream.is_output
    assert stream.input_interval == "initial_only"


def test_write_and_read_back(model, tmp_path):
    streams = _manager(model, tmp_path, snap=_snapshot())
    streams.bind(model.domain)
    [path] = streams.write(model.domain, "snap", force=True)
    assert os.path.exists(path)
    assert _xtimes(path) == ["0001-01-01_00:00:00"]

    expected = model.state_array("temperature").copy()
    for block in model.domain.blocks:
        block.state.temperature.level(1)[:] = 0.0
    streams.read(model.domain, "snap")
    np.testing.assert_array_equal(model.state_array("temperature"), expected)


def test_written_fields_are_global_with_time_records(model, tmp_path):
    streams = _manager(model, tmp_path, snap=_snapshot(fields=("xtime", "layerThickness", "refBottomDepth")))
    [path] = streams.write(model.domain, "snap", force=True)
    with Dataset(path) as ds:
        var = ds.variables["layerThickness"]
        assert var.dimensions == ("Time", "nCells", "nVertLevels")
        assert var.shape == (1, 64, 4)
        assert var.units == "m"
        np.testing.assert_allclose(ds.variables["refBottomDepth"][0], model.mesh.ref_bottom_depth)


def test_unknown_field_is_reported(model, tmp_path):
    streams = _manager(model, tmp_path, snap=_snapshot(fields=("xtime", "noSuchField")))
    with pytest.raises(ConfigMissing, match="noSuchField"):
        streams.bind(model.domain)


def test_same_file_is_appended_within_a_run(model, tmp_path):
    streams = _manager(model, tmp_path, snap=_snapshot())
    first = streams.write(model.domain, "snap", force=True)
    second = streams.write(model.domain, "snap", force=True)
    assert first == second
    assert len(_xtimes(first[0])) == 2


def test_overwrite_replaces_a_file_from_an_earlier_run(model, tmp_path):
    [path] = _manager(model, tmp_path, snap=_snapshot()).write(model.domain, "snap", force=True)
    _manager(model, tmp_path, snap=_snapshot()).write(model.domain, "snap", force=True)
    assert len(_xtimes(path)) == 1


def test_append_keeps_records_of_an_earlier_run(model, tmp_path):
    [path] = _manager(model, tmp_path, snap=_snapshot("append")).write(model.domain, "snap", force=True)
    _manager(model, tmp_path, snap=_snapshot("append")).write(model.domain, "snap", force=True)
    assert len(_xtimes(path)) == 2


def test_output_alarm_drives_writes(model, tmp_path):
    streams = _manager(model, tmp_path, snap=_snapshot())
    clock = streams.clock
    # re-armed at creation: nothing at the initial time
    assert not streams.ringing_alarms("snap", "output")
    assert streams.write(model.domain, "snap") == []
    clock.advance()
    assert not streams.ringing_alarms("snap", "output")
    clock.advance()
    assert streams.ringing_alarms("snap", "output")
    [path] = streams.write(model.domain)
    assert _xtimes(path) == ["0001-01-01_00:10:00"]
    streams.reset_alarms("snap", "output")
    assert not streams.ringing_alarms("snap", "output")


def test_inactive_package_skips_the_stream(model, tmp_path):
    assert model.domain.package_active("okuboWeissAMPKGActive") is False
    streams = _manager(model, tmp_path, snap=_snapshot(packages=["okuboWeissAMPKGActive"]))
    streams.bind(model.domain)
    assert streams.write(model.domain, "snap", force=True) == []


def test_missing_stream(model, tmp_path):
    streams = _manager(model, tmp_path, snap=_snapshot())
    assert not streams.has_stream("missingStream")
    with pytest.raises(StreamMissing):
        streams.get_stream("missingStream")
    with pytest.raises(StreamMissing):
        streams.write(model.domain, "missingStream", force=True)
    with pytest.raises(StreamMissing):
        streams.get_property("missingStream", "reference_time")


def test_stream_properties(model, tmp_path):
    streams = _manager(
        model,
        tmp_path,
        snap=_snapshot(),
        later=_snapshot(reference_time="0001-01-01_03:00:00", filename_template="later.nc"),
    )
    assert streams.get_property("snap", "reference_time") == "0001-01-01_00:00:00"
    assert streams.get_property("later", "reference_time") == "0001-01-01_03:00:00"
    assert streams.get_property("snap", "output_interval") == "00:10:00"
    with pytest.raises(InvalidCombination):
        streams.get_property("snap", "colour")


def test_reading_an_output_only_stream_is_refused(model, tmp_path):
    definition = _snapshot()
    definition["type"] = "output"
    streams = _manager(model, tmp_path, snap=definition)
    with pytest.raises(InvalidCombination):
        streams.read(model.domain, "snap")


def test_blocks_write_the_same_file_as_one_block(make_config, tmp_path):
    paths = []
    for n_blocks, sub in ((1, "one"), (3, "three")):
        fm = ForwardMode(make_config(config_test_case="baroclinic_channel", config_number_of_blocks=n_blocks))
        fm.init()
        definition = _snapshot(filename_template=f"{sub}.nc")
        [path] = _manager(fm, tmp_path, snap=definition).write(fm.domain, "snap", force=True)
        paths.append(path)
        fm.finalize()
    with Dataset(paths[0]) as one, Dataset(paths[1]) as three:
        for name in ("layerThickness", "temperature", "normalVelocity", "ssh"):
            np.testing.assert_array_equal(one.variables[name][:], three.variables[name][:])


def test_reading_an_explicit_time_needs_a_matching_record(model, tmp_path):
    streams = _manager(model, tmp_path, snap=_snapshot(filename_template="snap.nc"))
    streams.write(model.domain, "snap", force=True)
    assert streams.read(model.domain, "snap", timestamp="0001-01-01_00:00:00")
    with pytest.raises(InvalidCombination, match="0001-01-01_00:30:00"):
        streams.read(model.domain, "snap", timestamp="0001-01-01_00:30:00")
    # without an explicit time the clock record, else the last one, is used
    streams.clock.advance()
    assert streams.read(model.domain, "snap")
