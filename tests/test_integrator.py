import numpy as np
import pytest

from pyocean import constants
from pyocean.config import ConfigPool
from pyocean.diagnostics import relative_deltas
from pyocean.errors import InvalidCombination, NumericalInstability
from pyocean.forward_mode import ForwardMode
from pyocean.mesh import planar_periodic_mesh
from pyocean.parallel import SerialCommunicator
from pyocean.state import Domain, allocate_block, compute_max_mesh_density
from pyocean.tendency.vmix import implicit_vertical_solve
from pyocean.time_integration import btr_subcycle_count


def _run(config):
    model = ForwardMode(config)
    model.init()
    start = model.invariants()
    model.setup_clock()
    model.run()
    end = model.invariants()
    return model, start, end


# ---- barotropic subcycles ----
def test_configured_subcycle_count_is_used_as_is():
    assert btr_subcycle_count(7, 300.0, 4000.0, 1.0e4, 0.5) == 7


def test_subcycle_count_from_cfl():
    c = np.sqrt(constants.GRAVITY * 1000.0)
    expected = int(np.ceil(c * 300.0 / 1.0e4 / 0.5))
    assert btr_subcycle_count(0, 300.0, 1000.0, 1.0e4, 0.5) == expected


def test_subcycle_count_is_clamped():
    assert btr_subcycle_count(0, 1.0, 0.0, 1.0e4, 0.5) == 1
    assert btr_subcycle_count(0, 86400.0, 6000.0, 10.0, 0.1) == constants.MAX_BTR_SUBCYCLES
    with pytest.raises(InvalidCombination):
        btr_subcycle_count(0, 300.0, 1000.0, 1.0e4, 0.0)


# ---- conservation ----
@pytest.mark.parametrize(
    "overrides",
    [
        {"config_vert_coord_movement": "uniform_stretching"},
        {"config_vert_coord_movement": "fixed"},
        {"config_vert_coord_movement": "fixed", "config_filter_btr_mode": True},
        {"config_vert_coord_movement": "impermeable_interfaces"},
        {"config_vert_coord_movement": "user_specified"},
    ],
    ids=["uniform_stretching", "fixed", "fixed_filtered", "impermeable_interfaces", "user_specified"],
)
def test_closed_basin_conserves_volume_heat_and_salt(make_config, overrides):
    model, start, end = _run(make_config(config_run_duration="0_00:30:00", **overrides))
    try:
        rel = relative_deltas(start, end)
        assert abs(rel["d_volume"]) < 1e-12
        assert abs(rel["d_heat"]) < 1e-11
        assert abs(rel["d_salt"]) < 1e-11
        assert model.clock.step_count == 6
    finally:
        model.finalize()


def test_ssh_bump_spreads_and_stays_bounded(make_config):
    model, start, end = _run(make_config())
    try:
        ssh = model.state_array("ssh")
        assert np.all(np.isfinite(ssh))
        assert np.max(np.abs(ssh)) < 1.0
        # the bump sets the fluid in motion
        assert end.ke > 0.0
        assert np.max(np.abs(model.state_array("normalVelocity"))) > 0.0
    finally:
        model.finalize()


def test_resting_state_stays_at_rest(make_config):
    model, _, end = _run(make_config(config_test_case="resting", config_use_convective_vmix=False))
    try:
        np.testing.assert_allclose(model.state_array("normalVelocity"), 0.0, atol=1e-12)
        np.testing.assert_allclose(model.state_array("ssh"), 0.0, atol=1e-10)
        assert end.ke < 1e-12
    finally:
        model.finalize()


def test_blocks_reproduce_the_single_block_run(make_config):
    single, _, _ = _run(make_config(config_test_case="baroclinic_channel"))
    split, _, _ = _run(make_config(config_test_case="baroclinic_channel", config_number_of_blocks=3))
    try:
        assert len(split.domain.blocks) == 3
        for name in ("layerThickness", "temperature", "normalVelocity", "ssh"):
            np.testing.assert_allclose(
                split.state_array(name), single.state_array(name), rtol=1e-10, atol=1e-10, err_msg=name
            )
    finally:
        single.finalize()
        split.finalize()


def test_thin_layers_abort_the_run(make_config):
    model = ForwardMode(make_config(config_min_thickness=300.0))
    model.init()
    model.setup_clock()
    with pytest.raises(NumericalInstability):
        model.run()


# ---- mesh density ----
def test_max_mesh_density_over_blocks():
    first = planar_periodic_mesh(3, 3, 1000.0, 2)
    second = planar_periodic_mesh(3, 3, 1000.0, 2)
    first.mesh_density[:] = 3.2
    second.mesh_density[:] = 5.7
    domain = Domain(
        config=ConfigPool(),
        comm=SerialCommunicator(),
        blocks=[allocate_block(0, first), allocate_block(1, second)],
    )
    assert compute_max_mesh_density(domain) == pytest.approx(5.7)


def test_max_mesh_density_is_stored_at_init(make_config):
    model = ForwardMode(make_config())
    model.init()
    assert model.config.get_config("config_maxMeshDensity") == pytest.approx(1.0)
    model.finalize()


# ---- implicit vertical mixing ----
def test_implicit_solve_conserves_column_content():
    rng = np.random.default_rng(5)
    h = rng.uniform(5.0, 50.0, size=(6, 5))
    phi = rng.uniform(0.0, 20.0, size=(6, 5))
    kappa = np.full((6, 6), 1.0e-2)
    mixed = implicit_vertical_solve(phi, h, kappa, 3600.0)
    np.testing.assert_allclose((h * mixed).sum(axis=1), (h * phi).sum(axis=1), rtol=1e-12)
    # mixing narrows the range of each column
    assert np.all(mixed.max(axis=1) <= phi.max(axis=1) + 1e-12)
    assert np.all(mixed.min(axis=1) >= phi.min(axis=1) - 1e-12)


def test_implicit_solve_of_several_fields_matches_one_at_a_time():
    rng = np.random.default_rng(6)
    h = rng.uniform(5.0, 50.0, size=(4, 3))
    kappa = rng.uniform(0.0, 1.0e-3, size=(4, 4))
    a = rng.standard_normal((4, 3))
    b = rng.standard_normal((4, 3))
    both = implicit_vertical_solve(np.stack([a, b], axis=-1), h, kappa, 600.0)
    np.testing.assert_allclose(both[..., 0], implicit_vertical_solve(a, h, kappa, 600.0), rtol=1e-12, atol=1e-14)
    np.testing.assert_allclose(both[..., 1], implicit_vertical_solve(b, h, kappa, 600.0), rtol=1e-12, atol=1e-14)


def test_single_level_is_untouched():
    phi = np.array([[1.0], [2.0]])
    out = implicit_vertical_solve(phi, np.ones((2, 1)), np.ones((2, 2)), 10.0)
    np.testing.assert_array_equal(out, phi)
    assert out is not phi
