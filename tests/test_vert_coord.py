import numpy as np
import pytest

from pyocean.config import ConfigPool
from pyocean.errors import InvalidCombination
from pyocean.time_integration import validate_integrator_config
from pyocean.vert_coord import thickness_targets, validate_vert_coord, vertical_transport_velocity

MOVEMENTS = ("fixed", "uniform_stretching", "impermeable_interfaces", "user_specified")


@pytest.mark.parametrize("movement", MOVEMENTS)
@pytest.mark.parametrize("pgrad", ("pressure_and_zmid", "MontgomeryPotential"))
def test_movement_and_pressure_gradient_combinations(movement, pgrad):
    ok = pgrad != "MontgomeryPotential" or movement == "impermeable_interfaces"
    if ok:
        validate_vert_coord(movement, pgrad, False)
    else:
        with pytest.raises(InvalidCombination) as info:
            validate_vert_coord(movement, pgrad, False)
        assert str(info.value) == (
            "Incorrect combination of config_vert_coord_movement and config_pressure_gradient_type"
        )


def test_unknown_movement_is_fatal():
    with pytest.raises(InvalidCombination) as info:
        validate_vert_coord("z_star", "pressure_and_zmid", False)
    assert str(info.value) == "Incorrect choice of config_vert_coord_movement."


@pytest.mark.parametrize("movement", MOVEMENTS)
def test_filter_btr_mode_only_with_fixed(movement):
    if movement == "fixed":
        validate_vert_coord(movement, "pressure_and_zmid", True)
    else:
        with pytest.raises(InvalidCombination):
            validate_vert_coord(movement, "pressure_and_zmid", True)


def test_integrator_config_validation():
    validate_integrator_config(ConfigPool())
    with pytest.raises(InvalidCombination):
        validate_integrator_config(ConfigPool({"config_time_integrator": "rk4"}))


@pytest.fixture
def column_case():
    rng = np.random.default_rng(3)
    div = rng.normal(scale=1e-6, size=(5, 4))
    sflux = rng.normal(scale=1e-7, size=5)
    rest = np.tile([10.0, 20.0, 30.0, 40.0], (5, 1))
    return div, sflux, rest


@pytest.mark.parametrize("movement", MOVEMENTS)
def test_targets_close_the_column_budget(movement, column_case):
    div, sflux, rest = column_case
    weights = np.array([1.0, 0.5, 0.25, 0.0])
    target = thickness_targets(movement, div, sflux, rest, weights)
    np.testing.assert_allclose(target.sum(axis=1), -div.sum(axis=1) + sflux, rtol=1e-12, atol=1e-20)
    w = vertical_transport_velocity(div, sflux, target)
    assert w.shape == (5, 5)
    np.testing.assert_array_equal(w[:, 0], 0.0)
    np.testing.assert_array_equal(w[:, -1], 0.0)
    # layer budget: target = -div + s + w_below - w_above
    tend = -div + w[:, 1:] - w[:, :-1]
    tend[:, 0] += sflux
    np.testing.assert_allclose(tend, target, atol=1e-18)


def test_fixed_moves_only_the_top_layer(column_case):
    div, sflux, rest = column_case
    target = thickness_targets("fixed", div, sflux, rest)
    np.testing.assert_array_equal(target[:, 1:], 0.0)


def test_uniform_stretching_is_proportional(column_case):
    div, sflux, rest = column_case
    target = thickness_targets("uniform_stretching", div, sflux, rest)
    ratio = target / rest
    np.testing.assert_allclose(ratio, ratio[:, :1] * np.ones((1, 4)), rtol=1e-12)


def test_impermeable_interfaces_have_no_transport(column_case):
    div, sflux, rest = column_case
    target = thickness_targets("impermeable_interfaces", div, sflux, rest)
    w = vertical_transport_velocity(div, sflux, target)
    np.testing.assert_allclose(w, 0.0, atol=1e-20)
