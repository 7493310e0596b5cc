import pytest

from pyocean.config import ConfigPool
from pyocean.errors import (
    ConfigMissing,
    ErrorCollector,
    InvalidCombination,
    OceanError,
    PerTermInitFailure,
    SetupError,
    StreamMissing,
    format_banner,
)
from pyocean.tendency import TERM_CLASSES, init_terms


def test_collector_keeps_going_and_decides_once():
    errors = ErrorCollector()
    ran = []
    for name in ("a", "b", "c"):
        with errors.collect(name):
            ran.append(name)
            if name != "b":
                raise InvalidCombination(f"{name} is misconfigured")
    assert ran == ["a", "b", "c"]
    assert len(errors) == 2
    with pytest.raises(SetupError) as info:
        errors.raise_if_any("setup failed")
    err = info.value
    assert [e.source for e in err.errors] == ["a", "c"]
    assert err.matches(InvalidCombination)
    assert not err.matches(StreamMissing)
    assert "a is misconfigured" in str(err)
    assert "c is misconfigured" in str(err)


def test_empty_collector_does_not_raise():
    errors = ErrorCollector()
    assert not errors
    errors.raise_if_any("never")


def test_non_model_errors_propagate():
    errors = ErrorCollector()
    with pytest.raises(ZeroDivisionError):
        with errors.collect("x"):
            1 / 0
    assert not errors


def test_collect_any_exception_when_asked():
    errors = ErrorCollector()
    with errors.collect("member", catch=Exception):
        1 / 0
    assert len(errors) == 1
    assert isinstance(errors.errors[0].cause, ZeroDivisionError)
    # KeyboardInterrupt and friends still escape
    with pytest.raises(KeyboardInterrupt):
        with errors.collect("member", catch=Exception):
            raise KeyboardInterrupt
    assert len(errors) == 1


def test_taxonomy():
    assert issubclass(ConfigMissing, KeyError)
    assert issubclass(InvalidCombination, ValueError)
    for cls in (ConfigMissing, InvalidCombination, StreamMissing, PerTermInitFailure, SetupError):
        assert issubclass(cls, OceanError)
    assert "missingStream" in str(StreamMissing("missingStream"))


def test_term_init_failures_are_all_collected():
    config = ConfigPool(
        {
            "config_eos_type": "jmd",
            "config_pressure_gradient_type": "sigma",
            "config_tracer_adv_order": 3,
        }
    )
    terms, errors = init_terms(config)
    assert len(terms.terms) == len(TERM_CLASSES)
    sources = sorted(e.source for e in errors.errors)
    assert sources == ["tendency term eos", "tendency term tr_adv", "tendency term vel_pgrad"]
    # the remaining terms were still initialized
    assert terms["vel_coriolis"].enabled


def test_disable_switches():
    config = ConfigPool({"config_disable_vel_coriolis": True, "config_disable_tr_hmix": True})
    terms, errors = init_terms(config)
    assert not errors
    assert not terms["vel_coriolis"].enabled
    assert not terms["tr_hmix"].enabled
    assert terms["vel_coriolis"] not in terms.of_kind("velocity")


def test_banner_is_delimited():
    banner = format_banner("first line\nsecond line")
    lines = banner.strip("\n").splitlines()
    assert lines[0] == lines[-1] == "*" * 72
    assert "  first line" in lines
    assert "  second line" in lines
