import json

import pytest

from pyocean.config import ANALYSIS_MEMBER_NAMES, DEFAULT_CONFIG, DEFAULT_STREAMS, ConfigPool, env_name
from pyocean.errors import ConfigMissing, InvalidCombination


def test_defaults():
    config = ConfigPool()
    assert config.get_config("config_vert_coord_movement") == "uniform_stretching"
    assert config["config_density0"] == pytest.approx(1026.0)
    assert len(config) == len(DEFAULT_CONFIG)


def test_missing_option_is_config_missing():
    config = ConfigPool()
    with pytest.raises(ConfigMissing) as info:
        config.get_config("config_does_not_exist")
    # also a KeyError for Mapping users
    assert isinstance(info.value, KeyError)
    assert "config_does_not_exist" in str(info.value)


def test_env_name():
    assert env_name("config_dt") == "OCN_DT"
    assert env_name("config_AM_globalStats_enable") == "OCN_AM_GLOBALSTATS_ENABLE"


def test_env_overrides_are_coerced():
    env = {
        "OCN_DT": "00:10:00",
        "OCN_N_BTR_SUBCYCLES": "7",
        "OCN_BTR_CFL": "0.25",
        "OCN_FILTER_BTR_MODE": "true",
        "OCN_AM_GLOBALSTATS_ENABLE": "0",
    }
    config = ConfigPool.from_env(env)
    assert config.get_config("config_dt") == "00:10:00"
    assert config.get_config("config_n_btr_subcycles") == 7
    assert config.get_config("config_btr_cfl") == pytest.approx(0.25)
    assert config.get_config("config_filter_btr_mode") is True
    assert config.member_option("globalStats", "enable") is False


def test_bad_logical_value():
    with pytest.raises(InvalidCombination):
        ConfigPool({"config_do_restart": "maybe"})


def test_namelist_file_then_env(tmp_path):
    path = tmp_path / "namelist.json"
    path.write_text(
        json.dumps(
            {
                "config_dt": "00:02:00",
                "config_test_case": "resting",
                "streams": {"output": dict(DEFAULT_STREAMS["output"], output_interval="0_01:00:00")},
            }
        )
    )
    config = ConfigPool.from_file(str(path), environ={"OCN_TEST_CASE": "ssh_bump"})
    assert config.get_config("config_dt") == "00:02:00"
    # environment wins over the file
    assert config.get_config("config_test_case") == "ssh_bump"
    assert config.streams["output"]["output_interval"] == "0_01:00:00"
    assert "restart" in config.streams


def test_with_overrides_leaves_original_untouched():
    base = ConfigPool()
    other = base.with_overrides(config_dt="00:01:00")
    assert other.get_config("config_dt") == "00:01:00"
    assert base.get_config("config_dt") == DEFAULT_CONFIG["config_dt"]


def test_every_member_has_its_options():
    config = ConfigPool()
    for name in ANALYSIS_MEMBER_NAMES:
        for option in ("enable", "compute_interval", "stream_name", "compute_on_startup", "write_on_startup"):
            config.member_option(name, option)
        assert config.member_option(name, "stream_name") in config.streams
