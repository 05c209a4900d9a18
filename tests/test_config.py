import pytest

from planner_viz.core.config import DEFAULT_CONFIG, config_from_dict, load_config
from planner_viz.core.errors import ConfigError
from planner_viz.core.viewport.lod import tier_for_zoom


def test_no_config_is_default():
    assert load_config(None) is DEFAULT_CONFIG
    assert DEFAULT_CONFIG.minimal_max == 0.5
    assert DEFAULT_CONFIG.compact_max == 0.8
    assert DEFAULT_CONFIG.discard_stale_fetches is True


def test_load_config_file():
    config = load_config("examples/viz-config.yaml")
    assert config.minimal_max == 0.4
    assert config.compact_max == 0.7
    assert config.direction == "LR"
    assert config.node_spacing == 60.0
    assert config.rank_spacing == 100.0
    assert config.node_size("task") == (200.0, 70.0)
    assert config.node_size("phase") == (280.0, 120.0)
    assert config.refetch_delay_seconds == 0.25
    assert tier_for_zoom(0.45, config) == "compact"


def test_unknown_node_type_size_uses_default():
    assert DEFAULT_CONFIG.node_size("widget") == (240.0, 80.0)


def test_unknown_key_rejected():
    with pytest.raises(ConfigError) as exc:
        config_from_dict({"zooom": {}})
    assert exc.value.code == "E_CONFIG_UNKNOWN_KEY"


def test_threshold_order_enforced():
    with pytest.raises(ConfigError) as exc:
        config_from_dict({"zoom": {"minimal_max": 0.9}})
    assert exc.value.code == "E_CONFIG_INVALID"


@pytest.mark.parametrize(
    "raw",
    [
        {"debug": "yes"},
        {"layout": {"direction": "RL"}},
        {"layout": {"node_spacing": -1}},
        {"layout": {"node_sizes": {"task": [10]}}},
        {"refetch_delay_seconds": "soon"},
    ],
)
def test_invalid_values(raw):
    with pytest.raises(ConfigError) as exc:
        config_from_dict(raw)
    assert exc.value.code == "E_CONFIG_INVALID"


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigError) as exc:
        load_config(str(tmp_path / "nope.yaml"))
    assert exc.value.code == "E_CONFIG_NOT_FOUND"


def test_unparseable_config_file(tmp_path):
    p = tmp_path / "bad.yaml"
    p.write_text("zoom: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigError) as exc:
        load_config(str(p))
    assert exc.value.code == "E_CONFIG_PARSE"


def test_config_error_carries_file(tmp_path):
    p = tmp_path / "cfg.yaml"
    p.write_text("debug: 3\n", encoding="utf-8")
    with pytest.raises(ConfigError) as exc:
        load_config(str(p))
    assert exc.value.file == str(p)
    assert exc.value.path == "debug"
