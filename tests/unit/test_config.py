from pathlib import Path

import pytest

from roster.config import Settings, apply_env_overrides, load_settings, load_targets
from roster.errors import ConfigError


REPO_CONFIG = Path(__file__).resolve().parents[2] / "config"


def test_defaults_without_file():
    s = load_settings(None, environ={})
    assert s.acquisition.confidence_threshold == 5
    assert s.acquisition.enable_dynamic is True
    assert s.driver.grace_wait_ms == 600
    assert s.storage.db_path is None


def test_example_config_loads():
    s = load_settings(REPO_CONFIG / "example.yaml", environ={})
    assert s.acquisition.target_budget_s == 180.0
    assert s.storage.db_path == "./out/roster.sqlite"


def test_partial_file_keeps_other_defaults(tmp_path):
    p = tmp_path / "c.yaml"
    p.write_text("driver:\n  control_timeout_ms: 900\n", encoding="utf-8")
    s = load_settings(p, environ={})
    assert s.driver.control_timeout_ms == 900
    assert s.driver.stable_cycles == 2


@pytest.mark.parametrize(
    "body",
    [
        "acquisition: [1, 2\n",
        "- just\n- a list\n",
        "acquisition:\n  confidence_treshold: 3\n",
        "acquisition:\n  confidence_threshold: -1\n",
    ],
)
def test_bad_config_raises(tmp_path, body):
    p = tmp_path / "c.yaml"
    p.write_text(body, encoding="utf-8")
    with pytest.raises(ConfigError):
        load_settings(p, environ={})


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_settings(tmp_path / "nope.yaml")


def test_env_overrides():
    s = apply_env_overrides(Settings(), {"RW_OPS_JSON": "1", "RW_NO_HEADLESS": "1"})
    assert s.ops.ops_json is True
    assert s.acquisition.enable_dynamic is False
    s = apply_env_overrides(Settings(), {"RW_OPS_JSON": "0"})
    assert s.ops.ops_json is False


def test_example_targets_load():
    targets = load_targets(REPO_CONFIG / "targets.example.yaml")
    assert [t.id for t in targets] == ["sequoia", "a16z"]
    assert targets[1].team_page_url == "https://a16z.com/team/"
    assert all(t.is_valid() for t in targets)


def test_target_with_bad_url_loads_but_is_invalid(tmp_path):
    p = tmp_path / "t.yaml"
    p.write_text("targets:\n  - id: x\n    team_page_url: not-a-url\n", encoding="utf-8")
    (target,) = load_targets(p)
    assert not target.is_valid()


@pytest.mark.parametrize(
    "body",
    [
        "companies: []\n",
        "targets:\n  - just-a-string\n",
        "targets:\n  - id: x\n",
    ],
)
def test_bad_targets_file(tmp_path, body):
    p = tmp_path / "t.yaml"
    p.write_text(body, encoding="utf-8")
    with pytest.raises(ConfigError):
        load_targets(p)
