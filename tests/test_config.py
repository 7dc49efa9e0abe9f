"""Tests for YAML configuration loading."""

from pathlib import Path

import pytest

from allergen_eval.config import ConfigError, EvalConfig, config_from_dict, load_config


def test_missing_file_gives_defaults(tmp_path):
    config = load_config(str(tmp_path / "absent.yaml"))
    assert config == EvalConfig()
    assert config.safety.abstention_default == 100.0
    assert config.scoring.recall == 40.0


def test_shipped_config_matches_defaults():
    path = Path(__file__).parent.parent / "configs" / "evaluation.yaml"
    assert load_config(str(path)) == EvalConfig()


def test_partial_override(tmp_path):
    path = tmp_path / "c.yaml"
    path.write_text("report:\n  max_workers: 4\nscoring:\n  recall: 50\n", encoding='utf-8')
    config = load_config(str(path))
    assert config.report.max_workers == 4
    assert config.scoring.recall == 50.0
    assert config.scoring.micro_f1 == 35.0


def test_empty_file(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding='utf-8')
    assert load_config(str(path)) == EvalConfig()


@pytest.mark.parametrize("raw", [
    {"unknown": {}},
    {"report": {"threads": 2}},
    {"report": {"max_workers": 0}},
    {"scoring": {"recall": -1}},
    {"safety": {"abstention_default": 150}},
    {"data": {"n_sets": "many"}},
    {"data": "not a mapping"},
])
def test_invalid(raw):
    with pytest.raises(ConfigError):
        config_from_dict(raw)


def test_config_error_is_value_error():
    assert issubclass(ConfigError, ValueError)


def test_malformed_yaml(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("report: [unclosed\n", encoding='utf-8')
    with pytest.raises(ConfigError):
        load_config(str(path))
