"""
Chart Configuration Tests
=========================
Tests for pydantic validation and JSON/YAML loading of chart parameters.

Run with: python -m pytest tests/test_config_validation.py -v
"""

import json
import sys
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

sys.path.insert(0, str(Path(__file__).parent.parent))

from srewma.config_validation import (
    DEFAULT_MAX_CONDITION_NUMBER,
    ChartConfig,
    load_chart_config,
    validate_chart_config,
)


class TestChartConfig:

    def test_defaults(self):
        config = ChartConfig(lambda_param=0.1, control_limit=10.0)

        assert config.max_condition_number == DEFAULT_MAX_CONDITION_NUMBER
        assert config.tie_tolerance == 0.0
        assert config.compensated_summation is True
        assert config.min_recommended_reference == 20

    def test_lambda_alias(self):
        config = ChartConfig(**{'lambda': 0.25, 'control_limit': 8.0})
        assert config.lambda_param == 0.25

    @pytest.mark.parametrize("lam", [0.0, 1.0, -0.5, 2.0, float('nan')])
    def test_lambda_bounds(self, lam):
        with pytest.raises(ValidationError):
            ChartConfig(lambda_param=lam, control_limit=10.0)

    def test_control_limit_positive(self):
        with pytest.raises(ValidationError):
            ChartConfig(lambda_param=0.1, control_limit=0.0)

    def test_control_limit_finite(self):
        with pytest.raises(ValidationError):
            ChartConfig(lambda_param=0.1, control_limit=float('inf'))

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            ChartConfig(lambda_param=0.1, control_limit=10.0, ucl=12.0)

    def test_frozen(self):
        config = ChartConfig(lambda_param=0.1, control_limit=10.0)
        with pytest.raises(ValidationError):
            config.control_limit = 5.0

    def test_to_dict(self):
        d = ChartConfig(lambda_param=0.1, control_limit=10.0).to_dict()
        assert d['lambda_param'] == 0.1
        assert d['control_limit'] == 10.0


class TestValidateChartConfig:

    def test_valid(self):
        config = validate_chart_config({'lambda': 0.05, 'control_limit': 14.2})
        assert config.control_limit == 14.2

    def test_invalid_raises_value_error(self):
        with pytest.raises(ValueError, match="Configuration validation failed"):
            validate_chart_config({'lambda': 1.5, 'control_limit': 10.0})

    def test_missing_required(self):
        with pytest.raises(ValueError):
            validate_chart_config({'lambda': 0.1})


class TestLoadChartConfig:

    def test_json(self, tmp_path):
        path = tmp_path / "chart.json"
        path.write_text(json.dumps({'lambda': 0.1, 'control_limit': 10.0, 'tie_tolerance': 1e-12}))

        config = load_chart_config(path)

        assert config.lambda_param == 0.1
        assert config.tie_tolerance == 1e-12

    def test_yaml(self, tmp_path):
        path = tmp_path / "chart.yaml"
        path.write_text(yaml.safe_dump({
            'lambda': 0.2,
            'control_limit': 11.5,
            'max_condition_number': 1e10,
        }))

        config = load_chart_config(str(path))

        assert config.lambda_param == 0.2
        assert config.max_condition_number == 1e10

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_chart_config(tmp_path / "missing.json")

    def test_unsupported_suffix(self, tmp_path):
        path = tmp_path / "chart.toml"
        path.write_text("lambda = 0.1\n")

        with pytest.raises(ValueError, match="Unsupported config format"):
            load_chart_config(path)

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "chart.json"
        path.write_text("{lambda: 0.1")

        with pytest.raises(ValueError, match="Invalid JSON"):
            load_chart_config(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "chart.yml"
        path.write_text("- 0.1\n- 10.0\n")

        with pytest.raises(ValueError, match="must be a mapping"):
            load_chart_config(path)

    def test_invalid_values_in_file(self, tmp_path):
        path = tmp_path / "chart.json"
        path.write_text(json.dumps({'lambda': 0.1, 'control_limit': -3.0}))

        with pytest.raises(ValueError, match="Configuration validation failed"):
            load_chart_config(path)
