"""
Tests for pydantic configuration and YAML loading.
"""

import pytest
from pydantic import ValidationError

from combotree.core.config import Config, SimulationArgs, config, load_config
from combotree.core.errors import SchemaError


class TestConfig:
    def test_defaults(self):
        cfg = Config()
        schema = cfg.dimension_schema()
        assert [d.key for d in schema.dimensions] == ["env", "platform", "action"]
        assert schema.leaf_count == 12
        assert cfg.concurrency_limit == 2
        assert cfg.progress_file is None

    def test_global_singleton(self):
        assert isinstance(config, Config)

    def test_negative_concurrency_rejected(self):
        with pytest.raises(ValidationError):
            Config(concurrency_limit=-1)

    def test_unknown_keys_ignored(self):
        cfg = Config.model_validate({"concurrency_limit": 4, "theme": "dark"})
        assert cfg.concurrency_limit == 4

    def test_bad_dimensions_raise_schema_error(self):
        cfg = Config.model_validate({"dimensions": [{"name": "Env", "key": "env", "values": []}]})
        with pytest.raises(SchemaError):
            cfg.dimension_schema()


class TestSimulationArgs:
    def test_delay_order(self):
        with pytest.raises(ValidationError):
            SimulationArgs(min_delay=2.0, max_delay=1.0)

    def test_pass_rate_bounds(self):
        with pytest.raises(ValidationError):
            SimulationArgs(pass_rate=1.5)


class TestLoadConfig:
    def test_load_yaml(self, tmp_path):
        path = tmp_path / "combotree.yaml"
        path.write_text(
            "dimensions:\n"
            "  - {name: Browser, key: browser, values: [chrome, firefox]}\n"
            "  - {name: OS, key: os, values: [linux, mac, windows]}\n"
            "result_dimensions:\n"
            "  - {name: Backend, key: backend}\n"
            "concurrency_limit: 0\n"
            "simulation:\n"
            "  pass_rate: 0.5\n"
            "  seed: 3\n"
        )
        cfg = load_config(path)
        schema = cfg.dimension_schema()
        assert schema.leaf_count == 6
        assert schema.effective_result_keys() == ["backend"]
        assert cfg.concurrency_limit == 0
        assert cfg.simulation.seed == 3
        assert cfg.simulation.max_delay == 2.0

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "combotree.yaml"
        path.write_text("")
        assert load_config(path).concurrency_limit == 2

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")
