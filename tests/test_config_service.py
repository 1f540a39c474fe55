# ============================================================================
# CONFIG SERVICE TESTS
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Tests - YAML pool layout loading
# PURPOSE: Verify layouts load, validate and fail with readable errors
# CREATED: 19 OCT 2026
# ============================================================================
"""
Config Service Tests

Run with:
    pytest tests/test_config_service.py -v
"""

import pytest

from core.contracts import SchedulerKind
from core.errors import PoolConfigurationError
from services import ConfigService, load_cluster_config, parse_cluster_config


LAYOUT = """
scheduler: pbs
controller_url: http://login01:8000
default_pool: small
pools:
  - name: small
    max_workers: 2
    resources: {cpus: 1, memory_gb: 1}
  - name: big
    max_workers: 1
    min_workers: 1
    task_timeout_seconds: 7200
    resources:
      cpus: 8
      memory_gb: 100
      walltime: "24:00:00"
      modules: ["module load python/3.12"]
    script_lines:
      - "#PBS -l place=scatter"
"""


@pytest.fixture
def layout_file(tmp_path):
    path = tmp_path / "pools.yaml"
    path.write_text(LAYOUT)
    return path


class TestLoadClusterConfig:

    def test_pool_list(self, layout_file):
        config = load_cluster_config(layout_file)

        assert config.scheduler == SchedulerKind.PBS
        assert config.default_pool == "small"
        assert [p.name for p in config.pools] == ["small", "big"]

        big = config.get_pool("big")
        assert big.resource_spec.cpus == 8
        assert big.resource_spec.setup_lines == ("module load python/3.12",)
        assert big.script_lines == ("#PBS -l place=scatter",)
        assert big.task_timeout_seconds == 7200

    def test_pool_mapping(self):
        config = parse_cluster_config({
            "scheduler": "lsf",
            "pools": {
                "small": {"max_workers": 4},
                "gpu": {"resources": {"gpus": 2}},
                "tiny": None,
            },
        })
        assert [p.name for p in config.pools] == ["small", "gpu", "tiny"]
        assert config.get_pool("gpu").resource_spec.gpus == 2
        assert config.get_pool("tiny").max_workers == 1

    def test_missing_file(self, tmp_path):
        with pytest.raises(PoolConfigurationError, match="not found"):
            load_cluster_config(tmp_path / "nope.yaml")

    def test_bad_yaml(self, tmp_path):
        path = tmp_path / "pools.yaml"
        path.write_text("pools: [\n  - name: small\n   bad")
        with pytest.raises(PoolConfigurationError, match="could not parse"):
            load_cluster_config(path)

    def test_not_a_mapping(self):
        with pytest.raises(PoolConfigurationError, match="mapping"):
            parse_cluster_config(["small", "big"])

    def test_validation_errors_name_the_field(self):
        with pytest.raises(PoolConfigurationError) as exc_info:
            parse_cluster_config({
                "pools": [{"name": "big", "resources": {"walltime": "one day"}}],
            })
        message = str(exc_info.value)
        assert message.startswith("invalid cluster config: pools.0.")
        assert "walltime must be HH:MM:SS" in message

    def test_unknown_scheduler(self):
        with pytest.raises(PoolConfigurationError, match="scheduler"):
            parse_cluster_config({"scheduler": "htcondor", "pools": [{"name": "small"}]})

    def test_unknown_default_pool(self):
        with pytest.raises(PoolConfigurationError, match="default_pool"):
            parse_cluster_config({"default_pool": "gpu", "pools": [{"name": "small"}]})


class TestConfigService:

    def test_env_path(self, layout_file, monkeypatch):
        monkeypatch.setenv("POOL_CONFIG_PATH", str(layout_file))
        service = ConfigService()

        assert service.config_path == layout_file
        assert service.config.scheduler == SchedulerKind.PBS

    def test_explicit_path_wins(self, layout_file, monkeypatch, tmp_path):
        monkeypatch.setenv("POOL_CONFIG_PATH", str(tmp_path / "other.yaml"))
        assert ConfigService(layout_file).config_path == layout_file

    def test_cached(self, layout_file):
        service = ConfigService(layout_file)
        first = service.load()
        layout_file.write_text("not: [valid")
        assert service.load() is first
