from pathlib import Path

import pytest

from fwsvm.config import SolverConfig, load_config
from fwsvm.errors import ConfigurationError


def test_load_config_reads_solver_section(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
max_passes: 7
solver:
  lambda: 0.5
  max_passes: 20
  gap_threshold: 0.01
  gap_check_every: 2
  sampling: round_robin
  seed: 3
  weighted_averaging: true
""".strip(),
        encoding="utf-8",
    )

    cfg = load_config(str(config_path))

    assert cfg.lambda_ == 0.5
    assert cfg.max_passes == 20
    assert cfg.gap_threshold == 0.01
    assert cfg.gap_check_every == 2
    assert cfg.sampling == "round_robin"
    assert cfg.seed == 3
    assert cfg.weighted_averaging is True
    assert cfg.show_progress is False


def test_load_config_accepts_root_level_settings(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("lambda_: 0.2\ngap_threshold: null\n", encoding="utf-8")

    cfg = load_config(str(config_path))

    assert cfg.lambda_ == 0.2
    assert cfg.gap_threshold is None
    assert cfg.sampling == SolverConfig().sampling


def test_load_config_empty_file_uses_defaults(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("", encoding="utf-8")

    assert load_config(str(config_path)) == SolverConfig()


def test_load_config_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "missing.yaml"))


def test_load_config_rejects_non_dict_yaml(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("- not a mapping", encoding="utf-8")

    with pytest.raises(TypeError):
        load_config(str(config_path))


def test_load_config_reports_yaml_errors(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("solver: [unclosed", encoding="utf-8")

    with pytest.raises(ValueError):
        load_config(str(config_path))


@pytest.mark.parametrize(
    "body",
    ["lambda: 0", "lambda: -0.1", "sampling: shuffled", "gap_check_every: 0", "max_passes: -1"],
)
def test_load_config_rejects_invalid_values(tmp_path: Path, body: str) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(body, encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_config(str(config_path))
