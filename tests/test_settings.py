import pytest

pytest.importorskip("tensorflow")

from core.settings import default_settings, load_settings


def test_missing_file_falls_back_to_defaults(tmp_path) -> None:
    assert load_settings(str(tmp_path / "absent.yaml")) == default_settings()


def test_values_are_merged_over_defaults(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("training:\n  early_stopping:\n    monitor: val_accuracy\n")

    settings = load_settings(str(path))

    assert settings['training']['early_stopping']['monitor'] == 'val_accuracy'
    assert settings['training']['early_stopping']['min_delta'] == 0.001
    assert settings['logging']['level'] == 'INFO'


def test_invalid_yaml_falls_back_to_defaults(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("training: [unclosed\n")
    assert load_settings(str(path)) == default_settings()


def test_repository_config_loads() -> None:
    settings = load_settings()
    assert settings['training']['overfitting_threshold'] == 0.1
    assert settings['training']['default_preset'] == 'neural-network'
