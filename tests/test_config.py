# Copyright (c) Syntropy Systems
"""Tests for settings loading."""

from pathlib import Path

import pytest
import yaml

from slsweep.config import (
    CONFIG_FILENAME,
    DEFAULT_COMPONENTS,
    SweepSettings,
    find_config_file,
    load_settings,
    write_settings,
)


class TestSettings:
    """Tests for SweepSettings."""

    def test_defaults(self) -> None:
        """Test the defaults describe the standard eight-learner sweep."""
        settings = SweepSettings()

        assert settings.master_seed == 612022
        assert settings.population_size == 5_000_000
        assert settings.components == list(DEFAULT_COMPONENTS)
        assert settings.backend == "process"
        assert settings.resolved_workers() >= 1

    def test_explicit_workers(self) -> None:
        """Test an explicit pool size wins over the core count."""
        assert SweepSettings(workers=3).resolved_workers() == 3

    @pytest.mark.parametrize(
        ("field", "value", "match"),
        [
            ("backend", "mpi", "Unknown backend"),
            ("workers", 0, "workers"),
            ("components", [], "component"),
            ("population_size", 0, "population_size"),
        ],
    )
    def test_validate(self, field: str, value: object, match: str) -> None:
        """Test unusable settings are refused."""
        settings = SweepSettings()
        setattr(settings, field, value)

        with pytest.raises(ValueError, match=match):
            settings.validate()


class TestLoading:
    """Tests for load_settings and write_settings."""

    def test_round_trip(self, temp_dir: Path) -> None:
        """Test written settings load back unchanged."""
        path = temp_dir / CONFIG_FILENAME
        original = SweepSettings(master_seed=1, components=["glm", "mean"], workers=2)

        write_settings(original, path)

        assert load_settings(path) == original

    def test_partial_file(self, temp_dir: Path) -> None:
        """Test keys missing from the file keep their defaults."""
        path = temp_dir / CONFIG_FILENAME
        _ = path.write_text(yaml.safe_dump({"backend": "thread", "population_size": 1e5}))

        settings = load_settings(path)

        assert settings.backend == "thread"
        assert settings.population_size == 100_000
        assert settings.master_seed == 612022

    def test_wrong_types_ignored(self, temp_dir: Path) -> None:
        """Test values of the wrong type fall back to defaults."""
        path = temp_dir / CONFIG_FILENAME
        _ = path.write_text(yaml.safe_dump({"workers": "many", "components": "glm"}))

        settings = load_settings(path)

        assert settings.workers is None
        assert settings.components == list(DEFAULT_COMPONENTS)

    def test_missing_explicit_path(self, temp_dir: Path) -> None:
        """Test an explicit path that does not exist is an error."""
        with pytest.raises(FileNotFoundError):
            _ = load_settings(temp_dir / "nope.yaml")

    def test_find_config_walks_up(self, temp_dir: Path) -> None:
        """Test the nearest slsweep.yaml is found from a subdirectory."""
        write_settings(SweepSettings(), temp_dir / CONFIG_FILENAME)
        nested = temp_dir / "a" / "b"
        nested.mkdir(parents=True)

        assert find_config_file(nested) == (temp_dir / CONFIG_FILENAME).resolve()
