from __future__ import annotations

import sys

import pytest

from hypolocator.settings import LocationPolicy, Settings, parse_args


def test_parse_args_defaults(monkeypatch) -> None:
    monkeypatch.setattr(sys, "argv", ["hypolocator", "event.json"])
    settings = parse_args()
    assert settings.input_path == "event.json"
    assert settings.output_path is None
    assert settings.log_level == "INFO"
    assert settings.max_iterations == 8
    assert settings.distance_taper == "linear"
    assert settings.rms_change_tolerance == 0.5
    assert settings.include_history is False


def test_parse_args_overrides(monkeypatch) -> None:
    monkeypatch.setattr(
        sys,
        "argv",
        [
            "hypolocator",
            "run.json",
            "--output",
            "out.json",
            "--log-level",
            "debug",
            "--max-iterations",
            "20",
            "--distance-taper",
            "cosine",
            "--rms-change-tolerance",
            "0.01",
            "--include-history",
        ],
    )
    settings = parse_args()
    assert settings.input_path == "run.json"
    assert settings.output_path == "out.json"
    assert settings.log_level == "DEBUG"
    assert settings.max_iterations == 20
    assert settings.distance_taper == "cosine"
    assert settings.rms_change_tolerance == 0.01
    assert settings.include_history is True


def test_parse_args_requires_input(monkeypatch) -> None:
    monkeypatch.setattr(sys, "argv", ["hypolocator"])
    with pytest.raises(SystemExit):
        parse_args()


def test_settings_policy_carries_overrides() -> None:
    policy = Settings(max_iterations=12, distance_taper="cosine", rms_change_tolerance=0.2).policy()
    assert policy.max_iterations == 12
    assert policy.distance_taper == "cosine"
    assert policy.rms_change_tolerance == 0.2
    assert policy.f_critical == 2.0
    assert policy.max_rms_increases == 5


def test_location_policy_validation() -> None:
    with pytest.raises(ValueError):
        LocationPolicy(max_iterations=0)
    with pytest.raises(ValueError):
        LocationPolicy(f_reduction=1.0)
    with pytest.raises(ValueError):
        LocationPolicy(distance_taper="gaussian")
    with pytest.raises(ValueError):
        LocationPolicy(trial_velocity=0.0)
