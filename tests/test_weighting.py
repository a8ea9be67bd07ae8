import numpy as np
import pytest

from hypolocator.weighting import (
    JEFFREYS_FACTORS,
    azimuthal_weights,
    distance_weight,
    magnitude_weight,
    normalize,
    observation_weights,
    quality_weight,
    residual_weights,
)


def test_quality_weight() -> None:
    assert quality_weight(0) == 1.0
    assert quality_weight(1) == 0.75
    assert quality_weight(2) == 0.5
    assert quality_weight(4) == 0.0
    assert quality_weight(0, excluded=True) == 0.0
    with pytest.raises(ValueError):
        quality_weight(5)


def test_magnitude_weight_counts_usable_readings_equally() -> None:
    assert magnitude_weight(0) == 1.0
    assert magnitude_weight(3) == 1.0
    assert magnitude_weight(4) == 0.0
    assert magnitude_weight(1, excluded=True) == 0.0


@pytest.mark.parametrize("taper", ["linear", "cosine"])
def test_distance_weight_is_bounded_and_non_increasing(taper: str) -> None:
    distances = np.linspace(0.0, 150.0, 301)

    weights = distance_weight(distances, 50.0, 100.0, taper)

    assert np.all(weights >= 0.0)
    assert np.all(weights <= 1.0)
    assert np.all(np.diff(weights) <= 1e-12)
    assert np.all(weights[distances <= 50.0] == 1.0)
    assert np.all(weights[distances >= 100.0] == 0.0)


def test_distance_weight_linear_midpoint() -> None:
    assert distance_weight(75.0, 50.0, 100.0) == pytest.approx(0.5)
    assert distance_weight(75.0, 50.0, 100.0, "cosine") == pytest.approx(0.5)
    assert distance_weight(20.0, 50.0, 100.0) == 1.0


def test_distance_weight_rejects_bad_arguments() -> None:
    with pytest.raises(ValueError):
        distance_weight(10.0, 100.0, 50.0)
    with pytest.raises(ValueError):
        distance_weight(10.0, 50.0, 100.0, "gaussian")


def test_observation_weights_drop_tiny_products() -> None:
    reading = [1.0, 1.0, 0.5]
    distances = [10.0, 99.9, 75.0]

    untapered = observation_weights(reading, distances, 50.0, 100.0, apply_taper=False)
    tapered = observation_weights(reading, distances, 50.0, 100.0, apply_taper=True)

    assert untapered.tolist() == [1.0, 1.0, 0.5]
    assert tapered[0] == 1.0
    assert tapered[1] == 0.0
    assert tapered[2] == pytest.approx(0.25)


def test_normalize_rescales_non_zero_weights_to_unit_mean() -> None:
    weights = normalize(np.array([2.0, 0.0, 1.0]))
    assert weights.tolist() == pytest.approx([4.0 / 3.0, 0.0, 2.0 / 3.0])
    assert normalize(np.zeros(3)).tolist() == [0.0, 0.0, 0.0]


def test_azimuthal_weights_share_total_between_occupied_quadrants() -> None:
    weights = np.ones(4)
    azimuths = np.array([10.0, 20.0, 30.0, 200.0])

    out = azimuthal_weights(weights, azimuths)

    assert out.sum() == pytest.approx(4.0)
    assert out.tolist() == pytest.approx([4.0 / 3.0, 2.0 / 3.0, 2.0 / 3.0, 4.0 / 3.0])


def test_azimuthal_weights_leave_zero_weights_alone() -> None:
    weights = np.array([1.0, 0.0, 1.0, 1.0, 1.0])
    azimuths = np.array([0.0, 45.0, 90.0, 180.0, 270.0])

    out = azimuthal_weights(weights, azimuths)

    assert out[1] == 0.0
    assert out.sum() == pytest.approx(4.0)


def test_residual_weights_down_weight_outliers() -> None:
    weights = np.ones(5)
    residuals = np.array([0.0, 0.0, 0.1, -0.1, 5.0])

    out, large = residual_weights(weights, residuals, mean=0.0, spread=1.0)

    assert out[0] == pytest.approx(JEFFREYS_FACTORS[0])
    assert out[2] == pytest.approx(JEFFREYS_FACTORS[1])
    assert out[4] == 0.0
    assert large.tolist() == [False, False, False, False, True]


def test_residual_weights_with_zero_spread() -> None:
    out, large = residual_weights(np.array([1.0, 0.0]), np.array([0.2, 0.2]), mean=0.2, spread=0.0)
    assert out.tolist() == pytest.approx([JEFFREYS_FACTORS[0], 0.0])
    assert not large.any()
