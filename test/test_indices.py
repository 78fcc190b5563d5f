from datetime import date

import numpy as np
import pytest

from conftest import FakeCollection, FakeImage
from src.indices import (
    NoImagesInRange,
    build_index_collection,
    deltas_from_baseline,
    rolling_windows,
    severity_trajectory,
    to_index_image,
)
from src.satellites import get_profile

S2 = get_profile("Sentinel2")


def s2_image(day, b8, b12, qa=0):
    shape = (2, 2)
    return FakeImage(
        {
            "B4": np.full(shape, 500.0),
            "B8": np.full(shape, float(b8)),
            "B12": np.full(shape, float(b12)),
            "QA60": np.full(shape, float(qa)),
        },
        properties={"system:time_start": day, "CLOUDY_PIXEL_PERCENTAGE": 3},
    )


def test_index_image_is_masked_rescaled_and_keeps_time(fake_ee):
    img = to_index_image(s2_image("2017-05-10", 3000, 1000), S2, "NBR")
    assert list(img.bands) == ["NBR"]
    assert img.values == pytest.approx(np.full((2, 2), 0.5))
    assert img.properties == {"system:time_start": "2017-05-10"}


def test_cloudy_pixels_are_masked_before_the_index(fake_ee):
    img = to_index_image(s2_image("2017-05-10", 3000, 1000, qa=1 << 10), S2, "NBR")
    assert not img.mask.any()


def test_median_composite_over_window(fake_ee):
    fake_ee[S2.collection_id] = FakeCollection([
        s2_image("2017-05-02", 3000, 1000),   # NBR 0.5
        s2_image("2017-05-20", 3000, 1500),   # NBR 1/3
        s2_image("2017-07-01", 1000, 3000),   # outside the window
    ])
    composite = build_index_collection(S2, "NBR", None, "2017-05-01", "2017-06-15")
    assert list(composite.bands) == ["NBR"]
    assert composite.values == pytest.approx(np.full((2, 2), (0.5 + 1 / 3) / 2))


def test_empty_window_raises(fake_ee):
    fake_ee[S2.collection_id] = FakeCollection([s2_image("2017-05-02", 3000, 1000)])
    with pytest.raises(NoImagesInRange, match="Sentinel2"):
        build_index_collection(S2, "NBR", None, "2018-01-01", "2018-02-01")


def test_rolling_windows_include_pre_fire_window():
    windows = rolling_windows("2024-01-31", 10, today=date(2024, 2, 20))
    assert windows == [
        ("2024-01-21", "2024-01-31"),
        ("2024-01-31", "2024-02-10"),
        ("2024-02-10", "2024-02-20"),
    ]


def test_rolling_windows_drop_trailing_partial_window():
    assert len(rolling_windows("2024-01-31", 10, today=date(2024, 2, 19))) == 2


def test_rolling_windows_reject_non_positive_size():
    with pytest.raises(ValueError):
        rolling_windows("2024-01-31", 0)


def test_deltas_against_first_window():
    deltas = deltas_from_baseline([0.5, 0.3, None, 0.45])
    assert deltas[0] == 0
    assert deltas[1] == pytest.approx(-0.2)
    assert deltas[2] is None
    assert deltas[3] == pytest.approx(-0.05)
    assert deltas_from_baseline([]) == []
    assert deltas_from_baseline([None, 0.2]) == [None, None]


def test_trajectory_needs_one_complete_window():
    with pytest.raises(ValueError, match="no complete window"):
        severity_trajectory(S2, "NBR", None, "2024-03-01", 10, today=date(2024, 2, 20))
