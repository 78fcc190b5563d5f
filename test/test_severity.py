import math

import numpy as np
import pytest

import config
from conftest import FakeImage, constant
from src import severity
from src.severity import (
    LAYERS,
    SeverityResult,
    apply_segmentation,
    classify_severity,
    compute_severity,
    segmentation_params,
    severity_pipeline,
    summarize_class_areas,
)

# dNBR value → expected class, breakpoints included
CLASS_TABLE = [
    (-0.30, 1),
    (0.10, 1),
    (0.1001, 2),
    (0.27, 2),
    (0.30, 3),
    (0.44, 3),
    (0.50, 4),
    (0.66, 4),
    (0.67, 5),
    (1.20, 5),
]


@pytest.mark.parametrize("value, expected", CLASS_TABLE)
def test_single_pixel_classes(value, expected):
    classified = classify_severity(FakeImage({"dNBR": np.array([[value]])}))
    assert classified.values[0, 0] == expected


def test_image_classes_whole_table():
    values = np.array([[v for v, _ in CLASS_TABLE]])
    classified = classify_severity(FakeImage({"dNBR": values}))
    assert list(classified.bands) == ["Severity"]
    assert classified.values.tolist() == [[c for _, c in CLASS_TABLE]]


def test_indices_from_pre_and_post_nbr():
    result = compute_severity(constant(0.5, name="NBR"), constant(0.1, name="NBR"))
    assert list(result.delta.bands) == ["dNBR"]
    assert result.delta.values[0, 0] == pytest.approx(0.4)
    assert result.relativized.values[0, 0] == pytest.approx(0.4 / math.sqrt(0.5))
    assert result.burn_ratio.values[0, 0] == pytest.approx(0.4 / (0.5 + config.RBR_OFFSET))
    assert result.classified.values[0, 0] == 3


def test_rdnbr_uses_absolute_pre_value():
    result = compute_severity(constant(-0.25, name="NBR"), constant(-0.5, name="NBR"))
    assert result.relativized.values[0, 0] == pytest.approx(0.25 / 0.5)


def test_unknown_layer():
    result = SeverityResult("a", "b", "c", "d")
    assert [result.layer(name) for name in LAYERS] == ["a", "b", "c", "d"]
    with pytest.raises(ValueError, match="NDVI"):
        result.layer("NDVI")


# ── Segmentation ────────────────────────────────────────────────────────────

def test_segmentation_defaults_and_coercion():
    assert segmentation_params() == config.SEGMENTATION_DEFAULTS
    params = segmentation_params({"kernel": "5", "minPix": 20.0, "cva": "0.1", "dnbr": None})
    assert params == {"kernel": 5, "dnbr": 0.1, "cva": 0.1, "minPix": 20}


def test_segmentation_rejects_bad_parameters():
    with pytest.raises(ValueError, match="radius"):
        segmentation_params({"radius": 3})
    with pytest.raises(ValueError):
        segmentation_params({"minPix": 0})
    with pytest.raises(ValueError):
        segmentation_params({"kernel": "wide"})


@pytest.fixture
def burn_scene():
    """20×20 scene: a 10×10 burn scar plus a single burned speck."""
    pre = np.full((20, 20), 0.6)
    post = pre.copy()
    post[2:12, 2:12] = 0.1
    post[16, 16] = 0.1
    return FakeImage({"NBR": pre}), FakeImage({"NBR": post})


def test_segmentation_keeps_scar_and_drops_speck(fake_ee, burn_scene):
    pre, post = burn_scene
    result = compute_severity(pre, post)
    segmented = apply_segmentation(result, pre, post, {"kernel": 1, "minPix": 20})

    mask = segmented.classified.mask
    assert mask[2:12, 2:12].all()
    assert not mask[16, 16]
    assert mask.sum() == 100
    # all four layers share the mask
    for name in LAYERS:
        assert (segmented.layer(name).mask == mask).all()


def test_segmentation_drops_patches_below_min_size(fake_ee, burn_scene):
    pre, post = burn_scene
    result = compute_severity(pre, post)
    segmented = apply_segmentation(result, pre, post, {"kernel": 1, "minPix": 101})
    assert not segmented.delta.mask.any()


# ── Pipeline ────────────────────────────────────────────────────────────────

def test_pipeline_builds_nbr_composites(fake_ee, monkeypatch, burn_scene):
    pre, post = burn_scene
    calls = []

    def fake_composite(profile, index, geometry, start, end):
        calls.append((index, start, end))
        return pre if start == "2017-05-01" else post

    monkeypatch.setattr(severity, "build_index_collection", fake_composite)
    profile = object()

    plain = severity_pipeline(profile, "aoi", "2017-05-01", "2017-06-15", "2017-06-25", "2017-08-15")
    assert calls == [("NBR", "2017-05-01", "2017-06-15"), ("NBR", "2017-06-25", "2017-08-15")]
    assert plain.delta.mask.all()

    segmented = severity_pipeline(
        profile, "aoi", "2017-05-01", "2017-06-15", "2017-06-25", "2017-08-15",
        segmentation={"kernel": 1, "minPix": 20},
    )
    assert segmented.delta.mask.sum() == 100


def test_tiles_in_layer_order(monkeypatch):
    monkeypatch.setattr(severity, "get_tile_url", lambda image, vis: f"https://tiles/{image}/{vis['max']}")
    tiles = severity.severity_tiles(SeverityResult("d", "r", "b", "s"))
    assert [t["name"] for t in tiles] == list(LAYERS)
    assert tiles[0]["tileUrl"] == "https://tiles/d/0.85"
    assert tiles[3]["tileUrl"] == "https://tiles/s/5"


def test_class_area_summary():
    groups = [{"class": 3, "sum": 12.345}, {"class": 1, "sum": 100.0}, {"class": 5, "sum": 0.5}]
    summary = summarize_class_areas(groups)
    assert list(summary["areaHa"]) == ["1", "3", "5"]
    assert summary["areaHa"]["3"] == 12.35
    assert summary["totalAreaHa"] == pytest.approx(112.85)
    assert summary["maxClassTotal"] == 100.0
    assert summarize_class_areas([]) == {"areaHa": {}, "totalAreaHa": 0, "maxClassTotal": 0.0}
