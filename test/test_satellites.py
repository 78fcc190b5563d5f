import dataclasses

import numpy as np
import pytest

import config
from conftest import FakeImage
from src.satellites import (
    LABEL_ALIASES,
    SATELLITES,
    SatelliteProfile,
    UnsupportedIndex,
    UnsupportedSatellite,
    get_profile,
    mask_hls_clouds,
    mask_landsat_clouds,
    mask_s2_clouds,
    normalize_satellite_label,
    scale_landsat_l2,
    validate_catalog,
    validate_index,
)


def test_every_profile_has_a_band_pair_per_index():
    for profile in SATELLITES.values():
        for index in config.INDICES:
            assert len(profile.bands_for(index)) == 2


def test_ui_labels_resolve_to_catalog_keys():
    for label, key in LABEL_ALIASES.items():
        assert get_profile(label).key == key
    assert get_profile("Landsat8").collection_id == "LANDSAT/LC08/C02/T1_L2"


def test_unknown_label_passes_through_and_fails_lookup():
    assert normalize_satellite_label("Pleiades") == "Pleiades"
    with pytest.raises(UnsupportedSatellite):
        get_profile("Pleiades")


def test_scales_per_sensor():
    assert get_profile("Sentinel2").pixel_scale == 20
    assert get_profile("MODIS").pixel_scale == 500
    assert get_profile("Landsat9").reflectance_rescale is None
    assert get_profile("MODIS").cloud_mask is None


def test_validate_index():
    assert validate_index("NBR") == "NBR"
    with pytest.raises(UnsupportedIndex):
        validate_index("EVI")


def test_catalog_validation_rejects_missing_band_pair():
    broken = dataclasses.replace(SATELLITES["Landsat8"], band_pairs={"NDVI": ("SR_B5", "SR_B4")})
    with pytest.raises(ValueError, match="NBR"):
        validate_catalog({**SATELLITES, "Landsat8": broken})


def test_catalog_validation_rejects_bad_scale():
    broken = SatelliteProfile(key="X", collection_id="X", pixel_scale=0,
                              band_pairs={"NDVI": ("a", "b"), "NBR": ("a", "c")})
    with pytest.raises(ValueError, match="scale"):
        validate_catalog({**SATELLITES, "X": broken})


def test_s2_mask_drops_opaque_and_cirrus_pixels():
    qa = np.array([[0, 1 << 10, 1 << 11, 1 << 5]])
    img = FakeImage({"B8": np.ones((1, 4)), "QA60": qa})
    assert mask_s2_clouds(img).mask.tolist() == [[True, False, False, True]]


def test_landsat_mask_drops_cloud_and_shadow():
    qa = np.array([[1 << 3, 1 << 4, 1 << 1, 0]])
    img = FakeImage({"SR_B5": np.ones((1, 4)), "QA_PIXEL": qa})
    assert mask_landsat_clouds(img).mask.tolist() == [[False, False, True, True]]


def test_hls_mask_uses_fmask_bits_1_to_3():
    fmask = np.array([[1, 2, 4, 8, 16]])
    img = FakeImage({"B5": np.ones((1, 5)), "Fmask": fmask})
    assert mask_hls_clouds(img).mask.tolist() == [[True, False, False, False, True]]


def test_landsat_l2_rescale():
    img = FakeImage({"SR_B5": np.array([[10_000.0]])})
    assert scale_landsat_l2(img).values[0, 0] == pytest.approx(10_000 * 0.0000275 - 0.2)
