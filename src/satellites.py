"""
Satellite Catalog – one profile per sensor, all per-sensor differences in one place.

Each profile names its image collection, reduction scale, the band pair
used for every spectral index, and optional cloud-mask / reflectance
rescale transforms. Nothing outside this module knows a band name.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional

import config


class UnsupportedSatellite(ValueError):
    """Satellite label has no catalog entry."""


class UnsupportedIndex(ValueError):
    """Spectral index is not one of config.INDICES."""


@dataclass(frozen=True)
class SatelliteProfile:
    key: str
    collection_id: str
    pixel_scale: int                                   # metres / pixel
    band_pairs: dict = field(default_factory=dict)     # index → (numerator, denominator)
    cloud_mask: Optional[Callable] = None
    reflectance_rescale: Optional[Callable] = None

    def bands_for(self, index: str) -> tuple:
        try:
            return self.band_pairs[index]
        except KeyError:
            raise UnsupportedIndex(
                f"Index {index!r} not available for {self.key} "
                f"(expected one of {', '.join(config.INDICES)})"
            ) from None


# ── Cloud masks ──────────────────────────────────────────────────────────────

def _bitmask(qa_band: str, *bits: int) -> Callable:
    """Mask pixels where any of the given QA bits is set."""
    def mask(img):
        qa = img.select(qa_band)
        keep = qa.bitwiseAnd(1 << bits[0]).eq(0)
        for bit in bits[1:]:
            keep = keep.And(qa.bitwiseAnd(1 << bit).eq(0))
        return img.updateMask(keep)
    mask.__name__ = f"mask_{qa_band.lower()}_{'_'.join(map(str, bits))}"
    return mask


mask_s2_clouds = _bitmask("QA60", 10, 11)              # opaque clouds, cirrus
mask_landsat_clouds = _bitmask("QA_PIXEL", 3, 4)       # cloud, cloud shadow
mask_hls_clouds = _bitmask("Fmask", 1, 2, 3)           # cloud, adjacent, shadow


# ── Reflectance rescales ─────────────────────────────────────────────────────

def scale_s2(img):
    return img.divide(10_000)


def scale_landsat_l2(img):
    """Collection 2 Level-2 surface reflectance scale factors."""
    return img.multiply(0.0000275).add(-0.2)


def scale_modis(img):
    return img.multiply(0.0001)


# ── Catalog ──────────────────────────────────────────────────────────────────

_LANDSAT_TM_BANDS = {"NDVI": ("SR_B4", "SR_B3"), "NBR": ("SR_B4", "SR_B7")}

SATELLITES = {
    "Sentinel2": SatelliteProfile(
        key="Sentinel2",
        collection_id="COPERNICUS/S2_SR_HARMONIZED",
        pixel_scale=20,
        band_pairs={"NDVI": ("B8", "B4"), "NBR": ("B8", "B12")},
        cloud_mask=mask_s2_clouds,
        reflectance_rescale=scale_s2,
    ),
    "Landsat5": SatelliteProfile(
        key="Landsat5",
        collection_id="LANDSAT/LT05/C02/T1_L2",
        pixel_scale=30,
        band_pairs=_LANDSAT_TM_BANDS,
        cloud_mask=mask_landsat_clouds,
        reflectance_rescale=scale_landsat_l2,
    ),
    "Landsat7": SatelliteProfile(
        key="Landsat7",
        collection_id="LANDSAT/LE07/C02/T1_L2",
        pixel_scale=30,
        band_pairs=_LANDSAT_TM_BANDS,
        cloud_mask=mask_landsat_clouds,
        reflectance_rescale=scale_landsat_l2,
    ),
    "Landsat8": SatelliteProfile(
        key="Landsat8",
        collection_id="LANDSAT/LC08/C02/T1_L2",
        pixel_scale=30,
        band_pairs={"NDVI": ("SR_B5", "SR_B4"), "NBR": ("SR_B5", "SR_B7")},
        cloud_mask=mask_landsat_clouds,
        reflectance_rescale=scale_landsat_l2,
    ),
    # TOA product is already reflectance
    "Landsat9": SatelliteProfile(
        key="Landsat9",
        collection_id="LANDSAT/LC09/C02/T1_TOA",
        pixel_scale=30,
        band_pairs={"NDVI": ("B5", "B4"), "NBR": ("B5", "B7")},
        cloud_mask=mask_landsat_clouds,
    ),
    "HLS": SatelliteProfile(
        key="HLS",
        collection_id="NASA/HLS/HLSL30/v002",
        pixel_scale=30,
        band_pairs={"NDVI": ("B5", "B4"), "NBR": ("B5", "B7")},
        cloud_mask=mask_hls_clouds,
    ),
    "MODIS": SatelliteProfile(
        key="MODIS",
        collection_id="MODIS/061/MOD09A1",
        pixel_scale=500,
        band_pairs={
            "NDVI": ("sur_refl_b02", "sur_refl_b01"),
            "NBR": ("sur_refl_b02", "sur_refl_b07"),
        },
        reflectance_rescale=scale_modis,
    ),
}

# UI-facing labels → catalog keys
LABEL_ALIASES = {
    "Landsat-9/OLI": "Landsat9",
    "Landsat-8/OLI": "Landsat8",
    "Landsat-7/ETM": "Landsat7",
    "Landsat-5/TM": "Landsat5",
    "Sentinel-2/MSI": "Sentinel2",
    "Terra/MODIS": "MODIS",
    "HLS (Harmon. Landsat / Sentinel)": "HLS",
}


def normalize_satellite_label(label: str) -> str:
    """Map a UI label to its catalog key; unknown labels pass through."""
    return LABEL_ALIASES.get(label, label)


def get_profile(label: str) -> SatelliteProfile:
    """Look up a satellite by UI label or catalog key."""
    key = normalize_satellite_label(label)
    profile = SATELLITES.get(key)
    if profile is None:
        raise UnsupportedSatellite(f"Satellite not supported: {label}")
    return profile


def validate_index(index: str) -> str:
    if index not in config.INDICES:
        raise UnsupportedIndex(
            f"Unknown index {index!r} (expected one of {', '.join(config.INDICES)})"
        )
    return index


def validate_catalog(satellites: dict = None) -> None:
    """Every profile must define a positive scale and a band pair per index."""
    satellites = SATELLITES if satellites is None else satellites
    for key, profile in satellites.items():
        if profile.key != key:
            raise ValueError(f"Catalog key {key!r} does not match profile key {profile.key!r}")
        if profile.pixel_scale <= 0:
            raise ValueError(f"{key}: pixel scale must be positive, got {profile.pixel_scale}")
        for index in config.INDICES:
            pair = profile.band_pairs.get(index)
            if pair is None or len(pair) != 2:
                raise ValueError(f"{key}: missing band pair for {index}")
    for label, key in LABEL_ALIASES.items():
        if key not in satellites:
            raise ValueError(f"Label {label!r} maps to unknown satellite {key!r}")


validate_catalog()
