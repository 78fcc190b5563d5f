"""
Burned Areas Module – ICNF and EFFIS fire perimeters as GeoJSON.
"""

import ee
import config


class UnsupportedDataset(ValueError):
    """Burned-area dataset is not ICNF or EFFIS."""


def _perimeters(dataset: str, year) -> ee.FeatureCollection:
    cfg = config.BURNED_AREA_DATASETS.get(dataset)
    if cfg is None:
        raise UnsupportedDataset(
            f"Invalid dataset {dataset!r} (expected one of {', '.join(config.BURNED_AREA_DATASETS)})"
        )
    return ee.FeatureCollection(cfg["asset"]).filter(ee.Filter.eq(cfg["year_field"], int(year)))


def fetch_burned_areas(dataset: str, year) -> dict:
    """All perimeters of one fire season as a GeoJSON FeatureCollection."""
    geojson = _perimeters(dataset, year).getInfo()
    print(f"[BURN] {dataset} {year}: {len(geojson.get('features', []))} perimeters")
    return geojson


def burned_area_at(dataset: str, year, lat: float, lon: float):
    """The first perimeter containing (lat, lon), or None."""
    point = ee.Geometry.Point([lon, lat])
    features = _perimeters(dataset, year).filterBounds(point).limit(1).getInfo().get("features", [])
    if not features:
        print(f"[BURN] No {dataset} {year} perimeter at ({lat}, {lon})")
        return None
    return features[0]
