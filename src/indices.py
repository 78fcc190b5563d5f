"""
Index Compositor – cloud-masked, rescaled, median-composited spectral indices.

Everything here builds lazy Earth Engine expressions. The only round-trips
are the empty-collection check and the final getInfo() of each helper that
returns plain Python data.
"""

from datetime import date, datetime, timedelta

import ee
import config
from src.gee_data import get_tile_url
from src.satellites import SatelliteProfile, validate_index


class NoImagesInRange(ValueError):
    """The filtered collection for a date window is empty."""


def _parse_date(value: str) -> date:
    return datetime.strptime(value, "%Y-%m-%d").date()


def to_index_image(img, profile: SatelliteProfile, index: str):
    """
    Mask → rescale → normalised difference, keeping the acquisition time.

    The QA band is read before rescaling so bit tests see raw values.
    """
    source = img
    if profile.cloud_mask is not None:
        img = profile.cloud_mask(img)
    if profile.reflectance_rescale is not None:
        img = profile.reflectance_rescale(img)
    numerator, denominator = profile.bands_for(index)
    nd = img.normalizedDifference([numerator, denominator]).rename(index)
    return ee.Image(nd.copyProperties(source, ["system:time_start"]))


def index_collection(
    profile: SatelliteProfile,
    index: str,
    geometry,
    date_start: str = None,
    date_end: str = None,
):
    """Per-image index collection, filtered by bounds and (optionally) dates."""
    validate_index(index)
    col = ee.ImageCollection(profile.collection_id).filterBounds(geometry)
    if date_start and date_end:
        col = col.filterDate(date_start, date_end)
    return col.map(lambda img: to_index_image(img, profile, index)).select(index)


def build_index_collection(
    profile: SatelliteProfile,
    index: str,
    geometry,
    date_start: str,
    date_end: str,
):
    """
    Median composite of one index over a date window.

    Raises NoImagesInRange when the window holds no imagery, so callers can
    answer with a 4xx instead of handing back an empty raster.
    """
    col = index_collection(profile, index, geometry, date_start, date_end)
    count = col.size().getInfo()
    if count == 0:
        raise NoImagesInRange(
            f"No {profile.key} images between {date_start} and {date_end}"
        )
    print(f"[IDX] {profile.key} {index}: {count} images in {date_start} → {date_end}")
    return col.median().rename(index)


# ── Time series ─────────────────────────────────────────────────────────────

def time_series(
    profile: SatelliteProfile,
    index: str,
    geometry,
    date_start: str,
    date_end: str,
) -> list[dict]:
    """Regional mean of the index for every image in the window, by date."""
    col = index_collection(profile, index, geometry, date_start, date_end).sort("system:time_start")
    scale = profile.pixel_scale

    def _point(img):
        mean = img.reduceRegion(
            reducer=ee.Reducer.mean(),
            geometry=geometry,
            scale=scale,
            maxPixels=config.MAX_PIXELS,
        ).get(index)
        return ee.Feature(None, {
            "date": img.date().format("YYYY-MM-dd'T'HH:mm:ss"),
            "value": mean,
        })

    info = ee.FeatureCollection(col.map(_point)).getInfo()
    points = [
        {"date": f["properties"]["date"], "value": f["properties"].get("value")}
        for f in info.get("features", [])
    ]
    print(f"[IDX] Time series: {len(points)} points ({profile.key} {index})")
    return points


# ── Severity trajectory ─────────────────────────────────────────────────────

def rolling_windows(fire_date: str, window_days: int, today: date = None) -> list[tuple[str, str]]:
    """
    Consecutive windows of `window_days` starting one window before the fire.

    Window edges run from fire_date - window_days up to `today` (inclusive
    when it falls exactly on an edge); a trailing partial window is dropped.
    """
    if window_days <= 0:
        raise ValueError(f"windowSize must be positive, got {window_days}")
    start = _parse_date(fire_date) - timedelta(days=window_days)
    end = today or date.today()
    step = timedelta(days=window_days)

    edges = []
    edge = start
    while edge <= end:
        edges.append(edge)
        edge += step
    return [(a.isoformat(), b.isoformat()) for a, b in zip(edges, edges[1:])]


def deltas_from_baseline(values: list) -> list:
    """Differences against the first window; None where either side is missing."""
    if not values:
        return []
    base = values[0]
    return [v - base if v is not None and base is not None else None for v in values]


def severity_trajectory(
    profile: SatelliteProfile,
    index: str,
    geometry,
    fire_date: str,
    window_days: int,
    today: date = None,
) -> dict:
    """
    Median index per rolling window since the fire, as deltas vs. the
    pre-fire window. days[i] = (i + 1) * window_days.
    """
    windows = rolling_windows(fire_date, window_days, today)
    if not windows:
        raise ValueError(f"fireDate {fire_date} leaves no complete window before today")

    col = index_collection(profile, index, geometry)
    scale = profile.pixel_scale

    medians = []
    for ini, fin in windows:
        window = col.filterDate(ini, fin)
        value = window.median().reduceRegion(
            reducer=ee.Reducer.median(),
            geometry=geometry,
            scale=scale,
            maxPixels=config.MAX_PIXELS,
        ).get(index)
        medians.append(ee.Algorithms.If(window.size().gt(0), value, None))

    values = ee.List(medians).getInfo()
    deltas = deltas_from_baseline(values)
    days = [(i + 1) * window_days for i in range(len(deltas))]
    print(f"[IDX] Trajectory: {len(windows)} windows of {window_days} days from {windows[0][0]}")
    return {"days": days, "deltas": deltas}


# ── Image listing & index composites ────────────────────────────────────────

def list_images(
    profile: SatelliteProfile,
    geometry,
    pre_start: str,
    pre_end: str,
    post_start: str,
    post_end: str,
) -> dict:
    """Distinct system:index ids of the raw images in the pre and post windows."""
    col = ee.ImageCollection(profile.collection_id).filterBounds(geometry)
    ids = ee.Dictionary({
        "preImageIds": col.filterDate(pre_start, pre_end).aggregate_array("system:index").distinct(),
        "postImageIds": col.filterDate(post_start, post_end).aggregate_array("system:index").distinct(),
    }).getInfo()
    print(f"[IDX] {profile.key}: {len(ids['preImageIds'])} pre / {len(ids['postImageIds'])} post images")
    return ids


def composite_tile(profile: SatelliteProfile, index: str, date_start: str, date_end: str) -> str:
    """Tile URL of the mean index composite over mainland Portugal."""
    roi = ee.Geometry.Polygon([config.PORTUGAL_ROI])
    col = index_collection(profile, index, roi, date_start, date_end)
    if col.size().getInfo() == 0:
        raise NoImagesInRange(
            f"No {profile.key} images between {date_start} and {date_end}"
        )

    if index == "NDVI" and profile.key == "MODIS":
        vis = config.INDEX_VIS["NDVI_MODIS"]
    else:
        vis = config.INDEX_VIS[index]
    return get_tile_url(col.mean().clip(roi), vis)
