"""
GEE Data Module – Authentication, geometry helpers, tiles and downloads.
"""

import os

import ee
import config


def initialize_ee(project_id: str = config.GEE_PROJECT_ID) -> None:
    """Initialise Earth Engine with the service account, or interactively."""
    if config.GEE_SERVICE_ACCOUNT and config.GEE_PRIVATE_KEY:
        credentials = ee.ServiceAccountCredentials(
            config.GEE_SERVICE_ACCOUNT, key_data=config.GEE_PRIVATE_KEY
        )
        ee.Initialize(credentials, project=project_id)
        print(f"[GEE] Initialised with service account for project: {project_id}")
        return

    try:
        ee.Initialize(project=project_id)
    except Exception:
        ee.Authenticate()
        ee.Initialize(project=project_id)
    print(f"[GEE] Initialised with project: {project_id}")


def create_aoi(lat: float, lon: float, radius_km: float) -> ee.Geometry:
    """Return a circular AOI geometry centred on (lat, lon)."""
    point = ee.Geometry.Point([lon, lat])
    aoi = point.buffer(radius_km * 1000)
    print(f"[GEE] AOI created – centre ({lat}, {lon}), radius {radius_km} km")
    return aoi


def to_geometry(geojson) -> ee.Geometry:
    """
    Build an ee.Geometry from a GeoJSON geometry, Feature or bare ring.

    A bare ring is a list of [lon, lat] pairs (the legacy download payload).
    """
    if isinstance(geojson, list):
        return ee.Geometry.Polygon([geojson])
    if geojson.get("type") == "Feature":
        geojson = geojson["geometry"]
    return ee.Geometry(geojson)


# ── Evaluation boundary ─────────────────────────────────────────────────────

def get_tile_url(image: ee.Image, vis: dict) -> str:
    """Register a visualised image with the tile service, return its XYZ URL."""
    map_id = image.getMapId(vis)
    url = map_id["tile_fetcher"].url_format
    print(f"[GEE] Tile layer ready ({vis.get('min')}..{vis.get('max')})")
    return url


def get_download_url(image: ee.Image, region, scale: int, name: str) -> str:
    """Signed GeoTIFF download URL for a single multi-band file."""
    return image.getDownloadURL({
        "name": name,
        "scale": scale,
        "crs": config.CRS,
        "region": region,
        "format": "GEO_TIFF",
        "filePerBand": False,
    })


def export_geotiff(
    image: ee.Image,
    aoi: ee.Geometry,
    filename: str,
    scale: int = config.DEFAULT_SCALE,
    out_dir: str = config.OUTPUT_DIR,
) -> str:
    """
    Export an EE image to a local GeoTIFF via geemap.
    Returns the output file path.
    """
    import geemap

    os.makedirs(out_dir, exist_ok=True)
    out_path = os.path.join(out_dir, filename)

    geemap.ee_export_image(
        image,
        filename=out_path,
        scale=scale,
        region=aoi,
        crs=config.CRS,
        file_per_band=False,
    )
    print(f"[EXPORT] GeoTIFF saved → {out_path}")
    return out_path
