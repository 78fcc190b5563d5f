#!/usr/bin/env python3
"""
main.py – CLI entry point for the SeverusPT burn-severity pipeline.

Usage:
    python main.py --satellite Sentinel2 --lat 39.925 --lon -8.145 --radius 10
    python main.py --geometry fire.geojson --segment --segm-min-pix 50

The pipeline:
    1. Authenticate & initialise GEE
    2. Build pre- and post-fire NBR composites for the area
    3. Compute dNBR / RdNBR / RBR and the 5-class severity map
    4. Optionally remove speckle (segmentation)
    5. Export the four rasters as GeoTIFFs
    6. Generate interactive Folium map
    7. Print severity report
"""

import argparse
import json
import os
import sys

# Ensure project root is on the path so `import config` works
sys.path.insert(0, os.path.dirname(__file__))

import config
from src.gee_data import initialize_ee, create_aoi, to_geometry, export_geotiff
from src.satellites import get_profile
from src.severity import LAYERS, severity_pipeline, severity_tiles
from src.visualization import create_severity_map
from src.decision_support import compute_severity_statistics, generate_report


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        description="SeverusPT – burn severity mapping with Google Earth Engine",
    )
    p.add_argument("--satellite", default="Sentinel2", help="Satellite key or UI label (e.g. Sentinel2, Landsat-8/OLI)")
    p.add_argument("--lat", type=float, default=config.DEFAULT_LAT, help="Latitude of centre")
    p.add_argument("--lon", type=float, default=config.DEFAULT_LON, help="Longitude of centre")
    p.add_argument("--radius", type=float, default=config.DEFAULT_RADIUS_KM, help="Radius in km")
    p.add_argument("--geometry", default=None, help="GeoJSON file with the area (overrides lat/lon/radius)")
    p.add_argument("--pre-start", default=config.DEFAULT_PRE_START)
    p.add_argument("--pre-end", default=config.DEFAULT_PRE_END)
    p.add_argument("--post-start", default=config.DEFAULT_POST_START)
    p.add_argument("--post-end", default=config.DEFAULT_POST_END)
    p.add_argument("--segment", action="store_true", help="Remove speckle from the severity rasters")
    p.add_argument("--segm-kernel", type=int, default=None, help="Focal median radius (pixels)")
    p.add_argument("--segm-dnbr", type=float, default=None, help="Smoothed dNBR threshold")
    p.add_argument("--segm-cva", type=float, default=None, help="Change-vector magnitude threshold")
    p.add_argument("--segm-min-pix", type=int, default=None, help="Minimum patch size (pixels)")
    p.add_argument("--out", default=config.OUTPUT_DIR, help="Output directory")
    return p.parse_args(argv)


def load_geometry(path: str) -> dict:
    """GeoJSON geometry from a file holding a geometry, Feature or FeatureCollection."""
    with open(path, encoding="utf-8") as f:
        geojson = json.load(f)
    if geojson.get("type") == "FeatureCollection":
        if not geojson.get("features"):
            raise ValueError(f"{path} holds no features")
        geojson = geojson["features"][0]
    if geojson.get("type") == "Feature":
        geojson = geojson["geometry"]
    return geojson


def segmentation_overrides(args):
    if not args.segment:
        return None
    return {
        "kernel": args.segm_kernel,
        "dnbr": args.segm_dnbr,
        "cva": args.segm_cva,
        "minPix": args.segm_min_pix,
    }


def main(argv=None):
    args = parse_args(argv)
    profile = get_profile(args.satellite)

    print("=" * 60)
    print("  SEVERUSPT – BURN SEVERITY MAPPING  (dNBR / RdNBR / RBR)")
    print("=" * 60)
    print(f"  Satellite: {profile.key} ({profile.collection_id})")
    print(f"  Pre-fire:  {args.pre_start} → {args.pre_end}")
    print(f"  Post-fire: {args.post_start} → {args.post_end}")
    print(f"  Segmentation: {'on' if args.segment else 'off'}")
    print("=" * 60)

    # ── Phase 1: GEE Setup ──────────────────────────────────────────────
    print("\n▶ Phase 1 – GEE Initialisation")
    initialize_ee()
    if args.geometry:
        aoi_geojson = load_geometry(args.geometry)
        aoi = to_geometry(aoi_geojson)
        centre_lon, centre_lat = aoi.centroid(1).coordinates().getInfo()
    else:
        aoi = create_aoi(args.lat, args.lon, args.radius)
        aoi_geojson = aoi.getInfo()
        centre_lat, centre_lon = args.lat, args.lon

    # ── Phase 2: Severity Model ──────────────────────────────────────────
    print("\n▶ Phase 2 – Severity Model")
    result = severity_pipeline(
        profile,
        aoi,
        args.pre_start,
        args.pre_end,
        args.post_start,
        args.post_end,
        segmentation=segmentation_overrides(args),
    )

    # ── Phase 3: Export ─────────────────────────────────────────────────
    print("\n▶ Phase 3 – GeoTIFF Export")
    tifs = {}
    for name in LAYERS:
        tifs[name] = export_geotiff(
            result.layer(name), aoi, f"{name.lower()}.tif",
            scale=profile.pixel_scale, out_dir=args.out,
        )

    # ── Phase 4: Visualization ──────────────────────────────────────────
    print("\n▶ Phase 4 – Visualization")
    tiles = severity_tiles(result)
    map_path = create_severity_map(
        center_lat=centre_lat,
        center_lon=centre_lon,
        tiles=tiles,
        aoi_geojson=aoi_geojson,
        out_dir=args.out,
    )

    # ── Phase 5: Decision Support ───────────────────────────────────────
    print("\n▶ Phase 5 – Severity Report")
    stats = compute_severity_statistics(tifs["Severity"])
    generate_report(
        severity_stats=stats,
        params={
            "satellite": profile.key,
            "pre": [args.pre_start, args.pre_end],
            "post": [args.post_start, args.post_end],
            "geometry": args.geometry or {"lat": args.lat, "lon": args.lon, "radius_km": args.radius},
            "segmentation": segmentation_overrides(args),
        },
        tiles=tiles,
        out_dir=args.out,
    )

    print("\n" + "=" * 60)
    print("  ✅  Pipeline complete!")
    print(f"  📄  Severity GeoTIFF → {tifs['Severity']}")
    print(f"  🗺️   Interactive map  → {map_path}")
    print(f"  📊  Report          → {os.path.join(args.out, config.REPORT_JSON)}")
    print("=" * 60)


if __name__ == "__main__":
    main()
