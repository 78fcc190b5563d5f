"""
Decision Support Module – Severity statistics and situation-report generation.
"""

import os
import json
import math

import numpy as np
import rasterio

import config


def _pixel_area_m2(src) -> float:
    """Pixel area in m², converting degrees for geographic rasters."""
    if src.crs is not None and src.crs.is_geographic:
        bounds = src.bounds
        mid_lat = (bounds.bottom + bounds.top) / 2
        deg_to_m_lat = 111_320  # metres per degree latitude
        deg_to_m_lon = 111_320 * math.cos(math.radians(mid_lat))
        return abs(src.transform.a) * deg_to_m_lon * abs(src.transform.e) * deg_to_m_lat
    return abs(src.transform.a * src.transform.e)


def compute_severity_statistics(severity_tif_path: str) -> dict:
    """
    Pixel counts, percentages and hectares per severity class (1–5)
    from a classified GeoTIFF. Nodata and out-of-range pixels are ignored.
    """
    with rasterio.open(severity_tif_path) as src:
        band = src.read(1, masked=True)
        pixel_area_m2 = _pixel_area_m2(src)

    values = band.compressed()
    n_classes = len(config.SEVERITY_BREAKS) + 1
    valid = values[(values >= 1) & (values <= n_classes)].astype(np.int64)
    total = len(valid)
    if total == 0:
        return {"error": "No valid pixels"}

    counts = np.bincount(valid, minlength=n_classes + 1)

    classes = {}
    for cls in range(1, n_classes + 1):
        count = int(counts[cls])
        classes[str(cls)] = {
            "label": config.SEVERITY_LABELS[cls],
            "pixels": count,
            "pct": round(count / total * 100, 1),
            "area_ha": round(count * pixel_area_m2 / 1e4, 2),
        }

    burned = total - int(counts[1])
    stats = {
        "total_pixels": int(total),
        "pixel_area_m2": float(pixel_area_m2),
        "total_area_ha": round(total * pixel_area_m2 / 1e4, 2),
        "burned_area_ha": round(burned * pixel_area_m2 / 1e4, 2),
        "classes": classes,
        "dominant_class": int(np.argmax(counts[1:]) + 1),
    }
    print("[DSS] Severity stats – " + ", ".join(
        f"{c}: {v['pct']}%" for c, v in classes.items()
    ))
    return stats


def generate_report(
    severity_stats: dict,
    params: dict = None,
    tiles: list[dict] = None,
    out_dir: str = config.OUTPUT_DIR,
) -> dict:
    """
    Generate a structured analytical report (JSON) with a plain-text summary.
    """
    report = {
        "title": "Burn Severity Situation Report",
        "parameters": params or {},
        "severity_statistics": severity_stats,
        "tile_layers": tiles or [],
    }

    lines = [
        "═══ BURN SEVERITY REPORT (dNBR) ═══",
        "",
        f"Analysis area: {severity_stats.get('total_area_ha', 'N/A')} ha",
        f"Burned area (class ≥ 2): {severity_stats.get('burned_area_ha', 'N/A')} ha",
        "",
    ]
    for cls, entry in severity_stats.get("classes", {}).items():
        lines.append(f"• {cls} {entry['label']:<22s} {entry['pct']:5.1f}%  ({entry['area_ha']} ha)")

    dominant = severity_stats.get("dominant_class")
    if dominant:
        lines += ["", f"Dominant class: {dominant} ({config.SEVERITY_LABELS[dominant]})"]

    report["summary_text"] = "\n".join(lines)

    os.makedirs(out_dir, exist_ok=True)
    out_path = os.path.join(out_dir, config.REPORT_JSON)
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(report, f, indent=2, default=str, ensure_ascii=False)
    print(f"[DSS] Report saved → {out_path}")

    print()
    print(report["summary_text"])
    return report
