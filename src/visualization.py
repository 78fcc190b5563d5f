"""
Visualization Module – Interactive Folium/Leaflet severity map.
"""

import os

import folium
from folium.plugins import MiniMap

import config


def create_severity_map(
    center_lat: float,
    center_lon: float,
    tiles: list[dict],
    aoi_geojson: dict = None,
    out_dir: str = config.OUTPUT_DIR,
) -> str:
    """
    Build a Folium map with:
      1. One Earth Engine tile layer per severity raster (Severity shown)
      2. The analysis area outline
      3. A severity class legend
    Saves to output/ and returns the file path.
    """
    m = folium.Map(
        location=[center_lat, center_lon],
        zoom_start=12,
        tiles="CartoDB positron",
    )

    for layer in tiles:
        folium.TileLayer(
            tiles=layer["tileUrl"],
            attr="Google Earth Engine",
            name=layer["name"],
            overlay=True,
            control=True,
            show=layer["name"] == "Severity",
        ).add_to(m)

    if aoi_geojson:
        folium.GeoJson(
            aoi_geojson,
            name="Analysis area",
            style_function=lambda _: {"color": "#212121", "weight": 2, "fillOpacity": 0},
        ).add_to(m)

    _add_legend(m)

    MiniMap(toggle_display=True).add_to(m)
    folium.LayerControl().add_to(m)

    os.makedirs(out_dir, exist_ok=True)
    out_path = os.path.join(out_dir, config.SEVERITY_MAP_HTML)
    m.save(out_path)
    print(f"[VIS] Map saved → {out_path}")
    return out_path


def _add_legend(m: folium.Map):
    rows = "".join(
        f'<div><span style="display:inline-block;width:12px;height:12px;'
        f'background:#{colour};margin-right:6px"></span>{cls} – {config.SEVERITY_LABELS[cls]}</div>'
        for cls, colour in enumerate(config.SEVERITY_PALETTE, start=1)
    )
    html = (
        '<div style="position:fixed;bottom:30px;left:30px;z-index:9999;background:white;'
        'padding:8px 10px;border-radius:4px;font-size:12px;box-shadow:0 1px 4px #0004">'
        f"<b>Burn severity (dNBR)</b>{rows}</div>"
    )
    m.get_root().html.add_child(folium.Element(html))
