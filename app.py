#!/usr/bin/env python3
"""
app.py – Flask API for the SeverusPT burn-severity explorer.

Endpoints:
    POST /api/gee/severity-maps    → dNBR / RdNBR / RBR / Severity tile URLs
    POST /api/gee/severity         → rolling-window index deltas since a fire
    POST /api/gee/timeseries       → per-image regional mean of NDVI / NBR
    POST /api/gee/download         → GeoTIFF of one severity layer (streamed)
    POST /api/gee/severity-stats   → hectares per severity class
    POST /api/gee/image-list       → image ids in the pre / post windows
    POST /api/gee/composite-image  → index composite tiles over Portugal
    POST /api/gee/burned-areas     → ICNF / EFFIS perimeters for a year
    POST /api/gee/mapper           → perimeter containing a point
    POST /api/chat                 → RAG chatbot reply (always 200)
    GET  /api/rag/status           → corpus readiness + statistics
    POST /api/rag/init             → re-embed the document corpus
"""

import math
import threading
import traceback
from datetime import datetime
from functools import wraps

import ee
import requests
from flask import Flask, Response, jsonify, request, stream_with_context

import config
from src.burned_areas import burned_area_at, fetch_burned_areas
from src.chat import ChatOrchestrator, validate_messages
from src.documents import DocumentStore, save_cache
from src.embeddings import create_document_embeddings
from src.gee_data import get_download_url, to_geometry
from src.indices import NoImagesInRange, composite_tile, list_images, severity_trajectory, time_series
from src.loaders import load_documents_from_folder
from src.satellites import get_profile, validate_index
from src.severity import LAYERS, class_areas, segmentation_params, severity_pipeline, severity_tiles

app = Flask(__name__)

document_store = DocumentStore(config.EMBEDDINGS_CACHE)
chat_bot = ChatOrchestrator(document_store)

# GEE initialised flag
_gee_ready = False
_gee_lock = threading.Lock()


def _ensure_gee():
    """Lazy-init GEE once."""
    global _gee_ready
    if not _gee_ready:
        with _gee_lock:
            if not _gee_ready:
                from src.gee_data import initialize_ee
                initialize_ee()
                _gee_ready = True


def _sanitize_for_json(obj):
    """Recursively replace NaN / inf floats with None for JSON."""
    if isinstance(obj, dict):
        return {k: _sanitize_for_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_sanitize_for_json(i) for i in obj]
    if isinstance(obj, float) and (math.isnan(obj) or math.isinf(obj)):
        return None
    return obj


# ── Request parsing ─────────────────────────────────────────────────────────


class RequestError(ValueError):
    """Missing or malformed request parameters."""


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise RequestError("Request body must be a JSON object")
    return data


def _require(data: dict, *fields):
    missing = [f for f in fields if data.get(f) in (None, "", [], {})]
    if missing:
        raise RequestError(f"Missing parameters: {', '.join(missing)}")


def _date(data: dict, field: str) -> str:
    """Canonical YYYY-MM-DD form of a date field (unpadded input is accepted)."""
    value = data.get(field)
    try:
        parsed = datetime.strptime(str(value), "%Y-%m-%d").date()
    except ValueError:
        raise RequestError(f"{field} must be a YYYY-MM-DD date, got {value!r}") from None
    return parsed.isoformat()


def _date_range(data: dict, start_field: str, end_field: str) -> tuple[str, str]:
    # ISO strings order like the dates they spell
    start, end = _date(data, start_field), _date(data, end_field)
    if start >= end:
        raise RequestError(f"{start_field} ({start}) must be before {end_field} ({end})")
    return start, end


GEOMETRY_TYPES = (
    "Point", "MultiPoint", "LineString", "MultiLineString",
    "Polygon", "MultiPolygon", "GeometryCollection",
)


def _geometry_payload(data: dict):
    """
    GeoJSON geometry (a Feature is unwrapped), or the legacy `region`
    ring of [lon, lat] pairs.
    """
    geometry = data.get("geometry", data.get("region"))
    if isinstance(geometry, list) and len(geometry) >= 4:
        return geometry
    if isinstance(geometry, dict) and geometry.get("type") == "Feature":
        geometry = geometry.get("geometry")
    if isinstance(geometry, dict) and geometry.get("type") in GEOMETRY_TYPES:
        members = "geometries" if geometry["type"] == "GeometryCollection" else "coordinates"
        if isinstance(geometry.get(members), list) and geometry[members]:
            return geometry
    raise RequestError("geometry must be a GeoJSON geometry or a ring of [lon, lat] pairs")


def _ee_geometry(payload):
    """ee.Geometry from a validated payload; bad coordinates are a client error."""
    try:
        return to_geometry(payload)
    except ee.EEException as e:
        raise RequestError(f"Invalid geometry: {e}") from None


def _flag(value) -> bool:
    """JSON booleans, or the strings "true" / "false"."""
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return value is True


def _number(data: dict, field: str, cast=float):
    try:
        return cast(data.get(field))
    except (TypeError, ValueError):
        raise RequestError(f"{field} must be a number, got {data.get(field)!r}") from None


def _segmentation(data: dict):
    """None when segmentation is off, otherwise validated parameter overrides."""
    if not _flag(data.get("applySegmentation")):
        return None
    overrides = {
        "kernel": data.get("segmKernel"),
        "dnbr": data.get("segmDnbrThresh"),
        "cva": data.get("segmCvaThresh"),
        "minPix": data.get("segmMinPix"),
    }
    nested = data.get("segmentationParams", data.get("segmParams")) or {}
    if not isinstance(nested, dict):
        raise RequestError("segmentationParams must be an object")
    overrides.update(nested)
    try:
        return segmentation_params(overrides)
    except (TypeError, ValueError) as e:
        raise RequestError(f"Invalid segmentation parameters: {e}") from None


def _severity_request(data: dict) -> dict:
    _require(data, "satellite", "preStart", "preEnd", "postStart", "postEnd")
    pre_start, pre_end = _date_range(data, "preStart", "preEnd")
    post_start, post_end = _date_range(data, "postStart", "postEnd")
    return {
        "profile": get_profile(data["satellite"]),
        "geometry": _geometry_payload(data),
        "pre_start": pre_start,
        "pre_end": pre_end,
        "post_start": post_start,
        "post_end": post_end,
        "segmentation": _segmentation(data),
    }


def _run_severity(params: dict):
    _ensure_gee()
    geometry = _ee_geometry(params["geometry"])
    result = severity_pipeline(
        params["profile"],
        geometry,
        params["pre_start"],
        params["pre_end"],
        params["post_start"],
        params["post_end"],
        segmentation=params["segmentation"],
    )
    return result, geometry


def gee_route(fn):
    """
    Map pipeline failures onto HTTP statuses:
    empty imagery → 404, bad input / configuration → 400, anything else → 500.
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except NoImagesInRange as e:
            print(f"[API] {request.path}: {e}")
            return jsonify({"error": str(e)}), 404
        except ValueError as e:
            print(f"[API] {request.path}: bad request – {e}")
            return jsonify({"error": str(e)}), 400
        except Exception:
            traceback.print_exc()
            return jsonify({"error": "Server error"}), 500
    return wrapper


# ── Geospatial routes ───────────────────────────────────────────────────────


@app.route("/api/gee/severity-maps", methods=["POST"])
@gee_route
def severity_maps():
    """
    Accepts JSON: { geometry, satellite, preStart, preEnd, postStart, postEnd,
                    applySegmentation?, segmentationParams? }
    Returns: { maps: [{ name, tileUrl }] } for dNBR, RdNBR, RBR, Severity.
    """
    params = _severity_request(_json_body())
    result, _ = _run_severity(params)
    return jsonify({"maps": severity_tiles(result)})


@app.route("/api/gee/severity-stats", methods=["POST"])
@gee_route
def severity_stats():
    params = _severity_request(_json_body())
    result, geometry = _run_severity(params)
    return jsonify(class_areas(result.classified, geometry, params["profile"].pixel_scale))


@app.route("/api/gee/severity", methods=["POST"])
@gee_route
def severity():
    """
    Accepts JSON: { satellite, index, fireDate, windowSize, geometry }
    Returns: { data: { days, deltas } }
    """
    data = _json_body()
    _require(data, "satellite", "index", "fireDate", "windowSize", "geometry")
    profile = get_profile(data["satellite"])
    index = validate_index(data["index"])
    fire_date = _date(data, "fireDate")
    window = _number(data, "windowSize", int)
    geometry_payload = _geometry_payload(data)

    _ensure_gee()
    trajectory = severity_trajectory(profile, index, _ee_geometry(geometry_payload), fire_date, window)
    return jsonify({"data": _sanitize_for_json(trajectory)})


@app.route("/api/gee/timeseries", methods=["POST"])
@gee_route
def timeseries():
    """
    Accepts JSON: { satellite, index, startDate, endDate, geometry }
    Returns: { data: [{ date, value }] }
    """
    data = _json_body()
    _require(data, "satellite", "index", "startDate", "endDate", "geometry")
    profile = get_profile(data["satellite"])
    index = validate_index(data["index"])
    start, end = _date_range(data, "startDate", "endDate")
    geometry_payload = _geometry_payload(data)

    _ensure_gee()
    points = time_series(profile, index, _ee_geometry(geometry_payload), start, end)
    return jsonify({"data": _sanitize_for_json(points)})


@app.route("/api/gee/download", methods=["POST"])
@gee_route
def download():
    """
    Accepts JSON: severity-maps parameters + { type: dNBR | RdNBR | RBR | Severity }
    Returns: the GeoTIFF, streamed as an attachment.
    """
    data = _json_body()
    _require(data, "type")
    kind = data["type"]
    if kind not in LAYERS:
        raise RequestError(f"type must be one of {', '.join(LAYERS)}")
    params = _severity_request(data)

    result, geometry = _run_severity(params)
    stamp = datetime.now().strftime("%Y%m%d%H%M%S")
    url = get_download_url(result.layer(kind), geometry, params["profile"].pixel_scale, f"{kind}_{stamp}")

    upstream = requests.get(url, stream=True, timeout=300)
    if not upstream.ok:
        print(f"[API] Earth Engine download error {upstream.status_code}: {upstream.text[:500]}")
        return Response("Earth Engine error", status=502)

    print(f"[API] Streaming {kind} GeoTIFF")
    return Response(
        stream_with_context(upstream.iter_content(chunk_size=64 * 1024)),
        headers={
            "Content-Type": "image/tiff",
            "Content-Disposition": f'attachment; filename="{kind.lower()}_{stamp}.tif"',
        },
    )


@app.route("/api/gee/image-list", methods=["POST"])
@gee_route
def image_list():
    params = _severity_request(_json_body())
    _ensure_gee()
    ids = list_images(
        params["profile"],
        _ee_geometry(params["geometry"]),
        params["pre_start"],
        params["pre_end"],
        params["post_start"],
        params["post_end"],
    )
    return jsonify(ids)


@app.route("/api/gee/composite-image", methods=["POST"])
@gee_route
def composite_image():
    """
    Accepts JSON: { satellite, index, startDate, endDate }
    Returns: { tileUrl } of the mean composite over mainland Portugal.
    """
    data = _json_body()
    _require(data, "satellite", "index", "startDate", "endDate")
    profile = get_profile(data["satellite"])
    index = validate_index(data["index"])
    start, end = _date_range(data, "startDate", "endDate")

    _ensure_gee()
    return jsonify({"tileUrl": composite_tile(profile, index, start, end)})


@app.route("/api/gee/burned-areas", methods=["POST"])
@gee_route
def burned_areas():
    """Accepts JSON: { dataset: ICNF | EFFIS, year }. Returns GeoJSON."""
    data = _json_body()
    _require(data, "dataset", "year")
    year = _number(data, "year", int)
    if data["dataset"] not in config.BURNED_AREA_DATASETS:
        raise RequestError(f"Invalid dataset: {data['dataset']}")

    _ensure_gee()
    return jsonify(fetch_burned_areas(data["dataset"], year))


@app.route("/api/gee/mapper", methods=["POST"])
@gee_route
def mapper():
    """Accepts JSON: { lat, lon, dataset, year }. Returns the perimeter at the point."""
    data = _json_body()
    _require(data, "lat", "lon", "dataset", "year")
    lat, lon = _number(data, "lat"), _number(data, "lon")
    year = _number(data, "year", int)
    if data["dataset"] not in config.BURNED_AREA_DATASETS:
        raise RequestError(f"Invalid dataset: {data['dataset']}")

    _ensure_gee()
    feature = burned_area_at(data["dataset"], year, lat, lon)
    if feature is None:
        return jsonify({"error": "No burned area found at this location"}), 404
    return jsonify(feature)


# ── Chat & RAG routes ───────────────────────────────────────────────────────


@app.route("/api/chat", methods=["POST"])
def chat():
    """
    Accepts JSON: { messages: [{ role, content }, ...] }
    Returns: { reply, context }. Upstream failures still answer 200.
    """
    data = request.get_json(silent=True) or {}
    try:
        validate_messages(data.get("messages"))
    except ValueError as e:
        return jsonify({"error": "Invalid user message", "details": str(e)}), 400

    try:
        reply = chat_bot.answer(data["messages"])
        return jsonify(reply.to_dict())
    except Exception:
        traceback.print_exc()
        return jsonify({"reply": config.CHAT_APOLOGY, "context": config.CONTEXT_UNAVAILABLE})


@app.route("/api/rag/status")
def rag_status():
    try:
        status = document_store.readiness()
    except Exception as e:
        traceback.print_exc()
        return jsonify({"ready": False, "message": "Internal server error", "error": str(e)}), 500
    status["timestamp"] = datetime.now().isoformat()
    return jsonify(status)


@app.route("/api/rag/init", methods=["POST"])
def rag_init():
    """Re-embed the source folder (or the cached corpus) and reload the store."""
    print("[RAG] Starting embedding generation...")
    try:
        docs = load_documents_from_folder(config.RAG_DOCS_DIR) or list(document_store.documents())
        if not docs:
            return jsonify({"success": False, "error": "No documents to embed"}), 400

        embedded = create_document_embeddings(docs)
        save_cache(embedded, document_store.cache_path)
        document_store.refresh()
    except Exception as e:
        traceback.print_exc()
        return jsonify({
            "success": False,
            "error": "Failed to generate embeddings",
            "details": str(e),
        }), 500

    message = f"Embeddings generated for {len(embedded)} chunks"
    print(f"[RAG] {message}")
    return jsonify({"success": True, "message": message, "documentsCount": len(embedded)})


if __name__ == "__main__":
    print("🔥 SeverusPT API starting...")
    print(f"   Listening on http://localhost:{config.PORT}")
    app.run(debug=False, port=config.PORT, threaded=True)
