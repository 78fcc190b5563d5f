"""
Severity Model – dNBR / RdNBR / RBR and the 5-class burn severity map.

Model:
    dNBR  = NBR_pre - NBR_post
    RdNBR = dNBR / sqrt(|NBR_pre|)
    RBR   = dNBR / (NBR_pre + 1.001)

Classification is a step function of dNBR with breakpoints
config.SEVERITY_BREAKS; a value equal to a breakpoint stays in the lower class.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace

import ee
import config
from src.gee_data import get_tile_url
from src.indices import build_index_collection
from src.satellites import SatelliteProfile

LAYERS = ("dNBR", "RdNBR", "RBR", "Severity")


@dataclass(frozen=True)
class SeverityResult:
    delta: object          # dNBR
    relativized: object    # RdNBR
    burn_ratio: object     # RBR
    classified: object     # Severity, int16 classes 1..5

    def layers(self) -> dict:
        return {
            "dNBR": self.delta,
            "RdNBR": self.relativized,
            "RBR": self.burn_ratio,
            "Severity": self.classified,
        }

    def layer(self, name: str):
        try:
            return self.layers()[name]
        except KeyError:
            raise ValueError(
                f"Unknown layer {name!r} (expected one of {', '.join(LAYERS)})"
            ) from None

    def map(self, fn) -> "SeverityResult":
        """Apply the same image operation to all four rasters."""
        return replace(
            self,
            delta=fn(self.delta),
            relativized=fn(self.relativized),
            burn_ratio=fn(self.burn_ratio),
            classified=fn(self.classified),
        )


def classify_severity(delta, breaks: tuple = config.SEVERITY_BREAKS):
    """
    Reclassify dNBR into classes 1..len(breaks)+1.

    Conditions are applied lowest first and always test the original dNBR,
    so each pixel ends in the highest class whose interval contains it.
    """
    classified = delta.where(delta.lte(breaks[0]), 1)
    for cls, (lo, hi) in enumerate(zip(breaks, breaks[1:]), start=2):
        classified = classified.where(delta.gt(lo).And(delta.lte(hi)), cls)
    classified = classified.where(delta.gt(breaks[-1]), len(breaks) + 1)
    return classified.rename("Severity").toInt16()


def compute_severity(pre, post) -> SeverityResult:
    """
    Derive the four severity rasters from pre- and post-fire NBR composites.

    RdNBR is left undefined where NBR_pre is 0; those pixels are not masked.
    """
    delta = pre.subtract(post).rename("dNBR")
    relativized = delta.divide(pre.abs().sqrt()).rename("RdNBR")
    burn_ratio = delta.divide(pre.add(config.RBR_OFFSET)).rename("RBR")
    classified = classify_severity(delta)
    print("[SEV] dNBR, RdNBR, RBR and severity classes computed")
    return SeverityResult(delta, relativized, burn_ratio, classified)


# ── Segmentation ────────────────────────────────────────────────────────────

def segmentation_params(overrides: dict = None) -> dict:
    """Merge caller overrides onto the defaults, coercing types."""
    params = dict(config.SEGMENTATION_DEFAULTS)
    for key, value in (overrides or {}).items():
        if value is None:
            continue
        if key not in params:
            raise ValueError(f"Unknown segmentation parameter {key!r}")
        params[key] = int(value) if key in ("kernel", "minPix") else float(value)
    if params["kernel"] < 1 or params["minPix"] < 1:
        raise ValueError("Segmentation kernel and minPix must be at least 1")
    return params


def segmentation_mask(pre, post, delta, params: dict):
    """
    Keep pixels whose smoothed dNBR and change-vector magnitude both clear
    their thresholds and that belong to a patch of at least minPix pixels.
    """
    kernel = params["kernel"]
    delta_mask = delta.focalMedian(kernel).gte(params["dnbr"])

    change_vector = pre.subtract(post).pow(2).reduce(ee.Reducer.sum()).sqrt()
    cva_mask = change_vector.focalMedian(kernel).gte(params["cva"])

    candidates = delta_mask.And(cva_mask).selfMask()
    min_pix = params["minPix"]
    return candidates.connectedPixelCount(min_pix, True).gte(min_pix)


def apply_segmentation(result: SeverityResult, pre, post, overrides: dict = None) -> SeverityResult:
    params = segmentation_params(overrides)
    mask = segmentation_mask(pre, post, result.delta, params)
    print(f"[SEV] Segmentation applied – {params}")
    return result.map(lambda img: img.updateMask(mask))


def clip_result(result: SeverityResult, geometry) -> SeverityResult:
    return result.map(lambda img: img.clip(geometry))


# ── Pipeline ────────────────────────────────────────────────────────────────

def severity_pipeline(
    profile: SatelliteProfile,
    geometry,
    pre_start: str,
    pre_end: str,
    post_start: str,
    post_end: str,
    segmentation: dict = None,
) -> SeverityResult:
    """
    Pre/post NBR composites → severity rasters, optionally segmented,
    clipped to the query geometry.

    `segmentation` is None to skip the step, or a (possibly empty) dict of
    overrides for config.SEGMENTATION_DEFAULTS.
    """
    pre = build_index_collection(profile, "NBR", geometry, pre_start, pre_end)
    post = build_index_collection(profile, "NBR", geometry, post_start, post_end)

    result = compute_severity(pre, post)
    if segmentation is not None:
        result = apply_segmentation(result, pre, post, segmentation)
    return clip_result(result, geometry)


def severity_tiles(result: SeverityResult) -> list[dict]:
    """One tile URL per layer; the four requests are independent."""
    layers = result.layers()
    with ThreadPoolExecutor(max_workers=len(layers)) as pool:
        urls = pool.map(
            lambda name: get_tile_url(layers[name], config.SEVERITY_VIS[name]),
            LAYERS,
        )
        return [{"name": name, "tileUrl": url} for name, url in zip(LAYERS, urls)]


# ── Area statistics ─────────────────────────────────────────────────────────

def summarize_class_areas(groups: list[dict]) -> dict:
    """Turn grouped-reducer output into hectares per class."""
    area_ha = {}
    for group in sorted(groups, key=lambda g: g["class"]):
        area_ha[str(int(group["class"]))] = round(float(group["sum"]), 2)
    return {
        "areaHa": area_ha,
        "totalAreaHa": round(sum(area_ha.values()), 2),
        "maxClassTotal": max(area_ha.values(), default=0.0),
    }


def class_areas(classified, geometry, scale: int) -> dict:
    """Hectares per severity class inside the geometry."""
    stats = (
        ee.Image.pixelArea()
        .divide(10_000)
        .addBands(classified)
        .reduceRegion(
            reducer=ee.Reducer.sum().group(groupField=1, groupName="class"),
            geometry=geometry,
            scale=scale,
            maxPixels=config.MAX_PIXELS,
        )
        .getInfo()
    )
    summary = summarize_class_areas(stats.get("groups", []))
    print(f"[SEV] Class areas (ha): {summary['areaHa']}")
    return summary
