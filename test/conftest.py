"""
Shared fixtures: a numpy-backed stand-in for the slice of the Earth Engine
image API the severity and index code uses, so the raster math can be
checked pixel by pixel without credentials.
"""

import os
import sys
from types import SimpleNamespace

import numpy as np
import pytest
from scipy import ndimage

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))


class FakeNumber:
    def __init__(self, value):
        self.value = value

    def getInfo(self):
        return self.value


class FakeImage:
    """Multi-band raster: ordered {band: 2-D array} plus one validity mask."""

    def __init__(self, bands, mask=None, properties=None):
        if not isinstance(bands, dict):
            bands = {"constant": bands}
        self.bands = {k: np.asarray(v, dtype=float) for k, v in bands.items()}
        shape = next(iter(self.bands.values())).shape
        self.mask = np.ones(shape, dtype=bool) if mask is None else np.asarray(mask, dtype=bool)
        self.properties = dict(properties or {})

    # helpers
    @property
    def values(self):
        """First band as a plain array."""
        return next(iter(self.bands.values()))

    def _new(self, bands, mask=None):
        return FakeImage(bands, self.mask if mask is None else mask)

    def _unary(self, fn):
        with np.errstate(all="ignore"):
            return self._new({k: fn(v) for k, v in self.bands.items()})

    def _binary(self, other, fn):
        if isinstance(other, FakeImage):
            others = list(other.bands.values())
            if len(others) == 1:
                others = others * len(self.bands)
            mask = self.mask & other.mask
        else:
            others = [other] * len(self.bands)
            mask = self.mask
        with np.errstate(all="ignore"):
            bands = {k: fn(v, o) for (k, v), o in zip(self.bands.items(), others)}
        return self._new(bands, mask)

    # arithmetic
    def add(self, other):
        return self._binary(other, np.add)

    def subtract(self, other):
        return self._binary(other, np.subtract)

    def multiply(self, other):
        return self._binary(other, np.multiply)

    def divide(self, other):
        return self._binary(other, np.divide)

    def pow(self, other):
        return self._binary(other, np.power)

    def abs(self):
        return self._unary(np.abs)

    def sqrt(self):
        return self._unary(np.sqrt)

    # comparisons & logic
    def gt(self, other):
        return self._binary(other, lambda a, b: (a > b).astype(float))

    def gte(self, other):
        return self._binary(other, lambda a, b: (a >= b).astype(float))

    def lt(self, other):
        return self._binary(other, lambda a, b: (a < b).astype(float))

    def lte(self, other):
        return self._binary(other, lambda a, b: (a <= b).astype(float))

    def eq(self, other):
        return self._binary(other, lambda a, b: (a == b).astype(float))

    def And(self, other):
        return self._binary(other, lambda a, b: ((a != 0) & (b != 0)).astype(float))

    def Or(self, other):
        return self._binary(other, lambda a, b: ((a != 0) | (b != 0)).astype(float))

    def bitwiseAnd(self, value):
        return self._unary(lambda a: (a.astype(np.int64) & value).astype(float))

    # band handling
    def select(self, names):
        names = [names] if isinstance(names, str) else list(names)
        return self._new({n: self.bands[n] for n in names})

    def rename(self, *names):
        if len(names) == 1 and isinstance(names[0], (list, tuple)):
            names = names[0]
        return self._new(dict(zip(names, self.bands.values())))

    def normalizedDifference(self, pair):
        a, b = self.bands[pair[0]], self.bands[pair[1]]
        with np.errstate(all="ignore"):
            return self._new({"nd": (a - b) / (a + b)})

    def reduce(self, reducer):
        assert reducer == "sum"
        return self._new({"sum": np.sum(list(self.bands.values()), axis=0)})

    def toInt16(self):
        return self._unary(lambda a: np.where(np.isfinite(a), a, 0).astype(np.int16).astype(float))

    def where(self, test, value):
        cond = test.values != 0
        if isinstance(value, FakeImage):
            value = value.values
        return self._new({k: np.where(cond, value, v) for k, v in self.bands.items()})

    # masks & geometry
    def updateMask(self, mask_image):
        return self._new(self.bands, self.mask & mask_image.mask & (mask_image.values != 0))

    def selfMask(self):
        return self._new(self.bands, self.mask & (self.values != 0))

    def clip(self, geometry):
        return self

    def copyProperties(self, source, names=None):
        props = dict(self.properties)
        for key, value in source.properties.items():
            if names is None or key in names:
                props[key] = value
        return FakeImage(self.bands, self.mask, props)

    # neighbourhood ops
    def focalMedian(self, radius):
        y, x = np.ogrid[-radius:radius + 1, -radius:radius + 1]
        disk = x * x + y * y <= radius * radius
        return self._unary(lambda a: ndimage.median_filter(a, footprint=disk, mode="nearest"))

    def connectedPixelCount(self, max_size, eight_connected=True):
        structure = np.ones((3, 3)) if eight_connected else None
        labels, _ = ndimage.label((self.values != 0) & self.mask, structure=structure)
        sizes = np.bincount(labels.ravel())
        counts = np.where(labels > 0, np.minimum(sizes[labels], max_size), 0)
        return self._new({"count": counts.astype(float)})


class FakeCollection:
    """Image list; each image carries its acquisition date in system:time_start."""

    def __init__(self, images):
        self.images = list(images)

    def filterBounds(self, geometry):
        return self

    def filterDate(self, start, end):
        return FakeCollection(
            i for i in self.images if start <= i.properties["system:time_start"] < end
        )

    def map(self, fn):
        return FakeCollection(fn(i) for i in self.images)

    def select(self, names):
        return self.map(lambda i: i.select(names))

    def size(self):
        return FakeNumber(len(self.images))

    def _stack(self, reducer):
        first = self.images[0]
        bands = {}
        for name in first.bands:
            layers = np.stack([np.where(i.mask, i.bands[name], np.nan) for i in self.images])
            with np.errstate(all="ignore"):
                bands[name] = reducer(layers, axis=0)
        valid = np.any([i.mask for i in self.images], axis=0)
        return FakeImage(bands, valid)

    def median(self):
        return self._stack(np.nanmedian)

    def mean(self):
        return self._stack(np.nanmean)


def make_fake_ee(collections=None):
    """Namespace standing in for the `ee` module inside src.indices / src.severity."""
    collections = {} if collections is None else collections
    return SimpleNamespace(
        Image=lambda image: image,
        ImageCollection=lambda collection_id: collections[collection_id],
        Reducer=SimpleNamespace(sum=lambda: "sum"),
    )


@pytest.fixture
def fake_ee(monkeypatch):
    """Patch `ee` in the image modules; returns the registry of collections."""
    import src.indices
    import src.severity

    collections = {}
    fake = make_fake_ee(collections)
    monkeypatch.setattr(src.indices, "ee", fake)
    monkeypatch.setattr(src.severity, "ee", fake)
    return collections


def constant(value, shape=(3, 3), name="constant"):
    return FakeImage({name: np.full(shape, value, dtype=float)})


class KeywordEmbedder:
    """Deterministic embedder: one axis per keyword, counts occurrences."""

    def __init__(self, keywords=("fogo", "chuva", "solo")):
        self.keywords = keywords
        self.calls = []

    def embed(self, text):
        self.calls.append(text)
        lowered = text.lower()
        return [float(lowered.count(k)) for k in self.keywords]


@pytest.fixture
def embedder():
    return KeywordEmbedder()
