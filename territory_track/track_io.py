"""Load recorded tracks (CSV or GPX) as location samples for replay."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import pandas as pd
from defusedxml import DefusedXmlException
from defusedxml import ElementTree as ET

from .errors import TrackFormatError
from .models import LocationSample
from .utils import parse_iso_datetime

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Accuracy assumed when a track carries none.
DEFAULT_ACCURACY_M = 5.0
# Approximate horizontal error per unit of HDOP.
HDOP_TO_METERS = 5.0

_CSV_ALIASES: Dict[str, Iterable[str]] = {
    "latitude": ("latitude", "lat"),
    "longitude": ("longitude", "lon", "lng", "long"),
    "timestamp": ("timestamp", "time", "datetime", "recorded_at"),
    "accuracy": ("accuracy", "accuracy_m", "horizontal_accuracy", "hacc"),
}


def load_track(path: PathLike) -> List[LocationSample]:
    """Return the samples of a ``.csv`` or ``.gpx`` track ordered by time.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        TrackFormatError: If the file type is unsupported or its content is
            malformed.
    """

    track_path = Path(path)
    if not track_path.is_file():
        raise FileNotFoundError(f"Track not found: {track_path}")
    suffix = track_path.suffix.lower()
    if suffix == ".csv":
        samples = _load_csv(track_path)
    elif suffix == ".gpx":
        samples = _load_gpx(track_path)
    else:
        raise TrackFormatError(f"Unsupported track type '{suffix}' (use .csv or .gpx)")
    if not samples:
        raise TrackFormatError(f"Track {track_path.name} contains no usable points")
    samples.sort(key=lambda s: s.timestamp)
    LOGGER.info("Loaded %d samples from %s", len(samples), track_path)
    return samples


def _resolve_columns(columns: Iterable[str]) -> Dict[str, Optional[str]]:
    lookup = {str(c).strip().lower(): c for c in columns}
    resolved: Dict[str, Optional[str]] = {}
    for canonical, aliases in _CSV_ALIASES.items():
        resolved[canonical] = next((lookup[a] for a in aliases if a in lookup), None)
    return resolved


def _load_csv(path: Path) -> List[LocationSample]:
    try:
        df = pd.read_csv(path)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as exc:
        raise TrackFormatError(f"Cannot parse CSV track {path.name}: {exc}") from exc

    columns = _resolve_columns(df.columns)
    missing = [name for name in ("latitude", "longitude", "timestamp") if columns[name] is None]
    if missing:
        raise TrackFormatError(
            f"Missing columns in {path.name}: {', '.join(missing)}. Present: {list(df.columns)}"
        )

    frame = pd.DataFrame(
        {
            "latitude": pd.to_numeric(df[columns["latitude"]], errors="coerce"),
            "longitude": pd.to_numeric(df[columns["longitude"]], errors="coerce"),
            "timestamp": pd.to_datetime(df[columns["timestamp"]], utc=True, errors="coerce"),
        }
    )
    if columns["accuracy"] is not None:
        frame["accuracy"] = pd.to_numeric(df[columns["accuracy"]], errors="coerce").fillna(
            DEFAULT_ACCURACY_M
        )
    else:
        frame["accuracy"] = DEFAULT_ACCURACY_M

    before = len(frame)
    frame = frame.dropna(subset=["latitude", "longitude", "timestamp"])
    dropped = before - len(frame)
    if dropped:
        LOGGER.warning("Skipped %d malformed rows in %s", dropped, path.name)

    return [
        LocationSample(
            latitude=float(row.latitude),
            longitude=float(row.longitude),
            timestamp=row.timestamp.to_pydatetime(),
            accuracy_m=float(row.accuracy),
        )
        for row in frame.itertuples(index=False)
    ]


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child_text(element, name: str) -> Optional[str]:
    for child in element:
        if _local_name(child.tag) == name:
            return (child.text or "").strip() or None
    return None


def _load_gpx(path: Path) -> List[LocationSample]:
    try:
        tree = ET.parse(path)
    except (ET.ParseError, DefusedXmlException) as exc:
        raise TrackFormatError(f"Cannot parse GPX track {path.name}: {exc}") from exc

    samples: List[LocationSample] = []
    skipped = 0
    for point in tree.getroot().iter():
        if _local_name(point.tag) != "trkpt":
            continue
        timestamp: Optional[datetime] = parse_iso_datetime(_child_text(point, "time"))
        try:
            lat = float(point.get("lat", ""))
            lon = float(point.get("lon", ""))
        except ValueError:
            skipped += 1
            continue
        if timestamp is None:
            skipped += 1
            continue
        hdop = _child_text(point, "hdop")
        try:
            accuracy = float(hdop) * HDOP_TO_METERS if hdop else DEFAULT_ACCURACY_M
        except ValueError:
            accuracy = DEFAULT_ACCURACY_M
        samples.append(
            LocationSample(
                latitude=lat,
                longitude=lon,
                timestamp=timestamp,
                accuracy_m=accuracy,
            )
        )
    if skipped:
        LOGGER.warning("Skipped %d track points without position or time in %s", skipped, path.name)
    return samples


__all__ = ["DEFAULT_ACCURACY_M", "HDOP_TO_METERS", "load_track"]
