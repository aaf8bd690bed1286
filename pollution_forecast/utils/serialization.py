"""
Writing and reading back-test artifacts.

Run summaries go to JSON, forecast and accuracy tables to Parquet (pyarrow).
"""

import dataclasses
import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Union

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class ArtifactEncoder(json.JSONEncoder):
    """JSON encoder for report payloads: timestamps, numpy scalars/arrays, ranges, dataclasses."""

    def default(self, obj):
        if isinstance(obj, (datetime, pd.Timestamp)):
            return obj.isoformat()
        if isinstance(obj, pd.Timedelta):
            return str(obj)
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            # NaN is not valid JSON
            return None if np.isnan(obj) else float(obj)
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, range):
            return [obj.start, obj.stop]
        if isinstance(obj, Path):
            return str(obj)
        if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
            return obj.to_dict() if hasattr(obj, "to_dict") else dataclasses.asdict(obj)
        return super().default(obj)


def save_json(data: Any, path: PathLike, **kwargs) -> None:
    """
    Write ``data`` as indented JSON.

    The file is written next to its destination and moved into place, so a
    reader never sees a half-written summary.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(data, f, cls=ArtifactEncoder, indent=2, **kwargs)
        os.replace(tmp, path)
    except BaseException:
        os.unlink(tmp)
        raise
    logger.debug(f"Saved JSON to {path}")


def load_json(path: PathLike) -> Any:
    with open(path, "r") as f:
        return json.load(f)


def save_parquet(df: pd.DataFrame, path: PathLike, **kwargs) -> None:
    """Write a DataFrame to Parquet (pyarrow engine unless overridden)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    kwargs.setdefault("engine", "pyarrow")
    df.to_parquet(path, **kwargs)
    logger.debug(f"Saved {len(df)} rows to {path}")


def load_parquet(path: PathLike, **kwargs) -> pd.DataFrame:
    kwargs.setdefault("engine", "pyarrow")
    return pd.read_parquet(path, **kwargs)
