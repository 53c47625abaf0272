import json
import math
from typing import Any

import numpy as np
import pandas as pd


def _to_scalar_str(x: Any):
    """Convert arbitrary value to Arrow-friendly scalar/str representation."""
    if x is None:
        return None
    if isinstance(x, float) and math.isnan(x):
        return None

    if isinstance(x, (bytes, bytearray)):
        return x.decode("utf-8", errors="replace")

    # collections -> JSON
    if isinstance(x, (list, tuple, set, dict)):
        try:
            return json.dumps(list(x) if isinstance(x, set) else x, ensure_ascii=False)
        except (TypeError, ValueError):
            return str(x)

    if not isinstance(x, (str, int, float, bool, np.number)):
        return str(x)

    return x


def sanitize_for_arrow(df: pd.DataFrame) -> pd.DataFrame:
    """Return a copy of DataFrame safe to preview with Arrow-backed APIs."""
    df = df.copy()

    for col in df.columns:
        s = df[col]
        if isinstance(s.dtype, pd.DatetimeTZDtype):
            df[col] = s.dt.tz_convert(None)
        elif s.dtype == "object":
            df[col] = s.map(_to_scalar_str)
        elif isinstance(s.dtype, pd.CategoricalDtype):
            df[col] = s.astype(str)

    return df


def editable_text_frame(df: pd.DataFrame, columns: list[str]) -> pd.DataFrame:
    """Return a copy where ``columns`` hold plain strings (blank for missing)."""
    df = sanitize_for_arrow(df)
    for col in columns:
        if col in df.columns:
            df[col] = df[col].map(lambda v: "" if v is None else str(v))
    return df
