from __future__ import annotations

import datetime as _dt
import time


def utc_iso(ts: float | None = None) -> str:
    if ts is None:
        ts = time.time()
    dt = _dt.datetime.fromtimestamp(ts, tz=_dt.timezone.utc)
    return dt.isoformat().replace("+00:00", "Z")


def now_ms() -> int:
    return int(time.time() * 1000)
