from __future__ import annotations

from dataclasses import asdict, dataclass, field, is_dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Dict, List
import base64
import json

import pandas as pd

from polydb.adapters.utils import frame_to_records


def to_jsonable(o: Any) -> Any:
    """json.dumps default hook for driver values (dates, decimals, ObjectId, numpy, frames)."""
    if is_dataclass(o) and not isinstance(o, type):
        return asdict(o)
    if isinstance(o, (datetime, date, time)):
        return o.isoformat()
    if isinstance(o, timedelta):
        return o.total_seconds()
    if isinstance(o, Decimal):
        # exact text, no float rounding
        return str(o)
    if isinstance(o, (bytes, bytearray, memoryview)):
        raw = bytes(o)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            return base64.b64encode(raw).decode("ascii")
    if isinstance(o, (set, frozenset)):
        return sorted(o, key=str)
    if isinstance(o, pd.DataFrame):
        return frame_to_records(o)
    # numpy scalars / arrays
    if hasattr(o, "tolist"):
        return o.tolist()
    if hasattr(o, "item"):
        return o.item()
    # ObjectId, UUID, and anything else with a sensible str()
    return str(o)


def dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, default=to_jsonable, ensure_ascii=False)


@dataclass(frozen=True)
class ToolResponse:
    text: str
    is_error: bool = False
    content_type: str = field(default="text")

    @classmethod
    def success(cls, payload: Any) -> "ToolResponse":
        return cls(text=dumps(payload))

    @classmethod
    def failure(cls, message: str) -> "ToolResponse":
        return cls(text=f"Error: {message}", is_error=True)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"content": [{"type": self.content_type, "text": self.text}]}
        if self.is_error:
            out["isError"] = True
        return out

    @property
    def content(self) -> List[Dict[str, str]]:
        return self.to_dict()["content"]
