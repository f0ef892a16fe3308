from __future__ import annotations
from datetime import datetime
from typing import Any
import math
import uuid


def gen_id() -> str:
    return str(uuid.uuid4())


def gen_local_id(now: datetime | None = None) -> str:
    """Identifiant local basé sur l'horodatage (ex: 20240601093015123456)."""
    return (now or datetime.now()).strftime("%Y%m%d%H%M%S%f")


def to_number(value: Any) -> float:
    """
    Conversion tolérante vers float:
      - None, "", bool, texte illisible, NaN/inf → 0.0
      - "12.5", " 3 ", 7 → 12.5, 3.0, 7.0
    Ne lève jamais.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return 0.0
        try:
            number = float(text)
        except ValueError:
            return 0.0
    return number if math.isfinite(number) else 0.0
