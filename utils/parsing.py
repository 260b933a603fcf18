import datetime
import math
import pandas as pd
from typing import Any, Optional


def is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if value is pd.NaT:
        return True
    return isinstance(value, str) and not value.strip()


def clean_str(value: Any) -> Optional[str]:
    """Stringify a table cell; blanks and NaN become None."""
    if is_missing(value):
        return None
    return str(value).strip()


def parse_date(value: Any) -> Optional[datetime.date]:
    """
    Lenient date coercion for table cells.
    Accepts date/datetime objects, pandas Timestamps and ISO-like strings.
    Anything unparseable becomes None so the owning rule can report it.
    """
    if is_missing(value):
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    try:
        ts = pd.to_datetime(str(value).strip(), errors="raise")
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(ts):
        return None
    return ts.date()


def parse_dose(value: Any) -> Optional[float]:
    """
    Dose in mg. Tolerates a trailing unit ("40mg", "40 MG").
    Non-numeric, non-finite or non-positive values become None.
    """
    if is_missing(value) or isinstance(value, bool):
        return None
    text = str(value).strip().lower()
    if text.endswith("mg"):
        text = text[:-2].strip()
    try:
        dose = float(text)
    except ValueError:
        return None
    if not math.isfinite(dose) or dose <= 0:
        return None
    return dose
