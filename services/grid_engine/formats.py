"""Format helpers shared by the codecs and render dispatch.

Covers:
- Color conversion between workbook ARGB and CSS hex
- Numeric pattern translation (internal "$0,0.00" <-> workbook "$#,##0.00")
- Date pattern translation and workbook date-format detection
- Checkbox coercion and value stringification
- Date serial / ISO string conversion
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from .schemas import DEFAULT_DATE_PATTERN


# =============================================================================
# COLORS
# =============================================================================

NAMED_COLORS = {
    "black": "FF000000",
    "white": "FFFFFFFF",
    "red": "FFFF0000",
    "green": "FF00FF00",
    "blue": "FF0000FF",
    "yellow": "FFFFFF00",
}

_HEX6 = re.compile(r"^[0-9A-Fa-f]{6}$")
_HEX8 = re.compile(r"^[0-9A-Fa-f]{8}$")
_HEX3 = re.compile(r"^[0-9A-Fa-f]{3}$")


def argb_to_css(value: Optional[str]) -> Optional[str]:
    """Convert a workbook color ("FFRRGGBB" or "RRGGBB") to "#RRGGBB".

    Anything else (theme/indexed colors, garbage) yields None.
    """
    if not value:
        return None
    value = value.strip()
    if _HEX8.match(value):
        return f"#{value[2:].upper()}"
    if _HEX6.match(value):
        return f"#{value.upper()}"
    return None


def css_to_argb(value: Optional[str]) -> str:
    """Convert a CSS color to workbook ARGB. Unknown colors become opaque black."""
    if not value:
        return "FF000000"
    value = value.strip()
    if value.startswith("#"):
        hex_part = value[1:]
        if _HEX6.match(hex_part):
            return f"FF{hex_part.upper()}"
        if _HEX3.match(hex_part):
            return "FF" + "".join(ch * 2 for ch in hex_part.upper())
        if _HEX8.match(hex_part):
            return hex_part.upper()
    return NAMED_COLORS.get(value.lower(), "FF000000")


# =============================================================================
# NUMBER FORMATS
# =============================================================================

# Built-in workbook number formats that carry no numFmt record
BUILTIN_NUMBER_FORMATS = {
    0: "General",
    1: "0",
    2: "0.00",
    3: "#,##0",
    4: "#,##0.00",
    9: "0%",
    10: "0.00%",
    11: "0.00E+00",
    14: "mm-dd-yy",
    15: "d-mmm-yy",
    16: "d-mmm",
    17: "mmm-yy",
    22: "m/d/yy h:mm",
    49: "@",
}

BUILTIN_DATE_FORMAT_IDS = {14, 15, 16, 17, 22}


def numeric_pattern_to_excel(pattern: str) -> str:
    """Translate an internal numeric pattern to workbook format-code syntax.

    "$0,0.00" -> "$#,##0.00", "0,0" -> "#,##0", "0.00%" unchanged.
    """
    prefix = ""
    body = pattern.strip()
    if body.startswith("$"):
        prefix, body = "$", body[1:]
    if body.startswith("0,0"):
        body = "#,##0" + body[3:]
    return prefix + body


def excel_to_numeric_pattern(code: str) -> str:
    """Inverse of numeric_pattern_to_excel for the codes it produces.

    Also folds quoted/locale currency prefixes ('"$"', '[$$-409]') to "$".
    """
    body = code.split(";")[0].strip()
    body = re.sub(r'\[\$\$[^\]]*\]', "$", body)
    body = body.replace('"$"', "$").replace("\\$", "$")
    body = re.sub(r"_\(|_\)|\*\s?", "", body).strip()
    prefix = ""
    if body.startswith("$"):
        prefix, body = "$", body[1:]
    if body.startswith("#,##0"):
        body = "0,0" + body[5:]
    return prefix + body


def date_pattern_to_excel(pattern: Optional[str]) -> str:
    """Lower-case month/day/year tokens: "MM/DD/YYYY" -> "mm/dd/yyyy"."""
    pattern = pattern or DEFAULT_DATE_PATTERN
    return re.sub(r"[MDY]", lambda m: m.group(0).lower(), pattern)


def is_date_format(code: Optional[str]) -> bool:
    """True when a workbook format code describes a calendar date."""
    if not code:
        return False
    cleaned = re.sub(r'"[^"]*"|\[[^\]]*\]|\\.', "", code).lower()
    return "m" in cleaned and ("d" in cleaned or "y" in cleaned)


def has_day_and_month(code: Optional[str]) -> bool:
    if not code:
        return False
    cleaned = re.sub(r'"[^"]*"|\[[^\]]*\]|\\.', "", code).lower()
    return "d" in cleaned and "m" in cleaned


# =============================================================================
# VALUES
# =============================================================================

_TRUTHY = {"true", "1", "yes", "y", "x"}


def coerce_checkbox(value: Any) -> bool:
    """Permissive boolean coercion used when exporting checkbox cells."""
    if value is True:
        return True
    if value is None or value is False:
        return False
    if isinstance(value, (int, float)):
        return value == 1
    return str(value).strip().lower() in _TRUTHY


def stringify_value(value: Any) -> str:
    """Render a raw cell value as text (None -> "", True -> "true", 2.0 -> "2")."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, datetime):
        return to_iso_string(value)
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


# =============================================================================
# DATES
# =============================================================================

_EPOCH_1900 = datetime(1899, 12, 30)
_EPOCH_1904 = datetime(1904, 1, 1)
_UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_DATE_INPUT_FORMATS = (
    "%Y-%m-%d",
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%m-%d-%Y",
    "%d %b %Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%b %d %Y",
)


def serial_to_datetime(serial: float, date1904: bool = False) -> datetime:
    epoch = _EPOCH_1904 if date1904 else _EPOCH_1900
    return epoch + timedelta(days=float(serial))


def datetime_to_serial(value: datetime, date1904: bool = False) -> float:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    epoch = _EPOCH_1904 if date1904 else _EPOCH_1900
    serial = (value - epoch).total_seconds() / 86400
    return int(serial) if float(serial).is_integer() else serial


def to_iso_string(value: datetime) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. 2024-01-15T00:00:00.000Z."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def epoch_ms_to_datetime(value: float) -> datetime:
    return (_UNIX_EPOCH + timedelta(milliseconds=float(value))).replace(tzinfo=None)


def parse_date_value(value: Any) -> Optional[datetime]:
    """Best-effort parse of a stored value into a naive UTC datetime."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    iso = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        parsed = datetime.fromisoformat(iso)
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed
    except ValueError:
        pass
    for fmt in _DATE_INPUT_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def format_date(value: datetime, pattern: Optional[str] = None) -> str:
    """Format a datetime with an internal pattern (YYYY, YY, MM, M, DD, D)."""
    pattern = pattern or DEFAULT_DATE_PATTERN
    tokens = {
        "YYYY": f"{value.year:04d}",
        "YY": f"{value.year % 100:02d}",
        "MM": f"{value.month:02d}",
        "M": str(value.month),
        "DD": f"{value.day:02d}",
        "D": str(value.day),
    }
    return re.sub(r"YYYY|YY|MM|M|DD|D", lambda m: tokens[m.group(0)], pattern)
