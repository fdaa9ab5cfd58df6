"""
Duration helpers for configuration and experiment files
"""
import re
from typing import Union

_DURATION_PATTERN = re.compile(r'(\d+(?:\.\d+)?)(ms|s|m|h|d)')
_UNIT_SECONDS = {'ms': 0.001, 's': 1.0, 'm': 60.0, 'h': 3600.0, 'd': 86400.0}


def parse_duration(value: Union[str, int, float]) -> float:
    """Convert a duration such as 45, "45s", "30m", "1h30m" or "250ms" to seconds"""
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"Duration must be non-negative, got {value}")
        return float(value)
    if not isinstance(value, str):
        raise ValueError(f"Invalid duration: {value!r}")

    text = value.strip().lower().replace(' ', '')
    if not text:
        raise ValueError("Empty duration")

    try:
        number = float(text)
    except ValueError:
        number = None
    if number is not None:
        return parse_duration(number)

    position = 0
    total = 0.0
    for match in _DURATION_PATTERN.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        position = match.end()

    if position != len(text) or position == 0:
        raise ValueError(f"Invalid duration: {value!r}")
    return total


def format_duration(seconds: float) -> str:
    """Render seconds compactly, e.g. 5400 -> "1h30m" """
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    remaining = int(round(seconds))
    parts = []
    for unit, size in (('h', 3600), ('m', 60), ('s', 1)):
        amount, remaining = divmod(remaining, size)
        if amount:
            parts.append(f"{amount}{unit}")
    return ''.join(parts) or "0s"
