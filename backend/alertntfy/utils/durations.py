"""Duration parsing helpers."""

import re

_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(value) -> float:
    """Return seconds for a number or a duration string such as "1m30s"."""

    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = str(value).strip()
        try:
            seconds = float(text)
        except ValueError:
            pos, seconds = 0, 0.0
            while pos < len(text):
                match = _PART.match(text, pos)
                if not match:
                    raise ValueError(f"invalid duration: {value!r}") from None
                seconds += float(match.group(1)) * _UNITS[match.group(2)]
                pos = match.end()
            if not text:
                raise ValueError("invalid duration: empty string") from None
    if seconds < 0:
        raise ValueError(f"duration must not be negative: {value!r}")
    return seconds
