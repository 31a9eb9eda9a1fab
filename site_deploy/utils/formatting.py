"""Formatting helpers for previews and result panels"""

from typing import Union

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_size(size_bytes: Union[int, float]) -> str:
    """Release archive size for the confirmation preview, e.g. '2.4 MB'"""
    size = max(float(size_bytes), 0.0)
    for unit in _SIZE_UNITS[:-1]:
        if size < 1024:
            break
        size /= 1024
    else:
        unit = _SIZE_UNITS[-1]
    return f"{int(size)} B" if unit == "B" else f"{size:.1f} {unit}"


def format_duration(seconds: float) -> str:
    """Run time shown under a result panel: 850ms, 12.3s, 2m 5s, 1h 4m"""
    seconds = max(seconds, 0.0)
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    if minutes < 60:
        return f"{minutes}m {secs}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m"


def pluralize(count: int, noun: str) -> str:
    return f"{count} {noun if count == 1 else noun + 's'}"


def split_list(value) -> list:
    """Split a comma or newline separated option into a clean list

    Lists are passed through with blanks removed.
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        items = value
    else:
        items = str(value).replace("\n", ",").split(",")
    return [str(item).strip() for item in items if str(item).strip()]


def split_lines(value) -> list:
    """Like split_list, but only newlines separate items (shell commands may contain commas)"""
    if value is None:
        return []
    items = value if isinstance(value, (list, tuple)) else str(value).splitlines()
    return [str(item).strip() for item in items if str(item).strip()]
