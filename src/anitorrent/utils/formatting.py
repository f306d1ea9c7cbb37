"""Human-readable formatting helpers."""

_UNITS = ["B", "KB", "MB", "GB", "TB"]


def format_bytes(size: int | float) -> str:
    """Format a byte count, e.g. 1536 -> "1.50 KB"."""
    if size <= 0:
        return "0 B"
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(_UNITS) - 1:
        value /= 1024
        unit += 1
    if unit == 0:
        return f"{int(value)} B"
    return f"{value:.2f} {_UNITS[unit]}"


def format_duration(seconds: float) -> str:
    """Format seconds as "1h 02m 03s" / "2m 03s" / "3s"."""
    seconds = int(seconds)
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes:02d}m {secs:02d}s"
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{secs}s"
