"""
Helper functions for turning byte counts and durations into readable strings.
"""

_SIZE_UNITS = ("KB", "MB", "GB", "TB")


def format_size(bytes_size: int) -> str:
    """Formats a byte count, e.g. '512 B' or '145.3 MB'."""
    if bytes_size < 1024:
        return f"{max(bytes_size, 0)} B"
    value = float(bytes_size)
    for unit in _SIZE_UNITS:
        value /= 1024
        if value < 1024 or unit == _SIZE_UNITS[-1]:
            break
    return f"{value:.1f} {unit}"


def format_duration(seconds: float) -> str:
    """Formats seconds as e.g. '2h 34m 12s'; zero components are left out."""
    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)
    parts = [
        f"{amount}{suffix}"
        for amount, suffix in ((hours, "h"), (minutes, "m"))
        if amount
    ]
    if secs or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)
