from __future__ import annotations


def format_duration(ms: float) -> str:
    """Render milliseconds as ``532ms``, ``1.25s`` or ``2m 5.0s``."""
    if ms < 1000:
        return f"{ms:.0f}ms"
    if ms < 60000:
        return f"{ms / 1000:.2f}s"
    minutes = int(ms // 60000)
    seconds = (ms % 60000) / 1000
    return f"{minutes}m {seconds:.1f}s"
