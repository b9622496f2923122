"""Key derivation and window arithmetic shared by the limiter variants.

Pure functions only: nothing here touches the store or reads the clock, so
the script and transaction variants of a strategy derive identical keys and
window bounds from the same instant.

Key format:
- {key_prefix}:{window_start_ms}:{client_id} - fixed/floating window counter
- {key_prefix}:{client_id} - sliding window hit log (sorted set)
- {key_prefix}:nTokens:{client_id} - token bucket fill level
- {key_prefix}:updatedAt:{client_id} - token bucket last update timestamp
"""


def calc_window_start(now_ms: int, start_ms: int, window_size_ms: int) -> int:
    """Start of the fixed window containing ``now_ms``.

    Windows are aligned on ``start_ms``; instants before the anchor fall into
    windows with negative indexes, so the result is always <= ``now_ms``.
    """
    return (now_ms - start_ms) // window_size_ms * window_size_ms + start_ms


def calc_prev_window_weight(now_ms: int, window_start_ms: int, window_size_ms: int) -> float:
    """Fraction of the trailing window that still overlaps the previous fixed window.

    Equals 1.0 exactly at the window start and decreases linearly towards 0
    as the current window ages.
    """
    sliding_window_start = now_ms - window_size_ms
    return (window_start_ms - sliding_window_start) / window_size_ms


def window_key(key_prefix: str, window_start_ms: int, client_id: str) -> str:
    return f"{key_prefix}:{window_start_ms}:{client_id}"


def hit_log_key(key_prefix: str, client_id: str) -> str:
    return f"{key_prefix}:{client_id}"


def token_count_key(key_prefix: str, client_id: str) -> str:
    return f"{key_prefix}:nTokens:{client_id}"


def token_updated_at_key(key_prefix: str, client_id: str) -> str:
    return f"{key_prefix}:updatedAt:{client_id}"
