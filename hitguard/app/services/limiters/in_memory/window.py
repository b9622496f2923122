"""Counting window value object for the in-memory limiters."""

from dataclasses import dataclass, field


@dataclass
class LimiterWindow:
    """A fixed counting window with per-client hit counters.

    Attributes:
        start_ts: Window start (epoch ms, inclusive)
        duration: Window length in ms
        hit_counter: Hits registered per client id during the window
    """
    start_ts: int
    duration: int
    hit_counter: dict[str, int] = field(default_factory=dict)

    @property
    def end_ts(self) -> int:
        """Window end (epoch ms, exclusive)."""
        return self.start_ts + self.duration

    def is_expired_at(self, ts: int) -> bool:
        """True if ``ts`` lies outside ``[start_ts, end_ts)``."""
        return not (self.start_ts <= ts < self.end_ts)

    def hits(self, client_id: str) -> int:
        return self.hit_counter.get(client_id, 0)

    def add_hit(self, client_id: str) -> int:
        """Count one hit for the client and return the new count."""
        count = self.hit_counter.get(client_id, 0) + 1
        self.hit_counter[client_id] = count
        return count
