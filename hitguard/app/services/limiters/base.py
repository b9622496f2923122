"""Limiter interfaces.

Callers should depend on these protocols rather than on a concrete limiter,
so the algorithm or the variant can be swapped without touching them.
"""

from typing import Protocol, runtime_checkable


class LimiterOpts(Protocol):
    """Options common to all limiters."""

    @property
    def limit(self) -> int: ...


class StoreLimiterOpts(LimiterOpts, Protocol):
    """Options common to store-backed limiters."""

    @property
    def key_prefix(self) -> str: ...


@runtime_checkable
class RateLimiter(Protocol):
    """Store-backed limiter contract.

    Every operation performs I/O against the counter store; store failures
    propagate to the caller, which owns the fail-open/fail-closed decision.
    """

    opts: StoreLimiterOpts

    async def register_hit(self, client_id: str) -> int:
        """Register a hit from a client.

        Args:
            client_id: Client identity the hit is attributed to.

        Returns:
            Remaining allowance after this hit. A negative value means the
            hit must be limited; 0 means the last available hit was used.
        """
        ...

    async def get_available_hits(self, client_id: str) -> float:
        """Current allowance of a client, without registering a hit."""
        ...


@runtime_checkable
class InMemoryRateLimiter(Protocol):
    """Single-process limiter contract.

    Not safe for concurrent use without external synchronization, and state
    is not shared between processes.
    """

    opts: LimiterOpts

    def register_hit(self, client_id: str) -> int:
        """Register a hit; negative result means the hit must be limited."""
        ...

    def get_available_hits(self, client_id: str) -> int:
        """Current allowance of a client, without registering a hit."""
        ...

    def check_expiration(self) -> None:
        """Rotate expired windows.

        Performed automatically by ``register_hit`` and ``get_available_hits``.
        """
        ...

    def clear(self) -> None:
        """Drop all stored hit information."""
        ...
