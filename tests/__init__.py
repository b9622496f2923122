"""HitGuard test suite."""
