"""Services package for the rate limiter.

This package provides:
- Store-backed rate limiting strategies (Lua script and transaction variants)
- Single-process in-memory window limiters
"""
