"""Redis Lua scripts for the rate limiting strategies.

Each script performs one whole hit registration as a single atomic unit on
the store, so concurrent hits from the same client can never both observe
free allowance. Script bodies are constants: every client-controlled value
(keys, client ids, hit ids) travels through KEYS/ARGV, never through string
interpolation into the script text.

Timestamps are computed by the caller from its injected clock and passed in
as arguments; scripts never read the server time.

Fractional results are returned as strings formatted with %.17g, because
Redis truncates Lua numbers to integers in replies.
"""

from typing import Any

from hitguard.app.exceptions import ScriptResultError

# Fixed window: count the hit and set the counter expiry on the first hit.
# KEYS[1] counter key, ARGV[1] limit, ARGV[2] window end (epoch ms)
FIXED_WINDOW_SCRIPT = """
    local key = KEYS[1]
    local limit = tonumber(ARGV[1])
    local expire_at_ms = ARGV[2]

    local count = redis.call('INCR', key)

    -- First hit in the window, the counter dies with the window
    if count == 1 then
        redis.call('PEXPIREAT', key, expire_at_ms)
    end

    return limit - count
"""

# Sliding window: trim the log, append this hit, refresh expiry, count.
# KEYS[1] hit log key
# ARGV[1] hit id, ARGV[2] now (ms), ARGV[3] now - window size,
# ARGV[4] now + window size, ARGV[5] limit
SLIDING_WINDOW_SCRIPT = """
    local key = KEYS[1]
    local hit_id = ARGV[1]
    local now_ms = ARGV[2]
    local window_start_ms = ARGV[3]
    local expire_at_ms = ARGV[4]
    local limit = tonumber(ARGV[5])

    redis.call('ZREMRANGEBYSCORE', key, '-inf', window_start_ms)
    redis.call('ZADD', key, now_ms, hit_id)
    redis.call('PEXPIREAT', key, expire_at_ms)

    local count = redis.call('ZCOUNT', key, window_start_ms, now_ms)

    return limit - count
"""

# Floating window: read the previous counter, count the hit in the current one.
# KEYS[1] previous window counter, KEYS[2] current window counter
# ARGV[1] current window end (epoch ms), ARGV[2] previous window weight,
# ARGV[3] limit
FLOATING_WINDOW_SCRIPT = """
    local key_prev = KEYS[1]
    local key_current = KEYS[2]
    local expire_at_ms = ARGV[1]
    local prev_window_weight = tonumber(ARGV[2])
    local limit = tonumber(ARGV[3])

    local count_prev = 0
    local prev = redis.call('GET', key_prev)
    if prev then
        count_prev = tonumber(prev)
    end

    local count_current = redis.call('INCR', key_current)
    if count_current == 1 then
        redis.call('PEXPIREAT', key_current, expire_at_ms)
    end

    local approx = count_prev * prev_window_weight + count_current

    return string.format('%.17g', limit - approx)
"""

# Token bucket: refill by elapsed time, try to take one token, store the bucket.
# KEYS[1] token count key, KEYS[2] last update key
# ARGV[1] limit, ARGV[2] expiry (ms), ARGV[3] now (ms),
# ARGV[4] refill interval (ms), ARGV[5] refill rate
TOKEN_BUCKET_SCRIPT = """
    local tokens_key = KEYS[1]
    local ts_key = KEYS[2]
    local limit = tonumber(ARGV[1])
    local expire_ms = ARGV[2]
    local now_ms = tonumber(ARGV[3])
    local refill_interval = tonumber(ARGV[4])
    local refill_rate = tonumber(ARGV[5])

    local stored_tokens = redis.call('GET', tokens_key)
    local stored_ts = redis.call('GET', ts_key)

    local tokens = limit
    if stored_tokens and stored_ts then
        tokens = tonumber(stored_tokens)
        local elapsed_ms = now_ms - tonumber(stored_ts)
        if elapsed_ms > 0 then
            local refill_amount = (elapsed_ms / refill_interval) * refill_rate
            tokens = math.min(limit, tokens + refill_amount)
        end
    end

    local remaining = tokens - 1.0
    -- Partial tokens (e.g. 0.75) do not admit a hit
    if tokens >= 1.0 then
        tokens = remaining
    end

    tokens = math.max(math.min(tokens, limit), 0)
    redis.call('SET', tokens_key, string.format('%.17g', tokens), 'PX', expire_ms)
    redis.call('SET', ts_key, ARGV[3], 'PX', expire_ms)

    return string.format('%.17g', remaining)
"""


def parse_int_reply(script: str, result: Any) -> int:
    """Validate an integer script reply."""
    if isinstance(result, bool) or not isinstance(result, int):
        raise ScriptResultError(script, result)
    return result


def parse_float_reply(script: str, result: Any) -> float:
    """Parse a numeric string script reply back into a float."""
    if isinstance(result, bytes):
        result = result.decode("ascii", errors="replace")
    if isinstance(result, bool) or not isinstance(result, (str, int, float)):
        raise ScriptResultError(script, result)
    try:
        return float(result)
    except ValueError as e:
        raise ScriptResultError(script, result) from e
