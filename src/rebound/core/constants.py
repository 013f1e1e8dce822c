"""Global constants for rebound.

Centralizes the default retry timing and classification values so they are
discoverable and consistent between the policy model, the backoff policy
and the tests.
"""

# =============================================================================
# Retry Policy Defaults
# =============================================================================

DEFAULT_MAX_ATTEMPTS = 3
"""Total attempts (initial try included) when no policy is supplied."""

DEFAULT_MAX_ELAPSED_SECONDS = 0.0
"""Upper bound on the whole retry loop; 0 disables the bound."""

DEFAULT_BASE_DELAY_SECONDS = 0.1
"""Delay before the first retry (100ms)."""

DEFAULT_MAX_DELAY_SECONDS = 20.0
"""Cap applied to every computed delay."""

DEFAULT_MULTIPLIER = 2.0
"""Exponential growth factor between consecutive retries."""

# =============================================================================
# Backoff
# =============================================================================

DECORRELATED_JITTER_FACTOR = 3.0
"""Upper bound multiplier on the previous delay for decorrelated jitter."""

# =============================================================================
# Failure Extraction
# =============================================================================

RETRY_AFTER_HEADER = "retry-after"
"""Response header carrying the server's suggested wait (seconds)."""

TRUNCATE_ERROR_MESSAGE_CHARS = 200
"""Maximum characters for failure message summaries in log events."""
