"""
Rate limiting for the batch API (configurable via RATE_LIMIT env var).
"""

import os

from slowapi import Limiter
from slowapi.util import get_remote_address

# Default: 60 requests per minute per IP
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[os.getenv("RATE_LIMIT", "60/minute")]
)
