"""
Screening Module
================

Pre-screening checks and per-identity rate limiting.
"""

from crossid_core.screening.rate_limiter import RateLimiter
from crossid_core.screening.pre_screener import PreScreener, PreScreenResult

__all__ = [
    "RateLimiter",
    "PreScreener",
    "PreScreenResult",
]
