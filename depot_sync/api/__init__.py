"""
Depot API Layer.

This package handles all communication with the remote package depot.
"""

from .client import DepotClient, ProgressCallback
from .rate_limiter import AdaptiveRateLimiter

__all__ = ["AdaptiveRateLimiter", "DepotClient", "ProgressCallback"]
