"""
Cache Package
Holds the in-memory latest-value store shared by the relay
"""

from .market_cache import MarketCache, INITIAL_STATE

__all__ = [
    'MarketCache',
    'INITIAL_STATE'
]
