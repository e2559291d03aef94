"""
Best Buy Canada stock monitor package.

This package contains modules for resolving SKUs from the Best Buy Canada
JSON APIs, checking their availability on a fixed interval and pushing a
Pushbullet notification for every SKU found in stock.  See README.md for
details.
"""

__all__ = [
    "bestbuy",
    "config",
    "notifier",
    "main",
    "utils",
]
