"""
                Tableside Ordering

Order and table-account lifecycle engine for a restaurant digital menu:
carts, priced orders, anonymous table ordering and table billing.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
