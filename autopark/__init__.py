"""
AutoPark billing core

Pricing, monthly invoicing, overdue late fees and QR entry/exit tokens for
a parking network, backed by MongoDB with an optional Redis rate cache.
"""

__version__ = "1.0.0"
