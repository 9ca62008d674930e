"""
Statement Kernel

Owner statement calculation and lifecycle engine for short-term-rental
properties:
- Effective policy resolution with point-in-time snapshots
- Checkout and calendar revenue attribution
- Statement lifecycle (draft -> final -> sent -> paid)
- Optimistic concurrency on statement writes
"""

__version__ = "0.1.0"
