"""
Recurring Ledger

The engine behind recurring transactions and bills in a personal
finance tracker: it turns recurring templates into dated ledger
instances, including every occurrence missed while it was not running.

DESIGN PRINCIPLES:
1. Exactly one instance per template per period, enforced by storage
2. Catch up completely, never silently truncate
3. One bad template never stops the rest
4. Every sweep is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Recurring Ledger Team"
