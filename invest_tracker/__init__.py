"""
Investment Tracker

A single-user tracker for a fixed-rate lending scheme: a capital pool is
handed out as investments that are expected to return 10% a month, returns
and personal withdrawals are recorded, and every change lands in one
append-only ledger carrying the running balance.

DESIGN PRINCIPLES:
1. The ledger is append-only and is the only source of the balance
2. Bad input is rejected before anything changes
3. Missing references degrade, they don't fail
4. Local state is authoritative; the remote copy is a mirror
5. Storage layer is swappable
"""

__version__ = "1.0.0"
