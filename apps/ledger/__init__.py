"""
Ledger app.

Stores organizations, packages, and the append-only donation ledger that the
distribution pipeline posts into.
"""
