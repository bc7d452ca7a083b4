"""
Org lock app.

Org-scoped mutual exclusion with TTL auto-expiry. Guards the non-idempotent
ledger posting of the synchronous distribution flow.
"""
