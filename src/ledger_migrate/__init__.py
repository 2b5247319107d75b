"""
Ledger-tracked SQL migrations.

Applies an ordered directory of SQL scripts to a relational datastore,
exactly once each and each in its own transaction, recording every applied
script in a ledger table.
"""

__version__ = "0.1.0"
