"""
Partner Ledger

A shared expense ledger for two business partners. Each workspace holds
projects; each project holds expense, revenue and settlement transactions.
The balance engine derives who owes whom, and the sync controller keeps
every connected client's copy of the workspace in step.
"""

__version__ = "0.1.0"
