"""
hledger-web → Local Ledger Cache

Mirrors the accounts and transactions of an hledger-web server into a local
SQLite cache, tolerating every JSON wire format from hledger 1.14 onwards and
falling back to scraping the journal HTML of older servers. Also provides the
offline composition helpers: regex templates that turn free text into a
transaction skeleton, and a solver that fills the missing posting amount.
"""

__version__ = "0.1.0"
