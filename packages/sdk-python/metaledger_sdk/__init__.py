"""MetaLedger Python SDK."""

__version__ = "0.1.0"

from metaledger_sdk.client import MetaLedgerClient, MetaLedgerError

__all__ = ["MetaLedgerClient", "MetaLedgerError"]
