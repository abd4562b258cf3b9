"""folioledger: portfolio ledger, valuation and equity-history engine."""

__version__ = "0.1.0"
