"""Prometheus metrics for the ledger, valuation and storage layers."""
