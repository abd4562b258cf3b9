"""Ledger events: pydantic schema and best-effort Redis Streams publisher."""
