"""Traceability engine: scanning, indexing, validation and snapshot publication."""
