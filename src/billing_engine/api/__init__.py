"""Billing engine HTTP API."""
