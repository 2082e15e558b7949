"""Marketplace credits and entitlement ledger."""
