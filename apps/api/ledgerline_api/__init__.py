"""Ledgerline API."""
