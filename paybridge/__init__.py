"""Paybridge: multi-gateway payments and webhook reconciliation."""
