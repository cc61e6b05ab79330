"""Payables document workflows."""
