"""Receivables document workflows."""
