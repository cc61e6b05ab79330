"""Procurement document workflows."""
