"""Sales document workflows."""
