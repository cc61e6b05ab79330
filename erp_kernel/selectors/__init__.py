"""Selectors for the ERP workflow kernel (read side)."""

from erp_kernel.selectors.document_selector import DocumentSelector

__all__ = ["DocumentSelector"]
