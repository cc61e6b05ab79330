"""
ERP Workflow Kernel

The transactional core of the back office:
- Status lifecycles for every business document
- Quantity roll-ups across linked documents
- Per-party AP/AR balances kept consistent with invoices and settlements
- Collision-free document numbering
"""

__version__ = "0.1.0"
