"""
Retail Kernel

Barcode registry and product coordination core for a retail back office:
- Atomic barcode counter allocation
- CODE128-compatible barcode validation
- Barcode -> entity registry with provenance
- In-process coordination bus for cross-module cache invalidation
"""

__version__ = "0.1.0"
