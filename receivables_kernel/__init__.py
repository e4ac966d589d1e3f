"""
Receivables Kernel

Value objects, typed errors, structured logging and persistence primitives
shared by the receivables engines and modules:
- Decimal-only money with ISO 4217 currencies
- Invoice / receipt / balance status vocabulary
- Injectable clocks
- Database base classes for the storage collaborator
"""

__version__ = "0.1.0"
