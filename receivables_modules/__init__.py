"""
Receivables business modules.

Each module composes the pure engines with a storage collaborator.
"""
