"""
Loanbook Kernel

Shared core for statement import and client consolidation:
- Storage (SQLAlchemy engine, ORM models, read-only selectors)
- Pure domain rules (identity keys, loan-status vocabulary, clock)
- Structured logging and typed exceptions
"""

__version__ = "0.1.0"
