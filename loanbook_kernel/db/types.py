"""
Module: loanbook_kernel.db.types
Responsibility: Money constants shared by the models, the normalizer and the
    rebuilder.
Architecture position: Kernel > DB.  MUST NOT import from models/, domain/,
    selectors/, or outer layers.

Invariants enforced:
    - No floats for money.  Amounts are Decimal; Base maps Decimal columns
      to Numeric(38, 9).
"""

from decimal import Decimal

ZERO = Decimal("0")
