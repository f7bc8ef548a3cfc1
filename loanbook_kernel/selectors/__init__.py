"""Read-only selectors over the loanbook tables."""

from loanbook_kernel.selectors.base import BaseSelector
from loanbook_kernel.selectors.client_selector import (
    ClientSelector,
    ClientSnapshot,
    ClientStats,
)

__all__ = ["BaseSelector", "ClientSelector", "ClientSnapshot", "ClientStats"]
