"""Maintenance services over the loanbook store."""

from loanbook_services.reconciliation_service import ClientRebuilder, RebuildResult

__all__ = ["ClientRebuilder", "RebuildResult"]
