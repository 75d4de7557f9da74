"""Workflow definitions module."""

from workflows.ledger_sync_workflow import LedgerSyncWorkflow, LedgerSyncInput

__all__ = ["LedgerSyncWorkflow", "LedgerSyncInput"]
