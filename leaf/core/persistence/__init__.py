"""On-disk records — install metadata and the audit ledger."""
