"""
sip_batch -- Recurring investment plan scheduling and processing.

Determines which plans are due, executes a priced transaction for each in
bounded concurrent batches, retries failures, purges stale failure
records and runs the three periodic jobs (processing, retry, cleanup)
under one supervisor.

Architecture:
    sip_batch/ is a top-level package built on sip_kernel.  Nothing in
    sip_kernel imports from sip_batch.  ``SipOrchestrator`` is the
    composition root.

Guarantees:
    - Due-date resolution is pure; the target date comes from the caller
      or the injected clock.
    - Per-plan failures are data, never exceptions escaping a batch.
    - Every execution attempt leaves a COMPLETED or FAILED audit row,
      except inactive and expired plans.
    - At most one run per job at a time.
"""
