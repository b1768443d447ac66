# civic_dispatch/core/dispatch/__init__.py
"""
Dispatch Layer: getting one issue report to every nearby authority.

- ``orchestrator``: concurrent fan-out of a round, fan-in to one result
- ``services``: resolve → round → ledger, plus reporter-facing summaries

Dispatch code must NOT import the HTTP transport modules.
"""
