"""Data-access layer for the business records dataset.

Subpackages:
- ``bizrecords.common``: configuration, logging, and metrics.
- ``bizrecords.repository``: record service contract, backends, and the
  per-entity repository adapters.

Usage:
- Build repositories at the composition root with
  ``bizrecords.repository.factory.create_repositories`` and pass them to
  callers; nothing in this package holds process-wide state.
"""
