"""Workflow entry points for SavePort.

Currently exposed:

- :func:`run_export` / :func:`run_import` / :func:`run_import_file`, the
  user-facing save transfers implemented in ``save_transfer.py``.
"""

from __future__ import annotations

from .save_transfer import TransferResult, run_export, run_import, run_import_file

__all__ = ["run_export", "run_import", "run_import_file", "TransferResult"]
