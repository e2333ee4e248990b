"""SavePort: export and import browser-resident game saves as portable archives.

The package is split into three layers:

- :mod:`saveport.codec`     pure record / archive conversion (no I/O),
- :mod:`saveport.store`     the asynchronous key-value store and its session,
- :mod:`saveport.pipelines` export/import workflows wired to host collaborators.
"""

from __future__ import annotations

__all__ = ["__version__"]
__version__ = "0.3.0"
