"""Arch Linux guest provisioner and local package repository tooling.

Core design goals:
- Snapshot before mutating, roll back on failure
- Destroy the guest only when rollback cannot complete
- One run id namespaces all on-guest state
- Strictly sequential external tool calls
- Centralized logging
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
