"""Top-level package for deploysafe.

deploysafe decides whether a deploy will lose data and keeps verified
backups of the product database.  It provides a command-line interface
via :mod:`deploysafe.cli`, the health endpoint in :mod:`deploysafe.web`,
the backup engine in :mod:`deploysafe.backup`, the deployment gate in
:mod:`deploysafe.gate` and audit log analysis in :mod:`deploysafe.audit`.
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "audit",
    "backup",
    "cli",
    "gate",
    "health",
    "persistence",
]
