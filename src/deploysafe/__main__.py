"""Entry point for running deploysafe as a module.

This allows the CLI to be invoked with ``python -m deploysafe``.
"""

from .cli import cli

if __name__ == "__main__":  # pragma: no cover
    cli()
