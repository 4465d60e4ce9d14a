"""Per-invocation state shared by the command-line groups.

The root ``deploysafe`` group loads settings once and stores the result
on the click context.  A configuration problem is kept rather than
raised so that commands which can still do something useful (the gate
fails closed, ``config-check`` reports the problem) decide for
themselves how to surface it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import click

from .config import Settings, load_settings
from .errors import ConfigurationError


@dataclass
class CliState:
    settings: Optional[Settings] = None
    settings_error: Optional[ConfigurationError] = None

    @classmethod
    def load(cls) -> "CliState":
        try:
            return cls(settings=load_settings())
        except ConfigurationError as exc:
            return cls(settings_error=exc)

    def require_settings(self) -> Settings:
        """Return the settings or raise the configuration error that prevented loading them."""
        if self.settings is None:
            raise self.settings_error or ConfigurationError("Settings were not loaded")
        return self.settings


def get_state(ctx: click.Context) -> CliState:
    """Return the state stored on the root context, loading it on first use."""
    root = ctx.find_root()
    if not isinstance(root.obj, CliState):
        root.obj = CliState.load()
    return root.obj


__all__ = ["CliState", "get_state"]
