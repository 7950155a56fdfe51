"""Collect default values for configuration objects from their flag registrations."""

from __future__ import annotations

import argparse
from typing import Protocol, TypeVar, runtime_checkable

_T = TypeVar("_T")


@runtime_checkable
class ConfigFlags(Protocol):
    """An object that registers the command-line flags controlling it."""

    def register_flags(self, parser: argparse.ArgumentParser) -> None:
        """Register this object's flags on ``parser``."""


@runtime_checkable
class PrefixedConfigFlags(Protocol):
    """An object that registers its flags under a name prefix."""

    def register_flags_with_prefix(self, prefix: str, parser: argparse.ArgumentParser) -> None:
        """Register this object's flags on ``parser``, each name starting with ``prefix``."""


def default_config_from_flags(cfg: _T) -> _T:
    """Load the defaults of the flags ``cfg`` registers into ``cfg`` and return it.

    A throwaway parser is built only to collect the defaults; each flag's
    default is assigned to the attribute named by the flag's destination.
    ``PrefixedConfigFlags`` is preferred (with an empty prefix) when an
    object implements both interfaces.
    """
    parser = argparse.ArgumentParser(
        prog="default_config_from_flags", add_help=False, exit_on_error=False
    )

    if isinstance(cfg, PrefixedConfigFlags):
        cfg.register_flags_with_prefix("", parser)
    elif isinstance(cfg, ConfigFlags):
        cfg.register_flags(parser)
    else:
        raise TypeError("config does not implement PrefixedConfigFlags or ConfigFlags")

    try:
        defaults, _ = parser.parse_known_args([])
    except (argparse.ArgumentError, SystemExit) as exc:
        raise ValueError(f"unable to collect flag defaults: {exc}") from exc

    for name, value in vars(defaults).items():
        setattr(cfg, name, value)
    return cfg