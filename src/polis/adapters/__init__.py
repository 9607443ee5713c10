"""Adapters module - instance CLI implementations of the core ports."""

from polis.adapters.instance import MultipassProvisioner, TimeoutView

__all__ = [
    "MultipassProvisioner",
    "TimeoutView",
]
