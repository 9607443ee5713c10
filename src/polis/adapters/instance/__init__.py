"""Instance port set adapters."""

from polis.adapters.instance.multipass import MultipassProvisioner, TimeoutView

__all__ = ["MultipassProvisioner", "TimeoutView"]
