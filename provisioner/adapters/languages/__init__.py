"""Language adapters — python virtual environments."""

from provisioner.adapters.languages.python import VenvAdapter

__all__ = ["VenvAdapter"]
