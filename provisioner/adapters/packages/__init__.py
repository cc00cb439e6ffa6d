"""Package manager adapters — apt, pipx, snap."""

from provisioner.adapters.packages.apt import AptAdapter
from provisioner.adapters.packages.pipx import PipxAdapter
from provisioner.adapters.packages.snap import SnapAdapter

__all__ = ["AptAdapter", "PipxAdapter", "SnapAdapter"]
