"""Canonical person <-> provider identity mapping."""

from .identity_map import IdentityMap

__all__ = ["IdentityMap"]
