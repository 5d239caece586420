"""
State models and helpers for encrypted JSON persistence.

This package defines the per-action state schema, the AES-GCM sealing of the
serialized mapping, and the stores (local file or S3) that hold it between runs.
"""

from .models import State, States, StatesDocument

__all__ = ["State", "States", "StatesDocument"]
