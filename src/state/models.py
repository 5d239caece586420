from __future__ import annotations

import json
from typing import Dict

from pydantic import RootModel


# Per-action cursors and bookkeeping, e.g. {"rss_last_link": "https://..."}.
State = Dict[str, str]

# Action key -> State. The unit of persistence.
States = Dict[str, State]


class StatesDocument(RootModel[Dict[str, Dict[str, str]]]):
    """
    Validated form of the persisted `States` mapping.

    The stored object is the canonical JSON encoding of this model (sorted keys,
    compact separators, UTF-8), optionally sealed with AES-GCM by `StateStore`.
    Anything that does not validate as a mapping of string keys to string->string
    mappings is rejected, so a damaged file never leaks half-parsed state into a run.
    """

    def dump_bytes(self) -> bytes:
        # Deterministic JSON: stable key order, no extra whitespace
        return json.dumps(self.root, separators=(",", ":"), sort_keys=True).encode("utf-8")

    @classmethod
    def load_bytes(cls, data: bytes) -> "StatesDocument":
        return cls.model_validate_json(data)
