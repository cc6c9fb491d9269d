"""Descriptor types for the ``stats_meta`` command.

The server treats metadata as opaque JSON; these dataclasses are a
convenience for embedders that want a consistent shape.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class StatsField:
    name: str
    kind: str
    desc: str = ""

    def to_json(self) -> Dict[str, Any]:
        return {"name": self.name, "kind": self.kind, "desc": self.desc}


@dataclass
class StatsMeta:
    name: str
    desc: str = ""
    fields: List[StatsField] = field(default_factory=list)
    top: bool = False

    def add_field(self, name: str, kind: str, desc: str = "") -> "StatsMeta":
        self.fields.append(StatsField(name, kind, desc))
        return self

    def to_json(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.name,
            "desc": self.desc,
            "fields": [entry.to_json() for entry in self.fields],
        }
        if self.top:
            payload["top"] = True
        return payload
