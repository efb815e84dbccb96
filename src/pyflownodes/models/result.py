"""Result envelope returned by node executors."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class NodeResult:
    success: bool
    data: Any = None
    error: str | None = None
    node_id: str | None = None

    @classmethod
    def ok(cls, data: Any = None, node_id: str | None = None) -> NodeResult:
        return cls(success=True, data=data, node_id=node_id)

    @classmethod
    def failed(cls, error: str, node_id: str | None = None) -> NodeResult:
        return cls(success=False, error=error, node_id=node_id)

    def to_dict(self) -> dict[str, Any]:
        """Wire form ``{success, data?, error?, node_id?}``; unset fields are omitted."""
        result: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            result["data"] = self.data
        if self.error is not None:
            result["error"] = self.error
        if self.node_id is not None:
            result["node_id"] = self.node_id
        return result
