from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Optional


@dataclass(frozen=True)
class PlanError(Exception):
    """Error envelope shared by loading, validation, config and node mutations.

    `path` locates the problem inside the document (``nodes[3].id``) or names
    the node a mutation targeted (``plan-1/C``).
    """

    code: str
    message: str
    file: Optional[str] = None
    path: Optional[str] = None

    source: ClassVar[str] = "plan"

    def location(self) -> str:
        parts = [p for p in (self.file, self.path) if p]
        return ":".join(parts) if parts else "<plan>"

    def __str__(self) -> str:
        return f"{self.location()}: {self.code}: {self.message}"

    def to_item(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "file": self.file,
            "path": self.path,
            "severity": "error",
            "source": self.source,
        }


class PlanLoadError(PlanError):
    source = "load"


class PlanValidationError(PlanError):
    source = "validate"


class NodeMutationError(PlanError):
    """Raised by a NodeService when a create/update/delete call fails."""

    source = "mutation"


class ConfigError(PlanError):
    source = "config"
