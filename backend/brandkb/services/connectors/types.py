"""Shared shapes for external data connectors."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from brandkb.config import Settings
from brandkb.errors import ConnectorConfigError


@dataclass
class ConnectorContext:
    domain: str
    brand_name: str
    competitors: List[str] = field(default_factory=list)


@dataclass
class ConnectorResult:
    connector: str
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    execution_time_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "connector": self.connector,
            "success": self.success,
            "executionTimeMs": self.execution_time_ms,
        }
        if self.success:
            out["data"] = self.data
        else:
            out["error"] = self.error
        return out


class Connector:
    """Base class. Subclasses set ``name`` and implement ``fetch``; failures raise."""

    name: str = ""
    api_key_setting: str = ""

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def api_key(self) -> str:
        key = str(getattr(self.settings, self.api_key_setting, "") or "").strip()
        if not key:
            raise ConnectorConfigError(self.name, f"{self.api_key_setting} is not configured")
        return key

    async def fetch(self, ctx: ConnectorContext, client: httpx.AsyncClient) -> Dict[str, Any]:
        raise NotImplementedError
