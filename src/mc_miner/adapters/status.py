"""Server list ping status parsing and server flavour detection."""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from mc_miner.adapters.wire import ProtocolError

_FORMATTING_CODE = re.compile(r"§[0-9a-fk-or]", re.IGNORECASE)
FLAVOUR_PATTERNS = [
    ("fabric", re.compile(r"fabric", re.IGNORECASE)),
    ("forge", re.compile(r"forge|\bfml\b", re.IGNORECASE)),
]


class StatusVersion(BaseModel):
    name: str = ""
    protocol: int = -1


class StatusPlayer(BaseModel):
    name: str = ""
    id: str = ""


class StatusPlayers(BaseModel):
    max: int = 0
    online: int = 0
    sample: list[StatusPlayer] = Field(default_factory=list)


class ServerStatus(BaseModel):
    """Parsed status response of a server list ping."""

    model_config = ConfigDict(extra="ignore")

    version: StatusVersion = Field(default_factory=StatusVersion)
    players: StatusPlayers = Field(default_factory=StatusPlayers)
    description: str | dict[str, Any] | list[Any] = ""
    favicon: str | None = None
    latency_ms: float | None = None

    @property
    def reported_protocol(self) -> int | None:
        return self.version.protocol if self.version.protocol > 0 else None

    @property
    def motd(self) -> str:
        return flatten_text(self.description)

    @property
    def flavour(self) -> str:
        return detect_server_flavour(self.version.name, self.motd)

    def summary_line(self) -> str:
        return f'PROTOCOL={self.version.protocol} VERSION_NAME="{self.version.name}" MODDED={self.flavour}'


def flatten_text(component: Any) -> str:
    """Extract the plain text of a chat component (string, dict, or list of those)."""
    parts: list[str] = []
    _collect_text(component, parts)
    return _FORMATTING_CODE.sub("", "".join(parts)).strip()


def _collect_text(component: Any, parts: list[str]) -> None:
    if isinstance(component, str):
        parts.append(component)
    elif isinstance(component, list):
        for child in component:
            _collect_text(child, parts)
    elif isinstance(component, dict):
        text = component.get("text")
        if isinstance(text, str):
            parts.append(text)
        elif "translate" in component:
            parts.append(str(component["translate"]))
        for child in component.get("extra", ()):
            _collect_text(child, parts)


def detect_server_flavour(version_name: str, motd: str) -> str:
    for flavour, pattern in FLAVOUR_PATTERNS:
        if pattern.search(version_name) or pattern.search(motd):
            return flavour
    return "unknown"


def parse_status(text: str, latency_ms: float | None = None) -> ServerStatus:
    try:
        status = ServerStatus.model_validate_json(text)
    except ValidationError as exc:
        raise ProtocolError(f"Malformed status response: {exc.error_count()} validation error(s)") from exc
    status.latency_ms = latency_ms
    return status
