"""Shared types and helpers for secret storage destinations."""

from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar, Iterable


@dataclass
class GeneratorConfig:
    """One value generator referenced by a template."""

    name: str = ""
    type: str = ""
    config: dict[str, Any] = field(default_factory=dict)


@dataclass
class SecretSanta:
    """A request to generate a secret from a template."""

    name: str
    namespace: str = ""
    template: str = ""
    generators: list[GeneratorConfig] = field(default_factory=list)
    secret_name: str = ""
    secret_type: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)


@dataclass
class MediaConfig:
    """Configuration naming a storage destination and its settings."""

    type: str
    config: dict[str, Any] = field(default_factory=dict)


class Media(ABC):
    """A destination that rendered secret data is stored in."""

    media_type: ClassVar[str] = ""

    @abstractmethod
    def store(self, secret_santa: SecretSanta, data: str, enable_metadata: bool) -> None:
        """Store ``data`` for ``secret_santa``; raise on failure."""


def resolve_name(override: str, secret_santa: SecretSanta) -> str:
    """Pick the destination name: override, then spec name, then resource name."""
    return override or secret_santa.secret_name or secret_santa.name


def generator_types(generators: Iterable[GeneratorConfig]) -> str:
    """Join the generator types with commas, in order."""
    return ",".join(gen.type for gen in generators)


def template_checksum(template: str) -> str:
    """Return the first 16 hex digits of the template's SHA-256."""
    return hashlib.sha256(template.encode()).hexdigest()[:16]


def utc_timestamp() -> str:
    """Return the current UTC time as an RFC 3339 string to the second."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")