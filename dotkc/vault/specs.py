"""Lookup specs and value redaction.

A spec names either one secret (``service:category:KEY``) or every
environment-style key of a category (``service:category``). Services may
themselves contain ``:``; the last two components are always category and
KEY.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Union

ENV_KEY_RE = re.compile(r"^[A-Z_][A-Z0-9_]*$")

# Values up to this length are fully masked
REDACT_FULL_MAX = 8


@dataclass(frozen=True)
class SecretSpec:
    """Parsed lookup spec; ``key`` is None for a wildcard."""

    service: str
    category: str
    key: Optional[str] = None

    @property
    def is_wildcard(self) -> bool:
        return self.key is None

    def __str__(self) -> str:
        if self.key is None:
            return f"{self.service}:{self.category}"
        return f"{self.service}:{self.category}:{self.key}"


def is_env_key(name: str) -> bool:
    """True if ``name`` looks like an environment variable identifier."""
    return bool(ENV_KEY_RE.match(name))


def parse_spec(text: str) -> SecretSpec:
    """
    Parse ``service:category`` or ``service:category:KEY``.

    Raises:
        ValueError: If the spec has fewer than two parts or an empty part
    """
    parts = text.strip().split(":")
    if len(parts) < 2:
        raise ValueError(f"Invalid spec: {text}")

    if len(parts) == 2:
        service, category = parts
        key = None
    else:
        key = parts[-1]
        category = parts[-2]
        service = ":".join(parts[:-2])

    if not service or not category or key == "":
        raise ValueError(f"Invalid spec: {text}")
    return SecretSpec(service=service, category=category, key=key)


def parse_category_ref(text: str) -> tuple[str, str]:
    """Parse a ``service:category`` reference used by copy and move."""
    spec = parse_spec(text)
    if not spec.is_wildcard:
        raise ValueError(f"Expected <service>:<category>, got: {text}")
    return spec.service, spec.category


def parse_specs(specs: Union[str, Iterable[str]]) -> list[SecretSpec]:
    """
    Parse comma-separated specs.

    Accepts a single string or several strings (each may hold commas).
    """
    if isinstance(specs, str):
        specs = [specs]

    parsed = []
    for chunk in specs:
        for part in chunk.split(","):
            part = part.strip()
            if part:
                parsed.append(parse_spec(part))
    if not parsed:
        raise ValueError("No spec given")
    return parsed


def redact(value: str) -> str:
    """
    Mask a secret for display.

    Examples:
        >>> redact("abc123")
        '*** (len=6)'
        >>> redact("sk-live-0123456789")
        'sk-l…6789 (len=18)'
    """
    n = len(value)
    if n <= REDACT_FULL_MAX:
        return f"*** (len={n})"
    return f"{value[:4]}…{value[-4:]} (len={n})"
