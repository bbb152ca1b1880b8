"""Secret operations on top of the vault store.

Each operation loads the vault, reads or mutates the in-memory map and, if
anything changed, saves it back with the fingerprint taken at load.
"""

from dataclasses import dataclass
from typing import Callable, Iterable, Mapping, Optional, TypeVar, Union

from ..utils.logging import get_logger
from .exceptions import (
    DestinationExistsError,
    EmptyValueError,
    InvalidValueError,
    NotFoundError,
)
from .specs import is_env_key, parse_specs, redact
from .store import VaultData, VaultStore

logger = get_logger(__name__)

T = TypeVar("T")

CategoryRef = tuple[str, str]


@dataclass(frozen=True, order=True)
class SecretRef:
    """Location of one secret, without its value."""

    service: str
    category: str
    key: str

    def __str__(self) -> str:
        return f"{self.service}:{self.category}:{self.key}"


def _strip_trailing_newline(value: str) -> str:
    if value.endswith("\r\n"):
        return value[:-2]
    if value.endswith("\n"):
        return value[:-1]
    return value


def _require_names(*names: str) -> None:
    for name in names:
        if not name or not name.strip():
            raise ValueError("service, category and key must not be empty")


def _require_utf8(label: str, *texts: str) -> None:
    # Lone surrogates (undecodable argv bytes) cannot be written to the vault
    for text in (label, *texts):
        try:
            text.encode("utf-8")
        except UnicodeEncodeError:
            raise InvalidValueError(f"{label!r} is not valid UTF-8 text; nothing stored.")


class SecretRepository:
    """
    service → category → KEY operations.

    Usage:
        repo = SecretRepository(VaultStore(vault_path), key)
        repo.set("acme", "prod", "TOKEN", "abc123")
        repo.get("acme", "prod", "TOKEN")
    """

    def __init__(self, store: VaultStore, key: bytes):
        self.store = store
        self._key = key

    def _read(self) -> VaultData:
        return self.store.load(self._key).data

    def _mutate(self, change: Callable[[VaultData], T]) -> T:
        """Load, apply ``change`` to the data, save with the loaded fingerprint."""
        loaded = self.store.load(self._key)
        result = change(loaded.data)
        self.store.save(self._key, loaded.data, loaded.fingerprint)
        return result

    # Single secrets

    def set(self, service: str, category: str, key: str, value: str) -> None:
        """
        Insert or overwrite a secret.

        Raises:
            EmptyValueError: If the value is empty after trimming one
                trailing newline
            InvalidValueError: If a name or the value is not valid UTF-8
        """
        _require_names(service, category, key)
        value = _strip_trailing_newline(value)
        if not value:
            raise EmptyValueError()
        _require_utf8(f"{service}:{category}:{key}", value)

        def change(data: VaultData) -> None:
            data.setdefault(service, {}).setdefault(category, {})[key] = value

        self._mutate(change)
        logger.info("Set %s:%s:%s", service, category, key)

    def set_many(self, service: str, category: str, entries: Mapping[str, Optional[str]]) -> int:
        """
        Write several secrets of one category in a single save.

        Empty values are skipped.

        Returns:
            Number of secrets written
        """
        _require_names(service, category)
        values = {
            k: _strip_trailing_newline(v)
            for k, v in entries.items()
            if k and v is not None and _strip_trailing_newline(v)
        }
        if not values:
            return 0
        for k, v in values.items():
            _require_utf8(f"{service}:{category}:{k}", v)

        def change(data: VaultData) -> None:
            data.setdefault(service, {}).setdefault(category, {}).update(values)

        self._mutate(change)
        logger.info("Wrote %d secrets to %s:%s", len(values), service, category)
        return len(values)

    def get(self, service: str, category: str, key: str) -> str:
        """
        Read a secret.

        Raises:
            NotFoundError: If the secret does not exist
        """
        try:
            return self._read()[service][category][key]
        except KeyError:
            raise NotFoundError()

    def delete(self, service: str, category: str, key: str) -> None:
        """
        Delete a secret, pruning the category and service if left empty.

        Raises:
            NotFoundError: If the secret does not exist
        """

        def change(data: VaultData) -> None:
            secrets = data.get(service, {}).get(category, {})
            if key not in secrets:
                raise NotFoundError()
            del secrets[key]
            if not secrets:
                del data[service][category]
            if not data[service]:
                del data[service]

        self._mutate(change)
        logger.info("Deleted %s:%s:%s", service, category, key)

    # Listing

    def services(self) -> list[str]:
        return sorted(self._read())

    def search(self, query: str) -> list[SecretRef]:
        """
        Case-insensitive substring search over ``service category key``.

        Values are never searched or returned.
        """
        needle = query.lower()
        matches = []
        for service, categories in self._read().items():
            for category, secrets in categories.items():
                for key in secrets:
                    if needle in f"{service} {category} {key}".lower():
                        matches.append(SecretRef(service, category, key))
        return sorted(matches)

    # Specs

    def resolve(self, specs: Union[str, Iterable[str]]) -> dict[str, str]:
        """
        Resolve specs into a ``KEY -> value`` mapping.

        Wildcards only pick up keys that look like environment variables.
        Later specs override earlier ones.

        Raises:
            NotFoundError: An exact spec is missing, or a wildcard matches
                nothing
            ValueError: A spec is malformed
        """
        parsed = parse_specs(specs)
        data = self._read()

        env: dict[str, str] = {}
        for spec in parsed:
            secrets = data.get(spec.service, {}).get(spec.category, {})
            if spec.key is not None:
                if spec.key not in secrets:
                    raise NotFoundError(f"Missing secret: {spec}")
                env[spec.key] = secrets[spec.key]
                continue

            matched = {k: v for k, v in sorted(secrets.items()) if is_env_key(k)}
            if not matched:
                raise NotFoundError(f"No secrets matched: {spec}")
            env.update(matched)
        return env

    def export(self, specs: Union[str, Iterable[str]], unsafe: bool = False) -> list[str]:
        """``KEY=value`` lines for the specs, values redacted unless ``unsafe``."""
        return [
            f"{key}={value if unsafe else redact(value)}"
            for key, value in self.resolve(specs).items()
        ]

    # Categories

    def copy(self, src: CategoryRef, dst: CategoryRef, force: bool = False) -> int:
        """
        Copy every key of one category to another.

        Returns:
            Number of keys copied

        Raises:
            NotFoundError: Source category missing or empty
            DestinationExistsError: Destination not empty and not ``force``
        """
        return self._transfer(src, dst, force, remove_source=False)

    def move(self, src: CategoryRef, dst: CategoryRef, force: bool = False) -> int:
        """Like :meth:`copy`, then remove the source in the same save."""
        return self._transfer(src, dst, force, remove_source=True)

    def _transfer(
        self,
        src: CategoryRef,
        dst: CategoryRef,
        force: bool,
        remove_source: bool,
    ) -> int:
        src_service, src_category = src
        dst_service, dst_category = dst
        _require_names(src_service, src_category, dst_service, dst_category)
        if (src_service, src_category) == (dst_service, dst_category):
            raise ValueError("Source and destination are the same category")

        def change(data: VaultData) -> int:
            source = data.get(src_service, {}).get(src_category)
            if not source:
                raise NotFoundError(f"No secrets found: {src_service}:{src_category}")

            if data.get(dst_service, {}).get(dst_category) and not force:
                raise DestinationExistsError(f"{dst_service}:{dst_category}")

            data.setdefault(dst_service, {})[dst_category] = dict(source)

            if remove_source:
                del data[src_service][src_category]
                if not data[src_service]:
                    del data[src_service]
            return len(source)

        count = self._mutate(change)
        logger.info(
            "%s %d secrets %s:%s -> %s:%s",
            "Moved" if remove_source else "Copied",
            count,
            src_service,
            src_category,
            dst_service,
            dst_category,
        )
        return count

    # Defined last: the name shadows the builtin inside the class body
    def list(self, service: str, category: Optional[str] = None) -> list[str]:
        """Sorted categories of a service, or sorted keys of a category."""
        categories = self._read().get(service, {})
        if category is None:
            return sorted(categories)
        return sorted(categories.get(category, {}))
