"""Parameter store interface consumed by the reconciliation core.

The transport layer that talks to real devices implements ``ParameterStore``;
``InMemoryParameterStore`` backs tests and offline runs against a device
snapshot.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type, Union

import yaml

from .errors import ConfigurationError
from .logging import get_logger
from .models import DeviceIdentity


class StoreType(Enum):
    """Supported parameter store implementations."""
    IN_MEMORY = "memory"


@dataclass
class ProbeResult:
    exists: bool


@dataclass
class ReadResult:
    """Observed value of a parameter and the freshness marker it was read at."""
    exists: bool
    value: Optional[Any] = None
    as_of: int = 0


@dataclass
class WriteResult:
    ok: bool
    error_kind: Optional[str] = None


class ParameterStore(ABC):
    """Abstract base class for device parameter stores.

    Every operation is a suspension point; the engine awaits each one before
    deciding on the next.
    """

    @abstractmethod
    async def probe(self, path: str) -> ProbeResult:
        """Check whether an object or parameter exists at ``path``."""
        pass

    @abstractmethod
    async def read(self, path: str, refresh: bool = False) -> ReadResult:
        """Read a parameter value.

        Args:
            path: Concrete parameter path
            refresh: Bypass any cached observation and fetch from the device

        Returns:
            ReadResult with ``exists`` False when the parameter is absent
        """
        pass

    @abstractmethod
    async def list_instances(self, path_pattern: str) -> List[str]:
        """List the concrete instance paths of a multi-instance object.

        Args:
            path_pattern: Collection path, optionally ending in ``.*``

        Returns:
            Instance paths ordered by numeric index
        """
        pass

    @abstractmethod
    async def write(self, path: str, value: Any) -> WriteResult:
        """Write a parameter value."""
        pass

    @abstractmethod
    async def create_instance(self, base_path: str) -> int:
        """Create a new instance under a collection and return its index."""
        pass

    @abstractmethod
    async def set_tag(self, name: str, value: bool) -> None:
        """Set a boolean device tag."""
        pass

    @abstractmethod
    async def log(self, message: str) -> None:
        """Record an advisory notice. Never affects control flow."""
        pass


def collection_base(path_pattern: str) -> str:
    """Strip a trailing ``.*`` or ``.`` from a collection pattern."""
    base = path_pattern
    if base.endswith(".*"):
        base = base[:-2]
    return base.rstrip(".")


def _instance_index(base: str, path: str) -> Optional[int]:
    prefix = base + "."
    if not path.startswith(prefix):
        return None
    head = path[len(prefix):].split(".", 1)[0]
    return int(head) if head.isdigit() else None


class InMemoryParameterStore(ParameterStore):
    """Dictionary-backed parameter store.

    ``parameters`` holds the current device values, observed at marker
    ``as_of``. ``stale`` holds cached observations ``path -> (value, as_of)``
    returned by non-refreshing reads until the path is written or refreshed.
    ``reject_writes`` maps paths to the error kind a write to them fails with.
    """

    def __init__(
        self,
        parameters: Optional[Dict[str, Any]] = None,
        objects: Optional[Iterable[str]] = None,
        stale: Optional[Dict[str, Tuple[Any, int]]] = None,
        reject_writes: Optional[Dict[str, str]] = None,
        as_of: int = 0,
        identity: Optional[DeviceIdentity] = None
    ):
        self.parameters: Dict[str, Any] = dict(parameters or {})
        self.objects = set(collection_base(o) for o in (objects or []))
        self.stale: Dict[str, Tuple[Any, int]] = dict(stale or {})
        self.reject_writes: Dict[str, str] = dict(reject_writes or {})
        self.as_of = as_of
        self.identity = identity

        self.tags: Dict[str, bool] = {}
        self.notices: List[str] = []
        self.writes: List[Tuple[str, Any]] = []
        self.reads: List[Tuple[str, bool]] = []
        self.probes: List[str] = []
        self._allocated: Dict[str, int] = {}
        self.logger = get_logger("store")

    async def probe(self, path: str) -> ProbeResult:
        self.probes.append(path)
        return ProbeResult(exists=self._exists(path))

    def _exists(self, path: str) -> bool:
        path = collection_base(path)
        if path in self.objects or path in self.parameters:
            return True
        prefix = path + "."
        return any(p.startswith(prefix) for p in self.parameters) or \
            any(o.startswith(prefix) for o in self.objects)

    async def read(self, path: str, refresh: bool = False) -> ReadResult:
        self.reads.append((path, refresh))
        if refresh:
            self.stale.pop(path, None)
        elif path in self.stale:
            value, marker = self.stale[path]
            return ReadResult(exists=True, value=value, as_of=marker)

        if path in self.parameters:
            return ReadResult(exists=True, value=self.parameters[path], as_of=self.as_of)
        return ReadResult(exists=False, value=None, as_of=self.as_of)

    async def list_instances(self, path_pattern: str) -> List[str]:
        base = collection_base(path_pattern)
        return [f"{base}.{index}" for index in self._indices(base)]

    def _indices(self, base: str) -> List[int]:
        indices = set()
        for path in list(self.parameters) + list(self.objects):
            index = _instance_index(base, path)
            if index is not None:
                indices.add(index)
        return sorted(indices)

    async def write(self, path: str, value: Any) -> WriteResult:
        if path in self.reject_writes:
            error_kind = self.reject_writes[path]
            self.logger.log_write(f"Write rejected: {path}", path, False, error_kind)
            return WriteResult(ok=False, error_kind=error_kind)

        self.parameters[path] = value
        self.stale.pop(path, None)
        self.writes.append((path, value))
        self.logger.log_write(f"Wrote {path}", path)
        return WriteResult(ok=True)

    async def create_instance(self, base_path: str) -> int:
        """Allocate the index after the highest one ever seen, so removed slots stay unused."""
        base = collection_base(base_path)
        existing = self._indices(base)
        highest = max(existing[-1] if existing else 0, self._allocated.get(base, 0))
        index = highest + 1
        self._allocated[base] = index
        self.objects.add(f"{base}.{index}")
        return index

    def delete_instance(self, instance_path: str) -> None:
        """Remove an instance and everything below it."""
        instance_path = collection_base(instance_path)
        base, _, index = instance_path.rpartition(".")
        if index.isdigit():
            self._allocated[base] = max(self._allocated.get(base, 0), int(index))
        prefix = instance_path + "."
        self.parameters = {
            p: v for p, v in self.parameters.items()
            if p != instance_path and not p.startswith(prefix)
        }
        self.objects = {
            o for o in self.objects
            if o != instance_path and not o.startswith(prefix)
        }

    async def set_tag(self, name: str, value: bool) -> None:
        self.tags[name] = bool(value)

    async def log(self, message: str) -> None:
        self.notices.append(message)
        self.logger.debug(message)

    @classmethod
    def from_snapshot(cls, snapshot: Dict[str, Any]) -> 'InMemoryParameterStore':
        """Build a store from a snapshot dictionary.

        Recognised keys: ``identity`` (manufacturer, product_class, serial),
        ``parameters``, ``objects``, ``stale`` (path -> {value, as_of}),
        ``reject_writes`` and ``as_of``.
        """
        if not isinstance(snapshot, dict):
            raise ConfigurationError("Device snapshot must be a mapping", config_key="snapshot")

        identity = None
        identity_data = snapshot.get("identity")
        if identity_data is not None:
            if not isinstance(identity_data, dict):
                raise ConfigurationError(
                    "Snapshot identity must be a mapping",
                    config_key="identity",
                    actual_value=identity_data
                )
            identity = DeviceIdentity(
                manufacturer=identity_data.get("manufacturer"),
                product_class=str(identity_data.get("product_class", "") or ""),
                serial=str(identity_data.get("serial", "") or "")
            )

        stale = {}
        for path, entry in (snapshot.get("stale") or {}).items():
            if isinstance(entry, dict):
                stale[path] = (entry.get("value"), int(entry.get("as_of", 0)))
            else:
                stale[path] = (entry, 0)

        return cls(
            parameters=snapshot.get("parameters") or {},
            objects=snapshot.get("objects") or [],
            stale=stale,
            reject_writes=snapshot.get("reject_writes") or {},
            as_of=int(snapshot.get("as_of", 0)),
            identity=identity
        )

    def to_snapshot(self) -> Dict[str, Any]:
        """Current state as a snapshot dictionary, the inverse of from_snapshot()."""
        snapshot: Dict[str, Any] = {}
        if self.identity is not None:
            snapshot["identity"] = {
                "manufacturer": self.identity.manufacturer,
                "product_class": self.identity.product_class,
                "serial": self.identity.serial,
            }
        snapshot["as_of"] = self.as_of
        snapshot["parameters"] = dict(sorted(self.parameters.items()))
        snapshot["objects"] = sorted(self.objects)
        if self.stale:
            snapshot["stale"] = {p: {"value": v, "as_of": m} for p, (v, m) in sorted(self.stale.items())}
        if self.reject_writes:
            snapshot["reject_writes"] = dict(self.reject_writes)
        if self.tags:
            snapshot["tags"] = dict(sorted(self.tags.items()))
        return snapshot

    @classmethod
    def from_snapshot_file(cls, snapshot_path: Union[str, Path]) -> 'InMemoryParameterStore':
        """Load a device snapshot from a JSON or YAML file."""
        path = Path(snapshot_path)
        if not path.exists():
            raise ConfigurationError(
                f"Snapshot file not found: {path}",
                config_key="snapshot",
                actual_value=str(path)
            )

        try:
            with open(path, 'r', encoding='utf-8') as f:
                if path.suffix.lower() in ('.yaml', '.yml'):
                    data = yaml.safe_load(f)
                else:
                    data = json.load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigurationError(
                f"Invalid snapshot file format: {e}",
                config_key="snapshot",
                actual_value=str(path),
                cause=e
            )

        return cls.from_snapshot(data or {})


class ParameterStoreFactory:
    """Factory for creating parameter stores."""

    _store_registry: Dict[StoreType, Type[ParameterStore]] = {
        StoreType.IN_MEMORY: InMemoryParameterStore,
    }

    @classmethod
    def create_store(cls, store_type: StoreType, **kwargs) -> ParameterStore:
        """Create a parameter store of the specified type.

        Raises:
            ValueError: If store type is not supported
        """
        if store_type not in cls._store_registry:
            raise ValueError(f"Unsupported store type: {store_type}")

        return cls._store_registry[store_type](**kwargs)

    @classmethod
    def register_store(cls, store_type: StoreType, store_class: Type[ParameterStore]) -> None:
        """Register a store implementation, typically from a transport layer."""
        cls._store_registry[store_type] = store_class

    @classmethod
    def get_supported_types(cls) -> List[StoreType]:
        return list(cls._store_registry.keys())
