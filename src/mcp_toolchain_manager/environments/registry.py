"""In-memory environment store."""

from dataclasses import fields
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from mcp_toolchain_manager.errors import EnvironmentNotFound, InvalidRecord
from mcp_toolchain_manager.logging import get_logger
from mcp_toolchain_manager.types import (
    RECORD_FIELDS,
    EnvironmentRecord,
    ToolchainDescriptor,
)
from mcp_toolchain_manager.versions import sort_newest_first

logger = get_logger(__name__)

Observer = Callable[[List[EnvironmentRecord]], None]
RecordLike = Union[EnvironmentRecord, Mapping[str, Any]]
ToolchainLike = Union[ToolchainDescriptor, Mapping[str, Any]]


def _as_toolchain(value: ToolchainLike) -> ToolchainDescriptor:
    if isinstance(value, ToolchainDescriptor):
        return value
    try:
        return ToolchainDescriptor(
            version=str(value["version"]),
            name=value.get("name"),
            sha512=value.get("sha512"),
        )
    except (KeyError, TypeError, AttributeError) as e:
        raise InvalidRecord(f"Invalid toolchain state provided: {value!r}") from e


def _as_changes(record: Optional[RecordLike], changes: Dict[str, Any]) -> Dict[str, Any]:
    if isinstance(record, EnvironmentRecord):
        data = {f.name: getattr(record, f.name) for f in fields(record)}
    elif isinstance(record, Mapping):
        data = dict(record)
    elif record is None:
        data = {}
    else:
        raise InvalidRecord(f"Unsupported environment state: {record!r}")
    data.update(changes)

    if not data.get("version"):
        raise InvalidRecord("No environment state provided")

    unknown = set(data) - RECORD_FIELDS
    if unknown:
        raise InvalidRecord(f"Unknown environment fields: {', '.join(sorted(unknown))}")

    if "toolchains" in data:
        data["toolchains"] = tuple(_as_toolchain(t) for t in data["toolchains"] or ())
    if data.get("toolchain_dir") is not None:
        data["toolchain_dir"] = Path(data["toolchain_dir"])
    return data


class Registry:
    """Ordered collection of environment records keyed by version.

    Every mutation re-sorts the collection newest first and publishes the
    full list to all observers. Mutations never await, so ``update`` is an
    atomic read-modify-write on the event loop.
    """

    def __init__(self) -> None:
        self._records: List[EnvironmentRecord] = []
        self._observers: List[Observer] = []

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self):
        return iter(list(self._records))

    def snapshot(self) -> List[EnvironmentRecord]:
        return list(self._records)

    def subscribe(self, observer: Observer) -> None:
        self._observers.append(observer)

    def unsubscribe(self, observer: Observer) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def get(self, version: str) -> Optional[EnvironmentRecord]:
        return next((r for r in self._records if r.version == version), None)

    def require(self, version: str) -> EnvironmentRecord:
        record = self.get(version)
        if record is None:
            raise EnvironmentNotFound(version)
        return record

    def upsert(self, record: Optional[RecordLike] = None, **changes: Any) -> EnvironmentRecord:
        """Append a new record or merge the given fields over an existing one.

        Mappings and keyword changes merge field by field. A whole
        ``EnvironmentRecord`` carries every field, so it replaces the stored
        state apart from the fields overridden by ``changes``.
        """
        if record is None and not changes:
            raise InvalidRecord("No environment state provided")

        data = _as_changes(record, changes)
        version = data["version"]
        index = self._index(version)

        if index < 0:
            updated = EnvironmentRecord(**data)
            self._records.append(updated)
        else:
            updated = EnvironmentRecord(**{**self._fields(self._records[index]), **data})
            self._records[index] = updated

        self._publish()
        return updated

    def upsert_toolchain(self, env_version: str, toolchain: Optional[ToolchainLike]) -> EnvironmentRecord:
        """Append or merge a toolchain into an environment, keyed by toolchain version."""
        if toolchain is None:
            raise InvalidRecord("No toolchain state provided")
        descriptor = _as_toolchain(toolchain)
        record = self.require(env_version)

        toolchains = list(record.toolchains)
        index = next(
            (i for i, t in enumerate(toolchains) if t.version == descriptor.version), -1
        )
        if index < 0:
            toolchains.append(descriptor)
        else:
            toolchains[index] = toolchains[index].merge(descriptor)

        toolchains = sort_newest_first(toolchains, key=lambda t: t.version)
        return self.upsert(version=env_version, toolchains=tuple(toolchains))

    def update(
        self,
        version: str,
        fn: Callable[[Optional[EnvironmentRecord]], Optional[Dict[str, Any]]],
    ) -> Optional[EnvironmentRecord]:
        """Read-modify-write a record; ``fn`` returns the changes or None to skip."""
        changes = fn(self.get(version))
        if not changes:
            return self.get(version)
        return self.upsert(version=version, **changes)

    def remove(self, version: str) -> None:
        index = self._index(version)
        if index < 0:
            return
        del self._records[index]
        logger.debug({"event": "environment_removed", "version": version})
        self._publish()

    def clear(self) -> None:
        self._records = []
        self._publish()

    def _index(self, version: str) -> int:
        return next(
            (i for i, r in enumerate(self._records) if r.version == version), -1
        )

    @staticmethod
    def _fields(record: EnvironmentRecord) -> Dict[str, Any]:
        return {f.name: getattr(record, f.name) for f in fields(record)}

    def _publish(self) -> None:
        self._records = sort_newest_first(self._records, key=lambda r: r.version)
        snapshot = self.snapshot()
        for observer in list(self._observers):
            observer(snapshot)
