"""Representation of the resources and events flowing through the watch engine.

A watch stream delivers events for three kinds of resources in a project:
Stages (deployment targets), Warehouses (artifact sources) and Freight
(versioned artifact bundles). The payload of each resource is kept opaque
except for the few fields the derived views read from it.
"""

from dataclasses import dataclass, field
from enum import StrEnum
import logging
from pathlib import Path
from typing import Any

import aiofiles
import yaml
from mashumaro import DataClassDictMixin
from mashumaro.codecs.yaml import yaml_encode
from mashumaro.config import BaseConfig

from .exceptions import InputException

__all__ = [
    "ResourceKind",
    "ChangeType",
    "PromotionPhase",
    "ResourceId",
    "Resource",
    "WatchEvent",
    "ArtifactRef",
    "FreightReference",
    "PromotionSignal",
    "referenced_freight",
    "parse_events",
    "read_events",
]

_LOGGER = logging.getLogger(__name__)


class ResourceKind(StrEnum):
    """The closed set of resource kinds tracked by the cache."""

    STAGE = "Stage"
    """A deployment target that receives Freight through promotions."""

    WAREHOUSE = "Warehouse"
    """A subscription describing where artifact versions are discovered."""

    FREIGHT = "Freight"
    """An immutable, versioned bundle of artifact references."""


class ChangeType(StrEnum):
    """Type of a watch event."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


class PromotionPhase(StrEnum):
    """Phase of a promotion as reported on a Stage."""

    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    ERRORED = "Errored"
    ABORTED = "Aborted"

    @property
    def is_terminal(self) -> bool:
        """Return True if the promotion can no longer change phase."""
        return self not in (PromotionPhase.PENDING, PromotionPhase.RUNNING)


@dataclass(frozen=True)
class BaseManifest(DataClassDictMixin):
    """Base class for all serializable objects."""

    def yaml(self) -> str:
        """Return a YAML string representation of the object."""
        return yaml_encode(self, self.__class__)  # type: ignore[return-value]

    class Config(BaseConfig):
        omit_none = True


@dataclass(frozen=True, order=True)
class ResourceId:
    """Identifier for a resource within the cache."""

    scope: str
    kind: str
    name: str

    def __str__(self) -> str:
        """Return the kind, scope and name concatenated as an id."""
        return f"{self.kind}/{self.scope}/{self.name}"


@dataclass(frozen=True)
class Resource(BaseManifest):
    """A resource and its opaque payload.

    The cache identifies resources by `id` only. Payloads are always replaced
    wholesale when a resource is updated.
    """

    scope: str
    """The project the resource belongs to."""

    kind: ResourceKind
    """The kind of the resource."""

    name: str
    """The name of the resource, unique within the scope and kind."""

    payload: dict[str, Any] = field(default_factory=dict)
    """The full object as delivered by the server."""

    @property
    def id(self) -> ResourceId:
        """Identity of the resource used for cache lookups."""
        return ResourceId(self.scope, self.kind, self.name)

    @classmethod
    def parse_doc(
        cls,
        doc: Any,
        scope: str | None = None,
        kind: str | None = None,
    ) -> "Resource":
        """Parse a Resource from a raw object.

        The scope and kind default to the values given when the object does
        not carry them itself, which is common for objects in watch events.
        """
        if not isinstance(doc, dict):
            raise InputException(f"Invalid object was not a dictionary: {doc}")
        metadata = doc.get("metadata") or {}
        if not (name := metadata.get("name")):
            raise InputException(f"Invalid object missing metadata.name: {doc}")
        if not (resource_scope := metadata.get("namespace") or scope):
            raise InputException(f"Invalid object missing metadata.namespace: {doc}")
        if not (resource_kind := doc.get("kind") or kind):
            raise InputException(f"Invalid object missing kind: {doc}")
        try:
            parsed_kind = ResourceKind(resource_kind)
        except ValueError:
            raise InputException(f"Unsupported kind '{resource_kind}': {doc}") from None
        return cls(scope=resource_scope, kind=parsed_kind, name=name, payload=doc)


@dataclass(frozen=True)
class WatchEvent:
    """A single change delivered by a watch stream.

    A `resource` of None marks a malformed event whose object could not be
    identified. Such events are dropped by the reducer.
    """

    scope: str
    kind: ResourceKind
    change_type: ChangeType
    resource: Resource | None = None

    @classmethod
    def parse_doc(
        cls,
        doc: Any,
        scope: str | None = None,
        kind: str | None = None,
    ) -> "WatchEvent":
        """Parse a WatchEvent from its wire representation.

        The wire shape is `{"type": "ADDED", "object": {...}}`. Recordings may
        also carry top level `scope` and `kind` keys.
        """
        if not isinstance(doc, dict):
            raise InputException(f"Invalid event was not a dictionary: {doc}")
        if not (event_type := doc.get("type")):
            raise InputException(f"Invalid event missing type: {doc}")
        try:
            change_type = ChangeType(str(event_type).upper())
        except ValueError:
            raise InputException(f"Unsupported event type '{event_type}'") from None

        scope = doc.get("scope") or scope
        kind = doc.get("kind") or kind
        resource: Resource | None = None
        try:
            resource = Resource.parse_doc(doc.get("object"), scope=scope, kind=kind)
        except InputException as err:
            _LOGGER.debug("Event %s has no usable identity: %s", change_type, err)

        if resource is not None:
            scope = scope or resource.scope
            kind = kind or resource.kind
        if not scope or not kind:
            raise InputException(f"Unable to determine scope and kind of event: {doc}")
        try:
            event_kind = ResourceKind(kind)
        except ValueError:
            raise InputException(f"Unsupported kind '{kind}': {doc}") from None
        return cls(
            scope=scope, kind=event_kind, change_type=change_type, resource=resource
        )


@dataclass(frozen=True)
class ArtifactRef(BaseManifest):
    """A single artifact version within a piece of Freight."""

    repo: str
    """The repository of the artifact (image, chart or git repository)."""

    tag: str
    """The version of the artifact (tag, chart version or commit)."""

    def __str__(self) -> str:
        return f"{self.repo}:{self.tag}"


def _chart_repo(chart: dict[str, Any]) -> str | None:
    repo_url = chart.get("repoURL") or chart.get("registryURL")
    if not repo_url:
        return None
    if name := chart.get("name"):
        return f"{str(repo_url).rstrip('/')}/{name}"
    return str(repo_url)


@dataclass(frozen=True)
class FreightReference(BaseManifest):
    """The artifact versions carried by a piece of Freight."""

    name: str | None = None
    """The name of the Freight, when known."""

    artifacts: list[ArtifactRef] = field(default_factory=list)
    """Unique artifact versions in the order they were listed."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "FreightReference":
        """Parse a FreightReference from a freight object.

        Accepts both a flat `artifacts` list of `{repo, tag}` and the full
        Freight shape with `images`, `charts` and `commits`.
        """
        refs: list[ArtifactRef] = []

        def add(repo: Any, tag: Any) -> None:
            if not repo or not tag:
                _LOGGER.debug("Skipping incomplete artifact reference %s:%s", repo, tag)
                return
            ref = ArtifactRef(repo=str(repo), tag=str(tag))
            if ref not in refs:
                refs.append(ref)

        for item in _dicts(doc.get("artifacts")):
            add(item.get("repo"), item.get("tag"))
        for image in _dicts(doc.get("images")):
            add(image.get("repoURL"), image.get("tag"))
        for chart in _dicts(doc.get("charts")):
            add(_chart_repo(chart), chart.get("version"))
        for commit in _dicts(doc.get("commits")):
            add(commit.get("repoURL"), commit.get("tag") or commit.get("id"))

        return cls(name=_freight_name(doc), artifacts=refs)


def _dicts(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _freight_name(doc: dict[str, Any]) -> str | None:
    """Return the name of a Freight, which Stages embed as its `id`."""
    return doc.get("name") or doc.get("id") or (doc.get("metadata") or {}).get("name")


def _last_promotion(payload: dict[str, Any]) -> dict[str, Any] | None:
    status = payload.get("status")
    last = status.get("lastPromotion") if isinstance(status, dict) else None
    if last is None:
        last = payload.get("lastPromotion")
    return last if isinstance(last, dict) else None


@dataclass(frozen=True)
class PromotionSignal:
    """The most recent promotion reported on a Stage."""

    target_name: str
    phase: str
    freight: FreightReference | None = None

    @property
    def succeeded(self) -> bool:
        """Return True if the promotion completed successfully."""
        return self.phase.lower() == PromotionPhase.SUCCEEDED.lower()

    @classmethod
    def from_resource(cls, resource: Resource) -> "PromotionSignal | None":
        """Extract the last promotion from a Stage, or None if it has none."""
        if (last := _last_promotion(resource.payload)) is None:
            return None
        phase = last.get("status")
        if isinstance(phase, dict):
            phase = phase.get("phase")
        freight = None
        if isinstance(freight_doc := last.get("freight"), dict):
            freight = FreightReference.parse_doc(freight_doc)
        return cls(
            target_name=resource.payload.get("targetName") or resource.name,
            phase=str(phase or ""),
            freight=freight,
        )


def referenced_freight(resource: Resource) -> set[str]:
    """Return the names of the Freight a Stage currently refers to."""
    names: set[str] = set()
    status = resource.payload.get("status")
    if not isinstance(status, dict):
        return names
    if isinstance(current := status.get("currentFreight"), dict):
        if name := _freight_name(current):
            names.add(name)
    for entry in _dicts(status.get("freightHistory")):
        items = entry.get("items")
        values = items.values() if isinstance(items, dict) else items
        for item in _dicts(list(values or [])):
            if name := _freight_name(item):
                names.add(name)
    for freight in _dicts(status.get("history")):
        if name := _freight_name(freight):
            names.add(name)
    if (signal := PromotionSignal.from_resource(resource)) is not None:
        if signal.succeeded and signal.freight and signal.freight.name:
            names.add(signal.freight.name)
    return names


def parse_events(content: str) -> list[WatchEvent]:
    """Parse a YAML multi-document recording of watch events."""
    events = []
    for doc in yaml.safe_load_all(content):
        if doc is None:
            continue
        events.append(WatchEvent.parse_doc(doc))
    return events


async def read_events(path: Path) -> list[WatchEvent]:
    """Return the events of a recorded watch stream file."""
    async with aiofiles.open(str(path)) as events_file:
        content = await events_file.read()
    if not content:
        raise InputException(f"Event recording {path} is empty")
    try:
        return parse_events(content)
    except yaml.YAMLError as err:
        raise InputException(f"Event recording {path} is not valid yaml: {err}") from err
