from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

import yaml

from .config import ConfigError, ScalerError

LOGGER = logging.getLogger("prombench_scaler.manifests")

MANIFEST_SUFFIXES = (".yaml", ".yml")

_PLACEHOLDER = re.compile(r"{{\s*(?:(normalise)\s+)?\.([A-Za-z_][A-Za-z0-9_]*)\s*}}")


class ManifestError(ScalerError):
    """Raised when manifests cannot be found, rendered or parsed."""


class ResourceKind(str, enum.Enum):
    DEPLOYMENT = "Deployment"
    STATEFUL_SET = "StatefulSet"
    DAEMON_SET = "DaemonSet"
    JOB = "Job"
    SERVICE = "Service"
    INGRESS = "Ingress"
    CONFIG_MAP = "ConfigMap"
    SECRET = "Secret"
    NAMESPACE = "Namespace"
    SERVICE_ACCOUNT = "ServiceAccount"
    PERSISTENT_VOLUME_CLAIM = "PersistentVolumeClaim"
    ROLE = "Role"
    ROLE_BINDING = "RoleBinding"
    CLUSTER_ROLE = "ClusterRole"
    CLUSTER_ROLE_BINDING = "ClusterRoleBinding"

    @classmethod
    def from_manifest(cls, kind: str) -> "ResourceKind":
        lowered = kind.lower()
        for member in cls:
            if member.value.lower() == lowered:
                return member
        raise ValueError(kind)


@dataclass
class ManifestObject:
    kind: ResourceKind
    body: dict[str, Any]

    @property
    def name(self) -> str:
        return str(self.body.get("metadata", {}).get("name", "<unnamed>"))

    @property
    def namespace(self) -> str:
        return str(self.body.get("metadata", {}).get("namespace") or "default")


@dataclass
class Resource:
    """Objects declared by a single manifest file."""

    file_name: str
    objects: list[ManifestObject] = field(default_factory=list)


def parse_variables(pairs: Iterable[str] | None) -> dict[str, str]:
    """Turn ``KEY:VALUE`` (or ``KEY=VALUE``) arguments into a mapping."""
    variables: dict[str, str] = {}
    for pair in pairs or ():
        match = re.match(r"^([^:=]+)[:=](.*)$", pair)
        if not match or not match.group(1).strip():
            raise ConfigError(f"expected KEY:VALUE, got {pair!r}")
        variables[match.group(1).strip()] = match.group(2)
    return variables


def normalise(value: str) -> str:
    return value.replace(".", "-").replace("/", "-")


def render_template(text: str, variables: Mapping[str, str]) -> str:
    def substitute(match: re.Match[str]) -> str:
        func, key = match.group(1), match.group(2)
        if key not in variables:
            raise ManifestError(f"no value given for template variable {key!r}")
        value = str(variables[key])
        return normalise(value) if func else value

    return _PLACEHOLDER.sub(substitute, text)


def discover_manifest_files(paths: Sequence[str | Path]) -> list[Path]:
    files: list[Path] = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            found = sorted(
                child
                for child in path.iterdir()
                if child.is_file() and child.suffix in MANIFEST_SUFFIXES
            )
            if not found:
                LOGGER.warning("No manifest files found in %s", path)
            files.extend(found)
        elif path.is_file():
            files.append(path)
        else:
            raise ManifestError(f"manifest path does not exist: {path}")
    return files


def parse_objects(text: str, file_name: str) -> list[ManifestObject]:
    try:
        documents = list(yaml.safe_load_all(text))
    except yaml.YAMLError as exc:
        raise ManifestError(f"error parsing {file_name}: {exc}") from exc

    objects: list[ManifestObject] = []
    for index, document in enumerate(documents):
        if document is None:
            continue
        if not isinstance(document, dict):
            raise ManifestError(
                f"{file_name}: document {index} is not a mapping"
            )
        kind = document.get("kind")
        if not kind:
            raise ManifestError(f"{file_name}: document {index} has no kind")
        for section in ("metadata", "spec"):
            if section in document and not isinstance(document[section], dict):
                raise ManifestError(
                    f"{file_name}: document {index} has a {section} that is not a mapping"
                )
        try:
            resource_kind = ResourceKind.from_manifest(str(kind))
        except ValueError:
            raise ManifestError(
                f"{file_name}: unsupported resource kind {kind!r}"
            ) from None
        objects.append(ManifestObject(kind=resource_kind, body=document))
    return objects


def load_resources(
    paths: Sequence[str | Path],
    variables: Mapping[str, str] | None = None,
) -> list[Resource]:
    variables = variables or {}
    resources: list[Resource] = []
    for path in discover_manifest_files(paths):
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ManifestError(f"error reading {path}: {exc}") from exc
        try:
            rendered = render_template(text, variables)
        except ManifestError as exc:
            raise ManifestError(f"{path.name}: {exc}") from exc
        objects = parse_objects(rendered, path.name)
        LOGGER.debug("Loaded %d object(s) from %s", len(objects), path)
        resources.append(Resource(file_name=path.name, objects=objects))
    return resources


__all__ = [
    "ManifestError",
    "ManifestObject",
    "Resource",
    "ResourceKind",
    "discover_manifest_files",
    "load_resources",
    "parse_objects",
    "parse_variables",
    "render_template",
]
