"""
Explicit registry of resource kinds and their wire encoding.

A Scheme is built once and handed to whatever needs to turn manifests into
objects (the object store, manifest loaders); nothing registers itself at
import time.

Wire encoding follows the usual manifest conventions: camelCase keys,
``apiVersion`` and ``kind`` at the top level, None-valued fields omitted.
A field can override its key with ``field(metadata={"json": "clusterIP"})``.
"""

import dataclasses
from pathlib import Path
from typing import Any, Dict, List, Type, Union, get_args, get_origin, get_type_hints

import yaml

from fleetsync.api.types import ALL_KINDS, Resource
from fleetsync.errors import UnknownKindError


def _json_name(f: dataclasses.Field) -> str:
    override = f.metadata.get("json")
    if override:
        return override
    head, *rest = f.name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _encode_value(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        encoded = {}
        for f in dataclasses.fields(value):
            item = getattr(value, f.name)
            if item is None:
                continue
            encoded[_json_name(f)] = _encode_value(item)
        return encoded
    if isinstance(value, list):
        return [_encode_value(item) for item in value]
    if isinstance(value, dict):
        return {k: _encode_value(v) for k, v in value.items()}
    return value


def _decode_value(tp: Any, value: Any) -> Any:
    if value is None:
        return None

    origin = get_origin(tp)
    args = get_args(tp)

    if origin is Union:
        for candidate in args:
            if candidate is type(None):
                continue
            if dataclasses.is_dataclass(candidate) and isinstance(value, dict):
                return _decode_dataclass(candidate, value)
            if get_origin(candidate) is list and isinstance(value, list):
                return _decode_value(candidate, value)
        return value
    if origin is list:
        return [_decode_value(args[0], item) for item in value]
    if origin is dict:
        return {k: _decode_value(args[1], v) for k, v in value.items()}
    if dataclasses.is_dataclass(tp):
        return _decode_dataclass(tp, value)
    return value


def _decode_dataclass(cls: type, data: Dict[str, Any]) -> Any:
    if not isinstance(data, dict):
        raise ValueError(f"expected a mapping for {cls.__name__}, got {type(data).__name__}")

    hints = get_type_hints(cls)
    kwargs = {}
    for f in dataclasses.fields(cls):
        key = _json_name(f)
        if key in data:
            kwargs[f.name] = _decode_value(hints[f.name], data[key])
    return cls(**kwargs)


class Scheme:
    """
    Registry mapping kind names to resource classes.

    Example:
        >>> scheme = Scheme()
        >>> scheme.register(Service, ServiceExport)
        >>> scheme.decode({"kind": "Service", "metadata": {"name": "web"}})
    """

    def __init__(self):
        self._kinds: Dict[str, Type[Resource]] = {}

    def register(self, *classes: Type[Resource]) -> None:
        """
        Register resource classes.

        Args:
            classes: Resource subclasses with a KIND

        Raises:
            ValueError: If a kind is already registered to a different class
        """
        for cls in classes:
            if not cls.KIND:
                raise ValueError(f"{cls.__name__} has no KIND")
            registered = self._kinds.get(cls.KIND)
            if registered is not None and registered is not cls:
                raise ValueError(f"kind {cls.KIND} is already registered to {registered.__name__}")
            self._kinds[cls.KIND] = cls

    def kinds(self) -> List[str]:
        return sorted(self._kinds)

    def is_registered(self, cls: Type[Resource]) -> bool:
        return self._kinds.get(cls.KIND) is cls

    def class_for(self, kind: str) -> Type[Resource]:
        """
        Look up the class registered for a kind.

        Raises:
            UnknownKindError: If the kind is not registered
        """
        try:
            return self._kinds[kind]
        except KeyError:
            raise UnknownKindError(f"kind {kind!r} is not registered") from None

    def encode(self, obj: Resource) -> Dict[str, Any]:
        """
        Encode an object as a manifest dictionary.

        Raises:
            UnknownKindError: If the object's kind is not registered
        """
        self.class_for(obj.kind)
        manifest = {"apiVersion": obj.api_version, "kind": obj.kind}
        manifest.update(_encode_value(obj))
        return manifest

    def decode(self, manifest: Dict[str, Any]) -> Resource:
        """
        Decode a manifest dictionary into a new object.

        Unknown keys are ignored.

        Raises:
            UnknownKindError: If the manifest's kind is not registered
            ValueError: If the manifest is not a mapping
        """
        if not isinstance(manifest, dict):
            raise ValueError(f"manifest must be a mapping, got {type(manifest).__name__}")
        cls = self.class_for(manifest.get("kind", ""))
        return _decode_dataclass(cls, manifest)


def default_scheme() -> Scheme:
    """Build a new scheme holding every kind this package reads or writes."""
    scheme = Scheme()
    scheme.register(*ALL_KINDS)
    return scheme


def load_manifests(path: Union[str, Path], scheme: Scheme) -> List[Resource]:
    """
    Load every manifest from a multi-document YAML file.

    Empty documents are skipped.

    Args:
        path: YAML file path
        scheme: Scheme used to resolve kinds

    Returns:
        Decoded objects in file order
    """
    with open(path, "r") as f:
        documents = list(yaml.safe_load_all(f))
    return [scheme.decode(doc) for doc in documents if doc]
