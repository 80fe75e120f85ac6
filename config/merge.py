# config/merge.py
"""
Layered merge, snapshot and YAML (de)serialisation for InstallConfig.

Merge rules (base wins):
  * scalars  - incoming fills the base value only when the base is unset
  * lists    - incoming entries are appended after the base entries
  * dicts    - incoming keys are added when missing from the base
  * nested dataclasses recurse under the same rules
"""
from __future__ import annotations
import copy
import dataclasses
import typing
from typing import Any, Union

import yaml

from config.model import InstallConfig, SANITIZE_MASK
from errors import MergeError
from logger import log


def _is_zero(value: Any) -> bool:
    if dataclasses.is_dataclass(value):
        return all(_is_zero(getattr(value, f.name)) for f in dataclasses.fields(value))
    return value in (None, "", 0, False) or value == [] or value == {}


def merge(base, incoming) -> None:
    """Merge `incoming` into `base` in place."""
    if type(base) is not type(incoming):
        raise MergeError(
            f"cannot merge {type(incoming).__name__} into {type(base).__name__}"
        )
    for f in dataclasses.fields(base):
        dst = getattr(base, f.name)
        src = getattr(incoming, f.name)
        if dataclasses.is_dataclass(dst):
            merge(dst, src)
        elif isinstance(dst, list):
            setattr(base, f.name, dst + copy.deepcopy(src))
        elif isinstance(dst, dict):
            for key, value in src.items():
                if key not in dst or _is_zero(dst[key]):
                    dst[key] = copy.deepcopy(value)
        elif _is_zero(dst) and not _is_zero(src):
            setattr(base, f.name, copy.deepcopy(src))


def deep_copy(config: InstallConfig) -> InstallConfig:
    return copy.deepcopy(config)


def sanitized(config: InstallConfig) -> InstallConfig:
    """Read-only copy with password, token and wifi passphrases masked."""
    snapshot = copy.deepcopy(config)
    if snapshot.os.password:
        snapshot.os.password = SANITIZE_MASK
    if snapshot.token:
        snapshot.token = SANITIZE_MASK
    for wifi in snapshot.os.wifi:
        wifi.passphrase = SANITIZE_MASK
    return snapshot


# -- YAML ---------------------------------------------------------------------

def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _key(f: dataclasses.Field) -> str:
    return f.metadata.get("key") or _camel(f.name)


def to_dict(obj: Any) -> Any:
    """Convert a config dataclass to plain YAML-ready data, omitting unset fields."""
    if dataclasses.is_dataclass(obj):
        out = {}
        for f in dataclasses.fields(obj):
            value = getattr(obj, f.name)
            if _is_zero(value):
                continue
            out[_key(f)] = to_dict(value)
        return out
    if isinstance(obj, list):
        return [to_dict(v) for v in obj]
    if isinstance(obj, dict):
        return {k: to_dict(v) for k, v in obj.items()}
    return obj


def _convert(tp: Any, value: Any, path: str) -> Any:
    origin = typing.get_origin(tp)
    if dataclasses.is_dataclass(tp):
        return from_dict(tp, value, path)
    if origin in (list, typing.List):
        if not isinstance(value, list):
            raise MergeError(f"{path}: expected a list, got {type(value).__name__}")
        (item_tp,) = typing.get_args(tp)
        return [_convert(item_tp, v, f"{path}[{i}]") for i, v in enumerate(value)]
    if origin in (dict, typing.Dict):
        if not isinstance(value, dict):
            raise MergeError(f"{path}: expected a mapping, got {type(value).__name__}")
        _, value_tp = typing.get_args(tp)
        return {str(k): _convert(value_tp, v, f"{path}.{k}") for k, v in value.items()}
    if tp is bool:
        if not isinstance(value, bool):
            raise MergeError(f"{path}: expected true/false, got {value!r}")
        return value
    if tp is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise MergeError(f"{path}: expected an integer, got {value!r}")
        return value
    if tp is str:
        if isinstance(value, (dict, list)):
            raise MergeError(f"{path}: expected a string, got {type(value).__name__}")
        return str(value)
    return value


def from_dict(cls, data: Any, path: str = ""):
    """Build a config dataclass from parsed YAML; unknown keys are ignored."""
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise MergeError(f"{path or 'config'}: expected a mapping, got {type(data).__name__}")
    hints = typing.get_type_hints(cls)
    kwargs = {}
    known = set()
    for f in dataclasses.fields(cls):
        key = _key(f)
        known.add(key)
        if key in data and data[key] is not None:
            kwargs[f.name] = _convert(hints[f.name], data[key], f"{path}.{key}".lstrip("."))
    unknown = set(data) - known
    if unknown:
        log.debug("Ignoring unknown config keys under '%s': %s", path or "config", sorted(unknown))
    return cls(**kwargs)


def load_yaml(raw: Union[str, bytes]) -> InstallConfig:
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise MergeError(f"invalid YAML: {e}") from e
    return from_dict(InstallConfig, data)


def to_yaml(config: InstallConfig, sanitize: bool = True) -> str:
    if sanitize:
        config = sanitized(config)
    return yaml.safe_dump(to_dict(config), default_flow_style=False, sort_keys=False)
