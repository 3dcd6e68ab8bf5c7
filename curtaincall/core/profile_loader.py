"""Device profile loading and validation for YAML-based profiles."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from curtaincall.core.errors import ProfileLoadError, ProfileValidationError
from curtaincall.core.model import DeviceProfile, MatchRules, Timing

_HEX_RE = re.compile(r"^[0-9a-f]+$")
_UUID_RE = re.compile(r"^[0-9a-f]{4}$|^[0-9a-f]{8}$|^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")
_MAX_PAYLOAD_BYTES = 20
PROFILE_FILE = "profile.yaml"
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


UniqueKeyLoader.yaml_implicit_resolvers = {
    key: list(value) for key, value in yaml.SafeLoader.yaml_implicit_resolvers.items()
}

for first_char, mappings in list(UniqueKeyLoader.yaml_implicit_resolvers.items()):
    UniqueKeyLoader.yaml_implicit_resolvers[first_char] = [
        (tag, regexp)
        for tag, regexp in mappings
        if tag != "tag:yaml.org,2002:bool"
    ]


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ProfileValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedProfile:
    profile: DeviceProfile
    source: str
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("curtaincall.schemas").joinpath("profile.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _user_profile_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "curtaincall" / PROFILE_FILE


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ProfileLoadError(f"Could not read profile file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ProfileValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ProfileValidationError(f"Profile file {path} must contain a mapping at root")
    return loaded


def _normalize_hex(value: str, *, context: str) -> bytes:
    normalized = value.strip().lower().replace(" ", "")
    if len(normalized) == 0:
        raise ProfileValidationError(f"{context} must not be empty")
    if len(normalized) % 2 != 0:
        raise ProfileValidationError(f"{context} must have even-length hex")
    if not _HEX_RE.match(normalized):
        raise ProfileValidationError(f"{context} must contain only [0-9a-f]")
    payload = bytes.fromhex(normalized)
    if len(payload) > _MAX_PAYLOAD_BYTES:
        raise ProfileValidationError(
            f"{context} exceeds max payload size {_MAX_PAYLOAD_BYTES} bytes"
        )
    return payload


def _normalize_uuid(value: str, *, context: str) -> str:
    normalized = value.strip().lower()
    if not _UUID_RE.match(normalized):
        raise ProfileValidationError(
            f"{context} must be a 16-bit, 32-bit, or 128-bit UUID string"
        )
    return normalized


def _build_timing(doc: dict[str, Any]) -> Timing:
    defaults = Timing()
    timing = doc.get("timing", {})
    return Timing(
        scan_window_s=float(timing.get("scan_window_s", defaults.scan_window_s)),
        connect_timeout_s=float(timing.get("connect_timeout_s", defaults.connect_timeout_s)),
        reconnect_delay_s=float(timing.get("reconnect_delay_s", defaults.reconnect_delay_s)),
        wake_delay_s=float(timing.get("wake_delay_s", defaults.wake_delay_s)),
        burst_spacing_s=float(timing.get("burst_spacing_s", defaults.burst_spacing_s)),
        burst_count=int(timing.get("burst_count", defaults.burst_count)),
        preconnect_s=int(timing.get("preconnect_s", defaults.preconnect_s)),
        alert_duration_s=float(timing.get("alert_duration_s", defaults.alert_duration_s)),
        tick_s=float(timing.get("tick_s", defaults.tick_s)),
    )


def _build_profile(doc: dict[str, Any], source: Path | Traversable) -> DeviceProfile:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ProfileValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    return DeviceProfile(
        id=doc["id"],
        name=doc["name"],
        match=MatchRules(name_contains=tuple(doc["match"]["name_contains"])),
        characteristic_uuid=_normalize_uuid(
            doc["endpoint"]["characteristic_uuid"],
            context=f"{doc['id']}.endpoint.characteristic_uuid",
        ),
        payload=_normalize_hex(doc["command"]["payload"], context=f"{doc['id']}.command.payload"),
        timing=_build_timing(doc),
    )


def _packaged_profile_path() -> Traversable:
    return resources.files("curtaincall.profiles").joinpath("default.yaml")


def load_profile(path: Path | None = None) -> LoadedProfile:
    """Resolve the active profile: explicit path, then user config, then the packaged default."""
    packaged_path = _packaged_profile_path()
    profile = _build_profile(_read_yaml(packaged_path), packaged_path)
    source = str(packaged_path)
    warnings: list[str] = []

    candidates: list[Path] = []
    user_path = _user_profile_path()
    if user_path.is_file():
        candidates.append(user_path)
    if path is not None:
        if not path.is_file():
            raise ProfileLoadError(f"Profile file {path} does not exist")
        candidates.append(path)

    for candidate in candidates:
        override = _build_profile(_read_yaml(candidate), candidate)
        if override.id == profile.id:
            warning = f"Profile '{override.id}' from {candidate} overrides {source}"
            LOGGER.warning(warning)
            warnings.append(warning)
        profile = override
        source = str(candidate)

    return LoadedProfile(profile=profile, source=source, warnings=tuple(warnings))
