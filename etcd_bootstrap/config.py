from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

try:
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError as exc:  # pragma: no cover - Python < 3.11 guard
    raise SystemExit("python 3.11+ is required to load TOML bootstrap configs") from exc

from .bootstrap import DEFAULT_OUTPUT
from .cloud import Instance
from .errors import BootstrapError
from .etcd import DEFAULT_TIMEOUT

PROVIDERS = ("static", "gcp")


@dataclass(slots=True)
class StaticCloudConfig:
    """Inventory listed directly in the config file."""

    instances: list[Instance] = field(default_factory=list)
    local: str | None = None


@dataclass(slots=True)
class GCPCloudConfig:
    """Label selectors for Google Compute Engine discovery."""

    project_id: str | None = None
    environment: str | None = None
    role: str | None = None


@dataclass(slots=True)
class BootstrapConfig:
    """Fully parsed bootstrap configuration."""

    provider: str | None = None
    output: Path = DEFAULT_OUTPUT
    static: StaticCloudConfig = field(default_factory=StaticCloudConfig)
    gcp: GCPCloudConfig = field(default_factory=GCPCloudConfig)
    etcd_timeout: float = DEFAULT_TIMEOUT

    def validate(self) -> None:
        if self.provider not in PROVIDERS:
            choices = ", ".join(repr(name) for name in PROVIDERS)
            raise BootstrapError(f"Cloud provider must be one of {choices}, got {self.provider!r}.")
        if self.provider == "static":
            if not self.static.instances:
                raise BootstrapError(
                    "At least one instance must be defined under cloud.static.instances."
                )
            if not self.static.local:
                raise BootstrapError("cloud.static.local must name the local instance id.")
            known = {instance.instance_id for instance in self.static.instances}
            if self.static.local not in known:
                raise BootstrapError(
                    f"cloud.static.local {self.static.local!r} is not a listed instance."
                )
        if self.provider == "gcp" and (not self.gcp.environment or not self.gcp.role):
            raise BootstrapError("GCP discovery requires both an environment and a role label.")
        if self.etcd_timeout <= 0:
            raise BootstrapError("etcd.timeout must be a positive number of seconds.")


def _expand_path(value: str, *, base: Path) -> Path:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = (base / path).resolve()
    return path


def _optional_str(section: dict[str, Any], key: str) -> str | None:
    value = section.get(key)
    if value is None:
        return None
    return str(value).strip() or None


def _table(parent: dict[str, Any], key: str, label: str) -> dict[str, Any]:
    section = parent.get(key, {})
    if not isinstance(section, dict):
        raise BootstrapError(f"{label} must be a table.")
    return section


def _load_static_instances(raw: Any) -> list[Instance]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise BootstrapError("cloud.static.instances must be a list of tables.")
    instances: list[Instance] = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise BootstrapError("Instance entries must be tables (TOML dictionaries).")
        instance_id = _optional_str(entry, "id")
        ip = _optional_str(entry, "ip")
        if not instance_id or not ip:
            raise BootstrapError("Each static instance requires an id and an ip.")
        instances.append(Instance(instance_id=instance_id, private_ip=ip))
    return instances


def load_config(path: Path) -> BootstrapConfig:
    if not path.exists():
        raise BootstrapError(f"Bootstrap configuration not found: {path}")

    try:
        data = tomllib.loads(path.read_text())
    except tomllib.TOMLDecodeError as exc:
        raise BootstrapError(f"Invalid TOML in {path}: {exc}") from exc
    base_dir = path.parent

    output_value = data.get("output")
    output = _expand_path(str(output_value), base=base_dir) if output_value else DEFAULT_OUTPUT

    cloud_section = _table(data, "cloud", "[cloud]")
    static_section = _table(cloud_section, "static", "[cloud.static]")
    gcp_section = _table(cloud_section, "gcp", "[cloud.gcp]")

    static = StaticCloudConfig(
        instances=_load_static_instances(static_section.get("instances")),
        local=_optional_str(static_section, "local"),
    )
    gcp = GCPCloudConfig(
        project_id=_optional_str(gcp_section, "project"),
        environment=_optional_str(gcp_section, "environment"),
        role=_optional_str(gcp_section, "role"),
    )

    etcd_section = _table(data, "etcd", "[etcd]")
    timeout_value = etcd_section.get("timeout")
    try:
        etcd_timeout = float(timeout_value) if timeout_value is not None else DEFAULT_TIMEOUT
    except (TypeError, ValueError) as exc:
        raise BootstrapError(f"etcd.timeout must be a number, got {timeout_value!r}.") from exc

    return BootstrapConfig(
        provider=_optional_str(cloud_section, "provider"),
        output=output,
        static=static,
        gcp=gcp,
        etcd_timeout=etcd_timeout,
    )


__all__ = [
    "BootstrapConfig",
    "GCPCloudConfig",
    "StaticCloudConfig",
    "load_config",
]
