"""Cloud inventory of the instances that should run the etcd cluster."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

from ..errors import CloudError


@dataclass(frozen=True, slots=True)
class Instance:
    """A cloud-managed node expected to run etcd."""

    instance_id: str
    private_ip: str


class CloudProvider(Protocol):
    def list_instances(self) -> list[Instance]:
        """Return every non-terminated instance that belongs to the etcd cluster."""

    def local_instance(self) -> Instance:
        """Return the instance this process is running on."""


class StaticCloud:
    """Inventory supplied up front, typically from the TOML config."""

    def __init__(self, instances: Sequence[Instance], local: Instance):
        self._instances = list(instances)
        self._local = local

    @classmethod
    def from_ids(cls, instances: Sequence[Instance], local_id: str) -> "StaticCloud":
        for instance in instances:
            if instance.instance_id == local_id:
                return cls(instances, instance)
        raise CloudError(f"Local instance {local_id!r} is not part of the static inventory.")

    def list_instances(self) -> list[Instance]:
        return list(self._instances)

    def local_instance(self) -> Instance:
        return self._local


__all__ = ["CloudProvider", "Instance", "StaticCloud"]
