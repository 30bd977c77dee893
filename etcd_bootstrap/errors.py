"""Exception types raised while bootstrapping an etcd member."""

from __future__ import annotations


class BootstrapError(RuntimeError):
    """Raised when the bootstrap workflow cannot complete."""


class CloudError(BootstrapError):
    """Raised when the cloud inventory cannot be read."""


class MembershipQueryError(BootstrapError):
    """Raised when the current etcd member list cannot be observed."""


class MembershipMutationError(BootstrapError):
    """Raised when an etcd member cannot be added or removed."""


__all__ = [
    "BootstrapError",
    "CloudError",
    "MembershipMutationError",
    "MembershipQueryError",
]
