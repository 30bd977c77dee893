"""Bootstrap etcd members from a cloud inventory."""

from .bootstrap import (
    Bootstrapper,
    ClusterState,
    classify_cluster,
    client_url,
    construct_initial_cluster,
    peer_url,
    render_etcd_config,
    write_etcd_config,
)
from .cloud import CloudProvider, Instance, StaticCloud
from .errors import (
    BootstrapError,
    CloudError,
    MembershipMutationError,
    MembershipQueryError,
)
from .etcd import EtcdCluster, HttpEtcdCluster, Member

__all__ = [
    "BootstrapError",
    "Bootstrapper",
    "CloudError",
    "CloudProvider",
    "ClusterState",
    "EtcdCluster",
    "HttpEtcdCluster",
    "Instance",
    "Member",
    "MembershipMutationError",
    "MembershipQueryError",
    "StaticCloud",
    "classify_cluster",
    "client_url",
    "construct_initial_cluster",
    "peer_url",
    "render_etcd_config",
    "write_etcd_config",
]
