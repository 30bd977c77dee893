from __future__ import annotations

import enum
import os
import sys
import tempfile
from pathlib import Path
from typing import Iterable, Sequence

from .cloud import CloudProvider, Instance
from .errors import MembershipMutationError
from .etcd import EtcdCluster, Member

PEER_PORT = 2380
CLIENT_PORT = 2379
LOOPBACK_IP = "127.0.0.1"
DEFAULT_OUTPUT = Path("/var/run/etcd-bootstrap.conf")
FILE_HEADER = "# created by etcd-bootstrap\n"


class ClusterState(str, enum.Enum):
    # Other members already know this node, or there are no members at all:
    # etcd ignores the INITIAL_* flags once the cluster has bootstrapped.
    NEW = "new"
    # The node is joining a cluster that does not know it yet.
    EXISTING = "existing"


def peer_url(ip: str) -> str:
    return f"http://{ip}:{PEER_PORT}"


def client_url(ip: str) -> str:
    return f"http://{ip}:{CLIENT_PORT}"


def _log(message: str) -> None:
    print(f"==> {message}", file=sys.stderr)


def _warn(message: str) -> None:
    print(f"warning: {message}", file=sys.stderr)


def construct_initial_cluster(
    instances: Iterable[Instance], available_peer_urls: Iterable[str]
) -> str:
    """Join ``id=peerURL`` pairs for the instances whose peer URL is available.

    Order follows ``instances``.
    """

    available = set(available_peer_urls)
    pairs = []
    for instance in instances:
        url = peer_url(instance.private_ip)
        if url in available:
            pairs.append(f"{instance.instance_id}={url}")
    return ",".join(pairs)


def render_etcd_config(
    state: ClusterState,
    available_peer_urls: Iterable[str],
    instances: Sequence[Instance],
    local: Instance,
) -> str:
    local_peer_url = peer_url(local.private_ip)
    local_client_url = client_url(local.private_ip)
    envs = [
        f"ETCD_INITIAL_CLUSTER_STATE={ClusterState(state).value}",
        f"ETCD_INITIAL_CLUSTER={construct_initial_cluster(instances, available_peer_urls)}",
        f"ETCD_NAME={local.instance_id}",
        f"ETCD_INITIAL_ADVERTISE_PEER_URLS={local_peer_url}",
        f"ETCD_LISTEN_PEER_URLS={local_peer_url}",
        f"ETCD_LISTEN_CLIENT_URLS={local_client_url},{client_url(LOOPBACK_IP)}",
        f"ETCD_ADVERTISE_CLIENT_URLS={local_client_url}",
    ]
    return "\n".join(envs) + "\n"


def classify_cluster(members: Sequence[Member], local: Instance) -> ClusterState:
    """Decide how the local etcd should start given the current member list."""

    if not members:
        _log("No cluster found - treating as an initial node in the new cluster")
        return ClusterState.NEW

    local_url = peer_url(local.private_ip)
    if any(member.peer_url == local_url and member.name for member in members):
        # The cluster may not have fully bootstrapped yet, and etcd ignores the
        # INITIAL_* flags otherwise.
        _log("Node peer URL already exists - treating as an existing node in a new cluster")
        return ClusterState.NEW

    _log("Node does not exist yet in cluster - joining as a new node")
    return ClusterState.EXISTING


class Bootstrapper:
    """Generate etcd startup flags for the local instance.

    The bootstrapper holds no state between runs: every call to
    :meth:`generate_etcd_config` re-reads the inventory and the member list.
    Running it concurrently against the same cluster is not supported.
    """

    def __init__(self, cloud: CloudProvider, cluster: EtcdCluster):
        self.cloud = cloud
        self.cluster = cluster

    def decide_state(self) -> ClusterState:
        return classify_cluster(self.cluster.list_members(), self.cloud.local_instance())

    def generate_etcd_config(self) -> str:
        _log("Generating etcd cluster flags")
        instances = self.cloud.list_instances()
        local = self.cloud.local_instance()
        members = self.cluster.list_members()

        state = classify_cluster(members, local)
        if state is ClusterState.NEW:
            available = [peer_url(instance.private_ip) for instance in instances]
        else:
            members = self.reconcile_members(members, instances, local)
            available = [member.peer_url for member in members]
        return render_etcd_config(state, available, instances, local)

    def reconcile_members(
        self,
        members: Sequence[Member],
        instances: Sequence[Instance],
        local: Instance,
    ) -> list[Member]:
        """Remove members missing from the inventory, then add the local instance.

        Returns the member list as it stands after the changes. Removal
        failures are logged and skipped; a failure to add the local instance
        propagates.
        """

        remaining = self._remove_old_members(members, instances)
        local_url = peer_url(local.private_ip)
        if not any(member.peer_url == local_url for member in remaining):
            _log(f"Adding local instance {local_url} to the etcd member list")
            self.cluster.add_member(local_url)
            remaining.append(Member(name="", peer_url=local_url))
        return remaining

    def _remove_old_members(
        self, members: Sequence[Member], instances: Sequence[Instance]
    ) -> list[Member]:
        instance_urls = {peer_url(instance.private_ip) for instance in instances}
        remaining: list[Member] = []
        for member in members:
            if member.peer_url in instance_urls:
                remaining.append(member)
                continue
            _log(f"Removing {member.peer_url} from etcd member list, not found in cloud provider")
            try:
                self.cluster.remove_member(member.peer_url)
            except MembershipMutationError as exc:
                _warn(
                    "Unable to remove old member. This may be due to temporary lack of quorum,"
                    f" will ignore: {exc}"
                )
                remaining.append(member)
        return remaining


def write_etcd_config(bootstrapper: Bootstrapper, output: Path) -> str:
    """Bootstrap and atomically write the flags to ``output`` for sourcing at startup."""

    content = FILE_HEADER + bootstrapper.generate_etcd_config()
    _log(f"Writing environment variables to {output}")
    output.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=".etcd-bootstrap-", dir=str(output.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        os.chmod(tmp_name, 0o644)
        os.replace(tmp_name, output)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return content


__all__ = [
    "Bootstrapper",
    "ClusterState",
    "DEFAULT_OUTPUT",
    "classify_cluster",
    "client_url",
    "construct_initial_cluster",
    "peer_url",
    "render_etcd_config",
    "write_etcd_config",
]
