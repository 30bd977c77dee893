"""Generate the etcd environment file for the local instance."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Sequence

from . import bootstrap as core
from .cloud import CloudProvider, StaticCloud
from .cloud.gcp import GCPCloud, GCPConfig
from .config import PROVIDERS, BootstrapConfig, load_config
from .errors import BootstrapError
from .etcd import HttpEtcdCluster


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="etcd-bootstrap", description=__doc__)
    parser.add_argument(
        "--config",
        help="Path to a bootstrap configuration TOML file.",
    )
    parser.add_argument(
        "--cloud",
        choices=PROVIDERS,
        help="Cloud provider used to discover the etcd instances.",
    )
    parser.add_argument("--gcp-project", help="GCP project to search. Defaults to this VM's project.")
    parser.add_argument(
        "--gcp-environment",
        help="Value of the 'environment' label to filter instances by.",
    )
    parser.add_argument("--gcp-role", help="Value of the 'role' label to filter instances by.")
    parser.add_argument(
        "-o",
        "--output",
        help="Location to write environment variables for etcd to use "
        f"(default {core.DEFAULT_OUTPUT}). Use '-' for stdout.",
    )
    parser.add_argument(
        "--etcd-timeout",
        type=float,
        help="Seconds to wait for each etcd member API request.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the generated flags instead of writing them.",
    )
    return parser.parse_args(list(argv) if argv is not None else None)


def resolve_config(args: argparse.Namespace) -> BootstrapConfig:
    if args.config:
        config_path = Path(args.config).expanduser()
        if not config_path.is_absolute():
            config_path = (Path.cwd() / config_path).resolve()
        config = load_config(config_path)
    else:
        config = BootstrapConfig()

    if args.cloud:
        config.provider = args.cloud
    if args.gcp_project:
        config.gcp.project_id = args.gcp_project
    if args.gcp_environment:
        config.gcp.environment = args.gcp_environment
    if args.gcp_role:
        config.gcp.role = args.gcp_role
    if args.etcd_timeout is not None:
        config.etcd_timeout = args.etcd_timeout
    config.validate()
    return config


def build_cloud(config: BootstrapConfig) -> CloudProvider:
    if config.provider == "gcp":
        return GCPCloud.discover(
            GCPConfig(
                environment=str(config.gcp.environment),
                role=str(config.gcp.role),
                project_id=config.gcp.project_id,
                timeout=config.etcd_timeout,
            )
        )
    return StaticCloud.from_ids(config.static.instances, str(config.static.local))


def build_bootstrapper(config: BootstrapConfig) -> core.Bootstrapper:
    cloud = build_cloud(config)
    local = cloud.local_instance()
    endpoints = [
        core.client_url(instance.private_ip)
        for instance in cloud.list_instances()
        if instance != local
    ]
    cluster = HttpEtcdCluster(endpoints, timeout=config.etcd_timeout)
    return core.Bootstrapper(cloud, cluster)


def main(argv: Sequence[str] | None = None) -> int:
    try:
        args = parse_args(argv)
        config = resolve_config(args)
        bootstrapper = build_bootstrapper(config)
        if args.dry_run or args.output == "-":
            sys.stdout.write(core.FILE_HEADER + bootstrapper.generate_etcd_config())
            return 0
        output = Path(args.output).expanduser() if args.output else config.output
        core.write_etcd_config(bootstrapper, output)
    except (BootstrapError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


__all__ = ["build_bootstrapper", "build_cloud", "main", "parse_args", "resolve_config"]
