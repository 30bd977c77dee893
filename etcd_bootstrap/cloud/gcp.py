"""Discover etcd instances on Google Compute Engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator

import requests

from ..errors import CloudError
from . import Instance, StaticCloud

METADATA_URL = "http://metadata.google.internal/computeMetadata/v1"
METADATA_HEADERS = {"Metadata-Flavor": "Google"}
COMPUTE_API = "https://compute.googleapis.com/compute/v1"
DEFAULT_TIMEOUT = 5.0


@dataclass(slots=True)
class GCPConfig:
    """Labels used to select the etcd instances of one project."""

    environment: str
    role: str
    project_id: str | None = None
    timeout: float = DEFAULT_TIMEOUT

    def instance_filter(self) -> str:
        # https://cloud.google.com/sdk/gcloud/reference/topic/filters
        filters = [
            f"labels.environment={self.environment}",
            f"labels.role={self.role}",
            "status != TERMINATED",
        ]
        return " AND ".join(filters)


class GCPCloud(StaticCloud):
    """Snapshot of the labelled instances, taken once at discovery time."""

    @classmethod
    def discover(
        cls, config: GCPConfig, *, session: requests.Session | None = None
    ) -> "GCPCloud":
        owns_session = session is None
        session = session or requests.Session()
        try:
            local = _find_local_instance(session, config.timeout)
            project_id = config.project_id or _metadata(
                session, "project/project-id", config.timeout
            )
            token = _access_token(session, config.timeout)
            session.headers.update({"Authorization": f"Bearer {token}"})
            instances = _find_all_instances(session, project_id, config)
        finally:
            if owns_session:
                session.close()
        return cls(instances, local)


def _metadata(session: requests.Session, path: str, timeout: float) -> str:
    url = f"{METADATA_URL}/{path}"
    try:
        resp = session.get(url, headers=METADATA_HEADERS, timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as exc:
        raise CloudError(f"Unable to read {path} from the GCE metadata server: {exc}") from exc
    return resp.text.strip()


def _access_token(session: requests.Session, timeout: float) -> str:
    url = f"{METADATA_URL}/instance/service-accounts/default/token"
    try:
        resp = session.get(url, headers=METADATA_HEADERS, timeout=timeout)
        resp.raise_for_status()
        return str(resp.json()["access_token"])
    except (requests.RequestException, ValueError, KeyError) as exc:
        raise CloudError(f"Unable to obtain a GCP access token: {exc}") from exc


def _find_local_instance(session: requests.Session, timeout: float) -> Instance:
    ip = _metadata(session, "instance/network-interfaces/0/ip", timeout)
    name = _metadata(session, "instance/name", timeout)
    return Instance(instance_id=name, private_ip=ip)


def _get_pages(
    session: requests.Session, url: str, params: dict[str, str], timeout: float
) -> Iterator[dict[str, Any]]:
    query = dict(params)
    while True:
        try:
            resp = session.get(url, params=query, timeout=timeout)
            resp.raise_for_status()
            page = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise CloudError(f"GCP compute API request to {url} failed: {exc}") from exc
        if not isinstance(page, dict):
            raise CloudError(f"Unexpected GCP compute API response from {url}")
        yield page
        token = page.get("nextPageToken")
        if not token:
            return
        query["pageToken"] = token


def _parse_instance(item: Any) -> Instance:
    try:
        interfaces = item.get("networkInterfaces") or []
        if not interfaces:
            raise CloudError(
                f"Unable to find network interfaces for instance {item.get('name')!r}"
            )
        # Taking the first available network interface
        return Instance(
            instance_id=str(item["name"]),
            private_ip=str(interfaces[0]["networkIP"]),
        )
    except (AttributeError, KeyError, TypeError) as exc:
        raise CloudError(f"Malformed instance in GCP compute API response: {item!r}") from exc


def _find_all_instances(
    session: requests.Session, project_id: str, config: GCPConfig
) -> list[Instance]:
    zones_url = f"{COMPUTE_API}/projects/{project_id}/zones"
    zones: list[str] = []
    for page in _get_pages(session, zones_url, {}, config.timeout):
        try:
            zones.extend(str(zone["name"]) for zone in page.get("items", []))
        except (AttributeError, KeyError, TypeError) as exc:
            raise CloudError(f"Malformed zone list for project {project_id!r}: {exc}") from exc

    instances: list[Instance] = []
    for zone in zones:
        url = f"{COMPUTE_API}/projects/{project_id}/zones/{zone}/instances"
        params = {"filter": config.instance_filter()}
        for page in _get_pages(session, url, params, config.timeout):
            try:
                items = list(page.get("items", []))
            except (AttributeError, TypeError) as exc:
                raise CloudError(f"Malformed instance list for zone {zone!r}: {exc}") from exc
            instances.extend(_parse_instance(item) for item in items)
    return instances


__all__ = ["GCPCloud", "GCPConfig"]
