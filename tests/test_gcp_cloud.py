from __future__ import annotations

from urllib.parse import parse_qs, urlparse

import pytest
import requests

from etcd_bootstrap.cloud import Instance
from etcd_bootstrap.cloud.gcp import COMPUTE_API, METADATA_URL, GCPCloud, GCPConfig
from etcd_bootstrap.errors import CloudError

PROJECT = "sky-etcd"


def _mock_metadata(requests_mock, *, project: str = PROJECT) -> None:
    requests_mock.get(f"{METADATA_URL}/instance/network-interfaces/0/ip", text="10.1.0.2\n")
    requests_mock.get(f"{METADATA_URL}/instance/name", text="etcd-b")
    requests_mock.get(f"{METADATA_URL}/project/project-id", text=project)
    requests_mock.get(
        f"{METADATA_URL}/instance/service-accounts/default/token",
        json={"access_token": "token-123", "expires_in": 3599},
    )


def _instance(name: str, ip: str) -> dict:
    return {"name": name, "networkInterfaces": [{"networkIP": ip}]}


def test_discover_lists_instances_across_zones_and_pages(requests_mock) -> None:
    _mock_metadata(requests_mock)
    requests_mock.get(
        f"{COMPUTE_API}/projects/{PROJECT}/zones",
        json={"items": [{"name": "europe-west1-b"}, {"name": "europe-west1-c"}]},
    )
    zone_b = f"{COMPUTE_API}/projects/{PROJECT}/zones/europe-west1-b/instances"
    requests_mock.get(
        zone_b,
        [
            {"json": {"items": [_instance("etcd-a", "10.1.0.1")], "nextPageToken": "p2"}},
            {"json": {"items": [_instance("etcd-b", "10.1.0.2")]}},
        ],
    )
    requests_mock.get(
        f"{COMPUTE_API}/projects/{PROJECT}/zones/europe-west1-c/instances",
        json={"items": [_instance("etcd-c", "10.1.0.3")]},
    )

    cloud = GCPCloud.discover(GCPConfig(environment="prod", role="etcd"))

    assert cloud.local_instance() == Instance("etcd-b", "10.1.0.2")
    assert cloud.list_instances() == [
        Instance("etcd-a", "10.1.0.1"),
        Instance("etcd-b", "10.1.0.2"),
        Instance("etcd-c", "10.1.0.3"),
    ]
    zone_requests = [r for r in requests_mock.request_history if r.url.startswith(zone_b)]
    first_query = parse_qs(urlparse(zone_requests[0].url).query)
    second_query = parse_qs(urlparse(zone_requests[1].url).query)
    assert first_query["filter"] == [
        "labels.environment=prod AND labels.role=etcd AND status != TERMINATED"
    ]
    assert second_query["pageToken"] == ["p2"]
    assert zone_requests[0].headers["Authorization"] == "Bearer token-123"


def test_discover_prefers_configured_project(requests_mock) -> None:
    _mock_metadata(requests_mock, project="ignored")
    requests_mock.get(f"{COMPUTE_API}/projects/other/zones", json={})

    cloud = GCPCloud.discover(GCPConfig(environment="prod", role="etcd", project_id="other"))

    assert cloud.list_instances() == []


def test_instance_without_network_interface_is_rejected(requests_mock) -> None:
    _mock_metadata(requests_mock)
    requests_mock.get(f"{COMPUTE_API}/projects/{PROJECT}/zones", json={"items": [{"name": "z"}]})
    requests_mock.get(
        f"{COMPUTE_API}/projects/{PROJECT}/zones/z/instances",
        json={"items": [{"name": "broken", "networkInterfaces": []}]},
    )

    with pytest.raises(CloudError, match="broken"):
        GCPCloud.discover(GCPConfig(environment="prod", role="etcd"))


def test_metadata_server_unavailable(requests_mock) -> None:
    requests_mock.get(
        f"{METADATA_URL}/instance/network-interfaces/0/ip",
        exc=requests.exceptions.ConnectionError,
    )

    with pytest.raises(CloudError, match="metadata"):
        GCPCloud.discover(GCPConfig(environment="prod", role="etcd"))


def test_instance_filter_matches_gcloud_syntax() -> None:
    config = GCPConfig(environment="dev", role="etcd")

    assert config.instance_filter() == (
        "labels.environment=dev AND labels.role=etcd AND status != TERMINATED"
    )


@pytest.mark.parametrize(
    "item",
    [
        {"name": "etcd-x", "networkInterfaces": [{}]},
        {"networkInterfaces": [{"networkIP": "10.1.0.9"}]},
        "etcd-x",
    ],
)
def test_malformed_instance_is_a_cloud_error(requests_mock, item) -> None:
    _mock_metadata(requests_mock)
    requests_mock.get(f"{COMPUTE_API}/projects/{PROJECT}/zones", json={"items": [{"name": "z"}]})
    requests_mock.get(
        f"{COMPUTE_API}/projects/{PROJECT}/zones/z/instances",
        json={"items": [item]},
    )

    with pytest.raises(CloudError, match="Malformed instance"):
        GCPCloud.discover(GCPConfig(environment="prod", role="etcd"))


def test_malformed_zone_is_a_cloud_error(requests_mock) -> None:
    _mock_metadata(requests_mock)
    requests_mock.get(f"{COMPUTE_API}/projects/{PROJECT}/zones", json={"items": [{"id": "1"}]})

    with pytest.raises(CloudError, match="Malformed zone list"):
        GCPCloud.discover(GCPConfig(environment="prod", role="etcd"))
