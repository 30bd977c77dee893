"""Access to the member list of a running etcd cluster."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

import requests

from .errors import MembershipMutationError, MembershipQueryError

DEFAULT_TIMEOUT = 5.0


@dataclass(frozen=True, slots=True)
class Member:
    """A node the etcd cluster knows about.

    ``name`` stays empty until the member has started and completed its join,
    so a named member is fully joined and an unnamed one is only registered.
    """

    name: str
    peer_url: str


class EtcdCluster(Protocol):
    def list_members(self) -> list[Member]:
        ...

    def add_member(self, peer_url: str) -> None:
        ...

    def remove_member(self, peer_url: str) -> None:
        ...


class EtcdUnreachable(requests.ConnectionError):
    """No configured endpoint accepted a connection."""


def _log(message: str) -> None:
    print(f"==> {message}", file=sys.stderr)


class HttpEtcdCluster:
    """Member API client talking to etcd's v3 JSON gateway.

    Each call walks ``endpoints`` in order and uses the first one that
    accepts a connection. When none does, there is no running cluster yet
    and :meth:`list_members` reports no members.
    """

    def __init__(
        self,
        endpoints: Sequence[str],
        *,
        timeout: float = DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ):
        self.endpoints = [endpoint.rstrip("/") for endpoint in endpoints]
        self.timeout = timeout
        self.session = session or requests.Session()

    def list_members(self) -> list[Member]:
        try:
            raw_members = self._raw_members()
        except EtcdUnreachable as exc:
            _log(f"No etcd endpoint reachable, assuming no cluster exists yet: {exc}")
            return []
        except requests.RequestException as exc:
            raise MembershipQueryError(f"Unable to list etcd members: {exc}") from exc
        members = []
        for raw in raw_members:
            peer_urls = raw.get("peerURLs") or []
            if not peer_urls:
                continue
            members.append(Member(name=str(raw.get("name") or ""), peer_url=peer_urls[0]))
        return members

    def add_member(self, peer_url: str) -> None:
        try:
            self._post("/v3/cluster/member/add", {"peerURLs": [peer_url]})
        except requests.RequestException as exc:
            raise MembershipMutationError(f"Unable to add member {peer_url}: {exc}") from exc

    def remove_member(self, peer_url: str) -> None:
        try:
            raw_members = self._raw_members()
        except (requests.RequestException, MembershipQueryError) as exc:
            raise MembershipMutationError(f"Unable to remove member {peer_url}: {exc}") from exc
        member_id = None
        for raw in raw_members:
            if peer_url in (raw.get("peerURLs") or []):
                member_id = raw.get("ID")
                break
        if member_id is None:
            raise MembershipMutationError(f"No etcd member has peer URL {peer_url}")
        try:
            self._post("/v3/cluster/member/remove", {"ID": member_id})
        except requests.RequestException as exc:
            raise MembershipMutationError(f"Unable to remove member {peer_url}: {exc}") from exc

    def _raw_members(self) -> list[dict[str, Any]]:
        data = self._post("/v3/cluster/member/list", {})
        if not isinstance(data, dict):
            raise MembershipQueryError("Unexpected etcd member list response.")
        raw_members = data.get("members") or []
        if not isinstance(raw_members, list):
            raise MembershipQueryError("etcd member list response has no member array.")
        for raw in raw_members:
            if not isinstance(raw, dict):
                raise MembershipQueryError(f"Malformed etcd member entry: {raw!r}")
            peer_urls = raw.get("peerURLs")
            if peer_urls is not None and (
                not isinstance(peer_urls, list)
                or not all(isinstance(url, str) for url in peer_urls)
            ):
                raise MembershipQueryError(f"Malformed peerURLs in etcd member entry: {raw!r}")
        return raw_members

    def _post(self, path: str, payload: dict[str, Any]) -> Any:
        errors: list[str] = []
        for endpoint in self.endpoints:
            try:
                resp = self.session.post(f"{endpoint}{path}", json=payload, timeout=self.timeout)
            except requests.ConnectionError as exc:
                errors.append(f"{endpoint}: {exc}")
                continue
            resp.raise_for_status()
            try:
                return resp.json()
            except ValueError as exc:
                raise requests.RequestException(
                    f"invalid JSON from {endpoint}{path}", response=resp
                ) from exc
        raise EtcdUnreachable("; ".join(errors) or "no etcd endpoints configured")


__all__ = ["EtcdCluster", "HttpEtcdCluster", "Member"]
