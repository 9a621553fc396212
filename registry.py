# ─────────────────────────────────────────────────────────────────
# registry.py — The Fixed List of Monitored Hosts
#
# Built once from configuration and never changed afterwards.
# Readers (sweeps, route handlers) share it freely.
# ─────────────────────────────────────────────────────────────────

from types import MappingProxyType
from typing import Iterable, Mapping, Tuple, Union

from errors import DuplicateHostError, HostNotFoundError
from models import Host


class HostRegistry:
    """Ordered, read-only mapping of host name → Host."""

    def __init__(self, hosts: Iterable[Union[Host, Tuple[str, str]]]):
        ordered = []
        by_name = {}
        for item in hosts:
            host = item if isinstance(item, Host) else Host(name=item[0], address=item[1])
            if host.name in by_name:
                raise DuplicateHostError(host.name)
            by_name[host.name] = host
            ordered.append(host)

        self._hosts = tuple(ordered)
        self._by_name = MappingProxyType(by_name)

    @classmethod
    def from_mapping(cls, servers: Mapping[str, str]):
        return cls(servers.items())

    def list(self):
        return list(self._hosts)

    def names(self):
        return [host.name for host in self._hosts]

    def lookup(self, name: str) -> Host:
        try:
            return self._by_name[name]
        except KeyError:
            raise HostNotFoundError(name) from None

    def __contains__(self, name):
        return name in self._by_name

    def __iter__(self):
        return iter(self._hosts)

    def __len__(self):
        return len(self._hosts)
