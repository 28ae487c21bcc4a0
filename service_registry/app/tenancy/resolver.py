"""
Hostname to organization resolution for the Registry Service.
"""

from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Tuple


@dataclass(frozen=True)
class OrganizationMapping:
    """Ordered, immutable (hostname, organization) pairs.

    An empty mapping disables the tenancy check: any Host header is accepted.
    """

    pairs: Tuple[Tuple[str, str], ...] = ()

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(self.pairs)

    def __len__(self) -> int:
        return len(self.pairs)

    @property
    def restricted(self) -> bool:
        """True when requests must come in on a configured hostname."""
        return bool(self.pairs)

    @property
    def hostnames(self) -> Tuple[str, ...]:
        return tuple(host for host, _ in self.pairs)

    def organization_for(self, host: Optional[str]) -> Optional[str]:
        """Return the organization for a Host header value, ignoring any port."""
        if not host:
            return None
        hostname = _strip_port(host.strip().lower())
        for candidate, organization in self.pairs:
            if candidate == hostname:
                return organization
        return None


def _strip_port(host: str) -> str:
    if host.startswith("["):
        # IPv6 literal, e.g. "[::1]:4001"
        end = host.find("]")
        return host[: end + 1] if end != -1 else host
    return host.rsplit(":", 1)[0] if host.count(":") == 1 else host


def resolve_organizations(hostnames: Iterable[str], organization_name: str) -> OrganizationMapping:
    """Pair every configured hostname with the single configured organization."""
    pairs = []
    seen = set()
    for hostname in hostnames:
        normalized = hostname.strip().lower()
        if not normalized or normalized in seen:
            continue
        seen.add(normalized)
        pairs.append((normalized, organization_name))
    return OrganizationMapping(tuple(pairs))
