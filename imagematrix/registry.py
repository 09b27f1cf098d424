"""Private registry support: URL parsing, login and rehoming of references."""

import sys
from dataclasses import dataclass
from urllib.parse import unquote, urlsplit

from imagematrix.backend import ExecutionBackend
from imagematrix.models import DEFAULT_CONTAINER_COMMAND, AliasPair, BuildTarget, HostInfo, unique_pairs


@dataclass(frozen=True)
class RegistryDestination:
    """Where private copies go; credentials are only used for login"""
    host: str | None
    port: int | None = None
    username: str | None = None
    password: str | None = None

    @property
    def address(self) -> str | None:
        """host[:port] as used in image references and login."""
        if not self.host:
            return None
        return str(HostInfo(self.host, self.port))


def parse_registry_url(url: str | None) -> RegistryDestination | None:
    """Parse scheme://[user[:password]@]host[:port].

    The scheme may be omitted. Returns None for a missing or malformed URL
    or one without a host.
    """
    if not url or not url.strip():
        return None

    url = url.strip()
    if "://" not in url:
        url = f"//{url}"

    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError as e:
        print(f"Warning: Invalid registry URL '{url}': {e}", file=sys.stderr)
        return None

    if not parts.hostname:
        print(f"Warning: Registry URL has no host: '{url}'", file=sys.stderr)
        return None

    return RegistryDestination(
        host=parts.hostname,
        port=port,
        username=unquote(parts.username) if parts.username else None,
        password=unquote(parts.password) if parts.password is not None else None,
    )


def resolve_password(
    destination: RegistryDestination,
    explicit: str | None = None,
    from_stdin: str | None = None,
) -> str | None:
    """Pick the registry password: explicit argument, then stdin, then URL."""
    for candidate in (explicit, from_stdin, destination.password):
        if candidate:
            return candidate
    return None


def login(
    backend: ExecutionBackend,
    destination: RegistryDestination,
    password: str | None,
    command: str = DEFAULT_CONTAINER_COMMAND,
) -> bool:
    """Log in to the registry if a username and password are both present.

    Returns True if a login was performed.
    """
    if not destination.address or not destination.username or not password:
        return False

    backend.phase("Login to private docker registry")
    backend.run([command, "login", destination.address, "-u", destination.username, "-p", password])
    return True


def rehome(items: list[AliasPair | BuildTarget], destination: RegistryDestination | None) -> list[AliasPair]:
    """Copies of references under the destination registry.

    Repository and tag are kept, only the host changes. The source of each
    pair stays the locally built target so tagging works without a pull.
    Without a destination host nothing is rehomed.
    """
    if destination is None or not destination.host:
        return []

    pairs = []
    for item in items:
        if isinstance(item, AliasPair):
            pairs.append(AliasPair(item.source, item.destination.with_host(destination.host, destination.port)))
        else:
            pairs.append(AliasPair(item, item.reference.with_host(destination.host, destination.port)))
    return unique_pairs(pairs)
