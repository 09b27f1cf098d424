import tempfile
import uuid
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path

from imagematrix.backend import ExecutionBackend

DEFAULT_CONTAINER_COMMAND = "podman"


class OsFamily(str, Enum):
    UBUNTU = "ubuntu"
    CENTOS = "centos"


class ImageKind(str, Enum):
    CI = "ci"
    DEV = "dev"


@dataclass(frozen=True)
class HostInfo:
    """Registry host with optional port"""
    hostname: str
    port: int | None = None

    def __str__(self) -> str:
        if self.port is not None:
            return f"{self.hostname}:{self.port}"
        return self.hostname


@dataclass(frozen=True)
class ImageReference:
    """Registry host, repository and tag identifying an image"""
    repository: str
    tag: str = "latest"
    host: HostInfo | None = None

    def __str__(self) -> str:
        if self.host is not None:
            return f"{self.host}/{self.repository}:{self.tag}"
        return f"{self.repository}:{self.tag}"

    def with_tag(self, tag: str) -> "ImageReference":
        """Same host and repository, different tag."""
        return replace(self, tag=tag)

    def with_host(self, hostname: str, port: int | None = None) -> "ImageReference":
        """Same repository and tag on a different registry."""
        return replace(self, host=HostInfo(hostname, port))


@dataclass(frozen=True)
class BuildTarget:
    """An image to build: its reference plus the Dockerfile that produces it"""
    os_family: OsFamily
    os_version: str
    kind: ImageKind
    runtime_version: str
    reference: ImageReference
    dockerfile: str

    def with_reference(self, reference: ImageReference) -> "BuildTarget":
        return replace(self, reference=reference)

    def build(self, backend: ExecutionBackend, command: str = DEFAULT_CONTAINER_COMMAND) -> Path:
        """Write the Dockerfile to a fresh temp directory and build it.

        The directory is left in place for inspection after the build.

        Returns:
            Path of the build context directory
        """
        context_dir = Path(tempfile.gettempdir()) / uuid.uuid4().hex
        backend.create_directory(context_dir)
        backend.write_file(context_dir / "Dockerfile", self.dockerfile)
        backend.run([command, "build", "-t", str(self.reference), str(context_dir)], working_dir=context_dir)
        return context_dir

    def tag(self, reference: ImageReference, backend: ExecutionBackend, command: str = DEFAULT_CONTAINER_COMMAND) -> "BuildTarget":
        """Tag the built image with another reference and return the re-pointed target."""
        backend.run([command, "tag", str(self.reference), str(reference)])
        return self.with_reference(reference)

    def push(self, backend: ExecutionBackend, command: str = DEFAULT_CONTAINER_COMMAND) -> None:
        backend.run([command, "push", str(self.reference)])

    def remove(self, backend: ExecutionBackend, command: str = DEFAULT_CONTAINER_COMMAND) -> None:
        backend.run([command, "rmi", str(self.reference)])


@dataclass(frozen=True)
class AliasPair:
    """Additional reference for an image that is built under another name"""
    source: BuildTarget
    destination: ImageReference

    @property
    def target(self) -> BuildTarget:
        return self.source.with_reference(self.destination)

    def tag(self, backend: ExecutionBackend, command: str = DEFAULT_CONTAINER_COMMAND) -> None:
        self.source.tag(self.destination, backend, command)

    def push(self, backend: ExecutionBackend, command: str = DEFAULT_CONTAINER_COMMAND) -> None:
        self.target.push(backend, command)

    def remove(self, backend: ExecutionBackend, command: str = DEFAULT_CONTAINER_COMMAND) -> None:
        self.target.remove(backend, command)


def unique_pairs(pairs: list[AliasPair]) -> list[AliasPair]:
    """Drop pairs whose destination was already seen, keeping order."""
    seen: set[ImageReference] = set()
    result = []
    for pair in pairs:
        if pair.destination in seen:
            continue
        seen.add(pair.destination)
        result.append(pair)
    return result
