"""Expansion of the declared build axes into concrete build targets."""

from dataclasses import dataclass, field

from imagematrix.config import FamilyConfig, MatrixConfig, OsVersionConfig
from imagematrix.models import BuildTarget, ImageReference, OsFamily
from imagematrix.rendering import DockerfileRenderer, RenderContext
from imagematrix.versions import version_at_least


@dataclass
class Matrix:
    """Expanded matrix: targets in build order plus default reference mapping"""
    targets: list[BuildTarget] = field(default_factory=list)
    # OS-suffixed reference -> unsuffixed reference, for default-OS targets only
    default_aliases: dict[ImageReference, ImageReference] = field(default_factory=dict)


def is_compatible(family: FamilyConfig, os_version: OsVersionConfig, runtime_version: str) -> bool:
    """Check the family and OS version minimums for a runtime version.

    Unparseable versions are treated as incompatible.
    """
    if not version_at_least(runtime_version, family.minimum_runtime_version):
        return False
    if not version_at_least(runtime_version, os_version.minimum_runtime_version):
        return False
    return True


class MatrixExpander:
    """Expands a MatrixConfig into BuildTargets"""

    def __init__(
        self,
        config: MatrixConfig,
        renderer: DockerfileRenderer | None = None,
        enabled: dict[OsFamily, bool] | None = None,
    ):
        self.config = config
        self.renderer = renderer or DockerfileRenderer()
        self.enabled = enabled or {}

    def is_enabled(self, family: FamilyConfig) -> bool:
        return self.enabled.get(family.family, family.enabled)

    def suffixed_repository(self, repository: str, family: OsFamily, os_version: str) -> str:
        return self.config.repository_format.format(
            repository=repository,
            family=family.value,
            os_version=os_version,
        )

    def expand(self) -> Matrix:
        """
        Produce one target per (runtime version, family, OS version, kind).

        Order is runtime version, then family, then OS version, then kind as
        declared, so a kind that builds FROM an earlier kind always comes
        after it.
        """
        matrix = Matrix()

        for runtime_version in self.config.runtime_versions:
            for family in self.config.families:
                if not self.is_enabled(family):
                    continue

                default_version = family.resolved_default_version

                for os_version in family.versions:
                    if not is_compatible(family, os_version, runtime_version):
                        continue

                    refs = {
                        kind.kind: ImageReference(
                            repository=self.suffixed_repository(kind.repository, family.family, os_version.version),
                            tag=runtime_version,
                        )
                        for kind in self.config.kinds
                    }
                    images = {kind.value: str(ref) for kind, ref in refs.items()}

                    for kind in self.config.kinds:
                        ctx = RenderContext(
                            family=family.family,
                            kind=kind.kind,
                            os_version=os_version.version,
                            runtime_version=runtime_version,
                            os_codename=os_version.codename,
                            images=images,
                        )
                        target = BuildTarget(
                            os_family=family.family,
                            os_version=os_version.version,
                            kind=kind.kind,
                            runtime_version=runtime_version,
                            reference=refs[kind.kind],
                            dockerfile=self.renderer.render(ctx),
                        )
                        matrix.targets.append(target)

                        if os_version.version == default_version:
                            matrix.default_aliases[target.reference] = ImageReference(
                                repository=kind.repository,
                                tag=runtime_version,
                            )

        return matrix


def expand_matrix(
    config: MatrixConfig,
    renderer: DockerfileRenderer | None = None,
    enabled: dict[OsFamily, bool] | None = None,
) -> Matrix:
    return MatrixExpander(config, renderer=renderer, enabled=enabled).expand()
