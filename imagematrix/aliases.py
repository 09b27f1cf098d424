"""Version alias resolution (e.g. 5.5.2 -> 5.5, 5, latest)."""

from enum import Enum

from imagematrix.models import AliasPair, BuildTarget, ImageReference, unique_pairs

LATEST_TAG = "latest"


class LatestPolicy(str, Enum):
    """Where the 'latest' tag may appear.

    PER_OS: every chain whose alias list names it (OS-suffixed and default).
    DEFAULT: only the default-rooted chain of the latest runtime version.
    """
    PER_OS = "per-os"
    DEFAULT = "default"


class AliasTable:
    """Read-only mapping of full runtime version -> ordered alias tags"""

    def __init__(self, aliases: dict[str, list[str]] | None = None, latest_version: str | None = None):
        self._aliases = {version: tuple(tags) for version, tags in (aliases or {}).items()}
        self._latest_version = latest_version

    def tags_for(self, version: str) -> list[str]:
        """Alias tags for a version; empty if the version has no entry."""
        return list(self._aliases.get(version, ()))

    def is_latest(self, version: str) -> bool:
        """Whether a version is the overall latest.

        An explicit latest_version wins, otherwise the version whose alias
        list contains 'latest'.
        """
        if self._latest_version is not None:
            return version == self._latest_version
        return LATEST_TAG in self._aliases.get(version, ())


def resolve_aliases(target: BuildTarget, alias_table: AliasTable) -> list[AliasPair]:
    """Alias pairs for a target's own reference, one per alias tag."""
    source_ref = target.reference
    return [AliasPair(target, source_ref.with_tag(tag)) for tag in alias_table.tags_for(source_ref.tag)]


class AliasResolver:
    """Computes alias pairs for targets, including default-OS chains"""

    def __init__(
        self,
        table: AliasTable,
        default_aliases: dict[ImageReference, ImageReference] | None = None,
        latest_policy: LatestPolicy = LatestPolicy.PER_OS,
        include_defaults: bool = True,
    ):
        self.table = table
        self.default_aliases = default_aliases or {}
        self.latest_policy = latest_policy
        self.include_defaults = include_defaults

    def resolve(self, target: BuildTarget) -> list[AliasPair]:
        """Version aliases rooted at the target's own reference."""
        pairs = resolve_aliases(target, self.table)
        if self.latest_policy == LatestPolicy.DEFAULT:
            pairs = [p for p in pairs if p.destination.tag != LATEST_TAG]
        return pairs

    def resolve_defaults(self, target: BuildTarget) -> list[AliasPair]:
        """The unsuffixed default reference and its version aliases.

        Empty unless the target is a default-OS target.
        """
        if not self.include_defaults:
            return []

        default_ref = self.default_aliases.get(target.reference)
        if default_ref is None:
            return []

        version = target.reference.tag
        tags = self.table.tags_for(version)
        if self.latest_policy == LatestPolicy.DEFAULT:
            tags = [t for t in tags if t != LATEST_TAG]
        if self.table.is_latest(version) and LATEST_TAG not in tags:
            tags.append(LATEST_TAG)

        pairs = [AliasPair(target, default_ref)]
        pairs.extend(AliasPair(target, default_ref.with_tag(tag)) for tag in tags)
        return pairs

    def resolve_all(self, targets: list[BuildTarget]) -> list[AliasPair]:
        """All alias pairs for the targets, in target order, without duplicates."""
        pairs = []
        for target in targets:
            pairs.extend(self.resolve(target))
            pairs.extend(self.resolve_defaults(target))
        return unique_pairs(pairs)
