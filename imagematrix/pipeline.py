"""Sequential build, alias and push orchestration."""

import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from imagematrix.aliases import AliasResolver, AliasTable, LatestPolicy
from imagematrix.backend import CommandError, CompositeBackend, ExecutionBackend, PrintBackend, RealBackend
from imagematrix.config import DEFAULT_PUSH_DELAY, MatrixConfig
from imagematrix.matrix import MatrixExpander
from imagematrix.models import AliasPair, BuildTarget, OsFamily
from imagematrix.registry import RegistryDestination, login, rehome, resolve_password
from imagematrix.rendering import DockerfileRenderer


@dataclass
class Options:
    """Run options, mostly mirroring CLI flags"""
    build: bool = False
    push: bool = False
    push_public: bool = False
    push_private: bool = False
    aliases: bool = False
    clean: bool = False
    dry_run: bool = False
    verbose: bool = False
    list_only: bool = False
    push_delay: float = DEFAULT_PUSH_DELAY
    families: dict[OsFamily, bool] = field(default_factory=dict)
    latest_policy: LatestPolicy = LatestPolicy.PER_OS
    default_aliases: bool = True
    registry: RegistryDestination | None = None
    registry_password: str | None = None
    registry_password_stdin: bool = False
    container_command: str | None = None
    matrix_path: Path | None = None

    @property
    def pushes_public(self) -> bool:
        return self.push or self.push_public

    @property
    def pushes_private(self) -> bool:
        return self.push or self.push_private


@dataclass
class Plan:
    """Every reference a run builds, tags or pushes"""
    targets: list[BuildTarget]
    aliases: list[AliasPair]
    destination: RegistryDestination | None = None
    private_targets: list[AliasPair] = field(default_factory=list)
    private_aliases: list[AliasPair] = field(default_factory=list)


def create_plan(config: MatrixConfig, options: Options, renderer: DockerfileRenderer | None = None) -> Plan:
    """Expand the matrix and derive aliases and private copies. No side effects."""
    matrix = MatrixExpander(config, renderer=renderer, enabled=options.families).expand()

    resolver = AliasResolver(
        AliasTable(config.aliases, latest_version=config.latest_version),
        default_aliases=matrix.default_aliases,
        latest_policy=options.latest_policy,
        include_defaults=options.default_aliases,
    )
    aliases = resolver.resolve_all(matrix.targets)

    destination = options.registry if options.registry is not None and options.registry.host else None

    return Plan(
        targets=matrix.targets,
        aliases=aliases,
        destination=destination,
        private_targets=rehome(matrix.targets, destination),
        private_aliases=rehome(aliases, destination),
    )


def select_backend(options: Options) -> ExecutionBackend:
    if options.dry_run:
        return CompositeBackend([PrintBackend()])
    if options.verbose:
        return CompositeBackend([PrintBackend(), RealBackend()])
    return CompositeBackend([RealBackend()])


def print_plan(plan: Plan) -> None:
    print(f"Build targets ({len(plan.targets)}):")
    for target in plan.targets:
        print(f"  {target.reference}")

    print(f"\nAliases ({len(plan.aliases)}):")
    for pair in plan.aliases:
        print(f"  {pair.source.reference} -> {pair.destination}")

    if plan.destination is None:
        print("\nNo private registry configured")
        return

    private = plan.private_targets + plan.private_aliases
    print(f"\nPrivate registry {plan.destination.address} ({len(private)}):")
    for pair in private:
        print(f"  {pair.source.reference} -> {pair.destination}")


class Pipeline:
    """Runs build, tag and push phases one operation at a time"""

    def __init__(
        self,
        config: MatrixConfig,
        options: Options,
        backend: ExecutionBackend,
        sleep: Callable[[float], None] = time.sleep,
        password_from_stdin: str | None = None,
        renderer: DockerfileRenderer | None = None,
    ):
        self.config = config
        self.options = options
        self.backend = backend
        self.sleep = sleep
        self.password_from_stdin = password_from_stdin
        self.renderer = renderer
        self.command = options.container_command or config.container_command

    @property
    def push_delay(self) -> float:
        return 0 if self.options.dry_run else self.options.push_delay

    def _push(self, targets: list[BuildTarget]) -> None:
        for target in targets:
            if self.push_delay > 0:
                self.sleep(self.push_delay)
            target.push(self.backend, self.command)

    def run(self) -> Plan:
        """Execute the selected phases.

        Raises:
            CommandError: on the first failing external command
        """
        options = self.options
        backend = self.backend
        plan = create_plan(self.config, options, renderer=self.renderer)

        if options.build:
            backend.section("Build docker images for public registry")
            for target in plan.targets:
                backend.phase(f"Preparing targets for {target.reference}")
                target.build(backend, self.command)

        if options.aliases:
            backend.section("Create public aliases")
            for pair in plan.aliases:
                pair.tag(backend, self.command)

        if options.pushes_public:
            backend.section("Push docker images to public registry")
            self._push(plan.targets)
            if options.aliases:
                self._push([pair.target for pair in plan.aliases])

        if plan.destination is not None:
            self._run_private(plan)
        elif options.push_private:
            print("Warning: No private registry configured, skipping private push", file=sys.stderr)

        if options.clean:
            self._clean(plan)

        return plan

    def _run_private(self, plan: Plan) -> None:
        options = self.options
        backend = self.backend

        if not (options.aliases or options.pushes_private):
            return

        password = resolve_password(plan.destination, options.registry_password, self.password_from_stdin)
        login(backend, plan.destination, password, self.command)

        backend.section("Create tags for private registry")
        for pair in plan.private_targets:
            pair.tag(backend, self.command)

        if options.aliases:
            backend.section("Create private aliases")
            for pair in plan.private_aliases:
                pair.tag(backend, self.command)

        if options.pushes_private:
            backend.section("Push docker images to private registry")
            self._push([pair.target for pair in plan.private_targets])
            if options.aliases:
                backend.section("Push aliases to private registry")
                self._push([pair.target for pair in plan.private_aliases])

    def _clean(self, plan: Plan) -> None:
        options = self.options
        self.backend.section("Remove local images")

        # Only references this run created, newest first
        pairs = []
        if plan.destination is not None and (options.aliases or options.pushes_private):
            if options.aliases:
                pairs.extend(plan.private_aliases)
            pairs.extend(plan.private_targets)
        if options.aliases:
            pairs.extend(plan.aliases)

        targets = [pair.target for pair in pairs]
        if options.build:
            targets.extend(plan.targets)

        for target in targets:
            try:
                target.remove(self.backend, self.command)
            except CommandError as e:
                print(f"Warning: Could not remove {target.reference}: {e}", file=sys.stderr)
