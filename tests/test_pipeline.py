import io

import pytest

from imagematrix.aliases import LatestPolicy
from imagematrix.backend import CommandError, PrintBackend
from imagematrix.models import OsFamily
from imagematrix.pipeline import Options, Pipeline, create_plan, print_plan, select_backend
from imagematrix.registry import RegistryDestination


class FailingBackend(PrintBackend):
    """Print backend whose commands fail for one verb"""

    def __init__(self, verb):
        super().__init__(stream=io.StringIO())
        self.verb = verb

    def run(self, command, working_dir=None):
        super().run(command, working_dir)
        if command[1] == self.verb:
            raise CommandError(command, 125)


@pytest.fixture
def small_config(matrix_config):
    """One runtime version, Ubuntu only, with a single alias"""
    return matrix_config(runtime_versions=["5.5.2"], aliases={"5.5.2": ["5.5"]})


def make_options(**kwargs):
    kwargs.setdefault("families", {OsFamily.CENTOS: False})
    kwargs.setdefault("push_delay", 0)
    return Options(**kwargs)


def run_pipeline(config, options, backend=None, **kwargs):
    backend = backend or PrintBackend(stream=io.StringIO())
    Pipeline(config, options, backend, **kwargs).run()
    return backend


def verbs(backend):
    return [(cmd[1], cmd[-1]) for cmd in backend.commands]


def test_build_alias_push_sequence(small_config):
    backend = run_pipeline(small_config, make_options(build=True, aliases=True, push_public=True))

    build = backend.commands[0]
    assert build[:4] == ("podman", "build", "-t", "kitura/swift-ci-ubuntu18.04:5.5.2")
    assert verbs(backend)[1:] == [
        ("tag", "kitura/swift-ci-ubuntu18.04:5.5"),
        ("tag", "kitura/swift-ci:5.5.2"),
        ("tag", "kitura/swift-ci:5.5"),
        ("push", "kitura/swift-ci-ubuntu18.04:5.5.2"),
        ("push", "kitura/swift-ci-ubuntu18.04:5.5"),
        ("push", "kitura/swift-ci:5.5.2"),
        ("push", "kitura/swift-ci:5.5"),
    ]
    # Every alias is tagged from the image that was built
    assert all(cmd[2] == "kitura/swift-ci-ubuntu18.04:5.5.2" for cmd in backend.commands if cmd[1] == "tag")


def test_build_writes_dockerfile_before_building(small_config):
    backend = run_pipeline(small_config, make_options(build=True))

    mkdir, write, build = [a for a in backend.actions if a.kind in ("mkdir", "write", "run")]
    assert write.path == mkdir.path / "Dockerfile"
    assert write.content.startswith("FROM swift:5.5.2-bionic\n")
    assert build.working_dir == mkdir.path
    assert build.command[-1] == str(mkdir.path)


def test_push_without_aliases_pushes_only_targets(small_config):
    backend = run_pipeline(small_config, make_options(push=True))
    assert verbs(backend) == [("push", "kitura/swift-ci-ubuntu18.04:5.5.2")]


def test_nothing_selected_does_nothing(small_config):
    assert run_pipeline(small_config, make_options()).commands == []


def test_container_command_override(small_config):
    backend = run_pipeline(small_config, make_options(push=True, container_command="docker"))
    assert backend.commands[0][0] == "docker"


def test_push_delay_before_every_push(small_config):
    delays = []
    run_pipeline(small_config, make_options(push=True, aliases=True, push_delay=2.5), sleep=delays.append)
    assert delays == [2.5] * 4


def test_dry_run_performs_no_side_effects(small_config, monkeypatch):
    """A dry run only prints, even for every phase at once"""
    def fail(*args, **kwargs):
        raise AssertionError("subprocess must not run in dry-run mode")

    monkeypatch.setattr("imagematrix.backend.subprocess.run", fail)
    delays = []
    options = make_options(
        build=True, aliases=True, push=True, clean=True, dry_run=True, push_delay=3,
        registry=RegistryDestination("registry.example.com", 5000, "ci"), registry_password="pw",
    )
    backend = select_backend(options)

    Pipeline(small_config, options, backend, sleep=delays.append).run()

    printed = backend.backends[0]
    assert len(backend.backends) == 1
    assert delays == []
    assert printed.commands
    assert not any(a.path.exists() for a in printed.actions if a.kind == "mkdir")


def test_select_backend():
    assert [type(b).__name__ for b in select_backend(Options(dry_run=True)).backends] == ["PrintBackend"]
    assert [type(b).__name__ for b in select_backend(Options(verbose=True)).backends] == ["PrintBackend", "RealBackend"]
    assert [type(b).__name__ for b in select_backend(Options()).backends] == ["RealBackend"]
    # dry-run wins over verbose
    assert [type(b).__name__ for b in select_backend(Options(dry_run=True, verbose=True)).backends] == ["PrintBackend"]


def test_first_failure_halts_run(small_config):
    backend = FailingBackend("tag")

    with pytest.raises(CommandError):
        run_pipeline(small_config, make_options(build=True, aliases=True, push=True), backend=backend)

    assert [cmd[1] for cmd in backend.commands] == ["build", "tag"]


class TestPrivateRegistry:
    registry = RegistryDestination("registry.example.com", 5000, "ci")

    def test_private_push_with_login(self, small_config):
        options = make_options(
            aliases=True, push_private=True, registry=self.registry, registry_password="pw",
        )
        backend = run_pipeline(small_config, options)

        assert backend.commands[3] == ("podman", "login", "registry.example.com:5000", "-u", "ci", "-p", "pw")
        assert verbs(backend) == [
            # public aliases
            ("tag", "kitura/swift-ci-ubuntu18.04:5.5"),
            ("tag", "kitura/swift-ci:5.5.2"),
            ("tag", "kitura/swift-ci:5.5"),
            ("login", "pw"),
            # private copies
            ("tag", "registry.example.com:5000/kitura/swift-ci-ubuntu18.04:5.5.2"),
            ("tag", "registry.example.com:5000/kitura/swift-ci-ubuntu18.04:5.5"),
            ("tag", "registry.example.com:5000/kitura/swift-ci:5.5.2"),
            ("tag", "registry.example.com:5000/kitura/swift-ci:5.5"),
            ("push", "registry.example.com:5000/kitura/swift-ci-ubuntu18.04:5.5.2"),
            ("push", "registry.example.com:5000/kitura/swift-ci-ubuntu18.04:5.5"),
            ("push", "registry.example.com:5000/kitura/swift-ci:5.5.2"),
            ("push", "registry.example.com:5000/kitura/swift-ci:5.5"),
        ]
        # no public pushes
        assert not any(cmd[1] == "push" and not cmd[2].startswith("registry.example.com") for cmd in backend.commands)

    def test_stdin_password_used_when_no_explicit_password(self, small_config):
        options = make_options(push_private=True, registry=self.registry)
        backend = run_pipeline(small_config, options, password_from_stdin="from-stdin")
        assert backend.commands[0][-1] == "from-stdin"

    def test_no_login_without_password(self, small_config):
        options = make_options(push_private=True, registry=self.registry)
        backend = run_pipeline(small_config, options)

        assert backend.commands[0][1] == "tag"

    def test_no_private_phase_without_registry(self, small_config, capsys):
        backend = run_pipeline(small_config, make_options(push_private=True))

        assert backend.commands == []
        assert "No private registry configured" in capsys.readouterr().err

    def test_registry_unused_without_private_work(self, small_config):
        backend = run_pipeline(small_config, make_options(build=True, registry=self.registry, registry_password="pw"))
        assert [cmd[1] for cmd in backend.commands] == ["build"]


def test_clean_removes_created_references(small_config):
    backend = run_pipeline(small_config, make_options(build=True, aliases=True, clean=True))

    removed = [cmd[2] for cmd in backend.commands if cmd[1] == "rmi"]
    assert removed == [
        "kitura/swift-ci-ubuntu18.04:5.5",
        "kitura/swift-ci:5.5.2",
        "kitura/swift-ci:5.5",
        "kitura/swift-ci-ubuntu18.04:5.5.2",
    ]


def test_clean_failures_are_warnings(small_config, capsys):
    backend = FailingBackend("rmi")

    run_pipeline(small_config, make_options(build=True, clean=True), backend=backend)

    assert [cmd[1] for cmd in backend.commands] == ["build", "rmi"]
    assert "Warning: Could not remove" in capsys.readouterr().err


class TestPlan:
    def test_plan_counts(self, matrix_config):
        plan = create_plan(matrix_config(), Options())

        assert len(plan.targets) == 3
        # 1 + 3 own aliases for Ubuntu, 3 for CentOS, two default chains of 2 and 4
        assert len(plan.aliases) == 1 + 3 + 3 + 2 + 4
        assert plan.destination is None
        assert plan.private_targets == []

    def test_default_latest_policy(self, matrix_config):
        plan = create_plan(matrix_config(), Options(latest_policy=LatestPolicy.DEFAULT))
        latest = [str(p.destination) for p in plan.aliases if p.destination.tag == "latest"]
        assert latest == ["kitura/swift-ci:latest"]

    def test_without_default_aliases(self, matrix_config):
        plan = create_plan(matrix_config(), Options(default_aliases=False))
        assert not any(p.destination.repository == "kitura/swift-ci" for p in plan.aliases)

    def test_registry_without_host_is_ignored(self, matrix_config):
        plan = create_plan(matrix_config(), Options(registry=RegistryDestination(host=None)))
        assert plan.destination is None

    def test_private_copies(self, matrix_config):
        plan = create_plan(matrix_config(), Options(registry=RegistryDestination("registry.local")))

        assert len(plan.private_targets) == len(plan.targets)
        assert len(plan.private_aliases) == len(plan.aliases)
        assert all(p.destination.host.hostname == "registry.local" for p in plan.private_aliases)

    def test_print_plan(self, matrix_config, capsys):
        print_plan(create_plan(matrix_config(), Options(registry=RegistryDestination("registry.local"))))
        out = capsys.readouterr().out

        assert "Build targets (3):" in out
        assert "kitura/swift-ci-centos8:5.5.2 -> kitura/swift-ci-centos8:latest" in out
        assert "Private registry registry.local (" in out
