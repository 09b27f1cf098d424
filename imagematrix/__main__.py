"""Command line interface for the image build matrix."""

import sys
from dataclasses import replace
from pathlib import Path

from jinja2 import TemplateError

from imagematrix.aliases import LatestPolicy
from imagematrix.backend import CommandError
from imagematrix.config import (
    ConfigLoader,
    get_container_command,
    get_matrix_path,
    get_push_delay,
    get_registry_settings,
)
from imagematrix.models import OsFamily
from imagematrix.pipeline import Options, Pipeline, create_plan, print_plan, select_backend
from imagematrix.registry import RegistryDestination, parse_registry_url

# --flag / --no-flag pairs -> Options attribute
TOGGLE_FLAGS = {
    "build": "build",
    "push": "push",
    "push-public": "push_public",
    "push-private": "push_private",
    "aliases": "aliases",
    "clean": "clean",
    "default-aliases": "default_aliases",
}


def print_usage() -> None:
    """Print usage information."""
    families = "/".join(f.value for f in OsFamily)
    print("Usage: image-matrix [options]", file=sys.stderr)
    print()
    print("Build, alias and push the container images of a build matrix.")
    print()
    print("Phases:")
    print("  --build / --no-build                    Build docker images")
    print("  --aliases / --no-aliases                Tag convenience aliases (5.5.2 -> 5.5, 5, latest)")
    print("  --push / --no-push                      Push to public and private registries")
    print("  --push-public / --no-push-public        Push to public registry")
    print("  --push-private / --no-push-private      Push to private registry")
    print("  --clean / --no-clean                    Remove local images created by this run")
    print("  --list                                  Print all computed references and exit")
    print()
    print("Matrix:")
    print(f"  --<family> / --no-<family>              Enable or disable an OS family ({families})")
    print("  --matrix PATH                           Matrix definition (default: matrix.yml or built-in)")
    print("  --default-aliases / --no-default-aliases")
    print("                                          Unsuffixed names for the default OS")
    print("  --latest-policy POLICY                  per-os (default) or default (only default OS gets 'latest')")
    print()
    print("Registry:")
    print("  --registry URL                          Private registry (https://[user[:password]@]host[:port])")
    print("  --registry-password PASSWORD            Registry password")
    print("  --registry-password-stdin               Read registry password from stdin")
    print("  --push-delay SECONDS                    Wait before each push (default: 3)")
    print()
    print("General:")
    print("  --container-command CMD                 Container engine (default: podman)")
    print("  -n, --dry-run                           Print but do not execute commands")
    print("  -v, --verbose                           Print commands while executing them")
    print("  -h, --help                              Show this help")
    print()
    print("Examples:")
    print("  image-matrix --build --aliases --push")
    print("  image-matrix -n --build --centos --no-ubuntu")
    print("  image-matrix --aliases --push-private --registry https://ci@registry.example.com:5000 --registry-password-stdin")


def parse_args(args: list[str]) -> tuple[Options, str | None] | None:
    """Parse command line arguments.

    Returns (options, registry_url) or None after printing an error.
    """
    options = Options()
    families: dict[OsFamily, bool] = {}
    family_names = {f.value: f for f in OsFamily}
    registry_url = None
    push_delay = None

    i = 0
    while i < len(args):
        arg = args[i]
        has_value = i + 1 < len(args)

        if arg in ("-v", "--verbose"):
            options.verbose = True
            i += 1
        elif arg in ("-n", "--dry-run"):
            options.dry_run = True
            i += 1
        elif arg == "--list":
            options.list_only = True
            i += 1
        elif arg == "--registry-password-stdin":
            options.registry_password_stdin = True
            i += 1
        elif arg == "--registry" and has_value:
            registry_url = args[i + 1]
            i += 2
        elif arg == "--registry-password" and has_value:
            options.registry_password = args[i + 1]
            i += 2
        elif arg == "--push-delay" and has_value:
            try:
                push_delay = float(args[i + 1])
            except ValueError:
                print(f"Invalid push delay: {args[i + 1]}", file=sys.stderr)
                return None
            if push_delay < 0:
                print(f"Invalid push delay: {args[i + 1]}", file=sys.stderr)
                return None
            i += 2
        elif arg == "--latest-policy" and has_value:
            try:
                options.latest_policy = LatestPolicy(args[i + 1])
            except ValueError:
                print(f"Invalid latest policy: {args[i + 1]} (expected per-os or default)", file=sys.stderr)
                return None
            i += 2
        elif arg == "--matrix" and has_value:
            options.matrix_path = Path(args[i + 1])
            i += 2
        elif arg == "--container-command" and has_value:
            options.container_command = args[i + 1]
            i += 2
        elif arg.startswith("--no-") and arg[5:] in TOGGLE_FLAGS:
            setattr(options, TOGGLE_FLAGS[arg[5:]], False)
            i += 1
        elif arg.startswith("--") and arg[2:] in TOGGLE_FLAGS:
            setattr(options, TOGGLE_FLAGS[arg[2:]], True)
            i += 1
        elif arg.startswith("--no-") and arg[5:] in family_names:
            families[family_names[arg[5:]]] = False
            i += 1
        elif arg.startswith("--") and arg[2:] in family_names:
            families[family_names[arg[2:]]] = True
            i += 1
        else:
            print(f"Unknown argument: {arg}", file=sys.stderr)
            return None

    options.families = families
    options.push_delay = push_delay if push_delay is not None else get_push_delay()
    return options, registry_url


def resolve_destination(registry_url: str | None) -> RegistryDestination | None:
    """Combine --registry with the registry settings from .image-matrix.yml.

    Credentials in the URL win over the settings file. Settings credentials
    belong to the settings URL and are only used for that host and port.
    """
    settings = get_registry_settings()
    destination = parse_registry_url(registry_url or settings.url)
    if destination is None:
        return None

    if registry_url:
        configured = parse_registry_url(settings.url)
        if configured is None or configured.address != destination.address:
            return destination

    if destination.username is None and settings.username:
        destination = replace(destination, username=settings.username)
    if destination.password is None and settings.password:
        destination = replace(destination, password=settings.password)
    return destination


def read_password_from_stdin() -> str | None:
    print("Enter registry password: ", file=sys.stderr)
    line = sys.stdin.readline()
    if not line:
        return None
    return line.rstrip("\r\n")


def cmd_build(args: list[str]) -> int:
    """Run the selected build, alias and push phases."""
    parsed = parse_args(args)
    if parsed is None:
        print_usage()
        return 1
    options, registry_url = parsed

    options.registry = resolve_destination(registry_url)
    if options.container_command is None:
        options.container_command = get_container_command()

    matrix_path = options.matrix_path or get_matrix_path()
    try:
        config = ConfigLoader.load(matrix_path)
    except Exception as e:
        print(f"Error: Invalid matrix definition {matrix_path}: {e}", file=sys.stderr)
        return 1

    if options.list_only:
        try:
            print_plan(create_plan(config, options))
        except (FileNotFoundError, TemplateError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        return 0

    password_from_stdin = read_password_from_stdin() if options.registry_password_stdin else None

    pipeline = Pipeline(
        config,
        options,
        select_backend(options),
        password_from_stdin=password_from_stdin,
    )

    try:
        pipeline.run()
    except CommandError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except (FileNotFoundError, TemplateError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


def main():
    args = sys.argv[1:]

    if "--help" in args or "-h" in args:
        print_usage()
        sys.exit(0)

    sys.exit(cmd_build(args))


if __name__ == "__main__":
    main()
