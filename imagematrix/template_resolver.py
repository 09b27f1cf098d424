from pathlib import Path

from imagematrix.models import ImageKind, OsFamily

PACKAGED_TEMPLATES_DIR = Path(__file__).parent / "templates"


class TemplateResolver:
    """Resolves Dockerfile templates for an (OS family, image kind) pair"""

    def __init__(self, templates_dirs: list[Path] | None = None):
        dirs = list(templates_dirs or [])
        if PACKAGED_TEMPLATES_DIR not in dirs:
            dirs.append(PACKAGED_TEMPLATES_DIR)
        self.templates_dirs = dirs

    def resolve(self, family: OsFamily, kind: ImageKind) -> Path:
        """
        Resolve template path following discovery order, per directory:
        1. Family-specific template (Dockerfile.{family}.{kind}.jinja2)
        2. Kind template shared by all families (Dockerfile.{kind}.jinja2)

        Directories are searched in order, packaged templates last.

        Raises FileNotFoundError if no template found.
        """
        searched = [
            f"Dockerfile.{family.value}.{kind.value}.jinja2",
            f"Dockerfile.{kind.value}.jinja2",
        ]

        for templates_dir in self.templates_dirs:
            for name in searched:
                path = templates_dir / name
                if path.exists():
                    return path

        raise FileNotFoundError(
            f"Template not found. Searched in {', '.join(str(d) for d in self.templates_dirs)}: {', '.join(searched)}"
        )
