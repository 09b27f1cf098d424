from pathlib import Path

from jinja2 import Environment, StrictUndefined, Template
from pydantic import dataclasses

from imagematrix.models import ImageKind, OsFamily
from imagematrix.template_resolver import TemplateResolver


@dataclasses.dataclass(frozen=True)
class RenderContext:
    family: OsFamily
    kind: ImageKind
    os_version: str
    runtime_version: str
    os_codename: str | None = None
    # Sibling image references for the same combination, keyed by kind
    images: dict[str, str] | None = None


class DockerfileRenderer:
    """Maps (family, kind) to a template and renders Dockerfile content"""

    def __init__(self, resolver: TemplateResolver | None = None):
        self.resolver = resolver or TemplateResolver()
        self.env = Environment(keep_trailing_newline=True, undefined=StrictUndefined)
        self._templates: dict[tuple[OsFamily, ImageKind], Template] = {}

    def template_for(self, family: OsFamily, kind: ImageKind) -> Template:
        key = (family, kind)
        if key not in self._templates:
            path: Path = self.resolver.resolve(family, kind)
            self._templates[key] = self.env.from_string(path.read_text())
        return self._templates[key]

    def render(self, context: RenderContext) -> str:
        tpl = self.template_for(context.family, context.kind)
        return tpl.render(
            family=context.family.value,
            kind=context.kind.value,
            os_version=context.os_version,
            os_codename=context.os_codename,
            runtime_version=context.runtime_version,
            images=context.images or {},
        )
