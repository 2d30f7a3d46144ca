from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

from jinja2 import Environment, FileSystemLoader, TemplateError, TemplateNotFound

from ..errors import WorkspaceError
from ..util.fs import atomic_write_bytes

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "dos"

DOS_CODEPAGE = "cp437"


def to_dos_bytes(text: str) -> bytes:
    """CRLF line endings, CP437; characters outside the code page become '?'."""
    crlf = text.replace("\r\n", "\n").replace("\n", "\r\n")
    return crlf.encode(DOS_CODEPAGE, errors="replace")


class Templates:
    def __init__(self, template_dir: Path = TEMPLATE_DIR):
        # DOS batch files and drop files are not HTML: never escape.
        self.env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=False,
            keep_trailing_newline=True,
        )

    def render_string(self, template: str, variables: Mapping[str, Any]) -> str:
        try:
            return self.env.from_string(template).render(**variables)
        except TemplateError as e:
            raise WorkspaceError(f"Couldn't render batch commands: {e}") from e

    def render_template(self, name: str, variables: Mapping[str, Any]) -> str:
        try:
            template = self.env.get_template(f"{name}.j2")
        except TemplateNotFound as e:
            raise WorkspaceError(f"Couldn't find template for {name}") from e
        try:
            return template.render(**variables)
        except TemplateError as e:
            raise WorkspaceError(f"While rendering template {name}: {e}") from e

    def write_dos(self, name: str, directory: Path, variables: Mapping[str, Any]) -> Path:
        """Render `name` and write it as `directory/NAME` in DOS encoding."""
        rendered = self.render_template(name, variables)
        path = Path(directory) / name.upper()
        try:
            atomic_write_bytes(path, to_dos_bytes(rendered))
        except OSError as e:
            raise WorkspaceError(f"Couldn't write {path}: {e}", path=path) from e
        return path
