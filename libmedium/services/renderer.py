from __future__ import annotations

from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from libmedium.models.post import RenderDocument

DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"


class TemplateRenderer:
    """Renders pages from the bundled Jinja2 templates.

    Autoescaping is on; paragraph fragments are trusted because the markup
    resolver escapes upstream text before inserting tags.
    """

    def __init__(self, template_dir: Path | None = None) -> None:
        self.template_dir = template_dir or DEFAULT_TEMPLATE_DIR
        self.env = Environment(
            loader=FileSystemLoader(self.template_dir),
            autoescape=select_autoescape(["html"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render_index(self) -> str:
        return self.env.get_template("index.html").render()

    def render_post(self, document: RenderDocument) -> str:
        return self.env.get_template("post.html").render(document=document)

    def render_error(self, *, status_code: int, message: str) -> str:
        return self.env.get_template("error.html").render(
            status_code=status_code,
            message=message,
        )
