"""Template engine — renders module templates and converts them to artifacts.

Templates are Jinja2 Markdown with strict undefined handling: a variable
the data does not provide is an error, not an empty string.

Available in templates:
    {{ created | format_date }}            ISO string/datetime -> "March 5, 2026"
    {{ body | markdown }}                  Markdown -> HTML
    {% if if_equals(status, "done") %}     loose equality helper
    {% include "header.md" %}              shared partials

Conversion:
    convert_to_pdf   Markdown -> HTML (markdown) -> PDF (WeasyPrint)
    convert_to_docx  Markdown headings/paragraphs/bullets -> .docx (python-docx)
"""

import io
import logging
import re
import threading
from datetime import date, datetime
from pathlib import Path

import markdown as markdown_lib
from docx import Document as DocxDocument
from docx.shared import Pt
from jinja2 import (
    ChoiceLoader,
    DictLoader,
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateError,
)
from markupsafe import Markup

from ventureplan.core.exceptions import GenerationError

logger = logging.getLogger(__name__)

PARTIALS_DIR = Path(__file__).resolve().parent.parent / "document_templates" / "partials"

_MD_EXTENSIONS = ["tables", "fenced_code", "sane_lists"]

PDF_STYLESHEET = """
body { font-family: Arial, sans-serif; line-height: 1.6; max-width: 800px; margin: 0 auto; }
h1, h2, h3 { margin-top: 2rem; }
p { margin: 1rem 0; }
table { border-collapse: collapse; width: 100%; }
th, td { border: 1px solid #ddd; padding: 8px; }
th { background-color: #f5f5f5; }
@page { size: A4; margin: 2cm; }
"""

_HEADING_RE = re.compile(r"^(#{1,6})\s+(.*?)\s*#*\s*$")
_BULLET_RE = re.compile(r"^\s*[-*+]\s+(.*)$")
_NUMBERED_RE = re.compile(r"^\s*\d+[.)]\s+(.*)$")
_BOLD_RE = re.compile(r"(\*\*[^*]+\*\*)")


# ── Jinja helpers ────────────────────────────────────────────────────────────

def format_date(value, fmt="%B %d, %Y"):
    if value in (None, ""):
        return ""
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(value, (date, datetime)):
        return value.strftime(fmt).replace(" 0", " ")
    return str(value)


def markdown_filter(text):
    if not isinstance(text, str):
        return ""
    return Markup(markdown_lib.markdown(text, extensions=_MD_EXTENSIONS))


def if_equals(a, b):
    return a == b or str(a) == str(b)


class TemplateEngine:
    """Stateless apart from a compiled-template cache."""

    def __init__(self, partials: dict | None = None, partials_dir=PARTIALS_DIR):
        loaders = []
        if partials:
            loaders.append(DictLoader(partials))
        if partials_dir and Path(partials_dir).is_dir():
            loaders.append(FileSystemLoader(str(partials_dir)))
        self.env = Environment(
            loader=ChoiceLoader(loaders),
            undefined=StrictUndefined,
            autoescape=False,  # rendering markdown, not HTML
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
        self.env.filters["format_date"] = format_date
        self.env.filters["markdown"] = markdown_filter
        self.env.globals["if_equals"] = if_equals
        self._cache = {}
        self._lock = threading.Lock()

    def _compile(self, template_text):
        with self._lock:
            compiled = self._cache.get(template_text)
            if compiled is None:
                compiled = self.env.from_string(template_text)
                self._cache[template_text] = compiled
            return compiled

    def process_template(self, template_text: str, data: dict) -> str:
        """Render ``template_text`` with ``data``.

        Raises:
            GenerationError: syntax error or a variable missing from data.
        """
        try:
            return self._compile(template_text).render(**data)
        except TemplateError as e:
            logger.warning("Template rendering failed: %s", e)
            raise GenerationError(f"Failed to process template: {e}") from e

    # ── Conversion ───────────────────────────────────────────────────────

    def to_html(self, text: str) -> str:
        body = markdown_lib.markdown(text, extensions=_MD_EXTENSIONS)
        return (
            "<!DOCTYPE html><html><head><meta charset=\"UTF-8\">"
            f"<style>{PDF_STYLESHEET}</style></head><body>{body}</body></html>"
        )

    def convert_to_pdf(self, text: str) -> bytes:
        try:
            from weasyprint import HTML
        except ImportError:
            raise GenerationError(
                "weasyprint is required for PDF export. "
                "Install with: pip install weasyprint>=60.0"
            )
        try:
            return HTML(string=self.to_html(text)).write_pdf()
        except Exception as e:
            logger.error("PDF conversion failed: %s", e)
            raise GenerationError(f"Failed to convert to PDF: {e}") from e

    def convert_to_docx(self, text: str) -> bytes:
        """Headings, paragraphs and bullet/numbered lists; other Markdown is kept as text."""
        try:
            doc = DocxDocument()
            doc.styles["Normal"].font.size = Pt(11)
            paragraph: list[str] = []

            def flush():
                if paragraph:
                    _add_runs(doc.add_paragraph(), " ".join(paragraph))
                    paragraph.clear()

            for line in text.splitlines():
                stripped = line.strip()
                if not stripped:
                    flush()
                    continue
                heading = _HEADING_RE.match(stripped)
                if heading:
                    flush()
                    doc.add_heading(heading.group(2), level=min(len(heading.group(1)), 6))
                    continue
                bullet = _BULLET_RE.match(line)
                if bullet:
                    flush()
                    _add_runs(doc.add_paragraph(style="List Bullet"), bullet.group(1))
                    continue
                numbered = _NUMBERED_RE.match(line)
                if numbered:
                    flush()
                    _add_runs(doc.add_paragraph(style="List Number"), numbered.group(1))
                    continue
                paragraph.append(stripped)
            flush()

            buf = io.BytesIO()
            doc.save(buf)
            return buf.getvalue()
        except Exception as e:
            logger.error("DOCX conversion failed: %s", e)
            raise GenerationError(f"Failed to convert to DOCX: {e}") from e

    def convert(self, text: str, fmt: str) -> bytes:
        if fmt == "pdf":
            return self.convert_to_pdf(text)
        if fmt == "docx":
            return self.convert_to_docx(text)
        if fmt == "md":
            return text.encode("utf-8")
        raise GenerationError(f"Unsupported document format: {fmt}")


def _add_runs(paragraph, text):
    """Add text to a docx paragraph, rendering **bold** segments bold."""
    for part in _BOLD_RE.split(text):
        if not part:
            continue
        if part.startswith("**") and part.endswith("**") and len(part) > 4:
            paragraph.add_run(part[2:-2]).bold = True
        else:
            paragraph.add_run(part)
