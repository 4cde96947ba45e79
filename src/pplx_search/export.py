import html
import re
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from datetime import datetime
from logging import getLogger
from pathlib import Path
from typing import Optional, Sequence

from pplx_search.errors import ConversionFailed, NoPdfConverter, UnknownFormat
from pplx_search.responses import Extraction

logger = getLogger(__name__)

FORMATS = ("md", "txt", "pdf")
FILENAME_PREFIX = "perplexity"
MAX_QUERY_TOKEN_LENGTH = 30
TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"
FOOTER_FORMAT = "%Y-%m-%d at %H:%M:%S"

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_-]+")
_MARKDOWN_LINK = re.compile(r"\[([^\]]*)\]\(([^)\s]*)\)")


def _footer(generated_at: datetime) -> str:
    return f"Generated with Perplexity AI on {generated_at.strftime(FOOTER_FORMAT)}"


def render_text(query: str, extraction: Extraction, generated_at: datetime) -> str:
    lines = [
        "PERPLEXITY SEARCH RESULTS",
        "=========================",
        "",
        "QUERY:",
        query,
        "",
        "ANSWER:",
        extraction.answer,
    ]
    if extraction.has_sources:
        lines += ["", "SOURCES:"]
        for citation in extraction.citations:
            lines += [f"* {citation.title}", f"  {citation.url}"]
    lines += ["", _footer(generated_at)]
    return "\n".join(lines) + "\n"


def render_markdown(query: str, extraction: Extraction, generated_at: datetime) -> str:
    lines = [
        "# Perplexity Search Results",
        "",
        "## Query",
        "",
        query,
        "",
        "## Answer",
        "",
        extraction.answer,
    ]
    if extraction.has_sources:
        lines += ["", "## Sources", ""]
        lines += [f"* [{c.title}]({c.url})" for c in extraction.citations]
    lines += ["", "---", _footer(generated_at)]
    return "\n".join(lines) + "\n"


def markdown_to_html(markdown: str) -> str:
    """
    Minimal line-based Markdown to HTML substitution, enough for the documents
    render_markdown produces. Not a general Markdown implementation.
    """
    body = []
    for line in markdown.splitlines():
        text = _MARKDOWN_LINK.sub(
            lambda m: f'<a href="{m.group(2)}">{m.group(1)}</a>', html.escape(line, quote=False)
        )
        if line.startswith("## "):
            body.append(f"<h2>{text[3:]}</h2>")
        elif line.startswith("# "):
            body.append(f"<h1>{text[2:]}</h1>")
        elif line.startswith("* "):
            body.append(f"<li>{text[2:]}</li>")
        elif line.strip() == "---":
            body.append("<hr>")
        elif not line.strip():
            body.append("<p></p>")
        else:
            body.append(text)

    return "\n".join(
        [
            "<html><head><meta charset='utf-8'></head>",
            "<body style='font-family: Arial, sans-serif; max-width: 800px; margin: 20px auto;'>",
            *body,
            "</body></html>",
        ]
    )


class PdfConverter:
    """
    An external program that turns the Markdown rendering into a PDF. Staging
    files are written to a temporary directory that is removed once the
    conversion finishes, whether it succeeded or not.
    """

    name = "converter"
    executables: tuple[str, ...] = ()

    def is_available(self) -> bool:
        return all(shutil.which(exe) for exe in self.executables)

    def convert(self, markdown: str) -> bytes:
        with tempfile.TemporaryDirectory(prefix="pplx-") as staging:
            output = Path(staging) / "output.pdf"
            self._convert(markdown, Path(staging), output)
            if not output.is_file() or output.stat().st_size == 0:
                raise ConversionFailed(f"{self.name} did not produce a PDF")
            return output.read_bytes()

    def _convert(self, markdown: str, staging: Path, output: Path) -> None:
        raise NotImplementedError

    def _run(self, *args) -> None:
        logger.debug(f"Running {' '.join(str(a) for a in args)}")
        try:
            subprocess.run([str(a) for a in args], check=True, capture_output=True)
        except (OSError, subprocess.CalledProcessError) as e:
            stderr = getattr(e, "stderr", None) or b""
            raise ConversionFailed(
                f"{self.name} failed: {e} {stderr.decode(errors='replace').strip()}".strip()
            ) from e


class PandocConverter(PdfConverter):
    name = "pandoc"
    executables = ("pandoc",)

    def _convert(self, markdown: str, staging: Path, output: Path) -> None:
        source = staging / "document.md"
        source.write_text(markdown, encoding="utf-8")
        self._run("pandoc", source, "-o", output)


class WkhtmltopdfConverter(PdfConverter):
    name = "wkhtmltopdf"
    executables = ("wkhtmltopdf",)

    def _convert(self, markdown: str, staging: Path, output: Path) -> None:
        source = staging / "document.html"
        source.write_text(markdown_to_html(markdown), encoding="utf-8")
        self._run("wkhtmltopdf", "--quiet", source, output)


class EnscriptConverter(PdfConverter):
    name = "enscript+ps2pdf"
    executables = ("enscript", "ps2pdf")

    def _convert(self, markdown: str, staging: Path, output: Path) -> None:
        source = staging / "document.txt"
        postscript = staging / "document.ps"
        source.write_text(markdown, encoding="utf-8")
        self._run("enscript", "--quiet", "-p", postscript, source)
        self._run("ps2pdf", postscript, output)


DEFAULT_CONVERTERS = (PandocConverter(), WkhtmltopdfConverter(), EnscriptConverter())


def convert_to_pdf(
    markdown: str, converters: Sequence[PdfConverter] = DEFAULT_CONVERTERS
) -> tuple[bytes, PdfConverter]:
    """Try each available converter in order and return the first PDF produced."""
    for converter in converters:
        if not converter.is_available():
            logger.debug(f"PDF converter {converter.name} is not installed")
            continue
        logger.info(f"Converting to PDF using {converter.name}")
        try:
            return converter.convert(markdown), converter
        except ConversionFailed as e:
            logger.warning(f"{e}; trying the next converter")
    raise NoPdfConverter()


def sanitize_query(query: str) -> str:
    token = _UNSAFE_FILENAME_CHARS.sub("-", query)[:MAX_QUERY_TOKEN_LENGTH].strip("-")
    return token or "query"


def default_output_path(query: str, fmt: str, now: datetime) -> Path:
    return Path(f"{FILENAME_PREFIX}_{sanitize_query(query)}_{now.strftime(TIMESTAMP_FORMAT)}.{fmt}")


def resolve_output_path(
    output: Optional[str], query: str, fmt: str, now: datetime
) -> Path:
    if not output:
        return default_output_path(query, fmt, now)
    path = Path(output)
    if path.suffix.lstrip(".") not in FORMATS:
        path = path.with_name(f"{path.name}.{fmt}")
    return path


@dataclass
class ExportDocument:
    content: bytes
    path: Path
    format: str
    converter: Optional[str] = None
    # True when the requested PDF was replaced by plain text
    substituted: bool = False


def render_document(
    query: str,
    extraction: Extraction,
    fmt: str,
    path: Path,
    generated_at: datetime,
    converters: Sequence[PdfConverter] = DEFAULT_CONVERTERS,
) -> ExportDocument:
    if fmt not in FORMATS:
        raise UnknownFormat(fmt)

    if fmt == "txt":
        content = render_text(query, extraction, generated_at)
        return ExportDocument(content.encode("utf-8"), path, fmt)

    markdown = render_markdown(query, extraction, generated_at)
    if fmt == "md":
        return ExportDocument(markdown.encode("utf-8"), path, fmt)

    try:
        pdf, converter = convert_to_pdf(markdown, converters)
    except NoPdfConverter:
        logger.warning("No PDF converter available, saving plain text instead")
        content = render_text(query, extraction, generated_at)
        return ExportDocument(
            content.encode("utf-8"), path.with_suffix(".txt"), "txt", substituted=True
        )
    return ExportDocument(pdf, path, fmt, converter=converter.name)


def export_document(
    query: str,
    extraction: Extraction,
    fmt: str = "md",
    output: Optional[str] = None,
    now: Optional[datetime] = None,
    converters: Sequence[PdfConverter] = DEFAULT_CONVERTERS,
) -> ExportDocument:
    """Render the query and its answer in the given format and write it to disk."""
    now = now or datetime.now()
    path = resolve_output_path(output, query, fmt, now)
    document = render_document(query, extraction, fmt, path, now, converters)

    document.path.parent.mkdir(parents=True, exist_ok=True)
    document.path.write_bytes(document.content)
    logger.info(f"Wrote {len(document.content)} bytes to {document.path}")
    return document
