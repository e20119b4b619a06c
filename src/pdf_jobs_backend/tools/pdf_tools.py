"""
Built-in PDF tool handlers backed by PyPDF2.

Every handler takes resolved input paths, its validated options and a
ToolContext, writes exactly one file into the job's output directory and
returns its path. User-facing problems (nothing selected, wrong password,
unreadable file) are raised as ProcessingError so the message ends up on the
failed job.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import List

from PyPDF2 import PageObject, PdfReader, PdfWriter
from PyPDF2.errors import PdfReadError

from ..errors import ProcessingError
from ..page_selection import parse_selection
from .options import (
    DeletePagesOptions,
    LockOptions,
    MergeOptions,
    MetadataOptions,
    ReorderOptions,
    RotateOptions,
    SplitOptions,
    TextExtractionOptions,
    UnlockOptions,
)
from .registry import InputArity, ToolContext, ToolHandler, ToolRegistry

logger = logging.getLogger(__name__)


def _open_reader(path: Path, password: str = "") -> PdfReader:
    try:
        reader = PdfReader(str(path), strict=False)
        if reader.is_encrypted and not reader.decrypt(password):
            raise ProcessingError(f"{path.name} is password protected")
        # Touch the page tree so damaged files fail here rather than mid-write.
        len(reader.pages)
    except (PdfReadError, ValueError) as exc:
        raise ProcessingError(f"{path.name} is not a readable PDF: {exc}") from exc
    return reader


def _write(writer: PdfWriter, destination: Path) -> Path:
    with destination.open("wb") as buffer:
        writer.write(buffer)
    return destination


def _stem(path: Path) -> str:
    return path.stem or "document"


def _page_text(page: PageObject) -> str:
    # Pages without a content stream (blank pages) carry no text.
    if "/Contents" not in page:
        return ""
    return (page.extract_text() or "").rstrip()


def zip_directory(source_dir: Path, zip_path: Path) -> Path:
    """
    Create a zip archive of a directory's contents.

    Args:
        source_dir: Directory whose files are archived
        zip_path: Destination archive, with or without the .zip extension

    Returns:
        Path to the created zip file
    """
    zip_base = str(zip_path).removesuffix(".zip")
    logger.debug(f"Creating zip archive: {zip_base}.zip from {source_dir}")
    archive_path = shutil.make_archive(base_name=zip_base, format="zip", root_dir=source_dir)
    return Path(archive_path)


def merge_pdfs(inputs: List[Path], options: MergeOptions, ctx: ToolContext) -> Path:
    writer = PdfWriter()
    for path in inputs:
        writer.append(_open_reader(path), import_outline=options.keep_bookmarks)
    return _write(writer, ctx.output_path("merged.pdf"))


def split_pdf(inputs: List[Path], options: SplitOptions, ctx: ToolContext) -> Path:
    source = inputs[0]
    reader = _open_reader(source)
    page_count = len(reader.pages)

    if options.split_type == "all":
        parts = [[page] for page in range(1, page_count + 1)]
    elif options.split_type == "range":
        selected = parse_selection(f"{options.page_range.start}-{options.page_range.end}", page_count)
        parts = [selected] if selected else []
    else:
        parts = [[page] for page in parse_selection(options.specific_pages, page_count)]

    if not parts:
        raise ProcessingError(f"No pages selected; the document has {page_count} pages")

    parts_dir = ctx.work_dir("parts")
    for pages in parts:
        writer = PdfWriter()
        for page in pages:
            writer.add_page(reader.pages[page - 1])
        label = f"page-{pages[0]}" if len(pages) == 1 else f"pages-{pages[0]}-{pages[-1]}"
        _write(writer, parts_dir / f"{_stem(source)}-{label}.pdf")

    archive = zip_directory(parts_dir, ctx.output_path(f"{_stem(source)}-split.zip"))
    shutil.rmtree(parts_dir, ignore_errors=True)
    return archive


def delete_pages(inputs: List[Path], options: DeletePagesOptions, ctx: ToolContext) -> Path:
    source = inputs[0]
    reader = _open_reader(source)
    page_count = len(reader.pages)

    doomed = set(parse_selection(options.pages_to_delete, page_count))
    if not doomed:
        raise ProcessingError("No valid pages selected for deletion")
    if len(doomed) == page_count:
        raise ProcessingError("Cannot delete every page of the document")

    writer = PdfWriter()
    for number, page in enumerate(reader.pages, start=1):
        if number not in doomed:
            writer.add_page(page)
    return _write(writer, ctx.output_path(f"{_stem(source)}-edited.pdf"))


def rotate_pages(inputs: List[Path], options: RotateOptions, ctx: ToolContext) -> Path:
    source = inputs[0]
    reader = _open_reader(source)
    page_count = len(reader.pages)

    if options.rotate_all:
        targets = set(range(1, page_count + 1))
    else:
        targets = set(parse_selection(options.pages_to_rotate, page_count))
        if not targets:
            raise ProcessingError("No valid pages selected for rotation")

    writer = PdfWriter()
    for number, page in enumerate(reader.pages, start=1):
        if number in targets:
            page.rotate(options.rotation_angle)
        writer.add_page(page)
    return _write(writer, ctx.output_path(f"{_stem(source)}-rotated.pdf"))


def reorder_pages(inputs: List[Path], options: ReorderOptions, ctx: ToolContext) -> Path:
    """Listed pages come first in the given order; unlisted pages follow in their original order."""
    source = inputs[0]
    reader = _open_reader(source)
    page_count = len(reader.pages)

    out_of_range = [page for page in options.page_order if page > page_count]
    if out_of_range:
        raise ProcessingError(f"Pages {out_of_range} do not exist; the document has {page_count} pages")

    listed = set(options.page_order)
    order = list(options.page_order) + [page for page in range(1, page_count + 1) if page not in listed]

    writer = PdfWriter()
    for page in order:
        writer.add_page(reader.pages[page - 1])
    return _write(writer, ctx.output_path(f"{_stem(source)}-reordered.pdf"))


def lock_pdf(inputs: List[Path], options: LockOptions, ctx: ToolContext) -> Path:
    source = inputs[0]
    reader = _open_reader(source)
    writer = PdfWriter()
    for page in reader.pages:
        writer.add_page(page)
    writer.encrypt(options.password)
    return _write(writer, ctx.output_path(f"{_stem(source)}-protected.pdf"))


def unlock_pdf(inputs: List[Path], options: UnlockOptions, ctx: ToolContext) -> Path:
    source = inputs[0]
    try:
        reader = PdfReader(str(source), strict=False)
    except (PdfReadError, ValueError) as exc:
        raise ProcessingError(f"{source.name} is not a readable PDF: {exc}") from exc

    if reader.is_encrypted:
        if not reader.decrypt(options.password):
            raise ProcessingError("Incorrect password")
    else:
        logger.info(f"[{ctx.job_id}] {source.name} is not encrypted; copying as-is")

    writer = PdfWriter()
    for page in reader.pages:
        writer.add_page(page)
    return _write(writer, ctx.output_path(f"{_stem(source)}-unlocked.pdf"))


def edit_metadata(inputs: List[Path], options: MetadataOptions, ctx: ToolContext) -> Path:
    source = inputs[0]
    reader = _open_reader(source)
    writer = PdfWriter()
    for page in reader.pages:
        writer.add_page(page)

    fields = {
        "/Title": options.title,
        "/Author": options.author,
        "/Subject": options.subject,
        "/Keywords": options.keywords,
    }
    writer.add_metadata({key: value for key, value in fields.items() if value is not None})
    return _write(writer, ctx.output_path(f"{_stem(source)}.pdf"))


def extract_text(inputs: List[Path], options: TextExtractionOptions, ctx: ToolContext) -> Path:
    source = inputs[0]
    reader = _open_reader(source)
    text = "\n\f\n".join(_page_text(page) for page in reader.pages)
    destination = ctx.output_path(f"{_stem(source)}.txt")
    destination.write_text(text, encoding="utf-8")
    return destination


BUILTIN_TOOLS = [
    ToolHandler(
        tool_type="merge-pdf",
        fn=merge_pdfs,
        options_model=MergeOptions,
        input_arity=InputArity.MULTIPLE,
        combines_inputs=True,
        description="Combine several PDFs into one document, in upload order.",
    ),
    ToolHandler(
        tool_type="split-pdf",
        fn=split_pdf,
        options_model=SplitOptions,
        description="Split a PDF into pages, a range, or selected pages (zip of PDFs).",
    ),
    ToolHandler(
        tool_type="delete-pdf-pages",
        fn=delete_pages,
        options_model=DeletePagesOptions,
        description="Remove selected pages from a PDF.",
    ),
    ToolHandler(
        tool_type="rotate-pdf",
        fn=rotate_pages,
        options_model=RotateOptions,
        description="Rotate all or selected pages by 90, 180 or 270 degrees.",
    ),
    ToolHandler(
        tool_type="reorder-pdf",
        fn=reorder_pages,
        options_model=ReorderOptions,
        description="Rearrange the pages of a PDF.",
    ),
    ToolHandler(
        tool_type="lock-pdf",
        fn=lock_pdf,
        options_model=LockOptions,
        description="Protect a PDF with a password.",
    ),
    ToolHandler(
        tool_type="unlock-pdf",
        fn=unlock_pdf,
        options_model=UnlockOptions,
        description="Remove password protection from a PDF.",
    ),
    ToolHandler(
        tool_type="edit-pdf-metadata",
        fn=edit_metadata,
        options_model=MetadataOptions,
        run_inline=True,
        description="Set the title, author, subject and keywords of a PDF.",
    ),
    ToolHandler(
        tool_type="pdf-to-txt",
        fn=extract_text,
        options_model=TextExtractionOptions,
        description="Extract the text of a PDF into a plain text file.",
    ),
]


def build_tool_registry() -> ToolRegistry:
    registry = ToolRegistry()
    for handler in BUILTIN_TOOLS:
        registry.register(handler)
    return registry
