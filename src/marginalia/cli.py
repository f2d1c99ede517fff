"""Command-line front end for highlighting text files.

Loads the given files, applies highlight and removal operations in the
order given, then prints each document with its highlights and the
cross-document highlight list.

Usage:
    marginalia notes.txt report.txt --highlight notes.txt:4:9 --remove 1:0:3
"""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass
from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from marginalia import __version__, setup_logging
from marginalia.highlights.models import (
    DuplicateScope,
    ErrorKind,
    OverlapPolicy,
    Rejection,
)
from marginalia.highlights.workspace import HighlightWorkspace
from marginalia.html_view import render_document_html
from marginalia.ingest import load_files

if TYPE_CHECKING:
    from collections.abc import Sequence

    from marginalia.highlights.workspace import Document

console = Console()

HIGHLIGHT_STYLE = "black on yellow"


@dataclass(frozen=True)
class SpanArg:
    """A ``DOCUMENT:START:END`` command-line span."""

    document: str
    start: int
    end: int

    def __str__(self) -> str:
        return f"{self.document}:{self.start}:{self.end}"


def _parse_span(value: str) -> SpanArg:
    parts = value.rsplit(":", 2)
    if len(parts) != 3:
        msg = f"expected DOCUMENT:START:END, got {value!r}"
        raise argparse.ArgumentTypeError(msg)
    document, start, end = parts
    try:
        return SpanArg(document, int(start), int(end))
    except ValueError:
        msg = f"START and END must be integers in {value!r}"
        raise argparse.ArgumentTypeError(msg) from None


def _parse_text_arg(value: str) -> tuple[str, str]:
    document, sep, text = value.partition(":")
    if not sep or not text:
        msg = f"expected DOCUMENT:TEXT, got {value!r}"
        raise argparse.ArgumentTypeError(msg)
    return document, text


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the marginalia command."""
    parser = argparse.ArgumentParser(
        prog="marginalia",
        description="Highlight spans of plain-text files.",
    )
    parser.add_argument("files", nargs="+", help="Text files to load, in order")
    parser.add_argument(
        "--highlight",
        "-H",
        action="append",
        type=_parse_span,
        default=[],
        metavar="DOC:START:END",
        help="Highlight a span; DOC is a file name or 1-based load index",
    )
    parser.add_argument(
        "--remove",
        "-r",
        action="append",
        type=_parse_span,
        default=[],
        metavar="DOC:START:END",
        help="Remove the highlight spanning exactly START..END",
    )
    parser.add_argument(
        "--remove-text",
        action="append",
        type=_parse_text_arg,
        default=[],
        metavar="DOC:TEXT",
        help="Remove highlights whose text matches TEXT",
    )
    parser.add_argument(
        "--policy",
        type=OverlapPolicy,
        choices=list(OverlapPolicy),
        default=None,
        help="Overlap policy (default: from settings)",
    )
    parser.add_argument(
        "--scope",
        type=DuplicateScope,
        choices=list(DuplicateScope),
        default=None,
        help="Duplicate-text scope (default: from settings)",
    )
    parser.add_argument(
        "--no-trim",
        action="store_true",
        help="Keep leading/trailing whitespace in selections",
    )
    parser.add_argument(
        "--html", action="store_true", help="Print the rendered HTML of each document"
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    return parser


def _resolve_document(workspace: HighlightWorkspace, ref: str) -> Document | None:
    """Find a document by file name, falling back to its 1-based load index."""
    document = workspace.find_document(ref)
    if document is not None:
        return document
    if ref.isdigit():
        documents = workspace.documents()
        index = int(ref) - 1
        if 0 <= index < len(documents):
            return documents[index]
    return None


def _report(con: Console, action: str, target: str, error: Rejection) -> None:
    con.print(
        f"[red]{action} rejected[/] {escape(target)}: "
        f"[bold]{error.kind}[/] {escape(error.message)}"
    )


def _apply_operations(
    workspace: HighlightWorkspace, args: argparse.Namespace, con: Console
) -> int:
    """Apply highlight and removal arguments; return the number of failures."""
    failures = 0

    for span in args.highlight:
        document = _resolve_document(workspace, span.document)
        if document is None:
            con.print(f"[red]Error:[/] no document {escape(repr(span.document))}")
            failures += 1
            continue
        result = workspace.highlight_offsets(document.id, span.start, span.end)
        if result.error is not None:
            _report(con, "Highlight", str(span), result.error)
            failures += 1

    for span in args.remove:
        document = _resolve_document(workspace, span.document)
        if document is None:
            con.print(f"[red]Error:[/] no document {escape(repr(span.document))}")
            failures += 1
            continue
        if not workspace.remove_highlight(document.id, span.start, span.end):
            _report(
                con,
                "Remove",
                str(span),
                Rejection(ErrorKind.NOT_FOUND, "No highlight spans that exact range."),
            )
            failures += 1

    for ref, text in args.remove_text:
        document = _resolve_document(workspace, ref)
        if document is None:
            con.print(f"[red]Error:[/] no document {escape(repr(ref))}")
            failures += 1
            continue
        if not workspace.remove_highlight_by_text(document.id, text):
            _report(
                con,
                "Remove",
                f"{ref}:{text!r}",
                Rejection(ErrorKind.NOT_FOUND, "No highlight has that text."),
            )
            failures += 1

    return failures


def _render_document(workspace: HighlightWorkspace, document: Document) -> Text:
    rendered = Text()
    for segment in workspace.segments(document.id):
        style = HIGHLIGHT_STYLE if segment.is_highlight else ""
        rendered.append(segment.text, style=style)
    return rendered


def _print_summary(workspace: HighlightWorkspace, con: Console, *, html: bool) -> None:
    for document in workspace.documents():
        count = len(document.store)
        plural = "" if count == 1 else "s"
        title = f"{escape(document.name)} [dim]({count} highlight{plural})[/]"
        con.print(Panel(_render_document(workspace, document), title=title))
        if html:
            rendered_html = render_document_html(workspace.segments(document.id))
            con.print(rendered_html, markup=False, highlight=False, soft_wrap=True)

    entries = workspace.export_all()
    if not entries:
        con.print("[yellow]No highlights.[/]")
        return

    table = Table(title="All Highlighted Texts")
    table.add_column("Document", style="cyan")
    table.add_column("Start", justify="right")
    table.add_column("End", justify="right")
    table.add_column("Text")
    for entry in entries:
        table.add_row(entry.document_name, str(entry.start), str(entry.end), entry.text)
    con.print(table)
    con.print(Text(workspace.joined_text()))


def run(argv: Sequence[str], *, output: Console | None = None) -> int:
    """Run the command with *argv*; returns the process exit code."""
    con = output if output is not None else console
    args = _build_parser().parse_args(list(argv))

    workspace = HighlightWorkspace(
        policy=args.policy,
        scope=args.scope,
        trim_whitespace=False if args.no_trim else None,
    )
    try:
        load_files(workspace, args.files)
    except OSError as exc:
        con.print(f"[red]Error:[/] {escape(str(exc))}")
        return 2

    failures = _apply_operations(workspace, args, con)
    _print_summary(workspace, con, html=args.html)
    return 1 if failures else 0


def main() -> None:
    """Entry point for the marginalia command."""
    setup_logging()
    sys.exit(run(sys.argv[1:]))
