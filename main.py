"""CLI entry point for the JRXML viewer.

Usage::

    python main.py info report.jrxml
    python main.py outline report.jrxml
    python main.py properties report.jrxml
    python main.py scan path/to/workspace
    python main.py edit report.jrxml --type textField --at 50,100 \\
        [--width 250] [--expression '$F{fullName}'] [-o out.jrxml] [-v]
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from jrxml.config import ViewerConfig
from jrxml.errors import NoChangeError, PatchNotFoundError
from jrxml.extractor import ReportExtractor
from jrxml.models import ElementEdit, ElementKey
from jrxml.outline import (
    OutlineNode,
    build_element_outline,
    build_properties,
    scan_reports,
)
from jrxml.patcher import PatchEngine
from jrxml.tree import parse_tree

logger = logging.getLogger("jrxml-viewer")


def _build_argument_parser() -> argparse.ArgumentParser:
    """Create and return the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="jrxml-viewer",
        description="Inspect JasperReports report definitions and edit element layout in place.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a configuration overlay YAML file.",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        default=False,
        help="Enable verbose (DEBUG) logging output.",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    info = commands.add_parser("info", help="Print a summary of a report.")
    info.add_argument("input", help="Path to the .jrxml file.")
    info.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Print the full report model as JSON instead.",
    )

    outline = commands.add_parser("outline", help="Print the elements of each band.")
    outline.add_argument("input", help="Path to the .jrxml file.")

    props = commands.add_parser("properties", help="Print the properties summary.")
    props.add_argument("input", help="Path to the .jrxml file.")

    scan = commands.add_parser("scan", help="List report files under a folder.")
    scan.add_argument("root", nargs="?", default=".", help="Folder to scan.")

    edit = commands.add_parser("edit", help="Move, resize or restyle one element.")
    edit.add_argument("input", help="Path to the .jrxml file.")
    edit.add_argument("--type", required=True, dest="element_type",
                      help="Element type, e.g. staticText or textField.")
    edit.add_argument("--at", required=True, type=_position,
                      help="Current position of the element as X,Y.")
    edit.add_argument("-o", "--output", default=None,
                      help="Where to write the result. Defaults to editing in place.")
    for name in ("x", "y", "width", "height"):
        edit.add_argument(f"--{name}", type=int, default=None)
    edit.add_argument("--text", default=None, help="New static text.")
    edit.add_argument("--expression", default=None, help="New field/subreport expression.")
    edit.add_argument("--pattern", default=None)
    edit.add_argument("--font-name", default=None)
    edit.add_argument("--font-size", type=int, default=None)
    edit.add_argument("--bold", dest="is_bold", action="store_true", default=None)
    edit.add_argument("--no-bold", dest="is_bold", action="store_false")
    edit.add_argument("--text-alignment", default=None)
    edit.add_argument("--vertical-alignment", default=None)
    edit.add_argument("--forecolor", default=None)
    edit.add_argument("--backcolor", default=None)
    edit.add_argument("--mode", choices=("Opaque", "Transparent"), default=None)

    return parser


def _position(value: str) -> tuple[int, int]:
    try:
        x, y = (int(part) for part in value.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected X,Y but got {value!r}")
    return x, y


def _setup_logging(verbose: bool) -> None:
    """Configure the root logger for the application."""
    level = logging.DEBUG if verbose else logging.INFO

    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)

    handlers: list[logging.Handler] = [
        logging.StreamHandler(sys.stderr),
        logging.FileHandler(log_dir / "jrxml-viewer.log", encoding="utf-8"),
    ]

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )


def _read_report(path: str) -> str:
    if not Path(path).is_file():
        raise FileNotFoundError(f"Input file not found: {path}")
    # newline="" keeps CRLF documents byte-identical outside the edit.
    with open(path, "r", encoding="utf-8", newline="") as fh:
        return fh.read()


def _print_summary(summary: dict) -> None:
    """Print a human-readable report summary to stdout."""
    print("\n--- Report Summary ---")
    print(f"  Name        : {summary.get('name', '')}")
    print(f"  Page        : {summary.get('page', '')} {summary.get('orientation', '')}")
    print(f"  Parameters  : {summary.get('parameters', 0)}")
    print(f"  Fields      : {summary.get('fields', 0)}")
    print(f"  Variables   : {summary.get('variables', 0)}")
    print(f"  Groups      : {summary.get('groups', 0)}")
    print(f"  Bands       : {summary.get('bands', 0)}")
    print(f"  Elements    : {summary.get('elements', 0)}")
    print("----------------------\n")


def _print_tree(nodes: list[OutlineNode], depth: int = 0) -> None:
    for node in nodes:
        line = "  " * depth + node.label
        if node.description:
            line += f"  ({node.description})" if depth == 0 else f"  {node.description}"
        print(line)
        _print_tree(node.children, depth + 1)


def _build_edit(args: argparse.Namespace) -> ElementEdit:
    old_x, old_y = args.at
    changes = {
        "text": args.text,
        "expression": args.expression,
        "pattern": args.pattern,
        "font_name": args.font_name,
        "font_size": args.font_size,
        "is_bold": args.is_bold,
        "text_alignment": args.text_alignment,
        "vertical_alignment": args.vertical_alignment,
        "forecolor": args.forecolor,
        "backcolor": args.backcolor,
        "mode": args.mode,
    }
    return ElementEdit(
        type=args.element_type,
        old_x=old_x,
        old_y=old_y,
        x=old_x if args.x is None else args.x,
        y=old_y if args.y is None else args.y,
        width=args.width,
        height=args.height,
        **{k: v for k, v in changes.items() if v is not None},
    )


def _run_edit(args: argparse.Namespace, extractor: ReportExtractor, config: ViewerConfig) -> int:
    text = _read_report(args.input)
    report = extractor.extract(parse_tree(text))

    old_x, old_y = args.at
    key = ElementKey(args.element_type, old_x, old_y)
    matches = report.find_elements(key)
    if len(matches) > 1:
        logger.warning(
            "%d %s elements share position (%d, %d); the first in document order is edited",
            len(matches), key.type, key.x, key.y,
        )

    # Unspecified size keeps the current one.
    if matches:
        if args.width is None:
            args.width = matches[0].width
        if args.height is None:
            args.height = matches[0].height
    elif args.width is None or args.height is None:
        print(f"Warning: no {key.type} element at ({key.x}, {key.y}); "
              "pass --width and --height to edit elements outside the band outline.",
              file=sys.stderr)
        return 1
    edit = _build_edit(args)

    try:
        patched = PatchEngine(logger, config).apply(text, edit)
    except (PatchNotFoundError, NoChangeError) as exc:
        logger.warning("%s", exc)
        print(f"Warning: {exc}; the change was not written.", file=sys.stderr)
        return 1

    refreshed = extractor.extract(parse_tree(patched))
    new_key = ElementKey(edit.type, edit.x, edit.y)
    if not refreshed.find_elements(new_key):
        logger.warning("Edited element not found at its new position after re-parse")

    output = args.output or args.input
    with open(output, "w", encoding="utf-8", newline="") as fh:
        fh.write(patched)
    print(f"Report saved to: {output}")
    logger.info("Edited %s at (%d, %d) -> %s", key.type, key.x, key.y, output)
    return 0


def main() -> None:
    """Run the JRXML viewer CLI."""
    parser = _build_argument_parser()
    args = parser.parse_args()

    # -- Logging -----------------------------------------------------------
    _setup_logging(args.verbose)

    try:
        config = ViewerConfig(overlay_path=args.config)
        logger.debug("Configuration: %s (overlay: %s)", config.config_path, args.config)
        extractor = ReportExtractor(config)

        if args.command == "scan":
            nodes = scan_reports(args.root, config)
            if not nodes:
                print(f"No report files under {args.root}")
            _print_tree(nodes)
            sys.exit(0)

        if args.command == "edit":
            sys.exit(_run_edit(args, extractor, config))

        logger.info("Parsing report: %s", args.input)
        report = extractor.extract(parse_tree(_read_report(args.input)))

        if args.command == "info":
            if args.json:
                print(json.dumps(report.to_dict(), indent=2))
            else:
                _print_summary(report.summary())
        elif args.command == "outline":
            _print_tree(build_element_outline(report, config))
        elif args.command == "properties":
            _print_tree(build_properties(report))

    except FileNotFoundError as exc:
        logger.error("File not found: %s", exc)
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    except ValueError as exc:
        logger.error("Invalid input: %s", exc)
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    except Exception as exc:
        logger.exception("Unexpected error.")
        print(
            f"Error: An unexpected error occurred: {exc}\n"
            "Run with -v for detailed debug output.",
            file=sys.stderr,
        )
        sys.exit(2)


if __name__ == "__main__":
    main()
