"""Navigation views built from a report model.

The host shell shows three trees next to the preview: the elements of each
band, a properties summary, and the report files of a workspace.  They are
produced here as plain :class:`OutlineNode` trees so any front end (the
CLI, an editor extension) can render them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from jrxml.config import ViewerConfig, default_config
from jrxml.models import Band, Element, ReportModel

logger = logging.getLogger(__name__)

ELEMENT_LABELS: dict[str, str] = {
    "staticText": "Static Text",
    "textField": "Text Field",
    "image": "Image",
    "line": "Line",
    "rectangle": "Rectangle",
    "subreport": "Subreport",
    "chart": "Chart",
    "ellipse": "Ellipse",
    "frame": "Frame",
    "crosstab": "Crosstab",
    "componentElement": "Component",
    "genericElement": "Generic Element",
    "break": "Break",
}


@dataclass
class OutlineNode:
    """One entry of a navigation tree."""
    label: str
    kind: str
    description: str = ""
    path: Optional[Path] = None
    children: list[OutlineNode] = field(default_factory=list)


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


# ── Element outline ─────────────────────────────────────────────────


def _element_node(
    element: Element,
    index: int,
    same_type: int,
    cfg: ViewerConfig,
) -> OutlineNode:
    label = ELEMENT_LABELS.get(element.type, element.type)
    description = f"({element.x}, {element.y})"

    if element.type == "staticText" and element.text:
        label = _truncate(element.text, cfg.label_length)
        description = f"Static Text at ({element.x}, {element.y})"
    elif element.type == "textField" and element.expression:
        label = _truncate(element.expression, cfg.label_length)
        description = f"Expression at ({element.x}, {element.y})"
    elif element.type == "chart":
        label = f"{element.expression or 'unknown'} Chart"
    elif element.type == "subreport" and element.expression:
        label = f"Subreport: {element.expression[:cfg.subreport_label_length]}"
    elif same_type > 1:
        label = f"{label} #{index}"

    return OutlineNode(label=label, kind=element.type, description=description)


def _band_kind(band: Band) -> str:
    return "groupBand" if band.is_group_band else "band"


def _band_node(band: Band, cfg: ViewerConfig) -> OutlineNode:
    node = OutlineNode(
        label=cfg.band_labels.get(band.type, band.type),
        kind=_band_kind(band),
        description=f"height: {band.height}px",
    )
    totals: dict[str, int] = {}
    for element in band.elements:
        totals[element.type] = totals.get(element.type, 0) + 1

    seen: dict[str, int] = {}
    for element in band.elements:
        seen[element.type] = seen.get(element.type, 0) + 1
        node.children.append(
            _element_node(element, seen[element.type], totals[element.type], cfg)
        )
    return node


def build_element_outline(
    report: ReportModel,
    config: Optional[ViewerConfig] = None,
) -> list[OutlineNode]:
    """Return one node per band that holds elements, in stacking order."""
    cfg = config or default_config()
    nodes = [_band_node(band, cfg) for band in report.bands if band.elements]
    if not nodes:
        return [OutlineNode(label="No elements found", kind="info")]
    return nodes


# ── Properties summary ──────────────────────────────────────────────


def build_properties(report: ReportModel) -> list[OutlineNode]:
    """Return the categories of the properties view; empty ones are omitted."""
    items = [
        OutlineNode(
            label="Document Info",
            kind="category",
            children=[
                OutlineNode("Name", "property", report.name),
                OutlineNode("Page Width", "property", f"{report.page_width}px"),
                OutlineNode("Page Height", "property", f"{report.page_height}px"),
                OutlineNode("Orientation", "property", report.orientation.value),
            ],
        ),
        OutlineNode(
            label="Margins",
            kind="category",
            children=[
                OutlineNode("Top", "property", f"{report.top_margin}px"),
                OutlineNode("Bottom", "property", f"{report.bottom_margin}px"),
                OutlineNode("Left", "property", f"{report.left_margin}px"),
                OutlineNode("Right", "property", f"{report.right_margin}px"),
            ],
        ),
    ]

    if report.bands:
        items.append(OutlineNode(
            label="Bands",
            kind="category",
            description=f"{len(report.bands)} bands",
            children=[
                OutlineNode(b.type, _band_kind(b), f"height: {b.height}px") for b in report.bands
            ],
        ))

    if report.parameters:
        items.append(OutlineNode(
            label="Parameters",
            kind="category",
            description=f"{len(report.parameters)} parameters",
            children=[
                OutlineNode(p.name, "parameter", p.class_name) for p in report.parameters
            ],
        ))

    if report.variables:
        items.append(OutlineNode(
            label="Variables",
            kind="category",
            description=f"{len(report.variables)} variables",
            children=[
                OutlineNode(v.name, "variable", v.class_name) for v in report.variables
            ],
        ))

    counts = report.element_counts()
    if counts:
        items.append(OutlineNode(
            label="Element Statistics",
            kind="category",
            children=[
                OutlineNode(kind_name, "stat", f"{count} elements")
                for kind_name, count in counts.items()
            ],
        ))

    return items


# ── Workspace scan ──────────────────────────────────────────────────


def scan_reports(
    root: str | Path,
    config: Optional[ViewerConfig] = None,
) -> list[OutlineNode]:
    """Return the report files under *root* as a folder/file tree.

    Hidden entries and configured build directories are skipped, folders
    without reports are dropped, and folders sort before files.
    """
    cfg = config or default_config()
    root = Path(root)
    if not root.is_dir():
        return []
    return _scan_folder(root, cfg.report_extensions, cfg.skip_dirs)


def _scan_folder(folder: Path, extensions: tuple[str, ...], skip: frozenset[str]) -> list[OutlineNode]:
    items: list[OutlineNode] = []
    try:
        entries = list(folder.iterdir())
    except PermissionError:
        logger.debug("Cannot list %s", folder)
        return items

    for entry in entries:
        if entry.name.startswith(".") or entry.name in skip:
            continue
        if entry.is_dir():
            children = _scan_folder(entry, extensions, skip)
            if children:
                items.append(OutlineNode(entry.name, "folder", path=entry, children=children))
        elif entry.suffix.lower() in extensions:
            items.append(OutlineNode(entry.name, "file", description=str(entry), path=entry))

    items.sort(key=lambda n: (n.kind != "folder", n.label.lower()))
    return items
