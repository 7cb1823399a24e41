"""Generic tree to :class:`ReportModel`.

Walks the attributed tree produced by :mod:`jrxml.tree` and builds the
normalized report model.  Every report-specific key goes through
:func:`jrxml.lookup.resolve`, and every repeatable node through
:func:`jrxml.lookup.as_list`, so prefixed, aliased and singleton/array
variants of the same document produce the same model.

Extraction is lenient: unparsable numbers fall back to configured defaults
and missing sub-nodes leave the corresponding fields unset.  The only hard
failure is a document without a report root.

Usage::

    from jrxml.extractor import parse

    report = parse(raw_text)
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from jrxml.config import ViewerConfig, default_config
from jrxml.errors import StructureError
from jrxml.lookup import as_list, attr, resolve, resolve_root, text_of, to_int
from jrxml.models import (
    BAND_TYPES,
    ELEMENT_TYPES,
    GROUP_FOOTER_PREFIX,
    GROUP_HEADER_PREFIX,
    PASSTHROUGH_TYPES,
    TEXT_TYPES,
    Band,
    Element,
    Field,
    Group,
    Orientation,
    Parameter,
    ReportModel,
    Variable,
)
from jrxml.tree import parse_tree

ROOT_NAME = "jasperReport"


class ReportExtractor:
    """Build a :class:`ReportModel` from a generic tree.

    Parameters
    ----------
    config : ViewerConfig, optional
        Supplies numeric defaults and the lookup depth.  Defaults to the
        shared configuration.
    logger : logging.Logger, optional
        Sink for diagnostics.  Nothing is configured on it; the caller
        decides where (and whether) records go.
    """

    def __init__(
        self,
        config: Optional[ViewerConfig] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._config = config or default_config()
        self._log = logger or logging.getLogger(__name__)
        self._depth = self._config.max_depth

    # ── Public API ─────────────────────────────────────────────────

    def extract(self, tree: dict[str, Any]) -> ReportModel:
        """Return the report model for *tree*.

        Raises
        ------
        StructureError
            If no report root is found under any tolerated alias.
        """
        root = resolve_root(tree, ROOT_NAME, self._depth)
        if root is None:
            raise StructureError(f"No {ROOT_NAME} element found in report")

        cfg = self._config
        groups = self._extract_groups(root)
        bands = self._extract_named_bands(root)
        for group in groups:
            bands.extend(group.header_bands)
            bands.extend(group.footer_bands)

        report = ReportModel(
            name=attr(root, "name") or cfg.report_name,
            page_width=to_int(attr(root, "pageWidth"), cfg.page_width),
            page_height=to_int(attr(root, "pageHeight"), cfg.page_height),
            orientation=Orientation.from_value(attr(root, "orientation")),
            column_width=to_int(attr(root, "columnWidth"), cfg.column_width),
            left_margin=to_int(attr(root, "leftMargin"), cfg.margin),
            right_margin=to_int(attr(root, "rightMargin"), cfg.margin),
            top_margin=to_int(attr(root, "topMargin"), cfg.margin),
            bottom_margin=to_int(attr(root, "bottomMargin"), cfg.margin),
            parameters=tuple(self._extract_parameters(root)),
            fields=tuple(self._extract_fields(root)),
            variables=tuple(self._extract_variables(root)),
            groups=tuple(groups),
            bands=tuple(bands),
        )

        self._log.debug(
            "Extracted report '%s': %d band(s), %d element(s)",
            report.name,
            len(report.bands),
            len(report.flat_elements()),
        )
        return report

    # ── Declarations ───────────────────────────────────────────────

    def _collection(self, root: dict, name: str) -> list:
        return [n for n in as_list(resolve(root, name, self._depth)) if isinstance(n, dict)]

    def _extract_parameters(self, root: dict) -> list[Parameter]:
        return [
            Parameter(
                name=attr(node, "name") or "",
                class_name=attr(node, "class") or "",
                is_for_prompting=attr(node, "isForPrompting") == "true",
                default_value_expression=self._child_text(node, "defaultValueExpression"),
            )
            for node in self._collection(root, "parameter")
        ]

    def _extract_fields(self, root: dict) -> list[Field]:
        return [
            Field(name=attr(node, "name") or "", class_name=attr(node, "class") or "")
            for node in self._collection(root, "field")
        ]

    def _extract_variables(self, root: dict) -> list[Variable]:
        return [
            Variable(
                name=attr(node, "name") or "",
                class_name=attr(node, "class") or "",
                calculation=attr(node, "calculation") or "Nothing",
                expression=self._child_text(node, "variableExpression"),
            )
            for node in self._collection(root, "variable")
        ]

    def _extract_groups(self, root: dict) -> list[Group]:
        groups: list[Group] = []
        for node in self._collection(root, "group"):
            name = attr(node, "name") or ""
            tag_name = name or "group"
            groups.append(
                Group(
                    name=name,
                    expression=self._child_text(node, "groupExpression") or "",
                    header_bands=tuple(self._group_bands(
                        node, "groupHeader", GROUP_HEADER_PREFIX + tag_name
                    )),
                    footer_bands=tuple(self._group_bands(
                        node, "groupFooter", GROUP_FOOTER_PREFIX + tag_name
                    )),
                )
            )
        return groups

    # ── Bands ──────────────────────────────────────────────────────

    def _extract_named_bands(self, root: dict) -> list[Band]:
        bands: list[Band] = []
        for band_type in BAND_TYPES:
            container = resolve(root, band_type, self._depth)
            if container is None:
                self._log.debug("Band container '%s' not found", band_type)
                continue
            found = self._bands_in(container, band_type)
            self._log.debug("Band container '%s': %d band(s)", band_type, len(found))
            bands.extend(found)
        return bands

    def _group_bands(self, group: dict, section: str, band_type: str) -> list[Band]:
        container = resolve(group, section, 0)
        if container is None:
            return []
        return self._bands_in(container, band_type)

    def _bands_in(self, container: Any, band_type: str) -> list[Band]:
        """Bands held by a band-type container.

        A container usually wraps one or more ``band`` nodes; one that
        does not is read as the band itself.
        """
        bands: list[Band] = []
        for holder in as_list(container):
            if not isinstance(holder, dict):
                continue
            inner = resolve(holder, "band", 0)
            band_nodes = as_list(inner) if inner is not None else [holder]
            for node in band_nodes:
                bands.append(self._build_band(node, band_type))
        return bands

    def _build_band(self, node: Any, band_type: str) -> Band:
        if not isinstance(node, dict):
            return Band(type=band_type)
        return Band(
            type=band_type,
            height=to_int(attr(node, "height"), 0),
            elements=tuple(self._extract_elements(node)),
        )

    # ── Elements ───────────────────────────────────────────────────

    def _extract_elements(self, band: dict) -> list[Element]:
        elements: list[Element] = []
        for element_type in ELEMENT_TYPES + PASSTHROUGH_TYPES:
            for node in as_list(resolve(band, element_type, 0)):
                elements.append(self._build_element(element_type, node))
        return elements

    def _build_element(self, element_type: str, node: Any) -> Element:
        if not isinstance(node, dict):
            node = {}

        geometry = resolve(node, "reportElement", 0)
        values: dict[str, Any] = {
            "type": element_type,
            "x": to_int(attr(geometry, "x"), 0),
            "y": to_int(attr(geometry, "y"), 0),
            "width": to_int(attr(geometry, "width"), 0),
            "height": to_int(attr(geometry, "height"), 0),
        }
        if isinstance(geometry, dict):
            values["forecolor"] = attr(geometry, "forecolor")
            values["backcolor"] = attr(geometry, "backcolor")
            values["mode"] = attr(geometry, "mode")

        if element_type == "staticText":
            values["text"] = self._child_text(node, "text") or ""
        elif element_type == "textField":
            values["expression"] = self._child_text(node, "textFieldExpression") or ""
            values["pattern"] = attr(node, "pattern")
        elif element_type == "subreport":
            values["expression"] = self._child_text(node, "subreportExpression") or "Subreport"
        elif element_type == "chart":
            values["expression"] = attr(node, "chartType") or "chart"

        if element_type in TEXT_TYPES:
            values.update(self._typography(resolve(node, "textElement", 0)))

        return Element(**values)

    def _typography(self, text_element: Any) -> dict[str, Any]:
        """Fields supplied by the typography carrier, if there is one."""
        if not text_element or not isinstance(text_element, dict):
            return {}
        font = resolve(text_element, "font", 0)
        has_font = isinstance(font, dict)
        return {
            "text_alignment": attr(text_element, "textAlignment"),
            "vertical_alignment": attr(text_element, "verticalAlignment"),
            "font_name": attr(font, "fontName"),
            "font_size": to_int(attr(font, "size"), self._config.font_size) if has_font else None,
            "is_bold": attr(font, "isBold") == "true",
        }

    @staticmethod
    def _child_text(node: dict, name: str) -> Optional[str]:
        value = resolve(node, name, 0)
        text = text_of(value)
        return text if text else None


def extract(tree: dict[str, Any], config: Optional[ViewerConfig] = None) -> ReportModel:
    """Build a :class:`ReportModel` from a generic tree."""
    return ReportExtractor(config).extract(tree)


def parse(raw_text: str, config: Optional[ViewerConfig] = None) -> ReportModel:
    """Parse raw report text into a :class:`ReportModel`.

    Raises
    ------
    StructureError
        If the text is not XML or holds no report root.
    """
    return ReportExtractor(config).extract(parse_tree(raw_text))
