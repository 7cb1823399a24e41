"""Serialize a :class:`ReportModel` back to report-definition XML.

This is a model-level writer: it emits every field the extractor reads and
nothing else, so ``parse(serialize(report)) == report`` for any report the
extractor produced.  It is not used by the patch engine, which never
re-serializes a document.
"""

from __future__ import annotations

from typing import Optional

from lxml import etree

from jrxml.models import (
    BAND_TYPES,
    TEXT_TYPES,
    Band,
    Element,
    ReportModel,
)

JRXML_NS = "http://jasperreports.sourceforge.net/jasperreports"


def _sub(parent, tag: str, **attrs: Optional[str]):
    """Append a child element, skipping ``None`` attribute values."""
    elem = etree.SubElement(parent, f"{{{JRXML_NS}}}{tag}")
    for name, value in attrs.items():
        if value is not None:
            elem.set(name, value)
    return elem


def _cdata_child(parent, tag: str, value: str):
    elem = _sub(parent, tag)
    # CDATA cannot carry its own terminator; fall back to escaped text.
    elem.text = value if "]]>" in value else etree.CDATA(value)
    return elem


def _write_element(parent, element: Element) -> None:
    elem = _sub(parent, element.type)
    if element.type == "textField":
        if element.pattern is not None:
            elem.set("pattern", element.pattern)
    elif element.type == "chart":
        elem.set("chartType", element.expression or "chart")

    _sub(
        elem,
        "reportElement",
        x=str(element.x),
        y=str(element.y),
        width=str(element.width),
        height=str(element.height),
        forecolor=element.forecolor,
        backcolor=element.backcolor,
        mode=element.mode,
    )

    if element.type in TEXT_TYPES and element.is_bold is not None:
        text_element = _sub(
            elem,
            "textElement",
            textAlignment=element.text_alignment,
            verticalAlignment=element.vertical_alignment,
        )
        if element.font_size is not None or element.font_name is not None:
            _sub(
                text_element,
                "font",
                fontName=element.font_name,
                size=None if element.font_size is None else str(element.font_size),
                isBold="true" if element.is_bold else None,
            )
        elif element.is_bold or not text_element.attrib:
            # An attribute-less carrier would read back as absent.
            _sub(text_element, "font", isBold="true" if element.is_bold else None)

    if element.type == "staticText":
        _cdata_child(elem, "text", element.text or "")
    elif element.type == "textField":
        _cdata_child(elem, "textFieldExpression", element.expression or "")
    elif element.type == "subreport" and element.expression is not None:
        _cdata_child(elem, "subreportExpression", element.expression)


def _write_band(parent, band: Band) -> None:
    node = _sub(parent, "band", height=str(band.height))
    for element in band.elements:
        _write_element(node, element)


def serialize(report: ReportModel) -> str:
    """Return *report* as a UTF-8 XML document string."""
    root = etree.Element(f"{{{JRXML_NS}}}jasperReport", nsmap={None: JRXML_NS})
    root.set("name", report.name)
    root.set("pageWidth", str(report.page_width))
    root.set("pageHeight", str(report.page_height))
    root.set("orientation", report.orientation.value)
    root.set("columnWidth", str(report.column_width))
    root.set("leftMargin", str(report.left_margin))
    root.set("rightMargin", str(report.right_margin))
    root.set("topMargin", str(report.top_margin))
    root.set("bottomMargin", str(report.bottom_margin))

    for param in report.parameters:
        node = _sub(
            root,
            "parameter",
            name=param.name,
            **{"class": param.class_name},
            isForPrompting="true" if param.is_for_prompting else "false",
        )
        if param.default_value_expression is not None:
            _cdata_child(node, "defaultValueExpression", param.default_value_expression)

    for fld in report.fields:
        _sub(root, "field", name=fld.name, **{"class": fld.class_name})

    for var in report.variables:
        node = _sub(
            root,
            "variable",
            name=var.name,
            **{"class": var.class_name},
            calculation=var.calculation,
        )
        if var.expression is not None:
            _cdata_child(node, "variableExpression", var.expression)

    for group in report.groups:
        node = _sub(root, "group", name=group.name)
        _cdata_child(node, "groupExpression", group.expression)
        if group.header_bands:
            header = _sub(node, "groupHeader")
            for band in group.header_bands:
                _write_band(header, band)
        if group.footer_bands:
            footer = _sub(node, "groupFooter")
            for band in group.footer_bands:
                _write_band(footer, band)

    for band_type in BAND_TYPES:
        bands = [b for b in report.bands if b.type == band_type]
        if not bands:
            continue
        container = _sub(root, band_type)
        for band in bands:
            _write_band(container, band)

    return etree.tostring(
        root, pretty_print=True, xml_declaration=True, encoding="UTF-8"
    ).decode("utf-8")
