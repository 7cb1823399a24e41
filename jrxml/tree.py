"""Raw report text to generic attributed tree.

The tree carries no report semantics.  It follows the attributed-dict
convention of XML-to-object converters:

* an element with neither attributes nor child elements becomes its
  stripped text (``""`` when empty);
* any other element becomes a dict with ``"@name"`` keys for attributes,
  ``"#text"`` for non-blank text, and one key per child tag;
* a child tag seen once maps to a single value, a tag seen more than once
  maps to a list in document order;
* the document root is always a dict, even when it is empty.

Keys keep the namespace prefix as written (``jr:band``), so downstream
lookups must tolerate prefixes; see :mod:`jrxml.lookup`.
"""

from __future__ import annotations

import re
from typing import Any

from lxml import etree

from jrxml.errors import StructureError

ATTR_PREFIX = "@"
TEXT_KEY = "#text"

# lxml refuses str input that carries an encoding declaration.
_XML_DECL_RE = re.compile(r"^\s*<\?xml[^>]*\?>")


def _new_parser() -> etree.XMLParser:
    return etree.XMLParser(
        remove_comments=True,
        remove_pis=True,
        strip_cdata=True,
        resolve_entities=False,
        no_network=True,
    )


def _qualified_name(elem) -> str:
    qname = etree.QName(elem)
    if elem.prefix:
        return f"{elem.prefix}:{qname.localname}"
    return qname.localname


def _attribute_key(elem, name: str) -> str:
    if not name.startswith("{"):
        return ATTR_PREFIX + name
    qname = etree.QName(name)
    for prefix, uri in elem.nsmap.items():
        if prefix and uri == qname.namespace:
            return f"{ATTR_PREFIX}{prefix}:{qname.localname}"
    return ATTR_PREFIX + qname.localname


def _element_text(elem) -> str:
    parts = [elem.text or ""]
    for child in elem:
        if not isinstance(child.tag, str):
            # Unresolved entity reference: keep it verbatim.
            parts.append(child.text or "")
        parts.append(child.tail or "")
    return "".join(parts).strip()


def _convert(elem) -> Any:
    children = [c for c in elem if isinstance(c.tag, str)]
    text = _element_text(elem)

    if not elem.attrib and not children:
        return text

    node: dict[str, Any] = {}
    for name, value in elem.attrib.items():
        node[_attribute_key(elem, name)] = value

    for child in children:
        key = _qualified_name(child)
        value = _convert(child)
        if key not in node:
            node[key] = value
        elif isinstance(node[key], list):
            node[key].append(value)
        else:
            node[key] = [node[key], value]

    if text:
        node[TEXT_KEY] = text
    return node


def parse_tree(raw_text: str) -> dict[str, Any]:
    """Parse *raw_text* into ``{root_key: root_node}``.

    Raises
    ------
    StructureError
        If the text is empty or not well-formed XML.
    """
    text = _XML_DECL_RE.sub("", raw_text.lstrip("\ufeff"), count=1)
    if not text.strip():
        raise StructureError("Report text is empty")

    try:
        root = etree.fromstring(text, _new_parser())
    except etree.XMLSyntaxError as exc:
        raise StructureError(f"Malformed report XML: {exc}") from exc

    node = _convert(root)
    if not isinstance(node, dict):
        node = {TEXT_KEY: node} if node else {}
    return {_qualified_name(root): node}
