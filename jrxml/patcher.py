"""Scoped text patching of report elements.

Edits are applied to the *original text*, not to a re-serialized tree, so
that everything outside the edited element survives byte-for-byte.  The
work is split in two:

* :func:`locate_element_span` finds the element addressed by a natural key
  (type plus original ``x``/``y``) and returns the span of its markup,
  start tag through matching close tag.  All span-finding lives here.
* :class:`PatchEngine` rewrites attributes and content inside that span
  only, then splices the result back.

Matching works on a masked copy of the text in which comments and CDATA
sections are blanked out (same length, so offsets carry over), which keeps
commented-out markup and expression bodies from being mistaken for tags.

When two elements of the same type share a position the first one in
document order is patched.  Callers that care should check
:meth:`ReportModel.duplicate_keys` before issuing an edit.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional
from xml.sax.saxutils import escape, unescape

from lxml import etree

from jrxml.config import ViewerConfig, default_config
from jrxml.errors import NoChangeError, PatchNotFoundError
from jrxml.lookup import to_int
from jrxml.models import TEXT_TYPES, ElementEdit, ElementKey, TextSpan

# ── Constants ──────────────────────────────────────────────────────────

_GEOMETRY_TAG = "reportElement"
_TYPOGRAPHY_TAG = "textElement"
_FONT_TAG = "font"

# Content tag rewritten for an edit's text/expression, per element type,
# with the value the extractor reports when that tag is missing or empty.
_CONTENT_TAGS: dict[str, tuple[str, str, str]] = {
    "staticText": ("text", "text", ""),
    "textField": ("expression", "textFieldExpression", ""),
    "subreport": ("expression", "subreportExpression", "Subreport"),
}

_DEFAULT_INDENT_UNIT = "    "

_OPAQUE_RE = re.compile(r"<!--.*?-->|<!\[CDATA\[.*?\]\]>", re.DOTALL)
_ANY_START_TAG_RE = re.compile(r"<([\w.-]+(?::[\w.-]+)?)(?=[\s/>])[^>]*>")
_ATTR_RE = re.compile(r"([\w.:-]+)\s*=\s*(?:\"([^\"]*)\"|'([^']*)')")
_TAG_END_RE = re.compile(r"\s*/?>$")
_ATTR_ENTITIES = {'"': "&quot;"}
_REVERSE_ATTR_ENTITIES = {"&quot;": '"', "&apos;": "'"}


# ── Scanning helpers ───────────────────────────────────────────────────


def _mask_opaque(text: str) -> str:
    """Blank out comments and CDATA sections, preserving offsets."""
    return _OPAQUE_RE.sub(lambda m: " " * len(m.group(0)), text)


def _start_tag_re(local: str, prefix: Optional[str] = None) -> re.Pattern:
    """Start tag of *local*; any prefix when *prefix* is None."""
    qualifier = r"(?:[\w.-]+:)?" if prefix is None else re.escape(prefix)
    return re.compile(r"<(" + qualifier + re.escape(local) + r")(?=[\s/>])[^>]*>")


def _local(qname: str) -> str:
    return qname.rsplit(":", 1)[-1]


def _prefix_of(qname: str) -> str:
    return qname[: -len(_local(qname))]


def _is_self_closing(tag: str) -> bool:
    return tag.rstrip().endswith("/>")


def _parse_attributes(tag: str) -> dict[str, str]:
    attrs: dict[str, str] = {}
    for match in _ATTR_RE.finditer(tag):
        value = match.group(2) if match.group(2) is not None else match.group(3)
        attrs[match.group(1)] = unescape(value, _REVERSE_ATTR_ENTITIES)
    return attrs


def _find_close(masked: str, qname: str, from_pos: int) -> Optional[int]:
    """End offset of the close tag balancing a start tag ending at *from_pos*."""
    tag_re = re.compile(r"<(/?)" + re.escape(qname) + r"(?=[\s/>])[^>]*>")
    depth = 1
    for match in tag_re.finditer(masked, from_pos):
        if match.group(1):
            depth -= 1
            if depth == 0:
                return match.end()
        elif not _is_self_closing(match.group(0)):
            depth += 1
    return None


def _enclosing_start_tag(masked: str, pos: int, element_type: str) -> Optional[re.Match]:
    """The start tag directly enclosing the tag at *pos*, if of *element_type*.

    Only whitespace (or blanked comments) may sit between the two.
    """
    lt = masked.rfind("<", 0, pos)
    if lt == -1:
        return None
    match = _ANY_START_TAG_RE.match(masked, lt)
    if match is None or match.end() > pos:
        return None
    if masked[match.end():pos].strip():
        return None
    if _is_self_closing(match.group(0)) or _local(match.group(1)) != element_type:
        return None
    return match


def locate_element_span(text: str, key: ElementKey) -> Optional[TextSpan]:
    """Find the markup of the element addressed by *key*.

    Scans geometry-carrier tags in document order and returns the span of
    the first element of ``key.type`` whose carrier sits at
    ``(key.x, key.y)``.  The span runs from the element's start tag through
    its balancing close tag.  Returns ``None`` when nothing matches.
    """
    masked = _mask_opaque(text)
    for carrier in _start_tag_re(_GEOMETRY_TAG).finditer(masked):
        attrs = _parse_attributes(carrier.group(0))
        if to_int(attrs.get("x"), 0) != key.x or to_int(attrs.get("y"), 0) != key.y:
            continue
        opener = _enclosing_start_tag(masked, carrier.start(), key.type)
        if opener is None:
            continue
        end = _find_close(masked, opener.group(1), opener.end())
        if end is None:
            continue
        return TextSpan(opener.start(), end)
    return None


# ── Rewriting helpers ──────────────────────────────────────────────────


def _set_attributes(tag: str, values: dict[str, str], numeric: frozenset[str] = frozenset()) -> str:
    """Return *tag* with *values* written as attributes.

    Existing attributes are replaced in place, keeping their quote style;
    missing ones are appended.  An attribute already holding the value (by
    integer comparison for names in *numeric*) is left untouched.
    """
    for name, value in values.items():
        attr_re = re.compile(r"(?<=\s)" + re.escape(name) + r"(\s*=\s*)(\"[^\"]*\"|'[^']*')")
        match = attr_re.search(tag)
        if match is not None:
            quote = match.group(2)[0]
            old = unescape(match.group(2)[1:-1], _REVERSE_ATTR_ENTITIES)
            if old == value or (name in numeric and to_int(old, None) == to_int(value, None)):
                continue
            escaped = escape(value, {quote: "&quot;" if quote == '"' else "&apos;"})
            tag = tag[:match.start(2)] + quote + escaped + quote + tag[match.end(2):]
        else:
            end = _TAG_END_RE.search(tag)
            insert_at = end.start() if end else len(tag) - 1
            tag = tag[:insert_at] + f' {name}="{escape(value, _ATTR_ENTITIES)}"' + tag[insert_at:]
    return tag


def _cdata(value: str) -> str:
    return "<![CDATA[" + value.replace("]]>", "]]]]><![CDATA[>") + "]]>"


def _content_value(inner: str) -> Optional[str]:
    """Text value of element content as a parser would report it."""
    try:
        node = etree.fromstring(
            "<v>" + inner + "</v>",
            etree.XMLParser(strip_cdata=True, resolve_entities=False, no_network=True),
        )
    except etree.XMLSyntaxError:
        return None
    return "".join(node.itertext()).strip()


def _line_indent(text: str, pos: int) -> str:
    """Leading whitespace of the line holding *pos*, if only whitespace precedes."""
    line_start = text.rfind("\n", 0, pos) + 1
    lead = text[line_start:pos]
    return lead if not lead.strip() else ""


# ── Block editor ───────────────────────────────────────────────────────


class _BlockEditor:
    """Applies one edit to the markup of a single element."""

    def __init__(
        self,
        block: str,
        edit: ElementEdit,
        base_indent: str,
        newline: str = "\n",
        default_font_size: int = 10,
    ) -> None:
        self.block = block
        self.edit = edit
        self.newline = newline
        self.default_font_size = default_font_size

        masked = _mask_opaque(block)
        carrier = _start_tag_re(_GEOMETRY_TAG).search(masked)
        assert carrier is not None, "located span has no geometry carrier"
        self.prefix = _prefix_of(carrier.group(1))

        self.indent = _line_indent(block, carrier.start())
        if self.indent.startswith(base_indent) and len(self.indent) > len(base_indent):
            self.unit = self.indent[len(base_indent):]
        else:
            self.unit = _DEFAULT_INDENT_UNIT

    # -- plumbing ------------------------------------------------------

    def _find(self, local: str, start: int = 0, end: Optional[int] = None) -> Optional[re.Match]:
        masked = _mask_opaque(self.block)
        pattern = _start_tag_re(local, self.prefix)
        return pattern.search(masked, start, len(masked) if end is None else end)

    def _replace(self, start: int, end: int, new: str) -> None:
        self.block = self.block[:start] + new + self.block[end:]

    def _rewrite_tag(self, match: re.Match, values: dict[str, str], numeric=frozenset()) -> str:
        old = self.block[match.start():match.end()]
        new = _set_attributes(old, values, numeric)
        if new != old:
            self._replace(match.start(), match.end(), new)
        return new

    def _element_end(self, match: re.Match) -> int:
        """End offset of the element whose start tag is *match*."""
        if _is_self_closing(match.group(0)):
            return match.end()
        end = _find_close(_mask_opaque(self.block), match.group(1), match.end())
        return end if end is not None else match.end()

    # -- steps ---------------------------------------------------------

    def apply(self) -> str:
        self._apply_geometry()
        if self.edit.type == "textField" and self.edit.pattern is not None:
            self._apply_pattern()
        if self.edit.type in TEXT_TYPES:
            self._apply_typography()
        self._apply_content()
        return self.block

    def _apply_geometry(self) -> None:
        edit = self.edit
        values = {
            "x": str(edit.x),
            "y": str(edit.y),
            "width": str(edit.width),
            "height": str(edit.height),
        }
        for name in ("forecolor", "backcolor", "mode"):
            value = getattr(edit, name)
            if value is not None:
                values[name] = value
        carrier = self._find(_GEOMETRY_TAG)
        self._rewrite_tag(carrier, values, numeric=frozenset(("x", "y", "width", "height")))

    def _apply_pattern(self) -> None:
        opener = _ANY_START_TAG_RE.match(_mask_opaque(self.block))
        self._rewrite_tag(opener, {"pattern": self.edit.pattern})

    def _current_typography(self) -> dict[str, Any]:
        """Typography of the block as the extractor reads it back."""
        text_element = self._find(_TYPOGRAPHY_TAG)
        if text_element is None:
            return {}
        font = self._find(_FONT_TAG, text_element.end(), self._element_end(text_element))
        element_attrs = _parse_attributes(text_element.group(0))
        font_attrs = _parse_attributes(font.group(0)) if font is not None else {}
        return {
            "text_alignment": element_attrs.get("textAlignment"),
            "vertical_alignment": element_attrs.get("verticalAlignment"),
            "font_name": font_attrs.get("fontName"),
            "font_size": (
                to_int(font_attrs.get("size"), self.default_font_size)
                if font is not None else None
            ),
            "is_bold": font_attrs.get("isBold") == "true",
        }

    def _typography_values(self) -> tuple[dict[str, str], dict[str, str]]:
        """Attributes to write, leaving out values the markup already has.

        A missing ``isBold`` reads as not bold, so ``is_bold=False`` never
        adds a font node on its own.
        """
        edit = self.edit
        current = self._current_typography()

        def changed(name: str) -> bool:
            value = getattr(edit, name)
            if value is None:
                return False
            if name == "is_bold":
                return value != bool(current.get(name))
            return value != current.get(name)

        element_attrs: dict[str, str] = {}
        if changed("text_alignment"):
            element_attrs["textAlignment"] = edit.text_alignment
        if changed("vertical_alignment"):
            element_attrs["verticalAlignment"] = edit.vertical_alignment

        font_attrs: dict[str, str] = {}
        if changed("font_name"):
            font_attrs["fontName"] = edit.font_name
        if changed("font_size"):
            font_attrs["size"] = str(edit.font_size)
        if changed("is_bold"):
            font_attrs["isBold"] = "true" if edit.is_bold else "false"
        return element_attrs, font_attrs

    def _apply_typography(self) -> None:
        element_attrs, font_attrs = self._typography_values()
        if not element_attrs and not font_attrs:
            return

        text_element = self._find(_TYPOGRAPHY_TAG)
        if text_element is None:
            self._insert_typography(element_attrs, font_attrs)
            return

        if element_attrs:
            self._rewrite_tag(text_element, element_attrs)
            text_element = self._find(_TYPOGRAPHY_TAG)
        if not font_attrs:
            return

        element_end = self._element_end(text_element)
        font = self._find(_FONT_TAG, text_element.end(), element_end)
        if font is not None:
            self._rewrite_tag(font, font_attrs, numeric=frozenset(("size",)))
            return

        inner_indent = self.indent + self.unit
        font_tag = _set_attributes(f"<{self.prefix}{_FONT_TAG}/>", font_attrs)
        if _is_self_closing(text_element.group(0)):
            tag = self.block[text_element.start():text_element.end()]
            opened = _TAG_END_RE.sub(">", tag)
            self._replace(
                text_element.start(),
                text_element.end(),
                f"{opened}{self.newline}{inner_indent}{font_tag}{self.newline}{self.indent}</{self.prefix}{_TYPOGRAPHY_TAG}>",
            )
        else:
            self._replace(text_element.end(), text_element.end(), f"{self.newline}{inner_indent}{font_tag}")

    def _insert_typography(self, element_attrs: dict[str, str], font_attrs: dict[str, str]) -> None:
        name = f"{self.prefix}{_TYPOGRAPHY_TAG}"
        if font_attrs:
            opened = _set_attributes(f"<{name}>", element_attrs)
            font_tag = _set_attributes(f"<{self.prefix}{_FONT_TAG}/>", font_attrs)
            markup = (
                f"{opened}{self.newline}{self.indent}{self.unit}{font_tag}{self.newline}{self.indent}</{name}>"
            )
        else:
            markup = _set_attributes(f"<{name}/>", element_attrs)

        # The typography carrier follows the geometry carrier and any box.
        anchor = self._find(_GEOMETRY_TAG)
        box = self._find("box", self._element_end(anchor))
        if box is not None and not self.block[self._element_end(anchor):box.start()].strip():
            anchor = box
        insert_at = self._element_end(anchor)
        self._replace(insert_at, insert_at, f"{self.newline}{self.indent}{markup}")

    def _apply_content(self) -> None:
        content_tag = _CONTENT_TAGS.get(self.edit.type)
        if content_tag is None:
            return
        field_name, tag_name, missing_value = content_tag
        value = getattr(self.edit, field_name)
        if value is None:
            return

        qname = f"{self.prefix}{tag_name}"
        content = self._find(tag_name)
        if content is None:
            if value.strip() in ("", missing_value):
                return
            self._insert_before_close(f"<{qname}>{_cdata(value)}</{qname}>")
            return

        if _is_self_closing(content.group(0)):
            if value.strip() in ("", missing_value):
                return
            tag = self.block[content.start():content.end()]
            opened = _TAG_END_RE.sub(">", tag)
            self._replace(content.start(), content.end(), f"{opened}{_cdata(value)}</{qname}>")
            return

        close_end = _find_close(_mask_opaque(self.block), content.group(1), content.end())
        if close_end is None:
            return
        close_start = self.block.rfind("<", content.end(), close_end)
        current = _content_value(self.block[content.end():close_start])
        if current is not None and (current or missing_value) == (value.strip() or missing_value):
            return
        self._replace(content.end(), close_start, _cdata(value))

    def _insert_before_close(self, markup: str) -> None:
        close_start = self.block.rfind("</")
        head = self.block[:close_start].rstrip()
        gap = self.block[len(head):close_start]
        self.block = head + f"{self.newline}{self.indent}{markup}" + gap + self.block[close_start:]


# ── Engine ─────────────────────────────────────────────────────────────


class PatchEngine:
    """Apply :class:`ElementEdit` values to raw report text.

    Parameters
    ----------
    logger : logging.Logger, optional
        Sink for diagnostics.  Nothing is configured on it.
    config : ViewerConfig, optional
        Supplies the font size a font node without one reads back as.
        Defaults to the shared configuration.
    """

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        config: Optional[ViewerConfig] = None,
    ) -> None:
        self._log = logger or logging.getLogger(__name__)
        self._font_size = (config or default_config()).font_size

    def apply(self, text: str, edit: ElementEdit) -> str:
        """Return *text* with *edit* applied to the addressed element.

        Only the element's own markup changes; every byte outside it is
        kept.

        Raises
        ------
        PatchNotFoundError
            If no element matches ``edit.key``.
        NoChangeError
            If the edit leaves the text unchanged.
        """
        key = edit.key
        span = locate_element_span(text, key)
        if span is None:
            raise PatchNotFoundError(key)

        self._log.debug(
            "Located %s at (%d, %d): %d chars from offset %d",
            key.type, key.x, key.y, len(span), span.start,
        )

        newline = "\r\n" if "\r\n" in text else "\n"
        editor = _BlockEditor(
            span.slice(text),
            edit,
            _line_indent(text, span.start),
            newline,
            default_font_size=self._font_size,
        )
        result = text[:span.start] + editor.apply() + text[span.end:]
        if result == text:
            raise NoChangeError(key)

        self._log.debug("Patched %s at (%d, %d)", key.type, key.x, key.y)
        return result


def apply_edit(text: str, edit: ElementEdit) -> str:
    """Apply *edit* to *text*; see :meth:`PatchEngine.apply`."""
    return PatchEngine().apply(text, edit)
