"""Data models for the normalized report representation.

A :class:`ReportModel` is a disposable snapshot derived from the raw report
text.  It is rebuilt on every parse and never mutated: edits are expressed
as :class:`ElementEdit` values, applied to the raw text by the patch engine,
and the result is parsed again.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Optional


class Orientation(Enum):
    PORTRAIT = "Portrait"
    LANDSCAPE = "Landscape"

    @classmethod
    def from_value(cls, value: Optional[str]) -> Orientation:
        """Case-insensitive lookup; anything unrecognised is portrait."""
        if value:
            for member in cls:
                if member.value.lower() == value.strip().lower():
                    return member
        return cls.PORTRAIT


# ── Canonical orders ────────────────────────────────────────────────

# Vertical stacking order of the named bands.  Rendering relies on it.
BAND_TYPES: tuple[str, ...] = (
    "title",
    "pageHeader",
    "columnHeader",
    "detail",
    "columnFooter",
    "pageFooter",
    "summary",
    "background",
    "lastPageFooter",
    "noData",
)

# Element types extracted from a band, in extraction order.
ELEMENT_TYPES: tuple[str, ...] = (
    "staticText",
    "textField",
    "image",
    "line",
    "rectangle",
    "subreport",
    "chart",
)

# Element tags carried through as geometry-only elements.
PASSTHROUGH_TYPES: tuple[str, ...] = (
    "ellipse",
    "frame",
    "crosstab",
    "componentElement",
    "genericElement",
    "break",
)

TEXT_TYPES: tuple[str, ...] = ("staticText", "textField")

GROUP_HEADER_PREFIX = "groupHeader-"
GROUP_FOOTER_PREFIX = "groupFooter-"


# ── Declarations ────────────────────────────────────────────────────


@dataclass(frozen=True)
class Parameter:
    name: str
    class_name: str = ""
    is_for_prompting: bool = False
    default_value_expression: Optional[str] = None


@dataclass(frozen=True)
class Field:
    name: str
    class_name: str = ""


@dataclass(frozen=True)
class Variable:
    name: str
    class_name: str = ""
    calculation: str = "Nothing"
    expression: Optional[str] = None


# ── Layout ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ElementKey:
    """Natural key of an element: its type and original position."""
    type: str
    x: int
    y: int


@dataclass(frozen=True)
class Element:
    """A positioned visual primitive inside a band."""
    type: str
    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0
    text: Optional[str] = None
    expression: Optional[str] = None
    pattern: Optional[str] = None
    font_name: Optional[str] = None
    font_size: Optional[int] = None
    is_bold: Optional[bool] = None
    text_alignment: Optional[str] = None
    vertical_alignment: Optional[str] = None
    forecolor: Optional[str] = None
    backcolor: Optional[str] = None
    mode: Optional[str] = None

    @property
    def key(self) -> ElementKey:
        return ElementKey(self.type, self.x, self.y)

    @property
    def is_passthrough(self) -> bool:
        return self.type not in ELEMENT_TYPES

    def to_dict(self) -> dict[str, Any]:
        """Return the element as the camelCase mapping the canvas consumes.

        Unset optional fields are omitted.
        """
        data: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is not None:
                data[_CAMEL_NAMES.get(f.name, f.name)] = value
        return data


@dataclass(frozen=True)
class Band:
    type: str
    height: int = 0
    elements: tuple[Element, ...] = ()

    @property
    def is_group_band(self) -> bool:
        return self.type.startswith((GROUP_HEADER_PREFIX, GROUP_FOOTER_PREFIX))

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "height": self.height,
            "elements": [e.to_dict() for e in self.elements],
        }


@dataclass(frozen=True)
class Group:
    name: str
    expression: str = ""
    header_bands: tuple[Band, ...] = ()
    footer_bands: tuple[Band, ...] = ()

    @property
    def header(self) -> Optional[Band]:
        return self.header_bands[0] if self.header_bands else None

    @property
    def footer(self) -> Optional[Band]:
        return self.footer_bands[0] if self.footer_bands else None


@dataclass(frozen=True)
class ReportModel:
    """The complete normalized view of a report definition."""
    name: str = "Unnamed Report"
    page_width: int = 595
    page_height: int = 842
    orientation: Orientation = Orientation.PORTRAIT
    column_width: int = 555
    left_margin: int = 20
    right_margin: int = 20
    top_margin: int = 20
    bottom_margin: int = 20
    parameters: tuple[Parameter, ...] = ()
    fields: tuple[Field, ...] = ()
    variables: tuple[Variable, ...] = ()
    groups: tuple[Group, ...] = ()
    bands: tuple[Band, ...] = ()

    def flat_elements(self) -> list[Element]:
        """Return every element in band stacking order."""
        return [e for band in self.bands for e in band.elements]

    def total_height(self) -> int:
        return sum(band.height for band in self.bands)

    def element_counts(self) -> dict[str, int]:
        """Count elements per type, in order of first appearance."""
        return dict(Counter(e.type for e in self.flat_elements()))

    def find_elements(self, key: ElementKey) -> list[Element]:
        return [e for e in self.flat_elements() if e.key == key]

    def duplicate_keys(self) -> list[ElementKey]:
        """Natural keys shared by more than one element.

        Edits against these keys are ambiguous: the patch engine would
        always pick the first match in document order.
        """
        counts = Counter(e.key for e in self.flat_elements())
        return [key for key, n in counts.items() if n > 1]

    def summary(self) -> dict:
        """Return a summary of the report structure."""
        return {
            "name": self.name,
            "page": f"{self.page_width}x{self.page_height}",
            "orientation": self.orientation.value,
            "parameters": len(self.parameters),
            "fields": len(self.fields),
            "variables": len(self.variables),
            "groups": len(self.groups),
            "bands": len(self.bands),
            "elements": len(self.flat_elements()),
        }

    def to_dict(self) -> dict[str, Any]:
        """Return the camelCase mapping handed to rendering collaborators."""
        return {
            "name": self.name,
            "pageWidth": self.page_width,
            "pageHeight": self.page_height,
            "orientation": self.orientation.value,
            "columnWidth": self.column_width,
            "leftMargin": self.left_margin,
            "rightMargin": self.right_margin,
            "topMargin": self.top_margin,
            "bottomMargin": self.bottom_margin,
            "parameters": [
                _drop_none({
                    "name": p.name,
                    "class": p.class_name,
                    "isForPrompting": p.is_for_prompting,
                    "defaultValueExpression": p.default_value_expression,
                })
                for p in self.parameters
            ],
            "fields": [{"name": f.name, "class": f.class_name} for f in self.fields],
            "variables": [
                _drop_none({
                    "name": v.name,
                    "class": v.class_name,
                    "calculation": v.calculation,
                    "expression": v.expression,
                })
                for v in self.variables
            ],
            "groups": [{"name": g.name, "expression": g.expression} for g in self.groups],
            "bands": [b.to_dict() for b in self.bands],
        }


# ── Edits ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TextSpan:
    """Half-open ``[start, end)`` range of the raw document text."""
    start: int
    end: int

    def slice(self, text: str) -> str:
        return text[self.start:self.end]

    def __len__(self) -> int:
        return self.end - self.start


# Optional fields an edit may carry; ``None`` means unchanged.
EDIT_FIELDS: tuple[str, ...] = (
    "text",
    "expression",
    "pattern",
    "font_name",
    "font_size",
    "is_bold",
    "text_alignment",
    "vertical_alignment",
    "forecolor",
    "backcolor",
    "mode",
)


@dataclass(frozen=True)
class ElementEdit:
    """A requested change to one element, addressed by its old position.

    Width and height may be zero.  Lines are routinely zero-sized in one
    direction, and an element without a geometry carrier extracts as 0x0,
    so its edit must be able to carry that size back.
    """
    type: str
    old_x: int
    old_y: int
    x: int
    y: int
    width: int
    height: int
    text: Optional[str] = None
    expression: Optional[str] = None
    pattern: Optional[str] = None
    font_name: Optional[str] = None
    font_size: Optional[int] = None
    is_bold: Optional[bool] = None
    text_alignment: Optional[str] = None
    vertical_alignment: Optional[str] = None
    forecolor: Optional[str] = None
    backcolor: Optional[str] = None
    mode: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.type:
            raise ValueError("Element edit requires an element type")
        for name in ("old_x", "old_y", "x", "y", "width", "height"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"Element edit {name} must be an integer, got {value!r}")
        for name in ("width", "height"):
            if getattr(self, name) < 0:
                raise ValueError(f"Element edit {name} must not be negative")
        if self.font_size is not None and self.font_size <= 0:
            raise ValueError("Element edit font_size must be positive")

    @property
    def key(self) -> ElementKey:
        return ElementKey(self.type, self.old_x, self.old_y)

    @classmethod
    def for_element(cls, element: Element, **changes: Any) -> ElementEdit:
        """Build an edit that moves/resizes/restyles an extracted element.

        Geometry not given in *changes* keeps the element's current value;
        other fields not given stay unchanged.
        """
        unknown = set(changes) - {"x", "y", "width", "height", *EDIT_FIELDS}
        if unknown:
            raise ValueError(f"Unknown element edit fields: {sorted(unknown)}")
        return cls(
            type=element.type,
            old_x=element.x,
            old_y=element.y,
            x=changes.pop("x", element.x),
            y=changes.pop("y", element.y),
            width=changes.pop("width", element.width),
            height=changes.pop("height", element.height),
            **changes,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ElementEdit:
        """Build an edit from a canvas message payload.

        The payload uses the camelCase element shape of
        :meth:`Element.to_dict` plus ``oldX``/``oldY`` for the position the
        element had when it was rendered.  When those are missing the
        element is assumed not to have moved.
        """
        try:
            x = int(data["x"])
            y = int(data["y"])
            kwargs: dict[str, Any] = {
                "type": data["type"],
                "old_x": int(data.get("oldX", x)),
                "old_y": int(data.get("oldY", y)),
                "x": x,
                "y": y,
                "width": int(data["width"]),
                "height": int(data["height"]),
            }
        except KeyError as exc:
            raise ValueError(f"Element edit payload is missing {exc}") from exc
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Element edit payload has invalid geometry: {exc}") from exc

        for name in EDIT_FIELDS:
            value = data.get(_CAMEL_NAMES.get(name, name))
            if value is not None:
                kwargs[name] = value
        if "font_size" in kwargs:
            kwargs["font_size"] = int(kwargs["font_size"])
        if "is_bold" in kwargs and isinstance(kwargs["is_bold"], str):
            kwargs["is_bold"] = kwargs["is_bold"].lower() == "true"
        return cls(**kwargs)

    def changes(self) -> dict[str, Any]:
        """Return the optional fields this edit sets."""
        return {
            name: getattr(self, name)
            for name in EDIT_FIELDS
            if getattr(self, name) is not None
        }


_CAMEL_NAMES: dict[str, str] = {
    "font_name": "fontName",
    "font_size": "fontSize",
    "is_bold": "isBold",
    "text_alignment": "textAlignment",
    "vertical_alignment": "verticalAlignment",
}


def _drop_none(d: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in d.items() if v is not None}
