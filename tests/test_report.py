"""Tests for report parsing: tree, lookup, extractor, config, outline, writer."""

from __future__ import annotations

from pathlib import Path

import pytest

from jrxml.errors import StructureError
from jrxml.extractor import ReportExtractor, extract, parse
from jrxml.models import (
    Band,
    Element,
    ElementEdit,
    ElementKey,
    Orientation,
    ReportModel,
)
from jrxml.tree import parse_tree

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def _fixture(name: str) -> str:
    return (FIXTURES_DIR / name).read_text(encoding="utf-8")


def _report(body: str, attrs: str = 'name="T"') -> str:
    return (
        '<jasperReport xmlns="http://jasperreports.sourceforge.net/jasperreports" '
        f"{attrs}>{body}</jasperReport>"
    )


# ── Model tests ─────────────────────────────────────────────────────


class TestModels:
    def test_orientation_lookup(self):
        assert Orientation.from_value("Landscape") is Orientation.LANDSCAPE
        assert Orientation.from_value("landscape") is Orientation.LANDSCAPE
        assert Orientation.from_value(None) is Orientation.PORTRAIT
        assert Orientation.from_value("sideways") is Orientation.PORTRAIT

    def test_element_key(self):
        e = Element(type="staticText", x=10, y=20, width=5, height=5)
        assert e.key == ElementKey("staticText", 10, 20)
        assert e.is_passthrough is False
        assert Element(type="ellipse").is_passthrough is True

    def test_element_to_dict_omits_unset(self):
        e = Element(type="textField", x=1, y=2, width=3, height=4,
                    expression="$F{a}", font_size=12, is_bold=True)
        data = e.to_dict()
        assert data == {
            "type": "textField",
            "x": 1,
            "y": 2,
            "width": 3,
            "height": 4,
            "expression": "$F{a}",
            "fontSize": 12,
            "isBold": True,
        }

    def test_report_defaults(self):
        report = ReportModel()
        assert report.page_width == 595
        assert report.page_height == 842
        assert report.orientation is Orientation.PORTRAIT
        assert report.flat_elements() == []
        assert report.total_height() == 0

    def test_duplicate_keys(self):
        dup = Element(type="staticText", x=10, y=10, width=50, height=10)
        report = ReportModel(bands=(
            Band(type="title", height=20, elements=(dup, dup)),
            Band(type="detail", height=20, elements=(
                Element(type="textField", x=10, y=10),
            )),
        ))
        assert report.duplicate_keys() == [ElementKey("staticText", 10, 10)]
        assert len(report.find_elements(ElementKey("staticText", 10, 10))) == 2
        assert report.total_height() == 40

    def test_report_is_immutable(self):
        report = ReportModel()
        with pytest.raises(AttributeError):
            report.name = "changed"  # type: ignore[misc]


class TestElementEdit:
    def test_key_uses_old_position(self):
        edit = ElementEdit(type="staticText", old_x=1, old_y=2, x=5, y=6,
                           width=10, height=10)
        assert edit.key == ElementKey("staticText", 1, 2)
        assert edit.changes() == {}

    def test_zero_size_accepted(self):
        edit = ElementEdit(type="line", old_x=0, old_y=0, x=0, y=0, width=0, height=0)
        assert (edit.width, edit.height) == (0, 0)

    def test_negative_size_rejected(self):
        with pytest.raises(ValueError):
            ElementEdit(type="line", old_x=0, old_y=0, x=0, y=0, width=-1, height=1)

    def test_non_integer_geometry_rejected(self):
        with pytest.raises(ValueError):
            ElementEdit(type="line", old_x=0, old_y=0, x="3", y=0, width=1, height=1)

    def test_missing_type_rejected(self):
        with pytest.raises(ValueError):
            ElementEdit(type="", old_x=0, old_y=0, x=0, y=0, width=1, height=1)

    def test_from_dict_canvas_payload(self):
        edit = ElementEdit.from_dict({
            "type": "textField",
            "x": 60, "y": 100, "width": 250, "height": 20,
            "oldX": 50, "oldY": 100,
            "expression": "$F{fullName}",
            "fontSize": "14",
            "isBold": "true",
        })
        assert edit.key == ElementKey("textField", 50, 100)
        assert edit.x == 60
        assert edit.changes() == {
            "expression": "$F{fullName}",
            "font_size": 14,
            "is_bold": True,
        }

    def test_from_dict_without_old_position(self):
        edit = ElementEdit.from_dict({"type": "image", "x": 5, "y": 7, "width": 1, "height": 1})
        assert (edit.old_x, edit.old_y) == (5, 7)

    def test_from_dict_missing_geometry(self):
        with pytest.raises(ValueError, match="missing"):
            ElementEdit.from_dict({"type": "image", "x": 5, "y": 7})

    def test_for_element(self):
        element = Element(type="staticText", x=10, y=20, width=100, height=15, text="Hi")
        edit = ElementEdit.for_element(element, width=120, text="Hello")
        assert edit.key == element.key
        assert (edit.x, edit.y, edit.width, edit.height) == (10, 20, 120, 15)
        assert edit.changes() == {"text": "Hello"}

    def test_for_element_unknown_field(self):
        with pytest.raises(ValueError, match="Unknown"):
            ElementEdit.for_element(Element(type="line"), colour="red")


# ── Tree parser tests ───────────────────────────────────────────────


class TestTree:
    def test_leaf_and_attributes(self):
        tree = parse_tree('<root a="1"><leaf>  hi </leaf><empty/></root>')
        assert tree == {"root": {"@a": "1", "leaf": "hi", "empty": ""}}

    def test_repeated_children_become_list(self):
        tree = parse_tree('<r><i n="1"/><i n="2"/><j n="3"/></r>')
        assert tree["r"]["i"] == [{"@n": "1"}, {"@n": "2"}]
        assert tree["r"]["j"] == {"@n": "3"}

    def test_cdata_and_mixed_text(self):
        tree = parse_tree('<r k="v"><![CDATA[a < b]]><c/></r>')
        assert tree["r"]["#text"] == "a < b"
        assert tree["r"]["c"] == ""

    def test_prefix_kept_in_keys(self):
        tree = parse_tree('<jr:r xmlns:jr="urn:x"><jr:c v="1"/></jr:r>')
        assert tree == {"jr:r": {"jr:c": {"@v": "1"}}}

    def test_default_namespace_dropped(self):
        tree = parse_tree('<r xmlns="urn:x"><c v="1"/></r>')
        assert tree == {"r": {"c": {"@v": "1"}}}

    def test_declaration_with_encoding_accepted(self):
        tree = parse_tree('<?xml version="1.0" encoding="UTF-8"?>\n<r>x</r>')
        assert tree == {"r": {"#text": "x"}}

    def test_comments_ignored(self):
        tree = parse_tree("<r><!-- note --><c>1</c></r>")
        assert tree == {"r": {"c": "1"}}

    def test_malformed_raises(self):
        with pytest.raises(StructureError, match="Malformed"):
            parse_tree("<r><c></r>")

    def test_empty_raises(self):
        with pytest.raises(StructureError):
            parse_tree("   ")


# ── Lookup tests ────────────────────────────────────────────────────


class TestLookup:
    def test_exact_and_alias(self):
        from jrxml.lookup import resolve

        assert resolve({"field": 1}, "field") == 1
        assert resolve({"jr:field": 2}, "field") == 2
        assert resolve({"FIELD": 3}, "field") == 3

    def test_alias_requires_identifier_boundary(self):
        from jrxml.lookup import resolve

        node = {"textField": 1, "sortField": 2, "subreportParameter": 3}
        assert resolve(node, "field", max_depth=0) is None
        assert resolve(node, "parameter", max_depth=0) is None

    def test_attributes_are_not_children(self):
        from jrxml.lookup import resolve

        assert resolve({"@field": "x"}, "field") is None

    def test_depth_bound(self):
        from jrxml.lookup import resolve

        node = {"a": {"b": {"c": {"field": 1}}}}
        assert resolve(node, "field", max_depth=3) == 1
        assert resolve(node, "field", max_depth=2) is None

    def test_search_through_lists(self):
        from jrxml.lookup import resolve

        node = {"wrap": [{"x": 1}, {"band": "found"}]}
        assert resolve(node, "band") == "found"

    def test_as_list(self):
        from jrxml.lookup import as_list

        assert as_list(None) == []
        assert as_list({"a": 1}) == [{"a": 1}]
        assert as_list([1, 2]) == [1, 2]
        assert as_list("") == [""]

    def test_to_int(self):
        from jrxml.lookup import to_int

        assert to_int("12", 0) == 12
        assert to_int(" 12.5", 0) == 12
        assert to_int("-3", 0) == -3
        assert to_int("abc", 7) == 7
        assert to_int(None, 595) == 595
        assert to_int("", 20) == 20

    def test_text_of(self):
        from jrxml.lookup import text_of

        assert text_of("x") == "x"
        assert text_of({"@a": "1", "#text": "y"}) == "y"
        assert text_of({"@a": "1"}) == ""
        assert text_of(None) is None


# ── Extractor tests ─────────────────────────────────────────────────


class TestExtractor:
    @pytest.fixture
    def report(self) -> ReportModel:
        return parse(_fixture("sample_report.jrxml"))

    def test_page_metrics(self, report):
        assert report.name == "CustomerList"
        assert report.page_width == 842
        assert report.page_height == 595
        assert report.orientation is Orientation.LANDSCAPE
        assert report.column_width == 802
        assert (report.left_margin, report.right_margin) == (20, 20)
        assert (report.top_margin, report.bottom_margin) == (15, 15)

    def test_declarations(self, report):
        assert [p.name for p in report.parameters] == ["ReportTitle", "MinOrders"]
        title = report.parameters[0]
        assert title.class_name == "java.lang.String"
        assert title.is_for_prompting is True
        assert title.default_value_expression == '"Customer List"'
        assert report.parameters[1].is_for_prompting is False
        assert report.parameters[1].default_value_expression is None

        assert [f.name for f in report.fields] == ["id", "name", "city"]

        count = report.variables[0]
        assert count.name == "CityCount"
        assert count.calculation == "Count"
        assert count.expression == "$F{id}"
        assert report.variables[1].calculation == "Sum"

    def test_groups(self, report):
        assert len(report.groups) == 1
        group = report.groups[0]
        assert group.name == "CityGroup"
        assert group.expression == "$F{city}"
        assert group.header.type == "groupHeader-CityGroup"
        assert group.header.height == 24
        assert group.footer.type == "groupFooter-CityGroup"

    def test_band_stacking_order(self, report):
        assert [b.type for b in report.bands] == [
            "title",
            "pageHeader",
            "columnHeader",
            "detail",
            "detail",
            "pageFooter",
            "summary",
            "background",
            "groupHeader-CityGroup",
            "groupFooter-CityGroup",
        ]
        assert [b.height for b in report.bands] == [50, 20, 20, 20, 10, 25, 40, 0, 24, 18]

    def test_element_type_order_within_band(self, report):
        column_header = report.bands[2]
        assert [(e.type, e.x, e.y) for e in column_header.elements] == [
            ("staticText", 0, 0),
            ("staticText", 100, 0),
            ("rectangle", 0, 0),
        ]

    def test_static_text_with_typography(self, report):
        title = report.bands[0].elements[0]
        assert title == Element(
            type="staticText",
            x=0, y=10, width=400, height=30,
            text="Customer List",
            font_name="DejaVu Sans",
            font_size=20,
            is_bold=True,
            text_alignment="Center",
            vertical_alignment="Middle",
            backcolor="#EEEEEE",
            mode="Opaque",
        )

    def test_missing_typography_left_unset(self, report):
        detail_field = report.bands[3].elements[0]
        assert detail_field.expression == "$F{id}"
        assert detail_field.font_size is None
        assert detail_field.is_bold is None
        assert detail_field.text_alignment is None

    def test_typography_without_font(self, report):
        footer_field = report.bands[9].elements[0]
        assert footer_field.pattern == "#,##0"
        assert footer_field.text_alignment == "Right"
        assert footer_field.is_bold is False
        assert footer_field.font_size is None

    def test_other_element_types(self, report):
        image = report.bands[0].elements[1]
        assert (image.type, image.width, image.height) == ("image", 100, 50)
        assert image.is_bold is None

        subreport = report.bands[4].elements[0]
        assert subreport.expression == '"orders.jasper"'

        summary_types = [e.type for e in report.bands[6].elements]
        assert summary_types == ["staticText", "ellipse"]

    def test_element_counts(self, report):
        assert report.element_counts() == {
            "staticText": 4,
            "image": 1,
            "line": 1,
            "rectangle": 1,
            "textField": 5,
            "subreport": 1,
            "ellipse": 1,
        }
        assert report.duplicate_keys() == []
        assert report.summary()["elements"] == 14

    def test_prefixed_document(self):
        report = parse(_fixture("prefixed_report.jrxml"))
        assert report.name == "Prefixed"
        assert report.page_width == 600
        assert report.page_height == 842
        assert [f.name for f in report.fields] == ["amount"]
        assert [b.type for b in report.bands] == ["title", "detail"]
        assert report.bands[0].elements[0].text == "Invoice"
        assert report.bands[1].elements[0].expression == "$F{amount}"

    def test_collection_wrapped_one_level_deeper(self):
        report = parse(_report('<fields><field name="a" class="java.lang.String"/></fields>'))
        assert [f.name for f in report.fields] == ["a"]

    def test_text_field_does_not_count_as_field(self):
        body = (
            '<detail><band height="10"><textField>'
            '<reportElement x="0" y="0" width="10" height="10"/>'
            "<textFieldExpression>$F{a}</textFieldExpression>"
            "</textField></band></detail>"
        )
        report = parse(_report(body))
        assert report.fields == ()
        assert len(report.flat_elements()) == 1

    def test_defaults_for_missing_and_malformed_numbers(self):
        body = (
            '<title><band height="abc"><staticText>'
            '<reportElement x="oops" y="5" width="10" height="10"/>'
            "</staticText></band></title>"
            "<summary><band/></summary>"
        )
        report = parse(_report(body, 'name="T" pageHeight="x1"'))
        assert report.page_width == 595
        assert report.page_height == 842
        assert report.left_margin == 20
        assert report.column_width == 555
        assert report.bands[0].height == 0
        assert report.bands[0].elements[0].x == 0
        assert report.bands[0].elements[0].y == 5
        assert report.bands[1].height == 0

    def test_single_and_repeated_elements_normalize(self):
        one = (
            '<title><band height="20"><staticText>'
            '<reportElement x="0" y="0" width="10" height="10"/><text>A</text>'
            "</staticText></band></title>"
        )
        two = (
            '<title><band height="20">'
            '<staticText><reportElement x="0" y="0" width="10" height="10"/><text>A</text></staticText>'
            '<staticText><reportElement x="20" y="0" width="10" height="10"/><text>B</text></staticText>'
            "</band></title>"
        )
        single = parse(_report(one)).bands[0].elements
        double = parse(_report(two)).bands[0].elements
        assert len(single) == 1
        assert len(double) == 2
        assert single[0] == double[0]
        assert double[1].text == "B"

    def test_element_without_geometry_carrier(self):
        report = parse(_report('<title><band height="5"><line/></band></title>'))
        line = report.bands[0].elements[0]
        assert (line.type, line.x, line.y, line.width, line.height) == ("line", 0, 0, 0, 0)
        assert line.forecolor is None

    def test_band_container_without_band_wrapper(self):
        body = (
            '<pageHeader height="15"><staticText>'
            '<reportElement x="1" y="1" width="1" height="1"/></staticText></pageHeader>'
        )
        report = parse(_report(body))
        assert report.bands[0].type == "pageHeader"
        assert report.bands[0].height == 15
        assert len(report.bands[0].elements) == 1

    def test_unnamed_group_band_tag(self):
        body = '<group><groupHeader><band height="5"/></groupHeader></group>'
        report = parse(_report(body))
        assert [b.type for b in report.bands] == ["groupHeader-group"]
        assert report.groups[0].name == ""

    def test_empty_report(self):
        report = parse(_report("", ""))
        assert report.name == "Unnamed Report"
        assert report.bands == ()
        assert report.parameters == ()

    def test_no_root_raises(self):
        with pytest.raises(StructureError, match="jasperReport"):
            parse('<report name="x"><title/></report>')

    def test_root_found_by_plain_substring(self):
        report = extract({"JasperReportDef": {"@name": "Legacy", "field": {"@name": "f"}}})
        assert report.name == "Legacy"
        assert [f.name for f in report.fields] == ["f"]

    def test_extract_from_tree(self):
        tree = {"jasperReport": {"@name": "Direct", "field": {"@name": "f"}}}
        report = extract(tree)
        assert report.name == "Direct"
        assert [f.name for f in report.fields] == ["f"]

    def test_to_dict_contract(self, report):
        data = report.to_dict()
        assert data["pageWidth"] == 842
        assert data["orientation"] == "Landscape"
        assert data["parameters"][0] == {
            "name": "ReportTitle",
            "class": "java.lang.String",
            "isForPrompting": True,
            "defaultValueExpression": '"Customer List"',
        }
        assert data["bands"][0]["elements"][0]["fontName"] == "DejaVu Sans"

    def test_injected_logger_receives_records(self, caplog):
        import logging

        sink = logging.getLogger("test.sink")
        with caplog.at_level(logging.DEBUG, logger="test.sink"):
            ReportExtractor(logger=sink).extract(parse_tree(_report("")))
        assert any(r.name == "test.sink" for r in caplog.records)


# ── Config tests ────────────────────────────────────────────────────


class TestConfig:
    def test_load_default_config(self):
        from jrxml.config import ViewerConfig

        cfg = ViewerConfig()
        assert cfg.page_width == 595
        assert cfg.page_height == 842
        assert cfg.margin == 20
        assert cfg.max_depth == 6
        assert cfg.band_labels["title"] == "Title Band"
        assert ".jrxml" in cfg.report_extensions

    def test_overlay_deep_merges(self, tmp_path):
        from jrxml.config import ViewerConfig

        overlay = tmp_path / "overlay.yaml"
        overlay.write_text("defaults:\n  page_width: 612\n", encoding="utf-8")
        cfg = ViewerConfig(overlay_path=overlay)
        assert cfg.page_width == 612
        assert cfg.page_height == 842

    def test_overlay_changes_extraction_defaults(self, tmp_path):
        from jrxml.config import ViewerConfig

        overlay = tmp_path / "overlay.yaml"
        overlay.write_text("defaults:\n  page_width: 612\n  margin: 36\n", encoding="utf-8")
        report = parse(_report(""), ViewerConfig(overlay_path=overlay))
        assert report.page_width == 612
        assert report.top_margin == 36

    def test_config_path_reported(self, tmp_path):
        from jrxml.config import ViewerConfig

        base = tmp_path / "base.yaml"
        base.write_text("defaults:\n  margin: 10\n", encoding="utf-8")
        cfg = ViewerConfig(config_path=base)
        assert cfg.config_path == base
        assert cfg.margin == 10

    def test_missing_overlay_raises(self, tmp_path):
        from jrxml.config import ViewerConfig

        with pytest.raises(FileNotFoundError):
            ViewerConfig(overlay_path=tmp_path / "nope.yaml")

    def test_non_mapping_overlay_skipped(self, tmp_path):
        from jrxml.config import ViewerConfig

        overlay = tmp_path / "overlay.yaml"
        overlay.write_text("- a\n- b\n", encoding="utf-8")
        cfg = ViewerConfig(overlay_path=overlay)
        assert cfg.page_width == 595

    def test_non_mapping_base_raises(self, tmp_path):
        from jrxml.config import ViewerConfig

        base = tmp_path / "base.yaml"
        base.write_text("just a string\n", encoding="utf-8")
        with pytest.raises(ValueError):
            ViewerConfig(config_path=base)


# ── Outline tests ───────────────────────────────────────────────────


class TestOutline:
    def test_element_outline(self):
        from jrxml.outline import build_element_outline

        report = parse(_fixture("sample_report.jrxml"))
        nodes = build_element_outline(report)

        # The background band has no elements.
        assert len(nodes) == 9
        title = nodes[0]
        assert (title.label, title.description) == ("Title Band", "height: 50px")
        assert title.children[0].label == "Customer List"
        assert title.children[0].description == "Static Text at (0, 10)"
        assert title.children[1].label == "Image"
        assert title.children[1].description == "(700, 0)"

        column_header = nodes[2]
        assert [c.label for c in column_header.children] == ["ID", "Name", "Rectangle"]

        assert nodes[4].children[0].label == 'Subreport: "orders.jasper"'
        assert nodes[7].label == "groupHeader-CityGroup"
        assert [n.kind for n in nodes[6:]] == ["band", "groupBand", "groupBand"]

    def test_long_labels_truncated_and_numbered(self):
        from jrxml.outline import build_element_outline

        long_text = "x" * 40
        report = ReportModel(bands=(Band(type="title", height=10, elements=(
            Element(type="staticText", text=long_text),
            Element(type="line", x=1),
            Element(type="line", x=2),
            Element(type="chart", expression="pie"),
        )),))
        children = build_element_outline(report)[0].children
        assert children[0].label == "x" * 30 + "..."
        assert [c.label for c in children[1:]] == ["Line #1", "Line #2", "pie Chart"]

    def test_no_elements(self):
        from jrxml.outline import build_element_outline

        nodes = build_element_outline(ReportModel())
        assert len(nodes) == 1
        assert (nodes[0].label, nodes[0].kind) == ("No elements found", "info")

    def test_properties(self):
        from jrxml.outline import build_properties

        report = parse(_fixture("sample_report.jrxml"))
        items = build_properties(report)
        assert [i.label for i in items] == [
            "Document Info",
            "Margins",
            "Bands",
            "Parameters",
            "Variables",
            "Element Statistics",
        ]
        assert items[0].children[1].description == "842px"
        assert items[2].description == "10 bands"
        stats = {c.label: c.description for c in items[5].children}
        assert stats["textField"] == "5 elements"

    def test_properties_omit_empty_categories(self):
        from jrxml.outline import build_properties

        labels = [i.label for i in build_properties(ReportModel())]
        assert labels == ["Document Info", "Margins"]

    def test_scan_reports(self, tmp_path):
        from jrxml.outline import scan_reports

        (tmp_path / "a").mkdir()
        (tmp_path / "a" / "b.jrxml").write_text("<x/>", encoding="utf-8")
        (tmp_path / "a" / "node_modules").mkdir()
        (tmp_path / "a" / "node_modules" / "c.jrxml").write_text("<x/>", encoding="utf-8")
        (tmp_path / ".hidden").mkdir()
        (tmp_path / ".hidden" / "d.jrxml").write_text("<x/>", encoding="utf-8")
        (tmp_path / "empty").mkdir()
        (tmp_path / "z.jrxml").write_text("<x/>", encoding="utf-8")
        (tmp_path / "notes.txt").write_text("", encoding="utf-8")

        nodes = scan_reports(tmp_path)
        assert [(n.label, n.kind) for n in nodes] == [("a", "folder"), ("z.jrxml", "file")]
        assert [c.label for c in nodes[0].children] == ["b.jrxml"]
        assert nodes[1].path == tmp_path / "z.jrxml"

    def test_scan_missing_root(self, tmp_path):
        from jrxml.outline import scan_reports

        assert scan_reports(tmp_path / "missing") == []


# ── Writer tests ────────────────────────────────────────────────────


class TestWriter:
    def test_round_trip_sample(self):
        from jrxml.writer import serialize

        report = parse(_fixture("sample_report.jrxml"))
        assert parse(serialize(report)) == report

    def test_round_trip_prefixed(self):
        from jrxml.writer import serialize

        report = parse(_fixture("prefixed_report.jrxml"))
        assert parse(serialize(report)) == report

    def test_round_trip_bare_text_element(self):
        from jrxml.writer import serialize

        body = (
            '<title><band height="20"><staticText>'
            '<reportElement x="0" y="0" width="10" height="10"/>'
            "<textElement><font/></textElement><text>A</text>"
            "</staticText></band></title>"
        )
        report = parse(_report(body))
        assert report.bands[0].elements[0].is_bold is False
        assert parse(serialize(report)) == report

    def test_serialize_escapes_cdata_terminator(self):
        from jrxml.writer import serialize

        report = ReportModel(bands=(Band(type="title", height=10, elements=(
            Element(type="staticText", text="a ]]> b"),
        )),))
        assert parse(serialize(report)).bands[0].elements[0].text == "a ]]> b"
