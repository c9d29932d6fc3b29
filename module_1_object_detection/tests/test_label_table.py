from pathlib import Path

from module_1_object_detection.app.config.settings import AppSettings
from module_1_object_detection.app.services.label_table import LabelTable


def test_parse_strips_lines_and_drops_trailing_blanks() -> None:
    table = LabelTable.parse("person\r\n  bicycle \ntraffic light\n\n\n")

    assert list(table) == ["person", "bicycle", "traffic light"]
    assert len(table) == 3


def test_parse_keeps_inner_blank_lines_to_preserve_ids() -> None:
    table = LabelTable.parse("a\n\nc\n")

    assert table[2] == "c"
    assert table.class_name(1) == ""


def test_class_name_uses_underscores() -> None:
    table = LabelTable(["person", "traffic light", "cell phone"])

    assert table.class_name(1) == "traffic_light"
    assert table.class_name(2) == "cell_phone"
    assert table.class_name(0) == "person"


def test_unknown_label_id_falls_back_to_number() -> None:
    table = LabelTable(["person"])

    assert table.class_name(7) == "7"
    assert table.class_name(-1) == "-1"


def test_from_mapping_orders_by_id() -> None:
    table = LabelTable.from_mapping({1: "bicycle", 0: "person", 3: "motorcycle"})

    assert list(table) == ["person", "bicycle", "2", "motorcycle"]
    assert len(LabelTable.from_mapping({})) == 0


def test_from_file_reads_label_asset(tmp_path: Path) -> None:
    path = tmp_path / "labels.txt"
    path.write_text("cat\ndog\n", encoding="utf-8")

    table = LabelTable.from_file(path)

    assert list(table) == ["cat", "dog"]


def test_default_label_asset_is_coco() -> None:
    table = LabelTable.from_file(AppSettings().labels_path)

    assert len(table) == 80
    assert table.class_name(0) == "person"
    assert table.class_name(9) == "traffic_light"
    assert table.class_name(67) == "cell_phone"
