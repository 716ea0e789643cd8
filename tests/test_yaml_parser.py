# tests/test_yaml_parser.py
from yaml_parser import load_book_spec, load_yaml_file, normalize_keys_recursive


def test_normalize_keys_recursive():
    data = {"Core Argument": "x", "Units": [{"Title": "One"}]}
    assert normalize_keys_recursive(data) == {
        "core_argument": "x",
        "units": [{"title": "One"}],
    }


def test_load_yaml_file_edge_cases(tmp_path):
    missing = tmp_path / "missing.yaml"
    assert load_yaml_file(str(missing)) is None

    wrong_ext = tmp_path / "book.txt"
    wrong_ext.write_text("title: x")
    assert load_yaml_file(str(wrong_ext)) is None

    empty = tmp_path / "empty.yaml"
    empty.write_text("")
    assert load_yaml_file(str(empty)) == {}

    listing = tmp_path / "list.yaml"
    listing.write_text("- a\n- b\n")
    assert load_yaml_file(str(listing)) is None

    broken = tmp_path / "broken.yaml"
    broken.write_text("title: [unclosed")
    assert load_yaml_file(str(broken)) is None


def test_load_book_spec(tmp_path):
    path = tmp_path / "book.yaml"
    path.write_text(
        """Title: Deep Focus
Niche: productivity
Tone: calm, direct
Chapters:
  - Why focus matters
  - title: Building the habit
    description: Daily routines
"""
    )
    spec = load_book_spec(str(path))
    assert spec is not None
    assert spec.book_id == "deep-focus"
    assert spec.tone == ["calm", "direct"]
    assert [u.title for u in spec.units] == ["Why focus matters", "Building the habit"]
    assert spec.units[1].description == "Daily routines"


def test_load_book_spec_rejects_invalid(tmp_path):
    path = tmp_path / "book.yaml"
    path.write_text("niche: productivity\n")
    assert load_book_spec(str(path)) is None
