import pytest

from guide_converter.utils import (
    generate_run_id,
    is_safe_file_name,
    list_relative_files,
    safe_join,
    size_within_limit,
)


def test_generate_run_id_unique() -> None:
    first = generate_run_id("run")
    second = generate_run_id("run")
    assert first != second
    assert first.startswith("run-")
    prefix, epoch_ms, suffix = first.split("-")
    assert epoch_ms.isdigit()
    assert len(suffix) == 8


def test_safe_join_rejects_escaping_paths(tmp_path) -> None:
    assert safe_join(tmp_path, "a/b.txt") == (tmp_path / "a" / "b.txt").resolve()
    assert safe_join(tmp_path, "/abs.txt") == (tmp_path / "abs.txt").resolve()
    for bad in ("../outside.txt", "a/../../x", "", "."):
        with pytest.raises(ValueError):
            safe_join(tmp_path, bad)


def test_list_relative_files_is_depth_first_and_sorted(tmp_path) -> None:
    (tmp_path / "b").mkdir()
    (tmp_path / "a" / "nested").mkdir(parents=True)
    (tmp_path / "z.txt").write_text("z")
    (tmp_path / "b" / "x.md").write_text("x")
    (tmp_path / "a" / "nested" / "deep.txt").write_text("d")
    (tmp_path / "a" / "x.txt").write_text("x")

    assert list_relative_files(tmp_path) == ["a/nested/deep.txt", "a/x.txt", "b/x.md", "z.txt"]
    assert list_relative_files(tmp_path / "missing") == []


def test_safe_file_names() -> None:
    assert is_safe_file_name("guide (2).html")
    assert not is_safe_file_name("../guide.html")
    assert not is_safe_file_name("a\\b.html")
    assert not is_safe_file_name("")


def test_size_within_limit() -> None:
    assert size_within_limit(1024 * 1024, 1)
    assert not size_within_limit(1024 * 1024 + 1, 1)
