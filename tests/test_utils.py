from pathlib import Path

import pytest

from queue_eta.utils import write_text_file


def test_write_text_file_creates_parents(tmp_path: Path):
    target = tmp_path / "models" / "10-6-1.json"
    assert write_text_file(target, "{}\n") == target
    assert target.read_text(encoding="utf-8") == "{}\n"
    assert list(target.parent.iterdir()) == [target]


def test_write_text_file_replaces_existing(tmp_path: Path):
    target = tmp_path / "model.json"
    target.write_text("old", encoding="utf-8")
    write_text_file(target, "new")
    assert target.read_text(encoding="utf-8") == "new"


def test_failed_move_leaves_no_temporary_file(tmp_path: Path, monkeypatch):
    target = tmp_path / "model.json"
    target.write_text("old", encoding="utf-8")

    def failing_replace(self, other):
        raise OSError("disk went away")

    monkeypatch.setattr(Path, "replace", failing_replace)
    with pytest.raises(OSError, match="disk went away"):
        write_text_file(target, "new")

    assert sorted(p.name for p in tmp_path.iterdir()) == ["model.json"]
    assert target.read_text(encoding="utf-8") == "old"


def test_failed_write_leaves_no_temporary_file(tmp_path: Path, monkeypatch):
    target = tmp_path / "model.json"
    real_write_text = Path.write_text

    def partial_write_text(self, data, *args, **kwargs):
        real_write_text(self, data[:2], *args, **kwargs)
        raise OSError("no space left")

    monkeypatch.setattr(Path, "write_text", partial_write_text)
    with pytest.raises(OSError, match="no space left"):
        write_text_file(target, "{\"layers\": []}")

    assert list(tmp_path.iterdir()) == []
