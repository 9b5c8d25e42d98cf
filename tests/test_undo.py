import pytest

from langos.undo import create_undo_backup, perform_undo


def test_backup_copies_content(tmp_path):
    target = tmp_path / "doc.txt"
    backup = tmp_path / "doc.txt.undo"
    target.write_text("Original text.")
    create_undo_backup(target, backup)
    assert backup.read_text() == "Original text."


def test_backup_replaces_old_backup(tmp_path):
    target = tmp_path / "doc.txt"
    backup = tmp_path / "doc.txt.undo"
    backup.write_text("stale")
    target.write_text("fresh")
    create_undo_backup(target, backup)
    assert backup.read_text() == "fresh"


def test_backup_of_missing_file_removes_old_backup(tmp_path):
    backup = tmp_path / "gone.txt.undo"
    backup.write_text("stale")
    create_undo_backup(tmp_path / "gone.txt", backup)
    assert not backup.exists()


def test_undo_restores_and_consumes_backup(tmp_path):
    target = tmp_path / "doc.txt"
    backup = tmp_path / "doc.txt.undo"
    target.write_text("before")
    create_undo_backup(target, backup)
    target.write_text("after")
    assert perform_undo(target, backup) is True
    assert target.read_text() == "before"
    assert not backup.exists()


def test_undo_twice_fails_second_time(tmp_path):
    target = tmp_path / "doc.txt"
    backup = tmp_path / "doc.txt.undo"
    target.write_text("v1")
    create_undo_backup(target, backup)
    target.write_text("v2")
    assert perform_undo(target, backup) is True
    assert perform_undo(target, backup) is False
    assert target.read_text() == "v1"


def test_undo_without_backup(tmp_path):
    target = tmp_path / "doc.txt"
    target.write_text("unchanged")
    assert perform_undo(target, tmp_path / "doc.txt.undo") is False
    assert target.read_text() == "unchanged"


def test_backup_into_missing_directory_raises(tmp_path):
    target = tmp_path / "doc.txt"
    target.write_text("data")
    with pytest.raises(OSError):
        create_undo_backup(target, tmp_path / "missing" / "doc.txt.undo")