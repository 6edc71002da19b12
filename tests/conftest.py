import pytest

import data_store


@pytest.fixture
def students_file(tmp_path, monkeypatch):
    """Point the JSON store at an empty file in ``tmp_path``."""

    path = tmp_path / "students.json"
    monkeypatch.setattr(data_store, "STUDENTS_FILE", str(path))
    return path
