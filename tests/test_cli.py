"""
Tests for the command line interface.
"""

import pytest

from vector_search.cli import main


@pytest.fixture
def env(tmp_path, monkeypatch):
    monkeypatch.setenv("EMBED_DIM", "32")
    monkeypatch.setenv("EMBED_PROVIDER", "hash")
    monkeypatch.setenv("VECTOR_PROVIDER", "sqlite")
    monkeypatch.setenv("INDEX_TYPE", "exact")
    monkeypatch.setenv("DB_PATH", str(tmp_path / "documents.db"))
    return tmp_path


def test_ingest_then_query(env, capsys):
    notes = env / "notes.txt"
    notes.write_text("the cat chases the mouse\n\ndogs bark loudly\n")

    assert main(["ingest", str(notes)]) == 0
    assert "Ingested 2 documents" in capsys.readouterr().out

    assert main(["query", "the cat chases the mouse", "--threshold", "0.9", "--limit", "5"]) == 0
    lines = capsys.readouterr().out.strip().splitlines()
    assert len(lines) == 1
    assert lines[0].endswith("\t1\tthe cat chases the mouse")


def test_whole_file_ingest(env, capsys):
    doc = env / "doc.md"
    doc.write_text("line one\nline two\n")

    assert main(["ingest", "--whole-file", str(doc)]) == 0
    assert "Ingested 1 documents" in capsys.readouterr().out


def test_query_without_matches(env, capsys):
    assert main(["query", "nothing stored yet"]) == 0
    assert "No matches." in capsys.readouterr().out


def test_rebuild(env, capsys):
    notes = env / "notes.txt"
    notes.write_text("a\nb\nc\n")
    main(["ingest", str(notes)])
    capsys.readouterr()

    assert main(["rebuild"]) == 0
    assert "Rebuilt index with 3 documents" in capsys.readouterr().out


def test_rebuild_requires_sqlite(env, monkeypatch, capsys):
    monkeypatch.setenv("VECTOR_PROVIDER", "memory")
    assert main(["rebuild"]) == 1
    assert "requires VECTOR_PROVIDER=sqlite" in capsys.readouterr().out


def test_invalid_config_exits_2(env, monkeypatch, capsys):
    monkeypatch.setenv("EMBED_DIM", "0")
    assert main(["query", "anything"]) == 2
    assert "EMBED_DIM must be positive" in capsys.readouterr().out


def test_invalid_threshold_reported(env, capsys):
    assert main(["query", "anything", "--threshold", "3"]) == 1
    assert "threshold must be in [-1, 1]" in capsys.readouterr().out


@pytest.mark.parametrize("batch_size", ["0", "-3", "many"])
def test_batch_size_must_be_positive(env, batch_size, capsys):
    notes = env / "notes.txt"
    notes.write_text("the cat chases the mouse\n")

    with pytest.raises(SystemExit) as exc_info:
        main(["ingest", str(notes), "--batch-size", batch_size])
    assert exc_info.value.code == 2
    assert "--batch-size" in capsys.readouterr().err
