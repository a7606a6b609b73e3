"""
Sentence-bounded chunking and file-type aware text extraction.
"""

from pathlib import Path

import pytest

from aura_memory.vector.chunking import chunk_text, detect_file_type, extract_text, split_sentences


class TestChunkText:

    def test_short_text_is_single_chunk(self):
        assert chunk_text("  Just one sentence.  ", 100) == ["Just one sentence."]

    def test_blank_text_yields_no_chunks(self):
        assert chunk_text("   \n\n  ", 50) == []

    def test_invalid_chunk_size(self):
        with pytest.raises(ValueError):
            chunk_text("text", 0)

    def test_greedy_accumulation_across_sentence_ends(self):
        chunks = chunk_text("First. Second! Third? Fourth.", 15)
        assert chunks == ["First. Second!", "Third? Fourth."]

    def test_blank_line_is_a_boundary(self):
        assert chunk_text("Para one\n\nPara two", 10) == ["Para one", "Para two"]

    def test_oversized_sentence_becomes_its_own_chunk(self):
        long_sentence = "a" * 30 + "."
        chunks = chunk_text(long_sentence + " Short.", 10)
        assert chunks == [long_sentence, "Short."]

    def test_multi_sentence_document_respects_chunk_size(self):
        sentences = [f"Sentence number {i} talks about topic {i}." for i in range(12)]
        text = " ".join(sentences)
        assert len(text) > 400

        chunks = chunk_text(text, 50)

        assert len(chunks) > 1
        assert all(len(chunk) <= 50 for chunk in chunks)
        assert " ".join(chunks) == text

    def test_split_sentences_offsets(self):
        text = "One. Two."
        spans = split_sentences(text)
        assert [text[s:e] for s, e in spans] == ["One.", "Two."]


class TestExtractText:

    def test_detect_file_type(self):
        assert detect_file_type(Path("a.JSON")) == "json"
        assert detect_file_type(Path("a.md")) == "markdown"
        assert detect_file_type(Path("a.unknown")) == "text"

    def test_plain_text(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("Hello there.", encoding="utf-8")
        assert extract_text(path) == ("Hello there.", "text")

    def test_json_is_flattened(self, tmp_path):
        path = tmp_path / "doc.json"
        path.write_text('{"name": "Ada", "tags": ["math", "engines"], "active": true, "note": null}', encoding="utf-8")

        text, file_type = extract_text(path)

        assert file_type == "json"
        assert "name: Ada" in text
        assert "tags: math\nengines" in text
        assert "active: true" in text

    def test_malformed_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ValueError, match="Invalid JSON"):
            extract_text(path)

    def test_csv_rows_become_header_value_lines(self, tmp_path):
        path = tmp_path / "people.csv"
        path.write_text("name,age\nAda,36\nBob,\n", encoding="utf-8")

        text, file_type = extract_text(path)

        assert file_type == "csv"
        assert text.startswith("CSV Data with columns: name, age")
        assert "name: Ada\nage: 36" in text
        assert "name: Bob" in text
        assert "age: \n" not in text

    def test_csv_row_cap(self, tmp_path):
        path = tmp_path / "many.csv"
        path.write_text("n\n" + "\n".join(str(i) for i in range(10)), encoding="utf-8")

        text, _ = extract_text(path, max_csv_rows=3)

        assert "n: 2" in text
        assert "n: 3" not in text

    def test_empty_csv(self, tmp_path):
        path = tmp_path / "empty.csv"
        path.write_text("", encoding="utf-8")
        with pytest.raises(ValueError):
            extract_text(path)

    def test_xml_tags_are_stripped(self, tmp_path):
        path = tmp_path / "doc.xml"
        path.write_text("<root><a>Hello</a>\n  <b>world</b></root>", encoding="utf-8")
        assert extract_text(path) == ("Hello world", "xml")

    def test_markdown_syntax_and_link_targets_are_stripped(self, tmp_path):
        path = tmp_path / "readme.md"
        path.write_text("# Title\nSee [the docs](http://example.com) and **bold** text.", encoding="utf-8")

        text, file_type = extract_text(path)

        assert file_type == "markdown"
        assert "the docs" in text
        assert "http://example.com" not in text
        assert "*" not in text and "#" not in text

    def test_log_drops_short_lines(self, tmp_path):
        path = tmp_path / "app.log"
        path.write_text("ok\n2024-01-01 INFO service started\n\nshort\n", encoding="utf-8")
        assert extract_text(path) == ("2024-01-01 INFO service started", "log")
