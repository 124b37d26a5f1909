"""Tests for parsing and fetching exported chat histories."""

from __future__ import annotations

import json

import pytest

from parrot.history import History, HistoryError, HistoryLink, fetch_history

EXPORT = {
    "name": "Friends",
    "type": "private_group",
    "id": 123,
    "messages": [
        {"id": 1, "type": "service", "date": "2021-01-01T10:00:00", "actor": "Alice", "text": ""},
        {"id": 2, "type": "message", "date": "2021-01-01T10:01:00", "from": "Alice", "text": "hi all"},
        {
            "id": 3, "type": "message", "date": "2021-01-01T10:02:00", "from": "Bob",
            "text": ["look ", {"type": "link", "text": "https://example.com"}, " cool"],
        },
    ],
}


class TestParse:

    def test_from_dict(self):
        history = History.from_dict(EXPORT)
        assert len(history.messages) == 3
        service, plain, linked = history.messages
        assert service.author is None
        assert plain.author == "Alice"
        assert plain.plain_text == "hi all"
        assert linked.plain_text is None
        assert linked.text == ["look ", HistoryLink(type="link", text="https://example.com"), " cool"]
        assert history.authors() == {"Alice", "Bob"}

    def test_from_json(self):
        history = History.from_json(json.dumps(EXPORT))
        assert history.messages[1].id == 2

    @pytest.mark.parametrize("doc", [
        {},
        {"messages": "nope"},
        {"messages": [{"type": "message", "date": "x"}]},
        {"messages": [{"id": 1, "type": "message", "date": "x", "text": 5}]},
        {"messages": ["not an object"]},
    ])
    def test_malformed_documents(self, doc):
        with pytest.raises(HistoryError):
            History.from_dict(doc)

    def test_bad_json(self):
        with pytest.raises(HistoryError):
            History.from_json("{not json")


class TestFetch:

    def test_fetch_from_file_url(self, tmp_path):
        path = tmp_path / "result.json"
        path.write_text(json.dumps(EXPORT), encoding="utf-8")
        history = fetch_history(path.as_uri())
        assert [m.id for m in history.messages] == [1, 2, 3]

    def test_missing_resource(self, tmp_path):
        with pytest.raises(HistoryError):
            fetch_history((tmp_path / "missing.json").as_uri())
