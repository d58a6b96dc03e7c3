"""workflow-copilot command line."""

from __future__ import annotations

import json

import pytest

from workflow_copilot.cli import main


@pytest.fixture(autouse=True)
def heuristic_backend(monkeypatch):
    monkeypatch.setenv("COPILOT_BACKEND", "none")


class TestGenerate:
    def test_json_output(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            main(["generate", "Scrape https://example.com and summarize it", "--json"])
        assert excinfo.value.code == 0
        body = json.loads(capsys.readouterr().out)
        assert body["success"] is True
        assert body["data"]["parsedIntent"]["intent"] == "WEB_SCRAPING"

    def test_text_output(self, capsys):
        with pytest.raises(SystemExit):
            main(["generate", "Scrape https://example.com and summarize it"])
        out = capsys.readouterr().out
        assert "Intent     : WEB_SCRAPING" in out
        assert "input-node -> web-scraper" in out


class TestValidate:
    def test_valid_file(self, tmp_path, capsys):
        path = tmp_path / "wf.json"
        path.write_text(json.dumps({
            "nodes": [
                {"id": "a", "type": "dataInput", "label": "In", "config": {"dataType": "text"}},
                {"id": "b", "type": "dataOutput", "label": "Out", "config": {"format": "json"}},
            ],
            "edges": [{"id": "e1", "source": "a", "target": "b"}],
            "topology": {"type": "linear"},
        }))
        with pytest.raises(SystemExit) as excinfo:
            main(["validate", str(path)])
        assert excinfo.value.code == 0
        assert json.loads(capsys.readouterr().out)["isValid"] is True

    def test_unreadable_file(self, tmp_path):
        with pytest.raises(SystemExit) as excinfo:
            main(["validate", str(tmp_path / "missing.json")])
        assert excinfo.value.code == 2


def test_no_command_prints_help(capsys):
    with pytest.raises(SystemExit) as excinfo:
        main([])
    assert excinfo.value.code == 1
    assert "workflow-copilot" in capsys.readouterr().out
