"""Command line interface."""

import json
import logging
import sys

import pytest
from loguru import logger

from mdmapper.cli import main
from mdmapper.logging_config import FORWARDED_LOGGERS, configure_logging

DOCUMENT = "# Title\n\n> [!TIP]\n> Hi\n\n- a\n- b\n"


@pytest.fixture(autouse=True)
def restore_logging():
    """main() reconfigures loguru; put the default sink back afterwards."""
    yield
    logger.remove()
    logger.add(sys.stderr)
    for name in FORWARDED_LOGGERS:
        forwarded = logging.getLogger(name)
        forwarded.handlers = []
        forwarded.propagate = True


@pytest.fixture
def document(tmp_path):
    path = tmp_path / "doc.md"
    path.write_text(DOCUMENT, encoding="utf-8")
    return path


class TestParse:
    def test_outline(self, document, capsys):
        assert main(["parse", str(document)]) == 0
        lines = capsys.readouterr().out.splitlines()
        assert lines[0].startswith("heading heading-")
        assert lines[0].endswith("Title")
        assert lines[-1].startswith("  listItem ")

    def test_json(self, document, capsys):
        assert main(["parse", str(document), "--json"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert [block["type"] for block in data] == ["heading", "callout", "list"]
        assert data[0]["sourceRange"] == {"start": 0, "end": 7}
        assert "textOffset" not in data[0]


class TestFormat:
    def test_prints_canonical_form(self, document, capsys):
        assert main(["format", str(document)]) == 0
        assert capsys.readouterr().out == DOCUMENT

    def test_emoji_callouts(self, document, capsys):
        assert main(["format", str(document), "--callouts-style", "emoji"]) == 0
        assert "> \U0001f4dd tip:\n> Hi" in capsys.readouterr().out

    def test_write(self, tmp_path):
        path = tmp_path / "messy.md"
        path.write_text("Title\n=====\n\n*   a\n", encoding="utf-8")
        assert main(["format", str(path), "--write", "--no-preserve-formatting"]) == 0
        assert path.read_text(encoding="utf-8") == "# Title\n\n- a\n"


class TestCheck:
    def test_ok(self, document, capsys):
        assert main(["check", str(document)]) == 0
        assert "OK (3 top-level blocks)" in capsys.readouterr().out

    def test_missing_file(self, tmp_path, capsys):
        assert main(["check", str(tmp_path / "nope.md")]) == 2
        assert "Error" in capsys.readouterr().err


class TestArguments:
    def test_bad_setting_value(self, document):
        with pytest.raises(SystemExit):
            main(["format", str(document), "--callouts-style", "fancy"])

    def test_negative_wrap_width(self, document, capsys):
        assert main(["format", str(document), "--wrap-width", "-1"]) == 2
        assert "Invalid settings" in capsys.readouterr().err


class TestLogging:
    def test_parser_loggers_forwarded(self):
        configure_logging("debug")
        messages = []
        logger.add(lambda message: messages.append(message.record), level="DEBUG")
        logging.getLogger("markdown_it.rules_block").warning("from the parser")
        record = next(r for r in messages if r["message"] == "from the parser")
        assert record["level"].name == "WARNING"
        assert record["extra"]["origin"] == "markdown_it.rules_block"
        assert record["function"] == "test_parser_loggers_forwarded"

    def test_own_records_tagged_with_module(self):
        configure_logging("debug")
        messages = []
        logger.add(lambda message: messages.append(message.record), level="DEBUG")
        logger.info("own record")
        assert messages[-1]["extra"]["origin"] == __name__

    def test_level_filters_stderr(self, capsys):
        configure_logging("error")
        logger.warning("quiet")
        logger.error("loud")
        err = capsys.readouterr().err
        assert "loud" in err
        assert "quiet" not in err
