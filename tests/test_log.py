import logging

from webbench.log import setup_logging


def test_file_logging_format_and_truncation(tmp_path):
    path = tmp_path / "err.log"
    path.write_text("stale line\n")
    setup_logging(str(path))
    logging.getLogger("webbench.benchmark").error("request failed: %s", "boom")
    text = path.read_text()
    assert "stale line" not in text
    assert "<ERROR> request failed: boom" in text
    assert text.startswith("[")


def test_setup_replaces_previous_handler(tmp_path):
    first = tmp_path / "a.log"
    second = tmp_path / "b.log"
    setup_logging(str(first))
    setup_logging(str(second))
    logging.getLogger("webbench").error("only here")
    assert "only here" not in first.read_text()
    assert "only here" in second.read_text()
    assert len(logging.getLogger("webbench").handlers) == 1


def test_without_path_nothing_reaches_stderr(capsys):
    setup_logging(None)
    logging.getLogger("webbench.request").error("quiet please")
    assert "quiet please" not in capsys.readouterr().err
