import json

from guide_converter.errors import ProviderError
from guide_converter.logging import (
    error_to_dict,
    get_logger,
    mask_secret,
    pretty_json_lines,
    sanitize,
    scrub_url_secrets,
    tail_lines,
)


def test_mask_secret() -> None:
    assert mask_secret("sk-1234567890abcd") == "sk-***abcd"
    assert mask_secret("short") == "***"
    assert mask_secret("") is None
    assert mask_secret(None) is None


def test_scrub_url_secrets_and_sanitize() -> None:
    assert scrub_url_secrets("https://x.test/v1?key=abc123&y=1") == "https://x.test/v1?key=***&y=1"
    cleaned = sanitize({"api_key": "sk-1234567890abcd", "nested": {"token": "abcdefghijkl"}, "plain": "ok"})
    assert cleaned == {"api_key": "sk-***abcd", "nested": {"token": "abc***ijkl"}, "plain": "ok"}


def test_error_to_dict_keeps_code_and_cause() -> None:
    try:
        try:
            raise ValueError("inner")
        except ValueError as inner:
            raise ProviderError("openai", "outer", status=500) from inner
    except ProviderError as exc:
        payload = error_to_dict(exc)
    assert payload["name"] == "ProviderError"
    assert payload["code"] == "PROVIDER_ERROR"
    assert payload["cause"] == {"name": "ValueError", "message": "inner"}
    assert "Traceback" in payload["stack"]


def test_run_logger_appends_redacted_lines_only_for_runs(tmp_path) -> None:
    log_file = tmp_path / "server.log"
    get_logger("test", log_file).info("no run bound")
    assert not log_file.exists()

    logger = get_logger("test", log_file, run_id="run-1")
    logger.bind("child", file_name="a.txt").warn("hello", api_key="sk-1234567890abcd")

    lines = log_file.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    entry = json.loads(lines[0])
    assert entry["scope"] == "child"
    assert entry["level"] == "warn"
    assert entry["run_id"] == "run-1"
    assert entry["file_name"] == "a.txt"
    assert entry["api_key"] == "sk-***abcd"


def test_tail_and_pretty_lines() -> None:
    text = '{"a": 1}\nplain\n{"b": 2}\n'
    assert tail_lines(text, 2) == 'plain\n{"b": 2}'
    assert tail_lines(text, 0) == ""
    assert pretty_json_lines('{"a": 1}\nplain') == '{\n  "a": 1\n}\n\nplain'
