import json

import pytest

from completeseries import cli
from completeseries.config import ENV_KEYS


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in ENV_KEYS + ("ENV_PATH",):
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)


def _run(capsys, tmp_path, *args) -> tuple:
    base = ["--env-file", str(tmp_path / "none.env"), "--data-file", str(tmp_path / "cs.json")]
    code = cli.main(base + list(args))
    return code, json.loads(capsys.readouterr().out)


def test_status_unconfigured(capsys, tmp_path) -> None:
    code, out = _run(capsys, tmp_path, "status")

    assert code == 0
    assert out["configured"] is False
    assert out["refreshStatus"] == "idle"


def test_refresh_without_config_exits_nonzero(capsys, tmp_path) -> None:
    code, out = _run(capsys, tmp_path, "refresh")

    assert code == 1
    assert out["status"] == "error"


def test_save_hidden_then_show(capsys, tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("ABS_URL", "https://abs.local")
    monkeypatch.setenv("ABS_USE_API_KEY", "true")
    monkeypatch.setenv("ABS_API_KEY", "key")
    payload = tmp_path / "hidden.json"
    payload.write_text(json.dumps({"hiddenItems": [{"type": "series", "series": "Dune", "title": ""}]}))

    code, saved = _run(capsys, tmp_path, "save-hidden", str(payload))
    assert code == 0
    assert saved["saved"] is True

    code, shown = _run(capsys, tmp_path, "show")
    assert shown["source"] == "file"
    assert shown["data"]["hiddenItems"][0]["series"] == "Dune"


def test_sync_rewrites_local_file(capsys, tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("ABS_URL", "https://abs.local")
    monkeypatch.setenv("ABS_USERNAME", "reader")
    monkeypatch.setenv("ABS_PASSWORD", "secret")
    local = tmp_path / "local.json"
    local.write_text(json.dumps([{"type": "book", "series": "Dune", "title": "Dune", "asin": "B002V1OF70"}]))

    code, out = _run(capsys, tmp_path, "sync", str(local))

    assert code == 0
    assert out == {"status": "success", "local": 1, "merged": 1}
    assert json.loads(local.read_text())[0]["asin"] == "B002V1OF70"
    assert json.loads((tmp_path / "cs.json").read_text())["hiddenItems"][0]["asin"] == "B002V1OF70"


def test_hide_then_unhide(capsys, tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("ABS_URL", "https://abs.local")
    monkeypatch.setenv("ABS_USE_API_KEY", "true")
    monkeypatch.setenv("ABS_API_KEY", "key")

    code, out = _run(capsys, tmp_path, "hide", "book", "Dune", "--title", "Dune", "--asin", "B002V1OF70")
    assert code == 0
    assert out["hiddenItems"] == [{"type": "book", "series": "Dune", "title": "Dune", "asin": "B002V1OF70"}]

    code, out = _run(capsys, tmp_path, "unhide", "book", "Dune", "--asin", "B002V1OF70")
    assert code == 0
    assert out["hiddenItems"] == []
    assert json.loads((tmp_path / "cs.json").read_text())["hiddenItems"] == []


def test_hide_unconfigured(capsys, tmp_path) -> None:
    code, out = _run(capsys, tmp_path, "hide", "series", "Dune")

    assert code == 0
    assert out["status"] == "not_configured"
