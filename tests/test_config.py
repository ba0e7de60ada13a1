# File: tests/test_config.py
import json
from pathlib import Path

import pytest
from pydantic import ValidationError
from site_auditor.config import (
    DEFAULT_ALTERNATE_RELAYS,
    DEFAULT_RELAYS,
    AuditorConfig,
    CacheSettings,
    RelayConfig,
    load_config,
)


def write_file(tmp_path: Path, content: str, suffix: str) -> Path:
    path = tmp_path / f"config{suffix}"
    path.write_text(content, encoding="utf-8")
    return path


@pytest.mark.parametrize(
    "content,expect_exc",
    [
        ("relays:\n  - http://relay.example/?u=\n", None),
        (json.dumps({"relays": ["http://relay.example/?u="]}), None),
        (json.dumps({"relays": []}), ValidationError),
        ("not: a: mapping", ValueError),
        ("::invalid yaml", TypeError),
    ],
)
def test_load_config_variants(tmp_path, content, expect_exc):
    suffix = ".yaml" if not content.strip().startswith("{") else ".json"
    cfg_path = write_file(tmp_path, content, suffix)
    if expect_exc:
        with pytest.raises(expect_exc):
            load_config(cfg_path)
    else:
        cfg = load_config(cfg_path)
        assert isinstance(cfg, AuditorConfig)
        assert [r.template for r in cfg.relays] == ["http://relay.example/?u="]


def test_load_config_default_missing_uses_builtin(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    cfg = load_config(None)
    assert cfg == AuditorConfig()
    assert cfg.fetch.max_retries == 3
    assert cfg.cache.ttl == 900


def test_load_config_reads_default_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "configs").mkdir()
    (tmp_path / "configs" / "default.yaml").write_text(
        "relays:\n  - 'http://only.example/?u='\nlimits: {max_links_to_check: 5}\n", encoding="utf-8"
    )
    cfg = load_config(None)
    assert cfg.relays[0].template == "http://only.example/?u="
    assert cfg.limits.max_links_to_check == 5


def test_explicit_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_unknown_key_rejected(tmp_path):
    cfg_path = write_file(tmp_path, "relays:\n  - http://r.example/\nbogus: 1\n", ".yaml")
    with pytest.raises(ValidationError):
        load_config(cfg_path)


def test_unsupported_suffix(tmp_path):
    cfg_path = write_file(tmp_path, "relays = []", ".toml")
    with pytest.raises(ValueError):
        load_config(cfg_path)


@pytest.mark.parametrize(
    "template,envelope",
    [
        ("https://api.allorigins.win/get?url=", "contents"),
        ("https://api.codetabs.com/v1/proxy?quest=", "data"),
        ("https://corsproxy.io/?", None),
    ],
)
def test_relay_envelope_inferred(template, envelope):
    assert RelayConfig.model_validate(template).envelope == envelope


def test_relay_explicit_envelope_wins():
    relay = RelayConfig(template="https://api.allorigins.win/raw?url=", envelope=None)
    assert relay.envelope is None


def test_relay_requires_http_prefix():
    with pytest.raises(ValidationError):
        RelayConfig.model_validate("ftp://relay.example/")


def test_cache_threshold_below_max():
    with pytest.raises(ValidationError):
        CacheSettings(max_entries=10, cleanup_threshold=10)


def test_headers_carry_user_agent():
    cfg = AuditorConfig(user_agent="Agent/1.0")
    assert cfg.headers["User-Agent"] == "Agent/1.0"
    assert "text/html" in cfg.headers["Accept"]


def test_shipped_default_config_is_valid():
    path = Path(__file__).resolve().parents[1] / "configs" / "default.yaml"
    cfg = load_config(path)
    assert len(cfg.relays) >= 3
    assert cfg.cache.cleanup_threshold == 40


def test_shipped_default_config_matches_builtin_defaults():
    path = Path(__file__).resolve().parents[1] / "configs" / "default.yaml"
    cfg = load_config(path)
    assert [r.template for r in cfg.relays] == DEFAULT_RELAYS
    assert [r.template for r in cfg.alternate_relays] == DEFAULT_ALTERNATE_RELAYS
    assert cfg == AuditorConfig()


@pytest.mark.parametrize(
    "content,suffix",
    [
        ("[]", ".json"),
        ("null", ".json"),
        ('"relays"', ".json"),
        ("- http://relay.example/?u=\n", ".yaml"),
        ("[]\n", ".yaml"),
    ],
)
def test_non_mapping_root_rejected(tmp_path, content, suffix):
    with pytest.raises(TypeError):
        load_config(write_file(tmp_path, content, suffix))


def test_empty_yaml_uses_defaults(tmp_path):
    cfg = load_config(write_file(tmp_path, "", ".yaml"))
    assert cfg == AuditorConfig()
