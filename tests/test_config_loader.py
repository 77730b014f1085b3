from pathlib import Path

import pytest

from shared.config.config_loader import AppConfig, load_config


def test_bundled_config_loads():
    cfg_path = Path("config/config.yml")
    assert cfg_path.exists(), "示例配置缺失"

    cfg = load_config(str(cfg_path), load_env=False)
    assert isinstance(cfg, AppConfig)
    assert cfg.symbols[0] == "hk00700"
    assert cfg.signal.model == "t0"
    assert cfg.ledger.initial_capital == 1_000_000
    assert cfg.indicators.trailing_stop.period == 22


def test_load_config_expands_env(tmp_path, monkeypatch: pytest.MonkeyPatch):
    cfg_path = tmp_path / "config.yml"
    cfg_path.write_text("state:\n  backend: sqlite\n  path: ${STATE_DIR}/watch.sqlite\n", encoding="utf-8")
    monkeypatch.setenv("STATE_DIR", "/tmp/mw")
    cfg = load_config(str(cfg_path), load_env=False)
    assert cfg.state.path == "/tmp/mw/watch.sqlite"
    assert cfg.state.backend == "sqlite"


def test_load_config_reads_dotenv_without_overriding(tmp_path, monkeypatch: pytest.MonkeyPatch):
    cfg_path = tmp_path / "config.yml"
    cfg_path.write_text("quote:\n  base_url: ${QUOTE_URL}\n", encoding="utf-8")
    (tmp_path / ".env").write_text("QUOTE_URL=http://from-dotenv\n", encoding="utf-8")
    monkeypatch.delenv("QUOTE_URL", raising=False)
    cfg = load_config(str(cfg_path))
    assert cfg.quote.base_url == "http://from-dotenv"

    monkeypatch.setenv("QUOTE_URL", "http://from-env")
    cfg = load_config(str(cfg_path))
    assert cfg.quote.base_url == "http://from-env"


def test_load_config_missing_env_raises(tmp_path, monkeypatch: pytest.MonkeyPatch):
    cfg_path = tmp_path / "config.yml"
    cfg_path.write_text("quote:\n  base_url: ${NOPE_NOT_SET}\n", encoding="utf-8")
    monkeypatch.delenv("NOPE_NOT_SET", raising=False)
    with pytest.raises(ValueError) as exc:
        load_config(str(cfg_path), load_env=False)
    assert "Missing environment variable" in str(exc.value)


def test_unknown_keys_and_bad_values_are_reported(tmp_path):
    cfg_path = tmp_path / "config.yml"
    cfg_path.write_text("ledger:\n  initial_capitl: 10\n", encoding="utf-8")
    with pytest.raises(ValueError, match="unknown keys: ledger.initial_capitl"):
        load_config(str(cfg_path), load_env=False)

    cfg_path.write_text("quote:\n  poll_interval_secs: -1\n", encoding="utf-8")
    with pytest.raises(ValueError, match="invalid config values"):
        load_config(str(cfg_path), load_env=False)


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "absent.yml"))


def test_symbols_are_normalised(tmp_path):
    cfg_path = tmp_path / "config.yml"
    cfg_path.write_text("symbols: [SH600519, sh600519, '', USnvda]\n", encoding="utf-8")
    cfg = load_config(str(cfg_path), load_env=False)
    assert cfg.symbols == ["sh600519", "usnvda"]


def test_placeholder_default_used_only_when_unset(tmp_path, monkeypatch: pytest.MonkeyPatch):
    cfg_path = tmp_path / "config.yml"
    cfg_path.write_text("log_level: ${MW_LEVEL:-DEBUG}\n", encoding="utf-8")
    monkeypatch.delenv("MW_LEVEL", raising=False)
    assert load_config(str(cfg_path), load_env=False).log_level == "DEBUG"

    monkeypatch.setenv("MW_LEVEL", "WARNING")
    assert load_config(str(cfg_path), load_env=False).log_level == "WARNING"


def test_env_file_accepts_export_prefix(tmp_path, monkeypatch: pytest.MonkeyPatch):
    cfg_dir = tmp_path / "config"
    cfg_dir.mkdir()
    cfg_path = cfg_dir / "config.yml"
    cfg_path.write_text("quote:\n  base_url: ${MW_QUOTE_URL}\n", encoding="utf-8")
    (tmp_path / ".env.local").write_text("# local\nexport MW_QUOTE_URL='http://parent'\n", encoding="utf-8")
    monkeypatch.delenv("MW_QUOTE_URL", raising=False)
    assert load_config(str(cfg_path)).quote.base_url == "http://parent"


def test_broken_yaml_is_value_error(tmp_path):
    cfg_path = tmp_path / "config.yml"
    cfg_path.write_text("symbols: [sh600519\n", encoding="utf-8")
    with pytest.raises(ValueError, match="not valid YAML"):
        load_config(str(cfg_path), load_env=False)


def test_empty_file_gives_defaults(tmp_path):
    cfg_path = tmp_path / "config.yml"
    cfg_path.write_text("", encoding="utf-8")
    cfg = load_config(str(cfg_path), load_env=False)
    assert cfg.signal.model == "t0"
