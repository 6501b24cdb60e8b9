from pathlib import Path
import tomllib

import pytest

from quotaprobe.config import (
    COMMON_BIN_DIRS,
    Config,
    SearchConfig,
    load_config,
    save_config,
    search_config,
    set_config_value,
)
from quotaprobe.models import ProviderName


def test_load_config_creates_defaults(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    cfg = load_config(path)

    assert path.exists()
    assert cfg.probes.cli_timeout_seconds == 20.0
    assert cfg.probes.settle_seconds == 0.4
    assert set(cfg.providers) == {name.value for name in ProviderName}


def test_config_round_trips_through_toml(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    cfg = Config()
    set_config_value(cfg, "general.log_level", "debug")
    set_config_value(cfg, "probes.http_timeout_seconds", "2.5")
    set_config_value(cfg, "search.extra_paths", "/opt/a:/opt/b")
    set_config_value(cfg, "providers.copilot.request_limit", "300")
    set_config_value(cfg, "providers.claude.budget", "25")
    set_config_value(cfg, "providers.gemini.enabled", "off")
    save_config(cfg, path)

    loaded = load_config(path)
    assert loaded.general.log_level == "DEBUG"
    assert loaded.probes.http_timeout_seconds == 2.5
    assert loaded.search.extra_paths == ["/opt/a", "/opt/b"]
    assert loaded.providers["copilot"].request_limit == 300
    assert loaded.providers["claude"].budget == 25.0
    assert loaded.providers["gemini"].enabled is False
    assert loaded.providers["codex"].enabled is True


@pytest.mark.parametrize(
    "key", ["general.nope", "general.refresh_seconds", "providers.unknown.enabled", "providers.claude.colour"]
)
def test_set_config_value_rejects_unknown_keys(key: str) -> None:
    with pytest.raises(ValueError):
        set_config_value(Config(), key, "1")


def test_set_config_value_rejects_bad_bool() -> None:
    with pytest.raises(ValueError):
        set_config_value(Config(), "providers.codex.enabled", "maybe")


def test_search_config_orders_extra_common_then_inherited(tmp_path: Path) -> None:
    search = SearchConfig(home=str(tmp_path), inherited_path="/custom/bin:/usr/bin", extra_paths=("/first",))
    dirs = search.directories()

    assert dirs[0] == "/first"
    assert dirs.index("/usr/local/bin") < dirs.index("/custom/bin")
    assert dirs.count("/usr/bin") == 1
    assert f"{tmp_path}/.local/bin" in dirs
    assert search.effective_path().split(":") == dirs


def test_search_config_expands_node_version_dirs(tmp_path: Path) -> None:
    for version in ("v18.0.0", "v20.1.0"):
        (tmp_path / ".nvm/versions/node" / version / "bin").mkdir(parents=True)
    dirs = SearchConfig(home=str(tmp_path)).directories()

    nvm = [d for d in dirs if "/.nvm/" in d]
    assert nvm == [
        f"{tmp_path}/.nvm/versions/node/v20.1.0/bin",
        f"{tmp_path}/.nvm/versions/node/v18.0.0/bin",
    ]
    assert not any("*" in d for d in dirs)
    assert any("*" in d for d in COMMON_BIN_DIRS)


def test_search_config_from_config_and_env() -> None:
    cfg = Config()
    cfg.search.extra_paths = ["/extra"]
    search = search_config(cfg, {"HOME": "/home/someone", "PATH": "/env/bin"})

    assert search.home == "/home/someone"
    assert search.extra_paths == ("/extra",)
    assert search.directories()[-1] == "/env/bin"


def test_saved_general_section_has_only_known_keys(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    save_config(Config(), path)

    general = tomllib.loads(path.read_text())["general"]
    assert set(general) == {"state_file", "log_level"}
