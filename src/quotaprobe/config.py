from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import glob
import tomllib
import tomli_w

from quotaprobe.models import ProviderName


HOME = Path.home()
CONFIG_PATH = HOME / ".config/quotaprobe/config.toml"

COMMON_BIN_DIRS = (
    "/usr/local/bin",
    "/opt/homebrew/bin",
    "{home}/.local/bin",
    "{home}/.bun/bin",
    "{home}/.npm-global/bin",
    "{home}/.nvm/versions/node/*/bin",
    "/usr/bin",
    "/bin",
)


@dataclass
class GeneralConfig:
    state_file: str = str(HOME / ".local/state/quotaprobe/latest.json")
    log_level: str = "WARNING"


@dataclass
class ProbeConfig:
    cli_timeout_seconds: float = 20.0
    http_timeout_seconds: float = 5.0
    settle_seconds: float = 0.4
    workdir: str = str(HOME / ".cache/quotaprobe/workdir")


@dataclass
class SearchSettings:
    extra_paths: list[str] = field(default_factory=list)


@dataclass
class CredentialsConfig:
    path: str = str(HOME / ".config/quotaprobe/credentials.toml")


@dataclass
class ProviderConfig:
    enabled: bool = True
    budget: float | None = None
    request_limit: int | None = None


@dataclass
class Config:
    general: GeneralConfig = field(default_factory=GeneralConfig)
    probes: ProbeConfig = field(default_factory=ProbeConfig)
    search: SearchSettings = field(default_factory=SearchSettings)
    credentials: CredentialsConfig = field(default_factory=CredentialsConfig)
    providers: dict[str, ProviderConfig] = field(
        default_factory=lambda: {name.value: ProviderConfig() for name in ProviderName}
    )


@dataclass(frozen=True)
class SearchConfig:
    """Explicit search-path environment handed to the locator and runner."""

    home: str
    inherited_path: str = ""
    extra_paths: tuple[str, ...] = ()

    @classmethod
    def from_environment(cls, env: dict[str, str], extra_paths: list[str] | tuple[str, ...] = ()) -> SearchConfig:
        return cls(
            home=env.get("HOME") or str(HOME),
            inherited_path=env.get("PATH", ""),
            extra_paths=tuple(extra_paths),
        )

    def directories(self) -> list[str]:
        dirs = list(self.extra_paths)
        for pattern in COMMON_BIN_DIRS:
            pattern = pattern.format(home=self.home)
            if "*" in pattern:
                dirs.extend(sorted(glob.glob(pattern), reverse=True))
            else:
                dirs.append(pattern)
        dirs.extend(p for p in self.inherited_path.split(":") if p)
        return list(dict.fromkeys(dirs))

    def effective_path(self) -> str:
        return ":".join(self.directories())


def _provider_from_dict(raw: dict) -> ProviderConfig:
    budget = raw.get("budget")
    limit = raw.get("request_limit")
    return ProviderConfig(
        enabled=bool(raw.get("enabled", True)),
        budget=float(budget) if budget is not None else None,
        request_limit=int(limit) if limit is not None else None,
    )


def _provider_to_dict(cfg: ProviderConfig) -> dict:
    out: dict[str, object] = {"enabled": cfg.enabled}
    if cfg.budget is not None:
        out["budget"] = cfg.budget
    if cfg.request_limit is not None:
        out["request_limit"] = cfg.request_limit
    return out


def load_config(path: Path = CONFIG_PATH) -> Config:
    if not path.exists():
        cfg = Config()
        save_config(cfg, path)
        return cfg

    raw = tomllib.loads(path.read_text())
    general_raw = raw.get("general", {})
    probes_raw = raw.get("probes", {})
    search_raw = raw.get("search", {})
    creds_raw = raw.get("credentials", {})
    providers_raw = raw.get("providers", {})

    defaults = Config()
    return Config(
        general=GeneralConfig(
            state_file=general_raw.get("state_file", defaults.general.state_file),
            log_level=str(general_raw.get("log_level", defaults.general.log_level)).upper(),
        ),
        probes=ProbeConfig(
            cli_timeout_seconds=float(probes_raw.get("cli_timeout_seconds", defaults.probes.cli_timeout_seconds)),
            http_timeout_seconds=float(probes_raw.get("http_timeout_seconds", defaults.probes.http_timeout_seconds)),
            settle_seconds=float(probes_raw.get("settle_seconds", defaults.probes.settle_seconds)),
            workdir=probes_raw.get("workdir", defaults.probes.workdir),
        ),
        search=SearchSettings(extra_paths=[str(p) for p in search_raw.get("extra_paths", [])]),
        credentials=CredentialsConfig(path=creds_raw.get("path", defaults.credentials.path)),
        providers={
            name.value: _provider_from_dict(providers_raw.get(name.value, {}))
            for name in ProviderName
        },
    )


def save_config(cfg: Config, path: Path = CONFIG_PATH) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "general": {
            "state_file": cfg.general.state_file,
            "log_level": cfg.general.log_level,
        },
        "probes": {
            "cli_timeout_seconds": cfg.probes.cli_timeout_seconds,
            "http_timeout_seconds": cfg.probes.http_timeout_seconds,
            "settle_seconds": cfg.probes.settle_seconds,
            "workdir": cfg.probes.workdir,
        },
        "search": {"extra_paths": list(cfg.search.extra_paths)},
        "credentials": {"path": cfg.credentials.path},
        "providers": {name: _provider_to_dict(pc) for name, pc in cfg.providers.items()},
    }
    path.write_text(tomli_w.dumps(payload))


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"not a boolean: {value}")


def set_config_value(cfg: Config, dotted_key: str, value: str) -> None:
    if dotted_key == "general.log_level":
        cfg.general.log_level = value.upper()
        return
    if dotted_key == "general.state_file":
        cfg.general.state_file = value
        return
    if dotted_key in {"probes.cli_timeout_seconds", "probes.http_timeout_seconds", "probes.settle_seconds"}:
        setattr(cfg.probes, dotted_key.split(".", 1)[1], float(value))
        return
    if dotted_key == "probes.workdir":
        cfg.probes.workdir = value
        return
    if dotted_key == "search.extra_paths":
        cfg.search.extra_paths = [p for p in value.split(":") if p]
        return
    if dotted_key == "credentials.path":
        cfg.credentials.path = value
        return

    keys = dotted_key.split(".")
    if len(keys) == 3 and keys[0] == "providers":
        provider, field_name = keys[1], keys[2]
        if provider not in cfg.providers:
            raise ValueError(f"unknown provider: {provider}")
        pc = cfg.providers[provider]
        if field_name == "enabled":
            pc.enabled = _parse_bool(value)
            return
        if field_name == "budget":
            pc.budget = float(value) if value else None
            return
        if field_name == "request_limit":
            pc.request_limit = int(value) if value else None
            return
    raise ValueError(f"unsupported key: {dotted_key}")


def search_config(cfg: Config, env: dict[str, str]) -> SearchConfig:
    return SearchConfig.from_environment(env, cfg.search.extra_paths)
