from __future__ import annotations

import argparse
import asyncio
from dataclasses import asdict
import json
import logging
import os
import platform

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from quotaprobe import __version__
from quotaprobe.config import CONFIG_PATH, Config, load_config, save_config, search_config, set_config_value
from quotaprobe.credentials import KNOWN_KEYS, FileCredentialStore
from quotaprobe.models import ProviderName, QuotaStatus, UsageQuota
from quotaprobe.monitor import QuotaMonitor
from quotaprobe.providers import Provider, build_providers
from quotaprobe.snapshot import snapshot_to_json, write_snapshot_file

LOG_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"

STATUS_COLORS = {
    QuotaStatus.HEALTHY: "green",
    QuotaStatus.WARNING: "yellow",
    QuotaStatus.CRITICAL: "red",
    QuotaStatus.DEPLETED: "bold red",
}

BORDER_COLORS = {
    QuotaStatus.HEALTHY: "#2be38f",
    QuotaStatus.WARNING: "#f2c94c",
    QuotaStatus.CRITICAL: "#ff5e6c",
    QuotaStatus.DEPLETED: "#ff5e6c",
}


def _cli_bar(quota: UsageQuota, width: int = 30) -> Text:
    pct = quota.percent_remaining
    filled = int(round((pct / 100.0) * width))
    color = STATUS_COLORS[quota.status]
    bar = Text()
    bar.append("━" * filled, style=f"bold {color}")
    bar.append("╌" * (width - filled), style="bright_black")
    bar.append(f"  {pct:5.1f}% left", style=f"bold {color}")
    return bar


def _render_panel(provider: Provider) -> Panel:
    table = Table.grid(padding=(0, 1), expand=True)
    table.add_column("label", no_wrap=True, style="bold bright_white", ratio=1)
    table.add_column("value", ratio=4)

    snap = provider.snapshot
    status = provider.status

    status_text = Text()
    if status is None:
        status_text.append("● NO DATA", style="bold bright_black")
    else:
        status_text.append(f"● {status.value.upper()}", style=f"bold {STATUS_COLORS[status]}")
    if snap is not None and snap.account_type is not None:
        status_text.append(f"    {snap.account_type.badge_text}", style="bold cyan")
    if snap is not None and snap.account_email:
        status_text.append(f"    {snap.account_email}", style="dim")
    table.add_row("Status", status_text)

    if snap is not None:
        for quota in snap.quotas:
            table.add_row("", Text())
            table.add_row(Text(quota.quota_type.display_name, style="bold cyan"), _cli_bar(quota))
            reset = quota.reset_description
            if reset:
                table.add_row(Text("  resets", style="dim"), Text(reset, style="bright_white"))

        cost = snap.cost_usage
        if cost is not None:
            table.add_row("", Text())
            cost_text = Text(cost.formatted_cost, style="bold bright_white")
            if cost.budget is not None:
                budget_status = cost.budget_status(cost.budget)
                cost_text.append(
                    f"  of ${cost.budget:,.2f} ({cost.budget_percent_used(cost.budget):.0f}%)",
                    style=STATUS_COLORS[budget_status.quota_status],
                )
            table.add_row(Text("Cost", style="bold blue"), cost_text)
            table.add_row(
                Text("Duration", style="bold blue"),
                Text(f"API {cost.formatted_api_duration}    wall {cost.formatted_wall_duration}", style="bright_white"),
            )
            table.add_row(
                Text("Changes", style="bold blue"),
                Text(f"+{cost.lines_added} / -{cost.lines_removed} lines", style="bright_white"),
            )

    if provider.last_error is not None:
        table.add_row("", Text())
        note = str(provider.last_error)
        if snap is not None:
            note += f"  (showing data from {snap.age_description()})"
        table.add_row(Text("Error", style="bold red"), Text(note, style="italic red"))

    border = BORDER_COLORS.get(status, "#7184d6") if provider.last_error is None else "#ff5e6c"
    return Panel(
        table,
        title=f"[bold bright_white] {provider.name.upper()} [/]",
        subtitle=f"[dim]updated {snap.age_description()}[/]" if snap else None,
        border_style=border,
        padding=(1, 2),
    )


def _configure_logging(cfg: Config, verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, cfg.general.log_level, logging.WARNING)
    logging.basicConfig(level=level, format=LOG_FORMAT)


async def _refresh(providers: list[Provider]) -> QuotaMonitor:
    monitor = QuotaMonitor(providers)
    await monitor.refresh_all()
    return monitor


async def _health(cfg: Config, providers: list[Provider]) -> dict:
    checks = await asyncio.gather(*(p.is_available() for p in providers))
    return {
        "config": str(CONFIG_PATH),
        "state_file": cfg.general.state_file,
        "credentials": cfg.credentials.path,
        "search_path": search_config(cfg, dict(os.environ)).directories(),
        "providers": {p.id: ok for p, ok in zip(providers, checks)},
        "platform": platform.platform(),
    }


def main() -> None:
    parser = argparse.ArgumentParser(prog="quotaprobe")
    parser.add_argument("-v", "--verbose", action="store_true", help="log at DEBUG level")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="cmd")

    panel = sub.add_parser("panel")
    panel.add_argument("--provider", choices=["all", *(n.value for n in ProviderName)], default="all")

    sub.add_parser("snapshot")
    sub.add_parser("health")

    config = sub.add_parser("config")
    config_sub = config.add_subparsers(dest="config_cmd")
    config_sub.add_parser("show")
    config_set = config_sub.add_parser("set")
    config_set.add_argument("key")
    config_set.add_argument("value")

    creds = sub.add_parser("credentials")
    creds_sub = creds.add_subparsers(dest="creds_cmd")
    creds_set = creds_sub.add_parser("set")
    creds_set.add_argument("key", choices=KNOWN_KEYS)
    creds_set.add_argument("value")
    creds_delete = creds_sub.add_parser("delete")
    creds_delete.add_argument("key", choices=KNOWN_KEYS)

    args = parser.parse_args()
    cfg = load_config()
    _configure_logging(cfg, args.verbose)

    cmd = args.cmd or "panel"
    console = Console()

    if cmd == "panel":
        providers = build_providers(cfg)
        if getattr(args, "provider", "all") != "all":
            providers = [p for p in providers if p.id == args.provider]
        asyncio.run(_refresh(providers))
        for p in providers:
            console.print(_render_panel(p))
        return

    if cmd == "snapshot":
        monitor = asyncio.run(_refresh(build_providers(cfg)))
        snapshots = monitor.snapshots()
        write_snapshot_file(cfg.general.state_file, snapshots)
        print(snapshot_to_json(snapshots))
        return

    if cmd == "health":
        print(json.dumps(asyncio.run(_health(cfg, build_providers(cfg))), indent=2))
        return

    if cmd == "config":
        if args.config_cmd == "show":
            print(json.dumps(asdict(cfg), indent=2, default=str))
            return
        if args.config_cmd == "set":
            try:
                set_config_value(cfg, args.key, args.value)
            except ValueError as exc:
                parser.error(str(exc))
            save_config(cfg)
            print(f"updated {args.key}")
            return
        parser.error("config requires show or set")

    if cmd == "credentials":
        store = FileCredentialStore(cfg.credentials.path)
        if args.creds_cmd == "set":
            store.save(args.value, args.key)
            print(f"stored {args.key}")
            return
        if args.creds_cmd == "delete":
            store.delete(args.key)
            print(f"deleted {args.key}")
            return
        parser.error("credentials requires set or delete")

    parser.error("unknown command")


if __name__ == "__main__":
    main()
