import base64
import json
import time
from decimal import Decimal
from pathlib import Path
from types import MappingProxyType

import httpx
import pytest

from quotaprobe.credentials import GITHUB_TOKEN, GITHUB_USERNAME, MemoryCredentialStore
from quotaprobe.discovery import LocalProcessDiscovery
from quotaprobe.errors import (
    AuthenticationRequired,
    BinaryNotFound,
    CLINotFound,
    ExecutionFailed,
    LaunchFailed,
    ParseFailed,
    TimedOut,
)
from quotaprobe.models import ClaudeAccountType, QuotaType
from quotaprobe.probes import (
    AntigravityUsageProbe,
    ClaudeUsageProbe,
    CodexUsageProbe,
    CopilotUsageProbe,
    GeminiUsageProbe,
    ProbeKind,
)
from quotaprobe.runner import RunResult

COPILOT_USAGE = {
    "timePeriod": {"year": 2026, "month": 3},
    "user": "octocat",
    "usageItems": [{"product": "Copilot", "sku": "Copilot Premium Request", "grossQuantity": 500}],
}


def _copilot(handler, store=None) -> CopilotUsageProbe:
    store = store or MemoryCredentialStore({GITHUB_TOKEN: "ghp_x", GITHUB_USERNAME: "octocat"})
    return CopilotUsageProbe(store, transport=httpx.MockTransport(handler))


# Remote API: Copilot


@pytest.mark.asyncio
async def test_copilot_probe_success_sends_github_headers() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        return httpx.Response(200, json=COPILOT_USAGE)

    snap = await _copilot(handler).probe()

    assert seen["url"] == "https://api.github.com/users/octocat/settings/billing/premium_request/usage"
    assert seen["headers"]["authorization"] == "Bearer ghp_x"
    assert seen["headers"]["x-github-api-version"] == "2022-11-28"
    assert snap.quotas[0].percent_remaining == 75.0
    assert snap.quotas[0].reset_text == "500/2000 requests"
    assert snap.account_email == "octocat"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("response", "error"),
    [
        (httpx.Response(401, json={"message": "Bad credentials"}), AuthenticationRequired),
        (httpx.Response(403, json={"message": "Forbidden"}), ExecutionFailed),
        (httpx.Response(200, content=b"<html>not json</html>"), ParseFailed),
    ],
)
async def test_copilot_http_failures(response: httpx.Response, error: type) -> None:
    with pytest.raises(error):
        await _copilot(lambda request: response).probe()


@pytest.mark.asyncio
async def test_forbidden_keeps_status_code_and_is_retryable() -> None:
    with pytest.raises(ExecutionFailed) as excinfo:
        await _copilot(lambda request: httpx.Response(403)).probe()
    assert excinfo.value.status_code == 403
    assert excinfo.value.retryable


@pytest.mark.asyncio
async def test_unauthorized_is_not_retryable() -> None:
    with pytest.raises(AuthenticationRequired) as excinfo:
        await _copilot(lambda request: httpx.Response(401)).probe()
    assert not excinfo.value.retryable


@pytest.mark.asyncio
async def test_copilot_transport_error_is_execution_failed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("network down", request=request)

    with pytest.raises(ExecutionFailed):
        await _copilot(handler).probe()


@pytest.mark.asyncio
async def test_copilot_credentials() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    no_token = _copilot(handler, MemoryCredentialStore({GITHUB_USERNAME: "octocat"}))
    with pytest.raises(AuthenticationRequired):
        await no_token.probe()
    assert await no_token.is_available() is False

    no_user = _copilot(handler, MemoryCredentialStore({GITHUB_TOKEN: "ghp_x"}))
    with pytest.raises(ExecutionFailed):
        await no_user.probe()
    assert await no_user.is_available() is False

    complete = _copilot(handler)
    assert complete.kind is ProbeKind.REMOTE_API
    assert [await complete.is_available() for _ in range(3)] == [True, True, True]


# Remote API: Gemini


def _id_token(claims: dict) -> str:
    body = base64.urlsafe_b64encode(json.dumps(claims).encode()).decode().rstrip("=")
    return f"header.{body}.signature"


def _write_creds(path: Path, **overrides) -> Path:
    creds = {
        "access_token": "ya29.token",
        "expiry_date": int((time.time() + 3600) * 1000),
        "id_token": _id_token({"email": "me@example.com"}),
    }
    creds.update(overrides)
    path.write_text(json.dumps(creds))
    return path


@pytest.mark.asyncio
async def test_gemini_probe_discovers_project(tmp_path: Path) -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append((request.method, request.url.host))
        assert request.headers["authorization"] == "Bearer ya29.token"
        if request.url.host == "cloudresourcemanager.googleapis.com":
            return httpx.Response(200, json={"projects": [{"projectId": "gen-lang-client-42"}]})
        assert json.loads(request.content) == {"project": "gen-lang-client-42"}
        return httpx.Response(200, json={"buckets": [{"modelId": "gemini-2.5-pro", "remainingFraction": 0.75}]})

    probe = GeminiUsageProbe(_write_creds(tmp_path / "oauth.json"), environ={}, transport=httpx.MockTransport(handler))
    snap = await probe.probe()

    assert calls == [("GET", "cloudresourcemanager.googleapis.com"), ("POST", "cloudcode-pa.googleapis.com")]
    assert snap.quotas[0].percent_remaining == 75.0
    assert snap.account_email == "me@example.com"


@pytest.mark.asyncio
async def test_gemini_probe_uses_configured_project(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert json.loads(request.content) == {"project": "pinned"}
        return httpx.Response(200, json={"buckets": [{"modelId": "m", "remainingFraction": 0.5}]})

    probe = GeminiUsageProbe(
        _write_creds(tmp_path / "oauth.json"),
        environ={"GOOGLE_CLOUD_PROJECT": "pinned"},
        transport=httpx.MockTransport(handler),
    )
    assert (await probe.probe()).quotas[0].percent_remaining == 50.0


@pytest.mark.asyncio
async def test_gemini_credentials_problems(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    missing = GeminiUsageProbe(tmp_path / "absent.json", environ={}, transport=httpx.MockTransport(handler))
    with pytest.raises(AuthenticationRequired):
        await missing.probe()
    assert await missing.is_available() is False

    expired_path = _write_creds(tmp_path / "expired.json", expiry_date=1000)
    expired = GeminiUsageProbe(expired_path, environ={}, transport=httpx.MockTransport(handler))
    with pytest.raises(AuthenticationRequired):
        await expired.probe()
    assert await expired.is_available() is False


@pytest.mark.asyncio
async def test_gemini_without_usable_project(tmp_path: Path) -> None:
    probe = GeminiUsageProbe(
        _write_creds(tmp_path / "oauth.json"),
        environ={},
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"projects": []})),
    )
    with pytest.raises(ExecutionFailed):
        await probe.probe()


# Local process: Antigravity

PS_LISTING = "4242 /opt/ag/language_server_linux_x64 --csrf_token tok-1 --extension_server_port 53001 --ide antigravity\n"
LSOF_LISTING = "language_ 4242 u 12u IPv4 1 0t0 TCP 127.0.0.1:42100 (LISTEN)\n"
USER_STATUS = {
    "userStatus": {
        "email": "dev@example.com",
        "cascadeModelConfigData": {
            "clientModelConfigs": [{"label": "Gemini 3 Pro", "quotaInfo": {"remainingFraction": 0.8}}]
        },
    }
}


def _discovery(outputs: dict[str, str]) -> LocalProcessDiscovery:
    return LocalProcessDiscovery(lambda argv: outputs.get(argv[0], ""))


@pytest.mark.asyncio
async def test_antigravity_probe_over_https() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=USER_STATUS)

    probe = AntigravityUsageProbe(
        _discovery({"ps": PS_LISTING, "lsof": LSOF_LISTING}), transport=httpx.MockTransport(handler)
    )
    snap = await probe.probe()

    request = seen[0]
    assert str(request.url) == "https://127.0.0.1:42100/exa.language_server_pb.LanguageServerService/GetUserStatus"
    assert request.headers["x-codeium-csrf-token"] == "tok-1"
    assert request.headers["connect-protocol-version"] == "1"
    assert json.loads(request.content)["metadata"]["ideName"] == "antigravity"
    assert snap.quotas[0].quota_type == QuotaType.model_specific("Gemini 3 Pro")
    assert snap.quotas[0].percent_remaining == 80.0
    assert snap.account_email == "dev@example.com"


@pytest.mark.asyncio
async def test_antigravity_falls_back_to_http_extension_port() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        if request.url.scheme == "https":
            raise httpx.ConnectError("tls handshake failed", request=request)
        if request.url.path.endswith("GetUserStatus"):
            return httpx.Response(200, content=b"null")
        return httpx.Response(200, json={"clientModelConfigs": USER_STATUS["userStatus"]["cascadeModelConfigData"]["clientModelConfigs"]})

    probe = AntigravityUsageProbe(
        _discovery({"ps": PS_LISTING, "lsof": LSOF_LISTING}), transport=httpx.MockTransport(handler)
    )
    snap = await probe.probe()

    assert seen[-1] == "http://127.0.0.1:53001/exa.language_server_pb.LanguageServerService/GetCommandModelConfigs"
    assert snap.quotas[0].percent_remaining == 80.0


@pytest.mark.asyncio
async def test_antigravity_without_listening_ports_uses_extension_port() -> None:
    probe = AntigravityUsageProbe(
        _discovery({"ps": PS_LISTING}), transport=httpx.MockTransport(lambda r: httpx.Response(200, json=USER_STATUS))
    )
    assert (await probe.probe()).quotas[0].percent_remaining == 80.0


@pytest.mark.asyncio
async def test_antigravity_rejected_token() -> None:
    probe = AntigravityUsageProbe(
        _discovery({"ps": PS_LISTING, "lsof": LSOF_LISTING}),
        transport=httpx.MockTransport(lambda r: httpx.Response(401)),
    )
    with pytest.raises(AuthenticationRequired):
        await probe.probe()


@pytest.mark.asyncio
async def test_antigravity_unreachable_endpoints() -> None:
    probe = AntigravityUsageProbe(
        _discovery({"ps": PS_LISTING, "lsof": LSOF_LISTING}),
        transport=httpx.MockTransport(lambda r: httpx.Response(404)),
    )
    with pytest.raises(CLINotFound):
        await probe.probe()


@pytest.mark.asyncio
async def test_no_matching_process() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    probe = AntigravityUsageProbe(_discovery({"ps": "1 /sbin/init\n"}), transport=httpx.MockTransport(handler))

    with pytest.raises(CLINotFound):
        await probe.probe()
    assert await probe.is_available() is False
    assert await probe.is_available() is False


# CLI binaries


class FakeRunner:
    def __init__(self, outputs: dict[str, object], exit_code: int = 0) -> None:
        self.outputs = outputs
        self.exit_code = exit_code
        self.calls = []

    def resolve_binary(self, binary: str) -> str:
        if "missing" in self.outputs:
            raise BinaryNotFound(binary)
        return f"/usr/local/bin/{binary}"

    def run(self, binary, input_text, options):
        self.calls.append((binary, input_text, options))
        out = self.outputs.get(input_text, self.outputs.get("missing"))
        if isinstance(out, Exception):
            raise out
        return RunResult(output=out, exit_code=self.exit_code)


@pytest.mark.asyncio
async def test_codex_probe_runs_status(tmp_path: Path) -> None:
    runner = FakeRunner({"/status": "5h limit: [██] 70% left\nWeekly limit: [█] 20% left\n"})
    probe = CodexUsageProbe(runner, timeout=7.0, workdir=str(tmp_path / "work"))
    snap = await probe.probe()

    binary, input_text, options = runner.calls[0]
    assert (binary, input_text) == ("codex", "/status")
    assert options.timeout == 7.0
    assert options.arguments == ["-s", "read-only", "-a", "untrusted"]
    assert "Press Enter to continue" in options.auto_responses
    assert (tmp_path / "work").is_dir()
    assert [q.percent_remaining for q in snap.quotas] == [70.0, 20.0]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("failure", "error"),
    [
        (BinaryNotFound("codex"), CLINotFound),
        (TimedOut(), ExecutionFailed),
        (LaunchFailed("boom"), ExecutionFailed),
    ],
)
async def test_cli_runner_errors_are_translated(failure: Exception, error: type) -> None:
    with pytest.raises(error) as excinfo:
        await CodexUsageProbe(FakeRunner({"/status": failure})).probe()
    assert excinfo.value.__cause__ is failure


@pytest.mark.asyncio
async def test_cli_nonzero_exit_without_usable_output() -> None:
    with pytest.raises(ExecutionFailed):
        await CodexUsageProbe(FakeRunner({"/status": "segfault"}, exit_code=2)).probe()
    with pytest.raises(ParseFailed):
        await CodexUsageProbe(FakeRunner({"/status": "garbage"})).probe()


@pytest.mark.asyncio
async def test_cli_is_available() -> None:
    assert await CodexUsageProbe(FakeRunner({})).is_available() is True
    assert await CodexUsageProbe(FakeRunner({"missing": BinaryNotFound("codex")})).is_available() is False


@pytest.mark.asyncio
async def test_claude_subscription_usage() -> None:
    runner = FakeRunner({"/usage": "Claude Pro\nCurrent session\n 30% used\n"})
    snap = await ClaudeUsageProbe(runner).probe()

    assert [c[1] for c in runner.calls] == ["/usage"]
    assert snap.account_type is ClaudeAccountType.PRO
    assert snap.quotas[0].percent_remaining == 70.0
    assert "Do you trust the files in this folder?" in runner.calls[0][2].auto_responses


@pytest.mark.asyncio
async def test_claude_api_account_reads_cost() -> None:
    runner = FakeRunner(
        {
            "/usage": "/usage is only available for subscription plans.",
            "/cost": "Total cost: $7.50\nTotal duration (API): 2m 3s\n",
        }
    )
    snap = await ClaudeUsageProbe(runner, budget=Decimal("10")).probe()

    assert [c[1] for c in runner.calls] == ["/usage", "/cost"]
    assert snap.account_type is ClaudeAccountType.API
    assert snap.cost_usage.total_cost == Decimal("7.50")
    assert snap.cost_usage.budget == Decimal("10")
    assert snap.cost_usage.budget_percent_used(snap.cost_usage.budget) == 75.0


def test_class_level_defaults_are_read_only() -> None:
    for mapping in (
        ClaudeUsageProbe.auto_responses,
        CodexUsageProbe.auto_responses,
        AntigravityUsageProbe.payload,
        AntigravityUsageProbe.extra_headers,
    ):
        assert isinstance(mapping, MappingProxyType)
        with pytest.raises(TypeError):
            mapping["injected"] = "x"


def test_local_process_instances_do_not_share_payload() -> None:
    first = AntigravityUsageProbe(_discovery({}))
    second = AntigravityUsageProbe(_discovery({}))

    first.payload["metadata"]["ideName"] = "changed"

    assert second.payload["metadata"]["ideName"] == "antigravity"
    assert AntigravityUsageProbe.payload["metadata"]["ideName"] == "antigravity"
    assert isinstance(second.payload, dict)
