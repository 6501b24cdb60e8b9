from quotaprobe.probes.antigravity import AntigravityUsageProbe
from quotaprobe.probes.base import CLIBinaryProbe, LocalProcessProbe, ProbeKind, RemoteAPIProbe, UsageProbe
from quotaprobe.probes.claude import ClaudeUsageProbe
from quotaprobe.probes.codex import CodexUsageProbe
from quotaprobe.probes.copilot import CopilotUsageProbe
from quotaprobe.probes.gemini import GeminiUsageProbe

__all__ = [
    "AntigravityUsageProbe",
    "CLIBinaryProbe",
    "ClaudeUsageProbe",
    "CodexUsageProbe",
    "CopilotUsageProbe",
    "GeminiUsageProbe",
    "LocalProcessProbe",
    "ProbeKind",
    "RemoteAPIProbe",
    "UsageProbe",
]
