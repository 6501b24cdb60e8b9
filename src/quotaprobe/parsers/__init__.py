from quotaprobe.parsers import antigravity, claude, codex, copilot, gemini

__all__ = ["antigravity", "claude", "codex", "copilot", "gemini"]
