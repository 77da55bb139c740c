"""Prompt usage telemetry: one JSON line per LLM round on stderr."""

import json
import sys


def log_event(name: str, data: dict | None = None) -> None:
    print(f"[RF] telemetry {name} {json.dumps(data or {}, sort_keys=True)}", file=sys.stderr)


def log_prompt_usage(
    template: str,
    input_chars: int,
    output_chars: int = 0,
    latency_ms: int = 0,
    parse_ok: bool = True,
    repair_attempts: int = 0,
) -> None:
    """Record one analysis/refinement call, tagged with the configured prompt version."""
    from reqforge.config import get_config

    config = get_config()
    log_event("prompt_usage", {
        "template": template,
        "version": str(config.get("prompt_version", "")),
        "mode": config.get("prompt_mode", "stable"),
        "input_chars": input_chars,
        "output_chars": output_chars,
        "latency_ms": latency_ms,
        "parse_ok": parse_ok,
        "repair_attempts": repair_attempts,
    })
