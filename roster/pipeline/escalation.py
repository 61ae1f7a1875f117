from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional

from ..errors import NetworkError


ANTI_BOT_MARKERS = [
    r"Just a moment\s*\.\.\.",
    r"Enable JavaScript and cookies to continue",
    r"__cf_chl_",  # Cloudflare challenge scripts
    r"captcha-delivery\.com",
    r"px-captcha",
]

# Client-rendered apps and widgets that hide the roster from a static fetch
JS_MARKERS = [
    r"data-reactroot",
    r"id=\"__next\"",
    r"id=\"__nuxt\"",
    r"ng-app",
    r"data-v-app",
    r"<noscript>[^<]*(enable|requires?) javascript",
    r"role=\"tablist\"",
    r"\bload[- ]more\b",
    r"facetwp",
]


@dataclass(frozen=True)
class EscalationDecision:
    escalate: bool
    reasons: List[str]


def detect_anti_bot(html: str | None) -> bool:
    if not html:
        return False
    for pat in ANTI_BOT_MARKERS:
        if re.search(pat, html, flags=re.IGNORECASE):
            return True
    return False


def detect_js_markers(html: str | None) -> list[str]:
    reasons: list[str] = []
    if not html:
        return reasons
    for pat in JS_MARKERS:
        if re.search(pat, html, flags=re.IGNORECASE):
            reasons.append(f"js:{pat}")
    return reasons


def decide_escalation(
    record_count: int,
    *,
    error: Optional[BaseException] = None,
    html: str | None = None,
    threshold: int = 5,
    enable_dynamic: bool = True,
) -> EscalationDecision:
    """Decide whether the static result should be retried with the browser.

    Escalates on a static error or fewer than ``threshold`` records. Markers
    found in the static HTML are reported as reasons only. Robots denial is
    never escalated.
    """
    reasons: List[str] = []
    if isinstance(error, NetworkError) and error.blocked_by_robots:
        return EscalationDecision(escalate=False, reasons=["blocked_by_robots"])
    if error is not None:
        reasons.append(f"static_error:{type(error).__name__}")
    elif record_count < threshold:
        reasons.append(f"records<{threshold} ({record_count})")
    if detect_anti_bot(html):
        reasons.append("anti-bot markers detected")
    reasons.extend(detect_js_markers(html))
    escalate = (error is not None or record_count < threshold) and enable_dynamic
    if not enable_dynamic and (error is not None or record_count < threshold):
        reasons.append("dynamic disabled")
    return EscalationDecision(escalate=escalate, reasons=reasons)
