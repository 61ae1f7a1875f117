"""
Dynamic Content Driver - render a team page in a headless browser

State machine, all steps on one page of a BrowserSession:

  Navigate -> DismissConsent -> RevealContent -> Stabilize -> Capture

RevealContent harvests the default state, then clicks every discovered
tab/filter control and harvests each state right after it settles, so that
rosters split across tabs are collected even when the final DOM only shows the
last one. Control waits never raise: a control that does not settle within
its timeout gets a grace wait and is counted in ``timed_out_controls``.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from ...config import DriverConfig
from ...errors import NetworkError, RenderTimeout
from ..extractors import clean_name, is_plausible_name


CONSENT_SELECTORS = [
    "#onetrust-accept-btn-handler",
    "#truste-consent-button",
    "#CybotCookiebotDialogBodyButtonAccept",
    "#CybotCookiebotDialogBodyLevelButtonLevelOptinAllowAll",
    "[data-didomi-accept-button]",
    "#didomi-notice-agree-button",
    ".qc-cmp2-summary-buttons .qc-cmp2-accept-all, .qc-cmp2-button.qc-cmp2-accept-all",
    'button:has-text("Accept all")',
    'button:has-text("I agree")',
    'button:has-text("Allow all")',
    'button:has-text("Got it")',
    'button[aria-label="Accept all"]',
]

# Tab, chip and filter controls that switch roster sections
CONTROL_SELECTOR = ", ".join([
    '[role="tablist"] [role="tab"]',
    '[role="tab"]',
    ".ink-chips button", ".ink-chips a",
    ".segmented-control button", ".segmented-control a",
    ".facetwp-facet button", '.facetwp-facet a[role="button"]',
    ".facetwp-facet .facetwp-radio", ".facetwp-facet .facetwp-checkbox",
    "[data-filter]",
    "button[aria-pressed]",
])

LOAD_MORE_SELECTOR = ", ".join([
    ".facetwp-load-more:not(.facetwp-hidden)",
    'button:has-text("Load more")', 'a:has-text("Load more")',
    'button:has-text("Show more")', 'a:has-text("Show more")',
    'button:has-text("View more")', 'a:has-text("View more")',
])

CARD_NAME_SELECTOR = ", ".join([
    '[itemprop="name"]',
    "h2.ink__title", "h3.ink__title",
    ".team-card h2", ".team-card h3", ".team-member h3", ".team-member h4",
    ".person-card h2", ".person-card h3", ".member-card h3",
    ".name", ".person-name", ".member-name",
    'a[href*="/people/"]', 'a[href*="/team/"]',
])

ACTIVE_CLASS_RE = r"\b(active|is-active|selected|current)\b"

_VISIBLE = """
const visible = (el) => {
  const cs = window.getComputedStyle(el);
  const r = el.getBoundingClientRect();
  return cs && cs.display !== 'none' && cs.visibility !== 'hidden'
    && r.width > 0 && r.height > 0 && el.offsetParent !== null;
};
"""

VISIBLE_NAMES_JS = "(sel) => {" + _VISIBLE + """
  const out = [];
  for (const el of document.querySelectorAll(sel)) {
    if (!visible(el)) continue;
    const t = ((el.innerText || '').trim().split('\\n')[0] || '').trim()
      || (el.getAttribute('aria-label') || '').trim()
      || (el.getAttribute('title') || '').trim();
    if (t) out.push(t);
  }
  return out;
}"""

NAMES_SIGNATURE_JS = "(sel) => {" + _VISIBLE + """
  return Array.from(document.querySelectorAll(sel)).filter(visible)
    .map(el => (el.innerText || '').trim()).filter(Boolean).join('|');
}"""

CONTROL_LABELS_JS = """([sel, cap]) => {
  const vals = [];
  for (const el of document.querySelectorAll(sel)) {
    const label = ((el.getAttribute('aria-label') || '').trim() || (el.innerText || '').trim()).slice(0, 80);
    if (label && !vals.includes(label)) vals.push(label);
  }
  return vals.slice(0, cap);
}"""

CLICK_CONTROL_JS = """([sel, label]) => {
  const el = Array.from(document.querySelectorAll(sel)).find(e =>
    ((e.getAttribute('aria-label') || '').trim() || (e.innerText || '').trim()).slice(0, 80) === label);
  if (!el) return false;
  el.scrollIntoView({block: 'center'});
  el.click();
  return true;
}"""

# One predicate: selected flag OR active class OR a changed names signature
STATE_SETTLED_JS = "([sel, label, reStr, nameSel, prev]) => {" + _VISIBLE + """
  const re = new RegExp(reStr, 'i');
  const el = Array.from(document.querySelectorAll(sel)).find(e =>
    ((e.getAttribute('aria-label') || '').trim() || (e.innerText || '').trim()).slice(0, 80) === label);
  if (el) {
    if (el.getAttribute('aria-selected') === 'true' || el.getAttribute('aria-pressed') === 'true') return true;
    if (re.test(typeof el.className === 'string' ? el.className : '')) return true;
  }
  const sig = Array.from(document.querySelectorAll(nameSel)).filter(visible)
    .map(e => (e.innerText || '').trim()).filter(Boolean).join('|');
  return !!sig && sig !== prev;
}"""

SCROLL_TO_BOTTOM_JS = "() => window.scrollTo(0, document.body ? document.body.scrollHeight : 0)"
DOCUMENT_HEIGHT_JS = "() => (document.scrollingElement || document.body || {}).scrollHeight || 0"


@dataclass
class RenderResult:
    url: str
    status_code: int
    final_html: str
    screenshot_path: Optional[str] = None
    state_html: List[str] = field(default_factory=list)
    harvested_names: List[str] = field(default_factory=list)
    controls_activated: int = 0
    scroll_cycles: int = 0
    timed_out_controls: int = 0


class BrowserSession:
    """One browser + context + page, scoped to a single target run.

    Acquired lazily on the first ``page()`` call and released in ``close()``,
    which ``__exit__`` runs on every exit path. Close errors are swallowed so
    the release never masks the error that ended the run.
    """

    def __init__(
        self,
        settings: Optional[DriverConfig] = None,
        *,
        playwright_factory: Callable = sync_playwright,
    ) -> None:
        self.settings = settings or DriverConfig()
        self._factory = playwright_factory
        self._pw = None
        self._browser = None
        self._context = None
        self._page: Optional[Page] = None
        self.closed = False

    @property
    def started(self) -> bool:
        return self._pw is not None

    def page(self) -> Page:
        if self.closed:
            raise RuntimeError("BrowserSession already closed")
        if self._page is None:
            s = self.settings
            self._pw = self._factory().start()
            # Sandbox stays enabled (no --no-sandbox)
            self._browser = self._pw.chromium.launch(
                headless=s.headless,
                args=[
                    "--disable-dev-shm-usage",
                    "--disable-gpu",
                    "--disable-extensions",
                    "--disable-plugins",
                    "--no-first-run",
                    "--disable-default-apps",
                    "--disable-background-timer-throttling",
                ],
            )
            self._context = self._browser.new_context(
                user_agent=s.user_agent,
                viewport={"width": s.viewport_width, "height": s.viewport_height},
            )
            self._page = self._context.new_page()
        return self._page

    def close(self) -> None:
        for closer in (
            getattr(self._context, "close", None),
            getattr(self._browser, "close", None),
            getattr(self._pw, "stop", None),
        ):
            if closer is None:
                continue
            try:
                closer()
            except Exception:
                pass
        self._page = self._context = self._browser = self._pw = None
        self.closed = True

    def __enter__(self) -> "BrowserSession":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class DynamicContentDriver:
    """Renders one team page and harvests every roster state it can reveal."""

    def __init__(self, settings: Optional[DriverConfig] = None, *,
                 clock: Callable[[], float] = time.monotonic) -> None:
        self.settings = settings or DriverConfig()
        self._clock = clock

    def render(self, url: str, *, session: BrowserSession, deadline: Optional[float] = None,
               screenshot_path: Optional[Path] = None) -> RenderResult:
        """Run the full state machine. ``deadline`` is an absolute ``clock()`` value."""
        page = session.page()
        status = self.navigate(page, url)
        result = RenderResult(url=url, status_code=status, final_html="")
        try:
            self._check_deadline(deadline, "consent")
            self.dismiss_consent(page)
            self._check_deadline(deadline, "reveal")
            self.reveal_content(page, result, deadline)
            self._check_deadline(deadline, "capture")
            self.capture(page, result, screenshot_path)
        except PlaywrightTimeoutError as e:
            raise RenderTimeout(f"render step timed out: {e}", step="render") from e
        except PlaywrightError as e:
            raise NetworkError(f"render failed: {e}", url=url) from e
        return result

    # steps
    def navigate(self, page: Page, url: str) -> int:
        s = self.settings
        try:
            resp = page.goto(url, wait_until="domcontentloaded", timeout=s.navigation_timeout_ms)
        except PlaywrightTimeoutError as e:
            raise RenderTimeout(f"navigation timed out after {s.navigation_timeout_ms}ms: {url}", step="navigate") from e
        except PlaywrightError as e:
            raise NetworkError(f"navigation failed: {e}", url=url) from e
        status = resp.status if resp is not None else 0
        if status >= 400:
            raise NetworkError(f"HTTP {status}", url=url, status_code=status)
        try:
            page.wait_for_load_state("networkidle", timeout=s.network_idle_timeout_ms)
        except PlaywrightError:
            pass
        return status

    def dismiss_consent(self, page: Page) -> bool:
        for sel in CONSENT_SELECTORS:
            try:
                btn = page.locator(sel).first
                if btn.is_visible():
                    btn.click(timeout=self.settings.consent_timeout_ms)
                    page.wait_for_timeout(300)
                    return True
            except PlaywrightError:
                continue
        return False

    def reveal_content(self, page: Page, result: RenderResult, deadline: Optional[float]) -> None:
        # default state first
        result.scroll_cycles += self.expand_within_state(page, deadline)
        self._harvest_state(page, result)

        for label in self.discover_controls(page):
            self._check_deadline(deadline, "controls")
            before = self.names_signature(page)
            if not self._click_control(page, label):
                continue
            result.controls_activated += 1
            if not self.wait_for_state_change(page, label, before):
                result.timed_out_controls += 1
            result.scroll_cycles += self.expand_within_state(page, deadline)
            self._harvest_state(page, result)

    def expand_within_state(self, page: Page, deadline: Optional[float]) -> int:
        """Click load-more and scroll until the document height is stable.

        A page that navigates or tears down its context mid-scroll ends the
        expansion; whatever was revealed so far is still harvested.
        """
        s = self.settings
        last_height = None
        same = 0
        cycles = 0
        for _ in range(s.max_scroll_iterations):
            self._check_deadline(deadline, "expand")
            clicked = self._click_load_more(page)
            try:
                page.evaluate(SCROLL_TO_BOTTOM_JS)
                page.wait_for_timeout(s.scroll_wait_ms)
                height = page.evaluate(DOCUMENT_HEIGHT_JS)
            except PlaywrightError as e:
                print(f"expansion stopped: {e}")
                break
            cycles += 1
            if not clicked and height == last_height:
                same += 1
                if same >= s.stable_cycles:
                    break
            else:
                same = 0
            last_height = height
        return cycles

    def discover_controls(self, page: Page) -> List[str]:
        try:
            labels = page.evaluate(CONTROL_LABELS_JS, [CONTROL_SELECTOR, self.settings.max_controls])
        except PlaywrightError:
            return []
        return [str(x) for x in (labels or [])]

    def wait_for_state_change(self, page: Page, label: str, before: str) -> bool:
        s = self.settings
        try:
            page.wait_for_function(
                STATE_SETTLED_JS,
                arg=[CONTROL_SELECTOR, label, ACTIVE_CLASS_RE, CARD_NAME_SELECTOR, before],
                timeout=s.control_timeout_ms,
            )
            return True
        except PlaywrightError:
            page.wait_for_timeout(s.grace_wait_ms)
            return False

    def names_signature(self, page: Page) -> str:
        try:
            return page.evaluate(NAMES_SIGNATURE_JS, CARD_NAME_SELECTOR) or ""
        except PlaywrightError:
            return ""

    def harvest_names(self, page: Page) -> List[str]:
        try:
            texts = page.evaluate(VISIBLE_NAMES_JS, CARD_NAME_SELECTOR) or []
        except PlaywrightError:
            return []
        out: List[str] = []
        for t in texts:
            name = clean_name(t)
            if name and is_plausible_name(name) and name not in out:
                out.append(name)
        return out

    def capture(self, page: Page, result: RenderResult, screenshot_path: Optional[Path]) -> None:
        try:
            result.final_html = page.content()
        except PlaywrightError:
            if not result.state_html:
                raise
            # page went away after the last harvest
            result.final_html = result.state_html[-1]
        if screenshot_path is None:
            return
        try:
            page.screenshot(path=str(screenshot_path), full_page=True)
            result.screenshot_path = str(screenshot_path)
        except PlaywrightError as e:
            print(f"screenshot failed (non-fatal): {e}")

    # helpers
    def _harvest_state(self, page: Page, result: RenderResult) -> None:
        for name in self.harvest_names(page):
            if name not in result.harvested_names:
                result.harvested_names.append(name)
        try:
            result.state_html.append(page.content())
        except PlaywrightError:
            pass

    def _click_control(self, page: Page, label: str) -> bool:
        try:
            return bool(page.evaluate(CLICK_CONTROL_JS, [CONTROL_SELECTOR, label]))
        except PlaywrightError:
            return False

    def _click_load_more(self, page: Page) -> bool:
        try:
            btn = page.locator(LOAD_MORE_SELECTOR).first
            if not btn.is_visible():
                return False
            btn.click(timeout=self.settings.control_timeout_ms)
        except PlaywrightError:
            return False
        try:
            page.wait_for_load_state("networkidle", timeout=2000)
        except PlaywrightError:
            pass
        return True

    def _check_deadline(self, deadline: Optional[float], step: str) -> None:
        if deadline is not None and self._clock() >= deadline:
            raise RenderTimeout(f"render budget exhausted during {step}", step=step)
