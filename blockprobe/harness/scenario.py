"""Block directory install scenario: search, install, verify, diff assets."""

from __future__ import annotations

import asyncio
import base64
import contextlib
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from blockprobe.browser.assets import (
    ASSET_KIND_SCRIPT,
    ASSET_KIND_STYLE,
    AssetDescriptor,
    AssetSnapshot,
    diff_assets,
)
from blockprobe.browser.network_idle import NetworkActivityMonitor
from blockprobe.browser.page_errors import PageErrorObserver, PageErrorRecord
from blockprobe.browser.responses import BLOCK_DIRECTORY_SEARCH_PATH, ResponseCorrelator, ResponseMatcher
from blockprobe.ci.outputs import OutputChannel
from blockprobe.config import ScenarioConfig
from blockprobe.contracts import (
    ASSET_REPORT_SCHEMA_V1,
    OUTPUT_BLOCKS,
    OUTPUT_ERROR,
    OUTPUT_FAILURE,
    OUTPUT_SCREENSHOT_BLOCK,
    OUTPUT_SCREENSHOT_SEARCH_RESULTS,
    OUTPUT_SCRIPTS,
    OUTPUT_STYLES,
    OUTPUT_SUCCESS,
    SCENARIO_RESULT_SCHEMA_V1,
)
from blockprobe.errors import AssertionFailure, PageRuntimeError
from blockprobe.failures import classify_failure
from blockprobe.harness.checks import CheckAggregator, CheckResult, require

logger = logging.getLogger("blockprobe.harness.scenario")

SEARCH_RESULTS_SELECTOR = ".block-directory-downloadable-blocks-list"
INSTALL_BUTTON_SELECTOR = f"{SEARCH_RESULTS_SELECTOR} li:first-child button"
ERROR_NOTICE_SELECTOR = (
    ".block-directory-downloadable-block-notice.is-error "
    ".block-directory-downloadable-block-notice__content"
)
INSERTED_BLOCK_SELECTOR = '.is-root-container .wp-block:not([data-type^="core/"])'
NOTICE_TEXT_JS = "(selector) => { const el = document.querySelector(selector); return el ? el.innerText : null; }"


class ScenarioState(str, Enum):
    INIT = "init"
    SEARCHING = "searching"
    AWAITING_SEARCH_RESPONSE = "awaiting_search_response"
    INSTALLING = "installing"
    AWAITING_INSTALL_SETTLED = "awaiting_install_settled"
    VERIFYING_INSTALL = "verifying_install"
    DONE = "done"
    FAILED = "failed"


class EditorDriver(Protocol):
    """Editor UI primitives the scenario consumes."""

    async def create_new_post(self) -> None: ...

    async def remove_all_blocks(self) -> None: ...

    async def search_for_block(self, term: str) -> None: ...

    async def get_third_party_blocks(self) -> list[dict[str, Any]]: ...

    async def get_all_loaded_scripts(self) -> list[dict[str, Any]]: ...

    async def get_all_loaded_styles(self) -> list[dict[str, Any]]: ...


@dataclass
class ScenarioContext:
    """Mutable state for one scenario run, shared by its steps."""

    page_error: PageErrorRecord = field(default_factory=PageErrorRecord)
    checks: CheckAggregator = field(default_factory=CheckAggregator)
    state: ScenarioState = ScenarioState.INIT
    history: list[ScenarioState] = field(default_factory=list)
    fresh_scripts: AssetSnapshot | None = None
    fresh_styles: AssetSnapshot | None = None
    baseline_block_count: int = 0
    search_results: Any = None
    blocks: list[dict[str, Any]] = field(default_factory=list)
    script_diff: list[AssetDescriptor] | None = None
    style_diff: list[AssetDescriptor] | None = None


@dataclass
class ScenarioResult:
    success: bool
    error: str
    state: ScenarioState
    history: list[ScenarioState]
    checks: list[CheckResult]
    search_results: Any = None
    script_diff: list[AssetDescriptor] | None = None
    style_diff: list[AssetDescriptor] | None = None
    blocks: list[dict[str, Any]] = field(default_factory=list)
    failure: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": SCENARIO_RESULT_SCHEMA_V1,
            "success": self.success,
            "error": self.error,
            "state": self.state.value,
            "history": [state.value for state in self.history],
            "checks": [check.to_dict() for check in self.checks],
            "search_results": self.search_results,
            "scripts": _descriptors(self.script_diff),
            "styles": _descriptors(self.style_diff),
            "blocks": self.blocks,
            "failure": self.failure,
        }


@dataclass
class AssetReport:
    script_diff: list[AssetDescriptor]
    style_diff: list[AssetDescriptor]
    blocks: list[dict[str, Any]]
    checks: list[CheckResult]

    @property
    def passed(self) -> bool:
        return all(check.passed for check in self.checks)

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": ASSET_REPORT_SCHEMA_V1,
            "scripts": _descriptors(self.script_diff),
            "styles": _descriptors(self.style_diff),
            "blocks": self.blocks,
            "checks": [check.to_dict() for check in self.checks],
        }


def _descriptors(assets: list[AssetDescriptor] | None) -> list[dict[str, Any]] | None:
    if assets is None:
        return None
    return [asset.to_dict() for asset in assets]


class InstallationScenario:
    """
    Search the block directory, install the single match, verify it.

    States run Init -> Searching -> AwaitingSearchResponse -> Installing ->
    AwaitingInstallSettled -> VerifyingInstall -> Done, or Failed from any
    of them. On failure the outputs are published before the exception is
    re-raised.
    """

    def __init__(
        self,
        page: Any,
        editor: EditorDriver,
        outputs: OutputChannel,
        config: ScenarioConfig,
        context: ScenarioContext | None = None,
        monitor: NetworkActivityMonitor | None = None,
        correlator: ResponseCorrelator | None = None,
    ) -> None:
        self.page = page
        self.editor = editor
        self.outputs = outputs
        self.config = config
        self.context = context or ScenarioContext()
        self.monitor = monitor or NetworkActivityMonitor(page, quiescence_ms=config.quiescence_ms)
        self.correlator = correlator or ResponseCorrelator(page, default_timeout_ms=config.default_timeout_ms)
        self._error_observer = PageErrorObserver(page, self.context.page_error)
        self.last_result: ScenarioResult | None = None

    def attach(self) -> None:
        """Start observing page traffic and errors. Call before the page loads."""
        self.monitor.attach()
        self._error_observer.attach()

    def detach(self) -> None:
        self.correlator.close()
        self.monitor.detach()
        self._error_observer.detach()

    async def prepare_iteration(self) -> None:
        """Open a fresh, empty post."""
        await self.editor.create_new_post()
        await self.editor.remove_all_blocks()

    def _transition(self, state: ScenarioState) -> None:
        logger.info("Scenario state %s -> %s", self.context.state.value, state.value)
        self.context.state = state
        self.context.history.append(state)

    async def _snapshot(self, kind: str) -> AssetSnapshot:
        if kind == ASSET_KIND_SCRIPT:
            records = await self.editor.get_all_loaded_scripts()
        else:
            records = await self.editor.get_all_loaded_styles()
        return AssetSnapshot.from_records(kind, records)

    async def run_install(self) -> ScenarioResult:
        """Run one install iteration and publish its outputs."""
        ctx = self.context
        ctx.state = ScenarioState.INIT
        ctx.history = [ScenarioState.INIT]
        ctx.checks.reset()
        ctx.search_results = None
        ctx.blocks = []
        ctx.script_diff = None
        ctx.style_diff = None
        self.last_result = None

        try:
            await self._start()
            body = await self._search()
            self._check_search_results(body)
            await self._install()
            await self._await_install_settled()
            await self._verify_install()
            return await self._finish()
        except Exception as exc:
            await self._fail(exc)
            raise

    async def _start(self) -> None:
        ctx = self.context
        ctx.page_error.clear()
        ctx.fresh_scripts = await self._snapshot(ASSET_KIND_SCRIPT)
        ctx.fresh_styles = await self._snapshot(ASSET_KIND_STYLE)
        ctx.baseline_block_count = len(await self.editor.get_third_party_blocks())
        logger.info(
            "Captured %d scripts, %d styles, %d third-party blocks before install",
            len(ctx.fresh_scripts),
            len(ctx.fresh_styles),
            ctx.baseline_block_count,
        )
        self._transition(ScenarioState.SEARCHING)

    async def _search(self) -> Any:
        matcher = ResponseMatcher(BLOCK_DIRECTORY_SEARCH_PATH, method="GET", status=200)

        async def _trigger_search() -> None:
            self._transition(ScenarioState.AWAITING_SEARCH_RESPONSE)
            await self.editor.search_for_block(self.config.search_term)

        response = await self.correlator.await_response(
            matcher,
            _trigger_search,
            timeout_ms=self.config.default_timeout_ms,
        )
        self.context.search_results = response.body
        return response.body

    def _check_search_results(self, body: Any) -> None:
        term = self.config.search_term
        checks = self.context.checks
        count = len(body) if isinstance(body, list) else None

        step_results = [
            checks.run_check(
                lambda: require(count is not None, f"expected a list, got {type(body).__name__}"),
                f'The search result for "{term}" isn\'t an array.',
            ),
            checks.run_check(
                lambda: require(count is not None and count < 2, f"expected fewer than 2 results, got {count}"),
                f'We found multiple blocks for "{term}".',
            ),
            checks.run_check(
                lambda: require(count == 1, f"expected exactly 1 result, got {count}"),
                f'We found no matching blocks for "{term}" in the directory.',
            ),
        ]

        # Multiple matches still leave a first result to install.
        if not count:
            failed = next(result for result in step_results if not result.passed)
            raise AssertionFailure(failed.message)
        self._transition(ScenarioState.INSTALLING)

    async def _install(self) -> None:
        await self.page.wait_for_selector(INSTALL_BUTTON_SELECTOR, timeout=self.config.default_timeout_ms)
        await self._publish_screenshot(OUTPUT_SCREENSHOT_SEARCH_RESULTS, SEARCH_RESULTS_SELECTOR)
        logger.info("Installing first search result for %s", self.config.search_term)
        await self.page.click(INSTALL_BUTTON_SELECTOR)
        self._transition(ScenarioState.AWAITING_INSTALL_SETTLED)

    async def _watch_busy_indicator(self) -> None:
        # Workaround: some install paths never render the busy state, so a
        # missed transition is logged and not treated as a failure.
        grace = self.config.busy_grace_ms
        try:
            await self.page.wait_for_selector(f"{INSTALL_BUTTON_SELECTOR}.is-busy", timeout=grace)
            await self.page.wait_for_selector(f"{INSTALL_BUTTON_SELECTOR}:not(.is-busy)", timeout=grace)
        except (PlaywrightTimeoutError, asyncio.TimeoutError) as exc:
            logger.warning("Install button busy transition not observed: %s", exc)

    async def _await_install_settled(self) -> None:
        indicator = asyncio.create_task(self._watch_busy_indicator())
        try:
            await self.monitor.wait_for_idle(self.config.network_idle_mode, self.config.default_timeout_ms)
            await indicator
        finally:
            if not indicator.done():
                indicator.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await indicator
            elif not indicator.cancelled() and indicator.exception() is not None:
                logger.warning("Busy indicator watch failed: %s", indicator.exception())
        self._transition(ScenarioState.VERIFYING_INSTALL)

    async def _verify_install(self) -> None:
        ctx = self.context
        term = self.config.search_term
        checks = ctx.checks

        async def _no_error_notice() -> None:
            notice = await self.page.evaluate(NOTICE_TEXT_JS, ERROR_NOTICE_SELECTOR)
            notice_text = str(notice or "").strip()
            # Surfaced as the failure message.
            require(not notice_text, notice_text)

        await checks.run_async_check(_no_error_notice)

        blocks = list(await self.editor.get_third_party_blocks())
        ctx.blocks = blocks
        checks.run_check(
            lambda: require(
                len(blocks) > ctx.baseline_block_count,
                f"third-party blocks {ctx.baseline_block_count} -> {len(blocks)}",
            ),
            f'Couldn\'t install "{term}".',
        )

        if ctx.page_error:
            raise PageRuntimeError(ctx.page_error.value)

    async def _finish(self) -> ScenarioResult:
        ctx = self.context
        await self._publish_screenshot(OUTPUT_SCREENSHOT_BLOCK, INSERTED_BLOCK_SELECTOR, wait=True)
        await self._capture_diffs()

        first_failure = ctx.checks.first_failure
        if first_failure is not None:
            raise AssertionFailure(first_failure.message)

        self._transition(ScenarioState.DONE)
        self.outputs.set_output(OUTPUT_ERROR, "")
        self.outputs.set_output(OUTPUT_SUCCESS, True)
        self.last_result = self._result(success=True, error="")
        return self.last_result

    async def _capture_diffs(self) -> None:
        ctx = self.context
        if ctx.fresh_scripts is None or ctx.fresh_styles is None:
            return
        ctx.script_diff = diff_assets(ctx.fresh_scripts, await self._snapshot(ASSET_KIND_SCRIPT))
        ctx.style_diff = diff_assets(ctx.fresh_styles, await self._snapshot(ASSET_KIND_STYLE))
        logger.info("Install added %d scripts and %d styles", len(ctx.script_diff), len(ctx.style_diff))

    async def _publish_screenshot(self, key: str, selector: str, wait: bool = False) -> None:
        """Best-effort base64 element screenshot; never fails the scenario."""
        try:
            if wait:
                element = await self.page.wait_for_selector(selector, timeout=self.config.busy_grace_ms)
            else:
                element = await self.page.query_selector(selector)
            if element is None:
                logger.info("No element for screenshot %s (%s)", key, selector)
                return
            image = await element.screenshot()
            self.outputs.set_output(key, base64.b64encode(image).decode("ascii"))
        except Exception as exc:
            logger.warning("Screenshot %s failed: %s", key, exc)

    async def _fail(self, exc: BaseException) -> None:
        ctx = self.context
        failed_in = ctx.state
        self._transition(ScenarioState.FAILED)

        message = str(exc) or exc.__class__.__name__
        error = ctx.page_error.value or message
        cause = exc
        if ctx.page_error and not isinstance(exc, PageRuntimeError):
            cause = PageRuntimeError(ctx.page_error.value)
        failure = classify_failure(
            error=cause,
            state=failed_in.value,
            search_term=self.config.search_term,
            message=error,
        )

        if ctx.script_diff is None and ctx.fresh_scripts is not None:
            try:
                await asyncio.wait_for(self._capture_diffs(), timeout=self.config.busy_grace_ms / 1000)
            except Exception as diff_exc:
                logger.warning("Partial asset diff unavailable: %s", diff_exc)

        logger.error("Scenario failed in %s: %s", failed_in.value, error)
        self.outputs.set_failed(message)
        self.outputs.set_output(OUTPUT_ERROR, error)
        self.outputs.set_output(OUTPUT_SUCCESS, False)
        self.outputs.set_output(OUTPUT_FAILURE, failure)
        if ctx.script_diff is not None:
            self.outputs.set_output(OUTPUT_SCRIPTS, _descriptors(ctx.script_diff))
            self.outputs.set_output(OUTPUT_STYLES, _descriptors(ctx.style_diff))
        self.last_result = self._result(success=False, error=error, failure=failure)

    def _result(self, *, success: bool, error: str, failure: dict[str, str] | None = None) -> ScenarioResult:
        ctx = self.context
        return ScenarioResult(
            success=success,
            error=error,
            state=ctx.state,
            history=list(ctx.history),
            checks=list(ctx.checks.results),
            search_results=ctx.search_results,
            script_diff=ctx.script_diff,
            style_diff=ctx.style_diff,
            blocks=ctx.blocks,
            failure=failure,
        )

    async def extract_assets(self) -> AssetReport:
        """
        Publish the scripts/styles the installed block brings in.

        Runs after the install iteration on the same page (reloaded by
        prepare_iteration), diffing the current assets against the
        pre-install snapshot without installing again.
        """
        ctx = self.context
        ctx.page_error.clear()
        checks = CheckAggregator()
        fresh_scripts = ctx.fresh_scripts or AssetSnapshot(ASSET_KIND_SCRIPT)
        fresh_styles = ctx.fresh_styles or AssetSnapshot(ASSET_KIND_STYLE)

        def _fresh_assets_loaded() -> None:
            require(len(fresh_scripts) > 0, "no scripts captured before install")
            require(len(fresh_styles) > 0, "no styles captured before install")

        checks.run_check(_fresh_assets_loaded, "The previous test did not load scripts/styles.")

        blocks = list(await self.editor.get_third_party_blocks())
        checks.run_check(
            lambda: require(len(blocks) > 0, "no third-party blocks registered"),
            "Block not installed.",
        )

        script_diff = diff_assets(fresh_scripts, await self._snapshot(ASSET_KIND_SCRIPT))
        style_diff = diff_assets(fresh_styles, await self._snapshot(ASSET_KIND_STYLE))
        logger.info("Block requires %d scripts and %d styles", len(script_diff), len(style_diff))

        self.outputs.set_output(OUTPUT_SCRIPTS, _descriptors(script_diff))
        self.outputs.set_output(OUTPUT_STYLES, _descriptors(style_diff))
        self.outputs.set_output(OUTPUT_BLOCKS, blocks)
        return AssetReport(
            script_diff=script_diff,
            style_diff=style_diff,
            blocks=blocks,
            checks=list(checks.results),
        )
