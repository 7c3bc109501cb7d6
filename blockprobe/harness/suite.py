"""Block directory suite: install step, asset extraction step, plugin teardown."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from blockprobe.ci.outputs import OutputChannel
from blockprobe.config import ScenarioConfig
from blockprobe.harness.scenario import AssetReport, InstallationScenario, ScenarioResult

logger = logging.getLogger("blockprobe.harness.suite")

BANNER_RULE = "-" * 62


@dataclass
class SuiteResult:
    install: ScenarioResult | None
    assets: AssetReport | None

    @property
    def success(self) -> bool:
        return (
            self.install is not None
            and self.install.success
            and self.assets is not None
            and self.assets.passed
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "install": self.install.to_dict() if self.install else None,
            "assets": self.assets.to_dict() if self.assets else None,
        }


async def teardown_plugin(editor: Any, slug: str) -> None:
    """Deactivate and delete the installed plugin; failures are logged only."""
    try:
        await editor.deactivate_plugin(slug)
        await editor.uninstall_plugin(slug)
    except Exception as exc:
        logger.warning("Plugin teardown for %s failed: %s", slug, exc)


async def run_block_directory_suite(
    page: Any,
    editor: Any,
    outputs: OutputChannel,
    config: ScenarioConfig,
) -> SuiteResult:
    """
    Run the install step then the asset extraction step on one page.

    Each step starts from a fresh post. The extraction step still runs when
    the install step fails so partial results get published; the install
    failure is re-raised once the plugin has been torn down.
    """
    outputs.info(
        f"\n{BANNER_RULE}\n"
        f'Running Tests for "{config.search_term}/{config.plugin_slug}"\n'
        f"{BANNER_RULE}\n"
    )

    scenario = InstallationScenario(page, editor, outputs, config)
    scenario.attach()
    install: ScenarioResult | None = None
    assets: AssetReport | None = None
    install_error: Exception | None = None

    try:
        await scenario.prepare_iteration()
        try:
            install = await scenario.run_install()
        except Exception as exc:
            install_error = exc
            install = scenario.last_result

        try:
            await scenario.prepare_iteration()
            assets = await scenario.extract_assets()
        except Exception as exc:
            if install_error is None:
                raise
            logger.warning("Asset extraction after failed install did not complete: %s", exc)

        if assets is not None and not assets.passed and install_error is None:
            failed = next(check for check in assets.checks if not check.passed)
            outputs.set_failed(failed.message)
    finally:
        scenario.detach()
        await teardown_plugin(editor, config.plugin_slug)

    if install_error is not None:
        raise install_error
    return SuiteResult(install=install, assets=assets)
