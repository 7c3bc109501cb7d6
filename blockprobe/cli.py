import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Optional

import typer

from blockprobe.browser.assets import ASSET_KINDS, AssetSnapshot, diff_assets
from blockprobe.browser.executor import BrowserExecutor
from blockprobe.ci.outputs import ConsoleOutput, GithubActionsOutput
from blockprobe.config import ScenarioConfig, load_config
from blockprobe.harness.suite import SuiteResult, run_block_directory_suite
from blockprobe.wordpress.editor import BlockEditor

app = typer.Typer(help="Verify a block directory plugin installs and loads cleanly.")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")):
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)


def _build_output_channel():
    output_path = os.environ.get("GITHUB_OUTPUT")
    if output_path:
        return GithubActionsOutput(Path(output_path))
    return ConsoleOutput()


async def _run_suite(config: ScenarioConfig, outputs) -> SuiteResult:
    executor = BrowserExecutor(
        cdp_port=config.cdp_port,
        headless=config.headless,
        default_timeout_ms=config.default_timeout_ms,
    )
    page = await executor.start()
    try:
        editor = BlockEditor(page, config.base_url, config.username, config.password)
        await editor.login()
        return await run_block_directory_suite(page, editor, outputs, config)
    finally:
        await executor.close()


@app.command()
def run(
    search_term: Optional[str] = typer.Option(None, "--search-term", help="Block directory search term"),
    plugin_slug: Optional[str] = typer.Option(None, "--plugin-slug", help="Slug of the plugin providing the block"),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="WordPress site URL"),
    cdp_port: Optional[int] = typer.Option(None, "--cdp-port", help="Attach to a running browser over CDP"),
    headless: bool = typer.Option(True, "--headless/--headed"),
    idle_mode: Optional[str] = typer.Option(None, "--idle-mode", help="network-idle-0 or network-idle-2"),
    timeout_ms: Optional[int] = typer.Option(None, "--timeout-ms", help="Default wait timeout"),
):
    """Search, install and verify a block, then publish its scripts/styles."""
    try:
        config = load_config(
            search_term=search_term,
            plugin_slug=plugin_slug,
            base_url=base_url,
            cdp_port=cdp_port,
            headless=headless,
            network_idle_mode=idle_mode,
            default_timeout_ms=timeout_ms,
        )
    except ValueError as exc:
        typer.echo(f"RUN: INVALID CONFIG\n  error: {exc}")
        raise typer.Exit(code=2)

    outputs = _build_output_channel()
    result: SuiteResult | None = None
    error: str | None = None
    try:
        result = asyncio.run(_run_suite(config, outputs))
    except Exception as exc:
        error = str(exc) or exc.__class__.__name__

    if isinstance(outputs, ConsoleOutput):
        typer.echo(outputs.dump())

    if error is not None:
        typer.echo("RUN: FAIL")
        typer.echo(f"  error: {error}")
        raise typer.Exit(code=1)
    if result is None or not result.success:
        typer.echo("RUN: FAIL")
        raise typer.Exit(code=1)

    typer.echo("RUN: OK")
    typer.echo(f"  scripts: {len(result.assets.script_diff)}")
    typer.echo(f"  styles: {len(result.assets.style_diff)}")
    typer.echo(f"  blocks: {len(result.assets.blocks)}")


def _load_snapshot(path: Path, kind: str) -> AssetSnapshot:
    records = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(records, list):
        raise ValueError(f"{path} must contain a JSON list of assets")
    return AssetSnapshot.from_records(kind, records)


@app.command()
def diff(
    before: Path = typer.Argument(..., exists=True, dir_okay=False, help="Snapshot JSON before install"),
    after: Path = typer.Argument(..., exists=True, dir_okay=False, help="Snapshot JSON after install"),
    kind: str = typer.Option("script", "--kind", help="script or style"),
):
    """Print the assets present in AFTER but not in BEFORE."""
    if kind not in ASSET_KINDS:
        typer.echo(f"Error: unsupported kind '{kind}' (use script or style)")
        raise typer.Exit(code=2)
    try:
        added = diff_assets(_load_snapshot(before, kind), _load_snapshot(after, kind))
    except ValueError as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1)
    typer.echo(json.dumps([asset.to_dict() for asset in added], indent=2))


if __name__ == "__main__":
    app()
