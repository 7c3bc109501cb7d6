"""WordPress admin and block editor primitives driven through a Playwright page."""

from __future__ import annotations

import logging
from typing import Any

from playwright.async_api import Page

logger = logging.getLogger("blockprobe.wordpress.editor")

INTERACTION_TIMEOUT_MS = 10_000

EDITOR_READY_SELECTOR = ".edit-post-layout, .editor-editor-interface"
INSERTER_TOGGLE_SELECTOR = (
    ".edit-post-header [aria-label='Toggle block inserter'], "
    ".edit-post-header [aria-label='Add block'], "
    ".editor-header [aria-label='Block Inserter'], "
    ".editor-header [aria-label='Toggle block inserter']"
)
INSERTER_SEARCH_SELECTOR = (
    ".block-editor-inserter__search input, .block-editor-inserter__search-input"
)

DISABLE_WELCOME_GUIDE_JS = """
() => {
    const select = window.wp.data.select('core/edit-post');
    if (select && select.isFeatureActive('welcomeGuide')) {
        window.wp.data.dispatch('core/edit-post').toggleFeature('welcomeGuide');
    }
}
"""
REMOVE_ALL_BLOCKS_JS = "() => window.wp.data.dispatch('core/block-editor').resetBlocks([])"
THIRD_PARTY_BLOCKS_JS = """
() => window.wp.blocks.getBlockTypes()
    .filter((type) => !type.name.startsWith('core/'))
    .map((type) => ({ name: type.name, title: type.title }))
"""
LOADED_SCRIPTS_JS = """
() => Array.from(document.querySelectorAll('script[src]'))
    .map((el) => ({ id: el.id || el.src, url: el.src }))
"""
LOADED_STYLES_JS = """
() => Array.from(document.querySelectorAll('link[rel="stylesheet"]'))
    .map((el) => ({ id: el.id || el.href, url: el.href }))
"""


class BlockEditor:
    """UI action and introspection primitives for the WordPress block editor."""

    def __init__(
        self,
        page: Page,
        base_url: str,
        username: str = "admin",
        password: str = "password",
    ) -> None:
        self.page = page
        self.base_url = base_url.rstrip("/")
        self.username = username
        self.password = password

    def admin_url(self, path: str) -> str:
        return f"{self.base_url}/wp-admin/{path.lstrip('/')}"

    async def login(self) -> None:
        """Log in through wp-login.php unless the session is already authenticated."""
        page = self.page
        await page.goto(f"{self.base_url}/wp-login.php", wait_until="domcontentloaded")
        if "wp-login.php" not in page.url or await page.query_selector("#user_login") is None:
            return
        logger.info("Logging in as %s", self.username)
        await page.fill("#user_login", self.username, timeout=INTERACTION_TIMEOUT_MS)
        await page.fill("#user_pass", self.password, timeout=INTERACTION_TIMEOUT_MS)
        await page.click("#wp-submit", timeout=INTERACTION_TIMEOUT_MS)
        await page.wait_for_url("**/wp-admin/**")

    async def visit_admin_page(self, path: str) -> None:
        page = self.page
        await page.goto(self.admin_url(path), wait_until="domcontentloaded")
        if "wp-login.php" in page.url:
            await self.login()
            await page.goto(self.admin_url(path), wait_until="domcontentloaded")

    async def create_new_post(self) -> None:
        """Open a fresh post in the block editor with the welcome guide dismissed."""
        logger.info("Creating new post")
        await self.visit_admin_page("post-new.php")
        await self.page.wait_for_selector(EDITOR_READY_SELECTOR)
        await self.page.evaluate(DISABLE_WELCOME_GUIDE_JS)

    async def remove_all_blocks(self) -> None:
        await self.page.evaluate(REMOVE_ALL_BLOCKS_JS)

    async def search_for_block(self, term: str) -> None:
        """Open the global inserter and type the search term."""
        page = self.page
        logger.info("Searching inserter for %s", term)
        search = page.locator(INSERTER_SEARCH_SELECTOR).first
        if not await search.is_visible():
            await page.click(INSERTER_TOGGLE_SELECTOR, timeout=INTERACTION_TIMEOUT_MS)
        await search.wait_for(state="visible", timeout=INTERACTION_TIMEOUT_MS)
        await search.fill("")
        await search.press_sequentially(term)

    async def deactivate_plugin(self, slug: str) -> None:
        await self.visit_admin_page("plugins.php")
        deactivate_link = await self.page.query_selector(f'tr[data-slug="{slug}"] .deactivate a')
        if deactivate_link is None:
            logger.info("Plugin %s is not active", slug)
            return
        logger.info("Deactivating plugin %s", slug)
        await deactivate_link.click()
        await self.page.wait_for_selector(f'tr[data-slug="{slug}"] .delete a')

    async def uninstall_plugin(self, slug: str) -> None:
        await self.visit_admin_page("plugins.php")
        delete_selector = f'tr[data-slug="{slug}"] .delete a'
        if await self.page.query_selector(delete_selector) is None:
            logger.info("Plugin %s has no delete link; skipping uninstall", slug)
            return
        logger.info("Uninstalling plugin %s", slug)
        # WordPress confirms deletion with a native dialog.
        self.page.once("dialog", lambda dialog: dialog.accept())
        await self.page.click(delete_selector)
        await self.page.wait_for_selector(f'tr[data-slug="{slug}"].deleted')

    async def get_third_party_blocks(self) -> list[dict[str, Any]]:
        return list(await self.page.evaluate(THIRD_PARTY_BLOCKS_JS))

    async def get_all_loaded_scripts(self) -> list[dict[str, Any]]:
        return list(await self.page.evaluate(LOADED_SCRIPTS_JS))

    async def get_all_loaded_styles(self) -> list[dict[str, Any]]:
        return list(await self.page.evaluate(LOADED_STYLES_JS))
