"""Versioned contract identifiers and CI output keys for scenario runs."""

SCENARIO_RESULT_SCHEMA_V1 = "scenario_result.v1"
ASSET_REPORT_SCHEMA_V1 = "asset_report.v1"
ERROR_SCHEMA_V1 = "error.v1"

OUTPUT_SUCCESS = "success"
OUTPUT_ERROR = "error"
OUTPUT_FAILURE = "failure"
OUTPUT_SCRIPTS = "scripts"
OUTPUT_STYLES = "styles"
OUTPUT_BLOCKS = "blocks"
OUTPUT_SCREENSHOT_SEARCH_RESULTS = "screenshotSearchResults"
OUTPUT_SCREENSHOT_BLOCK = "screenshotBlock"
