"""NSW Government jobs site DOM selector constants with fallbacks.

Each constant is a tuple so callers iterate until a match is found.
"""

# --- Search results page ---
PAGE_SIZE_SELECT: str = 'select[name="pageSize"]'

CARD_SELECTORS: tuple[str, ...] = (
    ".job-card",
    ".search-result-card",
)

TITLE_LINK_SELECTORS: tuple[str, ...] = (
    ".card-header a",
    '[class*="title"] a',
    "h2 a",
    "a",
)

DATE_SELECTORS: tuple[str, ...] = (
    ".card-body p",
    '[class*="date"]',
)

AGENCY_SELECTORS: tuple[str, ...] = (
    ".job-search-result-right h2",
    '[class*="department"]',
    '[class*="agency"]',
)

LOCATION_SELECTORS: tuple[str, ...] = (
    ".nsw-col p:nth-child(3) span",
    '[class*="location"]',
)

SALARY_SELECTORS: tuple[str, ...] = (
    ".salary",
    '[class*="remuneration"]',
    '[class*="salary"]',
)

JOB_ID_SELECTORS: tuple[str, ...] = (
    ".job-search-result-ref-no",
    '[class*="reference"]',
    '[class*="job-id"]',
)

# --- Job detail page ---
SUMMARY_ROW_SELECTOR: str = "table.job-summary tr"
DESCRIPTION_SELECTORS: tuple[str, ...] = (
    ".job-detail-des",
    '[class*="job-detail"]',
)

# Fallbacks when a card omits a field.
DEFAULT_AGENCY = "NSW Government"
DEFAULT_LOCATION = "NSW"
DEFAULT_SALARY = "Not specified"
