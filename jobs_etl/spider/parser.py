"""NSW jobs DOM parser: card and detail-page elements into job models.

Text helpers at module level are pure and browser-free. Every selector
lookup uses a fallback tuple, and a missing optional field becomes "" (or
the site default) instead of raising.
"""

import logging
import re
from typing import Protocol, runtime_checkable
from urllib.parse import urljoin

from jobs_etl.core.schemas import ContactDetails, JobDetails, JobListing
from jobs_etl.spider.selectors import (
    AGENCY_SELECTORS,
    DATE_SELECTORS,
    DEFAULT_AGENCY,
    DEFAULT_LOCATION,
    DEFAULT_SALARY,
    DESCRIPTION_SELECTORS,
    JOB_ID_SELECTORS,
    LOCATION_SELECTORS,
    SALARY_SELECTORS,
    SUMMARY_ROW_SELECTOR,
    TITLE_LINK_SELECTORS,
)

logger = logging.getLogger(__name__)

_SECTION_BREAK = re.compile(r"\n{2,}")
_NUMBERED_ITEM = re.compile(r"\d+\.")
_CONTACT_SECTION = re.compile(r"(?:enquiries|contact|email|phone|tel).*?(?=\n\n|\n?\Z)", re.IGNORECASE | re.DOTALL)
_EMAIL = re.compile(r"[\w.-]+@[\w.-]+\.\w+")
_PHONE = re.compile(r"(?:phone|tel|mob)[.: ]*([0-9][0-9 ]*)", re.IGNORECASE)
_NAME = re.compile(r"(?i:contact|attention)[.: ]*((?:[A-Z][A-Za-z'-]*\.? ?)+)")
_DATE_PREFIX = re.compile(r"^(?:Job posting:|Posted:|Closing date:|Closes:)\s*", re.IGNORECASE)

_REQUIREMENT_MARKERS = ("key selection criteria", "essential")
_RESPONSIBILITY_MARKERS = ("summary role", "role description", "responsibilities")
_ABOUT_MARKERS = ("about us", "about the organisation", "about the organization")
_NOTE_MARKERS = ("note", "additional information")


def split_sections(description: str) -> dict[str, list[str]]:
    """Sort description paragraphs into requirements, responsibilities, about_us and notes.

    Paragraphs are separated by blank lines and matched on the first marker
    found, in that priority order. Requirement paragraphs are further split
    on numbered items ("1.", "2.").
    """
    sections: dict[str, list[str]] = {"requirements": [], "responsibilities": [], "about_us": [], "notes": []}
    for block in _SECTION_BREAK.split(description):
        text = block.strip()
        if not text:
            continue
        lower = text.lower()
        if any(m in lower for m in _REQUIREMENT_MARKERS):
            sections["requirements"].extend(s.strip() for s in _NUMBERED_ITEM.split(text) if s.strip())
        elif any(m in lower for m in _RESPONSIBILITY_MARKERS):
            sections["responsibilities"].append(text)
        elif any(m in lower for m in _ABOUT_MARKERS):
            sections["about_us"].append(text)
        elif any(m in lower for m in _NOTE_MARKERS):
            sections["notes"].append(text)
    return sections


def extract_contact_details(description: str) -> ContactDetails:
    """Pull a contact name, phone and email out of the enquiries paragraph."""
    match = _CONTACT_SECTION.search(description)
    if match is None:
        return ContactDetails()
    section = match.group(0)

    email = _EMAIL.search(section)
    phone = _PHONE.search(section)
    name = _NAME.search(section)
    return ContactDetails(
        email=email.group(0) if email else "",
        phone=phone.group(1).strip() if phone else "",
        name=name.group(1).strip() if name else "",
    )


def split_card_dates(text: str) -> tuple[str, str]:
    """Split "Job posting: 01 Feb 2024 - Closing date: 15 Feb 2024" into (posted, closing)."""
    if not text:
        return "", ""
    parts = [p.strip() for p in (text.split(" - ") if " - " in text else text.split("-", 1))]
    posted = _DATE_PREFIX.sub("", parts[0]).strip()
    closing = _DATE_PREFIX.sub("", parts[1]).strip() if len(parts) > 1 else ""
    return posted, closing


def clean_text(text: str | None) -> str:
    """Strip and collapse runs of spaces, keeping paragraph breaks."""
    if not text:
        return ""
    lines = (re.sub(r"[ \t]+", " ", line).strip() for line in text.strip().splitlines())
    return re.sub(r"\n{3,}", "\n\n", "\n".join(lines))


@runtime_checkable
class ElementLike(Protocol):
    """Minimal element interface so tests can use AsyncMock instead of patchright."""

    async def query_selector(self, selector: str) -> "ElementLike | None": ...
    async def query_selector_all(self, selector: str) -> list["ElementLike"]: ...
    async def get_attribute(self, name: str) -> str | None: ...
    async def text_content(self) -> str | None: ...


class NswJobsParser:
    """Parses NSW jobs search cards and job pages."""

    def __init__(self, base_url: str) -> None:
        self._base_url = base_url

    async def parse_cards(self, cards: list[ElementLike]) -> list[JobListing]:
        """Parse multiple cards, skipping any that fail or lack a title or id."""
        results: list[JobListing] = []
        for card in cards:
            try:
                listing = await self.parse_card(card)
                if listing is not None:
                    results.append(listing)
            except Exception:
                logger.debug("Failed to parse card, skipping", exc_info=True)
        return results

    async def parse_card(self, card: ElementLike) -> JobListing | None:
        """Parse one search-result card. Returns None without a title or id."""
        title_link = await self._find_first(card, TITLE_LINK_SELECTORS)
        title = await self._parse_title(title_link)
        job_id = await self._text_fallback(card, JOB_ID_SELECTORS)
        if not title or not job_id:
            logger.debug("Card missing title or id - skipping")
            return None

        href = await title_link.get_attribute("href") if title_link is not None else None
        posted, closing = split_card_dates(await self._text_fallback(card, DATE_SELECTORS))
        return JobListing(
            id=job_id,
            title=title,
            agency=await self._text_fallback(card, AGENCY_SELECTORS) or DEFAULT_AGENCY,
            location=await self._text_fallback(card, LOCATION_SELECTORS) or DEFAULT_LOCATION,
            salary=await self._text_fallback(card, SALARY_SELECTORS) or DEFAULT_SALARY,
            url=urljoin(self._base_url, href) if href else "",
            job_reference=job_id,
            posted_date=posted,
            closing_date=closing,
        )

    async def parse_detail(self, page: ElementLike, listing: JobListing) -> JobDetails:
        """Build JobDetails from a loaded job page on top of its listing."""
        summary = await self._summary_table(page)
        description = clean_text(await self._text_fallback(page, DESCRIPTION_SELECTORS, strip=False))
        sections = split_sections(description)

        return JobDetails.from_listing(
            listing,
            agency=_summary_value(summary, "organisation") or listing.agency,
            location=_summary_value(summary, "job location") or listing.location,
            job_reference=_summary_value(summary, "reference number") or listing.job_reference,
            job_type=_summary_value(summary, "work type"),
            description=description,
            responsibilities=sections["responsibilities"],
            requirements=sections["requirements"],
            notes=sections["notes"],
            about_us="\n\n".join(sections["about_us"]),
            contact_details=extract_contact_details(description),
        )

    # --- Private helpers ---

    async def _summary_table(self, page: ElementLike) -> dict[str, str]:
        """Read the label/value rows of the job summary table."""
        table: dict[str, str] = {}
        for row in await page.query_selector_all(SUMMARY_ROW_SELECTOR):
            label_el = await row.query_selector("td:first-child")
            value_el = await row.query_selector("td:last-child")
            if label_el is None or value_el is None:
                continue
            label = (await label_el.text_content() or "").strip().lower()
            if label:
                table[label] = (await value_el.text_content() or "").strip()
        return table

    async def _parse_title(self, title_link: ElementLike | None) -> str:
        """Prefer the <span> inside the title link, then the link text."""
        if title_link is None:
            return ""
        try:
            span = await title_link.query_selector("span")
            if span is not None:
                text = await span.text_content()
                if text and text.strip():
                    return text.strip()
            raw = await title_link.text_content()
            return raw.strip().split("\n")[0].strip() if raw else ""
        except Exception:
            logger.debug("Error parsing title", exc_info=True)
            return ""

    async def _text_fallback(self, parent: ElementLike, selectors: tuple[str, ...], *, strip: bool = True) -> str:
        """Try selectors in order, return first non-empty text or ""."""
        try:
            el = await self._find_first(parent, selectors)
            if el is None:
                return ""
            text = await el.text_content()
            if not text:
                return ""
            return text.strip() if strip else text
        except Exception:
            logger.debug("Error parsing text with fallback selectors", exc_info=True)
            return ""

    async def _find_first(self, parent: ElementLike, selectors: tuple[str, ...]) -> ElementLike | None:
        """Return the first element matching any selector in order."""
        for selector in selectors:
            try:
                el = await parent.query_selector(selector)
                if el is not None:
                    return el
            except Exception:
                logger.debug("Selector '%s' raised, trying next", selector, exc_info=True)
        return None


def _summary_value(summary: dict[str, str], label: str) -> str:
    for key, value in summary.items():
        if label in key:
            return value
    return ""
