"""
ascent.engine.papers — Scientific Document Detection
=====================================================

Heuristics that decide whether a community message shares a research
paper.  Three independent signals are checked by the classifier, in
priority order:

1. **Attachments** — arXiv-style filenames, or a PDF that passes the
   :func:`analyze_scientific_pdf` scoring (filename patterns, DOI, year,
   publisher names, size band, negative terms such as *invoice* or *cv*).
2. **Bare document links** — ``https://…/something.pdf``.
3. **Text** — a DOI, a URL on a recognised publisher/repository domain,
   or the strict four-part citation (quoted title, author marker, year,
   journal/publisher name).

Pure calculation; no I/O.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Reference lists
# ---------------------------------------------------------------------------
SCIENTIFIC_DOMAINS: tuple[str, ...] = (
    "arxiv.org",
    "biorxiv.org",
    "medrxiv.org",
    "nature.com",
    "science.org",
    "sciencemag.org",
    "cell.com",
    "pnas.org",
    "ncbi.nlm.nih.gov",
    "pubmed.gov",
    "sciencedirect.com",
    "plos.org",
    "frontiersin.org",
    "jbc.org",
    "acs.org",
    "wiley.com",
    "springer.com",
    "tandfonline.com",
    "elsevier.com",
    "oup.com",
    "sage.com",
    "mdpi.com",
    "researchgate.net",
    "ssrn.com",
    "academia.edu",
    "figshare.com",
    "zenodo.org",
    "f1000research.com",
    "jmir.org",
    "nejm.org",
    "jamanetwork.com",
    "thelancet.com",
    "bmj.com",
    "jstor.org",
    "scholar.google.com",
)

PUBLISHERS_AND_JOURNALS: tuple[str, ...] = (
    "elsevier",
    "springer",
    "wiley",
    "nature",
    "science",
    "cell",
    "plos",
    "pnas",
    "frontiers in",
    "journal of",
    "proceedings of",
    "acta",
    "advances in",
    "annual review",
    "biochemical",
    "biomedical",
    "biophysical",
    "scientific",
    "american journal",
    "european journal",
    "international journal",
    "molecular",
    "chemical",
    "pharmaceutical",
    "biological",
    "medical",
    "clinical",
    "research",
)

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------
ARXIV_FILENAME = re.compile(r"^(\d{4}\.\d{4,5}|arxiv[:\-_]?\d{4}\.\d{4,5})\.pdf$", re.IGNORECASE)
PDF_LINK = re.compile(r"https?://[^\s]+\.pdf(\?[^\s]*)?", re.IGNORECASE)
DOI = re.compile(r"\b(doi:|doi\.org/|10\.\d{4,}/[\w.\-/]+)", re.IGNORECASE)

_DOMAIN_URL = re.compile(
    r"https?://(?:[\w-]+\.)*(?:"
    + "|".join(re.escape(d) for d in SCIENTIFIC_DOMAINS)
    + r")(?:[/?#][^\s]*)?",
    re.IGNORECASE,
)
_PUBLISHER_WORD = re.compile(
    r"\b(?:" + "|".join(re.escape(p) for p in PUBLISHERS_AND_JOURNALS) + r")\b",
    re.IGNORECASE,
)
_QUOTED_TITLE = re.compile(r"[\"'“‘]([^\"'“”‘’]{15,})[\"'”’]")
_AUTHOR_MARKER = re.compile(r"\b(?:by|authors?:?|et\s+al\.?|and\s+colleagues)(?:\b|\s)", re.IGNORECASE)
_YEAR = re.compile(r"\b(?:19|20)\d{2}\b|\(\d{4}\)")

_FN_AUTHOR_YEAR_TITLE = re.compile(r"^[a-z]+[_\-]+(19|20)\d{2}[_\-]+[a-z]")
_FN_YEAR = re.compile(r"(19|20)\d{2}")
_FN_TERMS = re.compile(r"paper|research|study|journal|article|preprint|manuscript")
_FN_AUTHOR = re.compile(r"[a-z]+_[a-z]+")
_FN_NUMERIC_ID = re.compile(r"^[a-z\d\-_.]+\d{2,}[a-z]?\.pdf$")
_FN_ABBREVIATIONS = re.compile(r"\b(fig|eq|tab|ref|vol|pp|et\s+al)\b")
_FN_NEGATIVE = re.compile(
    r"(?<![a-z])(?:invoice|receipt|contract|agreement|form|application|resume|cv|certificate)(?![a-z])"
)

_KB = 1024
_MB = 1024 * 1024


# ---------------------------------------------------------------------------
# Attachment analysis
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class PdfAnalysis:
    is_paper: bool
    confidence: int
    reasons: tuple[str, ...] = ()


def analyze_scientific_pdf(
    filename: str, size: int | None = None, *, threshold: int = 30,
) -> PdfAnalysis:
    """Score how likely *filename* (of *size* bytes) is a scientific paper.

    Non-PDF files are never papers.  Every PDF starts from a baseline so a
    plainly-named document still counts unless negative indicators (e.g.
    *invoice*, *cv*, a tiny file) pull it below *threshold*.
    """
    name = (filename or "").strip().lower()
    if not name.endswith(".pdf"):
        return PdfAnalysis(False, 0, ("not a PDF file",))

    confidence = 0
    reasons: list[str] = []
    checks: list[tuple[bool, int, str]] = [
        (bool(ARXIV_FILENAME.match(name)), 70, "arXiv-style paper id"),
        (bool(_FN_AUTHOR_YEAR_TITLE.match(name)), 40, "author-year-title pattern"),
        (bool(DOI.search(name)), 50, "DOI identifier"),
        (bool(_FN_YEAR.search(name)), 15, "publication year"),
        (bool(_FN_TERMS.search(name)), 20, "scientific terminology"),
        (bool(_FN_AUTHOR.search(name)), 10, "author name pattern"),
        (any(p in name for p in PUBLISHERS_AND_JOURNALS), 25, "publisher name"),
        (bool(_FN_NUMERIC_ID.match(name)), 15, "numeric identifier"),
        (bool(_FN_ABBREVIATIONS.search(name)), 15, "scientific abbreviations"),
        (bool(_FN_NEGATIVE.search(name)), -40, "non-scientific document terms"),
    ]
    if size:
        checks.append((size < 100 * _KB, -20, "file too small for a paper"))
        checks.append((_MB < size < 20 * _MB, 10, "typical paper size"))

    for matched, points, reason in checks:
        if matched:
            confidence += points
            reasons.append(reason)

    if confidence == 0:
        confidence = 30
        reasons.append("PDF with no negative indicators")
    confidence += 30

    return PdfAnalysis(confidence >= threshold, confidence, tuple(reasons))


# ---------------------------------------------------------------------------
# Text / link detection
# ---------------------------------------------------------------------------
def has_pdf_link(text: str) -> bool:
    return PDF_LINK.search(text or "") is not None


def has_scientific_domain(text: str) -> bool:
    return _DOMAIN_URL.search(text or "") is not None


def has_citation(text: str) -> bool:
    """The strict four-part citation: quoted title, author, year, journal."""
    text = text or ""
    return bool(
        _QUOTED_TITLE.search(text)
        and _AUTHOR_MARKER.search(text)
        and _YEAR.search(text)
        and _PUBLISHER_WORD.search(text)
    )


def detect_paper_text(text: str) -> str | None:
    """Return the matching signal name if *text* references a paper, else ``None``."""
    if not text:
        return None
    if DOI.search(text):
        return "doi"
    if has_scientific_domain(text):
        return "scientific domain"
    if has_citation(text):
        return "citation"
    return None


# ---------------------------------------------------------------------------
# Metadata extraction
# ---------------------------------------------------------------------------
_URL = re.compile(r"https?://[^\s]+", re.IGNORECASE)
_TITLE_QUOTED = re.compile(r"\"([^\"]{10,})\"")
_TITLE_TRAILING = re.compile(
    r"([A-Z][^.]{15,})\.\s+(?:doi|https|http|\d{4}|journal|proceedings)", re.IGNORECASE,
)
_AUTHORS = re.compile(r"([A-Z][a-z]+\s+et\s+al\.?|(?:[A-Z][a-z]+(?:,\s*|&\s*)){2,}[A-Z][a-z]+)")


@dataclass(frozen=True, slots=True)
class PaperMetadata:
    confidence: int
    doi: str | None = None
    url: str | None = None
    year: str | None = None
    title: str | None = None
    authors: str | None = None


def extract_paper_metadata(text: str, *, min_confidence: int = 20) -> PaperMetadata | None:
    """Best-effort DOI / URL / year / title / authors extraction.

    Returns ``None`` when the combined confidence is below *min_confidence*.
    """
    text = text or ""
    confidence = 0
    doi = url = year = title = authors = None

    m = DOI.search(text)
    if m:
        tail = text[m.start():].split()[0]
        doi = re.sub(r"^(doi:|https?://(dx\.)?doi\.org/|doi\.org/)", "", tail, flags=re.IGNORECASE)
        confidence += 30
    m = _URL.search(text)
    if m:
        url = m.group(0)
        confidence += 10
    m = re.search(r"\b(?:19|20)\d{2}\b", text)
    if m:
        year = m.group(0)
        confidence += 10
    m = _TITLE_QUOTED.search(text) or _TITLE_TRAILING.search(text)
    if m:
        title = m.group(1)
        confidence += 20 if m.re is _TITLE_QUOTED else 15
    m = _AUTHORS.search(text)
    if m:
        authors = m.group(0)
        confidence += 15

    if confidence < min_confidence:
        return None
    return PaperMetadata(
        confidence=confidence, doi=doi, url=url, year=year, title=title, authors=authors,
    )
