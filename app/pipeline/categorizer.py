"""
Rule-based receipt categoriser.

Scores merchant name and line items against per-category keyword lists and
resolves ties with a fixed precedence: Fuel > Materials > Food > the rest.
The model's own category is one more candidate, never the only one.
"""
from __future__ import annotations

import re
from typing import Iterable, Optional

# Precedence order; earlier wins when several categories match
CATEGORIES: list[str] = [
    "Fuel",
    "Materials",
    "Food",
    "Transportation",
    "Shopping",
    "Entertainment",
    "Business",
    "Health",
    "Other",
]

DEFAULT_CATEGORY = "Other"

CATEGORY_KEYWORDS: dict[str, list[str]] = {
    "Fuel": [
        r"\bpump\b", r"diesel", r"petrol", r"gas\s*station", r"\bfuel\b", r"\bunleaded\b",
        r"\bBP\b", r"\bshell\b", r"chevron", r"texaco", r"\besso\b", r"mobil",
        r"circle\s*k", r"speedway",
    ],
    "Materials": [
        r"B&Q", r"screwfix", r"wickes", r"toolstation", r"homebase", r"travis\s*perkins",
        r"jewson", r"selco", r"plumbing", r"electrical\s*suppl", r"timber", r"cement",
        r"\bpaint\b", r"\btools?\b", r"building\s*material",
    ],
    "Food": [
        r"tesco", r"sainsbury", r"\basda\b", r"morrisons", r"\baldi\b", r"\blidl\b",
        r"waitrose", r"mcdonald", r"\bkfc\b", r"subway", r"starbucks", r"\bcosta\b",
        r"greggs", r"pizza", r"domino", r"takeaway", r"restaurant", r"\bcafe\b",
        r"bistro", r"diner", r"bakery", r"grocer", r"supermarket", r"sandwich", r"coffee",
    ],
    "Transportation": [
        r"\buber\b", r"\btaxi\b", r"\bcab\b", r"parking", r"\btrain\b", r"\brail\b",
        r"\bbus\b", r"\btfl\b", r"oyster", r"\btoll\b",
    ],
    "Shopping": [
        r"clothing", r"apparel", r"electronics", r"\bargos\b", r"amazon", r"primark",
        r"currys", r"john\s*lewis",
    ],
    "Entertainment": [
        r"cinema", r"odeon", r"\bvue\b", r"theatre", r"concert", r"tickets?", r"\bgames?\b",
        r"netflix", r"spotify",
    ],
    "Business": [
        r"office\s*suppl", r"stationery", r"staples", r"printing", r"postage", r"royal\s*mail",
        r"software", r"subscription",
    ],
    "Health": [
        r"pharmacy", r"chemist", r"boots", r"superdrug", r"medical", r"dental", r"optician",
        r"prescription",
    ],
}

_COMPILED: dict[str, list[re.Pattern[str]]] = {
    cat: [re.compile(p, re.IGNORECASE) for p in pats] for cat, pats in CATEGORY_KEYWORDS.items()
}

# Categories ranked ahead of whatever the model suggests
PRIORITY_CATEGORIES = CATEGORIES[:3]

_CANONICAL = {c.lower(): c for c in CATEGORIES}


def canonical_category(value: Optional[str]) -> Optional[str]:
    """Map a free-text label onto the taxonomy (case-insensitive); None if unknown."""
    if not value:
        return None
    return _CANONICAL.get(value.strip().lower())


def keyword_categories(texts: Iterable[str]) -> list[str]:
    """Return every category with at least one keyword hit, in precedence order."""
    joined = "\n".join(t for t in texts if t)
    if not joined:
        return []
    return [cat for cat in CATEGORIES if any(p.search(joined) for p in _COMPILED.get(cat, []))]


def resolve_category(
    merchant_name: str,
    items: Iterable[str] = (),
    ai_category: Optional[str] = None,
) -> str:
    """Pick the final category for a receipt.

    Fuel, Materials and Food outrank everything (in that order) whether they
    come from keywords or from the model. Below them the model's suggestion
    wins, then the first keyword hit, then ``Other``.
    """
    hits = keyword_categories([merchant_name, *items])
    suggested = canonical_category(ai_category)

    for cat in PRIORITY_CATEGORIES:
        if cat in hits or cat == suggested:
            return cat
    if suggested and suggested != DEFAULT_CATEGORY:
        return suggested
    for cat in hits:
        if cat != DEFAULT_CATEGORY:
            return cat
    return DEFAULT_CATEGORY
