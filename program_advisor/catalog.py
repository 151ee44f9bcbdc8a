"""Catalog normalization shared by the planner and the chat surface."""

from __future__ import annotations

import math
import re
from typing import Dict, Iterable, List, Optional

from .schemas import ChatService, Service

HOURS_PER_WEEK = 40

# Ordered: the first family that matches a display name wins.
CATEGORY_KEYWORDS: Dict[str, re.Pattern[str]] = {
    "legal": re.compile(
        r"\b(legal|law|lawyers?|attorneys?|contracts?|employment|compliance|trademarks?|patents?"
        r"|intellectual property|incorporation|gdpr)\b"
    ),
    "marketing": re.compile(
        r"\b(marketing|growth|acquisition|advertising|ads|seo|social media|campaigns?|content"
        r"|go[- ]to[- ]market|gtm)\b"
    ),
    "branding": re.compile(r"\b(brand|branding|logos?|visual identity|naming)\b"),
    "finance": re.compile(
        r"\b(finance|financial|accounting|bookkeeping|tax|taxes|fundraising|investors?|valuation"
        r"|cash ?flow|pitch deck)\b"
    ),
    "prototyping": re.compile(
        r"\b(prototypes?|prototyping|mvp|mock-?ups?|wireframes?|3d printing|hardware|ui|ux|product design)\b"
    ),
    "ai": re.compile(r"\b(ai|artificial intelligence|machine learning|ml|data science|llms?|chatbots?)\b"),
    "it": re.compile(
        r"\b(it services|it support|information technology|software|website|web development"
        r"|app development|hosting|cloud|cybersecurity|devops)\b"
    ),
}


def category_matches(text: str) -> List[str]:
    """Return every category family mentioned in *text*, in table order."""

    lowered = (text or "").lower()
    return [name for name, pattern in CATEGORY_KEYWORDS.items() if pattern.search(lowered)]


def normalize_category(name: str | None) -> Optional[str]:
    """Map a service display name into the category space."""

    matches = category_matches(name or "")
    return matches[0] if matches else None


def index_catalog(services: Iterable[Service]) -> Dict[str, Service]:
    """Index services by id; the first occurrence of a duplicate id wins."""

    indexed: Dict[str, Service] = {}
    for service in services:
        indexed.setdefault(service.id, service)
    return indexed


def to_compact_catalog(services: Iterable[Service]) -> List[Dict[str, object]]:
    """Trim catalog entries down to what the planning prompt needs."""

    return [
        {
            "id": service.id,
            "name": service.name,
            "category": service.category,
            "credits": service.credits,
            "durationWeeks": service.duration_weeks,
            "prerequisites": list(service.prerequisites),
            "impact": service.impact.model_dump() if service.impact else {},
        }
        for service in services
    ]


def _hours_to_weeks(hours: float | None) -> Optional[int]:
    if hours is None or hours <= 0:
        return None
    return max(1, math.ceil(hours / HOURS_PER_WEEK))


def services_from_chat_catalog(services: Iterable[ChatService]) -> List[Service]:
    """Flatten service/package records into plannable catalog entries.

    Each package becomes one entry keyed by the package id, since selections
    are recorded per package. Price maps 1:1 to credits.
    """

    flattened: List[Service] = []
    for service in services:
        category = normalize_category(service.name)
        for package in service.packages:
            flattened.append(
                Service(
                    id=package.id,
                    name=f"{service.name} - {package.name}",
                    category=category,
                    credits=package.price if package.price is None else max(0.0, package.price),
                    duration_weeks=_hours_to_weeks(package.hours),
                )
            )
    return flattened
