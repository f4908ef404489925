"""
Paginated feeds for videos, comments and tweets.

A feed is: exact-match ID filters, an optional case-insensitive title
search, the owner joined in (records with a missing owner are dropped), a
fixed public projection, a sort, then one page of results.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

import database
from config import settings
from pipeline import Lookup, Match, Project, Sort, Stage, Unwind

OWNER_SUMMARY_FIELDS = ("_id", "username", "fullname", "avatar")


@dataclass(frozen=True)
class FeedSpec:
    collection: str
    public_fields: Tuple[str, ...]
    sortable_fields: Tuple[str, ...] = ("created_at", "updated_at")
    owner_field: str = "owner"
    search_field: Optional[str] = None
    base_filter: Mapping[str, Any] = field(default_factory=dict)


FEEDS: Dict[str, FeedSpec] = {
    "video": FeedSpec(
        collection="video",
        public_fields=(
            "video_file", "thumbnail", "title", "description", "duration",
            "views", "is_published", "created_at", "updated_at",
        ),
        sortable_fields=("created_at", "updated_at", "views", "duration", "title"),
        search_field="title",
        base_filter={"is_published": True},
    ),
    "comment": FeedSpec(
        collection="comment",
        public_fields=("content", "video", "created_at", "updated_at"),
    ),
    "tweet": FeedSpec(
        collection="tweet",
        public_fields=("content", "created_at", "updated_at"),
    ),
}


def get_feed_spec(collection: str) -> FeedSpec:
    try:
        return FEEDS[collection]
    except KeyError:
        raise ValueError(f"No feed is defined for collection {collection!r}")


def _positive_int(value, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def normalize_page(page=None, limit=None) -> Tuple[int, int]:
    """
    Coerce page/limit to ints; anything missing, non-numeric or <= 0 falls back
    to the defaults. limit is capped at MAX_PAGE_LIMIT.
    """
    return (
        _positive_int(page, settings.DEFAULT_PAGE),
        min(_positive_int(limit, settings.DEFAULT_PAGE_LIMIT), settings.MAX_PAGE_LIMIT),
    )


def resolve_sort(spec: FeedSpec, sort_by: Optional[str] = None, sort_type: Optional[str] = None) -> Sort:
    name = sort_by if sort_by in spec.sortable_fields else "created_at"
    direction = 1 if (sort_type or "").lower() == "asc" else -1
    # _id breaks ties so paging stays stable for equal sort keys
    return Sort(((name, direction), ("_id", direction)))


def build_feed_pipeline(
    collection: str,
    filters: Optional[Mapping[str, Any]] = None,
    query: Optional[str] = None,
    sort_by: Optional[str] = None,
    sort_type: Optional[str] = None,
) -> List[Stage]:
    spec = get_feed_spec(collection)

    # Validate every ID up front; a bad one must fail before anything runs.
    id_filter = {name: database.objid(value, name.replace("_", " ") + " id") for name, value in (filters or {}).items()}

    stages: List[Stage] = []
    if id_filter:
        stages.append(Match(id_filter))
    if spec.base_filter:
        stages.append(Match(spec.base_filter))
    if query and spec.search_field:
        stages.append(Match({spec.search_field: {"$regex": re.escape(query), "$options": "i"}}))

    stages.append(Lookup("user", spec.owner_field, "_id", spec.owner_field))
    stages.append(Unwind(spec.owner_field))
    stages.append(
        Project.include(
            *spec.public_fields,
            *(f"{spec.owner_field}.{name}" for name in OWNER_SUMMARY_FIELDS),
        )
    )
    stages.append(resolve_sort(spec, sort_by, sort_type))
    return stages


def paginate_feed(
    collection: str,
    page=None,
    limit=None,
    filters: Optional[Mapping[str, Any]] = None,
    query: Optional[str] = None,
    sort_by: Optional[str] = None,
    sort_type: Optional[str] = None,
) -> Dict[str, Any]:
    page, limit = normalize_page(page, limit)
    stages = build_feed_pipeline(collection, filters, query, sort_by, sort_type)
    return database.run_paginated_pipeline(collection, stages, page, limit)
