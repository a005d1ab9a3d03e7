"""Composable filtering for project listings and user search.

A `FilterCriteria` holds the optional predicates of one listing request.
`apply_criteria` turns them into a single SELECT against the collection
described by a `FilterFields` binding:

- a search term matches when it appears, case-insensitively and taken
  literally (``%`` and ``_`` are escaped), in any of the bound text fields;
- each non-empty membership set (categories, technologies, domains)
  restricts its column to the given values; an empty set means no
  constraint;
- all active predicates are ANDed, the ordering is applied, then
  ``OFFSET skip LIMIT take``.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Sequence, Tuple

from sqlalchemy import and_, or_
from sqlmodel import col

from .errors import ValidationError
from .models import Project, User, UserSkill

DEFAULT_TAKE = 20
# Largest OFFSET/LIMIT a 64-bit SQL integer holds; larger values are clamped.
MAX_PAGE_VALUE = 2 ** 63 - 1


def _clean_values(values: Optional[Iterable[str]]) -> Tuple[str, ...]:
    if not values:
        return ()
    return tuple(dict.fromkeys(v for v in values if v))


@dataclass
class FilterCriteria:
    search_term: Optional[str] = None
    categories: Sequence[str] = ()
    technologies: Sequence[str] = ()
    domains: Sequence[str] = ()
    skip: int = 0
    take: int = DEFAULT_TAKE

    def __post_init__(self):
        if self.skip < 0:
            raise ValidationError("skip must be >= 0")
        if self.take < 0:
            raise ValidationError("take must be >= 0")
        self.skip = min(self.skip, MAX_PAGE_VALUE)
        self.take = min(self.take, MAX_PAGE_VALUE)
        term = (self.search_term or "").strip()
        self.search_term = term or None
        self.categories = _clean_values(self.categories)
        self.technologies = _clean_values(self.technologies)
        self.domains = _clean_values(self.domains)


@dataclass(frozen=True)
class FilterFields:
    """Binds an entity collection to the predicates of `FilterCriteria`.

    `related_text` pairs a one-to-many relationship with a text column on
    the related entity; a row matches the search when any related row does.
    `membership` maps a `FilterCriteria` attribute name to the column its
    values are compared against.
    """
    text_columns: Tuple = ()
    related_text: Tuple = ()
    membership: Dict[str, object] = field(default_factory=dict)
    order_by: Tuple = ()


PROJECT_FIELDS = FilterFields(
    text_columns=(Project.title, Project.description, Project.category, Project.technology, Project.domain),
    membership={
        'categories': Project.category,
        'technologies': Project.technology,
        'domains': Project.domain,
    },
    order_by=(col(Project.created_at).desc(), col(Project.id).desc()),
)

USER_FIELDS = FilterFields(
    text_columns=(User.name, User.email),
    related_text=((User.skills, UserSkill.skill_name),),
    order_by=(col(User.created_at).desc(), col(User.id).desc()),
)


def search_clause(fields: FilterFields, term: str):
    """Return the OR of substring matches of `term` over the bound fields."""
    matches = [col(c).icontains(term, autoescape=True) for c in fields.text_columns]
    for relationship, column in fields.related_text:
        matches.append(relationship.any(col(column).icontains(term, autoescape=True)))
    return or_(*matches)


def build_conditions(criteria: FilterCriteria, fields: FilterFields) -> list:
    conditions = []
    if criteria.search_term:
        conditions.append(search_clause(fields, criteria.search_term))
    for name, column in fields.membership.items():
        values = getattr(criteria, name)
        if values:
            conditions.append(col(column).in_(values))
    return conditions


def apply_criteria(statement, criteria: FilterCriteria, fields: FilterFields):
    """Apply filters, ordering and pagination to `statement` in that order."""
    conditions = build_conditions(criteria, fields)
    if conditions:
        statement = statement.where(and_(*conditions))
    return statement.order_by(*fields.order_by).offset(criteria.skip).limit(criteria.take)
