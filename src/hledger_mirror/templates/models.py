"""
Transaction template model.

Every scalar a template produces comes from a `FieldSource`: either a fixed
`LiteralValue` or a `MatchGroup` pointing at a capture group of the
template's pattern. A `MatchGroup` carries a fallback literal used when the
group index is out of range or the group did not participate in the match.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class LiteralValue:
    """A fixed value, possibly empty."""

    value: str | None = None


@dataclass(frozen=True)
class MatchGroup:
    """Capture group `index` (1-based) with a literal fallback."""

    index: int
    fallback: str | None = None


FieldSource = LiteralValue | MatchGroup


def source_from_columns(literal: str | None, group: int | None) -> FieldSource:
    """Build a source from the (literal, match group) column pair of a stored row."""
    if group is not None and group > 0:
        return MatchGroup(index=group, fallback=literal)
    return LiteralValue(literal)


def source_to_columns(source: FieldSource) -> tuple[str | None, int | None]:
    """Inverse of `source_from_columns`."""
    if isinstance(source, MatchGroup):
        return source.fallback, source.index
    return source.value, None


@dataclass(frozen=True)
class TemplateLine:
    """One posting produced by a template."""

    account: FieldSource = field(default_factory=LiteralValue)
    amount: FieldSource = field(default_factory=LiteralValue)
    currency: FieldSource = field(default_factory=LiteralValue)
    comment: FieldSource = field(default_factory=LiteralValue)
    negate_amount: bool = False


@dataclass(frozen=True)
class Template:
    """A regex pattern plus rules for turning a match into a transaction."""

    name: str
    pattern: str
    description: FieldSource = field(default_factory=LiteralValue)
    comment: FieldSource = field(default_factory=LiteralValue)
    date_year: FieldSource = field(default_factory=LiteralValue)
    date_month: FieldSource = field(default_factory=LiteralValue)
    date_day: FieldSource = field(default_factory=LiteralValue)
    lines: list[TemplateLine] = field(default_factory=list)
    test_text: str | None = None
    id: int | None = None
