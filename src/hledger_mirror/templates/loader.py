"""
Template definitions from YAML.

A field is either a plain value (a literal) or a mapping with a capture
group and an optional fallback literal:

    templates:
      - name: card payment
        pattern: '^PAY (\\d+\\.\\d+) (\\w+)$'
        description: Card payment
        date_year: {group: 3, fallback: "2024"}
        lines:
          - account: Expenses:Misc
            amount: {group: 1}
            currency: {group: 2}
          - account: Assets:Card
            negate_amount: false
"""

from pathlib import Path
from typing import Any

import yaml

from .models import FieldSource, LiteralValue, MatchGroup, Template, TemplateLine


class TemplateFileError(Exception):
    """A template file is malformed."""

    pass


def _source(raw: Any, where: str) -> FieldSource:
    if raw is None:
        return LiteralValue()
    if isinstance(raw, dict):
        if "group" not in raw:
            raise TemplateFileError(f"{where}: mapping needs a 'group' key")
        try:
            index = int(raw["group"])
        except (TypeError, ValueError):
            raise TemplateFileError(f"{where}: group must be a number") from None
        fallback = raw.get("fallback")
        return MatchGroup(index=index, fallback=None if fallback is None else str(fallback))
    return LiteralValue(str(raw))


def _line(raw: Any, where: str) -> TemplateLine:
    if not isinstance(raw, dict):
        raise TemplateFileError(f"{where} is not a mapping")
    return TemplateLine(
        account=_source(raw.get("account"), f"{where} account"),
        amount=_source(raw.get("amount"), f"{where} amount"),
        currency=_source(raw.get("currency"), f"{where} currency"),
        comment=_source(raw.get("comment"), f"{where} comment"),
        negate_amount=bool(raw.get("negate_amount", False)),
    )


def parse_templates(data: Any) -> list[Template]:
    """Build templates from an already loaded YAML document."""
    if not isinstance(data, dict) or not isinstance(data.get("templates"), list):
        raise TemplateFileError("Expected a top-level 'templates' list")

    templates = []
    for pos, entry in enumerate(data["templates"], start=1):
        if not isinstance(entry, dict):
            raise TemplateFileError(f"Template #{pos} is not a mapping")
        name = str(entry.get("name") or f"template {pos}")
        raw_lines = entry.get("lines") or []
        if not isinstance(raw_lines, list):
            raise TemplateFileError(f"{name}: 'lines' must be a list")
        lines = [_line(line, f"{name} line {n}") for n, line in enumerate(raw_lines, start=1)]
        templates.append(
            Template(
                name=name,
                pattern=str(entry.get("pattern") or ""),
                description=_source(entry.get("description"), f"{name} description"),
                comment=_source(entry.get("comment"), f"{name} comment"),
                date_year=_source(entry.get("date_year"), f"{name} date_year"),
                date_month=_source(entry.get("date_month"), f"{name} date_month"),
                date_day=_source(entry.get("date_day"), f"{name} date_day"),
                lines=lines,
                test_text=entry.get("test_text"),
            )
        )
    return templates


def load_templates(path: Path) -> list[Template]:
    """Read templates from a YAML file."""
    with open(path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise TemplateFileError(f"Invalid YAML in {path}: {e}") from e
    return parse_templates(data)
