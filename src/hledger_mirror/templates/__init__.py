"""Transaction templates: regex patterns that turn free text into transactions."""

from hledger_mirror.templates.matcher import (
    ExtractedTransaction,
    MatchedTemplate,
    PatternCheck,
    TemplateMatcher,
    check_pattern,
    validate_pattern,
)
from hledger_mirror.templates.loader import TemplateFileError, load_templates, parse_templates
from hledger_mirror.templates.models import (
    FieldSource,
    LiteralValue,
    MatchGroup,
    Template,
    TemplateLine,
)

__all__ = [
    "ExtractedTransaction",
    "FieldSource",
    "LiteralValue",
    "MatchGroup",
    "MatchedTemplate",
    "PatternCheck",
    "Template",
    "TemplateFileError",
    "TemplateLine",
    "TemplateMatcher",
    "check_pattern",
    "load_templates",
    "parse_templates",
    "validate_pattern",
]
