from lodging_media.rules.loader import DEFAULT_RULES, default_rules, load_rules, parse_rules
from lodging_media.rules.models import (
    MIB,
    EncodingRules,
    MediaRules,
    OwnerKindRules,
    RenditionRule,
    StoreRules,
    UrlRules,
)

__all__ = [
    "MIB",
    "DEFAULT_RULES",
    "EncodingRules",
    "MediaRules",
    "OwnerKindRules",
    "RenditionRule",
    "StoreRules",
    "UrlRules",
    "default_rules",
    "load_rules",
    "parse_rules",
]
