"""Content classification.

Pure business logic: receives a LibraryItem or Contribution and returns a
Classification. The rule table is data (ClassificationRules) so deployments
can ship their own vocabulary in a JSON file without code changes.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, PrivateAttr, field_validator

from requestflow.models.entities import ContentSource, ContentType, Contribution, LibraryItem
from requestflow.models.query import Classification
from requestflow.text import normalize_text

if TYPE_CHECKING:
    from collections.abc import Iterable

log = structlog.get_logger()


def _phrase_pattern(phrases: list[str]) -> re.Pattern[str] | None:
    if not phrases:
        return None
    alternatives = "|".join(re.escape(phrase) for phrase in sorted(phrases, key=len, reverse=True))
    return re.compile(rf"(?<!\w)(?:{alternatives})(?!\w)")


class ClassificationRule(BaseModel):
    content_type: ContentType
    phrases: list[str]

    @field_validator("phrases")
    @classmethod
    def normalize_phrases(cls, v: list[str]) -> list[str]:
        return [normalized for phrase in v if (normalized := normalize_text(phrase))]


class ClassificationRules(BaseModel):
    """Ordered content-type rules plus source and sensitivity markers.

    Type rules are evaluated in order and the first match wins; text that
    matches none of them is main content.
    """

    type_rules: list[ClassificationRule]
    fan_markers: list[str] = []
    official_markers: list[str] = []
    sensitive_markers: list[str] = []

    _type_patterns: list[tuple[ContentType, re.Pattern[str]]] = PrivateAttr(default_factory=list)
    _fan: re.Pattern[str] | None = PrivateAttr(default=None)
    _official: re.Pattern[str] | None = PrivateAttr(default=None)
    _sensitive: re.Pattern[str] | None = PrivateAttr(default=None)

    @field_validator("fan_markers", "official_markers", "sensitive_markers")
    @classmethod
    def normalize_markers(cls, v: list[str]) -> list[str]:
        return [normalized for marker in v if (normalized := normalize_text(marker))]

    def model_post_init(self, __context: object) -> None:
        self._type_patterns = [
            (rule.content_type, pattern)
            for rule in self.type_rules
            if (pattern := _phrase_pattern(rule.phrases)) is not None
        ]
        self._fan = _phrase_pattern(self.fan_markers)
        self._official = _phrase_pattern(self.official_markers)
        self._sensitive = _phrase_pattern(self.sensitive_markers)

    @classmethod
    def from_file(cls, path: str | Path) -> ClassificationRules:
        return cls.model_validate_json(Path(path).expanduser().read_text(encoding="utf-8"))

    def classify_text(self, text: str) -> Classification:
        normalized = normalize_text(text)
        content_type = ContentType.MAIN
        for candidate_type, pattern in self._type_patterns:
            if pattern.search(normalized):
                content_type = candidate_type
                break

        content_source: ContentSource | None = None
        if self._fan is not None and self._fan.search(normalized):
            content_source = ContentSource.FAN
        elif self._official is not None and self._official.search(normalized):
            content_source = ContentSource.OFFICIAL

        is_sensitive = bool(self._sensitive is not None and self._sensitive.search(normalized))
        return Classification(
            content_type=content_type,
            content_source=content_source,
            is_sensitive=is_sensitive,
        )


DEFAULT_RULES = ClassificationRules(
    type_rules=[
        ClassificationRule(
            content_type=ContentType.ILLUSTRATION,
            phrases=[
                "illustration", "illustrations", "ilustracion", "ilustraciones",
                "illust", "artbook", "art book", "artwork", "gallery", "galeria",
            ],
        ),
        ClassificationRule(content_type=ContentType.SPIN_OFF, phrases=["spin off", "spinoff"]),
        ClassificationRule(
            content_type=ContentType.AU,
            phrases=["au", "alternate universe", "universo alterno", "what if"],
        ),
        ClassificationRule(
            content_type=ContentType.SIDE,
            phrases=["side story", "side stories", "sidestory", "side"],
        ),
        ClassificationRule(content_type=ContentType.BONUS, phrases=["bonus", "omake"]),
        ClassificationRule(
            content_type=ContentType.EPILOGUE, phrases=["epilogue", "epilogo", "epilogos"]
        ),
        ClassificationRule(
            content_type=ContentType.PROLOGUE, phrases=["prologue", "prologo", "prologos"]
        ),
        ClassificationRule(
            content_type=ContentType.EXTRA,
            phrases=["extra", "extras", "special", "specials", "especial", "especiales"],
        ),
    ],
    fan_markers=["fan", "fanmade", "fan made", "fansub", "scanlation", "scanlated"],
    official_markers=["official", "oficial", "licensed", "licenciado"],
    sensitive_markers=["bl", "boys love", "yaoi"],
)


def load_rules(rules_file: str | None) -> ClassificationRules:
    """Return rules from *rules_file*, or the built-in rules when unset."""
    if not rules_file:
        return DEFAULT_RULES
    rules = ClassificationRules.from_file(rules_file)
    log.info("classifier_rules_loaded", path=rules_file, type_rules=len(rules.type_rules))
    return rules


def classification_text(item: LibraryItem | Contribution) -> str:
    """Concatenate the fields of *item* that carry classification hints."""
    if isinstance(item, LibraryItem):
        parts = [item.title, item.original_name, item.category, *item.tags]
    else:
        filename = item.attachment.filename if item.attachment else ""
        parts = [item.title, filename, item.body, item.type, *item.tags]
    return " ".join(part for part in parts if part)


def classify(
    item: LibraryItem | Contribution,
    rules: ClassificationRules = DEFAULT_RULES,
) -> Classification:
    return rules.classify_text(classification_text(item))


def split_by_content_type(
    items: Iterable[LibraryItem],
    rules: ClassificationRules = DEFAULT_RULES,
) -> dict[ContentType, list[tuple[LibraryItem, Classification]]]:
    """Group the items of one title by content type.

    Keys follow ``ContentType`` declaration order (main first) and only
    types that actually occur are present. Item order is preserved.
    """
    groups: dict[ContentType, list[tuple[LibraryItem, Classification]]] = {}
    for item in items:
        classification = classify(item, rules)
        groups.setdefault(classification.content_type, []).append((item, classification))
    order = list(ContentType)
    return dict(sorted(groups.items(), key=lambda entry: order.index(entry[0])))
