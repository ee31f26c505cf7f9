"""Unit tests for requestflow.classifier."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from requestflow.classifier import (
    DEFAULT_RULES,
    ClassificationRules,
    classify,
    load_rules,
    split_by_content_type,
)
from requestflow.models.entities import (
    Attachment,
    ContentSource,
    ContentType,
    Contribution,
    LibraryItem,
)

if TYPE_CHECKING:
    from pathlib import Path


def _item(title: str, **kwargs: object) -> LibraryItem:
    return LibraryItem(id="1", provider_id="grp-1", title=title, **kwargs)


class TestContentType:
    def test_plain_title_is_main(self) -> None:
        assert classify(_item("Naruto")).content_type == ContentType.MAIN

    def test_category_marks_illustration(self) -> None:
        item = _item("One Piece Color Walk", category="illustration")
        assert classify(item).content_type == ContentType.ILLUSTRATION

    def test_accented_phrase_matches(self) -> None:
        assert classify(_item("Ilustración Naruto")).content_type == ContentType.ILLUSTRATION

    def test_multi_word_phrase(self) -> None:
        assert classify(_item("Naruto Side Story")).content_type == ContentType.SIDE

    def test_phrases_match_whole_words_only(self) -> None:
        # "au" must not fire inside "aurora"
        assert classify(_item("Aurora Saga")).content_type == ContentType.MAIN

    def test_first_rule_wins(self) -> None:
        # Illustration is listed before extra
        assert classify(_item("Artbook Extra")).content_type == ContentType.ILLUSTRATION

    def test_original_name_is_considered(self) -> None:
        item = _item("Naruto", original_name="naruto_omake.pdf")
        assert classify(item).content_type == ContentType.BONUS

    def test_contribution_body_and_type(self) -> None:
        contribution = Contribution(
            id="1",
            submitter_id="bob",
            title="Naruto",
            body="what if Minato survived",
        )
        assert classify(contribution).content_type == ContentType.AU

    def test_contribution_attachment_filename(self) -> None:
        contribution = Contribution(
            id="1",
            submitter_id="bob",
            title="Naruto",
            attachment=Attachment(filename="naruto_epilogo.pdf"),
        )
        assert classify(contribution).content_type == ContentType.EPILOGUE


class TestMarkers:
    def test_no_marker_leaves_source_unknown(self) -> None:
        assert classify(_item("Naruto")).content_source is None

    def test_official_marker(self) -> None:
        assert classify(_item("Naruto Official")).content_source == ContentSource.OFFICIAL

    def test_fan_marker_wins_over_official(self) -> None:
        classification = classify(_item("Naruto official fan translation"))
        assert classification.content_source == ContentSource.FAN

    def test_sensitive_marker(self) -> None:
        assert classify(_item("Given", tags=["BL"])).is_sensitive is True
        assert classify(_item("Given")).is_sensitive is False


class TestSplitByContentType:
    def test_groups_follow_content_type_order(self) -> None:
        items = [
            LibraryItem(id="1", provider_id="grp-1", title="Bleach Extra"),
            LibraryItem(id="2", provider_id="grp-1", title="Bleach", chapter=1),
            LibraryItem(id="3", provider_id="grp-1", title="Bleach", category="illustration"),
            LibraryItem(id="4", provider_id="grp-1", title="Bleach", chapter=2),
        ]

        groups = split_by_content_type(items)

        assert list(groups) == [ContentType.MAIN, ContentType.ILLUSTRATION, ContentType.EXTRA]
        assert [item.id for item, _ in groups[ContentType.MAIN]] == ["2", "4"]
        assert groups[ContentType.EXTRA][0][1].content_type == ContentType.EXTRA

    def test_sensitivity_travels_with_the_item(self) -> None:
        groups = split_by_content_type([_item("Given", category="illustration", tags=["bl"])])
        [(_, classification)] = groups[ContentType.ILLUSTRATION]
        assert classification.is_sensitive is True

    def test_no_items(self) -> None:
        assert split_by_content_type([]) == {}


class TestRulesLoading:
    def test_unset_rules_file_uses_defaults(self) -> None:
        assert load_rules(None) is DEFAULT_RULES

    def test_rules_from_file(self, tmp_path: Path) -> None:
        path = tmp_path / "rules.json"
        path.write_text(
            json.dumps(
                {
                    "type_rules": [{"content_type": "bonus", "phrases": ["Tokuten!"]}],
                    "official_markers": ["Publisher"],
                }
            ),
            encoding="utf-8",
        )
        rules = load_rules(str(path))
        classification = rules.classify_text("Naruto tokuten publisher")
        assert classification.content_type == ContentType.BONUS
        assert classification.content_source == ContentSource.OFFICIAL
        # Built-in vocabulary is replaced, not merged
        assert rules.classify_text("Naruto artbook").content_type == ContentType.MAIN

    def test_phrases_are_normalized(self) -> None:
        rules = ClassificationRules(
            type_rules=[{"content_type": "extra", "phrases": ["  ESPECIAL  ", "!!"]}],
        )
        assert rules.type_rules[0].phrases == ["especial"]

    def test_invalid_content_type_is_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "rules.json"
        path.write_text(
            json.dumps({"type_rules": [{"content_type": "poster", "phrases": ["poster"]}]}),
            encoding="utf-8",
        )
        with pytest.raises(ValueError):
            load_rules(str(path))
