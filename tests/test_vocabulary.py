from __future__ import annotations

import pytest

from harvester.crawler.vocabulary import DEFAULT_TOPIC_RULES, TopicRules


@pytest.mark.parametrize(
    "category,language,topic",
    [
        ("Commodity", "en", "news_en_commodity"),
        ("Komoditas", "id", "news_id_commodity"),
        ("Currencies", "en", "news_en_currencies"),
        ("Index", "en", "news_en_index"),
        ("Analisis Pasar", "id", "news_id_analysis"),
        ("Fiscal & Moneter", "en", "news_en_economy"),
        ("Lifestyle", "en", "news_en_general"),
        (None, "id", "news_id_general"),
    ],
)
def test_topic_for(category, language, topic) -> None:
    assert DEFAULT_TOPIC_RULES.topic_for(category, language) == topic


def test_language_topic() -> None:
    assert TopicRules.language_topic("id") == "news_id"


def test_custom_rules_and_fallback() -> None:
    rules = TopicRules(keywords={"crypto": ("bitcoin",)}, fallback="misc")
    assert rules.topic_for("Bitcoin", "en") == "news_en_crypto"
    assert rules.topic_for("Commodity", "en") == "news_en_misc"
