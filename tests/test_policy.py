"""
Tests for curator/policy.py

Run with: pytest tests/test_policy.py
"""

from curator.models import ProcessedTopic, RawLink, Topic
from curator.policy import (
    drop_avoided_topics,
    filter_links,
    filter_processed_topics,
    is_excluded,
    normalize_domain,
    normalize_domain_list,
    normalize_topic_list,
)


class TestNormalizeDomain:
    def test_strips_scheme_www_and_path(self):
        assert normalize_domain("https://www.News.Example.org/path?q=1") == "example.org"

    def test_multi_label_suffix(self):
        assert normalize_domain("sub.bbc.co.uk") == "bbc.co.uk"

    def test_port_and_credentials(self):
        assert normalize_domain("http://user:pw@blog.medium.com:8080/x") == "medium.com"

    def test_blank(self):
        assert normalize_domain("   ") == ""


class TestNormalizeLists:
    def test_domain_list_dedupes_and_splits_commas(self):
        result = normalize_domain_list(["medium.com, www.medium.com", "https://bbc.co.uk/news", ""])
        assert result == ["medium.com", "bbc.co.uk"]

    def test_domain_list_capped(self):
        values = [f"site{i}.com" for i in range(15)]
        assert len(normalize_domain_list(values)) == 10

    def test_topic_list(self):
        assert normalize_topic_list(["  Bitcoin ", "bitcoin", "", "Elon   Musk"]) == ["Bitcoin", "Elon Musk"]


class TestDropAvoidedTopics:
    def test_exact_match_case_insensitive(self):
        topics = [Topic(topic="Bitcoin"), Topic(topic="Surface code")]
        assert [t.topic for t in drop_avoided_topics(topics, ["bitcoin"])] == ["Surface code"]

    def test_partial_overlap_kept(self):
        topics = [Topic(topic="Bitcoin mining energy use")]
        assert drop_avoided_topics(topics, ["Bitcoin"]) == topics


class TestIsExcluded:
    def test_exact_and_subdomain(self):
        assert is_excluded("https://excluded.com/a", ["excluded.com"]) is True
        assert is_excluded("https://sub.excluded.com/a", ["excluded.com"]) is True
        assert is_excluded("https://www.excluded.com/a", ["excluded.com"]) is True

    def test_suffix_lookalike_not_excluded(self):
        assert is_excluded("https://notexcluded.com/a", ["excluded.com"]) is False

    def test_empty_list(self):
        assert is_excluded("https://site.com/", []) is False


class TestFilterLinks:
    def test_drops_invalid_and_excluded(self):
        links = [
            RawLink(url="https://good.com/a"),
            RawLink(url="https://sub.excluded.com/b"),
            RawLink(url="https://example.com/c"),
            RawLink(url=""),
        ]
        assert [link.url for link in filter_links(links, ["excluded.com"])] == ["https://good.com/a"]

    def test_processed_topics_left_empty_are_dropped(self):
        processed = [
            ProcessedTopic(topic="Keep", links=[RawLink(url="https://good.com/a")]),
            ProcessedTopic(topic="Gone", links=[RawLink(url="https://sub.excluded.com/b")]),
        ]

        result = filter_processed_topics(processed, ["excluded.com"])

        assert [pt.topic for pt in result] == ["Keep"]

    def test_input_not_mutated(self):
        processed = [ProcessedTopic(topic="T", links=[
            RawLink(url="https://good.com/a"), RawLink(url="https://excluded.com/b"),
        ])]

        filter_processed_topics(processed, ["excluded.com"])

        assert len(processed[0].links) == 2
