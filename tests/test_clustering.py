"""Tests for lexical question clustering."""

import pytest

from knowledge_lifecycle.learning.clustering import (
    QuestionCluster,
    QuestionPattern,
    cluster_questions,
    extract_keywords,
    generate_cluster_name,
    jaccard_similarity,
    tokenize,
)


def test_tokenize_mixed_scripts():
    assert tokenize("Where's 도서관 open 24/7?") == ["where", "s", "도서관", "open", "24", "7"]


def test_jaccard_similarity():
    assert jaccard_similarity("library opening hours", "library opening hours") == 1.0
    assert jaccard_similarity("library hours", "gym hours") == pytest.approx(1 / 3)
    assert jaccard_similarity("", "") == 0.0


def test_extract_keywords_skips_stop_words():
    assert extract_keywords("What is the tuition deadline for the fall semester?") == [
        "tuition",
        "deadline",
        "fall",
        "semester",
    ]


def test_extract_keywords_limit():
    assert len(extract_keywords("alpha beta gamma delta epsilon zeta eta", max_keywords=3)) == 3


def test_generate_cluster_name():
    assert generate_cluster_name("What is the tuition deadline?") == "tuition_deadline"
    assert generate_cluster_name("What is it?") == "general"


class TestClusterQuestions:
    """Tests for cluster_questions."""

    def test_groups_similar_questions(self):
        patterns = [
            QuestionPattern("when does the library open today", "8am", frequency=3),
            QuestionPattern("when does the library open", "8am", frequency=2),
            QuestionPattern("where can I buy a parking permit", "At the kiosk", frequency=1),
        ]

        clusters = cluster_questions(patterns, threshold=0.7)

        assert [cluster.member_count for cluster in clusters] == [2, 1]
        assert clusters[0].total_frequency == 5
        assert clusters[0].name == "library_open"

    def test_threshold_is_exclusive(self):
        patterns = [
            QuestionPattern("a b c d", "x"),
            QuestionPattern("a b c e", "x"),
        ]
        # similarity is 3/5 = 0.6
        assert len(cluster_questions(patterns, threshold=0.6)) == 2
        assert len(cluster_questions(patterns, threshold=0.5)) == 1

    def test_cluster_aggregates(self):
        cluster = QuestionCluster(
            name="library_open",
            members=[
                QuestionPattern("q1", "a1", frequency=3, avg_feedback=2.0, avg_confidence=0.6),
                QuestionPattern("q2", "a2", frequency=1, avg_feedback=4.0, avg_confidence=0.8),
                QuestionPattern("q3", "a3", frequency=5, avg_feedback=None, avg_confidence=0.7),
            ],
        )
        assert cluster.avg_feedback == pytest.approx(2.5)
        assert cluster.avg_confidence == pytest.approx(0.7)
        assert cluster.representative.user_message == "q3"

    def test_unrated_cluster(self):
        cluster = QuestionCluster(name="x", members=[QuestionPattern("q", "a")])
        assert cluster.avg_feedback is None
