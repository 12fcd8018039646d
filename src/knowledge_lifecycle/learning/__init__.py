"""Learning queue: candidate intake, batch processing and question clustering."""

from knowledge_lifecycle.learning.clustering import (
    QuestionCluster,
    QuestionPattern,
    cluster_questions,
    extract_keywords,
    generate_cluster_name,
    jaccard_similarity,
    tokenize,
)

__all__ = [
    "QuestionCluster",
    "QuestionPattern",
    "cluster_questions",
    "extract_keywords",
    "generate_cluster_name",
    "jaccard_similarity",
    "tokenize",
]
