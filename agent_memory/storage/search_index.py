"""BM25 keyword search over memory record content."""

from typing import List, Tuple

import numpy as np
from rank_bm25 import BM25Plus

from ..models import MemoryRecord
from ..utils import tokenize


class SearchIndex:
    """
    Keyword search over one key's active records.

    The index is rebuilt per query from the records handed in, so it never
    sees records that have expired since the last call.

    Scoring uses BM25+, whose IDF stays positive even when a term occurs in
    most of a tiny corpus (a new user with one or two memories). BM25+ also
    gives every document a floor score, so matches are decided by token
    overlap and the score only orders them.
    """

    def search(
        self, records: List[MemoryRecord], query: str, top_k: int = 10
    ) -> List[Tuple[MemoryRecord, float]]:
        """Rank records against a query; records with no matching term are dropped."""
        query_tokens = tokenize(query)
        if not records or not query_tokens or top_k <= 0:
            return []

        corpus = [tokenize(r.content) or [""] for r in records]
        wanted = set(query_tokens)
        matching = [i for i, tokens in enumerate(corpus) if wanted.intersection(tokens)]
        if not matching:
            return []

        scores = BM25Plus(corpus).get_scores(query_tokens)
        matched = np.array(matching)
        # Stable sort keeps store order (salience first) between equal scores.
        order = np.argsort(-scores[matched], kind="stable")[:top_k]
        return [(records[i], float(scores[i])) for i in matched[order]]
