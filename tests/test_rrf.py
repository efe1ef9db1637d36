from __future__ import annotations

import unittest

from hybrid_rag import ScoredId, fuse_ranked_lists, reciprocal_rank_fusion


def ranked(*ids: int) -> list:
    return [ScoredId(id=doc_id, score=1.0 / position) for position, doc_id in enumerate(ids, start=1)]


class ReciprocalRankFusionTests(unittest.TestCase):
    def test_swapped_lists_tie_and_break_by_ascending_id(self) -> None:
        hits = reciprocal_rank_fusion(
            ranked(7, 3), ranked(3, 7), semantic_weight=0.5, lexical_weight=0.5, k=60
        )

        self.assertEqual([hit.id for hit in hits], [3, 7])
        self.assertEqual(hits[0].fused_score, hits[1].fused_score)
        self.assertAlmostEqual(hits[0].fused_score, 0.5 / 61 + 0.5 / 62)
        self.assertAlmostEqual(hits[0].fused_score, 0.016261, places=6)

    def test_hit_keeps_ranks_and_per_list_scores(self) -> None:
        semantic = [ScoredId(10, 0.91), ScoredId(20, 0.80)]
        lexical = [ScoredId(20, 3.5)]

        hits = reciprocal_rank_fusion(semantic, lexical, semantic_weight=0.7, lexical_weight=0.3)
        by_id = {hit.id: hit for hit in hits}

        self.assertEqual(by_id[10].rank_semantic, 1)
        self.assertIsNone(by_id[10].rank_lexical)
        self.assertIsNone(by_id[10].score_lexical)
        self.assertEqual(by_id[20].rank_semantic, 2)
        self.assertEqual(by_id[20].rank_lexical, 1)
        self.assertEqual(by_id[20].score_semantic, 0.80)
        self.assertEqual(by_id[20].score_lexical, 3.5)
        self.assertAlmostEqual(by_id[20].fused_score, 0.7 / 62 + 0.3 / 61)

    def test_default_weights_favour_semantic_list(self) -> None:
        hits = reciprocal_rank_fusion(ranked(1), ranked(2))

        self.assertEqual([hit.id for hit in hits], [1, 2])
        self.assertAlmostEqual(hits[0].fused_score, 0.7 / 61)
        self.assertAlmostEqual(hits[1].fused_score, 0.3 / 61)

    def test_single_list_member_is_kept(self) -> None:
        hits = reciprocal_rank_fusion(ranked(1, 2), ranked(), limit=5)

        self.assertEqual([hit.id for hit in hits], [1, 2])

    def test_fusion_is_monotonic(self) -> None:
        # 4 beats 9 on both lists, 5 only appears semantically
        semantic = ranked(4, 5, 9)
        lexical = ranked(1, 4, 2, 9)

        hits = reciprocal_rank_fusion(semantic, lexical, semantic_weight=0.4, lexical_weight=1.3)
        scores = {hit.id: hit.fused_score for hit in hits}

        self.assertGreaterEqual(scores[4], scores[9])
        self.assertEqual(set(scores), {1, 2, 4, 5, 9})

    def test_limit_truncates_after_sorting(self) -> None:
        hits = reciprocal_rank_fusion(ranked(5, 4, 3, 2, 1), ranked(1), limit=2)

        self.assertEqual(len(hits), 2)
        self.assertEqual(hits[0].id, 1)

    def test_zero_weight_list_contributes_nothing(self) -> None:
        hits = reciprocal_rank_fusion(
            ranked(1, 2), ranked(3, 1), semantic_weight=1.0, lexical_weight=0.0
        )

        self.assertEqual([hit.id for hit in hits], [1, 2])
        self.assertAlmostEqual(hits[0].fused_score, 1.0 / 61)

    def test_repeated_id_keeps_best_rank(self) -> None:
        hits = reciprocal_rank_fusion(ranked(8, 8, 6), ranked(), semantic_weight=1.0, k=0)
        by_id = {hit.id: hit for hit in hits}

        self.assertEqual(by_id[8].rank_semantic, 1)
        self.assertAlmostEqual(by_id[8].fused_score, 1.0)
        self.assertEqual(by_id[6].rank_semantic, 3)

    def test_repeated_runs_give_identical_order(self) -> None:
        semantic = ranked(11, 12, 13, 14)
        lexical = ranked(14, 13, 12, 11)

        first = reciprocal_rank_fusion(semantic, lexical, semantic_weight=1, lexical_weight=1)
        second = reciprocal_rank_fusion(semantic, lexical, semantic_weight=1, lexical_weight=1)

        self.assertEqual([h.id for h in first], [h.id for h in second])
        self.assertEqual([h.id for h in first], [11, 14, 12, 13])

    def test_payload_prefers_semantic_row(self) -> None:
        semantic = [ScoredId(1, 0.9, {"search_text": "from vector"})]
        lexical = [ScoredId(1, 2.0, {"search_text": "from lexical"}), ScoredId(2, 1.0, {"search_text": "lex"})]

        hits = reciprocal_rank_fusion(semantic, lexical)
        by_id = {hit.id: hit for hit in hits}

        self.assertEqual(by_id[1].payload["search_text"], "from vector")
        self.assertEqual(by_id[2].payload["search_text"], "lex")

    def test_empty_inputs(self) -> None:
        self.assertEqual(reciprocal_rank_fusion([], []), [])


class FuseRankedListsTests(unittest.TestCase):
    def test_equal_weights_by_default(self) -> None:
        scores = fuse_ranked_lists([ranked(1, 2), ranked(2)], k=60)

        self.assertAlmostEqual(scores[1], 1 / 61)
        self.assertAlmostEqual(scores[2], 1 / 62 + 1 / 61)

    def test_weights_length_must_match(self) -> None:
        with self.assertRaises(ValueError):
            fuse_ranked_lists([ranked(1)], weights=[1.0, 2.0])


if __name__ == "__main__":
    unittest.main()
