import pytest

from tooldex.dedup import DeduplicationConfig, Deduplicator, DedupStrategy
from tooldex.dedup.deduplicator import average_merged_score, source_attribution_summary
from tooldex.dedup.strategies import get_strategy
from tooldex.errors import ValidationError
from tooldex.search import DeduplicationMonitor, FusedResult, SearchResult, SourceAttribution


def _result(id: str, score: float = 1.0, vector_type: str | None = None, rank: int | None = None, **payload):
    return SearchResult(id=id, score=score, payload=payload, vector_type=vector_type, rank=rank)


def _fused(id: str, weighted: float, vector_type: str = "semantic", **payload) -> FusedResult:
    return FusedResult(
        id=id,
        payload=payload,
        rrf_score=weighted,
        weighted_score=weighted,
        sources=[SourceAttribution(vector_type=vector_type, score=0.5, rank=1)],
        score=0.5,
        vector_type=vector_type,
    )


POSTMAN = {"name": "Postman", "description": "API platform", "category": "api"}
INSOMNIA = {"name": "Insomnia", "description": "API client", "category": "api"}

MIXED = [
    _result("1", 0.9, "semantic", 1, **POSTMAN),
    _result("1", 0.8, "entities.functionality", 2, **POSTMAN),
    _result("2", 0.7, "semantic", 2, **INSOMNIA),
    _result("3", 0.6, "semantic", 3, **{**POSTMAN, "name": "POSTMAN"}),
    _result("4", 0.5, "entities.functionality", 1, name="Figma", description="Design tool", category="design"),
]


class TestIdBased:
    def test_collapses_same_id(self):
        results = [_result("1", 0.9), _result("1", 0.8), _result("2", 0.7)]

        deduped = Deduplicator().deduplicate(results, {"strategy": "id_based"})

        assert len(deduped.unique_results) == 2
        assert deduped.duplicates_removed == 1
        assert deduped.unique_results[0].score == 0.9

    def test_first_occurrence_order(self):
        results = [_result("b", 0.1), _result("a", 0.9), _result("b", 0.95)]
        deduped = Deduplicator().deduplicate(results, {"strategy": "id_based"})
        assert [r.id for r in deduped.unique_results] == ["b", "a"]
        assert deduped.unique_results[0].score == 0.95

    def test_input_not_mutated(self):
        results = [_result("1", 0.5, name="a"), _result("1", 0.9, name="a")]
        Deduplicator().deduplicate(results, {"strategy": "id_based"})
        assert results[0].score == 0.5

    def test_fused_sources_combined(self):
        a = _fused("1", 0.02, "semantic")
        b = _fused("1", 0.03, "entities.interface")

        [merged] = Deduplicator().deduplicate([a, b], {"strategy": "id_based"}).unique_results

        assert merged.merged_from_count == 2
        assert merged.weighted_score == 0.03
        assert a.merged_from_count == 1


class TestContentBased:
    def test_same_content_different_ids(self):
        deduped = Deduplicator().deduplicate(MIXED, {"strategy": "content_based"})
        assert [r.id for r in deduped.unique_results] == ["1", "2", "4"]
        assert deduped.duplicates_removed == 2

    def test_threshold_one_merges_identical_content(self):
        results = [_result("a", **POSTMAN), _result("b", **{k: v.upper() for k, v in POSTMAN.items()})]
        deduped = Deduplicator().deduplicate(results, {"strategy": "content_based", "similarity_threshold": 1.0})
        assert len(deduped.unique_results) == 1

    def test_threshold_zero_only_compares_signature_collisions(self):
        results = [_result("a", **POSTMAN), _result("b", **INSOMNIA)]
        deduped = Deduplicator().deduplicate(results, {"strategy": "content_based", "similarity_threshold": 0.0})
        assert len(deduped.unique_results) == 2


class TestHybrid:
    def test_id_then_content(self):
        deduped = Deduplicator().deduplicate(MIXED, {"strategy": "hybrid"})
        assert [r.id for r in deduped.unique_results] == ["1", "2", "4"]
        assert deduped.duplicates_removed == 2
        assert deduped.strategy == DedupStrategy.HYBRID


class TestRrfEnhanced:
    def test_accumulates_rrf_by_id(self):
        results = [
            _result("1", 0.9, "semantic", 1, name="Postman"),
            _result("1", 0.8, "entities.functionality", 2, name="Postman"),
        ]
        deduped = Deduplicator().deduplicate(results, {"strategy": "rrf_enhanced"})

        [group] = deduped.unique_results
        assert isinstance(group, FusedResult)
        assert group.rrf_score == pytest.approx(1 / 61 + 1 / 62)
        assert group.weighted_score == pytest.approx(1.0 / 61 + 0.7 / 62)
        assert [s.vector_type for s in group.sources] == ["semantic", "entities.functionality"]
        assert group.final_rank == 1
        assert deduped.duplicates_removed == 1

    def test_secondary_pass_catches_near_duplicates(self):
        deduped = Deduplicator().deduplicate(MIXED, {"strategy": "rrf_enhanced"})

        ids = [r.id for r in deduped.unique_results]
        assert "3" not in ids
        assert set(ids) == {"1", "2", "4"}
        assert deduped.duplicates_removed == 2
        scores = [r.weighted_score for r in deduped.unique_results]
        assert scores == sorted(scores, reverse=True)

    def test_threshold_zero_collapses_everything(self):
        config = {"strategy": "rrf_enhanced", "similarity_threshold": 0.0, "per_partition_thresholds": {}}
        deduped = Deduplicator(DeduplicationConfig(per_partition_thresholds={})).deduplicate(MIXED, config)
        assert len(deduped.unique_results) == 1

    def test_pair_threshold_is_stricter_of_two(self):
        config = DeduplicationConfig(per_partition_thresholds={"semantic": 0.5, "functionality": 0.95})
        assert config.pair_threshold("semantic", "entities.functionality") == 0.95
        assert config.pair_threshold("entities.functionality", "semantic") == 0.95

    def test_missing_rank_counts_as_first(self):
        [group] = Deduplicator().deduplicate([_result("1", 0.5, "semantic")], {"strategy": "rrf_enhanced"}).unique_results
        assert group.rrf_score == pytest.approx(1 / 61)


class TestIdempotence:
    @pytest.mark.parametrize("strategy", list(DedupStrategy))
    def test_second_pass_is_noop(self, strategy: DedupStrategy):
        deduplicator = Deduplicator()
        first = deduplicator.deduplicate(MIXED, {"strategy": strategy})
        second = deduplicator.deduplicate(first.unique_results, {"strategy": strategy})

        assert [r.id for r in second.unique_results] == [r.id for r in first.unique_results]
        assert second.duplicates_removed == 0

    @pytest.mark.parametrize("strategy", list(DedupStrategy))
    def test_batched_matches_single_pass(self, strategy: DedupStrategy):
        deduplicator = Deduplicator()
        single = deduplicator.deduplicate(MIXED, {"strategy": strategy})
        batched = deduplicator.deduplicate(MIXED, {"strategy": strategy, "batch_size": 2})

        assert {r.id for r in batched.unique_results} == {r.id for r in single.unique_results}
        assert batched.duplicates_removed == single.duplicates_removed
        assert batched.batch_count == 3


class TestDeduplicator:
    def test_empty(self):
        deduped = Deduplicator().deduplicate([])
        assert deduped.unique_results == []
        assert deduped.duplicates_removed == 0
        assert deduped.average_merged_score == 0.0

    def test_result_summary(self):
        deduped = Deduplicator().deduplicate(MIXED, {"strategy": "id_based"})
        assert deduped.total_results_processed == 5
        assert deduped.source_attribution_summary == {"semantic": 3, "entities.functionality": 1}

    def test_monitor_records_runs(self):
        monitor = DeduplicationMonitor()
        deduplicator = Deduplicator(monitor=monitor)
        deduplicator.deduplicate(MIXED)
        deduplicator.deduplicate(MIXED[:2])

        runs = monitor.runs()
        assert [r.total_processed for r in runs] == [5, 2]
        assert monitor.average().total_processed == 4

    def test_custom_field_similarity(self):
        deduplicator = Deduplicator(field_similarity=lambda field, a, b: 1.0)
        results = [_result("a", 0.9, "semantic", 1, name="Postman"), _result("b", 0.8, "semantic", 2, name="Figma")]
        deduped = deduplicator.deduplicate(results, {"strategy": "rrf_enhanced"})
        assert len(deduped.unique_results) == 1

    def test_unknown_override(self):
        with pytest.raises(ValidationError):
            Deduplicator().deduplicate(MIXED, {"mode": "fast"})

    def test_invalid_threshold(self):
        with pytest.raises(ValidationError):
            Deduplicator().deduplicate(MIXED, {"similarity_threshold": 1.5})
        with pytest.raises(ValidationError):
            Deduplicator().deduplicate(MIXED, {"per_partition_thresholds": {"semantic": -0.1}})

    def test_invalid_strategy(self):
        with pytest.raises(ValidationError):
            Deduplicator().deduplicate(MIXED, {"strategy": "fuzzy"})

    def test_get_strategy_by_name(self):
        assert get_strategy("hybrid").name == DedupStrategy.HYBRID


class TestConfigLookup:
    def test_threshold_lookup(self):
        config = DeduplicationConfig()
        assert config.threshold_for("semantic") == 0.8
        assert config.threshold_for("entities.functionality") == 0.7
        assert config.threshold_for("entities.interface") == config.similarity_threshold
        assert config.threshold_for(None) == config.similarity_threshold

    def test_full_name_wins(self):
        config = DeduplicationConfig(per_partition_thresholds={"functionality": 0.7, "entities.functionality": 0.4})
        assert config.threshold_for("entities.functionality") == 0.4

    def test_vector_type_weight_fallback(self):
        config = DeduplicationConfig()
        assert config.vector_type_weight("composites.identity") == 0.5
        assert config.vector_type_weight("domain.pricing") == config.default_vector_type_weight


class TestSummaries:
    def test_average_merged_score(self):
        assert average_merged_score([_fused("a", 0.02), _fused("b", 0.04)]) == pytest.approx(0.03)
        assert average_merged_score([_result("a", 0.4), _result("b", 0.6)]) == pytest.approx(0.5)

    def test_source_attribution_summary(self):
        assert source_attribution_summary([_fused("a", 0.1, "semantic"), _result("b", vector_type="semantic")]) == {
            "semantic": 2
        }
