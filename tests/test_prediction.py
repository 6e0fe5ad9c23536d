"""Tests for the prediction pipeline."""

import pytest

from adarank.models.core import DataPoint, DataSet, Ensemble, Orientation, WeakRanker
from adarank.models.evaluators import MAP, NDCG
from adarank.services.prediction import PredictionPipeline, predict, rank
from adarank.utils.error_handling import ModelNotTrainedError


class TestPredict:
    """Test cases for predict and rank."""

    def setup_method(self):
        """Set up test fixtures."""
        self.ensemble = Ensemble.from_triples([
            (1, "descending", 0.8),
            (3, "ascending", 0.3),
        ])
        self.dp = DataPoint(1, "q", {1: 2.0, 2: 9.0, 3: 1.5})

    def test_weighted_oriented_sum(self):
        """Test the ensemble score of a single document."""
        assert predict(self.ensemble, self.dp) == pytest.approx(0.8 * 2.0 - 0.3 * 1.5)

    def test_missing_features_contribute_nothing(self):
        """Test that absent features read as 0.0."""
        assert predict(self.ensemble, DataPoint(0, "q", {2: 5.0})) == 0.0

    def test_linearity(self):
        """Test that appending a member adds exactly its own term."""
        before = predict(self.ensemble.prefix(1), self.dp)
        after = predict(self.ensemble, self.dp)

        assert after - before == pytest.approx(0.3 * Orientation.ASCENDING.sign * 1.5)

    def test_rank_descending(self):
        """Test ranking by descending score."""
        docs = [
            DataPoint(0, "q", {1: 0.1}),
            DataPoint(2, "q", {1: 0.9}),
            DataPoint(1, "q", {1: 0.5}),
        ]

        assert [dp.label for dp in rank(self.ensemble, docs)] == [2, 1, 0]

    def test_rank_ties_keep_input_order(self):
        """Test that equal scores keep their input order."""
        docs = [
            DataPoint(0, "q", {1: 0.5}, description="first"),
            DataPoint(1, "q", {1: 0.5}, description="second"),
            DataPoint(0, "q", {1: 0.7}, description="top"),
        ]
        ensemble = Ensemble.from_triples([(1, "descending", 1.0)])

        assert [dp.description for dp in rank(ensemble, docs)] == ["top", "first", "second"]

    def test_rank_empty(self):
        """Test ranking an empty list."""
        assert rank(self.ensemble, []) == []


class TestPredictionPipeline:
    """Test cases for PredictionPipeline."""

    def setup_method(self):
        """Set up test fixtures."""
        self.dataset = DataSet.from_datapoints([
            DataPoint(1, 1, {1: 0.9}),
            DataPoint(0, 1, {1: 0.1}),
            DataPoint(0, 2, {1: 0.8}),
            DataPoint(1, 2, {1: 0.2}),
        ])
        self.pipeline = PredictionPipeline(Ensemble.from_triples([(1, "descending", 1.0)]))

    def test_rank_dataset(self):
        """Test ranking every query of a dataset."""
        rankings = self.pipeline.rank_dataset(self.dataset)

        assert list(rankings) == [1, 2]
        assert [dp.label for dp in rankings[1]] == [1, 0]
        assert [dp.label for dp in rankings[2]] == [0, 1]

    def test_score_query(self):
        """Test per-document scores of a query."""
        scores = self.pipeline.score_query(self.dataset.get_query(2))

        assert list(scores) == [pytest.approx(0.8), pytest.approx(0.2)]

    def test_evaluate(self):
        """Test mean metric over a dataset."""
        assert self.pipeline.evaluate(self.dataset) == pytest.approx((1.0 + 0.5) / 2)
        assert self.pipeline.evaluate(self.dataset, MAP()) == pytest.approx(0.75)
        assert 0.0 <= self.pipeline.evaluate(self.dataset, NDCG(k=1)) <= 1.0

    def test_untrained_pipeline(self):
        """Test that an empty pipeline refuses to rank."""
        pipeline = PredictionPipeline()

        with pytest.raises(ModelNotTrainedError):
            pipeline.rank_query(self.dataset.get_query(1))
        with pytest.raises(ModelNotTrainedError):
            PredictionPipeline(Ensemble()).evaluate(self.dataset)

    def test_matches_ensemble_score(self):
        """Test that scores agree with Ensemble.score."""
        ensemble = Ensemble.from_triples([(1, "ascending", 0.4), (1, "descending", 1.1)])
        pipeline = PredictionPipeline(ensemble)

        for query in self.dataset:
            for dp, score in zip(query, pipeline.score_query(query)):
                assert score == pytest.approx(ensemble.score(dp))

    def test_weak_ranker_scores_match(self):
        """Test a single-member ensemble against its weak ranker."""
        ranker = WeakRanker(1, Orientation.ASCENDING)
        ensemble = Ensemble.from_triples([(1, "ascending", 1.0)])

        for dp in self.dataset.datapoints():
            assert predict(ensemble, dp) == pytest.approx(ranker.score(dp))
