"""Tests for the core data model."""

import pytest
import numpy as np

from adarank.models.core import (
    DataPoint, DataSet, Ensemble, EnsembleMember, Orientation, Query,
    TrainingConfiguration, WeakRanker
)


class TestDataPoint:
    """Test cases for DataPoint."""

    def test_valid_datapoint(self):
        """Test construction normalises features to sorted floats."""
        dp = DataPoint(label=2, query_id=7, features={3: 1, 1: 0.5}, description="doc-1")

        assert dp.label == 2
        assert dp.query_id == 7
        assert list(dp.features) == [1, 3]
        assert dp.features[3] == 1.0
        assert isinstance(dp.features[3], float)
        assert dp.description == "doc-1"
        assert dp.is_relevant

    def test_missing_feature_reads_as_zero(self):
        """Test that absent feature indices read as 0.0."""
        dp = DataPoint(label=0, query_id="q", features={2: 4.0})

        assert dp.get_feature(2) == 4.0
        assert dp.get_feature(1) == 0.0
        assert dp.get_feature(100) == 0.0
        assert not dp.is_relevant

    def test_negative_label_rejected(self):
        """Test that negative labels are rejected."""
        with pytest.raises(ValueError, match="non-negative"):
            DataPoint(label=-1, query_id=1, features={1: 1.0})

    def test_non_integer_label_rejected(self):
        """Test that float and bool labels are rejected."""
        with pytest.raises(ValueError):
            DataPoint(label=1.5, query_id=1, features={1: 1.0})
        with pytest.raises(ValueError):
            DataPoint(label=True, query_id=1, features={1: 1.0})

    def test_non_positive_feature_index_rejected(self):
        """Test that feature indices start at 1."""
        with pytest.raises(ValueError, match="positive"):
            DataPoint(label=1, query_id=1, features={0: 1.0})

    def test_equality_without_hashing(self):
        """Test that data points compare by value and refuse to hash."""
        dp = DataPoint(1, 1, {1: 0.5})

        assert dp == DataPoint(1, 1, {1: 0.5})
        assert dp != DataPoint(1, 1, {1: 0.6})
        with pytest.raises(TypeError, match="unhashable"):
            hash(dp)
        with pytest.raises(TypeError, match="unhashable"):
            hash(Query(1, (dp,)))


class TestQueryAndDataSet:
    """Test cases for Query and DataSet."""

    def setup_method(self):
        """Set up test fixtures."""
        self.datapoints = [
            DataPoint(1, "b", {1: 0.1}),
            DataPoint(0, "a", {2: 0.2}),
            DataPoint(2, "b", {1: 0.3, 4: 1.0}),
            DataPoint(0, "c", {1: 0.0}),
            DataPoint(0, "a", {3: 0.5}),
        ]
        self.dataset = DataSet.from_datapoints(self.datapoints)

    def test_grouping_keeps_first_appearance_order(self):
        """Test queries appear in first-appearance order with stable documents."""
        assert self.dataset.query_ids == ["b", "a", "c"]
        query_b = self.dataset.get_query("b")
        assert [dp.label for dp in query_b] == [1, 2]
        assert query_b.documents[1].get_feature(4) == 1.0

    def test_sizes(self):
        """Test length and document count."""
        assert len(self.dataset) == 3
        assert self.dataset.num_documents == 5
        assert not self.dataset.is_empty
        assert DataSet().is_empty

    def test_feature_indices_union(self):
        """Test the sorted union of feature indices."""
        assert self.dataset.feature_indices() == [1, 2, 3, 4]

    def test_degenerate_queries(self):
        """Test queries without relevant documents are reported."""
        assert self.dataset.degenerate_queries() == ["a", "c"]

    def test_unknown_query(self):
        """Test that an unknown query id raises KeyError."""
        with pytest.raises(KeyError):
            self.dataset.get_query("zzz")

    def test_subset(self):
        """Test subset keeps the requested order."""
        subset = self.dataset.subset(["c", "b"])
        assert subset.query_ids == ["c", "b"]
        assert subset.num_documents == 3

    def test_duplicate_query_ids_rejected(self):
        """Test that duplicate query ids are rejected."""
        query = Query("x", (DataPoint(0, "x", {1: 1.0}),))
        with pytest.raises(ValueError, match="Duplicate"):
            DataSet([query, query])

    def test_query_rejects_foreign_documents(self):
        """Test that a query only holds its own documents."""
        with pytest.raises(ValueError):
            Query("x", (DataPoint(0, "y", {1: 1.0}),))

    def test_feature_matrix_fills_zeros(self):
        """Test dense feature matrix construction."""
        matrix = self.dataset.get_query("b").feature_matrix([1, 2, 4])

        assert matrix.shape == (2, 3)
        np.testing.assert_array_equal(matrix, [[0.1, 0.0, 0.0], [0.3, 0.0, 1.0]])

    def test_labels(self):
        """Test the label array of a query."""
        np.testing.assert_array_equal(self.dataset.get_query("b").labels, [1, 2])


class TestWeakRankerAndEnsemble:
    """Test cases for WeakRanker and Ensemble."""

    def setup_method(self):
        """Set up test fixtures."""
        self.dp = DataPoint(1, 1, {1: 2.0, 2: 3.0})

    def test_orientation_sign(self):
        """Test orientation signs."""
        assert Orientation.DESCENDING.sign == 1.0
        assert Orientation.ASCENDING.sign == -1.0

    def test_weak_ranker_score(self):
        """Test weak ranker scores by oriented feature value."""
        assert WeakRanker(1, Orientation.DESCENDING).score(self.dp) == 2.0
        assert WeakRanker(2, Orientation.ASCENDING).score(self.dp) == -3.0
        assert WeakRanker(9).score(self.dp) == 0.0
        assert str(WeakRanker(2, Orientation.ASCENDING)) == "-f2"

    def test_ensemble_score_is_weighted_sum(self):
        """Test ensemble score is the confidence-weighted sum of rankers."""
        ensemble = Ensemble()
        ensemble.append(WeakRanker(1), 0.5)
        ensemble.append(WeakRanker(2, Orientation.ASCENDING), 0.25)

        assert ensemble.score(self.dp) == pytest.approx(0.5 * 2.0 - 0.25 * 3.0)
        assert len(ensemble) == 2
        assert ensemble[1] == EnsembleMember(WeakRanker(2, Orientation.ASCENDING), 0.25)

    def test_empty_ensemble_scores_zero(self):
        """Test that an empty ensemble scores every document 0."""
        assert Ensemble().score(self.dp) == 0.0

    def test_prefix_is_independent_copy(self):
        """Test prefix returns a new ensemble."""
        ensemble = Ensemble()
        ensemble.append(WeakRanker(1), 1.0)
        ensemble.append(WeakRanker(2), 2.0)

        prefix = ensemble.prefix(1)
        prefix.append(WeakRanker(3), 3.0)

        assert len(ensemble) == 2
        assert ensemble.feature_indices() == [1, 2]
        assert prefix.feature_indices() == [1, 3]

    def test_triples(self):
        """Test triple export and import."""
        ensemble = Ensemble.from_triples([(3, "descending", 0.7), (1, "ascending", 0.2)])

        assert ensemble.to_triples() == [(3, "descending", 0.7), (1, "ascending", 0.2)]
        assert ensemble[1].ranker.orientation is Orientation.ASCENDING
        assert Ensemble.from_triples(ensemble.to_triples()) == ensemble


class TestTrainingConfiguration:
    """Test cases for TrainingConfiguration."""

    def test_defaults(self):
        """Test default engine parameters."""
        config = TrainingConfiguration()

        assert config.metric == "MAP"
        assert config.max_rounds == 50
        assert config.patience == 3
        assert config.tolerance == 0.003
        assert config.max_consecutive_selections is None
        assert config.features is None

    @pytest.mark.parametrize("field, value", [
        ("max_rounds", 0),
        ("patience", 0),
        ("tolerance", -0.1),
        ("confidence_epsilon", 0.0),
        ("max_consecutive_selections", 0),
        ("n_jobs", 0),
        ("validation_split", 1.0),
    ])
    def test_invalid_values(self, field, value):
        """Test that invalid parameters are rejected."""
        with pytest.raises(ValueError):
            TrainingConfiguration(**{field: value})

    def test_from_dict_ignores_unknown_keys(self):
        """Test construction from a configuration section."""
        config = TrainingConfiguration.from_dict({
            "max_rounds": 10,
            "features": ["2", 5],
            "unused": True,
        })

        assert config.max_rounds == 10
        assert config.features == [2, 5]
        assert config.to_dict()["max_rounds"] == 10
