"""
Unit tests for Prediction and Classifier.

Tests cover:
- Softmax log-probabilities and tally perturbations
- Feature encoding and precondition errors
- Batch loss and tie-splitting accuracy
- Hidden-node equivalence classes
- Serialization
"""

import math

import numpy as np
import pytest

from edgebrain.circuits import BitSet, Edge, Mutation
from edgebrain.classifier import (
    Classifier,
    Prediction,
    hidden_equivalence_classes,
    log_softmax,
    transpose_bitsets,
)
from edgebrain.errors import PreconditionViolation


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def xor_classifier():
    """
    Two features, two labels; label 1 is XOR of the features.

    Input pairs are (0, 1) and (2, 3); outputs are 4 and 5.
    """
    clf = Classifier(input_count=2, label_count=2)
    (a_off, a_on), (b_off, b_on) = clf.input_ids
    out0, out1 = clf.output_ids
    clf.circuit.apply([
        Mutation.add_edge(a_off, Edge(b_on, out1)),
        Mutation.add_edge(b_off, Edge(a_on, out1)),
        Mutation.add_edge(a_off, Edge(b_off, out0)),
        Mutation.add_edge(a_on, Edge(b_on, out0)),
    ])
    return clf


@pytest.fixture
def xor_data():
    batch = [[False, False], [False, True], [True, False], [True, True]]
    labels = [0, 1, 1, 0]
    return batch, labels


@pytest.fixture
def grouped_classifier():
    """Hidden 5 and 6 follow feature a; hidden 7 follows feature b."""
    clf = Classifier(input_count=2, label_count=1, hidden_count=3)
    (_, a_on), (_, b_on) = clf.input_ids
    clf.circuit.apply([
        Mutation.add_edge(a_on, Edge(a_on, 5)),
        Mutation.add_edge(a_on, Edge(a_on, 6)),
        Mutation.add_edge(b_on, Edge(b_on, 7)),
    ])
    return clf


# =============================================================================
# Prediction Tests
# =============================================================================

class TestPrediction:

    def test_log_probs(self):
        pred = Prediction(counts=[0, 3, 2], edge_weight=1.0)
        expected = [-3.3490, -0.3490, -1.3490]
        for actual, want in zip(pred.log_probs, expected):
            assert math.isfinite(actual)
            assert actual == pytest.approx(want, abs=1e-4)

    def test_log_prob_matches_log_probs(self):
        pred = Prediction(counts=[0, 3, 2], edge_weight=1.0)
        for i, value in enumerate(pred.log_probs):
            assert pred.log_prob(i) == pytest.approx(value, abs=1e-4)

    def test_log_prob_with_change(self):
        pred = Prediction(counts=[0, 3, 2], edge_weight=1.0)
        assert pred.log_prob(0, change=2, to_label=1) == pytest.approx(-5.0550, abs=1e-4)
        assert pred.log_prob(1, change=2, to_label=1) == pytest.approx(-0.0550, abs=1e-4)
        assert pred.log_prob(2, change=2, to_label=1) == pytest.approx(-3.0550, abs=1e-4)
        # The stored counts are not modified.
        assert pred.counts == [0, 3, 2]

    def test_edge_weight_sharpens(self):
        soft = Prediction(counts=[0, 1], edge_weight=1.0)
        sharp = Prediction(counts=[0, 1], edge_weight=5.0)
        assert sharp.log_prob(1) > soft.log_prob(1)

    def test_large_counts_stay_finite(self):
        pred = Prediction(counts=[10000, 0], edge_weight=1.0)
        assert np.all(np.isfinite(pred.log_probs))
        assert pred.log_prob(0) == pytest.approx(0.0)

    def test_empty_counts_raise(self):
        with pytest.raises(PreconditionViolation):
            Prediction(counts=[])

    def test_log_softmax_empty_raises(self):
        with pytest.raises(PreconditionViolation):
            log_softmax(np.zeros(0))

    def test_accuracy_credit_splits_ties(self):
        pred = Prediction(counts=[2, 2, 1])
        assert pred.top_labels() == [0, 1]
        assert pred.accuracy_credit(0) == 0.5
        assert pred.accuracy_credit(1) == 0.5
        assert pred.accuracy_credit(2) == 0.0


# =============================================================================
# Classifier Tests
# =============================================================================

class TestClassifierConstruction:

    def test_node_layout(self):
        clf = Classifier(input_count=3, label_count=2, hidden_count=4)
        assert clf.input_ids == [(0, 1), (2, 3), (4, 5)]
        assert clf.output_ids == [6, 7]
        assert clf.circuit.hidden_ids() == [8, 9, 10, 11]
        assert clf.input_count == 3
        assert clf.label_count == 2

    def test_no_labels_raises(self):
        with pytest.raises(PreconditionViolation):
            Classifier(input_count=2, label_count=0)

    def test_copy_is_independent(self, xor_classifier):
        clone = xor_classifier.copy()
        clone.circuit.mutate(Mutation.remove_edge(0, Edge(3, 5)))
        assert xor_classifier.circuit.num_edges == 4
        assert clone.circuit.num_edges == 3


class TestEncoding:

    def test_encode_picks_one_of_each_pair(self):
        clf = Classifier(input_count=3, label_count=1)
        assert clf.encode([True, False, True]) == [1, 2, 5]
        assert clf.encode(np.array([False, False, False])) == [0, 2, 4]

    def test_width_mismatch_raises(self):
        clf = Classifier(input_count=3, label_count=1)
        with pytest.raises(PreconditionViolation, match="expected 3 features"):
            clf.encode([True, False])


class TestInference:

    def test_xor_predictions(self, xor_classifier, xor_data):
        batch, labels = xor_data
        for features, label in zip(batch, labels):
            pred = xor_classifier.predict(features)
            assert pred.counts[label] == 1
            assert pred.counts[1 - label] == 0

    def test_evaluate_xor(self, xor_classifier, xor_data):
        batch, labels = xor_data
        accuracy, loss = xor_classifier.evaluate(batch, labels)
        assert accuracy == 1.0
        assert loss == pytest.approx(math.log(1 + math.exp(-1)))
        assert xor_classifier.batch_loss(batch, labels) == pytest.approx(loss)

    def test_evaluate_splits_ties(self, xor_data):
        clf = Classifier(input_count=2, label_count=2)
        batch, labels = xor_data
        accuracy, loss = clf.evaluate(batch, labels)
        assert accuracy == 0.5
        assert loss == pytest.approx(math.log(2))

    def test_run_matches_circuit(self, xor_classifier, xor_data):
        batch, _ = xor_data
        results = xor_classifier.run(batch)
        for features, result in zip(batch, results):
            assert result == xor_classifier.circuit.run(xor_classifier.encode(features))

    def test_parallel_and_serial_agree(self, xor_classifier, xor_data):
        batch, labels = xor_data
        serial = xor_classifier.copy()
        serial.num_workers = 1
        parallel = xor_classifier.copy()
        parallel.num_workers = 3
        assert serial.predictions(batch) == parallel.predictions(batch)

    def test_empty_batch_raises(self, xor_classifier):
        with pytest.raises(PreconditionViolation, match="empty"):
            xor_classifier.batch_loss([], [])

    def test_label_count_mismatch_raises(self, xor_classifier, xor_data):
        batch, labels = xor_data
        with pytest.raises(PreconditionViolation):
            xor_classifier.batch_loss(batch, labels[:-1])

    def test_out_of_range_label_raises(self, xor_classifier, xor_data):
        batch, _ = xor_data
        with pytest.raises(PreconditionViolation, match="out of range"):
            xor_classifier.evaluate(batch, [0, 1, 2, 0])


# =============================================================================
# Equivalence Tests
# =============================================================================

class TestEquivalence:

    def test_transpose(self):
        per_example = [BitSet.from_bools([True, False, True]), BitSet.from_bools([False, True, True])]
        per_node = transpose_bitsets(per_example)
        assert [list(b) for b in per_node] == [[True, False], [False, True], [True, True]]

    def test_transpose_empty_raises(self):
        with pytest.raises(PreconditionViolation):
            transpose_bitsets([])

    def test_equivalent_hidden_nodes(self, grouped_classifier):
        batch = [[True, False], [False, True], [True, True]]
        classes = grouped_classifier.equivalent_hidden_nodes(batch)
        assert classes == {frozenset({5, 6}), frozenset({7})}

    def test_unconnected_hidden_nodes_are_one_class(self):
        clf = Classifier(input_count=1, label_count=1, hidden_count=4)
        classes = clf.equivalent_hidden_nodes([[True], [False]])
        assert classes == {frozenset({3, 4, 5, 6})}

    def test_classes_from_active_sets(self, grouped_classifier):
        active = [r.active for r in grouped_classifier.run([[True, True]])]
        classes = hidden_equivalence_classes(grouped_classifier.circuit, active)
        assert classes == {frozenset({5, 6, 7})}


# =============================================================================
# Serialization Tests
# =============================================================================

class TestSerialization:

    def test_dict_round_trip(self, xor_classifier, xor_data):
        batch, labels = xor_data
        restored = Classifier.from_dict(xor_classifier.to_dict())
        assert restored.input_ids == xor_classifier.input_ids
        assert restored.output_ids == xor_classifier.output_ids
        assert restored.circuit == xor_classifier.circuit
        assert restored.evaluate(batch, labels) == xor_classifier.evaluate(batch, labels)

    def test_save_load(self, xor_classifier, tmp_path):
        path = tmp_path / "clf.json"
        xor_classifier.edge_weight = 2.5
        xor_classifier.save(path)
        loaded = Classifier.load(path)
        assert loaded.edge_weight == 2.5
        assert loaded.circuit == xor_classifier.circuit

    def test_unsupported_version_raises(self, xor_classifier):
        data = xor_classifier.to_dict()
        data["version"] = "0.1"
        with pytest.raises(ValueError, match="Unsupported"):
            Classifier.from_dict(data)

    def test_repr(self, xor_classifier):
        assert repr(xor_classifier) == "Classifier(inputs=2, labels=2, hidden=0, edges=4)"
