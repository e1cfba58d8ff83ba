"""
Subsample Drawing Tests
=======================
Tests for labelled observations and reference/monitoring draws.

Run with: python -m pytest tests/test_sampling.py -v
"""

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from srewma.sampling import LabelledObservations, draw_subsamples


def create_labelled_data(n=60, n_in_control=40, p=3, seed=5):
    rng = np.random.default_rng(seed)
    values = rng.normal(size=(n, p))
    values[n_in_control:] += 3.0
    labels = np.arange(n) < n_in_control
    return LabelledObservations(values=values, in_control=labels)


def rows_as_set(X):
    return {tuple(row) for row in X}


class TestLabelledObservations:

    def test_arrays_are_read_only_copies(self):
        values = np.random.default_rng(0).normal(size=(30, 2))
        data = LabelledObservations(values=values, in_control=np.ones(30, dtype=bool))

        values[0, 0] = 1e6

        assert data.values[0, 0] != 1e6
        with pytest.raises(ValueError):
            data.values[0, 0] = 0.0

    def test_rejects_non_finite(self):
        values = np.random.default_rng(0).normal(size=(30, 2))
        values[4, 1] = np.nan

        with pytest.raises(ValueError, match="finite_values"):
            LabelledObservations(values=values, in_control=np.ones(30, dtype=bool))

    def test_rejects_misaligned_labels(self):
        with pytest.raises(ValueError, match="labels"):
            LabelledObservations(
                values=np.random.default_rng(0).normal(size=(30, 2)),
                in_control=np.ones(29, dtype=bool),
            )

    def test_from_dataframe(self):
        rng = np.random.default_rng(1)
        df = pd.DataFrame(rng.normal(size=(40, 3)), columns=['s1', 's2', 's3'])
        df['pass_fail'] = np.where(np.arange(40) % 4 == 0, 1, -1)

        data = LabelledObservations.from_dataframe(df, label_col='pass_fail', in_control_value=-1)

        assert data.n_observations == 40
        assert data.n_features == 3
        assert data.feature_names == ['s1', 's2', 's3']
        assert int(data.in_control.sum()) == 30

    def test_from_dataframe_missing_label(self):
        df = pd.DataFrame({'a': [1.0, 2.0], 'b': [3.0, 4.0]})

        with pytest.raises(ValueError, match="Label column"):
            LabelledObservations.from_dataframe(df, label_col='label')

    def test_from_dataframe_missing_feature(self):
        df = pd.DataFrame({'a': [1.0, 2.0], 'label': [1, 1]})

        with pytest.raises(ValueError, match="Feature columns"):
            LabelledObservations.from_dataframe(df, label_col='label', feature_cols=['a', 'z'])


class TestDrawSubsamples:

    def test_shapes(self):
        reference, stream = draw_subsamples(create_labelled_data(), n_reference=25, n_monitor=15, seed=0)

        assert reference.shape == (25, 3)
        assert stream.shape == (15, 3)

    def test_reference_is_in_control_and_disjoint(self):
        data = create_labelled_data()
        reference, stream = draw_subsamples(data, n_reference=30, n_monitor=30, seed=2)

        in_control_rows = rows_as_set(data.values[data.in_control])
        assert rows_as_set(reference) <= in_control_rows
        assert not rows_as_set(reference) & rows_as_set(stream)

    def test_same_seed_same_draw(self):
        data = create_labelled_data()

        a = draw_subsamples(data, n_reference=20, n_monitor=10, seed=42)
        b = draw_subsamples(data, n_reference=20, n_monitor=10, seed=42)

        np.testing.assert_array_equal(a[0], b[0])
        np.testing.assert_array_equal(a[1], b[1])

    def test_out_of_control_stream(self):
        data = create_labelled_data()
        _, stream = draw_subsamples(data, n_reference=20, n_monitor=20, seed=3, monitor_from='out_of_control')

        assert rows_as_set(stream) <= rows_as_set(data.values[~data.in_control])

    def test_in_control_stream(self):
        data = create_labelled_data()
        _, stream = draw_subsamples(data, n_reference=20, n_monitor=20, seed=3, monitor_from='in_control')

        assert rows_as_set(stream) <= rows_as_set(data.values[data.in_control])

    def test_outputs_are_writable_copies(self):
        data = create_labelled_data()
        reference, _ = draw_subsamples(data, n_reference=20, n_monitor=5, seed=0)

        reference[0, 0] = 1e6

        assert not np.any(data.values == 1e6)

    def test_too_many_reference_rows(self):
        with pytest.raises(ValueError, match="in-control rows available"):
            draw_subsamples(create_labelled_data(), n_reference=41, n_monitor=5)

    def test_too_many_monitor_rows(self):
        with pytest.raises(ValueError, match="rows remain"):
            draw_subsamples(create_labelled_data(), n_reference=30, n_monitor=11, monitor_from='in_control')

    def test_unknown_source(self):
        with pytest.raises(ValueError, match="monitor_from"):
            draw_subsamples(create_labelled_data(), n_reference=10, n_monitor=5, monitor_from='faulty')
