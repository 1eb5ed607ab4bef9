"""
Tests for MetadataTable: construction, typed columns, row/column subsetting.
"""

import numpy as np
import pandas as pd
import pytest

from expressionkit.core.exceptions import DimensionError, DimensionMismatchError
from expressionkit.core.metadata import MetadataTable, resolve_selector


class TestConstruction:
    """Building tables from column mappings and DataFrames."""

    def test_columns_keep_order_and_length(self):
        table = MetadataTable({'b': [1, 2, 3], 'a': ['x', 'y', 'z']})
        assert table.columns == ['b', 'a']
        assert table.n_rows == 3
        assert len(table) == 3

    def test_unequal_lengths_rejected(self):
        with pytest.raises(DimensionError, match="unequal lengths"):
            MetadataTable({'a': [1, 2, 3], 'b': [1, 2]})

    def test_dimension_error_is_dimension_mismatch(self):
        assert DimensionError is DimensionMismatchError
        assert issubclass(DimensionError, ValueError)

    def test_unknown_id_column_rejected(self):
        with pytest.raises(KeyError):
            MetadataTable({'a': [1, 2]}, id_column='sample_id')

    def test_ids_come_from_id_column(self, sample_table):
        assert list(sample_table.ids) == ['s1', 's2']
        assert sample_table.id_column == 'sample_id'

    def test_no_id_column_means_no_ids(self):
        assert MetadataTable({'a': [1, 2]}).ids is None

    def test_empty_table_with_row_count(self):
        table = MetadataTable(n_rows=4)
        assert table.n_rows == 4
        assert table.columns == []

    def test_series_input_ignores_index(self):
        s = pd.Series([10, 20], index=['p', 'q'])
        table = MetadataTable({'v': s})
        assert table.get_column('v').tolist() == [10, 20]

    def test_from_frame_moves_index_to_id_column(self):
        frame = pd.DataFrame({'dex': ['trt', 'untrt']}, index=pd.Index(['r1', 'r2'], name='Run'))
        table = MetadataTable.from_frame(frame)
        assert table.id_column == 'Run'
        assert table.columns == ['Run', 'dex']
        assert list(table.ids) == ['r1', 'r2']

    def test_from_frame_with_named_id_column(self):
        frame = pd.DataFrame({'Run': ['r1', 'r2'], 'dex': ['trt', 'untrt']})
        table = MetadataTable.from_frame(frame, id_column='Run')
        assert list(table.ids) == ['r1', 'r2']


class TestColumns:
    """get_column / set_column behaviour."""

    def test_get_missing_column(self, sample_table):
        with pytest.raises(KeyError):
            sample_table.get_column('age')

    def test_getitem_and_contains(self, sample_table):
        assert 'group' in sample_table
        assert 'age' not in sample_table
        assert sample_table['group'].tolist() == ['ctrl', 'trt']

    def test_get_column_returns_copy(self):
        table = MetadataTable({'a': [1, 2]})
        col = table.get_column('a')
        col.iloc[0] = 99
        assert table.get_column('a').tolist() == [1, 2]

    def test_set_creates_column(self, sample_table):
        sample_table.set_column('age', [34, 51])
        assert sample_table.columns == ['sample_id', 'group', 'age']
        assert sample_table['age'].tolist() == [34, 51]

    def test_set_wrong_length(self, sample_table):
        with pytest.raises(DimensionError):
            sample_table.set_column('age', [34, 51, 60])

    def test_replace_with_same_dtype(self):
        table = MetadataTable({'reads': np.array([10, 20], dtype=np.int64)})
        table.set_column('reads', np.array([30, 40], dtype=np.int64))
        assert table['reads'].tolist() == [30, 40]

    def test_replace_with_different_dtype_refused(self):
        table = MetadataTable({'reads': np.array([10, 20], dtype=np.int64)})
        with pytest.raises(TypeError, match="refusing"):
            table.set_column('reads', np.array([1.5, 2.5]))
        assert table.dtypes['reads'] == np.dtype(np.int64)

    def test_first_column_sets_row_count(self):
        table = MetadataTable()
        table.set_column('a', [1, 2, 3])
        assert table.n_rows == 3


class TestSubsetting:
    """Row and column subsetting return new tables."""

    @pytest.fixture
    def table(self):
        return MetadataTable(
            {
                'id': ['a', 'b', 'c', 'd'],
                'n': np.array([1, 2, 3, 4], dtype=np.int64),
                'f': np.array([0.1, 0.2, 0.3, 0.4]),
                'group': pd.Categorical(['x', 'y', 'x', 'y']),
            },
            id_column='id',
        )

    def test_by_index_list_in_given_order(self, table):
        sub = table.subset_rows([3, 0])
        assert list(sub.ids) == ['d', 'a']
        assert sub['n'].tolist() == [4, 1]
        assert table.n_rows == 4

    def test_preserves_column_order_and_types(self, table):
        sub = table.subset_rows([1, 2])
        assert sub.columns == table.columns
        assert sub.dtypes == table.dtypes
        assert isinstance(sub['group'].dtype, pd.CategoricalDtype)

    def test_by_boolean_mask(self, table):
        sub = table.subset_rows(table['group'] == 'x')
        assert list(sub.ids) == ['a', 'c']

    def test_mask_length_mismatch(self, table):
        with pytest.raises(DimensionError):
            table.subset_rows([True, False])

    def test_out_of_range_index(self, table):
        with pytest.raises(IndexError):
            table.subset_rows([0, 9])

    def test_by_identifier(self, table):
        assert list(table.subset_rows(['c', 'a']).ids) == ['c', 'a']

    def test_unknown_identifier(self, table):
        with pytest.raises(KeyError):
            table.subset_rows(['zz'])

    def test_identifier_lookup_needs_unique_ids(self):
        table = MetadataTable({'id': ['a', 'a', 'b']}, id_column='id')
        with pytest.raises(KeyError, match="not unique"):
            table.subset_rows(['a'])
        assert table.subset_rows([2]).ids.tolist() == ['b']

    def test_subset_columns(self, table):
        sub = table.subset_columns(['f', 'id'])
        assert sub.columns == ['f', 'id']
        assert sub.id_column == 'id'

    def test_subset_columns_dropping_id(self, table):
        sub = table.subset_columns(['n'])
        assert sub.id_column is None
        assert sub.ids is None

    def test_subset_columns_unknown(self, table):
        with pytest.raises(KeyError):
            table.subset_columns(['n', 'nope'])

    def test_copy_is_independent(self, table):
        clone = table.copy()
        clone.set_column('extra', [0, 0, 0, 0])
        assert 'extra' not in table
        assert not clone.equals(table)
        assert table.copy().equals(table)


class TestResolveSelector:
    """Normalization of selectors to positions."""

    def test_slice(self):
        assert resolve_selector(slice(1, None), 4).tolist() == [1, 2, 3]

    def test_negative_positions(self):
        assert resolve_selector([-1], 3).tolist() == [2]

    def test_empty(self):
        assert resolve_selector([], 3).tolist() == []

    def test_labels_required_for_strings(self):
        with pytest.raises(TypeError):
            resolve_selector(['a'], 3)
