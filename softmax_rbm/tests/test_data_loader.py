"""Tests for dataset boundary decoding and partitioning."""
import numpy as np
import pandas as pd
import pytest

from softmax_rbm.src.data_loader import (
    RatingRecord, load_packed_dataset, load_ratings_frame, partitions_from_frame, unpack_entries,
)


def _pack(item, category, item_bits=15):
    return (category << item_bits) | item


class TestUnpackEntries:
    """Tests for bit-packed entry decoding."""

    def test_splits_item_and_category(self):
        entries = [_pack(17769, 4), _pack(0, 0), _pack(123, 2)]
        items, categories = unpack_entries(entries)
        assert items.tolist() == [17769, 0, 123]
        assert categories.tolist() == [4, 0, 2]

    def test_custom_item_bits(self):
        items, categories = unpack_entries([_pack(5, 3, item_bits=4)], item_bits=4)
        assert items.tolist() == [5]
        assert categories.tolist() == [3]

    def test_rejects_out_of_range_category(self):
        with pytest.raises(ValueError):
            unpack_entries([_pack(1, 6)])


class TestLoadPackedDataset:
    """Tests for building partitions from the packed layout."""

    def test_segments(self):
        entries = [_pack(0, 1), _pack(1, 2), _pack(2, 3), _pack(3, 0),
                   _pack(1, 4), _pack(2, 0)]
        index = [(0, 2, 1, 1), (4, 1, 1, 0)]
        partitions = load_packed_dataset(entries, index)
        assert len(partitions) == 2
        first, second = partitions
        assert first.training == [RatingRecord(0, 0, 1), RatingRecord(0, 1, 2)]
        assert first.probe == [RatingRecord(0, 2, 3)]
        assert first.qualifying == [RatingRecord(0, 3, 0)]
        assert second.training == [RatingRecord(1, 1, 4)]
        assert second.probe == [RatingRecord(1, 2, 0)]
        assert second.qualifying == []

    def test_empty_training_segment(self):
        partitions = load_packed_dataset([_pack(0, 1)], [(0, 0, 1, 0)])
        assert partitions[0].training == []
        assert len(partitions[0].touched) == 1


class TestPartitionsFromFrame:
    """Tests for grouping a ratings table by user and segment."""

    @pytest.fixture
    def ratings(self):
        return pd.DataFrame({
            "user_id": [1, 0, 0, 1, 0, 1],
            "item_id": [2, 0, 1, 0, 2, 1],
            "rating": [5, 1, 3, 4, 2, 1],
            "segment": ["probe", "training", "qualifying", "training", "probe", "training"],
        })

    def test_groups_and_orders(self, ratings):
        partitions, n_items = partitions_from_frame(ratings)
        assert n_items == 3
        assert [p.user_id for p in partitions] == [0, 1]
        user0, user1 = partitions
        assert user0.training == [RatingRecord(0, 0, 0)]
        assert user0.probe == [RatingRecord(0, 2, 1)]
        assert user0.qualifying == [RatingRecord(0, 1, 2)]
        assert user1.training == [RatingRecord(1, 0, 3), RatingRecord(1, 1, 0)]
        assert user1.probe == [RatingRecord(1, 2, 4)]

    def test_rejects_unknown_segment(self, ratings):
        ratings.loc[0, "segment"] = "holdout"
        with pytest.raises(ValueError):
            partitions_from_frame(ratings)

    def test_rejects_out_of_range_rating(self, ratings):
        ratings.loc[0, "rating"] = 6
        with pytest.raises(ValueError):
            partitions_from_frame(ratings)


class TestLoadRatingsFrame:
    """Tests for reading ratings files."""

    def test_reads_csv(self, tmp_path):
        path = tmp_path / "ratings.csv"
        pd.DataFrame({"user_id": [0], "item_id": [0], "rating": [3], "segment": ["training"]}).to_csv(path, index=False)
        frame = load_ratings_frame(str(path))
        assert len(frame) == 1

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_ratings_frame(str(tmp_path / "missing.csv"))

    def test_missing_columns(self, tmp_path):
        path = tmp_path / "ratings.csv"
        pd.DataFrame({"user_id": [0], "item_id": [0]}).to_csv(path, index=False)
        with pytest.raises(ValueError):
            load_ratings_frame(str(path))
