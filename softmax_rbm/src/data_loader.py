"""Rating dataset loading and per-user segment partitioning."""
import logging
import os
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

import numpy as np
import pandas as pd

from ..constants import ITEM_BITS, CATEGORY_MASK, N_CATEGORIES

logger = logging.getLogger(__name__)

SEGMENTS = ("training", "probe", "qualifying")
REQUIRED_COLUMNS = ["user_id", "item_id", "rating", "segment"]


@dataclass(frozen=True)
class RatingRecord:
    user_id: int
    item_id: int
    category: int


@dataclass
class UserPartition:
    """A user's ordered records split into training, probe and qualifying segments."""

    user_id: int
    training: List[RatingRecord] = field(default_factory=list)
    probe: List[RatingRecord] = field(default_factory=list)
    qualifying: List[RatingRecord] = field(default_factory=list)

    @property
    def touched(self) -> List[RatingRecord]:
        """Records that take part in reconstruction: training then probe."""
        return self.training + self.probe

    @property
    def records(self) -> List[RatingRecord]:
        return self.training + self.probe + self.qualifying

    def training_arrays(self) -> Tuple[np.ndarray, np.ndarray]:
        return _as_arrays(self.training)

    def touched_arrays(self) -> Tuple[np.ndarray, np.ndarray]:
        return _as_arrays(self.touched)


def _as_arrays(records: Sequence[RatingRecord]) -> Tuple[np.ndarray, np.ndarray]:
    items = np.fromiter((r.item_id for r in records), dtype=np.int64, count=len(records))
    categories = np.fromiter((r.category for r in records), dtype=np.int64, count=len(records))
    return items, categories


def unpack_entries(entries, item_bits: int = ITEM_BITS) -> Tuple[np.ndarray, np.ndarray]:
    """Split packed entries into item ids (low bits) and categories (next 3 bits)."""
    entries = np.asarray(entries, dtype=np.int64)
    items = entries & ((1 << item_bits) - 1)
    categories = (entries >> item_bits) & CATEGORY_MASK
    if categories.size and categories.max() >= N_CATEGORIES:
        raise ValueError(f"Packed entry has category {int(categories.max())}, expected < {N_CATEGORIES}")
    return items, categories


def load_packed_dataset(entries, index, item_bits: int = ITEM_BITS) -> List[UserPartition]:
    """Build partitions from a packed entry array and a (base, n_train, n_probe, n_qual) index."""
    items, categories = unpack_entries(entries, item_bits=item_bits)
    index = np.asarray(index, dtype=np.int64)
    partitions = []
    for user_id, (base, n_train, n_probe, n_qual) in enumerate(index):
        bounds = np.cumsum([base, n_train, n_probe, n_qual])
        segments = []
        for start, stop in zip(bounds[:-1], bounds[1:]):
            segments.append([
                RatingRecord(user_id, int(items[j]), int(categories[j]))
                for j in range(start, stop)
            ])
        partitions.append(UserPartition(user_id, *segments))
    return partitions


def load_ratings_frame(path: str) -> pd.DataFrame:
    """Read a ratings table from CSV or Parquet."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"Ratings file not found: {path}")
    if path.endswith(".parquet"):
        ratings = pd.read_parquet(path)
    else:
        ratings = pd.read_csv(path)
    missing = [c for c in REQUIRED_COLUMNS if c not in ratings.columns]
    if missing:
        raise ValueError(f"Ratings file {path} is missing columns: {missing}")
    logger.info(f"Loaded {len(ratings):,} ratings from {path}")
    return ratings


def partitions_from_frame(ratings: pd.DataFrame, min_rating: int = 1) -> Tuple[List[UserPartition], int]:
    """Group a ratings frame into per-user partitions, preserving row order within a segment.

    Returns the partitions (ordered by user id) and the item count, taken as
    one past the largest item id.
    """
    unknown = set(ratings["segment"].unique()) - set(SEGMENTS)
    if unknown:
        raise ValueError(f"Unknown segment labels: {sorted(unknown)}")
    categories = ratings["rating"].astype(int) - min_rating
    if len(categories) and (categories.min() < 0 or categories.max() >= N_CATEGORIES):
        raise ValueError(f"Ratings must lie in [{min_rating}, {min_rating + N_CATEGORIES - 1}]")

    frame = ratings.assign(category=categories)
    frame["segment"] = pd.Categorical(frame["segment"], categories=list(SEGMENTS), ordered=True)
    frame = frame.sort_values(["user_id", "segment"], kind="stable")

    partitions = []
    for user_id, user_rows in frame.groupby("user_id", sort=True, observed=True):
        partition = UserPartition(int(user_id))
        for segment, rows in user_rows.groupby("segment", sort=True, observed=True):
            getattr(partition, segment).extend(
                RatingRecord(int(user_id), int(i), int(c))
                for i, c in zip(rows["item_id"], rows["category"])
            )
        partitions.append(partition)

    n_items = int(frame["item_id"].max()) + 1 if len(frame) else 0
    logger.info(f"Partitioned {len(partitions):,} users over {n_items:,} items")
    return partitions, n_items
