"""A small rating dataset in which every item has every category in training."""
from softmax_rbm.src.data_loader import RatingRecord, UserPartition

N_USERS = 10
N_ITEMS = 4


def make_partitions():
    partitions = []
    for u in range(N_USERS):
        training = [RatingRecord(u, i, (u + i) % 5) for i in range(3)]
        probe = []
        if u < 5:
            training.append(RatingRecord(u, 3, u % 5))
        else:
            probe.append(RatingRecord(u, 3, (2 * u) % 5))
        qualifying = [RatingRecord(u, 1, 0)] if u == 0 else []
        partitions.append(UserPartition(u, training, probe, qualifying))
    return partitions
