"""Error conditions that abort an RBM training run."""


class RBMError(Exception):
    """Base class for training failures; none of these are retried."""


class DataDegenerate(RBMError):
    """An item's empirical counts make the visible-bias log undefined."""

    def __init__(self, item_id, category=None, counts=None):
        self.item_id = item_id
        self.category = category
        self.counts = counts
        if category is None:
            message = f"Item {item_id} has no training observations"
        else:
            message = (f"Item {item_id} has zero training observations for category "
                       f"{category} (counts={counts})")
        super().__init__(message)


class NumericInstability(RBMError):
    """Parameters became non-finite during an update."""


class ConfigurationMismatch(RBMError):
    """Hidden-unit count has no matching learning-rate decay preset."""
