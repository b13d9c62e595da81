import os
from typing import Dict, Tuple

N_CATEGORIES = 5
ITEM_BITS = 15
CATEGORY_MASK = 7

EPSILON_W = 0.001
EPSILON_VB = 0.008
EPSILON_HB = 0.0006
WEIGHT_COST = 0.0001
MOMENTUM = 0.8
FINAL_MOMENTUM = 0.9
MOMENTUM_SWITCH_EPOCH = 5

WEIGHT_INIT_SCALE = 0.01
LOGIT_CLAMP = 50.0

BATCH_SIZE = 100
RMSE_EPSILON = 0.00002
MIN_EPOCHS = 14
MAX_EPOCHS = 80
INITIAL_RMSE = 2.0
INITIAL_LAST_RMSE = 10.0

SAMPLING_WARMUP_EPOCHS = 10
SAMPLING_BASE_STEPS = 3
SAMPLING_STEP_INTERVAL = 5

# (first epoch, factor) pairs, 1-based epoch numbers, checked latest first.
DECAY_SCHEDULES: Dict[int, Tuple[Tuple[int, float], ...]] = {
    100: ((9, 0.92), (7, 0.90), (3, 0.78)),
    200: ((7, 0.90), (6, 0.50), (3, 0.70)),
}
TARGET_PROBE_RMSE: Dict[int, float] = {
    100: 0.918197,
    200: 0.916576,
}

_PKG_DIR = os.path.abspath(os.path.dirname(__file__))
PROJECT_ROOT = os.path.abspath(os.path.join(_PKG_DIR, '..'))
OUTPUT_DIR = os.path.join(PROJECT_ROOT, "out")

CONFIG_FILE = "config.yaml"
MODEL_FILE = "rbm_model.pth"
RESIDUALS_FILE = "rbm_residuals.npy"

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

DEFAULT_FIGURE_SIZE = (10, 6)
SEED = 1234
