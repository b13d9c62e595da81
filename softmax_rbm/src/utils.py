import logging
import os
from typing import Sequence

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import torch

from ..constants import DEFAULT_FIGURE_SIZE, OUTPUT_DIR, MODEL_FILE, RESIDUALS_FILE
from .model import SoftmaxRBM

logger = logging.getLogger(__name__)


def _resolve_output(path, default_name):
    if path is None:
        path = os.path.join(OUTPUT_DIR, default_name)
    os.makedirs(os.path.dirname(path) or OUTPUT_DIR, exist_ok=True)
    return path


def save_model(rbm: SoftmaxRBM, model_path: str = None) -> str:
    """Write W, visible biases and hidden biases as a torch state dict."""
    model_path = _resolve_output(model_path, MODEL_FILE)
    torch.save(rbm.state_dict(), model_path)
    logger.info(f"Model saved -> {model_path}")
    return model_path


def load_model(model_path: str, n_items: int, n_hidden: int, device='cpu') -> SoftmaxRBM:
    rbm = SoftmaxRBM(n_items=n_items, n_hidden=n_hidden)
    rbm.load_state_dict(torch.load(model_path, map_location=device))
    return rbm.to(device)


def save_residuals(residuals: np.ndarray, residuals_path: str = None) -> str:
    residuals_path = _resolve_output(residuals_path, RESIDUALS_FILE)
    np.save(residuals_path, residuals)
    logger.info(f"Saved {len(residuals):,} residuals -> {residuals_path}")
    return residuals_path


def plot_training_metrics(train_rmse: Sequence[float], probe_rmse: Sequence[float],
                          output_path: str = None, target_rmse: float = None):
    plt.figure(figsize=DEFAULT_FIGURE_SIZE)
    epochs = range(1, len(train_rmse) + 1)
    plt.plot(epochs, train_rmse, label="Train RMSE")
    plt.plot(epochs, probe_rmse, label="Probe RMSE")
    if target_rmse is not None:
        plt.axhline(target_rmse, linestyle="--", color="gray", label="Reference probe RMSE")
    plt.xlabel("Epoch")
    plt.ylabel("RMSE")
    plt.title("Softmax RBM Training")
    plt.legend()
    plt.grid(True)
    output_path = _resolve_output(output_path, "training_rmse.png")
    plt.savefig(output_path)
    plt.close()
    return output_path
