"""Softmax RBM training CLI."""
import argparse
import logging
import os
import sys

import mlflow
import yaml

from softmax_rbm.constants import (
    SEED, CONFIG_FILE, OUTPUT_DIR, PROJECT_ROOT, LOG_FORMAT, LOG_DATE_FORMAT, MAX_EPOCHS,
)
from softmax_rbm.src.data_loader import load_ratings_frame, partitions_from_frame
from softmax_rbm.src.exceptions import RBMError
from softmax_rbm.src.model import SoftmaxRBM
from softmax_rbm.src.schedule import decay_schedule_for
from softmax_rbm.src.train import train_rbm
from softmax_rbm.src.utils import save_model, save_residuals, plot_training_metrics

logger = logging.getLogger(__name__)

MLFLOW_EXPERIMENT_NAME = "softmax-rbm-training"
_mlruns_path = os.path.abspath(os.path.join(PROJECT_ROOT, "mlruns"))
MLFLOW_TRACKING_URI = f"file:///{_mlruns_path.replace(os.sep, '/')}"


def load_config(config_path=None):
    """Load YAML configuration file, resolving relative paths against the project root."""
    config_path = config_path or os.path.join(os.path.dirname(__file__), CONFIG_FILE)
    with open(config_path, 'r') as f:
        config = yaml.safe_load(f)
    for section in ('data', 'paths'):
        for k, v in list(config.get(section, {}).items()):
            if isinstance(v, str) and k.endswith(('_file', '_path')) and not os.path.isabs(v):
                if v.startswith('out'):
                    config[section][k] = os.path.normpath(os.path.join(OUTPUT_DIR, os.path.relpath(v, 'out')))
                else:
                    config[section][k] = os.path.normpath(os.path.join(PROJECT_ROOT, v))
    return config


def build_parser(model_cfg):
    parser = argparse.ArgumentParser(description="Softmax RBM rating predictor")
    parser.add_argument('--config', type=str, default=None)
    parser.add_argument('--ratings', type=str, default=None)
    parser.add_argument('--n-hidden', type=int, default=model_cfg.get('n_hidden'))
    parser.add_argument('--max-epochs', type=int, default=model_cfg.get('max_epochs', MAX_EPOCHS))
    parser.add_argument('--seed', type=int, default=model_cfg.get('seed', SEED))
    parser.add_argument('--no-mlflow', action='store_true')
    parser.add_argument('--no-plot', action='store_true')
    return parser


def run(config, ratings_path, n_hidden, max_epochs, seed, use_mlflow=True, plot=True):
    """Load ratings, train, and write the model and residuals."""
    data_cfg = config['data']
    path_cfg = config['paths']
    model_cfg = config['model']

    schedule = decay_schedule_for(n_hidden)
    ratings = load_ratings_frame(ratings_path)
    partitions, n_items = partitions_from_frame(ratings, min_rating=data_cfg.get('min_rating', 1))
    rbm = SoftmaxRBM(n_items=n_items, n_hidden=n_hidden)

    logger.info(f"Training softmax RBM with n_hidden={n_hidden}, n_items={n_items}, "
                f"users={len(partitions)}, max_epochs={max_epochs}, seed={seed}")
    result = train_rbm(
        rbm, partitions, seed=seed,
        batch_size=model_cfg.get('batch_size', 100),
        max_epochs=max_epochs,
        use_mlflow=use_mlflow,
    )

    model_path = save_model(result.rbm, path_cfg.get('model_path'))
    residuals_path = save_residuals(result.residuals, path_cfg.get('residuals_path'))
    if plot and result.history:
        plot_path = plot_training_metrics(
            [r.train_rmse for r in result.history],
            [r.probe_rmse for r in result.history],
            output_path=path_cfg.get('plot_path'),
            target_rmse=schedule.target_probe_rmse,
        )
        if use_mlflow and mlflow.active_run():
            mlflow.log_artifact(plot_path, artifact_path="plots")
    if use_mlflow and mlflow.active_run():
        mlflow.log_artifact(model_path, artifact_path="model")
        mlflow.log_artifact(residuals_path, artifact_path="residuals")
    return result


def main(argv=None):
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    config_parser = argparse.ArgumentParser(add_help=False)
    config_parser.add_argument('--config', type=str, default=None)
    config_args, _ = config_parser.parse_known_args(argv)
    config = load_config(config_args.config)
    args = build_parser(config['model']).parse_args(argv)
    ratings_path = args.ratings or config['data']['ratings_file']

    try:
        if args.no_mlflow:
            run(config, ratings_path, args.n_hidden, args.max_epochs, args.seed,
                use_mlflow=False, plot=not args.no_plot)
        else:
            mlflow.set_tracking_uri(MLFLOW_TRACKING_URI)
            mlflow.set_experiment(MLFLOW_EXPERIMENT_NAME)
            with mlflow.start_run(run_name=f"softmax_rbm_h{args.n_hidden}_seed{args.seed}"):
                run(config, ratings_path, args.n_hidden, args.max_epochs, args.seed,
                    use_mlflow=True, plot=not args.no_plot)
    except RBMError as e:
        logger.error(f"Training aborted: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
