#!/usr/bin/env python3
"""
queue-eta - wait-time estimation for a remote wait queue.

Subcommands:
- new:   create an untrained model file from a layer list
- stat:  compare models and the baseline estimator on a directory of queue logs
- train: train a model on a directory of queue logs, rewriting the model file

The orchestration functions below take explicit inputs so tests can call
them without going through argument parsing.
"""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .csv_processor import CSVProcessingError, load_csv_dir, successful_runs
from .features import N_FEATURES, build_training_set
from .network import (
    HaltCondition,
    NeuralNet,
    TrainParams,
    get_default_train_params,
)
from .queue_run import QueueRun
from .report import (
    assemble_text_report,
    build_comparison_frame,
    build_report_points,
)
from .utils import layers_to_string, parse_layers, write_text_file

# Configure logging for debugging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


# -------------------------
# Model files
# -------------------------
def load_model(path: Path) -> NeuralNet:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Model file not found: {path}")
    return NeuralNet.from_json(path.read_text(encoding="utf-8"))


def save_model(net: NeuralNet, path: Path) -> Path:
    return write_text_file(path, net.to_json())


def model_path_for(
    layers: List[int], path: Optional[Path], directory: Optional[Path]
) -> Path:
    """Explicit path, or <directory>/<layers>.json when only a directory is given."""
    if (path is None) == (directory is None):
        raise ValueError("Exactly one of --path or --dir must be specified")
    if path is not None:
        return Path(path)
    return Path(directory) / f"{layers_to_string(layers)}.json"


# -------------------------
# Data loading
# -------------------------
def load_runs(data_dir: Path) -> List[Tuple[QueueRun, Path]]:
    """
    Load every parseable run in data_dir.

    Raises:
        ValueError: if no file in the directory yields a run
    """
    results = list(load_csv_dir(data_dir))
    runs = list(successful_runs(results))
    failed = len(results) - len(runs)
    if failed:
        logger.info("Ignored %d of %d entries in %s", failed, len(results), data_dir)
    if not runs:
        raise ValueError(f"No usable queue runs found in {data_dir}")
    logger.info("Loaded %d runs from %s", len(runs), data_dir)
    return runs


# -------------------------
# Commands
# -------------------------
def run_new(
    layers: List[int],
    path: Optional[Path] = None,
    directory: Optional[Path] = None,
    force: bool = False,
    random_state: Optional[int] = None,
) -> Path:
    target = model_path_for(layers, path, directory)
    if not force and target.exists():
        raise FileExistsError(
            f"If you really want to overwrite the model at {target}, pass --force"
        )
    net = NeuralNet.new(layers, random_state=random_state)
    save_model(net, target)
    print(f"created model {target} with layers {layers_to_string(layers)}")
    return target


def run_stat(data_dir: Path, model_paths: Sequence[Path]) -> str:
    runs = load_runs(data_dir)
    models = [(str(p), load_model(p)) for p in model_paths]
    points = build_report_points(runs)
    df_comparison = build_comparison_frame(points, models)
    report = assemble_text_report(points, df_comparison)
    print(report)
    return report


def run_train(
    data_dir: Path,
    model_path: Path,
    params: TrainParams,
    loop: bool = True,
    logging_enabled: bool = True,
) -> NeuralNet:
    """
    Train the model at model_path, saving it after every pass.

    With loop=True training passes repeat until interrupted.
    """
    net = load_model(model_path)
    if net.n_inputs != N_FEATURES:
        raise ValueError(
            f"Model at {model_path} takes {net.n_inputs} inputs, expected {N_FEATURES}"
        )

    runs = load_runs(data_dir)
    points = build_report_points(runs)
    inputs, targets = build_training_set(run for run, _ in runs)
    if len(inputs) == 0:
        raise ValueError(f"No training examples could be built from {data_dir}")

    while True:
        if logging_enabled:
            df_comparison = build_comparison_frame(points, [("new", net)])
            print(assemble_text_report(points, df_comparison))

        net.train(inputs, targets, params)
        save_model(net, model_path)
        logger.info("Saved model to %s", str(model_path))

        if not loop:
            break
    return net


# -------------------------
# CLI
# -------------------------
def _build_cli_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="queue-eta",
        description="Queue wait-time estimation (new -> train -> stat).",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--print-defaults",
        action="store_true",
        help="Print default training parameter values and exit.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Debug logging and full tracebacks (also QUEUE_ETA_DEBUG=1).",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p_new = sub.add_parser(
        "new",
        help="Create a new untrained model file.",
        description=(
            "Create a new neural network with the given layers. With --dir the "
            "model file is named after the layers."
        ),
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    g_target = p_new.add_mutually_exclusive_group(required=True)
    g_target.add_argument("-p", "--path", type=Path, help="Path of the model file.")
    g_target.add_argument(
        "-d", "--dir", type=Path, help="Directory in which to place the model file."
    )
    p_new.add_argument(
        "-f", "--force", action="store_true", help="Overwrite an existing model file."
    )
    p_new.add_argument(
        "--seed", type=int, default=None, help="Random seed for weight initialization."
    )
    p_new.add_argument(
        "layers",
        nargs="+",
        help="Layer sizes, for example 10-6-2-4-1 (input must be 10).",
    )

    p_stat = sub.add_parser(
        "stat",
        help="Compare models and the baseline on a data directory.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    p_stat.add_argument("data_dir", type=Path, help="Directory of queue logs.")
    p_stat.add_argument("models", type=Path, nargs="*", help="Model files to compare.")

    d = get_default_train_params()
    p_train = sub.add_parser(
        "train",
        help="Train a model on a data directory (rewrites the model file).",
        description=(
            "Train the model on the data. Changes apply immediately; back up the "
            "model file first if needed."
        ),
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    p_train.add_argument("data_dir", type=Path, help="Directory of queue logs.")
    p_train.add_argument("model", type=Path, help="Model file to train.")
    p_train.add_argument(
        "-l",
        "--loop",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Repeat training passes until interrupted (ignored with --mse).",
    )
    p_train.add_argument(
        "--logging",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Print the comparison report before every pass.",
    )
    p_train.add_argument(
        "--logging-err-rate",
        type=int,
        default=d.log_interval,
        help="Log the training error every N epochs.",
    )
    g_halt = p_train.add_mutually_exclusive_group()
    g_halt.add_argument(
        "-t",
        "--timer",
        type=float,
        help=f"Train for this many seconds per pass (default {d.halt_condition.value:g}).",
    )
    g_halt.add_argument("-e", "--epochs", type=int, help="Train this many epochs per pass.")
    g_halt.add_argument(
        "-m", "--mse", type=float, help="Train until this training error is reached."
    )
    p_train.add_argument(
        "--momentum", type=float, default=d.momentum, help="SGD momentum."
    )
    p_train.add_argument(
        "--rate", type=float, default=d.rate, help="SGD learning rate."
    )
    return parser


def _args_to_train_params(args) -> Tuple[TrainParams, bool]:
    """TrainParams plus the effective loop flag (looping is disabled by --mse)."""
    d = get_default_train_params()
    if args.mse is not None:
        halt = HaltCondition.mse(args.mse)
    elif args.epochs is not None:
        halt = HaltCondition.epochs(args.epochs)
    elif args.timer is not None:
        halt = HaltCondition.timer(args.timer)
    else:
        halt = d.halt_condition
    params = TrainParams(
        halt_condition=halt,
        momentum=args.momentum,
        rate=args.rate,
        log_interval=args.logging_err_rate,
    )
    loop = bool(args.loop) and args.mse is None
    return params, loop


def _parse_layer_args(tokens: Sequence[str]) -> List[int]:
    layers: List[int] = []
    for token in tokens:
        layers.extend(parse_layers(token))
    return layers


def _defaults_payload() -> dict:
    d = get_default_train_params()
    return {
        "TrainParams": {
            "halt_condition": {
                "kind": d.halt_condition.kind.name,
                "value": d.halt_condition.value,
            },
            "momentum": d.momentum,
            "rate": d.rate,
            "log_interval": d.log_interval,
        },
        "loop": True,
        "logging": True,
    }


def _dispatch(args) -> None:
    if args.command == "new":
        layers = _parse_layer_args(args.layers)
        run_new(
            layers,
            path=args.path,
            directory=args.dir,
            force=args.force,
            random_state=args.seed,
        )
    elif args.command == "stat":
        run_stat(args.data_dir, args.models)
    elif args.command == "train":
        params, loop = _args_to_train_params(args)
        run_train(
            args.data_dir,
            args.model,
            params,
            loop=loop,
            logging_enabled=args.logging,
        )
    else:
        raise ValueError("A command is required: new, stat or train")


def main(argv: Optional[List[str]] = None) -> None:
    """
    CLI entry point. Parses arguments then runs the selected command.
    """
    argv = sys.argv[1:] if argv is None else list(argv)

    if "--print-defaults" in argv:
        import json

        print(json.dumps(_defaults_payload(), indent=2))
        return

    parser = _build_cli_parser()
    args = parser.parse_args(argv)
    debug_mode = bool(
        getattr(args, "debug", False) or os.getenv("QUEUE_ETA_DEBUG", "") == "1"
    )
    if debug_mode:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        _dispatch(args)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user", file=sys.stderr)
        sys.exit(1)
    except (
        FileNotFoundError,
        FileExistsError,
        ValueError,
        CSVProcessingError,
    ) as e:
        # Concise, user-facing errors for common/user-correctable problems.
        logger.info("User-facing error: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except Exception as e:
        logger.exception("Unhandled exception during execution")
        if debug_mode:
            import traceback

            traceback.print_exc()
        else:
            print(f"Unexpected error: {e}", file=sys.stderr)
            print(
                "Run with --debug or set QUEUE_ETA_DEBUG=1 to see the full traceback.",
                file=sys.stderr,
            )
        sys.exit(1)


if __name__ == "__main__":
    main()
