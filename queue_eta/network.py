"""
Trainable wait-time model.

NeuralNet is a small multilayer perceptron built on scikit-learn's
MLPRegressor, exposing only what the pipeline needs: build from a layer list,
persist as JSON text, run one input vector, and train until a halting rule.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Optional, Sequence

import numpy as np
from sklearn.metrics import mean_squared_error
from sklearn.neural_network import MLPRegressor

from .utils import canonical_json_dumps

logger = logging.getLogger(__name__)

MODEL_FORMAT_VERSION = "1"
# Only the most recent training errors are kept in model files.
LOSS_HISTORY_SIZE = 100


class HaltKind(Enum):
    EPOCHS = auto()
    TIMER = auto()
    MSE = auto()


@dataclass(frozen=True)
class HaltCondition:
    """
    When a training pass stops.

    - EPOCHS: after `value` epochs
    - TIMER:  once `value` seconds of wall-clock time have elapsed
    - MSE:    once the training mean squared error is at or below `value`
    """

    kind: HaltKind
    value: float

    @classmethod
    def epochs(cls, n: int) -> "HaltCondition":
        if n < 1:
            raise ValueError(f"Epoch count must be positive, got {n}")
        return cls(HaltKind.EPOCHS, int(n))

    @classmethod
    def timer(cls, seconds: float) -> "HaltCondition":
        if seconds <= 0:
            raise ValueError(f"Timer must be positive, got {seconds}")
        return cls(HaltKind.TIMER, float(seconds))

    @classmethod
    def mse(cls, target: float) -> "HaltCondition":
        if target <= 0:
            raise ValueError(f"Target MSE must be positive, got {target}")
        return cls(HaltKind.MSE, float(target))

    def reached(self, epochs_done: int, elapsed_s: float, mse: float) -> bool:
        if self.kind is HaltKind.EPOCHS:
            return epochs_done >= self.value
        if self.kind is HaltKind.TIMER:
            return elapsed_s >= self.value
        return mse <= self.value

    def describe(self) -> str:
        return f"{self.kind.name.lower()}={self.value:g}"


@dataclass
class TrainParams:
    halt_condition: HaltCondition = field(
        default_factory=lambda: HaltCondition.timer(10)
    )
    momentum: float = 0.1
    rate: float = 0.3
    # Log the training error every N epochs; None disables it.
    log_interval: Optional[int] = None


def get_default_train_params() -> TrainParams:
    """Single source of the training defaults shown by the CLI."""
    return TrainParams(
        halt_condition=HaltCondition.timer(10),
        momentum=0.1,
        rate=0.3,
        log_interval=None,
    )


def _glorot_init(
    layers: Sequence[int], rng: np.random.RandomState
) -> tuple[list[np.ndarray], list[np.ndarray]]:
    # Same bounds scikit-learn uses for logistic activations.
    coefs, intercepts = [], []
    for fan_in, fan_out in zip(layers[:-1], layers[1:]):
        bound = np.sqrt(2.0 / (fan_in + fan_out))
        coefs.append(rng.uniform(-bound, bound, (fan_in, fan_out)))
        intercepts.append(rng.uniform(-bound, bound, fan_out))
    return coefs, intercepts


class NeuralNet:
    """
    Wrapper around a fitted-state MLPRegressor.

    The estimator always carries weights, either freshly initialized by
    `new()` or restored by `from_json()`, so `run()` works before any
    training and `train()` continues from the stored weights.
    """

    def __init__(
        self,
        layers: Sequence[int],
        coefs: Sequence[np.ndarray],
        intercepts: Sequence[np.ndarray],
        epochs: int = 0,
        t: int = 0,
        loss_curve: Optional[list[float]] = None,
    ) -> None:
        layers = [int(x) for x in layers]
        if len(layers) < 2 or any(x < 1 for x in layers):
            raise ValueError(
                f"Layers must list at least input and output sizes, all positive: {layers}"
            )
        self.layers = layers
        self.estimator = MLPRegressor(
            hidden_layer_sizes=tuple(layers[1:-1]),
            activation="logistic",
            solver="sgd",
            batch_size="auto",
            shuffle=True,
        )
        self._epochs = int(epochs)
        self._loss_history = list(loss_curve or [])[-LOSS_HISTORY_SIZE:]
        self._restore_state(coefs, intercepts, t)

    def _restore_state(self, coefs, intercepts, t) -> None:
        est = self.estimator
        coefs = [np.asarray(c, dtype=float) for c in coefs]
        intercepts = [np.asarray(b, dtype=float) for b in intercepts]
        expected = [(a, b) for a, b in zip(self.layers[:-1], self.layers[1:])]
        if [c.shape for c in coefs] != expected or [b.shape for b in intercepts] != [
            (b,) for _, b in expected
        ]:
            raise ValueError(
                f"Stored weights do not match layers {self.layers}: "
                f"{[c.shape for c in coefs]}"
            )
        est.coefs_ = coefs
        est.intercepts_ = intercepts
        est.n_features_in_ = self.layers[0]
        est.n_outputs_ = self.layers[-1]
        est.n_layers_ = len(self.layers)
        est.out_activation_ = "identity"
        # partial_fit restarts n_iter_ on every call; epochs are counted in _epochs.
        est.n_iter_ = 0
        est.t_ = int(t)
        est.loss_curve_ = []
        est.best_loss_ = np.inf
        est._no_improvement_count = 0

    @classmethod
    def new(cls, layers: Sequence[int], random_state: Optional[int] = None) -> "NeuralNet":
        """Build an untrained network, e.g. new([10, 6, 1])."""
        layers = [int(x) for x in layers]
        if len(layers) < 2 or any(x < 1 for x in layers):
            raise ValueError(
                f"Layers must list at least input and output sizes, all positive: {layers}"
            )
        coefs, intercepts = _glorot_init(layers, np.random.RandomState(random_state))
        return cls(layers, coefs, intercepts)

    @property
    def n_inputs(self) -> int:
        return self.layers[0]

    @property
    def n_outputs(self) -> int:
        return self.layers[-1]

    @property
    def epochs_trained(self) -> int:
        return self._epochs

    def run(self, inputs) -> np.ndarray:
        """Output vector for one input vector."""
        x = np.asarray(inputs, dtype=float).reshape(1, -1)
        if x.shape[1] != self.n_inputs:
            raise ValueError(
                f"Expected {self.n_inputs} inputs, got {x.shape[1]}"
            )
        return np.asarray(self.estimator.predict(x), dtype=float).reshape(-1)

    def predict(self, inputs) -> np.ndarray:
        """Outputs for a batch of inputs, shape (n, n_outputs)."""
        x = np.asarray(inputs, dtype=float)
        return np.asarray(self.estimator.predict(x), dtype=float).reshape(
            len(x), self.n_outputs
        )

    def mse(self, inputs, targets) -> float:
        return float(mean_squared_error(targets, self.predict(inputs)))

    def train(self, inputs, targets, params: TrainParams) -> float:
        """
        Train until params.halt_condition holds. Returns the final training MSE.

        Each epoch is one pass of scikit-learn's partial_fit with SGD using
        params.rate as learning rate and params.momentum as momentum.
        """
        x = np.asarray(inputs, dtype=float)
        y = np.asarray(targets, dtype=float).reshape(len(x), self.n_outputs)
        if x.ndim != 2 or x.shape[1] != self.n_inputs:
            raise ValueError(f"Expected inputs of shape (n, {self.n_inputs}), got {x.shape}")
        if len(x) == 0:
            raise ValueError("Cannot train on an empty data set")
        if self.n_outputs == 1:
            y = y.ravel()

        self.estimator.set_params(
            learning_rate_init=params.rate, momentum=params.momentum
        )
        # The optimizer keeps the learning rate it was built with.
        if hasattr(self.estimator, "_optimizer"):
            del self.estimator._optimizer

        halt = params.halt_condition
        started = time.perf_counter()
        epochs = 0
        mse = self.mse(x, y)
        logger.info(
            "Training on %d examples until %s (start mse=%.6f)",
            len(x),
            halt.describe(),
            mse,
        )
        while True:
            self.estimator.partial_fit(x, y)
            epochs += 1
            self._epochs += 1
            mse = self.mse(x, y)
            self._loss_history = (self._loss_history + [mse])[-LOSS_HISTORY_SIZE:]
            if params.log_interval and epochs % params.log_interval == 0:
                logger.info("epoch %d: mse=%.6f", epochs, mse)
            if halt.reached(epochs, time.perf_counter() - started, mse):
                break
        logger.info("Trained %d epochs, mse=%.6f", epochs, mse)
        return mse

    def to_dict(self) -> dict[str, Any]:
        est = self.estimator
        return {
            "format_version": MODEL_FORMAT_VERSION,
            "layers": list(self.layers),
            "coefs": [c.tolist() for c in est.coefs_],
            "intercepts": [b.tolist() for b in est.intercepts_],
            "epochs": self._epochs,
            "t": int(est.t_),
            "loss_curve": [float(x) for x in self._loss_history],
        }

    def to_json(self) -> str:
        return canonical_json_dumps(self.to_dict())

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "NeuralNet":
        version = str(payload.get("format_version"))
        if version != MODEL_FORMAT_VERSION:
            raise ValueError(f"Unsupported model format version: {version}")
        try:
            return cls(
                layers=payload["layers"],
                coefs=payload["coefs"],
                intercepts=payload["intercepts"],
                epochs=payload.get("epochs", 0),
                t=payload.get("t", 0),
                loss_curve=payload.get("loss_curve", []),
            )
        except KeyError as e:
            raise ValueError(f"Model payload is missing {e}") from e

    @classmethod
    def from_json(cls, text: str) -> "NeuralNet":
        return cls.from_dict(json.loads(text))
