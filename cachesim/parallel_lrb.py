"""Learned-relaxed-Belady training that runs in a background thread.

Requests fill a front batch while a full batch is trained in the
background; the two batches swap under a lock when the front one fills.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Mapping

from cachesim.lrb_meta import N_EDC_FEATURE, LRBConfig, LRBMeta
from cachesim.lrb_training import TrainingData

logger = logging.getLogger(__name__)

_TRAINING_PARAM_NAMES = ("num_iterations", "learning_rate", "num_threads", "num_leaves")


@dataclass
class ParallelLRBConfig(LRBConfig):
    """Parameters of the concurrent learned-relaxed-Belady cache."""

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> "ParallelLRBConfig":
        """Build a config from string parameters; unknown names are logged and ignored."""
        config = cls()
        for name, value in params.items():
            if name == "sample_rate":
                config.sample_rate = int(value)
            elif name == "memory_window":
                config.memory_window = int(value)
            elif name == "max_n_past_timestamps":
                config.max_n_past_timestamps = int(value)
            elif name == "batch_size":
                config.batch_size = int(value)
            elif name == "n_extra_fields":
                config.n_extra_fields = int(value)
            elif name in _TRAINING_PARAM_NAMES:
                config.training_params[name] = value
            elif name == "n_edc_feature":
                if int(value) != N_EDC_FEATURE:
                    raise ValueError(f"n_edc_feature is fixed at {N_EDC_FEATURE}")
            else:
                logger.warning("LRB unrecognized parameter: %s", name)
        config._validate()
        return config

    @property
    def inference_params(self) -> dict[str, str]:
        """Parameters used for prediction; the same as those used for training."""
        return self.booster_params()


class DoubleBufferedTrainingData:
    """A front batch that collects rows and a background batch being trained on."""

    def __init__(self, config: LRBConfig | None = None) -> None:
        self.config = config if config is not None else ParallelLRBConfig()
        self._front = TrainingData(self.config)
        self._background = TrainingData(self.config)
        self._lock = threading.Lock()

    def emplace_back(self, meta: LRBMeta, sample_timestamp: int, future_interval: int) -> None:
        """Append a labelled row to the front batch."""
        with self._lock:
            self._front.emplace_back(meta, sample_timestamp, future_interval)

    def swap_if_full(self) -> TrainingData | None:
        """Swap the batches when the front one is full and return the full batch.

        The returned batch must be cleared by the caller before the next swap.
        """
        with self._lock:
            if not self._front.is_full:
                return None
            if len(self._background):
                raise RuntimeError("background batch was not cleared")
            self._front, self._background = self._background, self._front
            return self._background

    def __len__(self) -> int:
        with self._lock:
            return len(self._front)


class BackgroundTrainer:
    """Polls a double-buffered batch and trains on it whenever it fills."""

    def __init__(
        self,
        buffer: DoubleBufferedTrainingData,
        train: Callable[[TrainingData], None],
        interval: float = 0.01,
    ) -> None:
        self.buffer = buffer
        self._train = train
        self.interval = interval
        self.n_trained = 0
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._error: BaseException | None = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                batch = self.buffer.swap_if_full()
                if batch is None:
                    continue
                self._train(batch)
                batch.clear()
                self.n_trained += 1
            except BaseException as exc:  # surfaced by stop()
                self._error = exc
                return

    def start(self) -> None:
        """Start the training thread."""
        if self._thread is not None:
            raise RuntimeError("trainer already started")
        self._stop.clear()
        self._error = None
        self._thread = threading.Thread(target=self._run, name="lrb-trainer", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the training thread and re-raise any error it hit."""
        thread = self._thread
        if thread is None:
            return
        self._stop.set()
        thread.join()
        self._thread = None
        if self._error is not None:
            error, self._error = self._error, None
            raise error

    def __enter__(self) -> "BackgroundTrainer":
        self.start()
        return self

    def __exit__(self, *args) -> None:
        self.stop()