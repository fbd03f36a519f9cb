"""Linear-regression cache: learns time-to-next-request from past request gaps."""

from __future__ import annotations

import enum
import logging
import math
import random
from dataclasses import dataclass, field
from typing import Mapping

logger = logging.getLogger(__name__)

_STATUS_INTERVAL = 1_000_000


@dataclass(frozen=True)
class Request:
    """A single request in a trace."""

    id: int
    size: int
    seq: int


class Objective(enum.Enum):
    BYTE_HIT_RATE = "byte_hit_rate"
    OBJECT_HIT_RATE = "object_hit_rate"


@dataclass
class LRConfig:
    """Tunable parameters of :class:`LRCache`."""

    sample_rate: int = 32
    training_sample_interval: int = 32
    forget_window: int = 10_000_000
    learning_rate: float = 0.0001
    max_n_past_timestamps: int = 4
    batch_size: int = 10_000
    objective: Objective = Objective.BYTE_HIT_RATE

    @property
    def log1p_forget_window(self) -> float:
        return math.log1p(self.forget_window)

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> "LRConfig":
        """Build a config from string parameters; unknown names are logged and ignored."""
        config = cls()
        for name, value in params.items():
            if name == "sample_rate":
                config.sample_rate = int(value)
            elif name == "training_sample_interval":
                config.training_sample_interval = int(value)
            elif name == "forget_window":
                config.forget_window = int(value)
            elif name == "learning_rate":
                config.learning_rate = float(value)
            elif name == "max_n_past_timestamps":
                config.max_n_past_timestamps = int(value)
            elif name == "batch_size":
                config.batch_size = int(value)
            elif name == "objective":
                try:
                    config.objective = Objective(value)
                except ValueError:
                    raise ValueError(f"unknown objective: {value!r}") from None
            else:
                logger.warning("unrecognized parameter: %s", name)
        return config


class LRMeta:
    """Per-object metadata holding a ring of the most recent request timestamps."""

    __slots__ = ("key", "size", "past_timestamps", "past_timestamp_idx")

    def __init__(self, key: int, size: int, past_timestamp: int, max_n_past_timestamps: int = 4):
        self.key = key
        self.size = size
        self.past_timestamps = [0] * max_n_past_timestamps
        self.past_timestamps[0] = past_timestamp
        self.past_timestamp_idx = 1

    @property
    def _capacity(self) -> int:
        return len(self.past_timestamps)

    def update(self, past_timestamp: int) -> None:
        n = self._capacity
        self.past_timestamps[self.past_timestamp_idx % n] = past_timestamp
        self.past_timestamp_idx += 1
        if self.past_timestamp_idx >= n * 2:
            self.past_timestamp_idx -= n

    def last_timestamp(self) -> int:
        return self.past_timestamps[(self.past_timestamp_idx - 1) % self._capacity]

    def recent_timestamps(self):
        """Yield stored timestamps, most recent first."""
        n = self._capacity
        for i in range(min(n, self.past_timestamp_idx)):
            yield self.past_timestamps[(self.past_timestamp_idx - 1 - i) % n]


@dataclass
class PendingSample:
    """A sampled object waiting for its next request (or the forget window) to label it."""

    past_distances: list[float]
    sample_time: int
    size: int

    @classmethod
    def from_meta(cls, meta: LRMeta, t: int, config: LRConfig) -> "PendingSample":
        distances: list[float] = []
        for timestamp in meta.recent_timestamps():
            distance = t - timestamp
            if distance >= config.forget_window:
                break
            distances.append(math.log1p(distance))
        return cls(past_distances=distances, sample_time=t, size=meta.size)


@dataclass
class TrainingSample:
    """A labelled training example."""

    past_distances: list[float]
    size: int
    future_distance: float

    @classmethod
    def from_pending(cls, pending: PendingSample, future_distance: float) -> "TrainingSample":
        return cls(list(pending.past_distances), pending.size, future_distance)


@dataclass
class LRCache:
    """Cache that evicts the sampled object predicted to be requested farthest in the future.

    List 0 holds cached objects, list 1 holds metadata of recently evicted ones.
    """

    cache_size: int
    config: LRConfig = field(default_factory=LRConfig)
    seed: int | None = 0
    current_size: int = 0
    weights: list[float] = field(default_factory=list)
    bias: float = 0.0
    training_loss: float = 0.0

    def __post_init__(self) -> None:
        self.key_map: dict[int, tuple[int, int]] = {}
        self.meta_holder: tuple[list[LRMeta], list[LRMeta]] = ([], [])
        self.forget_table: dict[int, int] = {}
        self.pending_training_data: dict[int, list[PendingSample]] = {}
        self.training_data: list[TrainingSample] = []
        self._rng = random.Random(self.seed)

    def _random_index(self) -> int:
        return self._rng.getrandbits(32)

    def _forget_timestamp(self, meta: LRMeta) -> int:
        return meta.last_timestamp() + self.config.forget_window

    def _add_training(self, pending: PendingSample, future_distance: float) -> None:
        self.training_data.append(TrainingSample.from_pending(pending, future_distance))
        self._maybe_train()

    def _maybe_train(self) -> None:
        if len(self.training_data) == self.config.batch_size:
            self.train()
            self.training_data.clear()

    def _remove_at(self, list_idx: int, pos: int) -> LRMeta:
        """Remove the entry at ``pos`` by moving the tail into its place."""
        holder = self.meta_holder[list_idx]
        removed = holder[pos]
        tail = holder.pop()
        if pos < len(holder):
            holder[pos] = tail
            self.key_map[tail.key] = (list_idx, pos)
        return removed

    def _log_status(self) -> None:
        logger.info("cache size: %d/%d", self.current_size, self.cache_size)
        logger.info("n_metadata: %d", len(self.key_map))
        logger.info("n_pending: %d", sum(len(v) for v in self.pending_training_data.values()))
        logger.info("n_training: %d", len(self.training_data))
        logger.info("training loss: %s", self.training_loss)
        for j, weight in enumerate(self.weights):
            logger.info("weight %d: %s", j, weight)
        logger.info("bias: %s", self.bias)

    def has(self, key: int) -> bool:
        entry = self.key_map.get(key)
        return entry is not None and entry[0] == 0

    def train(self) -> None:
        """Run one gradient step of linear regression over the collected batch."""
        n = self.config.max_n_past_timestamps
        fill = self.config.log1p_forget_window
        if not self.weights:
            self.weights = [0.0] * n
        gradient_weights = [0.0] * n
        gradient_bias = 0.0
        squared_error = 0.0
        for sample in self.training_data:
            features = sample.past_distances + [fill] * (n - len(sample.past_distances))
            score = sum(w * x for w, x in zip(self.weights, features))
            diff = score + self.bias - sample.future_distance
            squared_error += diff * diff
            for i, x in enumerate(features):
                gradient_weights[i] += diff * x
            gradient_bias += diff
        step = self.config.learning_rate / self.config.batch_size
        self.weights = [w - step * g for w, g in zip(self.weights, gradient_weights)]
        self.bias -= step * gradient_bias
        self.training_loss = (
            self.training_loss * 0.99 + (squared_error / self.config.batch_size) * 0.01
        )

    def sample(self, t: int) -> None:
        """Pick objects from both lists as pending training examples."""
        in_cache, out_cache = self.meta_holder
        if not in_cache or not out_cache:
            return
        n_l0, n_l1 = len(in_cache), len(out_cache)
        interval = self.config.training_sample_interval
        rand_idx = self._random_index()
        n_sample_l0 = min(max(interval * n_l0 // (n_l0 + n_l1), 1), n_l0)
        n_sample_l1 = min(max(interval - n_sample_l0, 1), n_l1)
        for holder, count in ((in_cache, n_sample_l0), (out_cache, n_sample_l1)):
            size = len(holder)
            for i in range(count):
                meta = holder[(i + rand_idx) % size]
                pending = PendingSample.from_meta(meta, t, self.config)
                self.pending_training_data.setdefault(self._forget_timestamp(meta), []).append(pending)

    def lookup(self, req: Request) -> bool:
        """Record a request; return True when the object is cached."""
        if req.seq % _STATUS_INTERVAL == 0:
            self._log_status()

        entry = self.key_map.get(req.id)
        if entry is not None:
            list_idx, pos = entry
            meta = self.meta_holder[list_idx][pos]
            forget_timestamp = self._forget_timestamp(meta)
            for pending in self.pending_training_data.pop(forget_timestamp, []):
                future_distance = math.log1p(req.seq - pending.sample_time)
                # labels within the first forget window are not yet representative
                if req.seq > self.config.forget_window:
                    self.training_data.append(TrainingSample.from_pending(pending, future_distance))
                self._maybe_train()
            del self.forget_table[forget_timestamp]
            self.forget_table[req.seq + self.config.forget_window] = req.id
            meta.update(req.seq)
            hit = list_idx == 0
        else:
            hit = False

        self.forget(req.seq)
        if req.seq % self.config.training_sample_interval == 0:
            self.sample(req.seq)
        return hit

    def forget(self, t: int) -> None:
        """Drop the metadata of the object whose forget window ends at ``t``."""
        key = self.forget_table.pop(t, None)
        if key is None:
            return
        list_idx, pos = self.key_map.pop(key)
        if list_idx == 0:
            if self.weights and t > self.config.forget_window * 1.5:
                logger.warning("force evicting object passing forget window")
            self.current_size -= self.meta_holder[0][pos].size
        self._remove_at(list_idx, pos)
        for pending in self.pending_training_data.pop(t, []):
            self._add_training(pending, self.config.log1p_forget_window)

    def admit(self, req: Request) -> None:
        """Insert the requested object, evicting others as needed."""
        size = req.size
        if size > self.cache_size:
            logger.debug("object %d of size %d larger than cache %d", req.id, size, self.cache_size)
            return

        entry = self.key_map.get(req.id)
        if entry is None:
            in_cache = self.meta_holder[0]
            self.key_map[req.id] = (0, len(in_cache))
            in_cache.append(LRMeta(req.id, size, req.seq, self.config.max_n_past_timestamps))
            self.current_size += size
            self.forget_table[req.seq + self.config.forget_window] = req.id
            if self.current_size <= self.cache_size:
                return
        elif entry[0] == 0:
            return
        elif size + self.current_size <= self.cache_size:
            meta = self._remove_at(1, entry[1])
            self.key_map[req.id] = (0, len(self.meta_holder[0]))
            self.meta_holder[0].append(meta)
            self.current_size += size
            return
        else:
            victim_key, pos0 = self.rank(req.seq)
            pos1 = entry[1]
            in_cache, out_cache = self.meta_holder
            self.current_size = self.current_size - in_cache[pos0].size + size
            in_cache[pos0], out_cache[pos1] = out_cache[pos1], in_cache[pos0]
            self.key_map[req.id], self.key_map[victim_key] = (
                self.key_map[victim_key],
                self.key_map[req.id],
            )

        while self.current_size > self.cache_size:
            self.evict(req.seq)

    def rank(self, t: int) -> tuple[int, int]:
        """Return (key, position) of the sampled cached object with the worst predicted score."""
        in_cache = self.meta_holder[0]
        count = len(in_cache)
        rand_idx = self._random_index() % count
        if not self.weights:
            return in_cache[rand_idx].key, rand_idx

        n = self.config.max_n_past_timestamps
        fill = self.config.log1p_forget_window
        best: tuple[float, int, int, int] | None = None
        for i in range(min(self.config.sample_rate, count)):
            pos = (i + rand_idx) % count
            meta = in_cache[pos]
            score = 0.0
            recent = list(meta.recent_timestamps())
            for j, timestamp in enumerate(recent):
                interval = t - timestamp
                if interval < self.config.forget_window:
                    score += math.log1p(interval) * self.weights[j]
            score += sum(fill * w for w in self.weights[len(recent):n])
            if self.config.objective is Objective.OBJECT_HIT_RATE:
                score += math.log1p(meta.size)
            timestamp = meta.last_timestamp()
            if (
                best is None
                or score > best[0]
                or (score == best[0] and timestamp < best[3])
            ):
                best = (score, meta.key, pos, timestamp)
        assert best is not None
        return best[1], best[2]

    def evict(self, t: int) -> None:
        """Move the ranked victim from the cached list to the metadata-only list."""
        key, old_pos = self.rank(t)
        meta = self._remove_at(0, old_pos)
        self.key_map[key] = (1, len(self.meta_holder[1]))
        self.meta_holder[1].append(meta)
        self.current_size -= meta.size