"""Per-object metadata and configuration of the learned-relaxed-Belady cache."""

from __future__ import annotations

import enum
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Mapping, Sequence

logger = logging.getLogger(__name__)

BASE_EDC_WINDOW = 10
N_EDC_FEATURE = 10
MAX_N_EXTRA_FEATURE = 4
_UINT32 = 1 << 32

_DEFAULT_TRAINING_PARAMS = {
    "boosting": "gbdt",
    "objective": "regression",
    "num_iterations": "32",
    "num_leaves": "32",
    "num_threads": "4",
    "feature_fraction": "0.8",
    "bagging_freq": "5",
    "bagging_fraction": "0.8",
    "learning_rate": "0.1",
    "verbosity": "0",
}

_TRAINING_PARAM_NAMES = ("num_iterations", "learning_rate", "num_threads", "num_leaves")


class Objective(enum.Enum):
    BYTE_MISS_RATIO = "byte_miss_ratio"
    OBJECT_MISS_RATIO = "object_miss_ratio"


@dataclass
class LRBConfig:
    """Tunable parameters and the feature layout derived from them."""

    sample_rate: int = 64
    memory_window: int = 67108864
    max_n_past_timestamps: int = 32
    batch_size: int = 131072
    n_extra_fields: int = 0
    objective: Objective = Objective.BYTE_MISS_RATIO
    byte_million_req: int | None = None
    training_params: dict[str, str] = field(
        default_factory=lambda: dict(_DEFAULT_TRAINING_PARAMS)
    )

    def __post_init__(self) -> None:
        self._validate()

    def _validate(self) -> None:
        if not 2 <= self.max_n_past_timestamps <= 255:
            raise ValueError("max_n_past_timestamps must be between 2 and 255")
        if self.n_extra_fields > MAX_N_EXTRA_FEATURE:
            raise ValueError(
                f"only support <= {MAX_N_EXTRA_FEATURE} extra fields"
            )
        if self.memory_window < 2**BASE_EDC_WINDOW:
            raise ValueError(f"memory_window must be at least {2**BASE_EDC_WINDOW}")

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> "LRBConfig":
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
            elif name == "byte_million_req":
                config.byte_million_req = int(value)
            elif name == "n_edc_feature":
                if int(value) != N_EDC_FEATURE:
                    raise ValueError(f"n_edc_feature is fixed at {N_EDC_FEATURE}")
            elif name == "objective":
                try:
                    config.objective = Objective(value)
                except ValueError:
                    raise ValueError(f"unknown objective: {value!r}") from None
            else:
                logger.warning("LRB unrecognized parameter: %s", name)
        config._validate()
        return config

    @property
    def max_n_past_distances(self) -> int:
        return self.max_n_past_timestamps - 1

    @property
    def edc_windows(self) -> tuple[int, ...]:
        return tuple(2 ** (BASE_EDC_WINDOW + i) for i in range(N_EDC_FEATURE))

    @property
    def max_hash_edc_idx(self) -> int:
        return self.memory_window // 2**BASE_EDC_WINDOW - 1

    @property
    def n_feature(self) -> int:
        """Interval, past distances, size, extra fields, count within window, EDCs."""
        return self.max_n_past_timestamps + self.n_extra_fields + 2 + N_EDC_FEATURE

    @property
    def categorical_feature(self) -> str | None:
        """Indices of the categorical extra-field features, or None without extra fields."""
        if not self.n_extra_fields:
            return None
        first = self.max_n_past_timestamps + 1
        return ",".join(str(first + i) for i in range(self.n_extra_fields))

    def booster_params(self) -> dict[str, str]:
        """Training parameters including the categorical feature list when needed."""
        params = dict(self.training_params)
        categorical = self.categorical_feature
        if categorical is not None:
            params["categorical_feature"] = categorical
        return params

    def edc_index(self, distance: int, k: int) -> int:
        """Bucket of ``distance`` in the ``k``-th decay window, capped at the window end."""
        return min(distance // self.edc_windows[k], self.max_hash_edc_idx)

    def edc_decay(self, distance: int, k: int) -> float:
        """Decay factor applied to the ``k``-th EDC after ``distance`` time units."""
        return 0.5 ** self.edc_index(distance, k)


class MetaExtra:
    """History of an object requested more than once: past gaps and decayed counters."""

    __slots__ = ("config", "past_distances", "past_distance_idx", "edc")

    def __init__(self, distance: int, config: LRBConfig) -> None:
        self.config = config
        self.past_distances: list[int] = [distance]
        self.past_distance_idx = 1
        self.edc: list[float] = [
            config.edc_decay(distance, k) + 1 for k in range(N_EDC_FEATURE)
        ]

    def update(self, distance: int) -> None:
        """Record a new gap between requests."""
        capacity = self.config.max_n_past_distances
        if len(self.past_distances) < capacity:
            self.past_distances.append(distance)
        else:
            self.past_distances[self.past_distance_idx % capacity] = distance
        self.past_distance_idx += 1
        if self.past_distance_idx >= capacity * 2:
            self.past_distance_idx -= capacity
        self.edc = [
            value * self.config.edc_decay(distance, k) + 1
            for k, value in enumerate(self.edc)
        ]

    def recent_distances(self) -> Iterator[int]:
        """Yield stored gaps, most recent first."""
        capacity = self.config.max_n_past_distances
        idx = self.past_distance_idx
        for j in range(min(idx, capacity)):
            yield self.past_distances[(idx - 1 - j) % capacity]


@dataclass
class LRBMeta:
    """Metadata of one object: last request time, history and pending sample times."""

    key: int
    size: int
    past_timestamp: int
    config: LRBConfig = field(default_factory=LRBConfig, repr=False, compare=False)
    extra_features: Sequence[int] = ()
    extra: MetaExtra | None = field(default=None, repr=False, compare=False)
    sample_times: list[int] = field(default_factory=list)

    def __post_init__(self) -> None:
        n = self.config.n_extra_fields
        if len(self.extra_features) < n:
            raise ValueError(f"expected {n} extra features, got {len(self.extra_features)}")
        self.extra_features = tuple(self.extra_features[:n])

    def update(self, past_timestamp: int) -> None:
        """Record a request at ``past_timestamp`` (32-bit wrapping time)."""
        distance = (past_timestamp - self.past_timestamp) % _UINT32
        if distance == 0:
            raise ValueError("request at the same timestamp as the previous one")
        if self.extra is None:
            self.extra = MetaExtra(distance, self.config)
        else:
            self.extra.update(distance)
        self.past_timestamp = past_timestamp

    def emplace_sample(self, sample_time: int) -> None:
        self.sample_times.append(sample_time)


class InCacheLRUQueue:
    """Recency order of cached keys."""

    def __init__(self) -> None:
        self._order: OrderedDict[int, None] = OrderedDict()

    def request(self, key: int) -> None:
        """Insert ``key`` as most recently used."""
        if key in self._order:
            raise ValueError(f"key {key} already queued")
        self._order[key] = None

    def re_request(self, key: int) -> None:
        """Mark a queued ``key`` as most recently used."""
        self._order.move_to_end(key)

    def remove(self, key: int) -> None:
        del self._order[key]

    def least_recent(self) -> int:
        """Return the least recently used key."""
        if not self._order:
            raise LookupError("queue is empty")
        return next(iter(self._order))

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self) -> Iterator[int]:
        """Keys from most to least recently used."""
        return reversed(self._order)


def object_distribution(metas: Iterable[LRBMeta], config: LRBConfig) -> list[int]:
    """Count objects by number of stored past distances."""
    distribution = [0] * config.max_n_past_timestamps
    for meta in metas:
        if meta.extra is None:
            distribution[0] += 1
        else:
            distribution[len(meta.extra.past_distances)] += 1
    return distribution