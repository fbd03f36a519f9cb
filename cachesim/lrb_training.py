"""Training batches for the learned-relaxed-Belady model, stored as sparse CSR rows."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterator

from cachesim.lrb_meta import N_EDC_FEATURE, LRBConfig, LRBMeta

_UINT32 = 1 << 32


@dataclass
class TrainingData:
    """Feature rows and labels in compressed sparse row form.

    Each row describes one sampled object: the time since its last request,
    its past request gaps, size, extra features, the number of gaps within the
    memory window and its exponentially decayed counters. The label is
    ``log1p`` of the time until the object was requested again.
    """

    config: LRBConfig = field(default_factory=LRBConfig)

    def __post_init__(self) -> None:
        self.labels: list[float] = []
        self.indptr: list[int] = [0]
        self.indices: list[int] = []
        self.data: list[float] = []

    def emplace_back(self, meta: LRBMeta, sample_timestamp: int, future_interval: int) -> None:
        """Append the features of ``meta`` as seen at ``sample_timestamp``."""
        config = self.config
        base = config.max_n_past_timestamps
        n_extra = config.n_extra_fields
        interval = (sample_timestamp - meta.past_timestamp) % _UINT32

        self.indices.append(0)
        self.data.append(float(interval))

        n_within = 0
        if meta.extra is not None:
            cumulative = 0
            for j, distance in enumerate(meta.extra.recent_distances()):
                cumulative = (cumulative + distance) % _UINT32
                self.indices.append(j + 1)
                self.data.append(float(distance))
                if cumulative < config.memory_window:
                    n_within += 1

        self.indices.append(base)
        self.data.append(float(meta.size))

        for k, value in enumerate(meta.extra_features[:n_extra]):
            self.indices.append(base + k + 1)
            self.data.append(float(value))

        self.indices.append(base + n_extra + 1)
        self.data.append(float(n_within))

        for k in range(N_EDC_FEATURE):
            self.indices.append(base + n_extra + 2 + k)
            decay = config.edc_decay(interval, k)
            if meta.extra is not None:
                self.data.append(meta.extra.edc[k] * decay)
            else:
                self.data.append(decay)

        self.labels.append(math.log1p(future_interval))
        self.indptr.append(len(self.indices))

    def clear(self) -> None:
        """Drop all rows."""
        self.labels.clear()
        del self.indptr[1:]
        self.indices.clear()
        self.data.clear()

    def rows(self) -> Iterator[tuple[dict[int, float], float]]:
        """Yield each row as (feature index -> value, label)."""
        for i, label in enumerate(self.labels):
            start, end = self.indptr[i], self.indptr[i + 1]
            yield dict(zip(self.indices[start:end], self.data[start:end])), label

    @property
    def is_full(self) -> bool:
        """Whether the batch has reached the configured size."""
        return len(self.labels) >= self.config.batch_size

    def __len__(self) -> int:
        return len(self.labels)