import math

import pytest

from cachesim.lrb_meta import N_EDC_FEATURE, LRBConfig, LRBMeta
from cachesim.lrb_training import TrainingData


@pytest.fixture
def config():
    return LRBConfig(max_n_past_timestamps=4, memory_window=4096, batch_size=2)


def test_row_without_history(config):
    data = TrainingData(config)
    meta = LRBMeta(1, 500, 100, config=config)
    data.emplace_back(meta, 110, 20)
    (features, label), = list(data.rows())
    assert features[0] == 10.0
    assert features[4] == 500.0
    assert features[5] == 0.0
    for k in range(N_EDC_FEATURE):
        assert features[6 + k] == 1.0
    assert label == pytest.approx(math.log1p(20))
    assert len(features) == 3 + N_EDC_FEATURE


def test_past_distances_most_recent_first(config):
    data = TrainingData(config)
    meta = LRBMeta(1, 10, 0, config=config)
    meta.update(5)
    meta.update(12)
    data.emplace_back(meta, 20, 3)
    features, _ = next(data.rows())
    assert features[0] == 8.0
    assert features[1] == 7.0
    assert features[2] == 5.0
    assert 3 not in features
    assert features[5] == 2.0


def test_n_within_counts_cumulative_distance(config):
    data = TrainingData(config)
    meta = LRBMeta(1, 10, 0, config=config)
    meta.update(3000)
    meta.update(5000)
    data.emplace_back(meta, 5000, 1)
    features, _ = next(data.rows())
    assert features[1] == 2000.0
    assert features[2] == 3000.0
    assert features[5] == 1.0


def test_edc_at_zero_interval_equals_meta_counters(config):
    data = TrainingData(config)
    meta = LRBMeta(1, 10, 0, config=config)
    meta.update(50)
    data.emplace_back(meta, 50, 1)
    features, _ = next(data.rows())
    for k in range(N_EDC_FEATURE):
        assert features[6 + k] == pytest.approx(meta.extra.edc[k])


def test_interval_wraps_at_32_bits(config):
    data = TrainingData(config)
    meta = LRBMeta(1, 10, 2**32 - 5, config=config)
    data.emplace_back(meta, 5, 1)
    features, _ = next(data.rows())
    assert features[0] == 10.0


def test_extra_features_layout():
    config = LRBConfig(max_n_past_timestamps=4, memory_window=4096, n_extra_fields=2)
    data = TrainingData(config)
    meta = LRBMeta(1, 10, 0, config=config, extra_features=(7, 9))
    data.emplace_back(meta, 1, 1)
    features, _ = next(data.rows())
    assert features[5] == 7.0
    assert features[6] == 9.0
    assert features[7] == 0.0
    assert max(features) == config.n_feature - 1


def test_csr_invariants_and_full(config):
    data = TrainingData(config)
    meta = LRBMeta(1, 10, 0, config=config)
    data.emplace_back(meta, 1, 1)
    assert not data.is_full
    meta.update(2)
    data.emplace_back(meta, 3, 1)
    assert data.is_full
    assert len(data) == 2
    assert len(data.indptr) == 3
    assert data.indptr[-1] == len(data.indices) == len(data.data)
    assert all(a < b for a, b in zip(data.indptr, data.indptr[1:]))


def test_clear_resets(config):
    data = TrainingData(config)
    meta = LRBMeta(1, 10, 0, config=config)
    data.emplace_back(meta, 1, 1)
    data.clear()
    assert len(data) == 0
    assert data.indptr == [0]
    assert data.indices == [] and data.data == []
    assert list(data.rows()) == []