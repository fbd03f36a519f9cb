import pytest

from cachesim.lrb_meta import (
    InCacheLRUQueue,
    LRBConfig,
    LRBMeta,
    MetaExtra,
    Objective,
    object_distribution,
)


def test_default_config_values():
    config = LRBConfig()
    assert config.memory_window == 67108864
    assert config.batch_size == 131072
    assert config.max_n_past_distances == config.max_n_past_timestamps - 1
    assert config.edc_windows[0] == 1024
    assert config.categorical_feature is None


def test_from_params_overrides():
    config = LRBConfig.from_params(
        {"sample_rate": "16", "num_leaves": "8", "objective": "object_miss_ratio"}
    )
    assert config.sample_rate == 16
    assert config.training_params["num_leaves"] == "8"
    assert config.objective is Objective.OBJECT_MISS_RATIO


def test_from_params_unknown_ignored():
    assert LRBConfig.from_params({"nonsense": "1"}) == LRBConfig()


@pytest.mark.parametrize(
    "params",
    [
        {"objective": "bogus"},
        {"n_edc_feature": "5"},
        {"n_extra_fields": "5"},
        {"max_n_past_timestamps": "1"},
    ],
)
def test_from_params_errors(params):
    with pytest.raises(ValueError):
        LRBConfig.from_params(params)


def test_categorical_feature_in_booster_params():
    config = LRBConfig.from_params({"n_extra_fields": "2"})
    params = config.booster_params()
    assert params["categorical_feature"] == "33,34"
    assert params["boosting"] == "gbdt"


def test_edc_index_capped():
    config = LRBConfig()
    assert config.edc_index(10**12, 0) == config.max_hash_edc_idx
    assert config.edc_index(0, 3) == 0


def test_meta_extra_initial_edc_short_distance():
    extra = MetaExtra(5, LRBConfig())
    assert all(value == 2.0 for value in extra.edc)
    assert list(extra.recent_distances()) == [5]


def test_meta_extra_ring_wraps():
    config = LRBConfig(max_n_past_timestamps=4)
    extra = MetaExtra(1, config)
    for d in (2, 3, 4, 5):
        extra.update(d)
    assert len(extra.past_distances) == config.max_n_past_distances
    assert list(extra.recent_distances()) == [5, 4, 3]


def test_meta_extra_edc_at_least_one():
    extra = MetaExtra(10**7, LRBConfig())
    extra.update(10**6)
    assert all(value >= 1.0 for value in extra.edc)


def test_meta_update_records_distances():
    meta = LRBMeta(1, 100, 10)
    assert meta.extra is None
    meta.update(15)
    meta.update(22)
    assert meta.past_timestamp == 22
    assert list(meta.extra.recent_distances()) == [7, 5]


def test_meta_update_same_timestamp_raises():
    meta = LRBMeta(1, 100, 10)
    with pytest.raises(ValueError):
        meta.update(10)


def test_meta_update_wraps_32_bit():
    meta = LRBMeta(1, 100, 2**32 - 1)
    meta.update(5)
    assert list(meta.extra.recent_distances()) == [6]


def test_meta_extra_features_checked():
    config = LRBConfig(n_extra_fields=2)
    meta = LRBMeta(1, 1, 1, config, extra_features=[7, 8, 9])
    assert meta.extra_features == (7, 8)
    with pytest.raises(ValueError):
        LRBMeta(2, 1, 1, config, extra_features=[7])


def test_emplace_sample():
    meta = LRBMeta(1, 1, 1)
    meta.emplace_sample(40)
    meta.emplace_sample(41)
    assert meta.sample_times == [40, 41]


def test_lru_queue_order():
    queue = InCacheLRUQueue()
    for key in (1, 2, 3):
        queue.request(key)
    assert queue.least_recent() == 1
    queue.re_request(1)
    assert queue.least_recent() == 2
    assert list(queue) == [1, 3, 2]
    queue.remove(2)
    assert queue.least_recent() == 3
    assert len(queue) == 2


def test_lru_queue_errors():
    queue = InCacheLRUQueue()
    with pytest.raises(LookupError):
        queue.least_recent()
    queue.request(1)
    with pytest.raises(ValueError):
        queue.request(1)
    with pytest.raises(KeyError):
        queue.remove(9)


def test_object_distribution():
    config = LRBConfig()
    fresh = LRBMeta(1, 1, 1, config)
    twice = LRBMeta(2, 1, 1, config)
    twice.update(3)
    twice.update(7)
    dist = object_distribution([fresh, twice], config)
    assert len(dist) == config.max_n_past_timestamps
    assert sum(dist) == 2
    assert dist[0] == 1
    assert dist[len(twice.extra.past_distances)] == 1