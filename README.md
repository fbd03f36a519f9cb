# cachesim

Building blocks for simulating cache replacement policies on request traces.
The package has no runtime dependencies.

## Modules

### `cachesim.lr`

`LRCache` is a cache that ranks eviction candidates with an online linear
regression over the log of past inter-request distances.

- `Request(id, size, seq)` is one request of a trace.
- `LRConfig` holds the settings. These are `sample_rate`,
  `training_sample_interval`, `forget_window`, `learning_rate`,
  `max_n_past_timestamps`, `batch_size` and `objective`, where `objective` is
  an `Objective`: byte or object hit rate. `LRConfig.from_params` builds a
  config from a mapping of string values. Unknown names are logged and
  ignored, and an unknown objective raises `ValueError`.
- `LRCache.lookup(req)` records a request and returns whether the object is
  cached. `LRCache.admit(req)` inserts an object and evicts others while the
  cache is over capacity. Cached objects live in one list. Evicted objects
  keep their metadata in a second list until their forget window runs out.
- Objects are sampled as training examples every `training_sample_interval`
  requests. An example is labelled when the object is requested again, or
  when its forget window ends. A full batch triggers one gradient step in
  `LRCache.train`. Until the first step, eviction picks a random cached
  object. After it, eviction picks the sampled object with the worst score.

### `cachesim.static_cache`

`StaticCache` gives a fixed response pattern. `lookup(key)` returns 0 (a miss)
for keys divisible by 4 and 33000 for all others. `admit` has no effect.

### `cachesim.lrb_meta`

This module holds per-object state for learned relaxed-Belady policies.

- `LRBConfig` holds the sample rate, memory window, number of past timestamps,
  batch size, extra fields, objective and gradient-boosting parameters.
  `from_params` builds one from string values. `n_feature`,
  `categorical_feature` and `booster_params()` describe the feature layout.
  `edc_index(distance, k)` gives the decay bucket of a distance.
- `LRBMeta` holds an object's key, size, last request time, extra features and
  sample times. `update(past_timestamp)` records a request on a wrapping
  32-bit clock.
- `MetaExtra` holds the past request gaps of an object seen more than once,
  and its exponentially decayed counters.
- `InCacheLRUQueue` keeps cached keys in recency order.
- `object_distribution(metas, config)` counts objects by how many past
  distances they store.

### `cachesim.lrb_training`

`TrainingData` builds feature rows in compressed sparse row form (`labels`,
`indptr`, `indices`, `data`). Each row holds:

- the time since the object's last request;
- its past gaps;
- its size;
- its extra features;
- the number of gaps within the memory window;
- its decayed counters.

The label is `log1p` of the time until the next request. `rows()` yields
each row as a dict of feature index to value, together with its label.

### `cachesim.parallel_lrb`

- `ParallelLRBConfig` is the configuration for concurrent training.
  `inference_params` gives the parameters used for prediction.
- `DoubleBufferedTrainingData` collects rows in a front batch under a lock.
  `swap_if_full()` exchanges the front batch with the background batch once
  the front one reaches `batch_size`, and returns the full batch.
- `BackgroundTrainer(buffer, train, interval=0.01)` polls the buffer in a
  thread. It passes each full batch to the `train` callable and then clears
  the batch. Use it as a context manager, or call `start()` and `stop()`.
  `stop()` re-raises any error raised in the thread.

## Example

```python
from cachesim.lr import LRCache, LRConfig, Request

cache = LRCache(cache_size=1000, config=LRConfig.from_params({"sample_rate": "16"}))
hits = 0
for seq, key in enumerate([1, 2, 1, 3, 1, 2], start=1):
    req = Request(seq=seq, id=key, size=100)
    if cache.lookup(req):
        hits += 1
    else:
        cache.admit(req)
print(hits)
```

## What it does not do

- There is no command-line simulator and no trace file reader. You drive a
  cache yourself by calling `lookup` and `admit` for each request.
- There is no gradient-boosted model. `TrainingData` and `BackgroundTrainer`
  prepare and hand over batches, and the training function is yours to
  supply.
- `LRCache` is the only complete eviction cache apart from `StaticCache`.

## Testing

The test suite uses pytest. It is installed with the `test` extra.