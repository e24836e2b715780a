from inkwell.core.metrics import metrics

def test_metrics_recording():
    metrics.record_latency("tokenize", 100.0)
    assert "tokenize" in metrics.latencies
    assert metrics.latencies["tokenize"][-1] == 100.0

def test_metrics_tags():
    metrics.increment("generations", {"outcome": "failed"})
    metrics.increment("generations", {"outcome": "failed"})
    assert metrics.counters["generations[outcome=failed]"] == 2

def test_timed_block_records_latency():
    with metrics.timed("tokenize", {"backend": "llamacpp"}):
        pass
    assert metrics.last_latency("tokenize", {"backend": "llamacpp"}) >= 0
    assert metrics.last_latency("first_chunk") is None
