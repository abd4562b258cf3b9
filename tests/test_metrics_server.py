from folioledger.metrics import core


def test_disabled_exporter_is_skipped(monkeypatch):
    started = []
    monkeypatch.setenv("DISABLE_PROMETHEUS", "1")
    monkeypatch.setattr(core, "start_http_server", lambda port, addr="0.0.0.0": started.append(port))
    assert core.start_metrics_server(9999) is None
    assert started == []


def test_bind_failure_is_tolerated(monkeypatch):
    monkeypatch.delenv("DISABLE_PROMETHEUS", raising=False)

    def busy(port, addr="0.0.0.0"):
        raise OSError("address in use")

    monkeypatch.setattr(core, "start_http_server", busy)
    assert core.start_metrics_server(9999) is None


def test_exporter_started(monkeypatch):
    monkeypatch.delenv("DISABLE_PROMETHEUS", raising=False)
    started = []
    monkeypatch.setattr(core, "start_http_server", lambda port, addr="0.0.0.0": started.append((addr, port)))
    assert core.start_metrics_server(9100, addr="127.0.0.1") == 9100
    assert started == [("127.0.0.1", 9100)]
