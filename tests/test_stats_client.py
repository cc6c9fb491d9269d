import errno
import json
import threading

import pytest

from scx_stats import StatsClient, StatsClientConfig, StatsClientError, StatsError, StatsServer
from scx_stats.cli import main


@pytest.fixture
def cpu_server(running):
    calls = []

    def busy(args):
        raise StatsError("busy", errno.EBUSY)

    def cpu(args):
        calls.append(dict(args))
        return {"util": 42, "cpu": args.get("cpu")}

    server = running(
        StatsServer()
        .add_stats("cpu", cpu)
        .add_stats("top", lambda args: {"nr_cpus": 4})
        .add_stats("busy", busy)
        .add_stats_meta({"name": "cpu", "fields": ["util"]})
    )
    server.calls = calls
    return server


def test_client_fetches_stats_and_meta(cpu_server):
    with StatsClient(StatsClientConfig(path=cpu_server.path)) as client:
        assert client.stats() == {"nr_cpus": 4}
        assert client.stats("cpu", cpu="1") == {"util": 42, "cpu": "1"}
        assert client.stats_meta() == {"cpu": {"name": "cpu", "fields": ["util"]}}
    assert cpu_server.calls == [{"target": "cpu", "cpu": "1"}]


def test_client_raises_on_error_response(cpu_server):
    with StatsClient(StatsClientConfig(path=cpu_server.path)) as client:
        with pytest.raises(StatsClientError) as info:
            client.stats("nope")
        assert info.value.errno == errno.EINVAL
        with pytest.raises(StatsClientError) as info:
            client.stats("busy")
        assert info.value.errno == errno.EBUSY
        response = client.request("bogus")
        assert response.errno == errno.EINVAL
        assert client.stats("cpu")["util"] == 42


def test_client_shared_between_threads(cpu_server):
    client = StatsClient(StatsClientConfig(path=cpu_server.path))
    results = []

    def worker():
        for _ in range(5):
            results.append(client.stats("top"))

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5.0)
    client.close()
    assert results == [{"nr_cpus": 4}] * 20


def test_client_connect_failure_reports_errno(sock_dir):
    client = StatsClient(StatsClientConfig(path=sock_dir / "absent"))
    with pytest.raises(StatsClientError) as info:
        client.connect()
    assert info.value.errno == errno.ENOENT


def test_cli_prints_stat_payload(cpu_server, capsys):
    rc = main(["--path", str(cpu_server.path), "cpu", "--arg", "cpu=2"])
    assert rc == 0
    assert json.loads(capsys.readouterr().out) == {"util": 42, "cpu": "2"}


def test_cli_prints_metadata(cpu_server, capsys):
    rc = main(["--path", str(cpu_server.path), "--meta"])
    assert rc == 0
    assert json.loads(capsys.readouterr().out) == {"cpu": {"name": "cpu", "fields": ["util"]}}


def test_cli_reports_errors(cpu_server, capsys):
    rc = main(["--path", str(cpu_server.path), "nope"])
    assert rc == 1
    err = capsys.readouterr().err
    assert f"errno {errno.EINVAL}" in err


def test_cli_rejects_malformed_arg(cpu_server):
    with pytest.raises(SystemExit):
        main(["--path", str(cpu_server.path), "--arg", "novalue"])
