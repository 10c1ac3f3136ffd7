#
#  Copyright 2015-2016 Bleemeo
#
#  bleemeo.com an infrastructure monitoring solution in the Cloud
#
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.
#

import io

import pytest

import redis_collectd.client
import redis_collectd.config
import redis_collectd.core


INFO_SAMPLE = (
    '# Server\r\n'
    'redis_version:7.2.4\r\n'
    'uptime_in_seconds:120\r\n'
    '\r\n'
    '# Commandstats\r\n'
    'cmdstat_get:calls=3,usec=12,usec_per_call=4.00\r\n'
    '\r\n'
    '# Keyspace\r\n'
    'db0:keys=10,expires=0,avg_ttl=0\r\n'
)


class DummyClient:
    def __init__(self, info=INFO_SAMPLE, error=None):
        self.info = info
        self.error = error
        self.calls = 0

    def execute_command(self, *args):
        assert args == ('INFO', 'ALL')
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.info


def _core(once=True, interval=10.0):
    config = redis_collectd.config.load_default_config()
    config['collectd.interval'] = interval
    return redis_collectd.core.Core(config, once=once, output=io.StringIO())


@pytest.fixture
def no_signal(monkeypatch):
    monkeypatch.setattr(
        redis_collectd.core.Core, 'setup_signal', lambda self: None,
    )


def _fake_connect(client):
    def connect(self):
        self.client = client
    return connect


def test_run_once(monkeypatch):
    monkeypatch.setattr(redis_collectd.core.time, 'time', lambda: 1000.0)
    core = _core()
    core.client = DummyClient()

    assert core.run_once() == 7
    assert core.interval == 10.0
    assert core.output.getvalue().splitlines() == [
        'PUTVAL redis/server/uptime_in_seconds interval=10.000000 '
        '1000:120.000000',
        'PUTVAL redis/commandstats/cmdstat_get/calls interval=10.000000 '
        '1000:3.000000',
        'PUTVAL redis/commandstats/cmdstat_get/usec interval=10.000000 '
        '1000:12.000000',
        'PUTVAL redis/commandstats/cmdstat_get/usec_per_call '
        'interval=10.000000 1000:4.000000',
        'PUTVAL redis/keyspace/db0/keys interval=10.000000 1000:10.000000',
        'PUTVAL redis/keyspace/db0/expires interval=10.000000 1000:0.000000',
        'PUTVAL redis/keyspace/db0/avg_ttl interval=10.000000 1000:0.000000',
    ]


def test_run_once_fetch_error():
    core = _core()
    core.client = DummyClient(
        error=redis_collectd.client.FetchError('Connection closed'),
    )

    with pytest.raises(redis_collectd.client.FetchError):
        core.run_once()
    assert core.output.getvalue() == ''


def test_run(monkeypatch, no_signal):
    client = DummyClient()
    monkeypatch.setattr(
        redis_collectd.core.Core, 'connect', _fake_connect(client),
    )
    core = _core(once=True)

    assert core.run() == 0
    assert client.calls == 1
    assert len(core.output.getvalue().splitlines()) == 7


def test_run_until_terminated(monkeypatch, no_signal):
    client = DummyClient()
    monkeypatch.setattr(
        redis_collectd.core.Core, 'connect', _fake_connect(client),
    )
    core = _core(once=False, interval=0.01)

    waits = []

    def wait(timeout):
        waits.append(timeout)
        if len(waits) == 3:
            core.is_terminating.set()
        return core.is_terminating.is_set()

    monkeypatch.setattr(core.is_terminating, 'wait', wait)

    assert core.run() == 0
    assert client.calls == 3
    assert waits == [0.01, 0.01, 0.01]


def test_run_fetch_error(monkeypatch, no_signal):
    client = DummyClient(
        error=redis_collectd.client.FetchError('Connection closed'),
    )
    monkeypatch.setattr(
        redis_collectd.core.Core, 'connect', _fake_connect(client),
    )
    core = _core(once=False)

    assert core.run() == 1
    assert client.calls == 1


def test_run_connect_error(monkeypatch, no_signal):
    def connect(self):
        raise redis_collectd.client.RedisConnectError('Connection refused')

    monkeypatch.setattr(redis_collectd.core.Core, 'connect', connect)
    core = _core()

    assert core.run() == 1
    assert core.output.getvalue() == ''


def test_run_bad_interval(no_signal):
    core = _core(interval='ten')
    assert core.run() == 1


def test_main_print_collectd_config(capsys):
    status = redis_collectd.core.main([
        '--host', 'redis.example.com',
        '--port', '6380',
        '--print-collectd-config',
    ])

    assert status == 0
    (out, _err) = capsys.readouterr()
    assert out.startswith('LoadPlugin exec\n')
    assert '"--host" "redis.example.com" "--port" "6380"' in out


def test_main_once(monkeypatch, no_signal, tmpdir):
    conf_file = tmpdir.join('extra.conf')
    conf_file.write('redis:\n  host: from-file\n  port: 6390\n')

    seen = {}

    def connect(self):
        seen['host'] = self.config['redis.host']
        seen['port'] = self.config['redis.port']
        self.client = DummyClient()

    monkeypatch.setattr(redis_collectd.core.Core, 'connect', connect)
    monkeypatch.setattr(
        redis_collectd.core.Core, 'config_logger', lambda self: None,
    )
    monkeypatch.delenv('COLLECTD_INTERVAL', raising=False)

    status = redis_collectd.core.main([
        '--config', str(conf_file), '--port', '6391', '--once',
    ])

    assert status == 0
    assert seen == {'host': 'from-file', 'port': 6391}


def test_run_once_invalid_utf8(monkeypatch):
    monkeypatch.setattr(redis_collectd.core.time, 'time', lambda: 1000.0)
    core = _core()
    core.client = DummyClient(
        info=b'# Server\r\nexecutable:/opt/r\xe9dis\r\nuptime_in_seconds:5\r\n',
    )

    assert core.run_once() == 1
    assert core.output.getvalue() == (
        'PUTVAL redis/server/uptime_in_seconds interval=10.000000 '
        '1000:5.000000\n'
    )
