import os
import sys
import asyncio
import signal
import logging

import pytest

from asystatic.config import StaticServerConfig
from asystatic.events import RequestEvent, SymbolicLinkEvent, ResponseEvent
from asystatic.protocol.httpserver import StaticServer
from asystatic.examples.staticserver import LoggingObserver, format_size, format_elapsed, status_text, main, run_static_server
from asystatic.test.conftest import INDEX_BODY


def test_format_size():
	assert format_size(0) == '0 B'
	assert format_size(512) == '512 B'
	assert format_size(2048) == '2.0 KB'
	assert format_size(5 * 1024 * 1024) == '5.0 MB'

def test_format_elapsed():
	assert format_elapsed(0.0015) == '1.500ms'
	assert format_elapsed(2.5) == '2s 500.000ms'

def test_status_text():
	assert status_text(200) == 'OK'
	assert status_text(999) == ''

def test_logging_observer(site, caplog):
	caplog.set_level(logging.INFO, logger='asystatic')
	observer = LoggingObserver(str(site))
	index = str(site / 'sub' / 'index.html')

	async def emit():
		await observer.on_request(RequestEvent('GET', '/sub'))
		await observer.on_symbolic_link(SymbolicLinkEvent(str(site / 'link.html'), str(site / 'test.html')))
		await observer.on_response(ResponseEvent('GET', '/sub', 200, 0.0015, file = index, stat = os.stat(index)))
		await observer.on_response(ResponseEvent('GET', '/missing', 404, 0.002))
		await observer.on_response(ResponseEvent('GET', '/test.html', 304, 0.001, file = index, stat = os.stat(index)))

	asyncio.run(emit())
	lines = [r.getMessage() for r in caplog.records]
	assert lines[0] == '<-- [GET] /sub'
	assert lines[1] == '--- "link.html" > "test.html"'
	assert lines[2] == '--> 200 OK /sub (sub/index.html) %s (1.500ms)' % format_size(len(INDEX_BODY))
	assert lines[3] == '--> 404 /missing (2.000ms)'
	assert lines[4] == '--> 304 Not Modified /test.html (1.000ms)'

def test_invalid_port(monkeypatch):
	monkeypatch.setattr(sys, 'argv', ['asystatic', '-p', '70000'])
	with pytest.raises(SystemExit) as exc:
		main()
	assert exc.value.code == 1

def test_invalid_root(monkeypatch, tmp_path):
	monkeypatch.setattr(sys, 'argv', ['asystatic', str(tmp_path / 'nothing')])
	with pytest.raises(SystemExit) as exc:
		main()
	assert exc.value.code == 1

def test_version(monkeypatch, capsys):
	monkeypatch.setattr(sys, 'argv', ['asystatic', '--version'])
	with pytest.raises(SystemExit) as exc:
		main()
	assert exc.value.code == 0
	assert 'asystatic' in capsys.readouterr().out

@pytest.mark.skipif(not hasattr(signal, 'SIGTERM') or os.name == 'nt', reason='loop signal handlers not available')
def test_stops_on_sigterm(site):
	config = StaticServerConfig(root = str(site), host = '127.0.0.1', port = 0)

	async def runner():
		server = StaticServer(config)
		task = asyncio.create_task(run_static_server(config, silent = True, server = server))
		await asyncio.wait_for(server.started_evt.wait(), 5)
		os.kill(os.getpid(), signal.SIGTERM)
		code = await asyncio.wait_for(task, 5)
		return code, server

	code, server = asyncio.run(runner())
	assert code == 0
	assert server.port is None
	assert server.stopped_evt.is_set()

def test_bind_failure_exit_code(site):
	async def runner():
		async with StaticServer(StaticServerConfig(root = str(site), host = '127.0.0.1', port = 0)) as first:
			config = StaticServerConfig(root = str(site), host = '127.0.0.1', port = first.port)
			return await run_static_server(config, silent = True)

	assert asyncio.run(runner()) == 1
