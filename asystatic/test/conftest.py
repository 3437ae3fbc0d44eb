import os
import asyncio

import h11
import pytest

from asystatic.config import StaticServerConfig
from asystatic.protocol.httpserver import StaticServer

HTML_BODY = b'<!DOCTYPE html>\n<html><body><h1>Test</h1></body></html>\n'
JS_BODY = b'console.log("hello");\n'
# PNG signature plus bytes that are not valid UTF-8
PNG_BODY = b'\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR' + bytes(range(256))
INDEX_BODY = b'<html><body>index</body></html>\n'
NOT_FOUND_BODY = b'<html><body><h1>Error 404</h1></body></html>\n'


class HTTPResult:
	def __init__(self, status, headers, body):
		self.status = status
		self.headers = headers
		self.body = body

	def __repr__(self):
		return 'HTTPResult(status=%s, headers=%r, body=%r)' % (self.status, self.headers, self.body[:64])


def to_result(response, body):
	headers = {}
	for name, value in response.headers:
		headers[name.decode('ascii').lower()] = value.decode('latin-1')
	return HTTPResult(response.status_code, headers, body)

async def read_response(conn, reader):
	response = None
	body = b''
	while True:
		event = conn.next_event()
		if event is h11.NEED_DATA:
			conn.receive_data(await reader.read(65536))
			continue
		if type(event) is h11.Response:
			response = event
		elif type(event) is h11.Data:
			body += event.data
		elif type(event) in (h11.EndOfMessage, h11.ConnectionClosed):
			break
	return to_result(response, body)

async def http_request(port, method, target, headers = None, host = '127.0.0.1', ssl_ctx = None):
	reader, writer = await asyncio.open_connection(host, port, ssl = ssl_ctx)
	conn = h11.Connection(our_role=h11.CLIENT)
	try:
		request_headers = [('Host', 'localhost'), ('Connection', 'close')] + list(headers or [])
		writer.write(conn.send(h11.Request(method=method, target=target, headers=request_headers)))
		writer.write(conn.send(h11.EndOfMessage()))
		await writer.drain()
		return await read_response(conn, reader)
	finally:
		writer.close()
		try:
			await writer.wait_closed()
		except (ConnectionError, OSError):
			pass

async def raw_request(port, data, host = '127.0.0.1'):
	reader, writer = await asyncio.open_connection(host, port)
	try:
		writer.write(data)
		await writer.drain()
		received = b''
		while True:
			chunk = await reader.read(65536)
			if chunk == b'':
				break
			received += chunk
		return received
	finally:
		writer.close()
		try:
			await writer.wait_closed()
		except (ConnectionError, OSError):
			pass


def run_with_server(config, client, observer = None):
	"""Starts a server for config, runs await client(server) and stops the server"""
	async def runner():
		async with StaticServer(config, observer) as server:
			return await client(server)
	return asyncio.run(runner())


@pytest.fixture
def site(tmp_path):
	root = tmp_path / 'www'
	root.mkdir()
	(root / 'test.html').write_bytes(HTML_BODY)
	(root / 'test.js').write_bytes(JS_BODY)
	(root / 'test.png').write_bytes(PNG_BODY)
	(root / 'empty.txt').write_bytes(b'')
	(root / 'sub').mkdir()
	(root / 'sub' / 'index.html').write_bytes(INDEX_BODY)
	(root / 'noindex').mkdir()
	(root / 'noindex' / 'readme.txt').write_bytes(b'no index here\n')
	(tmp_path / '404.html').write_bytes(NOT_FOUND_BODY)
	# sibling that shares the root's name as a prefix
	(tmp_path / 'wwwevil').mkdir()
	(tmp_path / 'wwwevil' / 'secret.txt').write_bytes(b'secret\n')
	return root

@pytest.fixture
def make_config(site):
	def factory(**kw):
		kw.setdefault('root', str(site))
		kw.setdefault('host', '127.0.0.1')
		kw.setdefault('port', 0)
		return StaticServerConfig(**kw)
	return factory

requires_symlinks = pytest.mark.skipif(not hasattr(os, 'symlink') or os.name == 'nt', reason='symbolic links not available')
