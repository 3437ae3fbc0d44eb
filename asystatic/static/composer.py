import asyncio
import mimetypes
from http import HTTPStatus
from typing import Dict, Optional, Tuple

import h11

from asystatic._version import __version__
from asystatic.errors import StaticServerError, RangeUnsatisfiable, ReadFailure
from asystatic.static.validator import CacheValidator, format_date_time, strip_entity_headers

ALLOWED_METHODS = ('GET', 'HEAD')
DEFAULT_CONTENT_TYPE = 'application/octet-stream'
TEXT_CONTENT_TYPE = 'text/plain'


def get_content_type(path:str) -> str:
	mime_type, _ = mimetypes.guess_type(path)
	return mime_type or DEFAULT_CONTENT_TYPE

def get_reason(status:int) -> str:
	try:
		return HTTPStatus(status).phrase
	except ValueError:
		return ''

def parse_range(range_header:Optional[str], size:int) -> Optional[Tuple[int, int]]:
	"""Parses a single byte range into an inclusive (start, end) pair.

	Returns None when the header has to be ignored (absent, malformed, other units or
	multiple ranges) and the whole file is served. Raises RangeUnsatisfiable when the
	range does not fit the file.
	"""
	if range_header is None:
		return None
	unit, sep, value = range_header.partition('=')
	if sep == '' or unit.strip().lower() != 'bytes':
		return None
	value = value.strip()
	if ',' in value:
		return None
	first, sep, last = value.partition('-')
	if sep == '':
		return None
	first = first.strip()
	last = last.strip()
	try:
		if first == '':
			if last == '':
				return None
			suffix = int(last)
			if suffix <= 0 or size == 0:
				raise RangeUnsatisfiable(range_header, size)
			start = max(size - suffix, 0)
			end = size - 1
		else:
			start = int(first)
			end = int(last) if last != '' else size - 1
	except ValueError:
		return None

	if end == size:
		end = size - 1
	if start < 0 or start >= size or end >= size or start > end:
		raise RangeUnsatisfiable(range_header, size)
	return start, end


class ComposedResponse:
	def __init__(self, status:int, headers:Dict[str, str], body:bytes = b'', path:str = None, start:int = 0, length:int = 0, head_only:bool = False, error:StaticServerError = None):
		self.status = status
		self.headers = headers
		self.body = body
		self.path = path
		self.start = start
		self.length = length
		self.head_only = head_only
		self.error = error

	@property
	def has_file_body(self):
		return self.path is not None and self.head_only is False

	def to_h11(self) -> h11.Response:
		return h11.Response(
			status_code = self.status,
			headers = [(k, str(v).encode('latin-1')) for k, v in self.headers.items()],
			reason = get_reason(self.status).encode('ascii'),
		)

	def __repr__(self):
		return 'ComposedResponse(status=%s, path=%r, start=%s, length=%s)' % (self.status, self.path, self.start, self.length)


class ResponseComposer:
	def __init__(self, name:str = 'asystatic', cors:str = None, chunk_size:int = 64 * 1024):
		self.name = name
		self.cors = cors
		self.chunk_size = chunk_size
		self.ident = ' '.join(['%s/%s' % (name, __version__), h11.PRODUCT_ID])

	@staticmethod
	def from_config(config):
		return ResponseComposer(config.name, cors = config.cors, chunk_size = config.chunk_size)

	def basic_headers(self) -> Dict[str, str]:
		headers = {
			'Date': format_date_time(),
			'Server': self.ident,
			'X-Powered-By': self.name,
		}
		if self.cors is not None:
			headers['Access-Control-Allow-Origin'] = self.cors
		return headers

	def method_not_allowed(self, method:str, error:StaticServerError = None) -> ComposedResponse:
		headers = self.basic_headers()
		headers['Allow'] = ', '.join(ALLOWED_METHODS)
		headers['Content-Length'] = '0'
		return ComposedResponse(405, headers, error = error)

	def error(self, status:int, method:str = 'GET', message:str = None, body:bytes = None, content_type:str = TEXT_CONTENT_TYPE, error:StaticServerError = None) -> ComposedResponse:
		"""Small in-memory response. The body defaults to message, or the status text."""
		if body is None:
			body = (message or get_reason(status)).encode('utf-8')
		headers = self.basic_headers()
		headers['Content-Type'] = content_type
		headers['Content-Length'] = str(len(body))
		return ComposedResponse(status, headers, body = body, head_only = method == 'HEAD', error = error)

	def not_modified(self, validator:CacheValidator) -> ComposedResponse:
		headers = self.basic_headers()
		headers.update(validator.get_headers())
		return ComposedResponse(304, strip_entity_headers(headers))

	def file(self, method:str, path:str, validator:CacheValidator, range_header:str = None) -> ComposedResponse:
		size = validator.stat.st_size
		headers = self.basic_headers()
		headers['Content-Type'] = get_content_type(path)
		headers['Accept-Ranges'] = 'bytes'
		headers.update(validator.get_headers())

		try:
			byte_range = parse_range(range_header, size)
		except RangeUnsatisfiable as e:
			del headers['Content-Type']
			headers['Content-Range'] = 'bytes */%s' % size
			headers['Content-Length'] = '0'
			return ComposedResponse(416, headers, head_only = method == 'HEAD', error = e)

		if byte_range is None:
			status = 200
			start = 0
			length = size
		else:
			status = 206
			start, end = byte_range
			length = end - start + 1
			headers['Content-Range'] = 'bytes %s-%s/%s' % (start, end, size)

		headers['Content-Length'] = str(length)
		return ComposedResponse(status, headers, path = path, start = start, length = length, head_only = method == 'HEAD')

	async def iter_file(self, path:str, start:int, length:int):
		"""Streams length bytes of path from start, at most chunk_size bytes at a time"""
		loop = asyncio.get_running_loop()
		try:
			f = await loop.run_in_executor(None, open, path, 'rb')
		except OSError as e:
			raise ReadFailure(e) from e
		try:
			if start > 0:
				await loop.run_in_executor(None, f.seek, start)
			remaining = length
			while remaining > 0:
				try:
					chunk = await loop.run_in_executor(None, f.read, min(self.chunk_size, remaining))
				except OSError as e:
					raise ReadFailure(e) from e
				if not chunk:
					raise ReadFailure(EOFError('%s is shorter than expected' % path), 'File changed while reading')
				remaining -= len(chunk)
				yield chunk
		finally:
			f.close()
