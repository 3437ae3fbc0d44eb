import os
import enum
import datetime
import email.utils
from typing import Dict, Optional


class CacheState(enum.Enum):
	FRESH = 1
	NOT_MODIFIED = 2

# headers describing the body, a 304 must not carry them
ENTITY_HEADERS = frozenset([
	'content-type',
	'content-length',
	'content-range',
	'content-encoding',
	'content-language',
	'content-location',
	'content-md5',
])


def compute_etag(st:os.stat_result) -> str:
	mtime_ms = st.st_mtime_ns // 1000000
	return '"%x-%x-%x"' % (st.st_ino, st.st_size, mtime_ms)

def format_date_time(dt:datetime.datetime = None) -> str:
	"""Generate a RFC 7231 / RFC 9110 IMF-fixdate string"""
	if dt is None:
		dt = datetime.datetime.now(datetime.timezone.utc)
	return email.utils.format_datetime(dt, usegmt=True)

def last_modified(st:os.stat_result) -> datetime.datetime:
	# HTTP dates have a one second resolution
	return datetime.datetime.fromtimestamp(int(st.st_mtime), datetime.timezone.utc)

def parse_http_date(value:str) -> Optional[datetime.datetime]:
	try:
		dt = email.utils.parsedate_to_datetime(value)
	except (TypeError, ValueError, IndexError):
		return None
	if dt is None:
		return None
	if dt.tzinfo is None:
		dt = dt.replace(tzinfo=datetime.timezone.utc)
	return dt

def strip_entity_headers(headers:Dict[str, str]) -> Dict[str, str]:
	return {k: v for k, v in headers.items() if k.lower() not in ENTITY_HEADERS}


class CacheValidator:
	def __init__(self, st:os.stat_result, enabled:bool = True):
		self.stat = st
		self.enabled = enabled
		self.etag = compute_etag(st)
		self.last_modified = last_modified(st)

	def get_headers(self) -> Dict[str, str]:
		return {
			'ETag': self.etag,
			'Last-Modified': format_date_time(self.last_modified),
		}

	def etag_matches(self, if_none_match:str) -> bool:
		if if_none_match.strip() == '*':
			return True
		current = self.etag
		for tag in if_none_match.split(','):
			tag = tag.strip()
			if tag.startswith('W/'):
				tag = tag[2:]
			if tag == current:
				return True
		return False

	def not_modified_since(self, if_modified_since:str) -> bool:
		since = parse_http_date(if_modified_since)
		if since is None:
			return False
		return since >= self.last_modified

	def check(self, request_headers:Dict[str, str]) -> CacheState:
		"""request_headers must have lowercase names.

		A 304 needs at least one validator, and every validator present must agree.
		"""
		if self.enabled is False:
			return CacheState.FRESH

		if_none_match = request_headers.get('if-none-match')
		if_modified_since = request_headers.get('if-modified-since')
		if if_none_match is None and if_modified_since is None:
			return CacheState.FRESH
		if if_none_match is not None and not self.etag_matches(if_none_match):
			return CacheState.FRESH
		if if_modified_since is not None and not self.not_modified_since(if_modified_since):
			return CacheState.FRESH
		return CacheState.NOT_MODIFIED
