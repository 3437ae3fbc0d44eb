import os
import enum
import stat
import asyncio
from typing import Awaitable, Callable, List, Optional, Tuple

from asystatic import logger
from asystatic.errors import StaticServerError, PathEscape, DirectoryDenied, NotFound, SymlinkDenied, SymlinkLoop


class TargetKind(enum.Enum):
	FILE = 1
	DIRECTORY = 2
	NOTFOUND = 3
	FORBIDDEN = 4

class ResolvedTarget:
	def __init__(self, kind:TargetKind, path:str = None, stat:os.stat_result = None, error:StaticServerError = None):
		self.kind = kind
		self.path = path
		self.stat = stat
		self.error = error

	@staticmethod
	def file(path:str, st:os.stat_result):
		return ResolvedTarget(TargetKind.FILE, path, st)

	@staticmethod
	def directory(path:str):
		return ResolvedTarget(TargetKind.DIRECTORY, path, error = DirectoryDenied())

	@staticmethod
	def notfound(path:str, error:NotFound = None):
		return ResolvedTarget(TargetKind.NOTFOUND, path, error = error or NotFound())

	@staticmethod
	def forbidden(path:str):
		return ResolvedTarget(TargetKind.FORBIDDEN, path, error = PathEscape())

	@property
	def status(self):
		if self.kind == TargetKind.FILE:
			return 200
		return self.error.status

	def __repr__(self):
		return 'ResolvedTarget(kind=%s, path=%r, error=%r)' % (self.kind.name, self.path, self.error)


def is_contained(root:str, path:str) -> bool:
	"""Segment-wise containment, so /srv/www does not contain /srv/wwwevil"""
	try:
		return os.path.commonpath([root, path]) == root
	except ValueError:
		# different drives, or a mix of absolute and relative paths
		return False

def get_local_path(root:str, uri_path:str) -> str:
	return os.path.normpath(os.path.join(root, uri_path.lstrip('/')))


class PathResolver:
	"""Maps a decoded request path to a file below root.

	Candidates are tried in order (the path itself, then the index file inside it),
	the first regular file wins. A directory is only reported when no file was found.
	"""
	def __init__(self, root:str, index:str = 'index.html', follow_symlinks:bool = False, max_symlink_depth:int = 32, link_callback:Callable[[str, str], Awaitable[None]] = None):
		self.root = os.path.normpath(os.path.abspath(root))
		self.real_root = os.path.realpath(self.root)
		self.index = index
		self.follow_symlinks = follow_symlinks
		self.max_symlink_depth = max_symlink_depth
		self.link_callback = link_callback

	@staticmethod
	def from_config(config, link_callback = None):
		return PathResolver(
			config.root,
			index = config.index,
			follow_symlinks = config.follow_symlinks,
			max_symlink_depth = config.max_symlink_depth,
			link_callback = link_callback,
		)

	async def _run(self, func, *args):
		loop = asyncio.get_running_loop()
		return await loop.run_in_executor(None, func, *args)

	def get_candidates(self, filename:str) -> List[str]:
		return [filename, os.path.join(filename, self.index)]

	async def resolve(self, uri_path:str) -> ResolvedTarget:
		filename = get_local_path(self.root, uri_path)
		if not is_contained(self.root, filename):
			return ResolvedTarget.forbidden(filename)

		dir_found = None
		for candidate in self.get_candidates(filename):
			try:
				path, st = await self.stat_candidate(candidate)
			except NotFound as e:
				return ResolvedTarget.notfound(candidate, e)

			if st is None:
				continue
			if stat.S_ISDIR(st.st_mode):
				if dir_found is None:
					dir_found = path
				continue
			if stat.S_ISREG(st.st_mode):
				return ResolvedTarget.file(path, st)
			logger.debug('Skipping %s, not a regular file' % path)

		if dir_found is not None:
			return ResolvedTarget.directory(dir_found)
		return ResolvedTarget.notfound(filename)

	async def stat_candidate(self, path:str, depth:int = 0) -> Tuple[str, Optional[os.stat_result]]:
		"""Link-aware stat of one candidate. Returns (path, None) when there is nothing there."""
		try:
			st = await self._run(os.lstat, path)
		except (OSError, ValueError) as e:
			logger.debug('lstat %s failed: %s' % (path, e))
			return path, None

		if stat.S_ISLNK(st.st_mode):
			if self.follow_symlinks is False:
				raise SymlinkDenied()
			if depth >= self.max_symlink_depth:
				raise SymlinkLoop()
			try:
				link = await self._run(os.readlink, path)
			except OSError as e:
				logger.debug('readlink %s failed: %s' % (path, e))
				return path, None
			target = os.path.normpath(os.path.join(os.path.dirname(path), link))
			if self.link_callback is not None:
				await self.link_callback(path, target)
			return await self.stat_candidate(target, depth + 1)

		if self.follow_symlinks is False and await self.parent_escapes(path):
			raise SymlinkDenied()
		return path, st

	async def parent_escapes(self, path:str) -> bool:
		if path == self.root:
			return False
		real_parent = await self._run(os.path.realpath, os.path.dirname(path))
		return not is_contained(self.real_root, real_parent)
