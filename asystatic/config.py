import os
from dataclasses import dataclass

from asystatic.common.target import UniTarget, UniProto
from asystatic.common.unissl import UniSSL


@dataclass(frozen=True)
class StaticServerConfig:
	root: str = None
	host: str = None
	port: int = 9080
	follow_symlinks: bool = False
	index: str = 'index.html'
	not_found: str = None
	cors: str = None
	debug: bool = False
	name: str = 'asystatic'
	cache: bool = True
	chunk_size: int = 64 * 1024
	max_symlink_depth: int = 32
	certfile: str = None
	keyfile: str = None
	password: str = None

	def __post_init__(self):
		if not self.root:
			raise ValueError('Root path not specified')
		root = os.path.normpath(os.path.abspath(self.root))
		if not os.path.isdir(root):
			raise ValueError('Root path is not a directory: %s' % root)
		# frozen, so normalized values have to go through object.__setattr__
		object.__setattr__(self, 'root', root)
		if self.not_found is not None:
			object.__setattr__(self, 'not_found', os.path.abspath(self.not_found))
		if not self.index or '/' in self.index:
			raise ValueError('Index must be a plain file name, got %r' % self.index)
		if self.chunk_size < 1:
			raise ValueError('chunk_size must be positive')
		if self.max_symlink_depth < 1:
			raise ValueError('max_symlink_depth must be positive')

	@property
	def use_ssl(self):
		return self.certfile is not None

	def get_target(self) -> UniTarget:
		if self.use_ssl is True:
			ssl_ctx = UniSSL(self.certfile, self.keyfile, self.password)
			return UniTarget(self.host, self.port, UniProto.SERVER_SSL_TCP, ssl_ctx = ssl_ctx)
		return UniTarget(self.host, self.port, UniProto.SERVER_TCP)
