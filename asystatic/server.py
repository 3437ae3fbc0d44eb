import asyncio

from asystatic import logger
from asystatic.common.target import UniTarget
from asystatic.common.connection import UniConnection
from asystatic.errors import BindFailure


class UniServer:
	"""Listens on the target and hands out every accepted client as a UniConnection"""
	def __init__(self, target:UniTarget, buffer_size:int = 65535):
		self.target = target
		self.buffer_size = buffer_size
		self.connection_queue = asyncio.Queue()
		self.server = None
		self._closed_server = None
		self.port = None

	async def __handle_connection(self, reader, writer):
		connection = UniConnection(reader, writer, self.buffer_size)
		await self.connection_queue.put(connection)

	async def start(self):
		"""Binds the listening socket. Raises BindFailure if that is not possible."""
		if self.server is not None:
			return self.port
		host = self.target.get_bind_address()
		try:
			ssl_ctx = self.target.get_ssl_context()
			self.server = await asyncio.start_server(
				self.__handle_connection,
				host,
				self.target.port,
				ssl = ssl_ctx,
			)
		except OSError as e:
			raise BindFailure(e, host, self.target.port) from e

		self.port = self.server.sockets[0].getsockname()[1]
		logger.debug('Listening on %s:%s (%s)' % (host, self.port, self.target.protocol.name))
		return self.port

	@property
	def is_serving(self):
		return self.server is not None and self.server.is_serving()

	async def serve(self):
		if self.server is None:
			await self.start()
		while self.is_serving is True:
			connection = await self.connection_queue.get()
			if connection is None:
				break
			yield connection

	async def close(self):
		if self.server is None:
			return
		server = self.server
		self.server = None
		self._closed_server = server
		server.close()
		while not self.connection_queue.empty():
			connection = self.connection_queue.get_nowait()
			if connection is not None:
				await connection.close()
		# wakes up serve()
		await self.connection_queue.put(None)
		logger.debug('Listener on port %s closed' % self.port)

	async def wait_closed(self):
		"""Waits until the listening socket and every connection accepted on it are closed"""
		if self._closed_server is None:
			return
		await self._closed_server.wait_closed()
		self._closed_server = None
