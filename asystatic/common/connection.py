import asyncio


class UniConnection:
	"""One accepted client. Writes are drained immediately, close can be called any number of times."""
	def __init__(self, reader:asyncio.StreamReader, writer:asyncio.StreamWriter, buffer_size:int = 65535):
		self.reader = reader
		self.writer = writer
		self.buffer_size = buffer_size
		self.closing = False

	@property
	def peername(self):
		if self.writer is None:
			return None
		return self.writer.get_extra_info('peername')

	async def write(self, data:bytes):
		if self.closing is True:
			raise ConnectionResetError('Connection is closed')
		self.writer.write(data)
		await self.writer.drain()

	async def read_one(self) -> bytes:
		"""Next chunk from the peer, b'' once the peer stopped sending"""
		if self.closing is True:
			return b''
		return await self.reader.read(self.buffer_size)

	async def close(self):
		if self.closing is True:
			return
		self.closing = True
		if self.writer is None:
			return
		self.writer.close()
		try:
			await self.writer.wait_closed()
		except (ConnectionError, OSError):
			# peer already went away
			pass
