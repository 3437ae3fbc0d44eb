import asyncio
import os
from typing import Optional


class RequestEvent:
	def __init__(self, method:str, path:str):
		self.method = method
		self.path = path

	def __repr__(self):
		return 'RequestEvent(method=%r, path=%r)' % (self.method, self.path)

class SymbolicLinkEvent:
	def __init__(self, link:str, target:str):
		self.link = link
		self.target = target

	def __repr__(self):
		return 'SymbolicLinkEvent(link=%r, target=%r)' % (self.link, self.target)

class ResponseEvent:
	"""Emitted once per request, after the response has been written (or abandoned).

	elapsed is in seconds. file and stat are only set when a file was served.
	"""
	def __init__(self, method:str, path:str, status:int, elapsed:float, error:Exception = None, file:str = None, stat:os.stat_result = None):
		self.method = method
		self.path = path
		self.status = status
		self.elapsed = elapsed
		self.error = error
		self.file = file
		self.stat = stat

	def __repr__(self):
		return 'ResponseEvent(method=%r, path=%r, status=%r, elapsed=%.6f, error=%r, file=%r)' % (
			self.method, self.path, self.status, self.elapsed, self.error, self.file
		)


class StaticServerObserver:
	"""Receives the lifecycle events of the server. Override what you need."""

	async def on_request(self, event:RequestEvent):
		return

	async def on_symbolic_link(self, event:SymbolicLinkEvent):
		return

	async def on_response(self, event:ResponseEvent):
		return

class QueueObserver(StaticServerObserver):
	"""Puts every event on an asyncio queue"""
	def __init__(self, queue:Optional[asyncio.Queue] = None):
		self.queue = queue
		if self.queue is None:
			self.queue = asyncio.Queue()

	async def on_request(self, event:RequestEvent):
		await self.queue.put(event)

	async def on_symbolic_link(self, event:SymbolicLinkEvent):
		await self.queue.put(event)

	async def on_response(self, event:ResponseEvent):
		await self.queue.put(event)
