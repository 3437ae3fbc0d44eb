import enum
import ipaddress

from asystatic.common.unissl import UniSSL

class UniProto(enum.Enum):
	SERVER_TCP = 1
	SERVER_SSL_TCP = 2

class UniTarget:
	"""Listen address of the server. Without ip and hostname it binds every interface."""
	def __init__(self, ip:str, port:int, protocol:UniProto = UniProto.SERVER_TCP, ssl_ctx:UniSSL = None, hostname:str = None):
		if protocol == UniProto.SERVER_SSL_TCP and ssl_ctx is None:
			raise ValueError('SSL listener requires a certificate')
		self.port = port
		self.protocol = protocol
		self.ssl_ctx = ssl_ctx
		self.ip, self.hostname = UniTarget.split_host(ip, hostname)

	@staticmethod
	def split_host(host:str, hostname:str = None):
		"""Sorts host into an (ip, hostname) pair"""
		if host is None:
			return None, hostname
		try:
			return str(ipaddress.ip_address(host)), hostname
		except ValueError:
			return None, host

	@property
	def is_ssl(self):
		return self.protocol == UniProto.SERVER_SSL_TCP

	def get_ssl_context(self):
		if self.is_ssl is False:
			return None
		return self.ssl_ctx.get_ssl_context()

	def get_bind_address(self):
		"""What asyncio.start_server should bind to, None meaning all interfaces"""
		if self.ip is not None:
			return self.ip
		return self.hostname

	def __repr__(self):
		return 'UniTarget(%s:%s, %s)' % (self.get_bind_address() or '*', self.port, self.protocol.name)
