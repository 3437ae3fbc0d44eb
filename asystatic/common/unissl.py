import os
import ssl
import tempfile
from pathlib import Path


class UniSSL:
	"""Holds the certificate material of the listener and builds server-side SSL contexts from it.

	certfile/keyfile can be PEM files or a single PKCS#12 bundle (.pfx / .p12).
	"""
	def __init__(self, certfile:str = None, keyfile:str = None, password:str = None):
		self.protocol = ssl.PROTOCOL_TLS_SERVER
		self.certfile:str = certfile
		self.keyfile:str = keyfile
		self.password:str = password
		self.__keyfilename = None
		self.__certfilename = None

	@staticmethod
	def is_pkcs12(filename:str):
		return filename is not None and (filename.endswith('.pfx') or filename.endswith('.p12'))

	def __startup(self):
		if UniSSL.is_pkcs12(self.certfile):
			self.pfx_to_pem(self.certfile, self.password)
		elif UniSSL.is_pkcs12(self.keyfile):
			self.pfx_to_pem(self.keyfile, self.password)
		else:
			self.__certfilename = self.certfile
			self.__keyfilename = self.keyfile

	def pfx_to_pem(self, pfx_path, pfx_password):
		from cryptography.hazmat.primitives.serialization import Encoding, PrivateFormat, NoEncryption
		from cryptography.hazmat.primitives.serialization.pkcs12 import load_key_and_certificates
		pfx = Path(pfx_path).read_bytes()
		if pfx_password is not None:
			pfx_password = pfx_password.encode('utf-8')
		private_key, main_cert, add_certs = load_key_and_certificates(pfx, pfx_password, None)
		if private_key is None or main_cert is None:
			raise ValueError('PKCS#12 bundle %s has no key or certificate' % pfx_path)

		fd, self.__keyfilename = tempfile.mkstemp(prefix='key_', suffix='.pem')
		with os.fdopen(fd, 'wb') as f:
			f.write(private_key.private_bytes(Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()))
		fd, self.__certfilename = tempfile.mkstemp(prefix='cert_', suffix='.pem')
		with os.fdopen(fd, 'wb') as f:
			f.write(main_cert.public_bytes(Encoding.PEM))
			# chain goes after the leaf certificate
			for ca in add_certs:
				f.write(ca.public_bytes(Encoding.PEM))

	def get_ssl_context(self, protocol = None):
		if self.certfile is None:
			raise ValueError('No certificate configured')
		if protocol is None:
			protocol = self.protocol
		try:
			self.__startup()
			ssl_ctx = ssl.SSLContext(protocol)
			password = self.password
			if UniSSL.is_pkcs12(self.certfile) or UniSSL.is_pkcs12(self.keyfile):
				password = None
			ssl_ctx.load_cert_chain(certfile=self.__certfilename, keyfile=self.__keyfilename, password=password)
			return ssl_ctx
		finally:
			self.__cleanup()

	def __cleanup(self):
		if self.__certfilename is not None and self.__certfilename != self.certfile:
			try:
				os.remove(self.__certfilename)
			except OSError:
				pass
		if self.__keyfilename is not None and self.__keyfilename != self.keyfile:
			try:
				os.remove(self.__keyfilename)
			except OSError:
				pass
		self.__certfilename = None
		self.__keyfilename = None

	def __str__(self):
		return 'UniSSL(certfile=%s, keyfile=%s, protocol=%s)' % (self.certfile, self.keyfile, self.protocol)
