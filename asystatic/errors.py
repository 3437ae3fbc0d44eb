
class StaticServerError(Exception):
	"""Base class for every error the static server knows how to report"""
	status = 500

	def __init__(self, message = None):
		if message is None:
			message = self.__class__.__doc__
		self.message = message
		super().__init__(self.message)

class InvalidMethod(StaticServerError):
	"""Only GET and HEAD are supported"""
	status = 405

	def __init__(self, method:str):
		self.method = method
		super().__init__('Method %s is not allowed' % method)

class PathEscape(StaticServerError):
	"""Requested path is outside of the root directory"""
	status = 403

class DirectoryDenied(StaticServerError):
	"""Directory listing is not allowed"""
	status = 403

class NotFound(StaticServerError):
	"""File not found"""
	status = 404

class SymlinkDenied(NotFound):
	"""Symbolic link not allowed"""

class SymlinkLoop(NotFound):
	"""Too many levels of symbolic links"""

class RangeUnsatisfiable(StaticServerError):
	"""Requested range is not satisfiable"""
	status = 416

	def __init__(self, range_header:str, size:int):
		self.range_header = range_header
		self.size = size
		super().__init__('Range "%s" not satisfiable for %s bytes' % (range_header, size))

class ReadFailure(StaticServerError):
	status = 500

	def __init__(self, innerexception, message="Failed to read file! See innerexception for more details"):
		self.innerexception = innerexception
		super().__init__(message)

class BindFailure(StaticServerError):
	def __init__(self, innerexception, host = None, port = None):
		self.innerexception = innerexception
		self.host = host
		self.port = port
		super().__init__('Could not listen on %s:%s (%s)' % (host, port, innerexception))
