#!/usr/bin/env python3
"""
Static File Server

Serves the files of a directory over HTTP(S). Directories are answered with
their index file, or 403 when there is none.

Usage:
    asystatic [options] [root_path]

Example:
    asystatic ./public --port 8080 --cors '*'
"""

import os
import sys
import signal
import asyncio
import logging
from http import HTTPStatus

from asystatic import logger
from asystatic._version import __banner__, __version__
from asystatic.config import StaticServerConfig
from asystatic.errors import BindFailure
from asystatic.events import StaticServerObserver, RequestEvent, SymbolicLinkEvent, ResponseEvent
from asystatic.protocol.httpserver import StaticServer


DEFAULT_PORT = 9080
DEFAULT_INDEX = 'index.html'


def format_size(size):
    for unit in ['B', 'KB', 'MB', 'GB']:
        if size < 1024.0:
            if unit == 'B':
                return f"{size} {unit}"
            return f"{size:.1f} {unit}"
        size /= 1024.0
    return f"{size:.1f} TB"

def format_elapsed(elapsed):
    seconds = int(elapsed)
    ms = (elapsed - seconds) * 1000
    if seconds:
        return f"{seconds}s {ms:.3f}ms"
    return f"{ms:.3f}ms"

def status_text(status):
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return ''


class LoggingObserver(StaticServerObserver):
    """Writes one line per event to the package logger"""

    def __init__(self, root):
        self.root = root

    def relpath(self, path):
        return os.path.relpath(path, self.root)

    async def on_request(self, event: RequestEvent):
        logger.info(f"<-- [{event.method}] {event.path}")

    async def on_symbolic_link(self, event: SymbolicLinkEvent):
        logger.info(f'--- "{self.relpath(event.link)}" > "{self.relpath(event.target)}"')

    async def on_response(self, event: ResponseEvent):
        elapsed = format_elapsed(event.elapsed)
        if event.status is None or event.status >= 400:
            logger.info(f"--> {event.status} {event.path} ({elapsed})")
        elif event.file is not None and event.status != 304:
            shown = event.path
            rel_file = self.relpath(event.file)
            if os.path.normpath(event.path.lstrip('/') or '.') != rel_file:
                shown += f" ({rel_file})"
            logger.info(f"--> {event.status} {status_text(event.status)} {shown} {format_size(event.stat.st_size)} ({elapsed})")
        else:
            logger.info(f"--> {event.status} {status_text(event.status)} {event.path} ({elapsed})")


async def run_static_server(config, silent=False, server=None):
    """
    Runs the server until SIGINT / SIGTERM.

    Args:
        config (StaticServerConfig): server configuration
        silent (bool): do not print the startup lines
        server (StaticServer): server to run, built from config when not given
    """
    if server is None:
        server = StaticServer(config, LoggingObserver(config.root))
    loop = asyncio.get_running_loop()
    try:
        await server.start()
    except BindFailure as e:
        logger.error(f"Could not start server: {e}")
        return 1

    stop_task = None

    def request_stop(signame):
        nonlocal stop_task
        logger.info(f"! {signame} detected")
        if stop_task is None:
            stop_task = asyncio.ensure_future(server.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_stop, sig.name)
        except (NotImplementedError, RuntimeError):
            # not available on Windows, KeyboardInterrupt still works there
            pass

    scheme = 'https' if config.use_ssl else 'http'
    if not silent:
        print("* Static server successfully started.")
        print(f"* Serving files at: {scheme}://{config.host or 'localhost'}:{server.port}")
        print("* Press Ctrl+C to shutdown.")
    try:
        await server.serve_forever()
    finally:
        logger.info("* Shutting down server")
        if stop_task is not None:
            await stop_task
        await server.stop()
    return 0


def main():
    """
    Main entry point for the static server.
    """
    import argparse

    parser = argparse.ArgumentParser(
        description='Serves the files of a directory over HTTP',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  %(prog)s                                  # Serve the current directory on port 9080
  %(prog)s ./public --port 8080             # Use custom port
  %(prog)s ./public -n ./public/404.html    # Custom not found page
  %(prog)s ./public --cert cert.pem --key key.pem   # HTTPS
        ''')

    parser.add_argument('root_path', nargs='?', default=None, help='Directory to serve (default: current directory)')
    parser.add_argument('-p', '--port', type=int, default=DEFAULT_PORT, help=f'The port to listen to for incoming HTTP connections (default: {DEFAULT_PORT})')
    parser.add_argument('-H', '--host', default=None, help='Host to bind to (default: all interfaces)')
    parser.add_argument('-i', '--index', default=DEFAULT_INDEX, help=f'The default index file if not specified (default: {DEFAULT_INDEX})')
    parser.add_argument('-f', '--follow-symlink', action='store_true', help='Follow links, otherwise fail with file not found')
    parser.add_argument('-d', '--debug', action='store_true', help='Enable to show error messages')
    parser.add_argument('-n', '--not-found', default=None, help='The file not found template')
    parser.add_argument('-c', '--cors', default=None, help='Cross Origin Pattern. Use "*" to allow all origins')
    parser.add_argument('-z', '--no-cache', action='store_true', help='Disable cache (http 304) responses')
    parser.add_argument('--cert', default=None, help='SSL certificate file (PEM, or a .pfx/.p12 bundle)')
    parser.add_argument('--key', default=None, help='SSL private key file')
    parser.add_argument('--key-password', default=None, help='SSL private key / bundle password')
    parser.add_argument('-v', '--verbose', action='count', default=0, help='Verbosity')
    parser.add_argument('-s', '--silent', action='store_true', help='Do not print banner')
    parser.add_argument('--version', action='version', version=f'asystatic {__version__}')

    args = parser.parse_args()

    if args.port < 0 or args.port > 65535:
        print(f"Error: Port must be between 0 and 65535, got {args.port}")
        sys.exit(1)

    if args.verbose >= 1 or args.debug:
        logger.setLevel(logging.DEBUG)

    try:
        config = StaticServerConfig(
            root=args.root_path or os.getcwd(),
            host=args.host,
            port=args.port,
            follow_symlinks=args.follow_symlink,
            index=args.index,
            not_found=args.not_found,
            cors=args.cors,
            debug=args.debug,
            name='asystatic',
            cache=not args.no_cache,
            certfile=args.cert,
            keyfile=args.key,
            password=args.key_password,
        )
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

    if args.silent is False:
        print(__banner__)

    try:
        sys.exit(asyncio.run(run_static_server(config, silent=args.silent)))
    except KeyboardInterrupt:
        print("\nServer stopped by user")


if __name__ == '__main__':
    main()
