import os
import time
import asyncio
import traceback
import urllib.parse
from typing import Dict

import h11

from asystatic import logger
from asystatic.config import StaticServerConfig
from asystatic.common.connection import UniConnection
from asystatic.server import UniServer
from asystatic.errors import StaticServerError, InvalidMethod, ReadFailure
from asystatic.events import StaticServerObserver, RequestEvent, SymbolicLinkEvent, ResponseEvent
from asystatic.static.resolver import PathResolver, ResolvedTarget, TargetKind
from asystatic.static.validator import CacheValidator, CacheState
from asystatic.static.composer import ResponseComposer, ComposedResponse, ALLOWED_METHODS, get_content_type, get_reason


class HTTPWrapper:
    def __init__(self, client_id, stream:UniConnection):
        self.client_id = client_id
        self.stream = stream
        self.conn = h11.Connection(h11.SERVER)

    def debug(self, msg):
        logger.debug('[%s] %s' % (self.client_id, msg))

    async def send(self, event):
        assert type(event) is not h11.ConnectionClosed
        data = self.conn.send(event)
        try:
            await self.stream.write(data)
        except BaseException:
            # If the write failed (peer gone, task cancelled) h11 must not
            # believe the bytes went out.
            self.conn.send_failed()
            raise

    async def _read_from_peer(self):
        if self.conn.they_are_waiting_for_100_continue:
            self.debug('Sending 100 Continue')
            go_ahead = h11.InformationalResponse(status_code=100, headers=[])
            await self.send(go_ahead)
        try:
            data = await self.stream.read_one()
        except (ConnectionError, OSError) as exc:
            self.debug('Error reading from peer: %s' % exc)
            # They've stopped talking to us. Not much we can do about it here.
            data = b""
        self.conn.receive_data(data)

    async def next_event(self):
        while True:
            event = self.conn.next_event()
            if event is h11.NEED_DATA:
                await self._read_from_peer()
                continue
            return event

    @property
    def can_respond(self):
        return self.conn.our_state in (h11.IDLE, h11.SEND_RESPONSE)

    async def shutdown_and_clean_up(self):
        try:
            await self.stream.close()
        except Exception as exc:
            self.debug('Error closing connection: %s' % exc)


def get_request_path(target:bytes) -> bytes:
    """Path part of a request target, still percent-encoded.

    Origin-form targets keep every byte before the query, so //a/b stays //a/b.
    """
    if target.startswith(b'/'):
        for sep in (b'?', b'#'):
            target = target.split(sep, 1)[0]
        return target
    # absolute-form, http://host/path
    return urllib.parse.urlsplit(target).path or b'/'


class RequestContext:
    """Everything about one request, from arrival until the response is done"""
    def __init__(self, method:str, target:str, path:str, headers:Dict[str, str]):
        self.method = method
        self.target = target
        self.path = path
        self.headers = headers
        self.started = time.perf_counter()
        self.status = None
        self.response_headers = None
        self.file = None
        self.stat = None
        self.error = None

    @staticmethod
    def from_h11(request:h11.Request):
        headers = {}
        for name, value in request.headers:
            name = name.decode('ascii').lower()
            value = value.decode('latin-1')
            if name in headers:
                headers[name] += ', ' + value
            else:
                headers[name] = value
        raw_path = get_request_path(request.target)
        path = os.fsdecode(urllib.parse.unquote_to_bytes(raw_path))
        return RequestContext(
            request.method.decode('ascii'),
            request.target.decode('latin-1'),
            path,
            headers,
        )

    @property
    def elapsed(self):
        return time.perf_counter() - self.started

    def to_event(self) -> ResponseEvent:
        return ResponseEvent(self.method, self.path, self.status, self.elapsed, self.error, self.file, self.stat)


class StaticRequestHandler:
    """Turns one h11 request into exactly one response.

    received -> method checked -> path validated -> resolved -> cache checked -> responded
    """
    def __init__(self, config:StaticServerConfig, observer:StaticServerObserver = None):
        self.config = config
        self.observer = observer
        if self.observer is None:
            self.observer = StaticServerObserver()
        self.resolver = PathResolver.from_config(config, link_callback = self.on_symbolic_link)
        self.composer = ResponseComposer.from_config(config)

    async def notify(self, callback, event):
        """Observer failures are logged, they never affect the response"""
        try:
            await callback(event)
        except Exception:
            logger.exception('Observer failed to handle %r' % event)

    async def on_symbolic_link(self, link:str, target:str):
        await self.notify(self.observer.on_symbolic_link, SymbolicLinkEvent(link, target))

    async def process_request(self, wrapper:HTTPWrapper, request:h11.Request):
        ctx = RequestContext.from_h11(request)
        await self.notify(self.observer.on_request, RequestEvent(ctx.method, ctx.path))
        try:
            await self.dispatch(wrapper, ctx)
        except BaseException as e:
            if ctx.error is None:
                ctx.error = e
            raise
        finally:
            await self.notify(self.observer.on_response, ctx.to_event())

    async def dispatch(self, wrapper:HTTPWrapper, ctx:RequestContext):
        if ctx.method not in ALLOWED_METHODS:
            error = InvalidMethod(ctx.method)
            return await self.send_response(wrapper, ctx, self.composer.method_not_allowed(ctx.method, error))

        target = await self.resolver.resolve(ctx.path)
        if target.kind == TargetKind.NOTFOUND:
            return await self.send_not_found(wrapper, ctx, target)
        if target.kind != TargetKind.FILE:
            return await self.send_response(wrapper, ctx, self.composer.error(target.status, ctx.method, error = target.error))

        ctx.file = target.path
        ctx.stat = target.stat
        validator = CacheValidator(target.stat, enabled = self.config.cache)
        if validator.check(ctx.headers) == CacheState.NOT_MODIFIED:
            return await self.send_response(wrapper, ctx, self.composer.not_modified(validator))

        response = self.composer.file(ctx.method, target.path, validator, ctx.headers.get('range'))
        if response.has_file_body is False:
            return await self.send_response(wrapper, ctx, response)
        await self.send_file(wrapper, ctx, response)

    async def send_response(self, wrapper:HTTPWrapper, ctx:RequestContext, response:ComposedResponse):
        ctx.status = response.status
        ctx.response_headers = response.headers
        if response.error is not None:
            ctx.error = response.error
        await wrapper.send(response.to_h11())
        if response.body and response.head_only is False:
            await wrapper.send(h11.Data(data=response.body))
        await wrapper.send(h11.EndOfMessage())

    async def send_not_found(self, wrapper:HTTPWrapper, ctx:RequestContext, target:ResolvedTarget):
        body = None
        content_type = 'text/plain'
        if self.config.not_found is not None:
            loop = asyncio.get_running_loop()
            try:
                body = await loop.run_in_executor(None, read_file, self.config.not_found)
                content_type = get_content_type(self.config.not_found)
            except OSError as e:
                logger.debug('Not found template %s is not readable: %s' % (self.config.not_found, e))
        response = self.composer.error(404, ctx.method, body = body, content_type = content_type, error = target.error)
        await self.send_response(wrapper, ctx, response)

    async def send_file(self, wrapper:HTTPWrapper, ctx:RequestContext, response:ComposedResponse):
        ctx.status = response.status
        ctx.response_headers = response.headers
        headers_sent = False
        body = self.composer.iter_file(response.path, response.start, response.length)
        try:
            async for chunk in body:
                if headers_sent is False:
                    headers_sent = True
                    await wrapper.send(response.to_h11())
                await wrapper.send(h11.Data(data=chunk))
            if headers_sent is False:
                headers_sent = True
                await wrapper.send(response.to_h11())
            await wrapper.send(h11.EndOfMessage())
        except ReadFailure as e:
            ctx.error = e
            if self.config.debug is True:
                logger.error('Failed to read %s\r\n%s' % (response.path, ''.join(traceback.format_exception(e.innerexception))))
            if headers_sent is True:
                # too late for another status, the client sees a truncated body
                raise
            message = getattr(e.innerexception, 'strerror', None) or get_reason(500)
            await self.send_response(wrapper, ctx, self.composer.error(500, ctx.method, message = message, error = e))
        finally:
            await body.aclose()

    async def send_bad_request(self, wrapper:HTTPWrapper, error:h11.RemoteProtocolError):
        if wrapper.can_respond is False:
            return
        status = getattr(error, 'error_status_hint', 400)
        response = self.composer.error(status)
        try:
            await wrapper.send(response.to_h11())
            await wrapper.send(h11.Data(data=response.body))
            await wrapper.send(h11.EndOfMessage())
        except (h11.LocalProtocolError, ConnectionError, OSError) as e:
            wrapper.debug('Could not send %s: %s' % (status, e))


def read_file(path:str) -> bytes:
    with open(path, 'rb') as f:
        return f.read()


class StaticServer:
    def __init__(self, config:StaticServerConfig, observer:StaticServerObserver = None):
        self.config = config
        self.observer = observer
        if self.observer is None:
            self.observer = StaticServerObserver()
        self.target = config.get_target()
        self.handler = StaticRequestHandler(config, self.observer)

        self.listener:UniServer = None
        self.clients = set()
        self.id_counter = 0
        self.__main_task = None
        self.started_evt = asyncio.Event()
        self.stopped_evt = asyncio.Event()

    @property
    def port(self):
        if self.listener is None:
            return None
        return self.listener.port

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    async def start(self):
        """Binds the listener, returns once the port is ready. Raises BindFailure."""
        if self.listener is not None:
            return self.port
        listener = UniServer(self.target)
        await listener.start()
        self.listener = listener
        self.stopped_evt.clear()
        self.__main_task = asyncio.create_task(self.__serve())
        self.started_evt.set()
        return self.port

    async def serve_forever(self):
        await self.start()
        await self.stopped_evt.wait()

    async def stop(self):
        if self.listener is None:
            return
        listener = self.listener
        self.listener = None
        self.started_evt.clear()
        await listener.close()
        if self.__main_task is not None:
            self.__main_task.cancel()
            try:
                await self.__main_task
            except asyncio.CancelledError:
                pass
            self.__main_task = None
        clients = list(self.clients)
        for client in clients:
            client.cancel()
        await asyncio.gather(*clients, return_exceptions=True)
        self.clients.clear()
        await listener.wait_closed()
        self.stopped_evt.set()

    async def __serve(self):
        async for connection in self.listener.serve():
            task = asyncio.create_task(self.__handle_connection(connection))
            self.clients.add(task)
            task.add_done_callback(self.clients.discard)

    async def __handle_connection(self, connection:UniConnection):
        client_id = self.id_counter
        self.id_counter += 1
        wrapper = HTTPWrapper(client_id, connection)
        wrapper.debug('New client connected from %s' % (connection.peername,))
        try:
            while True:
                if wrapper.conn.our_state in (h11.MUST_CLOSE, h11.CLOSED, h11.ERROR):
                    break
                if wrapper.conn.their_state in (h11.MUST_CLOSE, h11.CLOSED, h11.ERROR):
                    break
                if wrapper.conn.states == {h11.CLIENT: h11.DONE, h11.SERVER: h11.DONE}:
                    wrapper.conn.start_next_cycle()

                try:
                    event = await wrapper.next_event()
                except h11.RemoteProtocolError as exc:
                    wrapper.debug('Bad request: %s' % exc)
                    await self.handler.send_bad_request(wrapper, exc)
                    break

                if type(event) is h11.Request:
                    await self.handler.process_request(wrapper, event)
                    # whatever body the client sent is of no use to us
                    while wrapper.conn.their_state is h11.SEND_BODY:
                        if type(await wrapper.next_event()) is h11.ConnectionClosed:
                            break
                    continue
                if type(event) is h11.ConnectionClosed:
                    break
                wrapper.debug('Unexpected event %s' % type(event).__name__)
        except asyncio.CancelledError:
            raise
        except (StaticServerError, h11.ProtocolError, ConnectionError, OSError) as exc:
            wrapper.debug('Connection terminated: %r' % exc)
        except Exception:
            logger.exception('[%s] Unhandled error' % client_id)
        finally:
            await wrapper.shutdown_and_clean_up()
