import json
import logging
import signal
import urllib.parse
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

from .errors import NotFoundError, RequestTimeoutError, SiriusXMError

log = logging.getLogger(__name__)

CLIENT_TIMEOUT = 10


def make_sirius_handler(gateway, deadline=CLIENT_TIMEOUT):
    class SiriusHandler(BaseHTTPRequestHandler):
        timeout = CLIENT_TIMEOUT

        def log_message(self, format, *args):
            log.debug('%s - %s', self.address_string(), format % args)

        def send_body(self, code, body, content_type):
            if isinstance(body, str):
                body = bytes(body, 'utf-8')
            self.close_connection = True
            try:
                self.send_response(code)
                self.send_header('Content-Type', content_type)
                self.send_header('Content-Length', str(len(body)))
                self.send_header('Connection', 'close')
                self.end_headers()
                if self.command != 'HEAD':
                    self.wfile.write(body)
            except (BrokenPipeError, ConnectionResetError) as e:
                log.warning('Client went away while sending response: %s', e)

        def send_failure(self, code, message):
            self.send_body(code, message, 'text/plain')

        def do_GET(self):
            path = urllib.parse.unquote(urllib.parse.urlsplit(self.path).path)
            log.debug('GET request: %s', path)
            try:
                with gateway.deadline(deadline):
                    self.route(path)
            except RequestTimeoutError as e:
                log.warning('Client request timeout: %s: %s', path, e)
                self.send_failure(504, 'Gateway Timeout')
            except NotFoundError as e:
                log.error('%s: %s', path, e)
                if path.startswith('/channel/'):
                    self.send_failure(404, 'Channel Not Found')
                else:
                    self.send_failure(500, 'Internal Server Error')
            except SiriusXMError as e:
                log.error('%s: %s', path, e)
                self.send_failure(500, 'Internal Server Error')
            except Exception:
                log.exception('Unhandled error serving %s', path)
                self.send_failure(500, 'Internal Server Error')

        def route(self, path):
            if path.endswith('.m3u8'):
                data = gateway.get_playlist(path.rsplit('/', 1)[1][:-5])
                if not data:
                    log.error('Empty playlist for %s', path)
                    self.send_failure(500, 'Internal Server Error')
                    return
                self.send_body(200, data, 'application/x-mpegURL')
            elif path.endswith('.aac'):
                data = gateway.get_segment(path[1:])
                if not data:
                    log.error('Empty segment body for %s', path)
                    self.send_failure(500, 'Internal Server Error')
                    return
                self.send_body(200, data, 'audio/x-aac')
            elif path.endswith('/key/1'):
                self.send_body(200, gateway.HLS_AES_KEY, 'text/plain')
            elif path == '/channel/all':
                data = gateway.get_channels()
                if not data:
                    self.send_failure(500, 'Internal Server Error')
                    return
                self.send_body(200, json.dumps(data), 'application/json')
            elif path.startswith('/channel/') and len(path) > len('/channel/'):
                data = gateway.get_simplified_channel_info(path[len('/channel/'):])
                self.send_body(200, json.dumps(data), 'application/json')
            else:
                log.warning('Unknown request: %s', path)
                self.send_failure(404, 'Not Found')

        def method_not_allowed(self):
            log.warning('%s request rejected: %s', self.command, self.path)
            self.send_failure(405, 'Method Not Allowed')

        do_HEAD = do_POST = do_PUT = do_DELETE = do_PATCH = do_OPTIONS = method_not_allowed

    return SiriusHandler


class GatewayServer(ThreadingHTTPServer):
    daemon_threads = True
    allow_reuse_address = True

    def __init__(self, gateway, port, host='0.0.0.0', deadline=CLIENT_TIMEOUT):
        super().__init__((host, port), make_sirius_handler(gateway, deadline))
        self.gateway = gateway


def _interrupt(signum, frame):
    log.info('Received signal %s, shutting down', signal.Signals(signum).name)
    raise KeyboardInterrupt


def serve(gateway, port):
    if hasattr(signal, 'SIGPIPE'):
        signal.signal(signal.SIGPIPE, signal.SIG_IGN)
    for name in ('SIGTERM', 'SIGQUIT'):
        if hasattr(signal, name):
            signal.signal(getattr(signal, name), _interrupt)

    httpd = GatewayServer(gateway, port)
    log.info('HTTP server started on port %d', port)
    log.info('Access channels at: http://127.0.0.1:%d/channel.m3u8', port)
    try:
        httpd.serve_forever()
    except KeyboardInterrupt:
        pass
    httpd.server_close()
    log.info('HTTP server closed')
