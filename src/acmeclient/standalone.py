"""Local HTTP server answering http-01 challenges."""
import collections
import functools
import http.client as http_client
import http.server as BaseHTTPServer
import logging
import threading
from typing import Any
from typing import Optional
from typing import Set
from typing import Tuple

from acmeclient import challenges

logger = logging.getLogger(__name__)


class ACMEServerMixin:
    """ACME server common settings mixin."""
    server_version = "ACME client standalone challenge solver"
    allow_reuse_address = True


class HTTP01Server(ACMEServerMixin, BaseHTTPServer.HTTPServer):
    """HTTP01 Server.

    :ivar set resources: `HTTP01RequestHandler.HTTP01Resource` objects
        currently served. The set is shared with the request handlers,
        so resources may be added or removed while the server runs.

    """

    def __init__(self, server_address: Tuple[str, int],
                 resources: Set['HTTP01RequestHandler.HTTP01Resource'],
                 timeout: int = 30) -> None:
        self.resources = resources
        super().__init__(
            server_address, HTTP01RequestHandler.partial_init(
                simple_http_resources=resources, timeout=timeout))
        self._thread: Optional[threading.Thread] = None

    def serve_in_thread(self) -> None:
        """Start serving requests from a background thread."""
        self._thread = threading.Thread(target=self.serve_forever, daemon=True)
        self._thread.start()
        logger.debug("Serving http-01 challenges on %s:%s", *self.socket.getsockname()[:2])

    def shutdown_and_server_close(self) -> None:
        """Stop serving, close the listening socket and join the thread."""
        if self._thread is not None:
            self.shutdown()
        self.server_close()
        if self._thread is not None:
            self._thread.join()
            self._thread = None


class HTTP01RequestHandler(BaseHTTPServer.BaseHTTPRequestHandler):
    """HTTP01 challenge handler.

    Adheres to the stdlib's `socketserver.BaseRequestHandler` interface.

    :ivar set simple_http_resources: A set of `HTTP01Resource`
        objects.

    """
    HTTP01Resource = collections.namedtuple(
        "HTTP01Resource", "chall response validation")

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self.simple_http_resources = kwargs.pop("simple_http_resources", set())
        self._timeout = kwargs.pop('timeout', 30)
        super().__init__(*args, **kwargs)
        self.server: HTTP01Server

    # BaseHTTPRequestHandler declares 'timeout' at class level; it is
    # redefined as a property so that it can be set per server.
    @property
    def timeout(self) -> int:  # type: ignore[override]
        """
        The default timeout this server should apply to requests.
        :return: timeout to apply
        :rtype: int
        """
        return self._timeout

    def log_message(self, format: str, *args: Any) -> None:  # pylint: disable=redefined-builtin
        """Log arbitrary message."""
        logger.debug("%s - - %s", self.client_address[0], format % args)

    def handle(self) -> None:
        """Handle request."""
        self.log_message("Incoming request")
        BaseHTTPServer.BaseHTTPRequestHandler.handle(self)

    def do_GET(self) -> None:  # pylint: disable=invalid-name,missing-function-docstring
        if self.path.startswith("/" + challenges.HTTP01.URI_ROOT_PATH + "/"):
            self.handle_simple_http_resource()
        else:
            self.handle_404()

    def handle_404(self) -> None:
        """Handler 404 Not Found errors."""
        self.send_response(http_client.NOT_FOUND, message="Not Found")
        self.send_header("Content-type", "text/html")
        self.end_headers()
        self.wfile.write(b"404")

    def handle_simple_http_resource(self) -> None:
        """Handle HTTP01 provisioned resources."""
        for resource in list(self.simple_http_resources):
            if resource.chall.path == self.path:
                self.log_message("Serving HTTP01 with token %r",
                                 resource.chall.encode("token"))
                self.send_response(http_client.OK)
                self.send_header("Content-Type", "text/plain")
                self.end_headers()
                self.wfile.write(resource.validation.encode())
                return
        self.log_message("%s does not correspond to any resource. ignoring",
                         self.path)
        self.handle_404()

    @classmethod
    def partial_init(cls, simple_http_resources: Set['HTTP01RequestHandler.HTTP01Resource'],
                     timeout: int) -> 'functools.partial[HTTP01RequestHandler]':
        """Partially initialize this handler.

        This is useful because `socketserver.BaseServer` takes
        uninitialized handler and initializes it with the current
        request.

        """
        return functools.partial(
            cls, simple_http_resources=simple_http_resources,
            timeout=timeout)
