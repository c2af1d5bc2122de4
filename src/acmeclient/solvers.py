"""http-01 challenge solvers.

A solver provisions the key authorization of a challenge so that the
server can fetch it, then removes it again. `perform` is always called
before the challenge is answered and `cleanup` once the authorization
reached a final state, whatever that state is.
"""
import abc
import logging
import os
import tempfile
import threading
from typing import Callable
from typing import Dict
from typing import Optional
from typing import Set
from typing import Tuple

import josepy as jose

from acmeclient import challenges
from acmeclient import errors
from acmeclient import messages
from acmeclient import standalone

logger = logging.getLogger(__name__)


class Solver(metaclass=abc.ABCMeta):
    """Base class for challenge solvers."""

    @abc.abstractmethod
    def perform(self, challb: messages.ChallengeBody, domain: str,
                account_key: jose.JWK) -> challenges.ChallengeResponse:
        """Provision the resource for ``challb``.

        :returns: Response to post to the challenge URI.

        :raises .SolverError: if the challenge could not be set up.

        """

    @abc.abstractmethod
    def cleanup(self, challb: messages.ChallengeBody, domain: str) -> None:
        """Remove whatever `perform` provisioned for ``challb``."""


class StandaloneSolver(Solver):
    """Serve challenges from a local `.HTTP01Server`.

    A single server is shared by all domains being authorized. It is
    started by the first `perform` and shut down when the last
    challenge has been cleaned up.

    :ivar tuple address: ``(host, port)`` to listen on.

    """

    def __init__(self, address: Tuple[str, int] = ('127.0.0.1', 8080)) -> None:
        self.address = address
        self.http_01_resources: Set[standalone.HTTP01RequestHandler.HTTP01Resource] = set()
        self._served: Dict[Tuple[str, str], standalone.HTTP01RequestHandler.HTTP01Resource] = {}
        self._server: Optional[standalone.HTTP01Server] = None
        self._lock = threading.Lock()

    @property
    def server(self) -> Optional[standalone.HTTP01Server]:
        """Running server, if any."""
        return self._server

    def perform(self, challb: messages.ChallengeBody, domain: str,
                account_key: jose.JWK) -> challenges.ChallengeResponse:
        response, validation = challb.chall.response_and_validation(account_key)
        resource = standalone.HTTP01RequestHandler.HTTP01Resource(
            chall=challb.chall, response=response, validation=validation)
        with self._lock:
            if self._server is None:
                try:
                    server = standalone.HTTP01Server(self.address, self.http_01_resources)
                except OSError as error:
                    raise errors.SolverError('Could not bind to {0}:{1}: {2}'.format(
                        self.address[0], self.address[1], error))
                server.serve_in_thread()
                self._server = server
            self.http_01_resources.add(resource)
            self._served[(domain, challb.uri)] = resource
        return response

    def cleanup(self, challb: messages.ChallengeBody, domain: str) -> None:
        with self._lock:
            resource = self._served.pop((domain, challb.uri), None)
            if resource is not None:
                self.http_01_resources.discard(resource)
            if not self._served and self._server is not None:
                logger.debug('Stopping server at %s:%d...', *self.address)
                self._server.shutdown_and_server_close()
                self._server = None


class ManualSolver(Solver):
    """Write key authorizations to files for an operator to publish.

    With ``challenge_dir`` set, the file is written directly to
    ``<challenge_dir>/.well-known/acme-challenge/<token>``, presumably the
    root of a web server. Otherwise it goes to a temporary file and the
    operator is asked to copy it into place.

    :ivar str challenge_dir: Web server root, or ``None``.
    :ivar prompt: Called with the instructions; must return once the
        operator is done.

    """
    MESSAGE_TEMPLATE = ("Copy {path} to ROOT/{root_path}/{token} of {domain} "
                        "and press enter.")

    def __init__(self, challenge_dir: Optional[str] = None,
                 prompt: Callable[[str], str] = input) -> None:
        self.challenge_dir = challenge_dir
        self.prompt = prompt
        self._files: Dict[Tuple[str, str], str] = {}
        self._lock = threading.Lock()

    def _write(self, chall: challenges.HTTP01, domain: str, validation: str) -> str:
        if self.challenge_dir:
            root = os.path.join(self.challenge_dir, chall.URI_ROOT_PATH)
            os.makedirs(root, 0o755, exist_ok=True)
            path = os.path.join(root, chall.encode('token'))
            with open(path, 'w') as file_h:
                file_h.write(validation)
        else:
            fd, path = tempfile.mkstemp(prefix=domain)
            with os.fdopen(fd, 'w') as file_h:
                file_h.write(validation)
        return path

    def perform(self, challb: messages.ChallengeBody, domain: str,
                account_key: jose.JWK) -> challenges.ChallengeResponse:
        response, validation = challb.chall.response_and_validation(account_key)
        if not challb.chall.good_token:
            raise errors.SolverError('Refusing to write unsafe token {0!r}'.format(
                challb.chall.encode('token')))
        try:
            path = self._write(challb.chall, domain, validation)
        except OSError as error:
            raise errors.SolverError('Could not write challenge file for {0}: {1}'.format(
                domain, error))
        logger.info('Wrote challenge for %s to %s', domain, path)

        with self._lock:
            self._files[(domain, challb.uri)] = path
            if not self.challenge_dir:
                self.prompt(self.MESSAGE_TEMPLATE.format(
                    path=path, root_path=challb.chall.URI_ROOT_PATH,
                    token=challb.chall.encode('token'), domain=domain))
        return response

    def cleanup(self, challb: messages.ChallengeBody, domain: str) -> None:
        with self._lock:
            path = self._files.pop((domain, challb.uri), None)
        if path is None:
            return
        try:
            os.remove(path)
        except OSError as error:
            logger.warning('Unable to remove %s: %s', path, error)
