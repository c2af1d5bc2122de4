"""Tests for acmeclient.standalone."""
import http.client as http_client
import sys
from typing import Set
import unittest

import josepy as jose
import pytest
import requests

from acmeclient import challenges
from acmeclient._internal.tests import test_util


class HTTP01ServerTest(unittest.TestCase):
    """Tests for acmeclient.standalone.HTTP01Server."""

    def setUp(self):
        self.account_key = test_util.load_jwk()
        self.resources: Set = set()

        from acmeclient.standalone import HTTP01Server
        self.server = HTTP01Server(('127.0.0.1', 0), resources=self.resources)
        self.port = self.server.socket.getsockname()[1]
        self.server.serve_in_thread()
        # never go through a proxy configured in the environment
        self.session = requests.Session()
        self.session.trust_env = False

    def tearDown(self):
        self.session.close()
        self.server.shutdown_and_server_close()

    def _get(self, path):
        return self.session.get('http://127.0.0.1:{0}{1}'.format(self.port, path), timeout=5)

    def _resource(self, token):
        from acmeclient.standalone import HTTP01RequestHandler
        chall = challenges.HTTP01(token=token)
        response, validation = chall.response_and_validation(self.account_key)
        return HTTP01RequestHandler.HTTP01Resource(
            chall=chall, response=response, validation=validation)

    def test_index(self):
        assert self._get('/').status_code == http_client.NOT_FOUND

    def test_404(self):
        assert self._get('/foo').status_code == http_client.NOT_FOUND

    def test_http01_found(self):
        resource = self._resource(jose.decode_b64jose(test_util.TOKEN))
        self.resources.add(resource)
        response = self._get(resource.chall.path)
        assert response.status_code == http_client.OK
        assert response.text == resource.validation
        assert response.headers['Content-Type'] == 'text/plain'
        assert resource.response.key_authorization == resource.validation

    def test_http01_not_found(self):
        resource = self._resource(b'x' * 16)
        self.resources.add(self._resource(b'y' * 16))
        assert self._get(resource.chall.path).status_code == http_client.NOT_FOUND

    def test_http01_removed(self):
        resource = self._resource(b'x' * 16)
        self.resources.add(resource)
        assert self._get(resource.chall.path).status_code == http_client.OK
        self.resources.discard(resource)
        assert self._get(resource.chall.path).status_code == http_client.NOT_FOUND

    def test_timeout(self):
        from acmeclient.standalone import HTTP01RequestHandler
        handler = HTTP01RequestHandler.partial_init(set(), timeout=7)
        assert handler.keywords == {'simple_http_resources': set(), 'timeout': 7}


class ShutdownTest(unittest.TestCase):
    """Tests for acmeclient.standalone.HTTP01Server.shutdown_and_server_close."""

    def test_not_started(self):
        from acmeclient.standalone import HTTP01Server
        server = HTTP01Server(('127.0.0.1', 0), resources=set())
        server.shutdown_and_server_close()
        assert server.socket.fileno() == -1


if __name__ == '__main__':
    sys.exit(pytest.main(sys.argv[1:] + [__file__]))  # pragma: no cover
