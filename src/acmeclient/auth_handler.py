"""ACME AuthHandler."""
from concurrent import futures
import datetime
import logging
import threading
from typing import Iterable
from typing import List
from typing import Optional

import pytz

from acmeclient import challenges
from acmeclient import client as acme_client
from acmeclient import errors
from acmeclient import messages
from acmeclient import solvers

logger = logging.getLogger(__name__)

DEFAULT_AUTHZ_TIMEOUT = datetime.timedelta(minutes=10)


def find_http01(authzr: messages.AuthorizationResource) -> messages.ChallengeBody:
    """Pick the http-01 challenge of an authorization.

    Only combinations consisting of a single http-01 challenge are
    considered.

    :raises .NoSupportedChallenge: if there is no such combination.

    """
    for combination in authzr.body.resolved_combinations:
        if len(combination) == 1 and isinstance(combination[0].chall, challenges.HTTP01):
            return combination[0]
    raise errors.NoSupportedChallenge(authzr)


class AuthHandler:
    """ACME Authorization Handler for a client.

    Domains are authorized concurrently, each in its own thread. Within
    a domain the flow is sequential: create the authorization, provision
    the challenge, answer it, then poll until the server decides.

    :ivar client: ACME client API.
    :type client: :class:`acmeclient.client.Client`

    :ivar solver: Solver provisioning http-01 resources.
    :type solver: :class:`acmeclient.solvers.Solver`

    :ivar datetime.timedelta authz_timeout: Per domain deadline.
    :ivar int max_workers: Maximum number of domains authorized at once,
        all of them if ``None``.

    """
    def __init__(self, client: acme_client.Client, solver: solvers.Solver,
                 authz_timeout: datetime.timedelta = DEFAULT_AUTHZ_TIMEOUT,
                 max_workers: Optional[int] = None) -> None:
        self.client = client
        self.solver = solver
        self.authz_timeout = authz_timeout
        self.max_workers = max_workers

    def handle_authorizations(self, domains: Iterable[str],
                              new_authzr_uri: Optional[str] = None
                              ) -> List[messages.AuthorizationResource]:
        """Authorize all domains.

        :param domains: Domains for authorization.
        :param str new_authzr_uri: ``new-authorization`` URI, the
            directory one if ``None``.

        :returns: List of valid Authorization Resources, in the order of
            ``domains``.

        :raises .ValidationError: listing every authorization found invalid.
        :raises .Error: first other failure to happen. It aborts the
            whole request: domains still polling stop at their next
            poll and domains not started yet are never tried.

        """
        domains = list(domains)
        if not domains:
            raise errors.Error('No domains to authorize')

        abort = threading.Event()
        failure: Optional[BaseException] = None
        with futures.ThreadPoolExecutor(
                max_workers=self.max_workers or len(domains),
                thread_name_prefix='authz') as executor:
            pending = {executor.submit(self.authorize, domain, new_authzr_uri, abort): domain
                       for domain in domains}
            for future in futures.as_completed(pending):
                if future.cancelled():
                    continue
                error = future.exception()
                if error is None or isinstance(error, errors.ValidationError):
                    continue
                if failure is None:
                    logger.error('Authorization of %s failed: %s', pending[future], error)
                    failure = error
                    abort.set()
                    for other in pending:
                        other.cancel()
                else:
                    logger.debug('Authorization of %s stopped: %s', pending[future], error)
        if failure is not None:
            raise failure

        failed: List[messages.AuthorizationResource] = []
        for future in pending:
            error = future.exception()
            if isinstance(error, errors.ValidationError):
                failed.extend(error.failed_authzrs)
        if failed:
            raise errors.ValidationError(failed)
        return [future.result() for future in pending]

    def authorize(self, domain: str, new_authzr_uri: Optional[str] = None,
                  abort: Optional[threading.Event] = None
                  ) -> messages.AuthorizationResource:
        """Run the authorization flow for a single domain.

        :param threading.Event abort: Stops polling once set.

        :returns: The ``valid`` Authorization Resource.

        """
        deadline = datetime.datetime.now(pytz.utc) + self.authz_timeout
        authzr = self.client.request_domain_challenges(domain, new_authzr_uri)
        if authzr.body.status == messages.STATUS_VALID:
            logger.info('%s is already authorized', domain)
            return authzr

        challb = find_http01(authzr)
        logger.info('Performing http-01 challenge for %s', domain)
        response = self.solver.perform(challb, domain, self.client.net.key)
        try:
            try:
                self.client.answer_challenge(challb, response)
            except errors.TransportError as error:
                logger.warning('Answering challenge for %s failed: %s', domain, error)
            logger.info('Waiting for verification of %s...', domain)
            return self.client.poll_authorization(authzr, deadline, abort)
        finally:
            self.solver.cleanup(challb, domain)
