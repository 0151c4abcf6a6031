import contextlib
import json
import logging
import threading
import time
import urllib.parse

import requests

from .errors import (AuthenticationError, DecodeError, RequestTimeoutError,
                     SiriusXMError, UpstreamRequestError)
from .log import TRACE

log = logging.getLogger(__name__)


class SiriusXMSession:
    USER_AGENT = 'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_12_6) AppleWebKit/604.5.6 (KHTML, like Gecko) Version/11.0.3 Safari/604.5.6'
    REST_FORMAT = 'https://player.siriusxm.com/rest/v2/experience/modules/{}'
    LIVE_PRIMARY_HLS = 'https://siriusxm-priprodlive.akamaized.net'
    APP_VERSION = '3.1802.10011.0'
    REQUEST_TIMEOUT = 30

    LOGIN_COOKIE = 'SXMDATA'
    SESSION_COOKIES = ('AWSALB', 'JSESSIONID')
    TOKEN_COOKIE = 'SXMAKTOKEN'

    def __init__(self, username, password, region='US', session=None):
        self.http = session if session is not None else requests.Session()
        self.http.headers.update({'User-Agent': self.USER_AGENT})
        self.username = username
        self.password = password
        self.region = region
        # bumped on every successful session resume
        self.generation = 0
        self._auth_lock = threading.RLock()
        self._local = threading.local()
        log.debug('SiriusXM session created for user: %s, region: %s', username, region)

    def is_logged_in(self):
        return self.LOGIN_COOKIE in self._cookie_names()

    def is_session_authenticated(self):
        names = self._cookie_names()
        return all(name in names for name in self.SESSION_COOKIES)

    def _cookie_names(self):
        return [cookie.name for cookie in self.http.cookies]

    @contextlib.contextmanager
    def deadline(self, seconds):
        """Bound every upstream call this thread makes inside the block."""
        self._local.expires = time.monotonic() + seconds
        try:
            yield
        finally:
            self._local.expires = None

    def remaining(self):
        expires = getattr(self._local, 'expires', None)
        if expires is None:
            return None
        return expires - time.monotonic()

    def check_deadline(self):
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise RequestTimeoutError('Request deadline exceeded')

    def _timeout(self):
        self.check_deadline()
        remaining = self.remaining()
        if remaining is None:
            return self.REQUEST_TIMEOUT
        return min(self.REQUEST_TIMEOUT, remaining)

    def _cookie(self, name):
        for cookie in self.http.cookies:
            if cookie.name == name:
                return cookie.value
        return None

    def get_sxmak_token(self):
        value = self._cookie(self.TOKEN_COOKIE)
        try:
            return value.split('=', 1)[1].split(',', 1)[0]
        except (AttributeError, IndexError):
            return None

    def get_gup_id(self):
        value = self._cookie(self.LOGIN_COOKIE)
        if value is None:
            return None
        try:
            return json.loads(urllib.parse.unquote(value))['gupId']
        except (ValueError, KeyError, TypeError) as e:
            log.warning('Error parsing %s cookie: %s', self.LOGIN_COOKIE, e)
            return None

    def auth_params(self):
        """Query parameters the CDN expects on every manifest and segment."""
        token = self.get_sxmak_token()
        gup_id = self.get_gup_id()
        if not token or not gup_id:
            raise AuthenticationError('Session has no SXMAK token or GUP ID')
        return {
            'token': token,
            'consumer': 'k2',
            'gupId': gup_id,
        }

    def device_info(self):
        return {
            'osVersion': 'Mac',
            'platform': 'Web',
            'sxmAppVersion': self.APP_VERSION,
            'browser': 'Safari',
            'browserVersion': '11.0.3',
            'appRegion': self.region,
            'deviceModel': 'K2WebClient',
            'clientDeviceId': 'null',
            'player': 'html5',
            'clientDeviceType': 'web',
        }

    def ensure_authenticated(self):
        with self._auth_lock:
            if not self.is_session_authenticated() and not self.authenticate():
                raise AuthenticationError('Unable to authenticate')

    def _decode(self, res, method):
        if not 200 <= res.status_code < 300:
            raise UpstreamRequestError('Received status code {} for method \'{}\''.format(res.status_code, method),
                                       res.status_code)
        try:
            return res.json()
        except ValueError:
            raise DecodeError('Error decoding json for method \'{}\''.format(method), res.status_code)

    def get(self, method, params, authenticate=True):
        if authenticate:
            self.ensure_authenticated()

        url = self.REST_FORMAT.format(method)
        log.log(TRACE, 'GET request to: %s %s', url, params)
        timeout = self._timeout()
        try:
            res = self.http.get(url, params=params, timeout=timeout)
        except requests.Timeout as e:
            raise self._timeout_error(timeout, 'GET \'{}\''.format(method), e)
        except requests.RequestException as e:
            raise UpstreamRequestError('GET \'{}\' failed: {}'.format(method, e))
        return self._decode(res, method)

    def post(self, method, postdata, authenticate=True):
        if authenticate:
            self.ensure_authenticated()

        url = self.REST_FORMAT.format(method)
        log.log(TRACE, 'POST request to: %s', url)
        timeout = self._timeout()
        try:
            res = self.http.post(url, data=json.dumps(postdata),
                                 headers={'Content-Type': 'application/json'},
                                 timeout=timeout)
        except requests.Timeout as e:
            raise self._timeout_error(timeout, 'POST \'{}\''.format(method), e)
        except requests.RequestException as e:
            raise UpstreamRequestError('POST \'{}\' failed: {}'.format(method, e))
        log.log(TRACE, 'Response status: %s', res.status_code)
        return self._decode(res, method)

    def cdn_get(self, url):
        """GET a manifest or segment from the CDN, returning the raw response."""
        params = self.auth_params()
        log.log(TRACE, 'CDN request to: %s', url)
        timeout = self._timeout()
        try:
            return self.http.get(url, params=params, timeout=timeout)
        except requests.Timeout as e:
            raise self._timeout_error(timeout, 'GET {}'.format(url), e)
        except requests.RequestException as e:
            raise UpstreamRequestError('GET {} failed: {}'.format(url, e))

    def _timeout_error(self, timeout, what, e):
        # a timeout shorter than the default was cut down to the request deadline
        if timeout < self.REQUEST_TIMEOUT:
            return RequestTimeoutError('{} ran past the request deadline'.format(what))
        return UpstreamRequestError('{} timed out: {}'.format(what, e))

    def _module_status(self, data, what):
        try:
            return data['ModuleListResponse']['status']
        except (KeyError, TypeError):
            log.error('Error decoding json response for %s', what)
            return None

    def login(self):
        log.debug('Attempting to login user: %s', self.username)
        postdata = {
            'moduleList': {
                'modules': [{
                    'moduleRequest': {
                        'resultTemplate': 'web',
                        'deviceInfo': self.device_info(),
                        'standardAuth': {
                            'username': self.username,
                            'password': self.password,
                        },
                    },
                }],
            },
        }
        try:
            data = self.post('modify/authentication', postdata, authenticate=False)
        except RequestTimeoutError:
            raise
        except SiriusXMError as e:
            log.error('Login request failed: %s', e)
            return False

        status = self._module_status(data, 'login')
        # a status 1 without the login cookie is still a failure
        if status == 1 and self.is_logged_in():
            log.info('Login successful for user: %s', self.username)
            log.log(TRACE, 'Cookies after login: %s', ', '.join(self._cookie_names()))
            return True

        log.error('Login failed for user: %s (status %s)', self.username, status)
        return False

    def authenticate(self):
        with self._auth_lock:
            if not self.is_logged_in() and not self.login():
                log.error('Unable to authenticate because login failed')
                return False

            log.debug('Attempting to authenticate session')
            postdata = {
                'moduleList': {
                    'modules': [{
                        'moduleRequest': {
                            'resultTemplate': 'web',
                            'deviceInfo': self.device_info(),
                        }
                    }]
                }
            }
            try:
                data = self.post('resume?OAtrial=false', postdata, authenticate=False)
            except RequestTimeoutError:
                raise
            except SiriusXMError as e:
                log.error('Session resume request failed: %s', e)
                return False

            status = self._module_status(data, 'authentication')
            if status == 1 and self.is_session_authenticated():
                self.generation += 1
                log.info('Session authentication successful')
                log.log(TRACE, 'Cookies after resume: %s', ', '.join(self._cookie_names()))
                return True

            log.error('Session authentication failed (status %s)', status)
            return False

    def renew(self, generation):
        """Re-authenticate unless another caller already did since `generation` was read."""
        with self._auth_lock:
            if generation != self.generation:
                log.debug('Session already renewed by another request')
                return True
            return self.authenticate()
