import json
import time
import urllib.parse

import pytest
import requests
from requests.cookies import RequestsCookieJar

from sxm.gateway import Gateway

REST = 'https://player.siriusxm.com/rest/v2/experience/modules/{}'
CDN = 'https://siriusxm-priprodlive.akamaized.net'

LOGIN_URL = REST.format('modify/authentication')
RESUME_URL = REST.format('resume?OAtrial=false')
CHANNELS_URL = REST.format('get')
TUNE_URL = REST.format('tune/now-playing-live')

MASTER_URL = CDN + '/AAC_Data/9450/HLS_9450_256k_v3/9450_256k_large_v3.m3u8'
VARIANT_URL = CDN + '/AAC_Data/9450/HLS_9450_256k_v3/9450_256k_v3.m3u8'
BASE_PATH = 'AAC_Data/9450/HLS_9450_256k_v3'
SEGMENT = '9450_256k_1_072668629528_00389632_v3.aac'
SEGMENT_URL = '{}/{}/{}'.format(CDN, BASE_PATH, SEGMENT)
SEGMENT_BYTES = b'\x8f\x01encrypted-audio'

MASTER_PLAYLIST = '''#EXTM3U
#EXT-X-STREAM-INF:BANDWIDTH=281600,CODECS="mp4a.40.2"

9450_256k_v3.m3u8
#EXT-X-STREAM-INF:BANDWIDTH=70400,CODECS="mp4a.40.2"
9450_64k_v3.m3u8
'''

MEDIA_PLAYLIST = '''#EXTM3U
#EXT-X-TARGETDURATION:10
#EXT-X-MEDIA-SEQUENCE:389632
#EXT-X-KEY:METHOD=AES-128,URI="key/1"
#EXTINF:10,
9450_256k_1_072668629528_00389632_v3.aac
#EXTINF:10,
9450_256k_1_072668629538_00389633_v3.aac
'''

CHANNELS = [
    {
        'channelId': 'thepulse',
        'channelGuid': 'guid-pulse',
        'name': 'The Pulse',
        'siriusChannelNumber': '15',
        'isFavorite': False,
        'categories': {'categories': [{'name': 'Pop', 'isPrimary': True}]},
        'images': {'images': [
            {'width': 60, 'height': 60, 'url': 'https://img/pulse-60.png'},
            {'width': 1080, 'height': 1080, 'url': 'https://img/pulse-1080.png'},
        ]},
    },
    {
        'channelId': '9450',
        'channelGuid': 'guid-9450',
        'name': 'Octane',
        'siriusChannelNumber': '37',
        'isFavorite': True,
        'categories': {'categories': [
            {'name': 'Hard Rock', 'isPrimary': False},
            {'name': 'Rock', 'isPrimary': True},
        ]},
        'images': {'images': [
            {'width': 100, 'height': 100, 'url': 'https://img/octane-100.png'},
            {'width': 300, 'height': 300, 'url': 'https://img/octane-300.png'},
            {'width': 500, 'height': 500, 'url': 'https://img/octane-500.png'},
            {'width': 720, 'height': 720, 'url': 'https://img/octane-720.png'},
            {'width': 1440, 'height': 1440, 'url': 'https://img/octane-1440.png'},
        ]},
    },
    {
        'channelId': 'siriusxmhits1',
        'channelGuid': 'guid-hits1',
        'name': 'SiriusXM Hits 1',
        'siriusChannelNumber': '2',
    },
]


class FakeResponse:
    def __init__(self, status_code=200, body=b'', json_data=None):
        if json_data is not None:
            body = json.dumps(json_data)
        if isinstance(body, str):
            body = body.encode('utf-8')
        self.status_code = status_code
        self.content = body

    @property
    def text(self):
        return self.content.decode('utf-8')

    def json(self):
        return json.loads(self.text)


class FakeUpstream:
    """Stands in for requests.Session, dispatching on method and URL."""

    def __init__(self):
        self.headers = {}
        self.cookies = RequestsCookieJar()
        self.routes = {}
        self.calls = []
        self.timeouts = []

    def route(self, method, url, handler):
        self.routes[(method, url)] = handler

    def get(self, url, params=None, timeout=None, **kwargs):
        return self._dispatch('GET', url, params, timeout)

    def post(self, url, data=None, timeout=None, **kwargs):
        return self._dispatch('POST', url, json.loads(data) if data else None, timeout)

    def _dispatch(self, method, url, payload, timeout=None):
        self.calls.append((method, url, payload))
        self.timeouts.append(timeout)
        handler = self.routes.get((method, url))
        if handler is None:
            return FakeResponse(404, 'no route')
        result = handler(payload)
        if isinstance(result, FakeResponse):
            return result
        return FakeResponse(json_data=result)

    def slow(self, delay, response):
        """Answer after `delay` seconds, giving up at the caller's timeout the way requests does."""
        def handler(payload):
            timeout = self.timeouts[-1]
            if timeout is not None and delay > timeout:
                time.sleep(timeout)
                raise requests.Timeout('Read timed out. (read timeout={})'.format(timeout))
            time.sleep(delay)
            return response
        return handler

    def count(self, method, url):
        return sum(1 for m, u, _ in self.calls if m == method and u == url)

    def set_login_cookies(self):
        self.cookies.set('SXMDATA', urllib.parse.quote(json.dumps({'gupId': 'GUP-1234'})))
        self.cookies.set('SXMAKTOKEN', 'token=abc123,expires=1700000000')

    def set_session_cookies(self):
        self.cookies.set('AWSALB', 'alb')
        self.cookies.set('JSESSIONID', 'jsession')


def module_response(status=1, code=100, message='successful', module=None):
    response = {
        'ModuleListResponse': {
            'status': status,
            'messages': [{'code': code, 'message': message}],
        }
    }
    if module is not None:
        response['ModuleListResponse']['moduleList'] = {'modules': [{'moduleResponse': module}]}
    return response


def tune_response(code=100):
    return module_response(code=code, module={
        'liveChannelData': {
            'hlsAudioInfos': [
                {'size': 'SMALL', 'url': '%Live_Primary_HLS%/AAC_Data/9450/HLS_9450_64k_v3/9450_64k_small_v3.m3u8'},
                {'size': 'LARGE', 'url': '%Live_Primary_HLS%/AAC_Data/9450/HLS_9450_256k_v3/9450_256k_large_v3.m3u8'},
            ],
        },
    })


def install_defaults(upstream):
    def login(payload):
        upstream.set_login_cookies()
        return module_response()

    def resume(payload):
        upstream.set_session_cookies()
        return module_response()

    upstream.route('POST', LOGIN_URL, login)
    upstream.route('POST', RESUME_URL, resume)
    upstream.route('POST', CHANNELS_URL, lambda payload: module_response(module={
        'contentData': {'channelListing': {'channels': CHANNELS}},
    }))
    upstream.route('GET', TUNE_URL, lambda params: tune_response())
    upstream.route('GET', MASTER_URL, lambda params: FakeResponse(body=MASTER_PLAYLIST))
    upstream.route('GET', VARIANT_URL, lambda params: FakeResponse(body=MEDIA_PLAYLIST))
    upstream.route('GET', SEGMENT_URL, lambda params: FakeResponse(body=SEGMENT_BYTES))


@pytest.fixture
def upstream():
    fake = FakeUpstream()
    install_defaults(fake)
    return fake


@pytest.fixture
def gateway(upstream):
    return Gateway('user@example.com', 'hunter2', 'US', session=upstream)
