import datetime
import logging
import threading
import time
import urllib.parse

from .errors import (AuthenticationError, NotFoundError, SessionExpiredError,
                     UpstreamRequestError)
from .log import TRACE

log = logging.getLogger(__name__)


class PlaylistResolver:
    LIVE_PRIMARY_PLACEHOLDER = '%Live_Primary_HLS%'
    SEGMENT_EXTENSION = '.aac'
    SESSION_EXPIRED_CODES = (201, 208)
    SUCCESS_CODE = 100

    def __init__(self, session, catalog):
        self.session = session
        self.catalog = catalog
        self.playlists = {}
        self.base_paths = {}
        self._lock = threading.Lock()

    def get_base_path(self, channel_id):
        with self._lock:
            return self.base_paths.get(channel_id)

    def _tune(self, guid, channel_id):
        params = {
            'assetGUID': guid,
            'ccRequestType': 'AUDIO_VIDEO',
            'channelId': channel_id,
            'hls_output_mode': 'custom',
            'marker_mode': 'all_separate_cue_points',
            'result-template': 'web',
            'time': int(round(time.time() * 1000.0)),
            'timestamp': datetime.datetime.now(datetime.timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ'),
        }
        return self.session.get('tune/now-playing-live', params)

    def get_playlist_url(self, guid, channel_id, use_cache=True, max_attempts=5):
        if use_cache:
            with self._lock:
                if channel_id in self.playlists:
                    log.log(TRACE, 'Using cached playlist for channel: %s', channel_id)
                    return self.playlists[channel_id]

        log.debug('Getting playlist URL for channel: %s', channel_id)
        attempts = max_attempts
        while True:
            self.session.ensure_authenticated()
            generation = self.session.generation
            data = self._tune(guid, channel_id)

            # get status
            try:
                message = data['ModuleListResponse']['messages'][0]['message']
                message_code = data['ModuleListResponse']['messages'][0]['code']
            except (KeyError, IndexError, TypeError):
                raise UpstreamRequestError('Error parsing json response for playlist')

            if message_code not in self.SESSION_EXPIRED_CODES:
                break

            # login if session expired
            if attempts <= 0:
                log.error('Reached max attempts for playlist')
                raise SessionExpiredError('Session still expired after {} attempts'.format(max_attempts))
            attempts -= 1
            log.warning('Session expired (code %s), re-authenticating', message_code)
            self.session.check_deadline()
            if not self.session.renew(generation):
                raise AuthenticationError('Failed to re-authenticate after session expiry')
            log.info('Successfully re-authenticated')

        if message_code != self.SUCCESS_CODE:
            log.error('Received error %s %s', message_code, message)
            raise UpstreamRequestError('Received error {} {}'.format(message_code, message))

        # get m3u8 url
        try:
            playlists = data['ModuleListResponse']['moduleList']['modules'][0]['moduleResponse']['liveChannelData']['hlsAudioInfos']
        except (KeyError, IndexError, TypeError):
            raise UpstreamRequestError('Error parsing json response for playlist')

        for playlist_info in playlists:
            if playlist_info.get('size') == 'LARGE':
                playlist_url = playlist_info['url'].replace(self.LIVE_PRIMARY_PLACEHOLDER, self.session.LIVE_PRIMARY_HLS)
                variant_url = self.get_playlist_variant_url(playlist_url)
                with self._lock:
                    self.playlists[channel_id] = variant_url
                log.debug('Cached playlist URL for channel: %s', channel_id)
                return variant_url

        raise NotFoundError('No LARGE playlist for channel {}'.format(channel_id))

    def get_playlist_variant_url(self, url):
        res = self.session.cdn_get(url)
        if res.status_code != 200:
            raise UpstreamRequestError('Received status code {} on playlist variant retrieval'.format(res.status_code),
                                       res.status_code)

        log.log(TRACE, 'Playlist variant content received:\n%s', res.text)
        for line in res.text.split('\n'):
            line = line.strip()
            if line.endswith('.m3u8'):
                # first variant is the 256k one
                return '{}/{}'.format(url.rsplit('/', 1)[0], line)

        raise NotFoundError('No playlist variant found at {}'.format(url))

    def get_playlist(self, name, use_cache=True):
        guid, channel_id = self.catalog.get_channel(name)

        # one retry on 403, bypassing the cached variant url
        for retry in (False, True):
            url = self.get_playlist_url(guid, channel_id, use_cache and not retry)
            generation = self.session.generation
            res = self.session.cdn_get(url)
            if res.status_code != 403:
                break
            if retry:
                raise SessionExpiredError('Received status code 403 on playlist after renewing session')
            log.warning('Received status code 403 on playlist, renewing session')
            self.session.check_deadline()
            if not self.session.renew(generation):
                raise AuthenticationError('Session renewal failed')

        if res.status_code != 200:
            raise UpstreamRequestError('Received status code {} on playlist variant'.format(res.status_code),
                                       res.status_code)

        # add base path to segments
        base_url = url.rsplit('/', 1)[0]
        base_path = urllib.parse.urlsplit(base_url).path.lstrip('/')
        with self._lock:
            self.base_paths[channel_id] = base_path
        log.info('Processing playlist - URL: %s', url)
        log.log(TRACE, 'Stored base path for channel %s: %s', channel_id, base_path)

        lines = res.text.split('\n')
        for x in range(len(lines)):
            line = lines[x].rstrip()
            if line.endswith(self.SEGMENT_EXTENSION):
                lines[x] = '{}/{}'.format(base_path, line)
        return '\n'.join(lines)
