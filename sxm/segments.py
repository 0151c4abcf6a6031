import logging

from .errors import (AuthenticationError, NotFoundError, SessionExpiredError,
                     UpstreamRequestError)
from .log import TRACE

log = logging.getLogger(__name__)


def segment_channel_id(path):
    """'AAC_Data/9450/.../9450_256k_1_072668629528_00389632_v3.aac' -> '9450'"""
    filename = path.rsplit('/', 1)[-1]
    if '_' not in filename:
        raise NotFoundError('Could not extract channel ID from segment path: {}'.format(path))
    return filename.split('_', 1)[0]


class SegmentFetcher:
    def __init__(self, session, resolver):
        self.session = session
        self.resolver = resolver

    def get_segment(self, path, max_attempts=5):
        filename = path.rsplit('/', 1)[-1]
        channel_id = segment_channel_id(filename)

        base_path = self.resolver.get_base_path(channel_id)
        if not base_path:
            log.error('No base path stored for channel ID: %s', channel_id)
            raise NotFoundError('No base path stored for channel ID: {}'.format(channel_id))

        url = '{}/{}/{}'.format(self.session.LIVE_PRIMARY_HLS, base_path, filename)
        log.info('Getting segment: %s', url)
        log.log(TRACE, 'Channel ID: %s, Base path: %s', channel_id, base_path)

        attempts = max_attempts
        while True:
            generation = self.session.generation
            res = self.session.cdn_get(url)
            if res.status_code != 403:
                break
            if attempts <= 0:
                log.error('Received status code 403 on segment, max attempts exceeded')
                raise SessionExpiredError('Segment {} still forbidden after {} attempts'.format(filename, max_attempts))
            attempts -= 1
            log.warning('Received status code 403 on segment, renewing session')
            self.session.check_deadline()
            if not self.session.renew(generation):
                raise AuthenticationError('Session renewal failed')

        if res.status_code != 200:
            raise UpstreamRequestError('Received status code {} on segment'.format(res.status_code), res.status_code)

        return res.content
