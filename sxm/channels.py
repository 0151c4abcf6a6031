import logging
import threading

from .errors import NotFoundError, RequestTimeoutError, SiriusXMError
from .log import TRACE

log = logging.getLogger(__name__)

LOGO_SIZE = 520


def channel_matches(channel, identifier):
    identifier = identifier.lower()
    return ((channel.get('name') or '').lower() == identifier or
            (channel.get('channelId') or '').lower() == identifier or
            str(channel.get('siriusChannelNumber', '')) == identifier)


def primary_category(channel, default='Other'):
    categories = (channel.get('categories') or {}).get('categories') or []
    for category in categories:
        if category.get('isPrimary') and category.get('name'):
            return category['name']
    return default


def select_image(images, width=LOGO_SIZE, height=LOGO_SIZE):
    """Pick the image whose dimensions are nearest to width x height."""
    def distance(image):
        try:
            return abs(int(image.get('width') or 0) - width) + abs(int(image.get('height') or 0) - height)
        except (TypeError, ValueError):
            return float('inf')

    candidates = [x for x in images if x.get('url')]
    if not candidates:
        return None
    return min(candidates, key=distance)


class ChannelCatalog:
    def __init__(self, session):
        self.session = session
        self._channels = None
        self._lock = threading.Lock()

    def get_channels(self):
        # download channel list if necessary
        with self._lock:
            if self._channels:
                return self._channels

        log.debug('Fetching channel list')
        postdata = {
            'moduleList': {
                'modules': [{
                    'moduleArea': 'Discovery',
                    'moduleType': 'ChannelListing',
                    'moduleRequest': {
                        'consumeRequests': [],
                        'resultTemplate': 'responsive',
                        'alerts': [],
                        'profileInfos': []
                    }
                }]
            }
        }
        try:
            data = self.session.post('get', postdata)
        except RequestTimeoutError:
            raise
        except SiriusXMError as e:
            log.error('Unable to get channel list: %s', e)
            return []

        try:
            channels = data['ModuleListResponse']['moduleList']['modules'][0]['moduleResponse']['contentData']['channelListing']['channels']
        except (KeyError, IndexError, TypeError):
            log.error('Error parsing json response for channels')
            return []

        if not channels:
            log.error('Upstream returned an empty channel list')
            return []

        with self._lock:
            self._channels = channels
        log.info('Loaded %d channels', len(channels))
        return channels

    def find(self, identifier):
        for channel in self.get_channels():
            if channel_matches(channel, identifier):
                log.debug('Found channel: %s -> %s', identifier, channel.get('channelId'))
                return channel
        log.warning('Channel not found: %s', identifier)
        raise NotFoundError('No channel for {}'.format(identifier))

    def get_channel(self, identifier):
        channel = self.find(identifier)
        return channel['channelGuid'], channel['channelId']

    def get_simplified_channel_info(self, identifier):
        channel = self.find(identifier)
        log.log(TRACE, 'Channel content: %s', channel)

        info = {
            'channelId': channel.get('channelId'),
            'siriusChannelNumber': channel.get('siriusChannelNumber'),
            'name': channel.get('name'),
            'category': primary_category(channel),
        }
        image = select_image((channel.get('images') or {}).get('images') or [])
        if image:
            info['imageUrl'] = image['url']
        return info
