import base64

from .channels import ChannelCatalog
from .playlist import PlaylistResolver
from .segments import SegmentFetcher
from .session import SiriusXMSession


class Gateway:
    """Owns the upstream session and every per-process cache."""

    HLS_AES_KEY = base64.b64decode('0Nsco7MAgxowGvkUT8aYag==')

    def __init__(self, username, password, region='US', session=None):
        self.session = SiriusXMSession(username, password, region, session=session)
        self.catalog = ChannelCatalog(self.session)
        self.resolver = PlaylistResolver(self.session, self.catalog)
        self.segments = SegmentFetcher(self.session, self.resolver)

    def authenticate(self):
        return self.session.authenticate()

    def get_channels(self):
        return self.catalog.get_channels()

    def get_simplified_channel_info(self, identifier):
        return self.catalog.get_simplified_channel_info(identifier)

    def get_playlist(self, name, use_cache=True):
        return self.resolver.get_playlist(name, use_cache)

    def get_segment(self, path):
        return self.segments.get_segment(path)

    def deadline(self, seconds):
        return self.session.deadline(seconds)
