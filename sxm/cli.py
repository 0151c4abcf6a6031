import argparse
import logging
import os
import sys

from . import __version__
from .gateway import Gateway
from .log import LEVELS, setup_logging
from .server import serve

log = logging.getLogger(__name__)

EPILOG = '''In a player that supports HLS (QuickTime, VLC, ffmpeg, etc) you can access
a channel at http://127.0.0.1:9999/channel.m3u8 where "channel" is the
channel name, ID, or Sirius channel number.'''


def parse_args(argv=None, environ=None):
    environ = os.environ if environ is None else environ
    parser = argparse.ArgumentParser(prog='sxm', description='SiriusXM proxy', epilog=EPILOG,
                                     formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument('username', nargs='?')
    parser.add_argument('password', nargs='?')
    parser.add_argument('-l', '--list', required=False, action='store_true', default=False,
                        help='list available channels and exit')
    parser.add_argument('-p', '--port', required=False, default=9999, type=int,
                        help='server port (default: 9999)')
    parser.add_argument('-ca', '--canada', required=False, action='store_true', default=False,
                        help='use the Canadian region')
    parser.add_argument('-e', '--env', required=False, action='store_true', default=False,
                        help='read credentials from SXM_USER and SXM_PASS')
    parser.add_argument('-v', '--verbose', required=False, default='INFO', type=str.upper,
                        choices=list(LEVELS), help='logging level (default: INFO)')
    args = parser.parse_args(argv)

    if args.env:
        if not environ.get('SXM_USER') or not environ.get('SXM_PASS'):
            parser.error('when using --env, both SXM_USER and SXM_PASS environment variables must be set')
        args.username = environ['SXM_USER']
        args.password = environ['SXM_PASS']
    elif not args.username or not args.password:
        parser.error('username and password are required (or use --env with SXM_USER and SXM_PASS)')

    args.region = 'CA' if args.canada else 'US'
    return args


def list_channels(gateway, out=None):
    out = out or sys.stdout
    if not gateway.authenticate():
        log.error('Authentication failed - cannot fetch channels')
        return False

    channels = gateway.get_channels()
    if not channels:
        log.error('No channels available or channel fetch failed')
        return False

    def number(channel):
        try:
            return int(channel.get('siriusChannelNumber') or 9999)
        except ValueError:
            return 9999

    # favorites first, then by channel number
    channels = sorted(channels, key=lambda x: (not x.get('isFavorite', False), number(x)))

    l1 = max([2] + [len(x.get('channelId') or '') for x in channels])
    l2 = max([3] + [len(str(x.get('siriusChannelNumber') or '??')) for x in channels])
    l3 = max([4] + [len(x.get('name') or '??') for x in channels])
    print('{} | {} | {}'.format('ID'.ljust(l1), 'Num'.ljust(l2), 'Name'.ljust(l3)), file=out)
    print('-' * (l1 + l2 + l3 + 6), file=out)
    for channel in channels:
        cid = (channel.get('channelId') or '').ljust(l1)[:l1]
        cnum = str(channel.get('siriusChannelNumber') or '??').ljust(l2)[:l2]
        cname = (channel.get('name') or '??').ljust(l3)[:l3]
        print('{} | {} | {}'.format(cid, cnum, cname), file=out)

    log.info('Listed %d channels', len(channels))
    return True


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.verbose)
    log.info('Starting SiriusXM proxy v%s', __version__)
    log.info('Configuration loaded - Port: %d, Region: %s', args.port, args.region)

    gateway = Gateway(args.username, args.password, args.region)
    if args.list:
        return 0 if list_channels(gateway) else 1

    if not gateway.authenticate():
        log.error('Authentication failed - cannot start server')
        return 1
    log.info('Authentication successful - starting server')

    try:
        serve(gateway, args.port)
    except OSError as e:
        log.error('Server error: %s', e)
        return 1
    log.info('Server shutdown complete')
    return 0


def run():
    sys.exit(main())
