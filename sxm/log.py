import logging
import sys
import time

TRACE = 5
logging.addLevelName(TRACE, 'TRACE')
logging.addLevelName(logging.WARNING, 'WARN')

LEVELS = {
    'ERROR': logging.ERROR,
    'WARN': logging.WARNING,
    'INFO': logging.INFO,
    'DEBUG': logging.DEBUG,
    'TRACE': TRACE,
}

FORMAT = '%(asctime)s <%(levelname)s>: %(message)s'
DATE_FORMAT = '%d.%b %Y %H:%M:%S'


def setup_logging(level='INFO'):
    handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter(FORMAT, DATE_FORMAT)
    formatter.converter = time.gmtime
    handler.setFormatter(formatter)
    logging.basicConfig(level=LEVELS[level.upper()], handlers=[handler], force=True)
    # urllib3 is chatty at DEBUG
    logging.getLogger('urllib3').setLevel(logging.WARNING)
