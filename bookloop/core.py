import logging

from prometheus_client import Counter, start_http_server
from pythonjsonlogger import jsonlogger

logger = logging.getLogger(__name__)

SWEEPER_RUNS = Counter(
    'bookloop_sweeper_runs_total',
    'Sweeper runs by outcome',
    ['sweeper', 'outcome'],
)
SWEEPER_ROWS = Counter(
    'bookloop_sweeper_rows_total',
    'Rows advanced by sweepers',
    ['sweeper'],
)
TOKENS_ISSUED = Counter(
    'bookloop_tokens_issued_total',
    'Tokens issued in committed transactions, by type',
    ['token_type'],
)


def setup_logging(level: str = 'INFO') -> logging.Logger:
    """Attach a JSON handler to the package logger (once)."""
    root = logging.getLogger('bookloop')
    if not any(getattr(h, '_bookloop_json', False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(jsonlogger.JsonFormatter('%(asctime)s %(levelname)s %(name)s %(message)s'))
        handler._bookloop_json = True
        root.addHandler(handler)
    root.setLevel(level)
    return root


def init_metrics(port: int = 8001):
    """Initialize Prometheus metrics server"""
    if not port:
        logger.info("Prometheus metrics server disabled")
        return
    try:
        start_http_server(port)
        logger.info(f"Prometheus metrics server started on port {port}")
    except Exception as e:
        logger.warning(f'Prometheus start failed: {e}')
