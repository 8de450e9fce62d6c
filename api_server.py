#!/usr/bin/env python3
"""
SquashBot HTTP API

Small Flask app used by external cron jobs and health checks:

    GET  /health        -> {"status": "ok", "timestamp": "..."}
    POST /check-events  -> runs one scheduler tick (requires X-API-Key)
"""

import datetime
import hmac
import logging
import threading
from functools import wraps

from flask import Flask, jsonify, request

logger = logging.getLogger('squashbot.api')


def create_app(scheduler, api_key: str = '') -> Flask:
    """Build the Flask app around a :class:`SchedulerService`."""
    app = Flask(__name__)

    def require_api_key(f):
        """Decorator to require a matching ``X-API-Key`` header"""
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not api_key:
                return jsonify({'error': 'API key not configured'}), 503
            provided = request.headers.get('X-API-Key', '')
            if not provided or not hmac.compare_digest(provided, api_key):
                logger.warning("Rejected %s %s: bad API key", request.method, request.path)
                return jsonify({'error': 'Unauthorized'}), 401
            return f(*args, **kwargs)
        return decorated_function

    @app.route('/health')
    def health():
        return jsonify({
            'status': 'ok',
            'timestamp': datetime.datetime.now(datetime.timezone.utc).isoformat(),
        })

    @app.route('/check-events', methods=['POST'])
    @require_api_key
    def check_events():
        report = scheduler.tick()
        logger.info("Event check via API: %s", report.to_dict())
        return jsonify({'status': 'ok', **report.to_dict()})

    return app


def start_api_thread(scheduler, api_key: str, port: int = 3010,
                     host: str = '0.0.0.0') -> threading.Thread:
    """Serve the API from a daemon thread next to the Discord bot."""
    app = create_app(scheduler, api_key)
    thread = threading.Thread(
        target=lambda: app.run(host=host, port=port, debug=False, use_reloader=False),
        name='squashbot-api',
        daemon=True,
    )
    thread.start()
    logger.info("API listening on %s:%d", host, port)
    return thread
