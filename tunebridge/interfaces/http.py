import logging
import os
import uuid
from datetime import datetime
from typing import Optional

from flask import Flask, g, jsonify, redirect, request

from tunebridge.application.link_parser import parse
from tunebridge.application.resolution import ensure_resolvable
from tunebridge.crosscutting.logging import CorrelationContext, log_error, setup_logging
from tunebridge.crosscutting.reporting import (
    create_error_payload, create_match_payload, create_playlist_payload
)
from tunebridge.domain.entities import LinkKind
from tunebridge.domain.errors import AuthError, NotFoundError, UnsupportedLinkError, UpstreamError
from tunebridge.interfaces.wiring import Services, build_services

VERSION = "0.1.0"


class HTTPServer:
    """HTTP interface exposing the resolution engine."""

    def __init__(self, services: Optional[Services] = None,
                 host: Optional[str] = None, port: Optional[int] = None, debug: bool = False,
                 configure_logging: bool = False):
        """Initialize HTTP server.

        Args:
            services: Prebuilt services; built from settings when omitted
            host: Bind host (defaults to settings)
            port: Bind port (defaults to settings)
            debug: Flask debug mode
            configure_logging: Install the structured log handler
        """
        self.services = services or build_services()
        settings = self.services.settings
        self.host = host or settings.host
        self.port = port or settings.port
        self.debug = debug
        self.app = Flask(__name__)
        self.app.json.ensure_ascii = False
        self.logger = logging.getLogger(__name__)

        self.version = VERSION
        self.commit = os.getenv('GIT_COMMIT', 'unknown')

        if configure_logging:
            setup_logging(settings.log_level, settings.log_file)
        self._setup_routes()

    def _query(self):
        url = (request.args.get('url') or '').strip()
        country = (request.args.get('country') or self.services.settings.default_country).strip().lower()
        return url, country

    def _error(self, error: Exception):
        """Map a resolution failure to a status code and JSON body."""
        if isinstance(error, UnsupportedLinkError):
            log_error(self.logger, "Rejected link", error, level='WARNING', stage='validate_link',
                      url=request.args.get('url'))
            status = 400
        elif isinstance(error, NotFoundError):
            status = 404
        elif isinstance(error, (AuthError, UpstreamError)):
            self.logger.error(f"Resolution failed: {type(error).__name__}: {error}")
            status = 500
        else:
            self.logger.exception(f"Unexpected error: {error}")
            return jsonify(create_error_payload('Internal server error')), 500
        return jsonify(create_error_payload(str(error))), status

    def _resolve(self, kind: LinkKind):
        url, country = self._query()
        link = parse(url)
        ensure_resolvable(link, (kind,))
        with self.services.metrics.timed():
            return link, self.services.engine.resolve_entity(link, region=country)

    def _setup_routes(self) -> None:
        """Setup Flask routes."""

        @self.app.before_request
        def bind_request_id():
            g.request_id = request.headers.get('X-Request-ID') or uuid.uuid4().hex[:12]

        def map_entity(kind: LinkKind):
            url, _ = self._query()
            if not url:
                return jsonify(create_error_payload("Missing required query parameter 'url'")), 400
            with CorrelationContext(request_id=g.request_id):
                try:
                    link, result = self._resolve(kind)
                except Exception as e:
                    return self._error(e)
            return jsonify(create_match_payload(link, result)), 200

        def redirect_entity(kind: LinkKind):
            url, _ = self._query()
            if not url:
                return jsonify(create_error_payload("Missing required query parameter 'url'")), 400
            with CorrelationContext(request_id=g.request_id):
                try:
                    _, result = self._resolve(kind)
                except Exception as e:
                    return self._error(e)
            if not result.matched or not result.target_entity.canonical_url:
                return jsonify(create_error_payload('No match found')), 404
            return redirect(result.target_entity.canonical_url, code=302)

        @self.app.route('/map/song', methods=['GET'])
        def map_song():
            """Resolve a song link."""
            return map_entity(LinkKind.SONG)

        @self.app.route('/map/album', methods=['GET'])
        def map_album():
            """Resolve an album link."""
            return map_entity(LinkKind.ALBUM)

        @self.app.route('/map/playlist', methods=['GET'])
        def map_playlist():
            """Resolve every track of a playlist link."""
            url, country = self._query()
            if not url:
                return jsonify(create_error_payload("Missing required query parameter 'url'")), 400
            with CorrelationContext(request_id=g.request_id):
                try:
                    link = parse(url)
                    with self.services.metrics.timed():
                        result = self.services.collection_resolver.resolve_playlist(link, region=country)
                except Exception as e:
                    return self._error(e)
            return jsonify(create_playlist_payload(link, result)), 200

        @self.app.route('/r/song', methods=['GET'])
        def redirect_song():
            """Redirect to the matched song."""
            return redirect_entity(LinkKind.SONG)

        @self.app.route('/r/album', methods=['GET'])
        def redirect_album():
            """Redirect to the matched album."""
            return redirect_entity(LinkKind.ALBUM)

        @self.app.route('/health', methods=['GET'])
        def health_check():
            """Health check endpoint."""
            return jsonify({
                'status': 'healthy',
                'version': self.version,
                'commit': self.commit,
                'credentials': self.services.credentials.state,
                'timestamp': datetime.now().isoformat()
            }), 200

        @self.app.route('/metrics', methods=['GET'])
        def metrics():
            """Resolution counters since process start."""
            return jsonify(self.services.metrics.to_dict()), 200

        @self.app.route('/', methods=['GET'])
        def root():
            """Root endpoint with basic info."""
            return jsonify({
                'service': 'TuneBridge HTTP Interface',
                'version': self.version,
                'endpoints': {
                    'map_song': '/map/song?url=<link>&country=us',
                    'map_album': '/map/album?url=<link>&country=us',
                    'map_playlist': '/map/playlist?url=<link>&country=us',
                    'redirect_song': '/r/song?url=<link>',
                    'redirect_album': '/r/album?url=<link>',
                    'health': '/health',
                    'metrics': '/metrics'
                }
            }), 200

    def run(self) -> None:
        """Run the HTTP server."""
        self.logger.info(f"Starting TuneBridge HTTP server on {self.host}:{self.port}")
        self.app.run(
            host=self.host,
            port=self.port,
            debug=self.debug
        )


def create_app(services: Optional[Services] = None) -> Flask:
    """Create Flask app (WSGI entry point and tests)."""
    server = HTTPServer(services=services)
    return server.app


if __name__ == '__main__':
    server = HTTPServer(configure_logging=True)
    server.run()
