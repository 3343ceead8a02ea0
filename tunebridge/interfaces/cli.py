import argparse
import json
import logging
import sys
import time
from typing import List, Optional

from tunebridge.application.link_parser import parse
from tunebridge.application.resolution import ensure_resolvable
from tunebridge.crosscutting.config import ConfigError
from tunebridge.crosscutting.logging import CorrelationContext, log_error, setup_logging
from tunebridge.crosscutting.reporting import (
    create_error_payload, create_match_payload, create_playlist_payload,
    format_match_report, format_playlist_report, link_to_json
)
from tunebridge.domain.entities import LinkKind
from tunebridge.domain.errors import TuneBridgeError, UnsupportedLinkError
from tunebridge.interfaces.wiring import Services, build_services

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_UNSUPPORTED = 2

_ENTITY_COMMANDS = {
    'song': LinkKind.SONG,
    'album': LinkKind.ALBUM,
}


class CLI:
    """Command Line Interface for TuneBridge."""

    def __init__(self, services: Optional[Services] = None, stdout=None):
        """Initialize CLI.

        Args:
            services: Prebuilt services; built lazily from settings when omitted
            stdout: Output stream for results (defaults to sys.stdout)
        """
        self.parser = self._create_parser()
        self._services = services
        self._stdout = stdout or sys.stdout
        self._start_time = None

    @property
    def services(self) -> Services:
        if self._services is None:
            self._services = build_services()
        return self._services

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create argument parser."""
        parser = argparse.ArgumentParser(
            prog='tunebridge',
            description='Find the equivalent of a Spotify or Apple Music link on the other catalog'
        )
        subparsers = parser.add_subparsers(dest='command', help='Available commands')

        for name, help_text in (('song', 'Resolve a song link'),
                                ('album', 'Resolve an album link'),
                                ('playlist', 'Resolve every track of a playlist link')):
            command = subparsers.add_parser(name, help=help_text)
            command.add_argument('url', help='Spotify or Apple Music link')
            command.add_argument(
                '--country',
                default=None,
                help='Storefront/market country code (default from TUNEBRIDGE_DEFAULT_COUNTRY or us)'
            )
            command.add_argument(
                '--format',
                choices=['json', 'text'],
                default='json',
                help='Output format (default: json)'
            )
            self._add_log_level(command)

        parse_parser = subparsers.add_parser('parse', help='Show how a link is parsed, without network calls')
        parse_parser.add_argument('url', help='Link to parse')

        serve_parser = subparsers.add_parser('serve', help='Run the HTTP server')
        serve_parser.add_argument('--host', default=None, help='Bind host (default from HOST)')
        serve_parser.add_argument('--port', type=int, default=None, help='Bind port (default from PORT)')
        serve_parser.add_argument('--debug', action='store_true', help='Enable Flask debug mode')
        self._add_log_level(serve_parser)

        return parser

    @staticmethod
    def _add_log_level(command: argparse.ArgumentParser) -> None:
        command.add_argument(
            '--log-level',
            choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
            default=None,
            help='Set logging level (default from TUNEBRIDGE_LOG_LEVEL)'
        )

    def _setup_logging(self, level: Optional[str]) -> None:
        """Setup structured logging on stderr so stdout only carries results."""
        settings = self.services.settings
        logger = setup_logging(level or settings.log_level, settings.log_file)
        for handler in logger.handlers:
            if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
                handler.setStream(sys.stderr)

    def _emit(self, payload, text: Optional[str] = None, output_format: str = 'json') -> None:
        if output_format == 'text' and text is not None:
            self._stdout.write(text + '\n')
        else:
            self._stdout.write(json.dumps(payload, indent=2, ensure_ascii=False) + '\n')

    def _resolve_entity(self, args: argparse.Namespace, kind: LinkKind) -> None:
        link = parse(args.url)
        ensure_resolvable(link, (kind,))
        country = (args.country or self.services.settings.default_country).lower()
        with self.services.metrics.timed():
            result = self.services.engine.resolve_entity(link, region=country)
        self._emit(create_match_payload(link, result), format_match_report(link, result), args.format)

    def _resolve_playlist(self, args: argparse.Namespace) -> None:
        link = parse(args.url)
        country = (args.country or self.services.settings.default_country).lower()
        with self.services.metrics.timed():
            result = self.services.collection_resolver.resolve_playlist(link, region=country)
        self._emit(create_playlist_payload(link, result), format_playlist_report(link, result), args.format)

    def _parse_link(self, args: argparse.Namespace) -> None:
        link = parse(args.url)
        payload = link_to_json(link)
        payload['resolvable'] = link.is_resolvable
        self._emit(payload)

    def _serve(self, args: argparse.Namespace) -> None:
        from tunebridge.interfaces.http import HTTPServer

        server = HTTPServer(services=self.services, host=args.host, port=args.port, debug=args.debug)
        server.run()

    def run(self, argv: Optional[List[str]] = None) -> int:
        """Run the CLI and return the process exit code."""
        self._start_time = time.time()
        args = self.parser.parse_args(argv)

        if not args.command:
            self.parser.print_help()
            return EXIT_FAILURE

        logger = logging.getLogger(__name__)
        try:
            if args.command == 'parse':
                self._parse_link(args)
                return EXIT_OK

            self._setup_logging(args.log_level)
            with CorrelationContext(request_id=f"cli-{int(self._start_time)}"):
                if args.command in _ENTITY_COMMANDS:
                    self._resolve_entity(args, _ENTITY_COMMANDS[args.command])
                elif args.command == 'playlist':
                    self._resolve_playlist(args)
                elif args.command == 'serve':
                    self._serve(args)
            return EXIT_OK

        except UnsupportedLinkError as e:
            log_error(logger, "Rejected link", e, level='WARNING', stage='validate_link', url=args.url)
            self._emit(create_error_payload(str(e)))
            return EXIT_UNSUPPORTED
        except (TuneBridgeError, ConfigError) as e:
            logger.error(f"CLI error: {type(e).__name__}: {e}")
            self._emit(create_error_payload(str(e)))
            return EXIT_FAILURE
        except KeyboardInterrupt:
            logger.warning("Operation cancelled by user")
            return 130
        finally:
            duration = time.time() - self._start_time
            logger.debug(f"CLI execution time: {duration:.2f}s")


def main():
    """Main entry point."""
    cli = CLI()
    sys.exit(cli.run())


if __name__ == '__main__':
    main()
