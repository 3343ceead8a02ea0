#!/usr/bin/env python3
"""
TuneBridge HTTP Server Runner
"""

from tunebridge.interfaces.http import HTTPServer


def main():
    """Run the HTTP server."""
    server = HTTPServer(configure_logging=True)
    server.run()


if __name__ == '__main__':
    main()
