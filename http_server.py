#!/usr/bin/env python3
"""
Crossfade HTTP Server Runner

Reads CROSSFADE_HOST, CROSSFADE_PORT and CROSSFADE_LOG_LEVEL from the
environment or a local .env file.
"""

import os

from dotenv import load_dotenv

from app.crosscutting.logging import setup_logging
from app.interfaces.http import HTTPServer


def main():
    load_dotenv()
    setup_logging(os.getenv('CROSSFADE_LOG_LEVEL', 'INFO'))
    server = HTTPServer(
        host=os.getenv('CROSSFADE_HOST', 'localhost'),
        port=int(os.getenv('CROSSFADE_PORT', '5000')),
        debug=os.getenv('CROSSFADE_DEBUG', '0') == '1',
    )
    server.run()


if __name__ == '__main__':
    main()
