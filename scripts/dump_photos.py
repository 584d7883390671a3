#!/usr/bin/env python3
"""
Photo Stream Dump Script

Streams photo metadata from Google Drive and logs one line per batch,
then the cursor to pass next time for an incremental run.

Usage:
    PHOTOSTREAM_TOKEN_FILE=~/.credentials/drive-token.json \\
        python scripts/dump_photos.py [since_cursor]

Requirements:
    - An authorized-user token JSON with the drive.photos.readonly scope
      (obtaining it is out of scope for this script)
    - photostream installed (pip install -e .)
"""

from __future__ import annotations

import asyncio
import logging
import sys

from google.oauth2.credentials import Credentials

from photostream import build_drive_service, stream_photos
from photostream.core.config import settings
from photostream.core.logging import get_logger, setup_logging

SCOPES = ["https://www.googleapis.com/auth/drive.photos.readonly"]

logger = get_logger("dump_photos")


async def main(since_cursor: str) -> int:
    if settings.token_file is None:
        logger.error("token_file_missing", hint="set PHOTOSTREAM_TOKEN_FILE")
        return 2

    credentials = Credentials.from_authorized_user_file(
        str(settings.token_file.expanduser()), SCOPES
    )
    service = build_drive_service(credentials=credentials)

    failed = False
    total = 0
    async with await stream_photos(
        service, since_cursor, credentials=credentials
    ) as stream:
        logger.info("next_cursor", cursor=stream.next_cursor, mode=stream.mode.value)
        async for batch in stream:
            total += len(batch.photos)
            if batch.error is not None:
                failed = True
                logger.error("batch_failed", photos=len(batch.photos), error=str(batch.error))
                continue
            if not batch.photos:
                continue
            first = batch.photos[0]
            logger.info(
                "batch",
                photos=len(batch.photos),
                first_name=first.name,
                first_path=first.parents[0] if first.parents else "",
            )

    logger.info("done", photos=total, next_cursor=stream.next_cursor)
    print(stream.next_cursor)
    return 1 if failed else 0


if __name__ == "__main__":
    # Third-party records go to stderr; photostream events to stdout
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=logging.WARNING)
    setup_logging()
    sys.exit(asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "")))
