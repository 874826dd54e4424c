"""Structural checks for a rendered podcast feed file.

Usage: python tools/validate_feed.py <path_to_feed.xml>
"""

import argparse
import logging
import sys
from pathlib import Path

import feedparser

logger = logging.getLogger(__name__)

AUDIO_ENCLOSURE_TYPES = {
    "audio/mpeg",
    "audio/wav",
    "audio/mp4",
    "audio/aac",
    "audio/ogg",
    "audio/flac",
}
REQUIRED_CHANNEL_FIELDS = ("title", "link", "description")
REQUIRED_ENTRY_FIELDS = ("title", "id", "link", "published_parsed")


def validate_feed(file_path) -> int:
    """Check a feed file and return its entry count.

    Raises FileNotFoundError for a missing file and ValueError for the first
    structural problem found. A feed with no entries is accepted.
    """
    path = Path(file_path)
    if not path.is_file():
        raise FileNotFoundError(f"Feed file not found: {path}")

    logger.info(f"Validating feed: {path}")
    d = feedparser.parse(path.read_bytes())

    if d.bozo:
        raise ValueError(f"Feed is not well-formed. Error: {d.bozo_exception}")
    logger.info("Feed is well-formed XML.")

    for field in REQUIRED_CHANNEL_FIELDS:
        if not d.feed.get(field):
            raise ValueError(f"Channel is missing required field '{field}'")

    logger.info(f"Found {len(d.entries)} entries.")
    for i, entry in enumerate(d.entries, start=1):
        for field in REQUIRED_ENTRY_FIELDS:
            if not entry.get(field):
                raise ValueError(f"Entry {i} is missing required field '{field}'")

        enclosures = entry.get("enclosures") or []
        if len(enclosures) > 1:
            raise ValueError(f"Entry {i} must have at most one enclosure")
        for enclosure in enclosures:
            enclosure_type = enclosure.get("type")
            if enclosure_type not in AUDIO_ENCLOSURE_TYPES:
                raise ValueError(
                    f"Entry {i} enclosure type must be audio, not '{enclosure_type}'"
                )
            href = enclosure.get("href", "")
            if not href.startswith(("http://", "https://")):
                raise ValueError(
                    f"Entry {i} enclosure URL must be absolute. Got: {href}"
                )
        logger.info(f"Entry '{entry.title}' passed all checks.")

    return len(d.entries)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Validate a podcast RSS feed file.")
    parser.add_argument("path", help="Path to the feed XML file")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    try:
        count = validate_feed(args.path)
    except (FileNotFoundError, ValueError) as exc:
        print(f"Validation failed: {exc}", file=sys.stderr)
        return 1

    print(f"\nValidation successful! {count} entries have the required fields and structure.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
