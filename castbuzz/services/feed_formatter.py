import hashlib
import logging
import math
import posixpath
import re
from datetime import datetime, timezone
from typing import Any, Iterable, Sequence
from urllib.parse import quote, urlparse

from feedgen.feed import FeedGenerator  # type: ignore[import-untyped]
from lxml import etree

from castbuzz.config import FeedOptions
from castbuzz.models.episode import Episode
from castbuzz.models.show import Show
from castbuzz.services.firestore_helpers import normalise_timestamp

logger = logging.getLogger(__name__)

ITUNES_NS = "http://www.itunes.com/dtds/podcast-1.0.dtd"
CONTENT_NS = "http://purl.org/rss/1.0/modules/content/"
GOOGLEPLAY_NS = "http://www.google.com/schemas/play-podcasts/1.0"
PODCAST_NS = "https://podcastindex.org/namespace/1.0"

AUDIO_MIME_TYPES = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "m4a": "audio/mp4",
    "aac": "audio/aac",
    "ogg": "audio/ogg",
    "flac": "audio/flac",
}
DEFAULT_AUDIO_MIME_TYPE = "audio/mpeg"

DEFAULT_ITUNES_CATEGORY = ("Technology", "Podcasting")
SUPPORTED_PODCAST_IMAGE_EXTENSIONS = (".jpg", ".png")
DEFAULT_SHOW_IMAGE_PATH = "/default-podcast-image.jpg"
DEFAULT_EPISODE_IMAGE_PATH = "/default-episode-image.jpg"

ZERO_DURATION = "00:00:00"

_INVALID_XML_CHARS = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")
_DURATION_PART = re.compile(r"^\d+$")
_QUOTE_SPLIT = re.compile(r"([\"'])")
_QUOTE_ENTITIES = {'"': "quot", "'": "apos"}


def build_feed_url(base_url: str, show_slug: str) -> str:
    """Canonical public URL of a show's RSS feed."""
    return f"{base_url.rstrip('/')}/api/rss/{quote(show_slug, safe='')}"


def build_show_url(base_url: str, show_slug: str) -> str:
    return f"{base_url.rstrip('/')}/show/{quote(show_slug, safe='')}"


def _episode_path_segment(episode: Episode) -> str:
    if episode.slug:
        return episode.slug
    if episode.id:
        return str(episode.id)
    published = normalise_timestamp(episode.publish_date)
    seed = f"{episode.title}|{published.isoformat() if published else ''}"
    return hashlib.sha1(seed.encode("utf-8")).hexdigest()[:12]


def build_episode_url(base_url: str, show_slug: str, episode: Episode) -> str:
    """Permanent episode URL, also used as the item GUID."""
    return (
        f"{base_url.rstrip('/')}/episode/{quote(show_slug, safe='')}/"
        f"{quote(_episode_path_segment(episode), safe='')}"
    )


def _seconds_to_clock(seconds: float) -> str:
    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def _parse_duration(value: Any) -> str | None:
    """Return a canonical HH:MM:SS string, or None when ``value`` is not a usable duration."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value) or value < 0:
            return None
        return _seconds_to_clock(value)
    if not isinstance(value, str):
        return None

    candidate = value.strip()
    if not candidate:
        return None
    parts = candidate.split(":")
    if len(parts) > 3 or not all(_DURATION_PART.match(part) for part in parts):
        return None
    if len(parts) == 1:
        return _seconds_to_clock(int(parts[0]))
    if len(parts) == 2:
        parts = ["0", *parts]
    if int(parts[1]) >= 60 or int(parts[2]) >= 60:
        return None
    return ":".join(f"{int(part):02d}" for part in parts)


def format_duration(value: Any) -> str:
    """Formats episode durations for ``itunes:duration``.

    Integer seconds become zero-padded ``HH:MM:SS``; ``MM:SS`` strings gain a
    ``00:`` hour prefix; ``HH:MM:SS`` strings pass through (zero-padded).
    Missing or unrecognised values render as ``00:00:00``.
    """
    return _parse_duration(value) or ZERO_DURATION


def is_recognised_duration(value: Any) -> bool:
    return _parse_duration(value) is not None


def guess_audio_mime_type(audio_url: str | None) -> str:
    """Infer the enclosure MIME type from the URL path extension."""
    path = urlparse(audio_url or "").path
    extension = posixpath.splitext(path)[1].lower().lstrip(".")
    return AUDIO_MIME_TYPES.get(extension, DEFAULT_AUDIO_MIME_TYPE)


def format_html_description(description: str | None) -> str:
    """HTML body for ``content:encoded``: markup kept, newlines become ``<br/>``."""
    if not description:
        return ""
    return description.replace("\r\n", "\n").replace("\n", "<br/>")


def _xml_safe(value: Any) -> str:
    if value is None:
        return ""
    return _INVALID_XML_CHARS.sub("", str(value))


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + "…"


def _positive_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def is_supported_podcast_image_url(url: str | None) -> bool:
    if not url:
        return False
    # feedgen only accepts a literal lowercase extension.
    return url.endswith(SUPPORTED_PODCAST_IMAGE_EXTENSIONS)


def _choose_podcast_image_candidate(*candidates: str | None) -> str | None:
    for candidate in candidates:
        if not candidate:
            continue
        if is_supported_podcast_image_url(candidate):
            return candidate
        logger.debug(
            "Skipping unsupported podcast image (must end with .jpg or .png): %s",
            candidate,
        )
    return None


def _parse_category(raw: str | None) -> tuple[str, str | None]:
    if not raw or not raw.strip():
        return DEFAULT_ITUNES_CATEGORY
    if ">" in raw:
        top, _, sub = raw.partition(">")
        return top.strip(), (sub.strip() or None)
    return raw.strip(), None


def _coerce_datetime(value: Any, fallback: datetime) -> datetime:
    return normalise_timestamp(value) or fallback


def _append_before_items(
    channel, tag: str, value: str | None = None, attrib: dict[str, str] | None = None
):
    """Append a channel-level element, keeping it ahead of the first ``<item>``."""
    elem = etree.SubElement(channel, tag, attrib or {})
    if value is not None:
        elem.text = value
    first_item = channel.find("item")
    if first_item is not None:
        first_item.addprevious(elem)
    return elem


def _with_namespaces(root, options: FeedOptions):
    nsmap = dict(root.nsmap)
    nsmap.setdefault("itunes", ITUNES_NS)
    nsmap.setdefault("content", CONTENT_NS)
    if options.include_googleplay:
        nsmap["googleplay"] = GOOGLEPLAY_NS
    if options.include_podcast_namespace:
        nsmap["podcast"] = PODCAST_NS

    rebuilt = etree.Element(root.tag, attrib=dict(root.attrib), nsmap=nsmap)
    rebuilt.extend(list(root))
    etree.cleanup_namespaces(
        rebuilt, top_nsmap=nsmap, keep_ns_prefixes=[p for p in nsmap if p]
    )
    return rebuilt


def _finalise_channel(
    channel,
    *,
    show: Show,
    show_name: str,
    description: str,
    feed_image: str,
    options: FeedOptions,
) -> None:
    for existing in channel.findall(f"{{{ITUNES_NS}}}category"):
        channel.remove(existing)
    category, subcategory = _parse_category(show.category)
    category_elem = _append_before_items(
        channel, f"{{{ITUNES_NS}}}category", attrib={"text": category}
    )
    if subcategory:
        etree.SubElement(
            category_elem, f"{{{ITUNES_NS}}}category", {"text": subcategory}
        )

    if channel.find(f"{{{ITUNES_NS}}}type") is None:
        _append_before_items(channel, f"{{{ITUNES_NS}}}type", "episodic")

    if options.include_googleplay:
        _append_before_items(
            channel,
            f"{{{GOOGLEPLAY_NS}}}author",
            _xml_safe(show.author).strip() or show_name,
        )
        _append_before_items(channel, f"{{{GOOGLEPLAY_NS}}}description", description)
        _append_before_items(
            channel, f"{{{GOOGLEPLAY_NS}}}category", attrib={"text": category}
        )
        _append_before_items(
            channel, f"{{{GOOGLEPLAY_NS}}}image", attrib={"href": feed_image}
        )


def _finalise_item(item_elem, extras: dict[str, Any], options: FeedOptions) -> None:
    etree.SubElement(item_elem, f"{{{ITUNES_NS}}}title").text = extras["title"]
    etree.SubElement(item_elem, f"{{{ITUNES_NS}}}episodeType").text = extras[
        "episode_type"
    ]
    if extras["season"]:
        etree.SubElement(item_elem, f"{{{ITUNES_NS}}}season").text = str(
            extras["season"]
        )
    if extras["episode_number"]:
        etree.SubElement(item_elem, f"{{{ITUNES_NS}}}episode").text = str(
            extras["episode_number"]
        )
    if options.include_googleplay:
        if extras["description"]:
            etree.SubElement(
                item_elem, f"{{{GOOGLEPLAY_NS}}}description"
            ).text = extras["description"]
        etree.SubElement(
            item_elem, f"{{{GOOGLEPLAY_NS}}}image", href=extras["image"]
        )


def _escape_quotes(root) -> None:
    """Write quotes in leaf text as &quot; and &apos; entity references."""
    encoded = f"{{{CONTENT_NS}}}encoded"
    for elem in list(root.iter(etree.Element)):
        if elem.tag == encoded or len(elem) or not elem.text:
            continue
        parts = _QUOTE_SPLIT.split(elem.text)
        if len(parts) == 1:
            continue
        elem.text = parts[0] or None
        for quote_char, chunk in zip(parts[1::2], parts[2::2]):
            ref = etree.Entity(_QUOTE_ENTITIES[quote_char])
            ref.tail = chunk or None
            elem.append(ref)


def build_feed(
    show: Show,
    episodes: Sequence[Episode] | Iterable[Episode],
    base_url: str,
    *,
    now: datetime | None = None,
    options: FeedOptions | None = None,
) -> bytes:
    """Render an RSS 2.0 + iTunes podcast feed for ``show``.

    ``episodes`` must already be restricted to published episodes and ordered
    newest-first; they are emitted in the order given. Missing optional data
    degrades to defaults instead of raising.
    """
    options = options or FeedOptions()
    now = _coerce_datetime(now, datetime.now(timezone.utc))
    episodes = list(episodes)
    base_url = base_url.rstrip("/")
    slug = show.slug or str(show.id or "")

    show_name = _xml_safe(show.name).strip() or "Untitled Show"
    description = (
        _xml_safe(show.description).strip() or f"Podcast episodes from {show_name}"
    )
    owner_email = show.owner_email or options.admin_email
    author = _xml_safe(show.author).strip() or show_name
    feed_image = _choose_podcast_image_candidate(
        show.image_url, f"{base_url}{DEFAULT_SHOW_IMAGE_PATH}"
    )

    fg = FeedGenerator()
    fg.load_extension("podcast")

    fg.title(show_name)
    fg.description(description)
    fg.link(href=build_show_url(base_url, slug), rel="alternate")
    fg.link(href=build_feed_url(base_url, slug), rel="self")
    fg.language(show.language or options.language)
    fg.ttl(options.ttl_minutes)
    fg.generator(options.generator)
    fg.copyright(_xml_safe(show.copyright) or f"© {now.year} {show_name}")
    fg.managingEditor(owner_email)
    fg.webMaster(owner_email)
    fg.image(feed_image, title=show_name, link=build_show_url(base_url, slug))

    publish_dates = [
        d for d in (normalise_timestamp(e.publish_date) for e in episodes) if d
    ]
    fg.pubDate(max(publish_dates) if publish_dates else now)
    fg.lastBuildDate(now)

    fg.podcast.itunes_author(author)
    fg.podcast.itunes_owner(
        name=_xml_safe(show.owner_name).strip() or author, email=owner_email
    )
    fg.podcast.itunes_summary(description)
    fg.podcast.itunes_subtitle(_truncate(description, 255))
    fg.podcast.itunes_image(feed_image)
    fg.podcast.itunes_explicit("yes" if show.explicit else "no")
    fg.podcast.itunes_complete("no")

    item_extras: list[dict[str, Any]] = []
    for episode in episodes:
        title = _xml_safe(episode.title).strip() or "Untitled Episode"
        episode_url = build_episode_url(base_url, slug, episode)
        text = _xml_safe(episode.description)
        episode_image = _choose_podcast_image_candidate(
            episode.image_url,
            show.image_url,
            f"{base_url}{DEFAULT_EPISODE_IMAGE_PATH}",
        )

        fe = fg.add_entry(order="append")
        fe.title(title)
        fe.link(href=episode_url)
        fe.guid(episode_url, permalink=True)
        if text:
            fe.description(text)
            html_body = format_html_description(text)
            # CDATA cannot carry its own terminator; fall back to escaped text.
            fe.content(html_body, type=None if "]]>" in html_body else "CDATA")
        fe.pubDate(_coerce_datetime(episode.publish_date, now))

        if episode.audio_url:
            fe.enclosure(
                url=_xml_safe(episode.audio_url),
                length=str(_positive_int(episode.file_size) or 0),
                type=guess_audio_mime_type(episode.audio_url),
            )

        fe.podcast.itunes_duration(format_duration(episode.duration))
        fe.podcast.itunes_subtitle(_truncate(text or title, 255))
        fe.podcast.itunes_summary(text or title)
        fe.podcast.itunes_image(episode_image)
        fe.podcast.itunes_explicit("yes" if episode.explicit else "no")

        item_extras.append(
            {
                "title": title,
                "description": text,
                "image": episode_image,
                "episode_type": episode.episode_type or "full",
                "season": _positive_int(episode.season),
                "episode_number": _positive_int(episode.episode_number),
            }
        )

    rss_bytes = fg.rss_str(pretty=False)

    parser = etree.XMLParser(remove_blank_text=True, strip_cdata=False)
    root = _with_namespaces(etree.fromstring(rss_bytes, parser), options)
    channel = root.find("channel")
    _finalise_channel(
        channel,
        show=show,
        show_name=show_name,
        description=description,
        feed_image=feed_image,
        options=options,
    )
    for item_elem, extras in zip(channel.findall("item"), item_extras):
        _finalise_item(item_elem, extras, options)
    _escape_quotes(root)

    logger.debug(
        "feed.formatted",
        extra={"show_slug": slug, "items": len(item_extras)},
    )
    return etree.tostring(
        root, encoding="utf-8", xml_declaration=True, pretty_print=True
    )
