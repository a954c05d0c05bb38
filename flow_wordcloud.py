"""
flow_wordcloud - Turn free-form text into a ranked word list and paint it as a
word cloud with a simple greedy flow layout.

Words are counted, sized on a fixed linear scale and laid out left-to-right,
top-to-bottom in frequency order. There is no spiral search and no collision
solver: a word wraps to the next line when it does not fit and is dropped once
vertical space runs out.

Usage:
    from flow_wordcloud import process_text, draw_word_cloud, PILSurface

    entries = process_text("the quick brown fox jumps over the lazy dog")
    surface = PILSurface()
    draw_word_cloud(surface, entries)
    surface.image.save("cloud.png")

    # Or in one call
    entries, surface = wordcloud_from_text(text)
"""

import argparse
import logging
import re
import sys
import threading
import time
from collections import Counter
from dataclasses import dataclass
from typing import Callable, List, NamedTuple, Optional, Protocol, Sequence, Tuple, Union

from PIL import Image, ImageDraw, ImageFont

logger = logging.getLogger(__name__)

# --- Limits ---
MAX_INPUT_LENGTH = 50_000      # characters
MAX_WORDS_PROCESSED = 10_000   # tokens after filtering
MIN_INTERVAL_MS = 100          # pacing between accepted processing calls
MIN_WORD_LENGTH = 3

# --- Size scale ---
MIN_FONT_SIZE = 20
MAX_FONT_SIZE = 80
SIZE_PER_OCCURRENCE = 20

# --- Canvas and flow layout ---
CANVAS_WIDTH = 800
CANVAS_HEIGHT = 600
MAX_CLOUD_WORDS = 30
LEFT_MARGIN = 50
SIDE_MARGINS = 100             # left + right
TOP_MARGIN = 100               # first baseline
BOTTOM_MARGIN = 50
LINE_SPACING = 20
WORD_SPACING = 20
BACKGROUND_COLOR = "#ffffff"

DEFAULT_PALETTE = [
    "#667eea", "#764ba2", "#f093fb", "#f5576c", "#4facfe", "#00f2fe",
    "#43e97b", "#38f9d7", "#ffecd2", "#fcb69f", "#a8edea", "#fed6e3",
]

PALETTES = {
    "default": DEFAULT_PALETTE,
    "Dark2": ["#1B9E77", "#D95F02", "#7570B3", "#E7298A", "#66A61E", "#E6AB02", "#A6761D", "#666666"],
    "Set1": ["#E41A1C", "#377EB8", "#4DAF4A", "#984EA3", "#FF7F00", "#FFFF33", "#A65628", "#F781BF"],
}

# Shallow denylist, matched as case-insensitive substrings. Not a sanitizer.
SUSPICIOUS_PATTERNS = (
    "<script",
    "javascript:",
    "data:",
    "vbscript:",
    "onload=",
    "onerror=",
    "onfocus=",
    "autofocus=",
)

_STRIP_CHARS_RE = re.compile(r"[<>'\"&\x00-\x1f\x7f]")
_NON_WORD_RE = re.compile(r"[^\w\s]")

# Bold faces tried in order when no font path is given
_BOLD_FONT_PATHS = (
    "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
    "DejaVuSans-Bold.ttf",
)


# --- Errors ---

class WordCloudError(ValueError):
    """Base class for every input rejection raised by process_text."""


class InvalidInput(WordCloudError):
    pass


class InputTooLarge(WordCloudError):
    pass


class MaliciousContent(WordCloudError):
    pass


class RateLimited(WordCloudError):
    """Raised when processing is requested again inside the pacing interval.

    Not permanent: the caller may retry once the interval has passed.
    """


class TooManyWords(WordCloudError):
    pass


# --- Data ---

@dataclass(frozen=True)
class WordEntry:
    text: str
    weight: int
    size: int


class DrawCommand(NamedTuple):
    text: str
    x: float
    y: float
    size: int
    color: str


class TextStyle(NamedTuple):
    size: int
    bold: bool = True


class WordStats(NamedTuple):
    unique_words: int
    total_words: int
    most_frequent: str
    max_frequency: int


# --- Input guard ---

def _monotonic_ms() -> int:
    return time.monotonic_ns() // 1_000_000


class RateLimiter:
    """Minimum-interval throttle for processing requests.

    Holds a single timestamp. A call inside ``min_interval_ms`` of the last
    accepted call is refused; an accepted call becomes the new baseline.
    There is no queueing, the caller retries or gives up. ``clock`` returns
    integer milliseconds.
    """

    def __init__(self, min_interval_ms: float = MIN_INTERVAL_MS,
                 clock: Optional[Callable[[], int]] = None):
        self.min_interval_ms = min_interval_ms
        self._clock = clock or _monotonic_ms
        self._last_ms: Optional[int] = None
        self._lock = threading.Lock()

    def check(self) -> bool:
        with self._lock:
            now_ms = self._clock()
            if self._last_ms is not None and now_ms - self._last_ms < self.min_interval_ms:
                return False
            self._last_ms = now_ms
            return True

    def reset(self):
        with self._lock:
            self._last_ms = None


def validate_input(text, max_length: int = MAX_INPUT_LENGTH) -> str:
    """Reject input that is not text, too long, or matches the denylist.

    Returns the text unchanged when it passes.
    """
    if not text or not isinstance(text, str):
        raise InvalidInput("Invalid input: text must be a non-empty string")

    if len(text) > max_length:
        raise InputTooLarge(f"Input too large: maximum {max_length} characters allowed")

    lowered = text.lower()
    for pattern in SUSPICIOUS_PATTERNS:
        if pattern in lowered:
            raise MaliciousContent("Input contains potentially malicious content")

    return text


def sanitize_text(text: str) -> str:
    """Strip ``< > ' " &`` and ASCII control characters, then trim."""
    return _STRIP_CHARS_RE.sub("", text).strip()


# --- Frequency engine ---

def font_size_for(weight: int) -> int:
    return min(max(weight * SIZE_PER_OCCURRENCE, MIN_FONT_SIZE), MAX_FONT_SIZE)


def tokenize(text: str) -> List[str]:
    """Lowercase, blank out punctuation and split on whitespace.

    Tokens shorter than MIN_WORD_LENGTH are dropped.
    """
    normalized = _NON_WORD_RE.sub(" ", text.lower())
    return [w for w in normalized.split() if len(w) >= MIN_WORD_LENGTH]


def process_text(
    text: str,
    limiter: Optional[RateLimiter] = None,
    max_length: int = MAX_INPUT_LENGTH,
    max_words: int = MAX_WORDS_PROCESSED,
) -> List[WordEntry]:
    """Count the words of ``text`` and return them ranked by frequency.

    Args:
        text: Raw user text.
        limiter: Pacing guard. Without one, no pacing is applied.
        max_length: Maximum accepted length in characters.
        max_words: Maximum number of tokens (after short-word filtering).

    Returns:
        One WordEntry per distinct token, heaviest first. Ties keep the order
        in which the words first appeared.

    Raises:
        RateLimited, InvalidInput, InputTooLarge, MaliciousContent,
        TooManyWords. Nothing partial is returned on failure.
    """
    if limiter is not None and not limiter.check():
        logger.warning("Processing request refused by rate limiter")
        raise RateLimited("Too many requests: please wait before processing again")

    if text == "":
        return []

    try:
        text = validate_input(text, max_length=max_length)
    except WordCloudError as exc:
        logger.warning("Rejected input: %s", exc)
        raise

    if not text.strip():
        return []

    words = tokenize(sanitize_text(text))
    if len(words) > max_words:
        logger.warning("Rejected input with %d words (limit %d)", len(words), max_words)
        raise TooManyWords(f"Too many words: maximum {max_words} words allowed")

    counts = Counter(words)
    entries = [WordEntry(w, n, font_size_for(n)) for w, n in counts.items()]
    # sorted() is stable, so ties stay in first-occurrence order
    entries = sorted(entries, key=lambda e: e.weight, reverse=True)

    logger.debug("Processed %d characters into %d words (%d distinct)",
                 len(text), len(words), len(entries))
    return entries


def word_stats(entries: Sequence[WordEntry]) -> WordStats:
    """Summary figures for a ranked word list."""
    if not entries:
        return WordStats(0, 0, "-", 0)
    return WordStats(
        unique_words=len(entries),
        total_words=sum(e.weight for e in entries),
        most_frequent=entries[0].text,
        max_frequency=entries[0].weight,
    )


# --- Surface ---

class Surface(Protocol):
    """The drawing capabilities the layout needs."""

    def set_size(self, width: int, height: int) -> None: ...

    def clear(self, fill: str) -> None: ...

    def measure_width(self, text: str, style: TextStyle) -> float: ...

    def draw_text(self, text: str, x: float, y: float, style: TextStyle, color: str) -> None: ...


class PILSurface:
    """Surface backed by a Pillow RGB image.

    ``draw_text`` places the word's left baseline at (x, y).
    """

    def __init__(
        self,
        width: int = CANVAS_WIDTH,
        height: int = CANVAS_HEIGHT,
        font_path: Optional[str] = None,
        background: str = BACKGROUND_COLOR,
    ):
        self.font_path = font_path
        self.background = background
        self.image = Image.new("RGB", (width, height), background)
        self._draw = ImageDraw.Draw(self.image)
        self._fonts = {}

    @property
    def size(self) -> Tuple[int, int]:
        return self.image.size

    def set_size(self, width: int, height: int) -> None:
        # Resizing discards whatever was painted, like a canvas does
        self.image = Image.new("RGB", (width, height), self.background)
        self._draw = ImageDraw.Draw(self.image)

    def clear(self, fill: str = BACKGROUND_COLOR) -> None:
        self._draw.rectangle((0, 0, self.image.width, self.image.height), fill=fill)

    def get_font(self, style: TextStyle):
        key = (style.size, style.bold)
        font = self._fonts.get(key)
        if font is None:
            font = self._load_font(style)
            self._fonts[key] = font
        return font

    def _load_font(self, style: TextStyle):
        size = max(1, int(style.size))
        candidates = [self.font_path] if self.font_path else list(_BOLD_FONT_PATHS)
        for path in candidates:
            try:
                return ImageFont.truetype(path, size)
            except (OSError, IOError):
                continue
        logger.debug("No TrueType font found, using Pillow default at size %d", size)
        return ImageFont.load_default(size)

    def measure_width(self, text: str, style: TextStyle) -> float:
        return self._draw.textlength(text, font=self.get_font(style))

    def draw_text(self, text: str, x: float, y: float, style: TextStyle, color: str) -> None:
        font = self.get_font(style)
        if isinstance(font, ImageFont.FreeTypeFont):
            self._draw.text((x, y), text, font=font, fill=color, anchor="ls")
        else:
            # Bitmap fonts have no baseline metrics and only anchor top-left.
            # Approximate: the glyph bottom sits on the baseline, so
            # descenders are lifted above it.
            bottom = font.getbbox(text)[3]
            self._draw.text((x, y - bottom), text, font=font, fill=color)


# --- Layout ---

def _get_palette_colors(palette: Union[str, Sequence[str], None]) -> List[str]:
    if palette is None:
        return list(DEFAULT_PALETTE)
    if isinstance(palette, str):
        return list(PALETTES.get(palette, DEFAULT_PALETTE))
    colors = list(palette)
    return colors or list(DEFAULT_PALETTE)


def layout(
    width: int,
    height: int,
    entries: Sequence[WordEntry],
    palette: Union[str, Sequence[str], None],
    measure_width: Callable[[str, TextStyle], float],
    max_words: int = MAX_CLOUD_WORDS,
) -> List[DrawCommand]:
    """Place ranked words with a greedy left-to-right, top-to-bottom flow.

    Only the first ``max_words`` entries are considered. A word that would
    cross the right edge wraps to a new line, advancing by its own size plus
    LINE_SPACING. Once the baseline reaches the bottom margin, words are
    dropped. There is no backtracking, so the result depends only on the
    inputs and is the same on every call.

    Args:
        width, height: Canvas size in pixels.
        entries: Words sorted heaviest first.
        palette: Palette name or list of colors, cycled by position.
        measure_width: Returns the rendered width of a word in a style.
        max_words: Cap on the number of entries considered.

    Returns:
        Draw commands in placement order, with (x, y) at the left baseline.
    """
    colors = _get_palette_colors(palette)
    max_x = width - SIDE_MARGINS
    max_y = height - BOTTOM_MARGIN
    x, y = LEFT_MARGIN, TOP_MARGIN

    commands = []
    for i, entry in enumerate(entries[:max_words]):
        style = TextStyle(entry.size)
        text_width = measure_width(entry.text, style)

        if x + text_width > max_x:
            x = LEFT_MARGIN
            y += entry.size + LINE_SPACING

        if y < max_y:
            commands.append(DrawCommand(entry.text, x, y, entry.size, colors[i % len(colors)]))
            x += text_width + WORD_SPACING
        else:
            logger.debug("No room left for %r at y=%s", entry.text, y)

    return commands


def draw_word_cloud(
    surface: Optional[Surface],
    entries: Sequence[WordEntry],
    width: int = CANVAS_WIDTH,
    height: int = CANVAS_HEIGHT,
    palette: Union[str, Sequence[str], None] = None,
    background: str = BACKGROUND_COLOR,
) -> List[DrawCommand]:
    """Resize and clear ``surface``, then paint ``entries`` onto it.

    A missing surface is a no-op. Measurement or drawing errors from the
    surface propagate to the caller.
    """
    if surface is None:
        return []

    surface.set_size(width, height)
    surface.clear(background)

    commands = layout(width, height, entries, palette, surface.measure_width)
    for cmd in commands:
        surface.draw_text(cmd.text, cmd.x, cmd.y, TextStyle(cmd.size), cmd.color)

    dropped = min(len(entries), MAX_CLOUD_WORDS) - len(commands)
    if dropped:
        logger.warning("%d word(s) did not fit on the %dx%d canvas", dropped, width, height)
    return commands


def clear_surface(surface: Optional[Surface], background: str = BACKGROUND_COLOR) -> None:
    if surface is None:
        return
    surface.clear(background)


# --- Convenience functions ---

def wordcloud_from_text(
    text: str,
    limiter: Optional[RateLimiter] = None,
    surface: Optional[Surface] = None,
    **kwargs
) -> Tuple[List[WordEntry], Surface]:
    """Process ``text`` and render it in one go.

    Input rejections propagate. A failure while rendering is logged and the
    computed entries are still returned, so statistics stay available.
    """
    entries = process_text(text, limiter=limiter)
    if surface is None:
        surface = PILSurface()
    try:
        draw_word_cloud(surface, entries, **kwargs)
    except Exception:
        logger.exception("Rendering the word cloud failed")
    return entries, surface


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Render a flow-layout word cloud from text.")
    parser.add_argument("input", nargs="?", help="Text file to read (default: stdin)")
    parser.add_argument("-o", "--output", default="wordcloud.png", help="PNG file to write")
    parser.add_argument("--palette", default="default", choices=sorted(PALETTES), help="Color palette")
    parser.add_argument("--font", help="Path to a .ttf/.otf font file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.input:
            with open(args.input, encoding="utf-8") as f:
                text = f.read()
        else:
            text = sys.stdin.read()
    except (OSError, UnicodeDecodeError) as exc:
        print(f"error: cannot read input: {exc}", file=sys.stderr)
        return 1

    try:
        entries = process_text(text)
    except WordCloudError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    surface = PILSurface(font_path=args.font)
    draw_word_cloud(surface, entries, palette=args.palette)
    surface.image.save(args.output)

    stats = word_stats(entries)
    print(f"Unique words:   {stats.unique_words}")
    print(f"Total words:    {stats.total_words}")
    print(f"Most frequent:  {stats.most_frequent}")
    print(f"Max frequency:  {stats.max_frequency}")
    print(f"Saved {args.output}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
