import os
import re
from typing import Iterable, List, Optional

import requests

from subbreaker.log import get_logger

log = get_logger(__name__)

GUTENDEX_BASE_URL = "https://gutendex.com/books"
BOOKS_DIR = "books"
TIMEOUT = 10

TEXT_FORMATS = (
    "text/plain; charset=utf-8",
    "text/plain; charset=us-ascii",
    "text/plain",
)

_START_MARKER = re.compile(r"\*\*\*\s*START OF (THE|THIS) PROJECT GUTENBERG EBOOK.*?\*\*\*", re.I)
_END_MARKER = re.compile(r"\*\*\*\s*END OF (THE|THIS) PROJECT GUTENBERG EBOOK", re.I)


def strip_gutenberg_boilerplate(text: str) -> str:
    """Cut the Project Gutenberg license header and footer, if present."""
    start = _START_MARKER.search(text)
    if start:
        text = text[start.end():]
    end = _END_MARKER.search(text)
    if end:
        text = text[:end.start()]
    return text.strip()


class Fetcher:
    """Fetch and save Project Gutenberg books as a training corpus."""

    BOOK_IDS = [
        "84", "2701", "1342", "2641", "145", "37106", "43", "1260", "345", "1259",
        "2554", "1080", "174", "98", "76", "1952", "2600", "844", "46", "1661",
        "5200", "1400", "74", "11", "64317",
    ]

    def __init__(self, books_dir: str = BOOKS_DIR, session: Optional[requests.Session] = None) -> None:
        self.books_dir = books_dir
        self.session = session or requests.Session()
        os.makedirs(books_dir, exist_ok=True)

    def _text_url(self, book_id: str) -> Optional[str]:
        response = self.session.get(f"{GUTENDEX_BASE_URL}/{book_id}", timeout=TIMEOUT)
        response.raise_for_status()
        formats = response.json().get("formats", {})
        return next((formats[k] for k in TEXT_FORMATS if k in formats), None)

    def fetch_book(self, book_id: str) -> Optional[str]:
        """Download one book; return the saved path or None if it has no plain text."""
        path = os.path.join(self.books_dir, f"{book_id}.txt")
        if os.path.exists(path):
            log.info("book already saved, skipping", book_id=book_id)
            return path

        text_url = self._text_url(book_id)
        if not text_url:
            log.warning("no plain text format, skipping", book_id=book_id)
            return None

        response = self.session.get(text_url, timeout=TIMEOUT)
        response.raise_for_status()
        with open(path, "w", encoding="utf-8") as f:
            f.write(strip_gutenberg_boilerplate(response.text))
        log.info("book saved", book_id=book_id, path=path)
        return path

    def fetch_all_books(self, book_ids: Optional[Iterable[str]] = None) -> List[str]:
        """Fetch every book, logging failures instead of stopping. Returns saved paths."""
        saved = []
        for book_id in book_ids or self.BOOK_IDS:
            try:
                path = self.fetch_book(book_id)
            except (requests.RequestException, ValueError, OSError) as e:
                log.error("failed to fetch book", book_id=book_id, error=str(e))
                continue
            if path:
                saved.append(path)
        return saved
