"""Session-scoped, per-type gallery cache feeding an infinite-scroll UI.

:class:`GalleryCache` keeps one :class:`GallerySeries` per
:class:`~pixie.core.models.GalleryType`.  Each series is an ordered,
id-deduplicated list of :class:`~pixie.api.models.ImageDetails` plus the
counters that drive pagination.  The cache lives for the hosting session only;
nothing is written to disk.

Paging Rules
------------
- **Cache first**: selecting a type that already holds images serves them
  without a request.
- **One load per type**: a page load is refused while another is in flight
  for the same type, so responses are applied in issuance order.
- **Dedup on append**: a fetched page only contributes records whose id is
  not already cached.  Existing records are never reordered.
- **End of data**: a page with fewer records than requested marks the series
  as exhausted.
- **Public viewing limit**: the public feed stops offering more after
  ``public_page_limit`` pages even if the server has more.  The UI is expected
  to show a "viewing limit reached, refresh for more recent items" affordance
  (see :attr:`GallerySeries.limit_reached`).  The personal feed is unbounded.
- **Failures are retryable**: a failed load leaves images and counters
  untouched and records a user-facing error on the series.

Usage
-----
::

    cache = GalleryCache(client, page_size=20, public_page_limit=5)
    await cache.select(GalleryType.PUBLIC)
    if cache.should_load_more(GalleryType.PUBLIC, visible_index=17):
        await cache.load_next_page(GalleryType.PUBLIC)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pixie.api.models import ImageDetails

from .errors import PixieError
from .models import GalleryType, SeriesState

if TYPE_CHECKING:
    from pixie.api.client import PixieClient

logger = logging.getLogger(__name__)


@dataclass
class GallerySeries:
    """Cached images and paging counters for one gallery type.

    Attributes
    ----------
    gallery_type : GalleryType
        Which feed this series caches
    page_limit : int | None
        Maximum pages to browse, or None for unbounded
    images : list[ImageDetails]
        Cached records in display order, unique by id
    pages_loaded : int
        Successfully applied pages
    has_reached_end : bool
        Whether the server returned a short page
    is_loading : bool
        Whether a page load is in flight
    loading_more : bool
        Whether the in-flight load is a next-page load
    error : str | None
        User-facing message of the last failed load
    last_refresh : float | None
        Wall-clock time of the last applied first page
    """

    gallery_type: GalleryType
    page_limit: int | None = None
    images: list[ImageDetails] = field(default_factory=list)
    pages_loaded: int = 0
    has_reached_end: bool = False
    is_loading: bool = False
    loading_more: bool = False
    error: str | None = None
    last_refresh: float | None = None
    _ids: set[str] = field(default_factory=set, repr=False)

    @property
    def has_more(self) -> bool:
        """Whether another page may be requested."""
        if self.has_reached_end:
            return False
        if self.page_limit is not None and self.pages_loaded >= self.page_limit:
            return False
        return True

    @property
    def limit_reached(self) -> bool:
        """Whether paging stopped because of the viewing limit, not end of data."""
        return (
            self.page_limit is not None
            and not self.has_reached_end
            and self.pages_loaded >= self.page_limit
        )

    @property
    def state(self) -> SeriesState:
        if self.is_loading:
            return SeriesState.LOADING_MORE if self.loading_more else SeriesState.LOADING
        if self.error is not None:
            return SeriesState.ERROR
        if self.pages_loaded == 0:
            return SeriesState.EMPTY
        return SeriesState.LOADED if self.has_more else SeriesState.EXHAUSTED

    def reset(self) -> None:
        """Drop every cached record and counter."""
        self.images = []
        self._ids = set()
        self.pages_loaded = 0
        self.has_reached_end = False
        self.error = None

    def replace(self, records: list[ImageDetails]) -> None:
        """Install a first page, dropping duplicate ids within it."""
        self.images = []
        self._ids = set()
        self.append_unique(records)

    def append_unique(self, records: list[ImageDetails]) -> int:
        """Append records whose id is new, in the order given.

        Returns:
            Number of records actually added
        """
        added = 0
        for record in records:
            if record.id in self._ids:
                continue
            self._ids.add(record.id)
            self.images.append(record)
            added += 1
        return added

    def remove(self, image_id: str) -> bool:
        if image_id not in self._ids:
            return False
        self._ids.discard(image_id)
        self.images = [image for image in self.images if image.id != image_id]
        return True

    def to_dict(self) -> dict:
        """Flatten the series for JSON responses."""
        return {
            "gallery_type": self.gallery_type.value,
            "state": self.state.value,
            "images": [image.model_dump() for image in self.images],
            "pages_loaded": self.pages_loaded,
            "has_reached_end": self.has_reached_end,
            "has_more": self.has_more,
            "limit_reached": self.limit_reached,
            "is_loading": self.is_loading,
            "error": self.error,
            "last_refresh": self.last_refresh,
        }


class GalleryCache:
    """Per-type image feed with dedup and a public viewing limit.

    Mutated only from the event loop that drives the UI; the ``is_loading``
    flag on each series is the single-flight guard.
    """

    def __init__(
        self,
        client: PixieClient,
        page_size: int = 20,
        public_page_limit: int = 5,
        load_more_threshold: int = 5,
    ) -> None:
        self._client = client
        self.page_size = page_size
        self.load_more_threshold = load_more_threshold
        self._series = {
            GalleryType.PERSONAL: GallerySeries(GalleryType.PERSONAL, page_limit=None),
            GalleryType.PUBLIC: GallerySeries(GalleryType.PUBLIC, page_limit=public_page_limit),
        }
        self.active_type: GalleryType | None = None

    # -- Accessors ----------------------------------------------------------

    def series(self, gallery_type: GalleryType) -> GallerySeries:
        return self._series[GalleryType(gallery_type)]

    @property
    def active(self) -> GallerySeries | None:
        """Series of the currently selected type."""
        if self.active_type is None:
            return None
        return self._series[self.active_type]

    def snapshot(self, gallery_type: GalleryType) -> dict:
        return self.series(gallery_type).to_dict()

    def should_load_more(self, gallery_type: GalleryType, visible_index: int) -> bool:
        """Scroll trigger for infinite scrolling.

        Args:
            gallery_type: Feed being scrolled
            visible_index: Index of the last item currently on screen

        Returns:
            True when the view is within the lookahead window of the end of
            the list, more pages are allowed, and nothing is loading.
        """
        series = self.series(gallery_type)
        if series.is_loading or not series.has_more:
            return False
        return visible_index >= len(series.images) - self.load_more_threshold

    # -- Operations ---------------------------------------------------------

    async def select(self, gallery_type: GalleryType) -> GallerySeries:
        """Switch the active feed, loading it only if nothing is cached."""
        gallery_type = GalleryType(gallery_type)
        self.active_type = gallery_type
        series = self._series[gallery_type]

        if series.images:
            logger.debug(
                f"Serving cached {gallery_type.value} gallery "
                f"({len(series.images)} images, {series.pages_loaded} pages)"
            )
            return series

        await self.load_first_page(gallery_type)
        return series

    async def load_first_page(self, gallery_type: GalleryType) -> bool:
        """Fetch page 1 and replace the cache for *gallery_type*.

        Returns:
            True if a page was applied.
        """
        series = self.series(gallery_type)
        if series.is_loading:
            logger.debug(f"Ignoring first-page load for {series.gallery_type.value}: busy")
            return False
        return await self._load(series, page=1, append=False)

    async def load_next_page(self, gallery_type: GalleryType) -> bool:
        """Fetch the next page and append its new records.

        No-op while a load is in flight or when no more pages are allowed.

        Returns:
            True if a page was applied.
        """
        series = self.series(gallery_type)
        if series.is_loading:
            logger.debug(f"Ignoring next-page load for {series.gallery_type.value}: busy")
            return False
        if not series.has_more:
            if series.limit_reached:
                logger.info(
                    f"{series.gallery_type.value} gallery viewing limit reached "
                    f"({series.pages_loaded} pages)"
                )
            return False
        return await self._load(series, page=series.pages_loaded + 1, append=True)

    async def refresh(self, gallery_type: GalleryType) -> bool:
        """Clear the cache for *gallery_type* only and reload page 1."""
        series = self.series(gallery_type)
        if series.is_loading:
            logger.debug(f"Ignoring refresh for {series.gallery_type.value}: busy")
            return False
        series.reset()
        logger.info(f"Refreshing {series.gallery_type.value} gallery")
        return await self._load(series, page=1, append=False)

    def remove(self, image_id: str) -> bool:
        """Drop a record from every series, e.g. after a server-side delete."""
        removed = False
        for series in self._series.values():
            removed = series.remove(image_id) or removed
        return removed

    # -- Internals ----------------------------------------------------------

    async def _load(self, series: GallerySeries, page: int, append: bool) -> bool:
        series.is_loading = True
        series.loading_more = append
        series.error = None
        try:
            response = await self._client.list_gallery(series.gallery_type, page, self.page_size)
        except PixieError as e:
            series.error = e.message
            logger.warning(f"Failed to load {series.gallery_type.value} page {page}: {e.message}")
            return False
        except Exception as e:
            series.error = f"Failed to load images: {e}"
            logger.error(
                f"Unexpected error loading {series.gallery_type.value} page {page}: {e}",
                exc_info=True,
            )
            return False
        finally:
            series.is_loading = False
            series.loading_more = False

        returned = len(response.images)
        if append:
            added = series.append_unique(response.images)
        else:
            series.replace(response.images)
            added = len(series.images)
            series.last_refresh = time.time()

        series.pages_loaded = page
        series.has_reached_end = returned < self.page_size

        logger.info(
            f"Loaded {series.gallery_type.value} page {page}: {returned} returned, "
            f"{added} new, {len(series.images)} cached"
            + (" (end of data)" if series.has_reached_end else "")
        )
        return True
