"""Builds and submits EpisodeRecords."""

import logging

from anitorrent.catalog.models import EpisodeKey, ResolvedEpisode
from anitorrent.metadata.client import MetadataClient
from anitorrent.metadata.models import EpisodeRecord, LocalizedTitle
from anitorrent.peertube.models import PlatformVideo
from anitorrent.utils.errors import PlatformError

logger = logging.getLogger(__name__)


class MetadataWriter:
    """Normalizes a published video into an EpisodeRecord and writes it."""

    def __init__(self, client: MetadataClient, platform_base_url: str) -> None:
        """Initialize the writer.

        Args:
            client: Metadata API client
            platform_base_url: Public root of the video platform (no /api/v1)
        """
        self.client = client
        self.platform_base_url = platform_base_url.rstrip("/")

    def embed_url(self, short_uuid: str) -> str:
        return f"{self.platform_base_url}/videos/embed/{short_uuid}"

    def thumbnail_url(self, video: PlatformVideo, catalog_image: str | None) -> str:
        """Mapping-catalog image first, platform preview second.

        Raises:
            PlatformError: If neither source has an image
        """
        if catalog_image:
            return catalog_image
        if video.preview_path:
            return f"{self.platform_base_url}{video.preview_path}"
        raise PlatformError(f"No thumbnail available for video {video.id}")

    def build_record(
        self,
        key: EpisodeKey,
        video: PlatformVideo,
        resolved: ResolvedEpisode | None = None,
        password: str | None = None,
        spanish_title: str | None = None,
    ) -> EpisodeRecord:
        """Assemble the record for a published video.

        Args:
            key: Canonical episode key
            video: Platform video as returned by wait_ready/get_video
            resolved: Catalog resolution (thumbnail, localized titles)
            password: Video password, if the video is protected
            spanish_title: Episode title to publish, if titles are enabled
        """
        catalog_image = resolved.thumbnail_url if resolved else None
        title = LocalizedTitle()
        if spanish_title:
            episode_titles = resolved.episode_titles if resolved else {}
            title = LocalizedTitle(
                es=spanish_title,
                en=episode_titles.get("en"),
                ja=episode_titles.get("ja"),
            )

        return EpisodeRecord(
            key=key,
            platform_video_id=video.id,
            uuid=video.uuid,
            short_uuid=video.short_uuid,
            password=password,
            title=title,
            embed_url=self.embed_url(video.short_uuid),
            thumbnail_url=self.thumbnail_url(video, catalog_image),
            description=video.description,
            duration_s=video.duration_s,
        )

    def upsert_episode(self, key: EpisodeKey, record: EpisodeRecord) -> None:
        """Submit the record.

        Raises:
            RemoteError: If the API rejects the record or is unavailable
        """
        self.client.create_episode(record.to_payload())
        logger.info(f"Episode {key} written to metadata API (video {record.short_uuid})")
