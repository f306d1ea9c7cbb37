"""End-to-end ingestion scenarios over in-memory services."""

import itertools
import json
import os
import time
from pathlib import Path
from urllib.parse import parse_qs
from unittest.mock import MagicMock

import httpx

from anitorrent.catalog.dedup import DuplicateFilter
from anitorrent.catalog.resolver import CatalogResolver, MappingCatalog
from anitorrent.config.schema import DefaultsConfig, TorrentConfig
from anitorrent.feeds.models import FeedItem
from anitorrent.media.extractor import TrackExtractor
from anitorrent.media.models import TrackKind
from anitorrent.media.probe import MediaProbe
from anitorrent.metadata.client import MetadataClient
from anitorrent.metadata.writer import MetadataWriter
from anitorrent.peertube.client import PlatformClient
from anitorrent.peertube.tokens import TokenStore
from anitorrent.pipeline.models import PipelineOptions, PipelineState
from anitorrent.pipeline.orchestrator import PipelineOrchestrator
from anitorrent.storage.object_store import ObjectStore
from anitorrent.torrent.engine import TorrentEngine
from anitorrent.utils.retry import TEST_RETRY_CONFIG
from conftest import GIB, FakeBackend, FakeClientFactory, FakeClock, disk_with, make_track, mock_http

METADATA_API = "https://api.anitorrent.test"
PLATFORM_API = "https://tube.example.org/api/v1"
THUMBNAIL = "https://cdn.ani.zip/episodes/1.jpg"
MAGNET = "magnet:?xt=urn:btih:ABCDEF0123456789"
FILE_NAME = "[Erai-raws] Sousou no Frieren - 01 [1080p].mkv"


class Services:
    """Mapping catalog, metadata API and PeerTube, routed by host."""

    def __init__(self) -> None:
        self.published: set[str] = set()
        self.posts: list[dict] = []
        self.platform_requests: list[httpx.Request] = []
        self.video_states = ["To import", "To import", "Published"]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        if host == "api.ani.zip":
            return self._mapping(request)
        if host == "api.anitorrent.test":
            return self._metadata(request)
        if host == "tube.example.org":
            self.platform_requests.append(request)
            return self._platform(request)
        return httpx.Response(404)

    def _mapping(self, request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "titles": {"en": "Frieren: Beyond Journey's End"},
                "episodes": {
                    "1": {"episode": 1, "anidbEid": 238312, "image": THUMBNAIL},
                    "2": {"episode": 2, "anidbEid": 238313},
                },
                "mappings": {"anilist_id": 176301},
            },
        )

    def _metadata(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "POST" and path == "/content/episodes":
            self.posts.append(json.loads(request.content))
            return httpx.Response(201, json={"ok": True})
        if path.startswith("/content/episodes/"):
            key = path.removeprefix("/content/episodes/")
            if key in self.published:
                return httpx.Response(200, json={"idAnilist": 176301, "episodeNumber": 1})
        return httpx.Response(404)

    def _platform(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api/v1")
        if path == "/oauth-clients/local":
            return httpx.Response(200, json={"client_id": "cid", "client_secret": "csec"})
        if path == "/users/token":
            assert parse_qs(request.content.decode())["grant_type"] == ["password"]
            return httpx.Response(
                200, json={"access_token": "tok", "refresh_token": "ref", "expires_in": 3600}
            )
        if path == "/users/me":
            return httpx.Response(200, json={"videoChannels": [{"id": 3}]})
        if path == "/videos/imports":
            return httpx.Response(
                200,
                json={"id": 9, "video": {"id": 4711, "uuid": "u-4711", "shortUUID": "tgjYS5VH2vJ"}},
            )
        if path == "/videos/4711":
            label = self.video_states.pop(0) if len(self.video_states) > 1 else self.video_states[0]
            return httpx.Response(
                200,
                json={
                    "id": 4711,
                    "uuid": "u-4711",
                    "shortUUID": "tgjYS5VH2vJ",
                    "state": {"label": label},
                    "duration": 1420,
                },
            )
        return httpx.Response(404)


class Pipeline:
    """Real components wired to fakes at the process and network edges."""

    def __init__(
        self,
        tmp_path: Path,
        free_bytes: int = 100 * GIB,
        wall_time=time.time,
    ) -> None:
        self.services = Services()
        self.factory = FakeClientFactory()
        self.clock = FakeClock()
        self.config = TorrentConfig(
            download_dir=tmp_path / "downloads",
            port=6881,
            max_seeding=10,
            timeout_seconds=600,
            min_free_bytes=1024,
        )
        self.engine = TorrentEngine(
            self.config,
            client_factory=self.factory,
            disk_usage=disk_with(free_bytes),
            clock=self.clock,
            wall_time=wall_time,
            sleep=self.clock.sleep,
            background_sweep=False,
        )
        self.backend = FakeBackend(
            "fake",
            audio=[
                make_track(TrackKind.AUDIO, 0, "jpn"),
                make_track(TrackKind.AUDIO, 1, "spa", title="Latin"),
            ],
            subtitle=[
                make_track(TrackKind.SUBTITLE, 0, "spa", title="Latin"),
                make_track(TrackKind.SUBTITLE, 1, "eng"),
            ],
        )
        self.s3 = MagicMock()
        self.s3.head_object.return_value = {"ETag": '"etag"'}
        self.store = ObjectStore("media", "https://cdn.example.org", client=self.s3)

        metadata = MetadataClient(
            METADATA_API, "key", http_client=mock_http(self.services, base_url=METADATA_API)
        )
        self.platform = PlatformClient(
            PLATFORM_API,
            "uploader",
            "pw",
            TokenStore(tmp_path / "peertube-token.json"),
            sleep=lambda seconds: None,
            http_client=mock_http(self.services, base_url=PLATFORM_API),
        )
        catalog = MappingCatalog(
            retry_config=TEST_RETRY_CONFIG, http_client=mock_http(self.services)
        )
        self.orchestrator = PipelineOrchestrator(
            resolver=CatalogResolver(catalog),
            dedup=DuplicateFilter(),
            metadata=metadata,
            engine=self.engine,
            probe=MediaProbe([self.backend]),
            extractor=TrackExtractor([self.backend], [self.backend]),
            store=self.store,
            platform=self.platform,
            writer=MetadataWriter(metadata, self.platform.base_url),
            defaults=DefaultsConfig(max_wait_minutes=5),
        )

    @property
    def uploaded_keys(self) -> list[str]:
        return [call.args[2] for call in self.s3.upload_file.call_args_list]

    @property
    def deleted_keys(self) -> list[str]:
        return [call.kwargs["Key"] for call in self.s3.delete_object.call_args_list]


def feed_item(
    title: str = FILE_NAME,
    uri: str = MAGNET,
    total_size: int = 4096,
    anidb_eid: int = 238312,
) -> FeedItem:
    return FeedItem.model_validate(
        {
            "title": title,
            "anidb_aid": 15125,
            "anidb_eid": anidb_eid,
            "torrent_url": uri,
            "total_size": total_size,
        }
    )


class TestScenarios:
    """The documented end-to-end ingestion cases."""

    def test_fresh_episode_full_success(self, tmp_path: Path) -> None:
        """Test a new episode is staged, imported, recorded and cleaned."""
        pipeline = Pipeline(tmp_path)
        pipeline.factory.add_torrent(MAGNET, [(FILE_NAME, 4096)])

        summary = pipeline.orchestrator.run_batch(
            [feed_item()], PipelineOptions(keep_seeding=False)
        )

        (outcome,) = summary.outcomes
        assert outcome.status == "success"
        assert outcome.last_state is PipelineState.CLEANED
        assert outcome.metadata_written

        master_key = f"videos/{FILE_NAME}"
        assert sorted(pipeline.uploaded_keys) == sorted(
            [
                master_key,
                "subtitles/tgjYS5VH2vJ_lat.ass",
                "subtitles/tgjYS5VH2vJ_en.ass",
                "audios/tgjYS5VH2vJ.mp3",
                "audios/tgjYS5VH2vJ_lat.mp3",
            ]
        )
        (post,) = pipeline.services.posts
        assert post["idAnilist"] == 176301
        assert post["episodeNumber"] == 1
        assert post["peertubeId"] == "4711"
        assert post["embedUrl"] == "https://tube.example.org/videos/embed/tgjYS5VH2vJ"
        assert post["thumbnailUrl"] == THUMBNAIL
        assert post["isReady"] is False
        assert pipeline.deleted_keys == [master_key]
        assert not (pipeline.config.download_dir / FILE_NAME).exists()
        assert pipeline.engine.seeding_status() == []

    def test_duplicate_within_batch(self, tmp_path: Path) -> None:
        """Test the (JA) release is processed and the (CA) one never downloaded."""
        pipeline = Pipeline(tmp_path)
        ja_uri = "magnet:?xt=urn:btih:JA"
        pipeline.factory.add_torrent(ja_uri, [(FILE_NAME, 4096)])

        summary = pipeline.orchestrator.run_batch(
            [
                feed_item("[Erai-raws] Sousou no Frieren - 01 [1080p] (CA)", "magnet:?xt=urn:btih:CA"),
                feed_item("[Erai-raws] Sousou no Frieren - 01 [1080p] (JA)", ja_uri),
            ],
            PipelineOptions(keep_seeding=False),
        )

        assert summary.duplicates == 1
        (outcome,) = summary.outcomes
        assert "(JA)" in outcome.title
        assert outcome.status == "success"

    def test_already_published(self, tmp_path: Path) -> None:
        """Test a published episode causes no download, upload or platform call."""
        pipeline = Pipeline(tmp_path)
        pipeline.services.published.add("176301/1")

        summary = pipeline.orchestrator.run_batch([feed_item()])

        assert summary.already_present == 1
        assert summary.outcomes == []
        assert pipeline.factory.clients == []
        pipeline.s3.upload_file.assert_not_called()
        assert pipeline.services.platform_requests == []

    def test_download_timeout(self, tmp_path: Path) -> None:
        """Test a stalled torrent fails after the timeout with nothing published."""
        pipeline = Pipeline(tmp_path)
        pipeline.factory.add_torrent(MAGNET, [(FILE_NAME, 4096)], complete=False)
        started = pipeline.clock.now

        summary = pipeline.orchestrator.run_batch([feed_item()])

        (outcome,) = summary.outcomes
        assert outcome.status == "failed"
        assert "not complete after 600s" in outcome.reason
        assert outcome.artifacts == []
        assert pipeline.clock.now - started >= 600
        pipeline.s3.upload_file.assert_not_called()
        assert pipeline.services.platform_requests == []
        assert pipeline.services.posts == []
        assert pipeline.factory.client.torrents == {}

    def test_insufficient_disk_space(self, tmp_path: Path) -> None:
        """Test a space shortfall cleans old files once and aborts the batch."""
        pipeline = Pipeline(tmp_path, free_bytes=1 * GIB)
        download_dir = pipeline.config.download_dir
        download_dir.mkdir(parents=True)
        old = download_dir / "old.mkv"
        old.write_bytes(b"\0")
        thirteen_hours_ago = time.time() - 13 * 3600
        os.utime(old, (thirteen_hours_ago, thirteen_hours_ago))
        recent = download_dir / "recent.mkv"
        recent.write_bytes(b"\0")

        summary = pipeline.orchestrator.run_batch(
            [
                feed_item(total_size=3 * GIB),
                feed_item(
                    "[Erai-raws] Sousou no Frieren - 02 [1080p]",
                    "magnet:?xt=urn:btih:EP2",
                    total_size=1024,
                    anidb_eid=238313,
                ),
            ]
        )

        assert summary.aborted
        assert len(summary.outcomes) == 1
        assert "Insufficient disk space" in summary.outcomes[0].reason
        assert not old.exists()
        assert recent.exists()
        assert pipeline.factory.clients == []

    def test_seeding_cap_evicts_oldest(self, tmp_path: Path) -> None:
        """Test the 11th seed evicts the oldest while the set stays at 10."""
        ticks = itertools.count(1_700_000_000)
        pipeline = Pipeline(tmp_path, wall_time=lambda: float(next(ticks)))
        engine = pipeline.engine

        prior = []
        for number in range(1, 11):
            uri = f"magnet:?xt=urn:btih:PRIOR{number}"
            pipeline.factory.add_torrent(uri, [(f"prior-{number:02d}.mkv", 64)])
            media = engine.download(uri, keep_seeding=True)
            engine.seed_retain(media.info_hash)
            prior.append(media)
        assert len(engine.seeding_status()) == 10

        new_hash = pipeline.factory.add_torrent(MAGNET, [(FILE_NAME, 4096)])
        summary = pipeline.orchestrator.run_batch([feed_item()], PipelineOptions(keep_seeding=True))

        assert summary.succeeded == 1
        seeding = {slot.info_hash for slot in engine.seeding_status()}
        assert len(seeding) == 10
        assert new_hash in seeding
        assert prior[0].info_hash not in seeding
        assert (prior[0].info_hash, False) in pipeline.factory.client.removed
        assert not prior[0].path.exists()
        assert prior[1].path.exists()
