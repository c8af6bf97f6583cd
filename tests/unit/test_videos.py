"""Tests for the videos and albums handler."""

from datetime import date
from typing import Any, Callable, Dict
from unittest.mock import patch

import pytest

from src.handlers.videos import lambda_handler
from tests.unit.fake_db import FakeConnection
from tests.unit.fixtures import BUCKET_NAME, OTHER_SUB, OWNER_SUB, bearer_token, response_body

ApiEvent = Callable[..., Dict[str, Any]]

S3_BASE = f"https://{BUCKET_NAME}.s3.eu-west-1.amazonaws.com"
ALBUM_ROW = {"id": 3, "cognito_sub": OWNER_SUB, "event_id": 1, "name": "Saturday", "album_date": date(2026, 11, 21)}


def video_row(video_id: int = 20, owner: str = OWNER_SUB, **overrides: Any) -> Dict[str, Any]:
    row = {
        "id": video_id,
        "cognito_sub": owner,
        "event_id": 1,
        "album_id": 3,
        "title": "social",
        "video_url": f"{S3_BASE}/videos/1-social.mp4",
        "thumbnail_url": f"{S3_BASE}/thumbnails/1-social.jpg",
    }
    row.update(overrides)
    return row


@pytest.fixture
def album(fake_db: FakeConnection) -> FakeConnection:
    fake_db.on("FROM albums WHERE id", rows=[ALBUM_ROW])
    return fake_db


class TestUploadUrl:
    """Tests for POST /videos/upload-url."""

    def test_owner_upload_registers_video(
        self, album: FakeConnection, s3_bucket: Any, api_event: ApiEvent, lambda_context: Any
    ) -> None:
        payload = {"filename": "social dance.mp4", "event_id": 1, "album_id": "3", "file_size": 5000}

        response = lambda_handler(api_event("POST", "/videos/upload-url", payload, sub=OWNER_SUB), lambda_context)

        body = response_body(response)
        assert response["statusCode"] == 200
        assert body["video_id"] == "101"
        assert body["s3_key"].startswith("videos/")
        assert body["s3_key"].endswith("-social_dance.mp4")
        assert body["s3_url"] == f"{S3_BASE}/{body['s3_key']}"
        assert body["expires_in"] == 3600
        _, params = album.statements("INSERT INTO videos")[0]
        assert params == (OWNER_SUB, 1, 3, "social dance", body["s3_url"])

    def test_large_file_gets_longer_expiry(
        self, album: FakeConnection, s3_bucket: Any, api_event: ApiEvent, lambda_context: Any
    ) -> None:
        payload = {"filename": "a.mp4", "event_id": 1, "album_id": 3, "file_size": 200 * 1024 * 1024}

        body = response_body(lambda_handler(api_event("POST", "/videos/upload-url", payload, sub=OWNER_SUB), lambda_context))

        assert body["expires_in"] == 14400

    def test_guest_upload_has_no_row(
        self, fake_db: FakeConnection, s3_bucket: Any, api_event: ApiEvent, lambda_context: Any
    ) -> None:
        payload = {"filename": "a.mp4", "event_id": 1, "album_id": 3}

        body = response_body(lambda_handler(api_event("POST", "/videos/upload-url", payload), lambda_context))

        assert body["video_id"] is None
        assert fake_db.executed == []

    def test_bearer_token_identifies_uploader(
        self, album: FakeConnection, s3_bucket: Any, api_event: ApiEvent, lambda_context: Any
    ) -> None:
        payload = {"filename": "a.mp4", "event_id": 1, "album_id": 3}
        headers = {"Authorization": bearer_token({"sub": OWNER_SUB})}

        body = response_body(lambda_handler(api_event("POST", "/videos/upload-url", payload, headers=headers), lambda_context))

        assert body["video_id"] == "101"

    def test_missing_album(self, fake_db: FakeConnection, s3_bucket: Any, api_event: ApiEvent, lambda_context: Any) -> None:
        payload = {"filename": "a.mp4", "event_id": 1, "album_id": 3}

        response = lambda_handler(api_event("POST", "/videos/upload-url", payload, sub=OWNER_SUB), lambda_context)

        assert response["statusCode"] == 404
        assert response_body(response)["error"] == "Album 3 not found for event 1"

    def test_foreign_album(self, album: FakeConnection, s3_bucket: Any, api_event: ApiEvent, lambda_context: Any) -> None:
        payload = {"filename": "a.mp4", "event_id": 1, "album_id": 3}

        response = lambda_handler(api_event("POST", "/videos/upload-url", payload, sub=OTHER_SUB), lambda_context)

        assert response["statusCode"] == 403
        assert response_body(response)["error"] == "No permission to upload to this album"

    @pytest.mark.parametrize(
        "payload,message",
        [
            ({"event_id": 1, "album_id": 3}, "filename is required"),
            ({"filename": "a.mp4", "event_id": 1}, "event_id and album_id are required"),
        ],
    )
    def test_invalid_input(self, api_event: ApiEvent, lambda_context: Any, payload: Dict[str, Any], message: str) -> None:
        response = lambda_handler(api_event("POST", "/videos/upload-url", payload, sub=OWNER_SUB), lambda_context)

        assert response["statusCode"] == 400
        assert response_body(response)["error"] == message


class TestConfirmUpload:
    """Tests for POST /videos/confirm."""

    def test_existing_video_by_id(self, fake_db: FakeConnection, api_event: ApiEvent, lambda_context: Any) -> None:
        fake_db.on("FROM videos WHERE id", rows=[video_row()])

        body = response_body(
            lambda_handler(api_event("POST", "/videos/confirm", {"s3_key": "videos/1-social.mp4", "video_id": "20"}), lambda_context)
        )

        assert body["video"]["id"] == 20
        assert not fake_db.statements("INSERT INTO videos")

    def test_existing_video_by_key(self, fake_db: FakeConnection, api_event: ApiEvent, lambda_context: Any) -> None:
        fake_db.on("FROM videos WHERE video_url LIKE", rows=[video_row()])

        body = response_body(lambda_handler(api_event("POST", "/videos/confirm", {"s3_key": "videos/1-social.mp4"}), lambda_context))

        assert body["video"]["id"] == 20
        assert fake_db.statements("video_url LIKE")[0][1] == ("%videos/1-social.mp4%",)

    def test_creates_missing_row(self, album: FakeConnection, api_event: ApiEvent, lambda_context: Any) -> None:
        album.on("FROM videos WHERE id", rows=[video_row(101)])
        payload = {"s3_key": "videos/1700-final cut.mov", "event_id": 1, "album_id": 3}

        body = response_body(lambda_handler(api_event("POST", "/videos/confirm", payload, sub=OWNER_SUB), lambda_context))

        assert body["video"]["id"] == 101
        _, params = album.statements("INSERT INTO videos")[0]
        assert params[3] == "1700-final cut"
        assert params[4] == f"{S3_BASE}/videos/1700-final cut.mov"

    def test_missing_row_needs_user(self, fake_db: FakeConnection, api_event: ApiEvent, lambda_context: Any) -> None:
        response = lambda_handler(api_event("POST", "/videos/confirm", {"s3_key": "videos/x.mp4"}), lambda_context)

        assert response["statusCode"] == 401

    def test_missing_row_needs_album(self, fake_db: FakeConnection, api_event: ApiEvent, lambda_context: Any) -> None:
        response = lambda_handler(
            api_event("POST", "/videos/confirm", {"s3_key": "videos/x.mp4"}, sub=OWNER_SUB), lambda_context
        )

        assert response_body(response)["error"] == "album_id and event_id required to create video record"

    def test_s3_key_required(self, api_event: ApiEvent, lambda_context: Any) -> None:
        response = lambda_handler(api_event("POST", "/videos/confirm", {}), lambda_context)

        assert response_body(response)["error"] == "s3_key is required"


class TestDeleteVideos:
    """Tests for DELETE /videos."""

    def test_deletes_only_own_videos_and_objects(
        self, fake_db: FakeConnection, s3_bucket: Any, api_event: ApiEvent, lambda_context: Any
    ) -> None:
        for key in ("videos/1-social.mp4", "thumbnails/1-social.jpg"):
            s3_bucket.put_object(Bucket=BUCKET_NAME, Key=key, Body=b"x")
        fake_db.on("FROM videos WHERE id IN", rows=[video_row(20), video_row(21, owner=OTHER_SUB)])
        event = api_event("DELETE", "/videos", {"video_ids": [20, "21", "junk"]}, sub=OWNER_SUB)

        response = lambda_handler(event, lambda_context)

        assert response_body(response) == {"success": True, "deleted_count": 1, "deleted_ids": ["20"]}
        assert [params for _, params in fake_db.statements("DELETE FROM videos")] == [(20,)]
        assert fake_db.statements("WHERE id IN")[0][1] == (20, 21)
        assert s3_bucket.list_objects_v2(Bucket=BUCKET_NAME).get("KeyCount") == 0

    def test_none_owned(self, fake_db: FakeConnection, api_event: ApiEvent, lambda_context: Any) -> None:
        fake_db.on("FROM videos WHERE id IN", rows=[video_row(21, owner=OTHER_SUB)])

        response = lambda_handler(api_event("DELETE", "/videos", {"video_ids": [21]}, sub=OWNER_SUB), lambda_context)

        assert response["statusCode"] == 403
        assert response_body(response)["error"] == "No permission to delete these videos"

    @pytest.mark.parametrize("payload", [{}, {"video_ids": []}, {"video_ids": "20"}, {"video_ids": ["x"]}])
    def test_video_ids_required(self, payload: Dict[str, Any], api_event: ApiEvent, lambda_context: Any) -> None:
        response = lambda_handler(api_event("DELETE", "/videos", payload, sub=OWNER_SUB), lambda_context)

        assert response_body(response)["error"] == "video_ids array is required"


class TestMultipartUpload:
    """Tests for multipart init and complete."""

    def test_init(self, album: FakeConnection, s3_bucket: Any, api_event: ApiEvent, lambda_context: Any) -> None:
        payload = {"filename": "long.mp4", "file_size": 250 * 1024 * 1024, "event_id": 1, "album_id": 3}

        body = response_body(lambda_handler(api_event("POST", "/videos/multipart/init", payload, sub=OWNER_SUB), lambda_context))

        assert body["video_id"] == "101"
        assert body["upload_id"]
        assert body["total_parts"] == 3
        assert body["part_size"] == 100 * 1024 * 1024
        assert [p["partNumber"] for p in body["parts"]] == [1, 2, 3]

    def test_init_requires_all_fields(self, api_event: ApiEvent, lambda_context: Any) -> None:
        payload = {"filename": "long.mp4", "event_id": 1, "album_id": 3}

        response = lambda_handler(api_event("POST", "/videos/multipart/init", payload, sub=OWNER_SUB), lambda_context)

        assert response_body(response)["error"] == "filename, event_id, album_id, and file_size are required"

    def test_complete(self, api_event: ApiEvent, lambda_context: Any) -> None:
        result = {"Location": f"{S3_BASE}/videos/long.mp4", "ETag": '"abc-3"'}
        payload = {"upload_id": "u-1", "s3_key": "videos/long.mp4", "parts": [{"PartNumber": 1, "ETag": "e1"}]}

        with patch("src.handlers.videos.complete_multipart_upload", return_value=result) as complete:
            body = response_body(lambda_handler(api_event("POST", "/videos/multipart/complete", payload), lambda_context))

        complete.assert_called_once_with("videos/long.mp4", "u-1", payload["parts"])
        assert body == {"success": True, "s3_key": "videos/long.mp4", "s3_url": result["Location"], "etag": '"abc-3"'}

    def test_complete_requires_parts(self, api_event: ApiEvent, lambda_context: Any) -> None:
        payload = {"upload_id": "u-1", "s3_key": "videos/long.mp4"}

        response = lambda_handler(api_event("POST", "/videos/multipart/complete", payload), lambda_context)

        assert response["statusCode"] == 400


class TestMoveVideo:
    """Tests for PATCH /videos/{id}."""

    def test_move_to_album(self, fake_db: FakeConnection, api_event: ApiEvent, lambda_context: Any) -> None:
        fake_db.on("FROM videos WHERE id", rows=[video_row()])

        response = lambda_handler(api_event("PATCH", "/videos/20", {"album_id": 4}, sub=OWNER_SUB), lambda_context)

        assert response["statusCode"] == 200
        assert fake_db.statements("UPDATE videos SET album_id")[0][1] == (4, "20")

    def test_remove_from_album(self, fake_db: FakeConnection, api_event: ApiEvent, lambda_context: Any) -> None:
        fake_db.on("FROM videos WHERE id", rows=[video_row()])

        lambda_handler(api_event("PATCH", "/videos/20", {"album_id": None}, sub=OWNER_SUB), lambda_context)

        assert fake_db.statements("UPDATE videos SET album_id")[0][1] == (None, "20")

    def test_not_found(self, fake_db: FakeConnection, api_event: ApiEvent, lambda_context: Any) -> None:
        response = lambda_handler(api_event("PATCH", "/videos/20", {"album_id": 4}, sub=OWNER_SUB), lambda_context)

        assert response_body(response)["error"] == "Video not found"

    def test_not_owner(self, fake_db: FakeConnection, api_event: ApiEvent, lambda_context: Any) -> None:
        fake_db.on("FROM videos WHERE id", rows=[video_row()])

        response = lambda_handler(api_event("PATCH", "/videos/20", {"album_id": 4}, sub=OTHER_SUB), lambda_context)

        assert response["statusCode"] == 403


class TestEventVideosAndAlbums:
    """Tests for event video listing and albums."""

    def test_list_event_videos_presigns(
        self, fake_db: FakeConnection, s3_bucket: Any, api_event: ApiEvent, lambda_context: Any
    ) -> None:
        fake_db.on("FROM videos v", rows=[video_row(album_name="Saturday")])

        body = response_body(lambda_handler(api_event("GET", "/events/1/videos"), lambda_context))

        assert body["count"] == 1
        video = body["videos"][0]
        assert video["album_name"] == "Saturday"
        assert video["video_url"] != video_row()["video_url"]
        assert "videos/1-social.mp4" in video["video_url"]
        assert "thumbnails/1-social.jpg" in video["thumbnail_url"]

    def test_list_albums(self, fake_db: FakeConnection, api_event: ApiEvent, lambda_context: Any) -> None:
        fake_db.on("FROM albums WHERE event_id", rows=[ALBUM_ROW])

        body = response_body(lambda_handler(api_event("GET", "/events/1/albums"), lambda_context))

        assert body["albums"][0]["album_date"] == "2026-11-21"
        assert "ORDER BY album_date DESC, name ASC" in fake_db.statements("FROM albums")[0][0]

    def test_create_album(self, album: FakeConnection, api_event: ApiEvent, lambda_context: Any) -> None:
        payload = {"name": " Saturday ", "album_date": "2026-11-21"}

        response = lambda_handler(api_event("POST", "/events/1/albums", payload, sub=OWNER_SUB), lambda_context)

        assert response["statusCode"] == 201
        assert album.statements("INSERT INTO albums")[0][1] == ("1", "Saturday", "2026-11-21", OWNER_SUB)

    def test_invalid_album_date_is_dropped(self, album: FakeConnection, api_event: ApiEvent, lambda_context: Any) -> None:
        payload = {"name": "Saturday", "album_date": "Saturday night"}

        lambda_handler(api_event("POST", "/events/1/albums", payload, sub=OWNER_SUB), lambda_context)

        assert album.statements("INSERT INTO albums")[0][1][2] is None

    def test_existing_album(self, fake_db: FakeConnection, api_event: ApiEvent, lambda_context: Any) -> None:
        fake_db.on("FROM albums WHERE event_id = %s AND name", rows=[ALBUM_ROW])

        response = lambda_handler(api_event("POST", "/events/1/albums", {"name": "Saturday"}, sub=OWNER_SUB), lambda_context)

        assert response["statusCode"] == 200
        assert response_body(response)["message"] == "Album already exists"
        assert not fake_db.statements("INSERT INTO albums")

    def test_album_name_required(self, api_event: ApiEvent, lambda_context: Any) -> None:
        response = lambda_handler(api_event("POST", "/events/1/albums", {"name": "  "}, sub=OWNER_SUB), lambda_context)

        assert response_body(response)["error"] == "Album name is required"
