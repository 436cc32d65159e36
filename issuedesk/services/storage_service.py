"""스토리지 서비스 — S3 또는 로컬 파일 저장.

Storage Service — S3 presigned URL or local file storage for issue images.
AWS 키가 비어있으면 자동으로 로컬 모드로 전환됩니다.
모든 업로드는 temp/ 폴더에 먼저 저장되고, finalize_many()로 최종 위치에 복사된 뒤
커밋이 끝나면 release_sources()로 temp 원본을 삭제합니다.
이슈에는 최종 URL만 저장됩니다 (Issues only ever store the final URL).
"""

import asyncio
import logging
import shutil
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from botocore.exceptions import BotoCoreError, ClientError

from issuedesk.config import settings
from issuedesk.utils.exceptions import DependencyError, ValidationError

logger = logging.getLogger(__name__)

# 로컬 업로드 디렉토리 — .env의 LOCAL_UPLOADS_DIR 또는 프로젝트 루트의 uploads/
_PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent.parent


@dataclass
class FinalizedUploads:
    """확정된 이미지 묶음 (A batch of finalized image references).

    urls: 이슈에 저장할 최종 URL
    created: 이번 호출에서 새로 만든 최종 key
    sources: 커밋 후 삭제할 temp key
    """

    urls: list[str] = field(default_factory=list)
    created: list[str] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)


class StorageService:
    """파일 업로드 서비스 — S3 또는 로컬 모드 자동 선택."""

    def __init__(self) -> None:
        self._client = None

    @property
    def is_local(self) -> bool:
        return not settings.AWS_ACCESS_KEY_ID or not settings.AWS_S3_BUCKET

    @property
    def uploads_dir(self) -> Path:
        if settings.LOCAL_UPLOADS_DIR:
            return Path(settings.LOCAL_UPLOADS_DIR)
        return _PROJECT_ROOT / "uploads"

    @property
    def client(self):
        if self.is_local:
            return None
        if self._client is None:
            import boto3
            from botocore.config import Config as BotoConfig

            self._client = boto3.client(
                "s3",
                region_name=settings.AWS_S3_REGION,
                aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
                aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
                config=BotoConfig(
                    signature_version="s3v4",
                    connect_timeout=settings.STORAGE_TIMEOUT_SECONDS,
                    read_timeout=settings.STORAGE_TIMEOUT_SECONDS,
                    retries={"max_attempts": 1},
                ),
            )
        return self._client

    @property
    def _public_prefix(self) -> str:
        if self.is_local:
            return f"{settings.PUBLIC_BASE_URL.rstrip('/')}/uploads/"
        return f"https://{settings.AWS_S3_BUCKET}.s3.{settings.AWS_S3_REGION}.amazonaws.com/"

    def _generate_key(self, filename: str, folder: str) -> str:
        ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else "bin"
        date_prefix = datetime.now(timezone.utc).strftime("%Y/%m/%d")
        return f"temp/{folder}/{date_prefix}/{uuid.uuid4().hex}.{ext}"

    def generate_presigned_upload_url(
        self,
        filename: str,
        content_type: str,
        folder: str = "issues",
        expires: int = 3600,
    ) -> dict[str, str]:
        """presigned PUT URL과 temp file URL을 반환합니다.

        Only image content types in ALLOWED_IMAGE_TYPES are accepted.
        finalize_many()로 최종 위치에 복사해야 합니다.
        """
        if content_type not in settings.ALLOWED_IMAGE_TYPES:
            raise ValidationError(
                f"Unsupported file type '{content_type}'. Allowed: {', '.join(settings.ALLOWED_IMAGE_TYPES)}"
            )
        key = self._generate_key(filename, folder)

        if self.is_local:
            base = f"{settings.PUBLIC_BASE_URL.rstrip('/')}/api/v1/app/storage/upload/{key}"
            return {"upload_url": base, "file_url": self._public_prefix + key, "key": key}

        try:
            upload_url = self.client.generate_presigned_url(
                "put_object",
                Params={
                    "Bucket": settings.AWS_S3_BUCKET,
                    "Key": key,
                    "ContentType": content_type,
                },
                ExpiresIn=expires,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.warning("presigned url generation failed: %s", exc)
            raise DependencyError("Object store unavailable, please retry") from exc
        return {"upload_url": upload_url, "file_url": self._public_prefix + key, "key": key}

    def save_local(self, key: str, data: bytes) -> str:
        """로컬 파일 저장. 경로를 반환합니다."""
        root = self.uploads_dir.resolve()
        path = (root / key).resolve()
        if root not in path.parents or not key.startswith("temp/"):
            raise ValidationError("Invalid upload key")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return str(path)

    def extract_key(self, file_url: str) -> str | None:
        """file URL에서 storage key를 추출합니다. 이 스토어의 URL이 아니면 None."""
        prefix = self._public_prefix
        if file_url.startswith(prefix) and len(file_url) > len(prefix):
            return file_url[len(prefix):]
        return None

    def _temp_and_final_keys(self, file_url: str) -> tuple[str, str] | None:
        key = self.extract_key(file_url)
        if not key or not key.startswith("temp/"):
            return None
        return key, key[len("temp/"):]

    def _exists(self, key: str) -> bool:
        if self.is_local:
            return (self.uploads_dir / key).is_file()
        try:
            self.client.head_object(Bucket=settings.AWS_S3_BUCKET, Key=key)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            raise
        return True

    def finalize_upload(self, file_url: str) -> tuple[str, str | None]:
        """temp 파일을 최종 위치로 복사합니다. (최종 file_url, 새로 만든 최종 key)를 반환합니다.

        Copy only: the temp/ source stays in place until ``release_sources``
        runs after the issue row is committed, so a failed call can be retried
        with the same reference. If the source is already gone but the final
        object exists, the reference was finalized before and is returned as is.
        temp/ 경로가 아닌 파일은 그대로 반환합니다.
        """
        keys = self._temp_and_final_keys(file_url)
        if keys is None:
            return file_url, None
        key, final_key = keys
        final_url = self._public_prefix + final_key

        if self.is_local:
            src = self.uploads_dir / key
            dst = self.uploads_dir / final_key
            if not src.is_file() and dst.is_file():
                return final_url, None
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(src, dst)
            return final_url, final_key

        try:
            self.client.copy_object(
                Bucket=settings.AWS_S3_BUCKET,
                Key=final_key,
                CopySource={"Bucket": settings.AWS_S3_BUCKET, "Key": key},
            )
        except ClientError:
            if self._exists(final_key) and not self._exists(key):
                return final_url, None
            raise
        return final_url, final_key

    def _delete_keys(self, keys: list[str]) -> None:
        for key in keys:
            if self.is_local:
                (self.uploads_dir / key).unlink(missing_ok=True)
            else:
                self.client.delete_object(Bucket=settings.AWS_S3_BUCKET, Key=key)

    def _copy_all(self, file_urls: list[str]) -> FinalizedUploads:
        """전부 복사하거나 아무것도 남기지 않습니다 (All copies or none)."""
        batch = FinalizedUploads()
        try:
            for url in file_urls:
                final_url, created = self.finalize_upload(url)
                batch.urls.append(final_url)
                if created is not None:
                    batch.created.append(created)
                keys = self._temp_and_final_keys(url)
                if keys is not None:
                    batch.sources.append(keys[0])
        except Exception:
            self._delete_keys(batch.created)
            raise
        return batch

    def _discard_late_copies(self, task: asyncio.Future) -> None:
        # 시간 초과 후 완료된 복사본 정리 (Copies that finished after the caller gave up)
        if task.cancelled() or task.exception() is not None:
            return
        batch: FinalizedUploads = task.result()
        if batch.created:
            logger.warning("discarding %d image copies finished after timeout", len(batch.created))
            task.get_loop().run_in_executor(None, self._delete_keys, batch.created)

    async def finalize_many(self, file_urls: list[str]) -> FinalizedUploads:
        """업로드된 이미지들을 모두 확정합니다 — 하나라도 실패하면 전체 실패.

        Copy every reference to its final location, bounded by
        STORAGE_TIMEOUT_SECONDS. On failure the copies made so far are removed
        and the temp sources are untouched, so the same references can be
        retried. A copy still running when the timeout hits is removed once it
        finishes. On success the caller persists ``urls`` and then calls
        ``release_sources``, or ``discard`` if its own commit fails.

        Raises:
            ValidationError: 이 스토어의 URL이 아님 (Reference not issued by this store)
            DependencyError: 스토리지 실패/시간 초과 (Store failed or timed out)
        """
        for url in file_urls:
            if self.extract_key(url) is None:
                raise ValidationError(f"Image reference was not issued by this store: {url}")

        task = asyncio.ensure_future(asyncio.to_thread(self._copy_all, list(file_urls)))
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=settings.STORAGE_TIMEOUT_SECONDS)
        except asyncio.TimeoutError as exc:
            task.add_done_callback(self._discard_late_copies)
            logger.warning("storage finalize timed out for %d image(s)", len(file_urls))
            raise DependencyError("Object store timed out, please retry") from exc
        except (BotoCoreError, ClientError, OSError) as exc:
            logger.warning("storage finalize failed: %s", exc)
            raise DependencyError("Object store unavailable, please retry") from exc

    async def discard(self, batch: FinalizedUploads) -> None:
        """커밋 실패 시 새로 만든 최종 객체를 삭제합니다 (Undo copies after a failed commit)."""
        if not batch.created:
            return
        try:
            await asyncio.to_thread(self._delete_keys, batch.created)
        except (BotoCoreError, ClientError, OSError) as exc:
            logger.warning("could not discard %d image copies: %s", len(batch.created), exc)

    async def release_sources(self, batch: FinalizedUploads) -> None:
        """커밋 후 temp 원본을 삭제합니다 (Drop temp sources once the row is committed)."""
        if not batch.sources:
            return
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self._delete_keys, batch.sources),
                timeout=settings.STORAGE_TIMEOUT_SECONDS,
            )
        except (asyncio.TimeoutError, BotoCoreError, ClientError, OSError) as exc:
            logger.warning("temp uploads left in place: %s", exc)


storage_service: StorageService = StorageService()
