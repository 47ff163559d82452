"""Stage 6: one illustration per article.

Failures here never fail the job: the article gets the placeholder image
and is marked ``image_status="placeholder"``.
"""

import asyncio
import base64
import uuid
from pathlib import Path
from typing import Optional

import httpx
import structlog

from app.jobs.metrics import IMAGE_PLACEHOLDERS
from app.services.pipeline.types import ReportArticle

logger = structlog.get_logger(__name__)

OPENAI_IMAGES_URL = "https://api.openai.com/v1/images/generations"


class ImageStore:
    """Writes generated images under the public uploads directory."""

    def __init__(self, upload_dir: str, url_prefix: str = "/uploads"):
        self.upload_dir = Path(upload_dir)
        self.url_prefix = url_prefix.rstrip("/")

    async def save_bytes(self, data: bytes, prefix: str = "img") -> str:
        filename = f"{prefix}-{uuid.uuid4()}.png"
        path = self.upload_dir / filename

        def _write() -> None:
            self.upload_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(_write)
        return f"{self.url_prefix}/{filename}"

    async def save_base64(self, b64_data: str, prefix: str = "img") -> str:
        return await self.save_bytes(base64.b64decode(b64_data), prefix)

    async def save_remote(self, url: str, prefix: str = "img", timeout: int = 60) -> str:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.get(url)
            response.raise_for_status()
            return await self.save_bytes(response.content, prefix)


class ImageGenerator:
    """(article) -> image reference, or the placeholder."""

    def __init__(
        self,
        api_key: Optional[str],
        store: ImageStore,
        placeholder_url: str,
        model: str = "gpt-image-1",
        size: str = "1024x1024",
        timeout: int = 120,
        enabled: bool = True,
    ):
        self._api_key = api_key
        self._store = store
        self._placeholder_url = placeholder_url
        self._model = model
        self._size = size
        self._timeout = timeout
        self._enabled = enabled and bool(api_key)

    async def illustrate(self, articles: list[ReportArticle]) -> int:
        """Attach an image to each article in order. Returns placeholders used."""
        placeholders = 0
        for article in articles:
            ref = await self.generate(article)
            if ref is None:
                article.image_url = self._placeholder_url
                article.image_status = "placeholder"
                placeholders += 1
                IMAGE_PLACEHOLDERS.inc()
            else:
                article.image_url = ref
                article.image_status = "generated"
        return placeholders

    async def generate(self, article: ReportArticle) -> Optional[str]:
        if not self._enabled:
            return None
        prompt = (
            f"Editorial illustration for a business news article: {article.image_alt}. "
            "No text, no logos."
        )
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    OPENAI_IMAGES_URL,
                    headers={
                        "Authorization": f"Bearer {self._api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "model": self._model,
                        "prompt": prompt,
                        "size": self._size,
                        "n": 1,
                    },
                )
                response.raise_for_status()
                data = response.json().get("data") or []
            if not data:
                raise ValueError("Image API returned no data")

            item = data[0]
            if item.get("b64_json"):
                return await self._store.save_base64(item["b64_json"], prefix="article")
            if item.get("url"):
                return await self._store.save_remote(item["url"], prefix="article")
            raise ValueError("Image API returned neither b64_json nor url")
        except (httpx.HTTPError, ValueError, OSError) as e:
            logger.warning(
                "Image generation failed, using placeholder",
                article_id=article.id,
                error=str(e),
            )
            return None
