# app/features/story_generation/assets.py
import concurrent.futures
from typing import List, Optional, Sequence

from app.config import config
from app.lib import gcs_storage
from app.lib.errors import AssetError
from app.lib.imaging import DecodedImage, decode_image_data_url
from app.lib.outcome import Outcome
from app.logger import job_logger


def image_object_name(story_id: str, index: int, ext: str) -> str:
    return gcs_storage.story_object_name(story_id, f"{story_id}-{index}{ext}")


def _decode_all(images: Sequence[str], log) -> List[DecodedImage]:
    decoded: List[DecodedImage] = []
    for pos, candidate in enumerate(images, start=1):
        outcome = Outcome.attempt(decode_image_data_url, candidate, kind=AssetError)
        if not outcome.ok:
            log.warning(f"skipping image #{pos}: {outcome.error}")
            continue
        decoded.append(outcome.value)
    return decoded


def _upload_one(story_id: str, index: int, image: DecodedImage) -> str:
    info = gcs_storage.upload_bytes(
        image.data,
        object_name=image_object_name(story_id, index, image.ext),
        content_type=image.content_type,
    )
    return info["public_url"]


def ingest_images(story_id: str, images: Sequence[str]) -> List[str]:
    """
    Decode and upload the request's images, returning their public URLs in
    input order. Invalid images and failed uploads are skipped. When nothing
    survives, the placeholder URL is returned so later stages always have
    exactly one image to work with. Never raises.
    """
    log = job_logger(__name__, story_id)
    decoded = _decode_all(images[: config.max_images], log)

    results: List[Optional[str]] = [None] * len(decoded)
    if decoded:
        workers = max(1, min(config.max_workers, len(decoded)))
        with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as ex:
            fut_map = {
                ex.submit(Outcome.attempt, _upload_one, story_id, i + 1, img, kind=AssetError): i
                for i, img in enumerate(decoded)
            }
            for fut in concurrent.futures.as_completed(fut_map):
                i = fut_map[fut]
                outcome: Outcome[str] = fut.result()
                if outcome.ok:
                    results[i] = outcome.value
                else:
                    log.warning(f"upload of image {i + 1} failed: {outcome.error}")

    urls = [u for u in results if u]
    if not urls:
        log.info(f"no usable images out of {len(images)}; using placeholder")
        return [config.placeholder_image_url]
    log.info(f"ingested {len(urls)}/{len(images)} image(s)")
    return urls


def is_placeholder(url: str) -> bool:
    return url == config.placeholder_image_url
