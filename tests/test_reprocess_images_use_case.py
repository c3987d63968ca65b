from __future__ import annotations

import io

from PIL import Image, ImageDraw

from sample_catalog.application.process_image_use_case import ProcessImageUseCase
from sample_catalog.application.reprocess_images_use_case import ReprocessImagesUseCase, reprocessed_key
from sample_catalog.domain.background_remover import BackgroundRemover
from sample_catalog.domain.image_store import ImageStore


class OutageRemover(BackgroundRemover):
    def remove(self, image_bytes: bytes) -> bytes | None:
        return None


class MemoryStore(ImageStore):
    def __init__(self, objects: dict[str, bytes]) -> None:
        self.objects = dict(objects)
        self.content_types: dict[str, str] = {}
        self.fail_delete = False

    def put_bytes(self, key: str, data: bytes, content_type: str) -> None:
        self.objects[key] = data
        self.content_types[key] = content_type

    def get_bytes(self, key: str) -> bytes:
        return self.objects[key]

    def delete_object(self, key: str) -> None:
        if self.fail_delete:
            raise RuntimeError('delete denied')
        del self.objects[key]

    def list_keys(self, prefix: str) -> list[str]:
        return sorted(key for key in self.objects if key.startswith(prefix))

    def public_url(self, key: str) -> str:
        return f'http://store/{key}'


def _photo() -> bytes:
    img = Image.new('RGB', (300, 300), 'white')
    ImageDraw.Draw(img).rectangle((100, 100, 199, 199), fill='purple')
    out = io.BytesIO()
    img.save(out, format='PNG')
    return out.getvalue()


def _use_case(store: MemoryStore) -> ReprocessImagesUseCase:
    return ReprocessImagesUseCase(ProcessImageUseCase(OutageRemover(), max_pixels=10_000_000), store)


def test_reprocessed_key_keeps_owner_and_upload_id() -> None:
    assert reprocessed_key('samples/u1/1700000000000.jpg', 42) == 'samples/u1/1700000000000-42-reprocessed.jpg'
    assert (
        reprocessed_key('samples/u1/1700000000000-41-reprocessed.jpg', 42)
        == 'samples/u1/1700000000000-42-reprocessed.jpg'
    )


def test_replaces_every_image() -> None:
    store = MemoryStore({'samples/a/1.jpg': _photo(), 'samples/b/2.jpg': _photo(), 'other/3.jpg': _photo()})

    report = _use_case(store).execute('samples/')

    assert report.total == 2
    assert report.processed == 2
    assert report.failed == 0
    assert 'samples/a/1.jpg' not in store.objects
    assert 'other/3.jpg' in store.objects
    for new_key in report.replaced.values():
        assert store.content_types[new_key] == 'image/jpeg'
        with Image.open(io.BytesIO(store.objects[new_key])) as img:
            assert img.size == (120, 120)


def test_broken_image_does_not_abort_batch() -> None:
    store = MemoryStore({'samples/a/1.jpg': b'corrupt', 'samples/a/2.jpg': _photo()})
    progress: list[tuple[int, int]] = []

    report = _use_case(store).execute('samples/', on_progress=lambda current, total, _: progress.append((current, total)))

    assert report.processed == 1
    assert report.failed == 1
    assert report.errors[0].startswith('samples/a/1.jpg: ')
    assert 'samples/a/1.jpg' in store.objects
    assert list(report.replaced) == ['samples/a/2.jpg']
    assert progress == [(1, 2), (2, 2)]


def test_delete_failure_still_counts_as_processed() -> None:
    store = MemoryStore({'samples/a/1.jpg': _photo()})
    store.fail_delete = True

    report = _use_case(store).execute('samples/')

    assert report.processed == 1
    assert 'samples/a/1.jpg' in store.objects
    assert report.as_dict()['replaced']['samples/a/1.jpg'] in store.objects


def test_empty_prefix_reports_nothing() -> None:
    report = _use_case(MemoryStore({})).execute('samples/')
    assert report.as_dict() == {'total': 0, 'processed': 0, 'failed': 0, 'errors': [], 'replaced': {}}


def test_mapping_is_published_after_each_item() -> None:
    store = MemoryStore({'samples/a/1.jpg': _photo(), 'samples/a/2.jpg': _photo()})
    seen: list[tuple[dict[str, str], bool]] = []

    def on_progress(current, total, report) -> None:
        seen.append((dict(report.replaced), 'samples/a/1.jpg' in store.objects))

    _use_case(store).execute('samples/', on_progress=on_progress)

    first_mapping, original_still_stored = seen[0]
    assert list(first_mapping) == ['samples/a/1.jpg']
    assert first_mapping['samples/a/1.jpg'] in store.objects
    assert original_still_stored is False
    assert len(seen[1][0]) == 2
