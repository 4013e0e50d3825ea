"""Tests for the filesystem object store."""

import hashlib
import tracemalloc

import pytest

from arvault.lib.storage import (
    InvalidPartError,
    LocalObjectStore,
    NoSuchKeyError,
    NoSuchUploadError,
    ObjectStore,
    ObjectStoreError,
    UploadedPart,
)


def test_satisfies_protocol(store):
    assert isinstance(store, ObjectStore)


class TestObjects:
    async def test_put_stream_head(self, store, read_object):
        info = await store.put("model/a.glb", b"glTF", "model/gltf-binary", {"owner-id": "u1"})

        assert info.size == 4
        assert info.etag == hashlib.md5(b"glTF").hexdigest()

        assert await read_object("model/a.glb") == b"glTF"
        head = await store.head("model/a.glb")
        assert head.content_type == "model/gltf-binary"
        assert head.metadata == {"owner-id": "u1"}

    async def test_stream_yields_bounded_chunks(self, store):
        await store.put("model/a.glb", b"x" * 10, "model/gltf-binary")

        chunks = [chunk async for chunk in store.stream("model/a.glb", chunk_size=4)]

        assert chunks == [b"xxxx", b"xxxx", b"xx"]

    async def test_missing_object(self, store):
        assert await store.head("model/missing.glb") is None
        with pytest.raises(NoSuchKeyError):
            async for _ in store.stream("model/missing.glb"):
                pass

    async def test_delete_is_idempotent(self, store):
        await store.put("image/a.png", b"png", "image/png")
        await store.delete("image/a.png")
        await store.delete("image/a.png")
        assert await store.head("image/a.png") is None

    async def test_list_objects_by_prefix(self, store):
        await store.put("model/a.glb", b"a", "model/gltf-binary")
        await store.put("image/b.png", b"b", "image/png")

        keys = [info.key async for info in store.list_objects("model/")]

        assert keys == ["model/a.glb"]

    @pytest.mark.parametrize("key", ["../escape", "/abs/path", "model/../../x", ""])
    async def test_rejects_unsafe_keys(self, store, key):
        with pytest.raises(ObjectStoreError):
            await store.put(key, b"x", "text/plain")


class TestMultipart:
    async def test_parts_uploaded_out_of_order(self, store, read_object):
        key = "model/big.glb"
        upload_id = await store.create_multipart_upload(key, "model/gltf-binary")
        chunks = {1: b"aaa", 2: b"bbb", 3: b"ccc"}
        etags = {}
        for number in (2, 1, 3):
            etags[number] = await store.upload_part(key, upload_id, number, chunks[number])

        info = await store.complete_multipart_upload(
            key, upload_id, [UploadedPart(n, etags[n]) for n in (1, 2, 3)]
        )

        assert info.size == 9
        assert info.etag.endswith("-3")
        assert await read_object(key) == b"aaabbbccc"

    async def test_assembly_memory_stays_below_object_size(self, store, read_object):
        key = "model/huge.glb"
        part_size = 4 * 1024 * 1024
        upload_id = await store.create_multipart_upload(key, "model/gltf-binary")
        parts = []
        for number, fill in enumerate(b"abcd", start=1):
            etag = await store.upload_part(key, upload_id, number, bytes([fill]) * part_size)
            parts.append(UploadedPart(number, etag))

        tracemalloc.start()
        try:
            info = await store.complete_multipart_upload(key, upload_id, parts)
            _, peak = tracemalloc.get_traced_memory()
        finally:
            tracemalloc.stop()

        assert info.size == 4 * part_size
        assert peak < 2 * part_size
        body = await read_object(key)
        assert body[:1] == b"a" and body[-1:] == b"d"
        assert len(body) == info.size

    async def test_upload_part_etag_is_quoted_md5(self, store):
        upload_id = await store.create_multipart_upload("model/a.glb", "model/gltf-binary")
        etag = await store.upload_part("model/a.glb", upload_id, 1, b"data")
        assert etag == f'"{hashlib.md5(b"data").hexdigest()}"'

    async def test_etag_mismatch_rejected(self, store):
        upload_id = await store.create_multipart_upload("model/a.glb", "model/gltf-binary")
        await store.upload_part("model/a.glb", upload_id, 1, b"data")

        with pytest.raises(InvalidPartError):
            await store.complete_multipart_upload(
                "model/a.glb", upload_id, [UploadedPart(1, '"deadbeef"')]
            )
        assert await store.head("model/a.glb") is None

    async def test_missing_part_rejected(self, store):
        upload_id = await store.create_multipart_upload("model/a.glb", "model/gltf-binary")
        with pytest.raises(InvalidPartError):
            await store.complete_multipart_upload(
                "model/a.glb", upload_id, [UploadedPart(1, '"abc"')]
            )

    async def test_manifest_metadata_carried_to_object(self, store):
        key = "model/a.glb"
        upload_id = await store.create_multipart_upload(
            key, "model/gltf-binary", {"original-name": '"a.glb"'}
        )
        etag = await store.upload_part(key, upload_id, 1, b"x")
        await store.complete_multipart_upload(key, upload_id, [UploadedPart(1, etag)])

        info = await store.head(key)
        assert info.metadata == {"original-name": '"a.glb"'}
        assert info.content_type == "model/gltf-binary"

    async def test_completed_upload_is_gone(self, store):
        key = "model/a.glb"
        upload_id = await store.create_multipart_upload(key, "model/gltf-binary")
        etag = await store.upload_part(key, upload_id, 1, b"x")
        await store.complete_multipart_upload(key, upload_id, [UploadedPart(1, etag)])

        with pytest.raises(NoSuchUploadError):
            await store.upload_part(key, upload_id, 2, b"y")
        assert [u async for u in store.list_multipart_uploads()] == []

    async def test_abort_discards_parts(self, store):
        key = "model/a.glb"
        upload_id = await store.create_multipart_upload(key, "model/gltf-binary")
        await store.upload_part(key, upload_id, 1, b"x")

        pending = [u async for u in store.list_multipart_uploads()]
        assert [(u.key, u.upload_id) for u in pending] == [(key, upload_id)]

        await store.abort_multipart_upload(key, upload_id)

        assert [u async for u in store.list_multipart_uploads()] == []
        with pytest.raises(NoSuchUploadError):
            await store.abort_multipart_upload(key, upload_id)

    async def test_upload_id_bound_to_key(self, store):
        upload_id = await store.create_multipart_upload("model/a.glb", "model/gltf-binary")
        with pytest.raises(NoSuchUploadError):
            await store.upload_part("model/b.glb", upload_id, 1, b"x")

    async def test_unknown_or_unsafe_upload_id(self, store):
        with pytest.raises(NoSuchUploadError):
            await store.upload_part("model/a.glb", "nope", 1, b"x")
        with pytest.raises(NoSuchUploadError):
            await store.upload_part("model/a.glb", "../../etc", 1, b"x")


async def test_fresh_store_lists_nothing(tmp_path):
    store = LocalObjectStore(tmp_path / "empty")
    assert [o async for o in store.list_objects()] == []
    assert [u async for u in store.list_multipart_uploads()] == []
