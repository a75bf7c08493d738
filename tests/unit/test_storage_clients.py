"""Unit tests for the Supabase and Airtable clients against a local HTTP server."""

import asyncio

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from introcam.errors import StorageError
from introcam.storage.object_store import SignedUpload, SupabaseStorage
from introcam.storage.records import AirtableRecordStore

SERVICE_KEY = "service-key"


def make_supabase_app(state):
    def authorized(request):
        return (request.headers.get("apikey") == SERVICE_KEY
                and request.headers.get("Authorization") == f"Bearer {SERVICE_KEY}")

    async def sign(request):
        if not authorized(request):
            return web.json_response({"error": "unauthorized"}, status=401)
        if state.get("sign_status"):
            return web.json_response({"error": "bucket not found"}, status=state["sign_status"])
        bucket, name = request.match_info["bucket"], request.match_info["name"]
        return web.json_response({"url": f"/object/upload/sign/{bucket}/{name}?token=tok-1"})

    async def put(request):
        if request.query.get("token") != "tok-1":
            return web.json_response({"error": "bad token"}, status=403)
        body = await request.read()
        state["uploads"][request.match_info["name"]] = (body, request.headers.get("Content-Type"))
        if state.get("put_status"):
            return web.json_response({"error": "too large"}, status=state["put_status"])
        return web.json_response({"Key": f"video/{request.match_info['name']}"})

    async def delete(request):
        if not authorized(request):
            return web.json_response({"error": "unauthorized"}, status=401)
        state["deleted"].extend((await request.json())["prefixes"])
        return web.json_response([])

    app = web.Application()
    app.router.add_post("/storage/v1/object/upload/sign/{bucket}/{name}", sign)
    app.router.add_put("/storage/v1/object/upload/sign/{bucket}/{name}", put)
    app.router.add_delete("/storage/v1/object/{bucket}", delete)
    return app


def make_airtable_app(state):
    async def patch(request):
        if request.headers.get("Authorization") != "Bearer at-key":
            return web.json_response({"error": "AUTHENTICATION_REQUIRED"}, status=401)
        if request.match_info["record"] == "missing":
            return web.json_response({"error": "NOT_FOUND"}, status=404)
        payload = await request.json()
        state["patches"].append((request.match_info["base"], request.match_info["table"],
                                 request.match_info["record"], payload))
        return web.json_response({"id": request.match_info["record"], "fields": payload["fields"]})

    app = web.Application()
    app.router.add_patch("/v0/{base}/{table}/{record}", patch)
    return app


@pytest.fixture
def supabase_state():
    return {"uploads": {}, "deleted": []}


def run_with_supabase(state, scenario):
    async def runner():
        async with TestServer(make_supabase_app(state)) as server:
            storage = SupabaseStorage(str(server.make_url("/")), SERVICE_KEY, chunk_size=1024)
            return await scenario(storage)
    return asyncio.run(runner())


@pytest.mark.unit
class TestSupabaseStorage:

    def test_signed_upload_round_trip(self, supabase_state):
        progress = []
        data = b"\x1a\x45\xdf\xa3" + b"z" * 5000

        async def scenario(storage):
            signed = await storage.create_signed_upload_url("video-rec1-1.webm")
            await storage.upload_to_signed_url(signed, data, "video/webm",
                                               on_progress=lambda sent, total: progress.append((sent, total)))
            return signed

        signed = run_with_supabase(supabase_state, scenario)

        assert signed.token == "tok-1"
        assert signed.path == "video-rec1-1.webm"
        assert "/storage/v1/object/upload/sign/video/video-rec1-1.webm" in signed.signed_url
        assert supabase_state["uploads"]["video-rec1-1.webm"] == (data, "video/webm")
        assert progress[-1] == (len(data), len(data))
        assert [sent for sent, _ in progress] == sorted(sent for sent, _ in progress)
        assert len(progress) == 5

    def test_sign_error_raises(self, supabase_state):
        supabase_state["sign_status"] = 400

        async def scenario(storage):
            await storage.create_signed_upload_url("x.webm")

        with pytest.raises(StorageError) as exc_info:
            run_with_supabase(supabase_state, scenario)
        assert exc_info.value.status == 400
        assert "bucket not found" in str(exc_info.value)

    def test_upload_error_raises(self, supabase_state):
        supabase_state["put_status"] = 413

        async def scenario(storage):
            signed = await storage.create_signed_upload_url("big.webm")
            await storage.upload_to_signed_url(signed, b"a" * 10, "video/webm")

        with pytest.raises(StorageError) as exc_info:
            run_with_supabase(supabase_state, scenario)
        assert exc_info.value.status == 413

    def test_remove(self, supabase_state):
        async def scenario(storage):
            await storage.remove(["a.webm", "b.webm"])

        run_with_supabase(supabase_state, scenario)
        assert supabase_state["deleted"] == ["a.webm", "b.webm"]

    def test_public_url(self):
        storage = SupabaseStorage("https://proj.supabase.co/", SERVICE_KEY, bucket="video")
        assert storage.get_public_url("video-r-1.webm") == \
            "https://proj.supabase.co/storage/v1/object/public/video/video-r-1.webm"

    def test_unreachable_host_raises(self):
        storage = SupabaseStorage("http://127.0.0.1:1", SERVICE_KEY)
        signed = SignedUpload(signed_url="http://127.0.0.1:1/storage/v1/object/upload/sign/video/a?token=t",
                              path="a")
        with pytest.raises(Exception):
            asyncio.run(storage.upload_to_signed_url(signed, b"abc", "video/webm"))


@pytest.mark.unit
class TestAirtableRecordStore:

    def run(self, state, scenario):
        async def runner():
            async with TestServer(make_airtable_app(state)) as server:
                store = AirtableRecordStore("at-key", "appBase", "SFF Candidate Database",
                                            api_url=str(server.make_url("/v0")))
                return await scenario(store)
        return asyncio.run(runner())

    def test_update_record(self):
        state = {"patches": []}
        fields = {"Video Instruction": [{"url": "https://cdn/video.webm"}]}

        result = self.run(state, lambda store: store.update_record("recXYZ", fields))

        assert result == {"id": "recXYZ", "fields": fields}
        assert state["patches"] == [("appBase", "SFF Candidate Database", "recXYZ", {"fields": fields})]

    def test_update_missing_record_raises(self):
        state = {"patches": []}

        with pytest.raises(StorageError) as exc_info:
            self.run(state, lambda store: store.update_record("missing", {"a": 1}))
        assert exc_info.value.status == 404
