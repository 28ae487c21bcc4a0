"""
Integration tests for the registry publish, alias and import map flows.
"""

import io
import json
import tarfile

import httpx
import pytest
import pytest_asyncio

from service_registry.app.main import RegistryService
from shared.config import get_config

SECRET = "test-signing-secret-0123456789abcdef"


def _tarball(files):
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        for pathname, content in files.items():
            data = content.encode("utf-8")
            info = tarfile.TarInfo(name=pathname)
            info.size = len(data)
            archive.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


class TestRegistryFlow:
    """Integration tests for complete registry flows against the memory engine."""

    @pytest.fixture
    def service(self):
        return RegistryService(get_config(
            jwt_secret=SECRET,
            basic_auth_key="test-key",
            organization_name="acme",
        ))

    @pytest_asyncio.fixture
    async def client(self, service):
        transport = httpx.ASGITransport(app=service.app)
        async with httpx.AsyncClient(transport=transport, base_url="http://localhost") as client:
            yield client

    @pytest_asyncio.fixture
    async def auth_headers(self, client):
        response = await client.post("/auth/login", data={"key": "test-key"})
        assert response.status_code == 200
        return {"Authorization": f"Bearer {response.json()['token']}"}

    @pytest.mark.asyncio
    async def test_package_publish_and_alias_flow(self, client, auth_headers):
        """Publish two versions, alias the first, then move and delete the alias."""
        # 1. Publish from a tarball
        published = await client.put(
            "/pkg/@cuz/fuzz/8.4.1",
            files={"filedata": ("fuzz.tgz", _tarball({"main/index.js": "export const v = 1;"}))},
            headers=auth_headers,
        )
        assert published.status_code == 303
        assert published.headers["location"] == "/pkg/@cuz/fuzz/8.4.1"

        # 2. Publish from a JSON file map
        published = await client.put(
            "/pkg/@cuz/fuzz/8.5.0",
            json={"files": {"main/index.js": "export const v = 2;"}},
            headers=auth_headers,
        )
        assert published.status_code == 303

        # 3. Versions are listed in semantic order
        listing = await client.get("/pkg/@cuz/fuzz")
        assert listing.status_code == 200
        assert [v["version"] for v in listing.json()["versions"]] == ["8.4.1", "8.5.0"]
        assert listing.json()["org"] == "acme"

        # 4. File content is immutable
        content = await client.get("/pkg/@cuz/fuzz/8.4.1/main/index.js")
        assert content.status_code == 200
        assert content.text == "export const v = 1;"
        assert content.headers["cache-control"] == "public, max-age=31536000, immutable"
        assert content.headers["etag"]

        # 5. Overview lists the files
        overview = await client.get("/pkg/@cuz/fuzz/8.4.1")
        assert overview.json()["files"][0]["pathname"] == "main/index.js"
        assert overview.json()["author"] == "admin"

        # 6. Create an alias
        created = await client.post("/pkg/@cuz/fuzz/v8", json={"version": "8.4.1"}, headers=auth_headers)
        assert created.status_code == 303
        assert created.headers["location"] == "/pkg/@cuz/fuzz/v8"

        # 7. Alias redirects, with and without a sub-path
        alias = await client.get("/pkg/@cuz/fuzz/v8")
        assert alias.status_code == 302
        assert alias.headers["location"] == "/pkg/@cuz/fuzz/8.4.1"
        assert alias.headers["cache-control"] == "no-cache"

        alias_content = await client.get("/pkg/@cuz/fuzz/v8/main/index.js")
        assert alias_content.status_code == 302
        assert alias_content.headers["location"] == "/pkg/@cuz/fuzz/8.4.1/main/index.js"

        # 8. Move the alias
        moved = await client.put("/pkg/@cuz/fuzz/v8", data={"version": "8.5.0"}, headers=auth_headers)
        assert moved.status_code == 303
        alias = await client.get("/pkg/@cuz/fuzz/v8")
        assert alias.headers["location"] == "/pkg/@cuz/fuzz/8.5.0"

        # 9. Delete the alias
        deleted = await client.delete("/pkg/@cuz/fuzz/v8", headers=auth_headers)
        assert deleted.status_code == 200
        assert deleted.json() == {"name": "@cuz/fuzz", "type": "pkg", "alias": "8", "version": "8.5.0"}

        gone = await client.get("/pkg/@cuz/fuzz/v8")
        assert gone.status_code == 404

    @pytest.mark.asyncio
    async def test_conflicts_and_missing_resources(self, client, auth_headers):
        body = {"files": {"index.js": "1"}}
        first = await client.put("/npm/fuzz/1.0.0", json=body, headers=auth_headers)
        second = await client.put("/npm/fuzz/1.0.0", json=body, headers=auth_headers)
        assert first.status_code == 303
        assert second.status_code == 409

        missing_file = await client.get("/npm/fuzz/1.0.0/nope.js")
        assert missing_file.status_code == 404

        missing_version = await client.get("/npm/fuzz/2.0.0")
        assert missing_version.status_code == 404

        alias_to_missing = await client.post("/npm/fuzz/v2", json={"version": "2.0.0"}, headers=auth_headers)
        assert alias_to_missing.status_code == 404

        bad_version = await client.post("/npm/fuzz/v1", json={"version": "latest"}, headers=auth_headers)
        assert bad_version.status_code == 400

        move_missing = await client.put("/npm/fuzz/v1", json={"version": "1.0.0"}, headers=auth_headers)
        assert move_missing.status_code == 404

        created = await client.post("/npm/fuzz/v1", json={"version": "1.0.0"}, headers=auth_headers)
        duplicate = await client.post("/npm/fuzz/v1", json={"version": "1.0.0"}, headers=auth_headers)
        assert created.status_code == 303
        assert duplicate.status_code == 409

    @pytest.mark.asyncio
    async def test_kinds_are_isolated(self, client, auth_headers):
        await client.put("/pkg/fuzz/1.0.0", json={"files": {"index.js": "1"}}, headers=auth_headers)

        assert (await client.get("/pkg/fuzz")).status_code == 200
        assert (await client.get("/npm/fuzz")).status_code == 404

    @pytest.mark.asyncio
    async def test_import_map_flow(self, client, auth_headers):
        document = {"imports": {"fuzz": "/pkg/fuzz/8.4.1/index.js"}}

        published = await client.put("/map/buzz/4.2.2", json=document, headers=auth_headers)
        assert published.status_code == 303
        assert published.headers["location"] == "/map/buzz/4.2.2"

        fetched = await client.get("/map/buzz/4.2.2")
        assert fetched.status_code == 200
        assert json.loads(fetched.content) == document
        assert fetched.headers["content-type"].startswith("application/json")

        uploaded = await client.put(
            "/map/buzz/4.2.3",
            files={"map": ("map.json", json.dumps(document).encode("utf-8"))},
            headers=auth_headers,
        )
        assert uploaded.status_code == 303

        invalid = await client.put("/map/buzz/4.2.4", json={"imports": []}, headers=auth_headers)
        assert invalid.status_code == 400

        await client.post("/map/buzz/v4", json={"version": "4.2.3"}, headers=auth_headers)
        alias = await client.get("/map/buzz/v4")
        assert alias.status_code == 302
        assert alias.headers["location"] == "/map/buzz/4.2.3"

        versions = await client.get("/map/buzz")
        assert [v["version"] for v in versions.json()["versions"]] == ["4.2.2", "4.2.3"]

    @pytest.mark.asyncio
    async def test_mutations_require_token(self, client):
        attempts = [
            client.put("/pkg/fuzz/1.0.0", json={"files": {"a.js": "1"}}),
            client.put("/map/buzz/1.0.0", json={"imports": {}}),
            client.post("/pkg/fuzz/v1", json={"version": "1.0.0"}),
            client.put("/pkg/fuzz/v1", json={"version": "1.0.0"}),
            client.delete("/pkg/fuzz/v1"),
        ]
        for attempt in attempts:
            response = await attempt
            assert response.status_code == 401

        assert (await client.get("/pkg/fuzz")).status_code == 404

    @pytest.mark.asyncio
    async def test_unsupported_shapes_are_malformed(self, client, auth_headers):
        assert (await client.get("/map/buzz/1.0.0/extra.json")).status_code == 400
        assert (await client.delete("/pkg/fuzz/1.0.0", headers=auth_headers)).status_code == 400
        assert (await client.get("/pkg/@cuz")).status_code == 400

    @pytest.mark.asyncio
    async def test_damaged_archives_are_rejected(self, client, auth_headers):
        archive = _tarball({"index.js": "export default 1;" * 200})

        for damaged in (archive[:-30], b"\x1f\x8b" + b"\x00" * 40, b"not a tarball"):
            response = await client.put(
                "/pkg/fuzz/1.0.0",
                files={"filedata": ("fuzz.tgz", damaged)},
                headers=auth_headers,
            )
            assert response.status_code == 400
            assert response.json()["code"] == "HANDLER_ERROR"

        assert (await client.get("/pkg/fuzz")).status_code == 404
