"""
In-memory registry engine.

Organization-scoped storage for package files, import maps and aliases.
Uploads are lost on restart; it backs local development and the test suite.
Production deployments inject their own RegistryEngine.
"""

import hashlib
import io
import json
import mimetypes
import posixpath
import tarfile
import time
import zlib
from abc import abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from fastapi import Request

from shared.errors import RegistryHandlerError
from shared.logging import get_logger
from ..routing.params import CanonicalRequestParams, is_version
from ..tenancy import OrganizationMapping
from .base import HandlerResponse, RegistryEngine, RegistryHandler

IMMUTABLE = "public, max-age=31536000, immutable"
NO_CACHE = "no-cache"
NO_STORE = "no-store"
MAP_FILE = "import-map.json"


@dataclass
class StoredRelease:
    """One published version of a package or import map."""
    files: Dict[str, bytes]
    integrity: str
    created: float = field(default_factory=time.time)
    author: Optional[str] = None


Key = Tuple[str, str, str]


class MemorySink:
    """Dict-backed storage keyed by (organization, kind, full name)."""

    def __init__(self):
        self.releases: Dict[Key, Dict[str, StoredRelease]] = {}
        self.aliases: Dict[Key, Dict[str, str]] = {}

    @staticmethod
    def key(organization: str, params: CanonicalRequestParams) -> Key:
        return (organization, params.kind, params.full_name)

    def get_release(self, key: Key, version: str) -> Optional[StoredRelease]:
        return self.releases.get(key, {}).get(version)

    def put_release(self, key: Key, version: str, release: StoredRelease) -> bool:
        versions = self.releases.setdefault(key, {})
        if version in versions:
            return False
        versions[version] = release
        return True

    def list_versions(self, key: Key) -> List[Tuple[str, StoredRelease]]:
        versions = self.releases.get(key, {})
        return sorted(versions.items(), key=lambda item: _version_key(item[0]))

    def get_alias(self, key: Key, alias: str) -> Optional[str]:
        return self.aliases.get(key, {}).get(alias)

    def set_alias(self, key: Key, alias: str, version: str):
        self.aliases.setdefault(key, {})[alias] = version

    def delete_alias(self, key: Key, alias: str) -> Optional[str]:
        return self.aliases.get(key, {}).pop(alias, None)


def _version_key(version: str) -> Tuple[int, int, int, int, str]:
    core = version.split("+", 1)[0]
    core, _, prerelease = core.partition("-")
    major, minor, patch = (int(part) for part in core.split("."))
    # Releases sort after their prereleases
    return (major, minor, patch, 0 if prerelease else 1, prerelease)


def _integrity(data: bytes) -> str:
    return "sha256-" + hashlib.sha256(data).hexdigest()


def _etag(data: bytes) -> str:
    return f'"{hashlib.sha256(data).hexdigest()[:32]}"'


async def _iterate(data: bytes) -> AsyncIterator[bytes]:
    yield data


def _bytes_response(data: bytes, mime_type: str, cache_control: str) -> HandlerResponse:
    return HandlerResponse(
        status_code=200,
        mime_type=mime_type,
        cache_control=cache_control,
        etag=_etag(data),
        stream=_iterate(data),
    )


def _json_response(payload: Dict[str, Any], cache_control: str = NO_CACHE) -> HandlerResponse:
    data = json.dumps(payload, sort_keys=True).encode("utf-8")
    return _bytes_response(data, "application/json", cache_control)


def _clean_path(pathname: str) -> Optional[str]:
    cleaned = posixpath.normpath(pathname.lstrip("/"))
    if cleaned in (".", "") or cleaned.startswith(".."):
        return None
    return cleaned


def _extract_archive(data: bytes) -> Dict[str, bytes]:
    files: Dict[str, bytes] = {}
    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:*") as archive:
            for member in archive.getmembers():
                if not member.isfile():
                    continue
                pathname = _clean_path(member.name)
                handle = archive.extractfile(member)
                if pathname is None or handle is None:
                    continue
                files[pathname] = handle.read()
    except (tarfile.TarError, EOFError, OSError, zlib.error) as exc:
        # Truncated or corrupt compressed streams surface as EOFError or OSError
        raise RegistryHandlerError(400, "Uploaded archive could not be read") from exc
    return files


async def _read_fields(request: Request) -> Dict[str, Any]:
    """Read a JSON object or form body into a plain dict."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            payload = await request.json()
        except ValueError as exc:
            raise RegistryHandlerError(400, "Request body is not valid JSON") from exc
        if not isinstance(payload, dict):
            raise RegistryHandlerError(400, "Request body must be a JSON object")
        return payload

    form = await request.form()
    return {key: value for key, value in form.items()}


async def _read_upload(value: Any) -> bytes:
    if hasattr(value, "read"):
        return await value.read()
    if isinstance(value, str):
        return value.encode("utf-8")
    raise RegistryHandlerError(400, "Upload field has an unsupported type")


class MemoryHandler(RegistryHandler):
    """Base for handlers backed by a MemorySink."""

    def __init__(self, name: str, sink: MemorySink, default_organization: str):
        super().__init__(name)
        self.sink = sink
        self.default_organization = default_organization
        self.logger = get_logger(f"registry.engine.{name}")

    async def handle(
        self,
        request: Request,
        params: CanonicalRequestParams,
        organizations: OrganizationMapping,
        user: Optional[Dict[str, Any]] = None,
    ) -> HandlerResponse:
        start_time = time.time()
        organization = None
        try:
            organization = self.resolve_organization(request, organizations, self.default_organization)
            response = await self._handle(request, params, organization, user)
        except Exception:
            self.record(params.kind, "failure", start_time, organization)
            raise
        self.record(params.kind, "success", start_time, organization)
        return response

    @abstractmethod
    async def _handle(self, request: Request, params: CanonicalRequestParams,
                      organization: str, user: Optional[Dict[str, Any]]) -> HandlerResponse:
        """Run the operation for an already resolved organization."""

    def _require_release(self, organization: str, params: CanonicalRequestParams,
                         version: str) -> StoredRelease:
        release = self.sink.get_release(self.sink.key(organization, params), version)
        if release is None:
            raise RegistryHandlerError(404, f"{params.full_name}@{version} not found")
        return release


class VersionsGet(MemoryHandler):
    """List published versions of a package or import map."""

    async def _handle(self, request, params, organization, user):
        versions = self.sink.list_versions(self.sink.key(organization, params))
        if not versions:
            raise RegistryHandlerError(404, f"{params.full_name} not found")
        return _json_response({
            "name": params.full_name,
            "type": params.kind,
            "org": organization,
            "versions": [
                {"version": version, "integrity": release.integrity}
                for version, release in versions
            ],
        })


class PkgLog(MemoryHandler):
    """Overview of the files in one package version."""

    async def _handle(self, request, params, organization, user):
        release = self._require_release(organization, params, params.version)
        return _json_response({
            "name": params.full_name,
            "version": params.version,
            "type": params.kind,
            "org": organization,
            "integrity": release.integrity,
            "created": release.created,
            "author": release.author,
            "files": [
                {"pathname": pathname, "size": len(data), "integrity": _integrity(data)}
                for pathname, data in sorted(release.files.items())
            ],
        })


class PkgGet(MemoryHandler):
    """Serve one file out of a package version."""

    async def _handle(self, request, params, organization, user):
        release = self._require_release(organization, params, params.version)
        data = release.files.get(params.extras or "")
        if data is None:
            raise RegistryHandlerError(404, f"File {params.extras} not found")
        mime_type = mimetypes.guess_type(params.extras)[0] or "application/octet-stream"
        return _bytes_response(data, mime_type, IMMUTABLE)


class PkgPut(MemoryHandler):
    """Publish a package version from a tar archive or a JSON file map."""

    async def _handle(self, request, params, organization, user):
        fields = await _read_fields(request)
        if "filedata" in fields:
            files = _extract_archive(await _read_upload(fields["filedata"]))
        elif isinstance(fields.get("files"), dict):
            files = {}
            for pathname, content in fields["files"].items():
                cleaned = _clean_path(str(pathname))
                if cleaned is not None:
                    files[cleaned] = str(content).encode("utf-8")
        else:
            raise RegistryHandlerError(400, "Upload must contain a 'filedata' archive or a 'files' object")

        if not files:
            raise RegistryHandlerError(400, "Upload contains no files")

        digest = hashlib.sha256()
        for pathname, data in sorted(files.items()):
            digest.update(pathname.encode("utf-8"))
            digest.update(data)
        release = StoredRelease(
            files=files,
            integrity="sha256-" + digest.hexdigest(),
            author=(user or {}).get("name"),
        )

        if not self.sink.put_release(self.sink.key(organization, params), params.version, release):
            raise RegistryHandlerError(409, f"{params.full_name}@{params.version} already exists")

        self.logger.info("Package published", name=params.full_name, version=params.version,
                         kind=params.kind, files=len(files))
        return HandlerResponse(status_code=303, cache_control=NO_STORE, location=params.to_path())


class MapGet(MemoryHandler):
    """Serve an import map version."""

    async def _handle(self, request, params, organization, user):
        release = self._require_release(organization, params, params.version)
        return _bytes_response(release.files[MAP_FILE], "application/json", IMMUTABLE)


class MapPut(MemoryHandler):
    """Publish an import map version."""

    async def _handle(self, request, params, organization, user):
        content_type = request.headers.get("content-type", "")
        if content_type.startswith("application/json"):
            raw = await request.body()
        else:
            fields = await _read_fields(request)
            if "map" not in fields:
                raise RegistryHandlerError(400, "Upload must contain a 'map' file")
            raw = await _read_upload(fields["map"])

        try:
            document = json.loads(raw)
        except ValueError as exc:
            raise RegistryHandlerError(400, "Import map is not valid JSON") from exc
        if not isinstance(document, dict) or not isinstance(document.get("imports", {}), dict):
            raise RegistryHandlerError(400, "Import map must be an object with an 'imports' object")

        data = json.dumps(document, sort_keys=True).encode("utf-8")
        release = StoredRelease(
            files={MAP_FILE: data},
            integrity=_integrity(data),
            author=(user or {}).get("name"),
        )
        if not self.sink.put_release(self.sink.key(organization, params), params.version, release):
            raise RegistryHandlerError(409, f"{params.full_name}@{params.version} already exists")

        self.logger.info("Import map published", name=params.full_name, version=params.version)
        return HandlerResponse(status_code=303, cache_control=NO_STORE, location=params.to_path())


class AliasGet(MemoryHandler):
    """Redirect an alias, and any sub-path, to the concrete version."""

    async def _handle(self, request, params, organization, user):
        version = self.sink.get_alias(self.sink.key(organization, params), params.alias)
        if version is None:
            raise RegistryHandlerError(404, f"Alias v{params.alias} of {params.full_name} not found")
        target = CanonicalRequestParams(
            kind=params.kind,
            name=params.name,
            scope=params.scope,
            version=version,
            extras=params.extras,
        )
        return HandlerResponse(status_code=302, cache_control=NO_CACHE, location=target.to_path())


class _AliasWrite(MemoryHandler):
    must_exist: Optional[bool] = None

    async def _handle(self, request, params, organization, user):
        fields = await _read_fields(request)
        version = fields.get("version")
        if not isinstance(version, str) or not is_version(version):
            raise RegistryHandlerError(400, "Field 'version' must be a semantic version")

        key = self.sink.key(organization, params)
        self._require_release(organization, params, version)

        exists = self.sink.get_alias(key, params.alias) is not None
        if self.must_exist and not exists:
            raise RegistryHandlerError(404, f"Alias v{params.alias} of {params.full_name} not found")
        if self.must_exist is False and exists:
            raise RegistryHandlerError(409, f"Alias v{params.alias} of {params.full_name} already exists")

        self.sink.set_alias(key, params.alias, version)
        self.logger.info("Alias set", name=params.full_name, alias=params.alias, version=version)
        return HandlerResponse(status_code=303, cache_control=NO_STORE, location=params.to_path())


class AliasPost(_AliasWrite):
    """Create an alias."""
    must_exist = False


class AliasPut(_AliasWrite):
    """Move an existing alias to another version."""
    must_exist = True


class AliasDel(MemoryHandler):
    """Delete an alias."""

    async def _handle(self, request, params, organization, user):
        version = self.sink.delete_alias(self.sink.key(organization, params), params.alias)
        if version is None:
            raise RegistryHandlerError(404, f"Alias v{params.alias} of {params.full_name} not found")
        self.logger.info("Alias deleted", name=params.full_name, alias=params.alias)
        return HandlerResponse(
            status_code=200,
            cache_control=NO_STORE,
            body={"name": params.full_name, "type": params.kind, "alias": params.alias, "version": version},
        )


def create_memory_engine(default_organization: str, sink: Optional[MemorySink] = None) -> RegistryEngine:
    """Build a RegistryEngine whose handlers share one MemorySink."""
    sink = sink or MemorySink()
    return RegistryEngine(
        versions_get=VersionsGet("versions_get", sink, default_organization),
        pkg_log=PkgLog("pkg_log", sink, default_organization),
        pkg_get=PkgGet("pkg_get", sink, default_organization),
        pkg_put=PkgPut("pkg_put", sink, default_organization),
        map_get=MapGet("map_get", sink, default_organization),
        map_put=MapPut("map_put", sink, default_organization),
        alias_get=AliasGet("alias_get", sink, default_organization),
        alias_put=AliasPut("alias_put", sink, default_organization),
        alias_post=AliasPost("alias_post", sink, default_organization),
        alias_del=AliasDel("alias_del", sink, default_organization),
    )
