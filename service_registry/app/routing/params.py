"""
Canonical request parameters derived from the raw request path.

Route patterns alone cannot tell a scoped name's embedded slash from a path
boundary, nor a pinned version from an alias token, so every route parses
the raw request target here with one grammar:

    path      := "/" kind "/" [ "@" scope "/" ] name [ "/" ref [ "/" extras ] ]
    kind      := "pkg" | "npm" | "map"
    ref       := version | alias
    version   := N "." N "." N [ "-" pre ] [ "+" build ]
    alias     := "v" N [ "." N ]
    N         := "0" | [1-9][0-9]*

Anything else in the ref position is rejected rather than guessed.
"""

import re
from dataclasses import dataclass
from typing import Optional, Tuple
from urllib.parse import quote, unquote

from shared.errors import MalformedPathError

KINDS = ("pkg", "npm", "map")

_NUMBER = r"(?:0|[1-9][0-9]*)"
_IDENTIFIERS = r"[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*"

VERSION_PATTERN = re.compile(
    rf"^{_NUMBER}\.{_NUMBER}\.{_NUMBER}(?:-{_IDENTIFIERS})?(?:\+{_IDENTIFIERS})?$"
)
ALIAS_PATTERN = re.compile(rf"^v({_NUMBER}(?:\.{_NUMBER})?)$")
NAME_PATTERN = re.compile(r"^[A-Za-z0-9_~-][A-Za-z0-9._~-]*$")


class Shape:
    """Path shapes a request can normalize to."""
    NAME = "name"
    VERSION = "version"
    VERSION_EXTRAS = "version+extras"
    ALIAS = "alias"
    ALIAS_EXTRAS = "alias+extras"


@dataclass(frozen=True)
class CanonicalRequestParams:
    """Route-independent parameters for one registry request."""
    kind: str
    name: str
    scope: Optional[str] = None
    version: Optional[str] = None
    alias: Optional[str] = None
    extras: Optional[str] = None

    @property
    def full_name(self) -> str:
        if self.scope:
            return f"@{self.scope}/{self.name}"
        return self.name

    @property
    def shape(self) -> str:
        if self.version is not None:
            return Shape.VERSION_EXTRAS if self.extras else Shape.VERSION
        if self.alias is not None:
            return Shape.ALIAS_EXTRAS if self.extras else Shape.ALIAS
        return Shape.NAME

    def to_path(self) -> str:
        """Rebuild the canonical request path."""
        segments = [self.kind, self.full_name]
        if self.version is not None:
            segments.append(self.version)
        elif self.alias is not None:
            segments.append(f"v{self.alias}")
        if self.extras:
            segments.extend(quote(part, safe="") for part in self.extras.split("/"))
        return "/" + "/".join(segments)


def is_version(token: str) -> bool:
    return bool(VERSION_PATTERN.match(token))


def parse_alias(token: str) -> Optional[str]:
    """Return the alias value for a "v<N>[.<N>]" token, otherwise None."""
    match = ALIAS_PATTERN.match(token)
    return match.group(1) if match else None


def _split(raw_path: str) -> Tuple[str, ...]:
    path = raw_path.split("?", 1)[0].split("#", 1)[0]
    if not path.startswith("/"):
        raise MalformedPathError("Request path must be absolute", details={"path": path})

    segments = path[1:].split("/")
    if len(segments) > 1 and segments[-1] == "":
        segments = segments[:-1]
    if any(segment == "" for segment in segments):
        raise MalformedPathError("Request path contains an empty segment", details={"path": path})

    return tuple(unquote(segment) for segment in segments)


def _check_name(value: str, what: str) -> str:
    if not NAME_PATTERN.match(value):
        raise MalformedPathError(f"Invalid {what}", details={what: value})
    return value


def normalize(raw_path: str) -> CanonicalRequestParams:
    """Derive canonical parameters from a raw request target.

    Pure syntactic parsing: no existence checks, no side effects.
    """
    segments = _split(raw_path)

    kind = segments[0]
    if kind not in KINDS:
        raise MalformedPathError("Unknown registry kind", details={"kind": kind})
    rest = segments[1:]

    scope = None
    if rest and rest[0].startswith("@"):
        scope = _check_name(rest[0][1:], "scope")
        if len(rest) < 2:
            raise MalformedPathError("Scoped name is missing the name segment", details={"scope": scope})
        rest = rest[1:]

    if not rest:
        raise MalformedPathError("Request path is missing a name")
    name = _check_name(rest[0], "name")
    rest = rest[1:]

    version = None
    alias = None
    if rest:
        token = rest[0]
        if is_version(token):
            version = token
        else:
            alias = parse_alias(token)
            if alias is None:
                raise MalformedPathError(
                    "Path segment is neither a version nor an alias",
                    details={"segment": token},
                )
        rest = rest[1:]

    extras = "/".join(rest) if rest else None

    return CanonicalRequestParams(
        kind=kind,
        name=name,
        scope=scope,
        version=version,
        alias=alias,
        extras=extras,
    )
