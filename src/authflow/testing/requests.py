"""
Synthetic HTTP requests for driving controller actions without a network.

A SyntheticRequest carries everything a view reads from an inbound request
(method, path, query parameters, headers, cookies, body, scheme, host) and
turns itself into a WSGI environ with Werkzeug's EnvironBuilder.

Usage:

    GET request
    SyntheticRequest("GET", "/login")

    POST request with a url-form-encoded body
    SyntheticRequest("POST", "/login", body={"email": ["a@b.c"], "password": ["secret"]})
"""
from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Generic, List, Mapping, Optional, Sequence, Tuple, TypeVar
from urllib.parse import quote_plus

from werkzeug.datastructures import Headers, MultiDict
from werkzeug.test import EnvironBuilder

BodyT = TypeVar('BodyT')


def _as_values(values: Any) -> Sequence[Any]:
    # a lone string is one value, not a sequence of characters
    if isinstance(values, (str, bytes)) or not isinstance(values, (list, tuple)):
        return (values,)
    return values


def encode_query(params: Mapping[str, Sequence[Any]]) -> str:
    """
    Encode query parameters as ``k1=v1&k1=v2&k2=v3``.

    Keys and stringified values are UTF-8 percent-encoded form-style
    (space becomes ``+``). Every fragment, including repeated keys, is
    separated by ``&``.
    """
    fragments = []
    for key, values in params.items():
        for value in _as_values(values):
            fragments.append(f"{quote_plus(str(key))}={quote_plus(str(value))}")
    return '&'.join(fragments)


def build_uri(scheme: str, host: str, path: str, params: Mapping[str, Sequence[Any]]) -> str:
    """Build ``scheme://host/path?query``; host and path are used as given."""
    uri = f"{scheme}://{host}/{path.lstrip('/')}"
    query = encode_query(params)
    if query:
        return f"{uri}?{query}"
    return uri


@dataclass(frozen=True)
class Cookie:
    """A cookie as a request presents it."""
    name: str
    value: str
    max_age: Optional[int] = None
    path: str = '/'
    domain: Optional[str] = None
    secure: bool = False
    http_only: bool = True


@dataclass(frozen=True)
class SyntheticHeaders:
    """
    Request headers backed by a fixed mapping.

    Keys are case-sensitive. ``get_all`` is for headers that must exist and
    raises KeyError otherwise; check ``keys()`` first when a header is optional.
    """
    mapping: Mapping[str, Sequence[str]] = field(default_factory=dict)

    def __post_init__(self):
        frozen = {key: tuple(_as_values(values)) for key, values in self.mapping.items()}
        object.__setattr__(self, 'mapping', MappingProxyType(frozen))

    def get_all(self, key: str) -> Tuple[str, ...]:
        return self.mapping[key]

    def keys(self) -> frozenset:
        return frozenset(self.mapping)

    def items(self) -> List[Tuple[str, str]]:
        """Flattened (name, value) pairs, one per value."""
        return [(key, value) for key, values in self.mapping.items() for value in values]


@dataclass(frozen=True)
class SyntheticCookies:
    """Request cookies backed by a fixed mapping; lookups never raise."""
    mapping: Mapping[str, Cookie] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'mapping', MappingProxyType(dict(self.mapping)))

    def get(self, name: str) -> Optional[Cookie]:
        return self.mapping.get(name)

    def header_value(self) -> str:
        """Render as the value of a ``Cookie`` request header."""
        return '; '.join(f"{cookie.name}={cookie.value}" for cookie in self.mapping.values())


@dataclass(frozen=True)
class SyntheticRequest(Generic[BodyT]):
    """
    An in-memory request for invoking a view directly.

    body: None for an empty body, a mapping for a url-form-encoded body
    (values may be sequences), or str/bytes sent as-is.
    """
    method: str
    path: str
    params: Mapping[str, Sequence[Any]] = field(default_factory=dict)
    headers: SyntheticHeaders = field(default_factory=SyntheticHeaders)
    cookies: SyntheticCookies = field(default_factory=SyntheticCookies)
    body: Optional[BodyT] = None
    scheme: str = 'http'
    host: str = 'localhost:9000'

    @property
    def uri(self) -> str:
        return build_uri(self.scheme, self.host, self.path, self.params)

    @property
    def query_string(self) -> Dict[str, List[str]]:
        return {key: [str(value) for value in _as_values(values)] for key, values in self.params.items()}

    def _form_data(self) -> MultiDict:
        return MultiDict([
            (str(key), str(value))
            for key, values in self.body.items()
            for value in _as_values(values)
        ])

    def to_environ(self) -> Dict[str, Any]:
        """Build the WSGI environ a server would hand the application."""
        headers = Headers(self.headers.items())
        cookie_header = self.cookies.header_value()
        if cookie_header:
            headers.add('Cookie', cookie_header)

        if self.body is None:
            data = None
        elif isinstance(self.body, Mapping):
            data = self._form_data()
        else:
            data = self.body

        builder = EnvironBuilder(
            path='/' + self.path.lstrip('/'),
            base_url=f"{self.scheme}://{self.host}",
            method=self.method,
            query_string=encode_query(self.params),
            headers=headers,
            data=data,
        )
        try:
            return builder.get_environ()
        finally:
            builder.close()

    def __str__(self):
        return f"{self.method} {self.uri}"
