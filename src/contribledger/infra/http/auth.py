"""How an API key is presented to a provider. One strategy per provider, chosen by configuration."""

from abc import ABC, abstractmethod


class AuthStrategy(ABC):
    @abstractmethod
    def apply(self, headers: dict[str, str], params: dict[str, str]) -> None:
        """Add credentials to outgoing request headers/query params in place."""

    def describe(self) -> str:
        return type(self).__name__


class NoAuth(AuthStrategy):
    def apply(self, headers: dict[str, str], params: dict[str, str]) -> None:
        return None

    def describe(self) -> str:
        return "none"


class HeaderAuth(AuthStrategy):
    def __init__(self, header: str, api_key: str) -> None:
        self._header = header
        self._api_key = api_key

    def apply(self, headers: dict[str, str], params: dict[str, str]) -> None:
        headers[self._header] = self._api_key

    def describe(self) -> str:
        return f"header:{self._header}"


class BearerAuth(AuthStrategy):
    def __init__(self, token: str) -> None:
        self._token = token

    def apply(self, headers: dict[str, str], params: dict[str, str]) -> None:
        headers["Authorization"] = f"Bearer {self._token}"

    def describe(self) -> str:
        return "bearer"


class QueryParamAuth(AuthStrategy):
    def __init__(self, param: str, api_key: str) -> None:
        self._param = param
        self._api_key = api_key

    def apply(self, headers: dict[str, str], params: dict[str, str]) -> None:
        params[self._param] = self._api_key

    def describe(self) -> str:
        return f"query:{self._param}"


def build_auth(spec: str | None, api_key: str) -> AuthStrategy:
    """Parse an auth spec ("none", "bearer", "header:<name>", "query:<param>").

    A strategy that needs a key degrades to NoAuth when no key is configured.
    """
    kind, _, arg = (spec or "none").strip().partition(":")
    kind = kind.lower()
    if kind == "none" or not api_key:
        return NoAuth()
    if kind == "bearer":
        return BearerAuth(api_key)
    if kind == "header" and arg:
        return HeaderAuth(arg, api_key)
    if kind == "query" and arg:
        return QueryParamAuth(arg, api_key)
    raise ValueError(f"Unknown auth strategy: {spec!r}")
