"""Origin allow-list matching for credentialed cross-origin requests.

Allow-list entries are either literal origins (``scheme://host[:port]``) or
patterns with a single ``*`` standing in for part of one DNS label, e.g.
``https://ai-native-book-*.vercel.app``.  The wildcard matches any run of
characters other than ``.``, so a pattern can never be satisfied by an origin
that smuggles in extra labels (``https://ai-native-book-x.evil.vercel.app``).

Patterns are compiled once when the authorizer is built.  Invalid entries
raise ``InvalidOriginPatternError`` at load time, never per request.
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass

WILDCARD = "*"
WILDCARD_REGEX = r"[^.]*"

ALLOWED_METHODS = ("GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH")
ALLOWED_HEADERS = (
    "Content-Type",
    "Authorization",
    "X-Requested-With",
    "Accept",
    "Origin",
    "Cookie",
    "Cache-Control",
    "Pragma",
    "Expires",
)
EXPOSED_HEADERS = ("Set-Cookie",)


class InvalidOriginPatternError(ValueError):
    """Raised when the configured allow-list cannot be compiled."""


class OriginRejectedError(Exception):
    """Raised when a caller requires a trusted origin and the request lacks one."""

    def __init__(self, origin: str):
        super().__init__(f"Origin {origin!r} is not allowed")
        self.origin = origin


@dataclass(frozen=True)
class AuthorizationDecision:
    allowed: bool
    origin: str | None = None
    matched_pattern: str | None = None

    @property
    def same_origin(self) -> bool:
        return self.origin is None


@dataclass(frozen=True)
class OriginPattern:
    raw: str
    regex: re.Pattern[str] | None = None

    @classmethod
    def compile(cls, raw: str) -> "OriginPattern":
        pattern = raw.strip()
        if "://" not in pattern:
            raise InvalidOriginPatternError(
                f"origin pattern {raw!r} must include a scheme, e.g. https://host"
            )
        wildcard_count = pattern.count(WILDCARD)
        if wildcard_count == 0:
            return cls(raw=pattern)
        if wildcard_count > 1:
            raise InvalidOriginPatternError(
                f"origin pattern {raw!r} has {wildcard_count} wildcards; at most one is allowed"
            )
        prefix, suffix = pattern.split(WILDCARD)
        regex = re.compile(f"^{re.escape(prefix)}{WILDCARD_REGEX}{re.escape(suffix)}$")
        return cls(raw=pattern, regex=regex)

    def matches(self, origin: str) -> bool:
        if self.regex is None:
            return origin == self.raw
        return self.regex.match(origin) is not None


class OriginAuthorizer:
    """Decides whether a request origin may make credentialed cross-origin calls."""

    def __init__(self, patterns: list[OriginPattern], max_age_seconds: int = 86400):
        self._patterns = tuple(patterns)
        self._max_age_seconds = max_age_seconds

    @classmethod
    def from_patterns(
        cls,
        patterns: Iterable[str],
        max_age_seconds: int = 86400,
        require_non_empty: bool = False,
    ) -> "OriginAuthorizer":
        compiled = [OriginPattern.compile(item) for item in patterns if item.strip()]
        if require_non_empty and not compiled:
            raise InvalidOriginPatternError("origin allow-list must not be empty")
        return cls(compiled, max_age_seconds=max_age_seconds)

    @property
    def patterns(self) -> tuple[str, ...]:
        return tuple(item.raw for item in self._patterns)

    def decide(self, origin: str | None) -> AuthorizationDecision:
        # Browsers omit Origin on same-origin requests; tooling omits it too.
        if origin is None:
            return AuthorizationDecision(allowed=True)
        for pattern in self._patterns:
            if pattern.matches(origin):
                return AuthorizationDecision(
                    allowed=True, origin=origin, matched_pattern=pattern.raw
                )
        return AuthorizationDecision(allowed=False, origin=origin)

    def require(self, origin: str | None) -> AuthorizationDecision:
        decision = self.decide(origin)
        if not decision.allowed:
            raise OriginRejectedError(origin or "")
        return decision

    def cors_headers(self, decision: AuthorizationDecision) -> dict[str, str]:
        if not decision.allowed or decision.origin is None:
            return {}
        return {
            "Access-Control-Allow-Origin": decision.origin,
            "Access-Control-Allow-Credentials": "true",
            "Access-Control-Allow-Methods": ", ".join(ALLOWED_METHODS),
            "Access-Control-Allow-Headers": ", ".join(ALLOWED_HEADERS),
            "Access-Control-Expose-Headers": ", ".join(EXPOSED_HEADERS),
            "Access-Control-Max-Age": str(self._max_age_seconds),
            "Vary": "Origin",
        }
