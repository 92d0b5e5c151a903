"""Variable resolution and ``${...}`` template expansion.

Templates reference variables as ``${name}`` or ``${name:-default}``. A
:class:`ResolverChain` answers lookups by asking each resolver in turn; the
first one that knows the name wins. :class:`VarExpander` substitutes every
token and re-scans the result until nothing changes, so values may themselves
contain tokens.

Two flavours exist:

* *lenient* expanders end their chain with :class:`PassthroughResolver`, which
  echoes unknown tokens back unchanged. Used for installation directories.
* *strict* expanders raise :class:`VarNotPresentError` for unknown tokens.
  Used for notification commands.
"""
from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping, Sequence

from .host import host_arch, host_family, host_os

__all__ = [
    "EnvironmentResolver",
    "MAX_EXPANSION_PASSES",
    "PassthroughResolver",
    "PlatformResolver",
    "PrefixedResolver",
    "Resolver",
    "ResolverChain",
    "StaticResolver",
    "VarExpander",
    "VarNotPresentError",
]

LOGGER = logging.getLogger(__name__)

MAX_EXPANSION_PASSES = 16
TOKEN_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")


class VarNotPresentError(RuntimeError):
    """Raised when no resolver knows a variable."""

    def __init__(self, name: str) -> None:
        super().__init__(f"variable '{name}' is not present")
        self.name = name


class StaticResolver:
    """Resolve names from a fixed mapping."""

    fallback = False

    def __init__(self, values: Mapping[str, str]) -> None:
        self._values = dict(values)

    def resolve(self, name: str) -> str:
        try:
            return self._values[name]
        except KeyError:
            raise VarNotPresentError(name) from None


class EnvironmentResolver:
    """Resolve names from the process environment (or an injected mapping)."""

    fallback = False

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self._env = env

    def resolve(self, name: str) -> str:
        env = os.environ if self._env is None else self._env
        value = env.get(name)
        if value is None:
            raise VarNotPresentError(name)
        return value


class PlatformResolver:
    """Expose ``JU_ARCH``, ``JU_FAMILY`` and ``JU_OS`` for the running host."""

    fallback = False

    def __init__(self) -> None:
        self._values = {
            "JU_ARCH": host_arch(),
            "JU_FAMILY": host_family(),
            "JU_OS": host_os(),
        }

    def resolve(self, name: str) -> str:
        try:
            return self._values[name]
        except KeyError:
            raise VarNotPresentError(name) from None


class PrefixedResolver:
    """Strip *prefix* from the name and delegate, e.g. ``env.HOME`` -> ``HOME``."""

    fallback = False

    def __init__(self, prefix: str, inner: Resolver) -> None:
        self.prefix = prefix
        self._inner = inner

    def resolve(self, name: str) -> str:
        if not name.startswith(self.prefix):
            raise VarNotPresentError(name)
        return self._inner.resolve(name[len(self.prefix) :])


class PassthroughResolver:
    """Answer every lookup with the token itself so it survives expansion."""

    fallback = True

    def resolve(self, name: str) -> str:
        return "${" + name + "}"


Resolver = (
    StaticResolver
    | EnvironmentResolver
    | PlatformResolver
    | PrefixedResolver
    | PassthroughResolver
)


class ResolverChain:
    """Ordered resolvers; the first successful lookup wins."""

    def __init__(self, resolvers: Sequence[Resolver]) -> None:
        self.resolvers: tuple[Resolver, ...] = tuple(resolvers)

    def resolve(self, name: str, default: str | None = None) -> str:
        """Return the value for *name*.

        *default* (from ``${name:-default}``) takes precedence over the
        passthrough fallback but not over a real value.
        """
        for resolver in self.resolvers:
            if default is not None and resolver.fallback:
                return default
            try:
                return resolver.resolve(name)
            except VarNotPresentError:
                continue
        if default is not None:
            return default
        raise VarNotPresentError(name)


class VarExpander:
    """Substitute ``${...}`` tokens until a fixed point is reached."""

    def __init__(self, chain: ResolverChain) -> None:
        self.chain = chain

    @classmethod
    def lenient(cls, *resolvers: Resolver) -> VarExpander:
        """Build an expander that leaves unknown tokens untouched."""
        return cls(ResolverChain([*resolvers, PassthroughResolver()]))

    @classmethod
    def strict(cls, *resolvers: Resolver) -> VarExpander:
        """Build an expander that fails on unknown tokens."""
        return cls(ResolverChain(resolvers))

    def expand(self, template: str) -> str:
        """Return *template* with every token replaced.

        Raises :class:`VarNotPresentError` only for strict expanders. A value
        that keeps producing new tokens is cut off after
        ``MAX_EXPANSION_PASSES`` rounds and returned as-is.
        """
        current = template
        for _ in range(MAX_EXPANSION_PASSES):
            expanded = TOKEN_PATTERN.sub(self._substitute, current)
            if expanded == current:
                return expanded
            current = expanded
        LOGGER.debug("Expansion of %r did not settle; using %r", template, current)
        return current

    def _substitute(self, match: re.Match[str]) -> str:
        return self.chain.resolve(match.group(1), match.group(2))
