"""Application / environment context resolution.

Targets are written like `@mysite.production`, `@1234.develop` or just
`@mysite` (only valid when the app has a single environment).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Final

from vipcli.engine.protocols import GraphQLClient

APP_FIELDS: Final = """
    id
    name
    type
    organization {
        id
        name
    }
    environments {
        id
        appId
        type
        name
        primaryDomain {
            name
        }
    }
"""

APP_BY_ID_QUERY: Final = f"query App($id: Int) {{ app(id: $id) {{ {APP_FIELDS} }} }}"
APP_BY_NAME_QUERY: Final = (
    f"query Apps($name: String) {{ apps(first: 1, name: $name) {{ nodes {{ {APP_FIELDS} }} }} }}"
)


class ContextError(Exception):
    """The requested app or environment can't be used."""


@dataclass(frozen=True, slots=True)
class Environment:
    id: int
    appId: int
    type: str
    name: str | None = None
    primaryDomain: str | None = None

    @property
    def identifier(self) -> str:
        """Short name used in prompts and @app.env targets."""
        return self.name or self.type

    @classmethod
    def fromAPI(cls, env: dict[str, Any]) -> Environment:
        return cls(
            id=env["id"],
            appId=env["appId"],
            type=env.get("type") or "",
            name=env.get("name"),
            primaryDomain=(env.get("primaryDomain") or {}).get("name"),
        )


@dataclass(frozen=True, slots=True)
class App:
    id: int
    name: str
    type: str = ""
    organizationId: int | None = None
    environments: tuple[Environment, ...] = field(default_factory=tuple)

    @classmethod
    def fromAPI(cls, app: dict[str, Any]) -> App:
        return cls(
            id=app["id"],
            name=app["name"],
            type=app.get("type") or "",
            organizationId=(app.get("organization") or {}).get("id"),
            environments=tuple(Environment.fromAPI(e) for e in app.get("environments") or []),
        )

    def environment(self, identifier: str | None) -> Environment:
        if identifier is None:
            if len(self.environments) == 1:
                return self.environments[0]

            names = ", ".join(e.identifier for e in self.environments)
            raise ContextError(f"Please specify an environment for {self.name} (one of: {names})")

        wanted = identifier.lower()
        for env in self.environments:
            if wanted in {env.type.lower(), (env.name or "").lower(), str(env.id)}:
                return env

        raise ContextError(f"Environment '{identifier}' not found for {self.name}")


@dataclass(frozen=True, slots=True)
class Target:
    app: str
    env: str | None = None

    @classmethod
    def parse(cls, target: str) -> Target:
        if not target.startswith("@") or len(target) < 2:
            raise ContextError(f"Invalid app target '{target}', expected @app or @app.env")

        app, _, env = target[1:].partition(".")
        return cls(app=app, env=env or None)


@dataclass(frozen=True, slots=True)
class Context:
    app: App
    env: Environment

    @property
    def promptIdentifier(self) -> str:
        return f"{self.app.name}.{self.env.identifier}"

    @property
    def isProduction(self) -> bool:
        return self.env.type.lower() == "production"


async def resolveContext(api: GraphQLClient, target: str) -> Context:
    parsed = Target.parse(target)

    if parsed.app.isdigit():
        got = await api.query(APP_BY_ID_QUERY, dict(id=int(parsed.app)))
        found = got.get("app")
    else:
        got = await api.query(APP_BY_NAME_QUERY, dict(name=parsed.app))
        nodes = (got.get("apps") or {}).get("nodes") or []
        found = nodes[0] if nodes else None

    if not found:
        raise ContextError(f"App '{parsed.app}' not found")

    app = App.fromAPI(found)
    return Context(app=app, env=app.environment(parsed.env))
