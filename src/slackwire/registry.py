from __future__ import annotations

import dataclasses as dc
import inspect
import re
from fnmatch import fnmatchcase
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Iterator, Mapping, Optional, Union

from slackwire.events import Event, EventKind
from slackwire.exceptions import RegistryFrozen
from slackwire.logging import logger

Handler = Callable[..., Awaitable[Any]]
Predicate = Callable[[Event], bool]


@dc.dataclass(frozen=True)
class Glob:
    pattern: str


def glob(pattern: str) -> Glob:
    """Match the event key against a shell style pattern, `approve-*`"""
    return Glob(pattern)


MatcherSpec = Union[None, str, Glob, re.Pattern, Predicate]


def compile_matcher(spec: MatcherSpec) -> tuple[Predicate, str]:
    """Turn a matcher spec into a predicate over events, and a description"""
    match spec:
        case None:
            return (lambda event: True), "*"
        case str():
            return (lambda event: event.key == spec), spec
        case Glob(pattern=pattern):
            return (
                lambda event: event.key is not None and fnmatchcase(event.key, pattern)
            ), f"glob({pattern})"
        case re.Pattern():
            return (
                lambda event: event.key is not None
                and spec.search(event.key) is not None
            ), f"re({spec.pattern})"
        case _ if callable(spec):
            return spec, getattr(spec, "__name__", repr(spec))
        case _:
            raise TypeError(f"Unsupported matcher: {spec!r}")


def _name(handler: Handler) -> str:
    return getattr(handler, "__qualname__", repr(handler))


def _ensure_coroutine(handler: Handler) -> None:
    if not inspect.iscoroutinefunction(handler):
        raise TypeError(f"{_name(handler)} needs to be an async function")


@dc.dataclass(frozen=True)
class Listener:
    kind: EventKind
    handler: Handler
    predicate: Predicate
    description: str

    @property
    def name(self) -> str:
        return _name(self.handler)

    def matches(self, event: Event) -> bool:
        if event.kind is not self.kind:
            return False
        try:
            return bool(self.predicate(event))
        except Exception as e:
            logger.error(f"Matcher {self.description} for {self.name} raised", exc_info=e)
            return False

    def __repr__(self) -> str:
        return f"<Listener ({self.kind.value} {self.description} -> {self.name})>"


@dc.dataclass(frozen=True)
class Middleware:
    handler: Handler

    @property
    def name(self) -> str:
        return _name(self.handler)


@dc.dataclass(frozen=True)
class ListenerRegistry:
    """The frozen table of middleware and listeners

    Built once by `RegistryBuilder.build` and only read afterwards
    """

    middleware: tuple[Middleware, ...] = ()
    listeners: Mapping[EventKind, tuple[Listener, ...]] = dc.field(
        default_factory=lambda: MappingProxyType({})
    )

    def listeners_for(self, event: Event) -> list[Listener]:
        """All listeners matching the event, in registration order"""
        return [
            listener
            for listener in self.listeners.get(event.kind, ())
            if listener.matches(event)
        ]

    @property
    def count(self) -> int:
        return sum(len(listeners) for listeners in self.listeners.values())


def _of_type(event_type: str, predicate: Predicate) -> Predicate:
    def matches(event: Event) -> bool:
        return event.key == event_type and predicate(event)

    return matches


_EVENT_TYPES = {
    "message": EventKind.MESSAGE,
    "app_mention": EventKind.APP_MENTION,
}


class RegistryBuilder:
    """Collects middleware and listeners until `build` is called

    For example:

        builder = RegistryBuilder()

        @builder.command("/deploy")
        async def deploy(ack, command):
            await ack(f"Deploying {command['text']}")

        registry = builder.build()
    """

    def __init__(self) -> None:
        self._middleware: list[Middleware] = []
        self._listeners: dict[EventKind, list[Listener]] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _check_not_frozen(self) -> None:
        if self._frozen:
            raise RegistryFrozen("Listeners can't be added after the registry is built")

    def use(self, handler: Handler) -> Handler:
        """Register global middleware, it runs for every dispatched event"""
        self._check_not_frozen()
        _ensure_coroutine(handler)
        self._middleware.append(Middleware(handler))
        return handler

    def listen(
        self,
        kind: EventKind,
        matcher: MatcherSpec = None,
        *,
        event_type: Optional[str] = None,
    ) -> Callable[[Handler], Handler]:
        self._check_not_frozen()
        predicate, description = compile_matcher(matcher)
        if event_type is not None:
            predicate = _of_type(event_type, predicate)
            description = f"{event_type} {description}"

        def decorator(handler: Handler) -> Handler:
            self._check_not_frozen()
            _ensure_coroutine(handler)
            listener = Listener(
                kind=kind,
                handler=handler,
                predicate=predicate,
                description=description,
            )
            logger.debug(f"Registering {listener}")
            self._listeners.setdefault(kind, []).append(listener)
            return handler

        return decorator

    def command(self, matcher: MatcherSpec) -> Callable[[Handler], Handler]:
        return self.listen(EventKind.SLASH_COMMAND, matcher)

    def action(self, matcher: MatcherSpec) -> Callable[[Handler], Handler]:
        return self.listen(EventKind.BLOCK_ACTION, matcher)

    def shortcut(self, matcher: MatcherSpec) -> Callable[[Handler], Handler]:
        return self.listen(EventKind.SHORTCUT, matcher)

    def message(self, matcher: MatcherSpec = None) -> Callable[[Handler], Handler]:
        return self.listen(EventKind.MESSAGE, matcher)

    def event(
        self, event_type: str, matcher: MatcherSpec = None
    ) -> Callable[[Handler], Handler]:
        """Listen for an Events API event by its type

        The matcher is tested against the text of `message` and `app_mention`
        events, every other type is keyed by the type itself so only predicate
        matchers narrow it down further
        """
        if not event_type:
            raise ValueError("An event type is required")
        if (kind := _EVENT_TYPES.get(event_type)) is not None:
            return self.listen(kind, matcher)
        return self.listen(EventKind.EVENT, matcher, event_type=event_type)

    def build(self) -> ListenerRegistry:
        self._frozen = True
        return ListenerRegistry(
            middleware=tuple(self._middleware),
            listeners=MappingProxyType(
                {kind: tuple(listeners) for kind, listeners in self._listeners.items()}
            ),
        )

    def __repr__(self) -> str:
        count = sum(len(listeners) for listeners in self._listeners.values())
        return f"<RegistryBuilder (listeners={count}, frozen={self._frozen})>"


class Arguments(Mapping[str, Any]):
    """The arguments on offer to handlers

    Lazy arguments are factories, only called once a handler asks for them
    """

    def __init__(
        self,
        values: Mapping[str, Any],
        lazy: Optional[Mapping[str, Callable[[], Any]]] = None,
    ) -> None:
        self._values = dict(values)
        self._lazy = dict(lazy or {})

    def __contains__(self, key: object) -> bool:
        return key in self._values or key in self._lazy

    def __getitem__(self, key: str) -> Any:
        if key not in self._values and key in self._lazy:
            self._values[key] = self._lazy[key]()
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        yield from self._values
        yield from (key for key in self._lazy if key not in self._values)

    def __len__(self) -> int:
        return len(self._values.keys() | self._lazy.keys())

    def with_value(self, key: str, value: Any) -> Arguments:
        return Arguments({**self._values, key: value}, self._lazy)


def build_kwargs(handler: Handler, available: Mapping[str, Any]) -> dict[str, Any]:
    """Pick the arguments a handler asks for by name

    Handlers with a `**kwargs` parameter get everything
    """
    parameters = inspect.signature(handler).parameters.values()
    if any(p.kind is inspect.Parameter.VAR_KEYWORD for p in parameters):
        return dict(available)

    kwargs = {}
    for parameter in parameters:
        if parameter.name in available:
            kwargs[parameter.name] = available[parameter.name]
        elif parameter.default is inspect.Parameter.empty and parameter.kind not in (
            inspect.Parameter.VAR_POSITIONAL,
        ):
            raise TypeError(
                f"{_name(handler)} asks for unknown argument {parameter.name!r}"
            )
    return kwargs


def describe(registry: ListenerRegistry) -> list[str]:
    return [
        repr(listener)
        for kind in EventKind
        for listener in registry.listeners.get(kind, ())
    ]
