"""Edge sentinels and conditional branches."""

import inspect
from typing import Any, Callable, Dict, Hashable, List, Literal, Optional, get_args, get_origin, get_type_hints

from pydantic import BaseModel, ConfigDict, Field

from stepgraph.core.errors import GraphDefinitionError, NodeExecutionError, RoutingError

START = "__start__"
END = "__end__"
RESERVED = frozenset({START, END})


def _literal_targets(router: Callable[..., Any]) -> Optional[List[str]]:
    """Targets declared through a ``Literal[...]`` return annotation, if any."""
    target = router if inspect.isfunction(router) or inspect.ismethod(router) else getattr(router, "__call__", router)
    try:
        hints = get_type_hints(target)
    except Exception:
        return None
    returned = hints.get("return")
    if get_origin(returned) is Literal:
        return [str(value) for value in get_args(returned)]
    return None


class Branch(BaseModel):
    """A conditional edge leaving ``source``.

    Attributes:
        source: Node the branch is evaluated after
        router: ``(state) -> route`` callable, sync or async
        targets: Every node id the branch may lead to (END allowed)
        path_map: Optional mapping from router output to node id
    """
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    source: str
    router: Callable[..., Any]
    targets: List[str] = Field(default_factory=list)
    path_map: Optional[Dict[Hashable, str]] = None

    @classmethod
    def build(cls, source: str, router: Callable[..., Any], targets: Any = None) -> "Branch":
        """Create a branch, resolving its declared targets.

        ``targets`` may be a list of node ids, a ``{route: node_id}`` mapping,
        or omitted when the router is annotated ``-> Literal[...]``.

        Raises:
            GraphDefinitionError: If the targets cannot be determined
        """
        name = getattr(router, "__name__", type(router).__name__)
        if targets is None:
            targets = _literal_targets(router)
            if targets is None:
                raise GraphDefinitionError(
                    f"Cannot determine targets of router '{name}' on '{source}'; "
                    "pass targets or annotate the router with -> Literal[...]"
                )
        if isinstance(targets, dict):
            return cls(source=source, router=router, targets=list(dict.fromkeys(targets.values())), path_map=dict(targets))
        if isinstance(targets, str):
            targets = [targets]
        return cls(source=source, router=router, targets=list(dict.fromkeys(targets)))

    @property
    def allowed(self) -> List[Any]:
        """Router outputs accepted by ``route``. END is always among them."""
        choices = list(self.path_map) if self.path_map is not None else list(self.targets)
        return choices + ([END] if END not in choices else [])

    @property
    def destinations(self) -> List[str]:
        """Node ids the branch can lead to, END included."""
        return self.targets + ([END] if END not in self.targets else [])

    async def route(self, state: Dict[str, Any]) -> str:
        """Evaluate the router and validate its choice.

        Raises:
            RoutingError: If the router chose an undeclared target
            NodeExecutionError: If the router itself raised
        """
        try:
            choice = self.router(state)
            if inspect.isawaitable(choice):
                choice = await choice
        except Exception as e:
            raise NodeExecutionError(self.source, e) from e

        if self.path_map is not None:
            try:
                if choice in self.path_map:
                    return self.path_map[choice]
            except TypeError:
                pass
            if choice == END:
                return END
            raise RoutingError(self.source, choice, self.allowed)
        if choice == END or choice in self.targets:
            return choice
        raise RoutingError(self.source, choice, self.allowed)
