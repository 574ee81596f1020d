"""AI client interface and entity tool definitions.

The core does not talk to any provider. An application passes an object
implementing ``AIClient`` through the persistence options; entities use it
for ``is_()`` and ``do()``, offering the methods listed in their
``ai.callable`` configuration as function-calling tools.
"""

from __future__ import annotations

import inspect
import json
from typing import Any, Protocol, runtime_checkable

from row_object.core.config import AIConfig
from row_object.core.exceptions import AIError

_IS_PROMPT = (
    "--- Beginning of criteria ---\n{criteria}\n--- End of criteria ---\n"
    "Does the content meet all the given criteria? Reply with a json object "
    "with a single boolean 'result' property"
)
_DO_PROMPT = (
    "--- Beginning of instructions ---\n{instructions}\n--- End of instructions ---\n"
    "Based on the content body, please follow the instructions and provide a "
    "response. Never make use of codeblocks."
)

_JSON_TYPES = {
    "str": "string",
    "int": "integer",
    "float": "number",
    "bool": "boolean",
    "list": "array",
    "dict": "object",
}


@runtime_checkable
class AIClient(Protocol):
    """Completion client used by entities."""

    async def complete(
        self, prompt: str, *, tools: list[dict[str, Any]] | None = None, **options: Any
    ) -> str:
        """Return the model's text answer to *prompt*."""
        ...


def build_is_prompt(criteria: str, content: dict[str, Any]) -> str:
    body = json.dumps(content, sort_keys=True, default=str)
    return f"{body}\n{_IS_PROMPT.format(criteria=criteria)}"


def build_do_prompt(instructions: str, content: dict[str, Any]) -> str:
    body = json.dumps(content, sort_keys=True, default=str)
    return f"{body}\n{_DO_PROMPT.format(instructions=instructions)}"


def parse_is_response(message: str, provider: str = "ai") -> bool:
    """Read the boolean ``result`` of an ``is_()`` answer.

    Raises:
        AIError: the answer is not JSON with a boolean ``result``.
    """
    try:
        result = json.loads(message).get("result")
    except (TypeError, ValueError, AttributeError) as e:
        raise AIError.invalid_response(provider, message) from e
    if not isinstance(result, bool):
        raise AIError.invalid_response(provider, message)
    return result


def _json_schema(annotation: Any) -> dict[str, Any]:
    if annotation is inspect.Parameter.empty:
        return {}
    name = annotation if isinstance(annotation, str) else getattr(annotation, "__name__", "")
    base = name.split("[", 1)[0].split("|", 1)[0].strip()
    json_type = _JSON_TYPES.get(base)
    return {"type": json_type} if json_type else {}


def _is_callable_method(name: str, member: Any, config: AIConfig) -> bool:
    if name.startswith("_") or name in config.exclude:
        return False
    if not inspect.isfunction(member):
        return False
    callable_ = config.callable
    if callable_ == "all":
        return True
    if callable_ == "public":
        return inspect.iscoroutinefunction(member)
    return isinstance(callable_, list) and name in callable_


def build_tools(cls: type, config: AIConfig, stop: type | None = None) -> list[dict[str, Any]]:
    """Function-calling tool definitions for the AI-callable methods of *cls*.

    Only methods declared below *stop* in the MRO are considered.
    """
    if not config.callable:
        return []
    members: dict[str, Any] = {}
    for klass in reversed(cls.__mro__):
        if klass is object or (stop is not None and issubclass(stop, klass)):
            continue
        members.update(vars(klass))

    tools: list[dict[str, Any]] = []
    for name in sorted(members):
        member = members[name]
        if not _is_callable_method(name, member, config):
            continue
        properties: dict[str, Any] = {}
        required: list[str] = []
        for param in list(inspect.signature(member).parameters.values())[1:]:
            if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                continue
            properties[param.name] = _json_schema(param.annotation)
            if param.default is inspect.Parameter.empty:
                required.append(param.name)
        parameters: dict[str, Any] = {"type": "object", "properties": properties}
        if required:
            parameters["required"] = required
        doc = inspect.getdoc(member)
        description = config.descriptions.get(name) or (
            doc.splitlines()[0] if doc else f"Call {name}"
        )
        tools.append(
            {
                "type": "function",
                "function": {
                    "name": name,
                    "description": description,
                    "parameters": parameters,
                },
            }
        )
    return tools
