"""Argument validation for tools (JSON Schema) and prompts (declared arguments).

Failures raise :class:`~fsmcp.protocol.errors.InvalidParamsError`, so the
handler is never reached with arguments that break its contract.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import best_match

from fsmcp.protocol.errors import InvalidParamsError

if TYPE_CHECKING:
    from jsonschema.exceptions import ValidationError

    from fsmcp.server.specs import PromptSpec


def compile_schema(schema: dict[str, Any]) -> Draft202012Validator:
    """Check *schema* itself and return a reusable validator.

    Raises:
        jsonschema.exceptions.SchemaError: If the schema is not valid JSON Schema.
    """
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema)


def validate_tool_arguments(
    tool_name: str,
    validator: Draft202012Validator,
    arguments: dict[str, Any],
) -> None:
    """Raise ``InvalidParamsError`` describing every schema violation."""
    errors = list(validator.iter_errors(arguments))
    if not errors:
        return

    primary = best_match(errors)
    described = sorted(_describe(err) for err in errors)
    raise InvalidParamsError(
        f"Invalid arguments for tool '{tool_name}': {_describe(primary)}",
        data={"tool": tool_name, "errors": described},
    )


def validate_prompt_arguments(spec: PromptSpec, arguments: dict[str, Any]) -> dict[str, str]:
    """Check prompt arguments against the declared argument list.

    Values must be strings, names must be declared, and every required
    argument must be present.
    """
    declared = {arg.name for arg in spec.arguments}

    unknown = sorted(set(arguments) - declared)
    if unknown:
        raise InvalidParamsError(
            f"Unknown argument(s) for prompt '{spec.name}': {', '.join(unknown)}",
            data={"prompt": spec.name, "unknown": unknown},
        )

    not_strings = sorted(name for name, value in arguments.items() if not isinstance(value, str))
    if not_strings:
        raise InvalidParamsError(
            f"Prompt arguments must be strings: {', '.join(not_strings)}",
            data={"prompt": spec.name, "invalid": not_strings},
        )

    missing = [name for name in spec.required_arguments if name not in arguments]
    if missing:
        raise InvalidParamsError(
            f"Missing required argument(s) for prompt '{spec.name}': {', '.join(missing)}",
            data={"prompt": spec.name, "missing": missing},
        )

    return dict(arguments)


def _describe(error: ValidationError) -> str:
    location = "/".join(str(part) for part in error.absolute_path) or "<root>"
    return f"{location}: {error.message}"
