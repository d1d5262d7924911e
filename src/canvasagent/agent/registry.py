"""Action schema registry: kind tag -> validator, apply routine, metadata."""

from __future__ import annotations

import copy
import json
import logging
from typing import Annotated, Any, Literal, Mapping, Optional, Union, get_args, get_origin

from pydantic import BaseModel, Field, create_model

from ..constants import ACTION_KIND_FIELD, ACTIONS_ENVELOPE_KEY
from ..domain.actions import ActionDefinition, ActionInfo
from ..errors import RegistryError, RegistryFrozenError
from ..logging import log_event, summarize_text

DEFAULT_ACTION_ICON = "•"


def _declared_kind(validator: type[BaseModel]) -> Optional[str]:
    """Return the single literal value of a validator's tag field, if any."""
    model_fields = getattr(validator, "model_fields", None)
    if not model_fields or ACTION_KIND_FIELD not in model_fields:
        return None
    annotation = model_fields[ACTION_KIND_FIELD].annotation
    if get_origin(annotation) is not Literal:
        return None
    values = get_args(annotation)
    if len(values) != 1 or not isinstance(values[0], str):
        return None
    return values[0]


def _inline_refs(schema: dict[str, Any]) -> dict[str, Any]:
    """Replace local ``$ref`` pointers with their ``$defs`` targets."""
    defs: dict[str, Any] = schema.get("$defs", {})

    def resolve(node: Any, stack: tuple[str, ...]) -> Any:
        if isinstance(node, list):
            return [resolve(item, stack) for item in node]
        if not isinstance(node, dict):
            return node

        ref = node.get("$ref")
        if isinstance(ref, str) and ref.startswith("#/$defs/"):
            name = ref[len("#/$defs/"):]
            if name in defs and name not in stack:
                target = copy.deepcopy(defs[name])
                siblings = {k: v for k, v in node.items() if k != "$ref"}
                target.update(siblings)
                return resolve(target, stack + (name,))
            return node

        resolved: dict[str, Any] = {}
        for key, value in node.items():
            if key == "$defs":
                continue
            # OpenAPI-style discriminator mappings point into $defs.
            if key == "discriminator" and isinstance(value, dict) and "propertyName" in value:
                continue
            resolved[key] = resolve(value, stack)
        return resolved

    return resolve(schema, ())


class ActionRegistry:
    """Registered action kinds, in registration order.

    The set of kinds is fixed once ``freeze()`` has been called; the runtime
    freezes the registry it is constructed with.
    """

    def __init__(self, definitions: Optional[list[ActionDefinition]] = None) -> None:
        self._definitions: dict[str, ActionDefinition] = {}
        self._frozen = False
        self._schema_cache: Optional[dict[str, Any]] = None
        for definition in definitions or []:
            self.register(definition)

    def register(self, definition: ActionDefinition) -> None:
        if self._frozen:
            raise RegistryFrozenError(definition.kind)
        if not definition.kind:
            raise RegistryError("Action kind must be a non-empty string")
        if definition.kind in self._definitions:
            raise RegistryError(f"Action kind '{definition.kind}' is already registered")

        declared = _declared_kind(definition.validator)
        if declared != definition.kind:
            raise RegistryError(
                f"Validator {definition.validator.__name__} must declare "
                f"'{ACTION_KIND_FIELD}: Literal[\"{definition.kind}\"]'"
            )

        self._definitions[definition.kind] = definition
        self._schema_cache = None

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def kinds(self) -> list[str]:
        return list(self._definitions)

    @property
    def definitions(self) -> list[ActionDefinition]:
        return list(self._definitions.values())

    def __contains__(self, kind: object) -> bool:
        return kind in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)

    def lookup(self, kind: str) -> Optional[ActionDefinition]:
        return self._definitions.get(kind)

    def validate(self, raw: Mapping[str, Any]) -> BaseModel:
        """Validate one complete action object against its kind's validator.

        Raises ``RegistryError`` for unknown kinds and pydantic's
        ``ValidationError`` for field errors.
        """
        kind = raw.get(ACTION_KIND_FIELD)
        definition = self._definitions.get(kind) if isinstance(kind, str) else None
        if definition is None:
            raise RegistryError(f"Unknown action kind: {kind!r}")
        return definition.validator.model_validate(dict(raw))

    def describe(self, action: BaseModel | Mapping[str, Any]) -> ActionInfo:
        if isinstance(action, BaseModel):
            kind = getattr(action, ACTION_KIND_FIELD, None)
        else:
            kind = action.get(ACTION_KIND_FIELD)
        definition = self._definitions.get(kind) if isinstance(kind, str) else None

        if definition is not None and definition.describe is not None and isinstance(action, BaseModel):
            return definition.describe(action)
        return ActionInfo(icon=DEFAULT_ACTION_ICON, description=str(kind or "action"))

    def build_union_schema(self) -> Optional[dict[str, Any]]:
        """JSON schema of ``{"actions": [<union of validators>]}``.

        Returns None with fewer than two registered kinds.
        """
        if len(self._definitions) < 2:
            return None
        if self._schema_cache is None:
            members = tuple(d.validator for d in self._definitions.values())
            union = Annotated[Union[members], Field(discriminator=ACTION_KIND_FIELD)]
            envelope = create_model(
                "AgentResponse",
                **{ACTIONS_ENVELOPE_KEY: (list[union], ...)},
            )
            self._schema_cache = _inline_refs(envelope.model_json_schema())
        return copy.deepcopy(self._schema_cache)

    def get_combined_schema(
        self, override_schema: Optional[str] = None
    ) -> Optional[dict[str, Any]]:
        """Return the override schema when it is a valid JSON object.

        A malformed override is logged and ignored in favour of the generated
        union.
        """
        if override_schema and override_schema.strip():
            try:
                parsed = json.loads(override_schema)
            except ValueError as e:
                parsed = None
                reason = str(e)
            else:
                reason = "not a JSON object"
            if isinstance(parsed, dict):
                return parsed
            log_event(
                "schema_override_invalid",
                level=logging.WARNING,
                error=reason,
                override_preview=summarize_text(override_schema, 120),
            )
        return self.build_union_schema()
