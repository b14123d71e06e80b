"""
Intent dispatch for editor routes.

Every editor form carries an `intent` field. Each editor declares one pydantic
model per command, whose `intent` is a Literal of the intent values it
accepts, and a handler per model:

    class UpsertIncident(HTTPSchemaModel):
        intent: Literal["add", "edit"]
        ...

    class DeleteIncident(HTTPSchemaModel):
        intent: Literal["delete"]
        id: str

    IncidentCommand = Union[UpsertIncident, DeleteIncident]

    dispatcher = CommandDispatcher(
        IncidentCommand,
        {UpsertIncident: upsert_incident, DeleteIncident: delete_incident},
    )

Building a dispatcher fails unless every member of the union has exactly one
handler and no two members claim the same intent value.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Generic, Mapping, Type, TypeVar, get_args

from fastapi import HTTPException, status
from pydantic import BaseModel

from core.forms import validate_model

logger = logging.getLogger(__name__)

R = TypeVar("R")
Handler = Callable[..., Awaitable[Any]]

INTENT_FIELD = "intent"


class CommandDispatcher(Generic[R]):
    """Routes a parsed form to the handler for its intent."""

    def __init__(self, union: Any, handlers: Mapping[Type[BaseModel], Handler]):
        members = get_args(union) or (union,)
        missing = [m.__name__ for m in members if m not in handlers]
        extra = [h.__name__ for h in handlers if h not in members]
        if missing or extra:
            raise TypeError(
                f"Command handlers do not match the union | Missing: {missing} | Unknown: {extra}"
            )

        self._by_intent: Dict[str, Type[BaseModel]] = {}
        for member in members:
            field = member.model_fields.get(INTENT_FIELD)
            if field is None:
                raise TypeError(f"{member.__name__} has no '{INTENT_FIELD}' field")
            for value in get_args(field.annotation):
                if value in self._by_intent:
                    raise TypeError(
                        f"Intent '{value}' claimed by both "
                        f"{self._by_intent[value].__name__} and {member.__name__}"
                    )
                self._by_intent[value] = member

        self._handlers = dict(handlers)

    @property
    def intents(self) -> tuple:
        return tuple(self._by_intent)

    def parse(self, data: Dict[str, Any]) -> BaseModel:
        """
        Select the command model by `intent` and validate the form against it.

        Raises:
            HTTPException: 400 for a missing or unknown intent
            FormValidationError: The payload does not fit the command
        """
        intent = data.get(INTENT_FIELD)
        command_type = self._by_intent.get(intent) if isinstance(intent, str) else None
        if command_type is None:
            logger.warning(f"Unknown intent | Intent: {intent} | Allowed: {self.intents}")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid intent: {intent}",
            )
        return validate_model(command_type, data)

    async def dispatch(self, command: BaseModel, *args: Any, **kwargs: Any) -> R:
        handler = self._handlers[type(command)]
        logger.debug(f"Dispatching command | Type: {type(command).__name__}")
        return await handler(command, *args, **kwargs)

    async def handle(self, data: Dict[str, Any], *args: Any, **kwargs: Any) -> R:
        """Parse then dispatch."""
        return await self.dispatch(self.parse(data), *args, **kwargs)
