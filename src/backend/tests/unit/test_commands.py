"""
Unit tests for editor intent dispatch.
"""

from typing import Literal, Union

import pytest
from fastapi import HTTPException

from core.commands import CommandDispatcher
from core.forms import FormValidationError
from core.schema_base import HTTPSchemaModel


class AddThing(HTTPSchemaModel):
    intent: Literal["add", "edit"]
    name: str


class RemoveThing(HTTPSchemaModel):
    intent: Literal["delete"]
    id: str


ThingCommand = Union[AddThing, RemoveThing]


async def _add(command, calls):
    calls.append(("add", command.intent, command.name))
    return "added"


async def _remove(command, calls):
    calls.append(("remove", command.id))
    return "removed"


class TestDispatcherConstruction:
    def test_handlers_must_cover_union(self):
        with pytest.raises(TypeError, match="Missing"):
            CommandDispatcher(ThingCommand, {AddThing: _add})

    def test_unknown_handler_rejected(self):
        class Other(HTTPSchemaModel):
            intent: Literal["other"]

        with pytest.raises(TypeError, match="Unknown"):
            CommandDispatcher(ThingCommand, {AddThing: _add, RemoveThing: _remove, Other: _add})

    def test_intent_claimed_twice_rejected(self):
        class AlsoDelete(HTTPSchemaModel):
            intent: Literal["delete", "purge"]

        with pytest.raises(TypeError, match="claimed by both"):
            CommandDispatcher(
                Union[RemoveThing, AlsoDelete], {RemoveThing: _remove, AlsoDelete: _remove}
            )

    def test_intents(self):
        dispatcher = CommandDispatcher(ThingCommand, {AddThing: _add, RemoveThing: _remove})

        assert set(dispatcher.intents) == {"add", "edit", "delete"}


class TestDispatch:
    @pytest.mark.asyncio
    async def test_routes_by_intent_with_extra_args(self):
        dispatcher = CommandDispatcher(ThingCommand, {AddThing: _add, RemoveThing: _remove})
        calls = []

        assert await dispatcher.handle({"intent": "edit", "name": "Desk"}, calls) == "added"
        assert await dispatcher.handle({"intent": "delete", "id": "x1"}, calls) == "removed"
        assert calls == [("add", "edit", "Desk"), ("remove", "x1")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("data", [{}, {"intent": "archive"}, {"intent": ["add"]}])
    async def test_unknown_intent_is_400(self, data):
        dispatcher = CommandDispatcher(ThingCommand, {AddThing: _add, RemoveThing: _remove})

        with pytest.raises(HTTPException) as exc_info:
            await dispatcher.handle(data, [])

        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_invalid_payload_is_form_error(self):
        dispatcher = CommandDispatcher(ThingCommand, {AddThing: _add, RemoveThing: _remove})

        with pytest.raises(FormValidationError) as exc_info:
            await dispatcher.handle({"intent": "delete"}, [])

        assert "id" in exc_info.value.errors
