"""
Tests for the OpenAI completion adapter and the database tools.

The OpenAI client is replaced with a stub that replays scripted chat
completion responses.
"""

import json
from types import SimpleNamespace

import pytest

from text2sql.errors import GenerationFailure
from text2sql.services.database_tools import TOOL_SPECS, DatabaseTools
from text2sql.services.llm import OpenAICompletionClient


def reply(content=None, tool_calls=None):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def tool_call(call_id, name, arguments):
    return SimpleNamespace(
        id=call_id,
        function=SimpleNamespace(name=name, arguments=json.dumps(arguments)),
    )


class StubOpenAI:
    """Replays responses from ``chat.completions.create``."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []
        self.chat = SimpleNamespace(
            completions=SimpleNamespace(create=self._create),
        )

    def _create(self, **request):
        # Snapshot the messages; the adapter keeps appending to the list.
        self.requests.append({
            **request,
            "messages": [dict(m) for m in request["messages"]],
        })
        return self.responses.pop(0)


class TestCompletionClient:

    def test_plain_reply(self):
        stub = StubOpenAI(reply("SELECT 1"))
        client = OpenAICompletionClient(client=stub, model="test-model")

        assert client.complete("question") == "SELECT 1"
        request = stub.requests[0]
        assert request["model"] == "test-model"
        assert request["messages"] == [
            {"role": "user", "content": "question"},
        ]
        assert "tools" not in request

    def test_none_content_is_empty_string(self):
        client = OpenAICompletionClient(client=StubOpenAI(reply(None)))
        assert client.complete("question") == ""

    def test_tool_round_trip(self, router):
        stub = StubOpenAI(
            reply(tool_calls=[tool_call("call_1", "getTableNames", {})]),
            reply("employee, department"),
        )
        client = OpenAICompletionClient(
            tools=DatabaseTools(router), client=stub,
        )

        assert client.complete("which tables?") == "employee, department"
        assert stub.requests[0]["tools"] == TOOL_SPECS

        messages = stub.requests[1]["messages"]
        assert [m["role"] for m in messages] == ["user", "assistant", "tool"]
        assert messages[1]["tool_calls"][0]["function"]["name"] == (
            "getTableNames"
        )
        assert messages[2]["tool_call_id"] == "call_1"
        assert json.loads(messages[2]["content"]) == ["department", "employee"]

    def test_tool_round_limit(self, router):
        looping = reply(tool_calls=[tool_call("c", "getTableNames", {})])
        stub = StubOpenAI(looping, looping, looping)
        client = OpenAICompletionClient(
            tools=DatabaseTools(router), client=stub, max_tool_rounds=2,
        )

        with pytest.raises(GenerationFailure):
            client.complete("loop forever")
        assert len(stub.requests) == 3


class TestDatabaseTools:

    def test_execute_query(self, router):
        tools = DatabaseTools(router)
        result = json.loads(tools.call(
            "executeQuery",
            json.dumps({"sql": "SELECT COUNT(*) AS n FROM employee"}),
        ))
        assert result == [{"n": 3}]

    def test_execute_query_rejects_unsafe_sql(self, router, hr_db):
        tools = DatabaseTools(router)
        result = json.loads(tools.call(
            "executeQuery", json.dumps({"sql": "DROP TABLE employee"}),
        ))
        assert result["error"] == "SQL rejected: disallowed keyword: DROP"
        assert hr_db.get_table_names() == ["department", "employee"]

    def test_follows_active_datasource(self, router):
        tools = DatabaseTools(router)
        with router.use_datasource("sales"):
            assert json.loads(tools.call("getTableNames", "{}")) == ["orders"]
        assert json.loads(tools.call("getTableNames", "")) == [
            "department", "employee",
        ]

    def test_table_schema_and_columns(self, router):
        tools = DatabaseTools(router)
        schema = json.loads(tools.call(
            "getTableSchema", json.dumps({"tableName": "department"}),
        ))
        assert schema["tables"][0]["name"] == "department"

        columns = json.loads(tools.call(
            "getTableColumns", json.dumps({"tableName": "department"}),
        ))
        assert [col["name"] for col in columns] == ["id", "name"]

        database = json.loads(tools.call("getDatabaseSchema", "{}"))
        assert len(database["tables"]) == 2

    def test_unknown_tool(self, router):
        result = json.loads(DatabaseTools(router).call("dropEverything", "{}"))
        assert result == {"error": "unknown tool: dropEverything"}

    def test_tool_errors_are_reported(self, router):
        result = json.loads(DatabaseTools(router).call(
            "getTableSchema", json.dumps({"tableName": "missing"}),
        ))
        assert "missing" in result["error"]
