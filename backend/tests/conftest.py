"""
Fixtures for the Text2SQL tests.

Two in-memory SQLite datasources stand in for the MySQL backends,
and a scripted completion client stands in for the language model.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text
from sqlalchemy.pool import StaticPool

from text2sql.database import get_router
from text2sql.main import app
from text2sql.routes.query import get_pipeline
from text2sql.services.datasource_router import DataSourceRouter
from text2sql.services.db_connector import QueryExecutor
from text2sql.services.pipeline import Text2SqlPipeline

HR_SCHEMA = [
    "CREATE TABLE department ("
    " id INTEGER PRIMARY KEY,"
    " name TEXT NOT NULL)",
    "CREATE TABLE employee ("
    " id INTEGER PRIMARY KEY,"
    " name TEXT NOT NULL,"
    " dept TEXT NOT NULL,"
    " salary INTEGER,"
    " department_id INTEGER REFERENCES department(id))",
    "INSERT INTO department (id, name) VALUES (1, 'sales'), (2, 'engineering')",
    "INSERT INTO employee (id, name, dept, salary, department_id) VALUES"
    " (1, 'Alice', 'sales', 5000, 1),"
    " (2, 'Bob', 'engineering', 7000, 2),"
    " (3, 'Carol', 'sales', 5500, 1)",
]

SALES_SCHEMA = [
    "CREATE TABLE orders ("
    " id INTEGER PRIMARY KEY,"
    " amount REAL,"
    " status TEXT)",
    "INSERT INTO orders (id, amount, status) VALUES"
    " (1, 10.5, 'paid'), (2, 20.0, 'pending')",
]


class FakeCompletion:
    """
    Scripted completion client.

    Each call pops the next response: a string is returned as is,
    an exception instance is raised, and a callable is called with
    the prompt.  Every prompt is recorded in ``prompts``.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.prompts = []

    @property
    def calls(self):
        return len(self.prompts)

    def complete(self, prompt):
        self.prompts.append(prompt)
        if not self.responses:
            raise AssertionError(f"unexpected completion call: {prompt}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(prompt)
        return response


def make_executor(name, statements, max_rows=1000):
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    with engine.begin() as connection:
        for statement in statements:
            connection.execute(text(statement))
    return QueryExecutor(name, engine, max_rows=max_rows)


# Datasources
@pytest.fixture
def hr_db():
    executor = make_executor("hr", HR_SCHEMA)
    yield executor
    executor.dispose()


@pytest.fixture
def sales_db():
    executor = make_executor("sales", SALES_SCHEMA)
    yield executor
    executor.dispose()


@pytest.fixture
def router(hr_db, sales_db):
    return DataSourceRouter(
        {"hr": hr_db, "sales": sales_db},
        default="hr",
        aliases={"people": "hr", "orders": "sales"},
        read_pool=["hr", "sales"],
    )


# Completion
@pytest.fixture
def completion_factory():
    return FakeCompletion


@pytest.fixture
def make_pipeline(router):
    def _make(completion, **kwargs):
        kwargs.setdefault("router", router)
        return Text2SqlPipeline(completion, **kwargs)
    return _make


# Client
@pytest.fixture
def api(router):
    """
    Test client whose pipeline is driven by a scripted completion.

    Returns a ``(client, completion)`` pair; queue responses on the
    completion before issuing requests.
    """
    completion = FakeCompletion()
    pipeline = Text2SqlPipeline(completion, router=router)

    app.dependency_overrides[get_router] = lambda: router
    app.dependency_overrides[get_pipeline] = lambda: pipeline

    yield TestClient(app), completion

    app.dependency_overrides.clear()
