"""
Shared fixtures for zero_models tests.

Every test runs in its own temporary working directory so the default
``config/zero_generator.yml`` and polymorphic config lookups never see
files from the repository.
"""

import copy
import json
import logging

import pytest

from zero_models import logging_config
from zero_models.codegen.core.schema import SchemaData, StaticIntrospector
from zero_models.codegen.migration import reset_feature_flags


SAMPLE_SCHEMA = {
    "tables": [
        {
            "name": "users",
            "primary_key": "id",
            "columns": [
                {"name": "id", "type": "uuid", "null": False, "default": "gen_random_uuid()"},
                {"name": "email", "type": "string", "null": False, "comment": "Login address"},
                {"name": "name", "type": "string", "null": True},
                {
                    "name": "status",
                    "type": "string",
                    "null": False,
                    "default": "active",
                    "enum": True,
                    "enum_values": ["active", "disabled"],
                },
                {"name": "created_at", "type": "datetime", "null": False},
                {"name": "updated_at", "type": "datetime", "null": False},
            ],
        },
        {
            "name": "jobs",
            "primary_key": "id",
            "columns": [
                {"name": "id", "type": "uuid", "null": False},
                {"name": "title", "type": "string", "null": False},
                {"name": "user_id", "type": "uuid", "null": True},
                {"name": "priority", "type": "integer", "null": True, "default": "0"},
                {"name": "metadata", "type": "jsonb", "null": True, "default": "{}"},
                {"name": "discarded_at", "type": "datetime", "null": True},
                {"name": "created_at", "type": "datetime", "null": False},
                {"name": "updated_at", "type": "datetime", "null": False},
            ],
        },
        {
            "name": "notes",
            "primary_key": "id",
            "columns": [
                {"name": "id", "type": "uuid", "null": False},
                {"name": "content", "type": "text", "null": True},
                {"name": "notable_type", "type": "string", "null": True},
                {"name": "notable_id", "type": "uuid", "null": True},
                {"name": "created_at", "type": "datetime", "null": False},
                {"name": "updated_at", "type": "datetime", "null": False},
            ],
        },
        {
            "name": "schema_migrations",
            "columns": [{"name": "version", "type": "string", "null": False}],
        },
    ],
    "relationships": [
        {
            "table": "users",
            "model": "User",
            "has_many": [
                {"name": "jobs", "target_table": "jobs", "foreign_key": "user_id"},
                {"name": "notes", "target_table": "notes", "as": "notable"},
            ],
        },
        {
            "table": "jobs",
            "model": "Job",
            "belongs_to": [{"name": "user", "target_table": "users", "foreign_key": "user_id"}],
            "has_many": [{"name": "notes", "target_table": "notes", "as": "notable"}],
        },
        {
            "table": "notes",
            "model": "Note",
            "belongs_to": [
                {"name": "notable", "polymorphic": True, "foreign_key": "notable_id"},
            ],
        },
    ],
    "patterns": {
        "jobs": {"soft_deletion": {"column": "discarded_at"}},
    },
    "indexes": {},
    "constraints": {},
}


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    """Run each test from an empty working directory."""
    workdir = tmp_path / "work"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    monkeypatch.delenv("ZERO_GENERATOR_ENV", raising=False)
    for name in ("MIGRATION_NEW_PIPELINE_PCT", "MIGRATION_NEW_PIPELINE_TABLES",
                 "MIGRATION_MANUAL_OVERRIDE", "MIGRATION_ENABLE_CANARY",
                 "MIGRATION_CANARY_SAMPLE_RATE", "MIGRATION_CIRCUIT_BREAKER",
                 "MIGRATION_ERROR_THRESHOLD"):
        monkeypatch.delenv(name, raising=False)
    return workdir


@pytest.fixture(autouse=True)
def reset_logging_and_flags():
    """Undo CLI logging setup and the process-wide flags between tests."""
    yield
    logger = logging.getLogger(logging_config.ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
    logging_config._configured = False
    reset_feature_flags()


@pytest.fixture
def raw_schema():
    """A deep copy of the sample snapshot, safe to mutate."""
    return copy.deepcopy(SAMPLE_SCHEMA)


@pytest.fixture
def schema(raw_schema):
    return SchemaData.from_dict(raw_schema)


@pytest.fixture
def introspector(raw_schema):
    return StaticIntrospector(raw_schema)


@pytest.fixture
def schema_file(tmp_path, raw_schema):
    path = tmp_path / "schema.json"
    path.write_text(json.dumps(raw_schema), encoding="utf-8")
    return path


@pytest.fixture
def output_dir(tmp_path):
    return tmp_path / "models"


@pytest.fixture
def run_options(output_dir):
    """Options for an isolated, formatter-free generation run."""
    return {"output_dir": str(output_dir), "skip_prettier": True}
