"""Tests for the TypeScript model generator and its templates."""

import pytest
import yaml

from zero_models.codegen.core.context import GenerationContext
from zero_models.codegen.core.generator import GeneratedModel
from zero_models.codegen.core.schema import SchemaData
from zero_models.codegen.languages.typescript.generator import TypeScriptModelGenerator
from zero_models.codegen.languages.typescript.polymorphic import PolymorphicConfigLoader

FIXED_TIMESTAMP = "2025-01-01 12:00:00 UTC"


@pytest.fixture
def generator():
    return TypeScriptModelGenerator(clock=lambda: FIXED_TIMESTAMP)


def model_set(generator, schema, table, **options):
    context = GenerationContext(table=schema.table(table), schema=schema, options=options)
    return generator.generate_model_set(context)


class TestDataInterface:
    def test_files_for_table(self, generator, schema):
        files = model_set(generator, schema, "users")
        assert sorted(files) == ["reactive-user.ts", "types/user-data.ts", "user.ts"]
        assert all(content.endswith("}\n") or content.endswith(";\n") for content in files.values())

    def test_columns(self, generator, schema):
        data = model_set(generator, schema, "users")["types/user-data.ts"]
        assert "export interface UserData {\n" in data
        assert "  id: string;\n" in data
        assert "  email: string; // Login address\n" in data
        assert "  name?: string;\n" in data
        assert "  status: 'active' | 'disabled';\n" in data
        assert "  created_at: string | number;\n" in data
        assert f"Generated from Rails schema: {FIXED_TIMESTAMP}" in data

    def test_relationship_properties_and_imports(self, generator, schema):
        data = model_set(generator, schema, "users")["types/user-data.ts"]
        assert "import type { JobData } from './job-data';" in data
        assert "import type { NoteData } from './note-data';" in data
        assert "  jobs?: JobData[]; // has_many\n" in data
        assert " * - jobs: has_many Job" in data

    def test_create_and_update_types_omit_relationships(self, generator, schema):
        data = model_set(generator, schema, "users")["types/user-data.ts"]
        omitted = "'id' | 'created_at' | 'updated_at' | 'jobs' | 'notes'"
        assert f"export type CreateUserData = Omit<UserData, {omitted}>;" in data
        assert f"export type UpdateUserData = Partial<Omit<UserData, {omitted}>>;" in data

    def test_enums_can_be_disabled(self, generator, schema):
        data = model_set(generator, schema, "users", generate_enums=False)["types/user-data.ts"]
        assert "  status: string;\n" in data

    def test_relationships_can_be_disabled(self, generator, schema):
        data = model_set(generator, schema, "users", generate_relationships=False)["types/user-data.ts"]
        assert "JobData" not in data
        assert "Omit<UserData, 'id' | 'created_at' | 'updated_at'>" in data


class TestModels:
    def test_active_model(self, generator, schema):
        active = model_set(generator, schema, "users")["user.ts"]
        assert "export const User = createActiveRecord<UserData>(UserConfig);" in active
        assert "  supportsDiscard: false,\n" in active
        assert "  defaults: {\n    status: 'active',\n  },\n" in active
        assert "registerModelRelationships('users', {" in active
        assert "  jobs: { type: 'hasMany', model: 'Job' }," in active

    def test_detected_soft_deletion_pattern(self, generator, raw_schema):
        """A soft-deletion pattern enables discard support unless pattern detection is off."""
        raw_schema["patterns"]["notes"] = {"soft_deletion": {"column": "archived_at"}}
        schema = SchemaData.from_dict(raw_schema)
        assert "  supportsDiscard: true,\n" in model_set(generator, schema, "notes")["note.ts"]
        disabled = model_set(generator, schema, "notes", enable_pattern_detection=False)
        assert "  supportsDiscard: false,\n" in disabled["note.ts"]

    def test_discard_support(self, generator, schema):
        files = model_set(generator, schema, "jobs")
        assert "  supportsDiscard: true,\n" in files["job.ts"]
        assert " * const kept = await Job.kept().all();" in files["job.ts"]
        assert "  defaults: {\n    metadata: {},\n    priority: 0,\n  },\n" in files["job.ts"]

    def test_reactive_model(self, generator, schema):
        reactive = model_set(generator, schema, "users")["reactive-user.ts"]
        assert "import './user';" in reactive
        assert "export const ReactiveUser = createReactiveRecord<UserData>(ReactiveUserConfig);" in reactive

    def test_model_without_relationships(self, generator, schema):
        active = model_set(generator, schema, "notes")["note.ts"]
        assert "// No relationships defined for this model" in active
        assert "registerModelRelationships" not in active

    def test_polymorphic_declaration(self, schema, tmp_path):
        path = tmp_path / "poly.yml"
        path.write_text(yaml.safe_dump({
            "polymorphic_associations": {
                "notes.notable": {
                    "type_column": "notable_type",
                    "id_column": "notable_id",
                    "potential_types": ["Job", "User"],
                },
            },
        }), encoding="utf-8")
        generator = TypeScriptModelGenerator(
            polymorphic_loader=PolymorphicConfigLoader(path), clock=lambda: FIXED_TIMESTAMP,
        )
        files = model_set(generator, schema, "notes")
        assert "  notable_type?: 'Job' | 'User';\n" in files["types/note-data.ts"]
        assert "import { declarePolymorphicRelationships } from '../zero/polymorphic';" in files["note.ts"]
        assert "      allowedTypes: ['job', 'user'],\n" in files["note.ts"]


class TestIndex:
    def test_index_is_sorted(self, generator):
        index = generator.render_index([
            GeneratedModel("users", "User", "user"),
            GeneratedModel("jobs", "Job", "job"),
        ])
        assert index.index("export { Job } from './job';") < index.index("export { User } from './user';")
        assert "export { ReactiveUser } from './reactive-user';" in index
        assert index.endswith(";\n")

    def test_template_variables(self, generator):
        variables = generator.template_variables()
        assert "models" in variables["index.ts.j2"]
        assert "omit_keys" in variables["data_interface.ts.j2"]
