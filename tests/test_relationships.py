"""Tests for relationship fragment rendering."""

from zero_models.codegen.core.schema import Relationship, TableRelationships
from zero_models.codegen.languages.typescript.relationships import (
    NO_RELATIONSHIPS,
    RelationshipProcessor,
)


def job_relationships():
    return TableRelationships(
        table="jobs",
        model="Job",
        belongs_to=(
            Relationship("belongs_to", "client", target_table="clients"),
            Relationship("belongs_to", "parent_job", target_table="jobs"),
        ),
        has_many=(
            Relationship("has_many", "job_targets", target_table="job_targets"),
            Relationship("has_many", "technicians", target_table="users", through="job_assignments"),
            Relationship("has_many", "assigned_users", target_table="users"),
            Relationship("has_many", "audits", target_table="versions"),
        ),
    )


class TestRelationshipProcessor:
    def test_properties(self):
        fragments = RelationshipProcessor(job_relationships(), "jobs").process_all()
        assert fragments.properties.splitlines() == [
            "  client?: ClientData; // belongs_to",
            "  parentJob?: JobData; // belongs_to",
            "  jobTargets?: JobTargetData[]; // has_many",
            "  technicians?: UserData[]; // has_many",
            "  assignedUsers?: UserData[]; // has_many",
        ]
        assert fragments.property_names == (
            "client", "parentJob", "jobTargets", "technicians", "assignedUsers",
        )

    def test_excluded_targets_are_dropped(self):
        """``versions`` is an infrastructure table and never becomes a property."""
        fragments = RelationshipProcessor(job_relationships(), "jobs").process_all()
        assert "audits" not in fragments.properties

    def test_imports_are_deduplicated_and_skip_self(self):
        imports = RelationshipProcessor(job_relationships(), "jobs").process_all().imports
        assert imports.splitlines() == [
            "import type { ClientData } from './client-data';",
            "import type { JobTargetData } from './job-target-data';",
            "import type { UserData } from './user-data';",
        ]

    def test_exclusions(self):
        fragments = RelationshipProcessor(job_relationships(), "jobs").process_all()
        assert fragments.exclusions == (
            ", 'client', 'parentJob', 'jobTargets', 'technicians', 'assignedUsers'"
        )

    def test_documentation_mentions_through(self):
        documentation = RelationshipProcessor(job_relationships(), "jobs").process_all().documentation
        lines = documentation.splitlines()
        assert lines[0] == " * Relationships (loaded via includes()):"
        assert " * - technicians: has_many User, through: job_assignments" in lines

    def test_registration(self):
        registration = RelationshipProcessor(job_relationships(), "jobs").process_all().registration
        assert registration.startswith("registerModelRelationships('jobs', {\n")
        assert "  client: { type: 'belongsTo', model: 'Client' },\n" in registration
        assert "  jobTargets: { type: 'hasMany', model: 'JobTarget' },\n" in registration
        assert registration.endswith("});")

    def test_unknown_targets_are_dropped(self):
        """With ``known_tables`` set, dangling targets disappear."""
        processor = RelationshipProcessor(
            job_relationships(), "jobs", known_tables=["jobs", "users", "job_targets"],
        )
        assert "client" not in processor.process_all().property_names

    def test_no_relationships(self):
        fragments = RelationshipProcessor(None, "tags").process_all()
        assert not fragments.has_relationships
        assert fragments.registration == NO_RELATIONSHIPS
        assert fragments.imports == ""

    def test_polymorphic_belongs_to_without_target_is_skipped(self):
        rels = TableRelationships(
            table="notes",
            belongs_to=(Relationship("belongs_to", "notable", polymorphic=True),),
        )
        assert RelationshipProcessor(rels, "notes").process_all().properties == ""
