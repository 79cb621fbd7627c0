"""
Unit tests for the retrieval engine

- Topic description text for a rule
- Qdrant ranking over the chunks of the blueprint's materials
- Empty context when there is nothing to retrieve
"""
import pytest

from generation.errors import RetrievalError
from generation.retrieval_engine import (
    CONTEXT_SEPARATOR,
    build_topic_description,
    retrieve_context,
)


class TestTopicDescription:

    def test_description_with_tags_and_difficulty(self, make_blueprint):
        blueprint = make_blueprint([("Mathematics", [
            {"type": "mcq_single", "difficulty": 3, "count": 5, "tags": ["Algebra", "Linear Equations"]},
        ])])
        rule = blueprint.sections[0].rules[0]

        assert build_topic_description(rule) == (
            "Generate a mcq_single question about Algebra, Linear Equations. Difficulty level: 3."
        )

    def test_description_defaults(self, make_blueprint):
        blueprint = make_blueprint([("General", [{"type": "numerical", "count": 1}])])
        rule = blueprint.sections[0].rules[0]

        assert build_topic_description(rule) == (
            "Generate a numerical question about General Knowledge. Difficulty level: medium."
        )


class TestRetrieveContext:

    def test_ranks_by_similarity_and_limits(self, db_session, make_material):
        material = make_material([
            ("Far chunk about geometry and angles in triangles.", [0.0, 1.0, 0.0]),
            ("Closest chunk about solving linear equations.", [1.0, 0.0, 0.0]),
            ("Middle chunk about algebraic identities and factoring.", [0.7, 0.7, 0.0]),
        ])

        context = retrieve_context(db_session, [material.id], [1.0, 0.0, 0.0], top_k=2)

        assert context.text == CONTEXT_SEPARATOR.join([
            "Closest chunk about solving linear equations.",
            "Middle chunk about algebraic identities and factoring.",
        ])
        assert context.chunk_ids == [material.chunks[1].id, material.chunks[2].id]
        assert context.is_empty is False

    def test_only_blueprint_materials_are_searched(self, db_session, make_material):
        wanted = make_material([("Algebra text that belongs to the blueprint.", [0.5, 0.5, 0.0])], title="Wanted")
        make_material([("Other material that matches the query exactly.", [1.0, 0.0, 0.0])], title="Other")

        context = retrieve_context(db_session, [wanted.id], [1.0, 0.0, 0.0])

        assert context.chunk_ids == [wanted.chunks[0].id]

    def test_unindexed_chunks_are_not_returned(self, db_session, make_material):
        material = make_material([
            ("Chunk without an embedding vector stored yet.", None),
            ("Chunk with the right dimension for the query.", [0.0, 0.0, 1.0]),
        ])

        context = retrieve_context(db_session, [material.id], [1.0, 0.0, 0.0])

        assert context.chunk_ids == [material.chunks[1].id]

    def test_ties_follow_chunk_order(self, db_session, make_material):
        material = make_material([
            ("First equally similar chunk of reference text.", [1.0, 0.0, 0.0]),
            ("Second equally similar chunk of reference text.", [2.0, 0.0, 0.0]),
        ])

        context = retrieve_context(db_session, [material.id], [1.0, 0.0, 0.0])

        assert context.chunk_ids == [c.id for c in material.chunks]

    def test_query_dimension_mismatch_is_a_retrieval_error(self, db_session, make_material):
        material = make_material([("Linear equations in one variable have one solution.", [1.0, 0.0, 0.0])])

        with pytest.raises(RetrievalError) as exc:
            retrieve_context(db_session, [material.id], [1.0, 0.0])

        assert exc.value.stage == "retrieving"

    def test_nothing_indexed_gives_empty_context(self, db_session):
        context = retrieve_context(db_session, [1], [1.0, 0.0, 0.0])

        assert context.is_empty
        assert context.chunk_ids == []

    def test_no_materials_gives_empty_context(self, db_session):
        context = retrieve_context(db_session, [], [1.0, 0.0, 0.0])

        assert context.is_empty
        assert context.chunk_ids == []
