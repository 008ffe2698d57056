"""
Deterministic record identities.

Every indexed record gets a name-based UUID (version 5) computed from a
colon-joined seed:

    chunk            {paper_id}:{chunk_id}
    figure           {paper_id}:{figure_id}
    citation         {paper_id}:{citation_id}
    persona concept  {user_id}:{concept}
    interaction      {user_id}:{paper_id}:{interaction_type}:{prompt}

Re-ingesting the same paper therefore overwrites records instead of
duplicating them. Records keyed by a user or paper that may be missing
(anonymous sessions) get a random component in place of the missing value so
that two anonymous records never collide.
"""

import uuid
from typing import Optional

ID_NAMESPACE = "readable"

_NAMESPACE_UUID = uuid.NAMESPACE_DNS


def generate_uuid5(seed: str, namespace: str = ID_NAMESPACE) -> str:
    """UUID5 of ``namespace + seed``; identical input gives an identical id."""
    return str(uuid.uuid5(_NAMESPACE_UUID, f"{namespace}{seed}"))


def _require(value: Optional[str], name: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError(f"{name} is required to build a record id")
    return value


def _or_random(value: Optional[str]) -> str:
    value = (value or "").strip()
    if value:
        return value
    # Anonymous record: a random component keeps it from colliding with others.
    return uuid.uuid4().hex


def build_chunk_uuid(paper_id: str, chunk_id: str) -> str:
    return generate_uuid5(f"{_require(paper_id, 'paper_id')}:{_require(chunk_id, 'chunk_id')}")


def build_figure_uuid(paper_id: str, figure_id: str) -> str:
    return generate_uuid5(f"{_require(paper_id, 'paper_id')}:{_require(figure_id, 'figure_id')}")


def build_citation_uuid(paper_id: str, citation_id: str) -> str:
    return generate_uuid5(
        f"{_require(paper_id, 'paper_id')}:{_require(citation_id, 'citation_id')}"
    )


def build_persona_concept_uuid(user_id: Optional[str], concept: str) -> str:
    return generate_uuid5(f"{_or_random(user_id)}:{_require(concept, 'concept')}")


def build_interaction_uuid(
    user_id: Optional[str],
    paper_id: Optional[str],
    interaction_type: str,
    prompt: str,
) -> str:
    seed = ":".join([
        _or_random(user_id),
        _or_random(paper_id),
        _require(interaction_type, "interaction_type"),
        prompt or "",
    ])
    return generate_uuid5(seed)


def build_cache_key(
    task: str,
    paper_id: Optional[str],
    user_id: Optional[str],
    *parts: str,
) -> str:
    """
    Cache key for a derived result (summary, answer) of a request.

    Args:
        task: Kind of derived result, e.g. "selection-summary"
        paper_id: Paper the request is about
        user_id: Requesting user
        parts: Additional request components (prompt, selection text)
    """
    seed = ":".join([
        _require(task, "task"),
        _or_random(user_id),
        _or_random(paper_id),
        *parts,
    ])
    return generate_uuid5(seed)
