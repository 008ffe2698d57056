"""
Index class definitions.

Five classes are kept in the index. Paper-scoped classes carry ``paperId``
on every record so queries can be partitioned by paper:

    PaperChunk      retrieval units (vector + BM25 over text and section)
    Figure          figure/table captions
    Citation        bibliography entries
    PersonaConcept  concepts a user has learned
    Interaction     questions and follow-ups tied to a paper

Definitions use Weaviate's schema format. The local backend reads the same
definitions to know which properties are searchable text.
"""

from typing import Any

TEXT_MODULE = "text2vec-openai"

PAPER_CHUNK_CLASS = "PaperChunk"
FIGURE_CLASS = "Figure"
CITATION_CLASS = "Citation"
PERSONA_CONCEPT_CLASS = "PersonaConcept"
INTERACTION_CLASS = "Interaction"

PAPER_SCOPED_CLASSES = (PAPER_CHUNK_CLASS, FIGURE_CLASS, CITATION_CLASS)


def text_property(name: str, description: str, vectorize: bool = True) -> dict[str, Any]:
    prop: dict[str, Any] = {
        "name": name,
        "description": description,
        "dataType": ["text"],
        "tokenization": "word",
    }
    if not vectorize:
        prop["moduleConfig"] = {TEXT_MODULE: {"skip": True}}
    return prop


def text_array_property(name: str, description: str) -> dict[str, Any]:
    return {
        "name": name,
        "description": description,
        "dataType": ["text[]"],
        "tokenization": "word",
        "moduleConfig": {TEXT_MODULE: {"skip": True}},
    }


def scalar_property(name: str, description: str, data_type: str) -> dict[str, Any]:
    return {"name": name, "description": description, "dataType": [data_type]}


def _class(name: str, description: str, properties: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "class": name,
        "description": description,
        "vectorizer": TEXT_MODULE,
        "moduleConfig": {TEXT_MODULE: {"vectorizeClassName": False}},
        "vectorIndexConfig": {"distance": "cosine"},
        "invertedIndexConfig": {"bm25": {"k1": 1.2, "b": 0.75}},
        "properties": properties,
    }


SCHEMA_CLASSES: list[dict[str, Any]] = [
    _class(PAPER_CHUNK_CLASS, "Chunk of paper text used for retrieval.", [
        text_property("paperId", "Paper identifier.", vectorize=False),
        text_property("chunkId", "Chunk identifier, unique within the paper.", vectorize=False),
        text_property("text", "Chunk text."),
        text_property("section", "Title of the section the chunk belongs to."),
        text_property("sectionId", "Identifier of the section.", vectorize=False),
        scalar_property("pageNumber", "1-indexed page of the chunk, if known.", "int"),
        scalar_property("position", "Reading-order index of the chunk in the paper.", "int"),
        text_array_property("citations", "Citation ids referenced by the chunk."),
        text_array_property("figureIds", "Figure ids adjacent to the chunk."),
    ]),
    _class(FIGURE_CLASS, "Figure or table caption.", [
        text_property("paperId", "Paper identifier.", vectorize=False),
        text_property("figureId", "Figure identifier, unique within the paper.", vectorize=False),
        text_property("label", "Figure label, e.g. Figure 3.", vectorize=False),
        text_property("caption", "Caption text."),
        scalar_property("pageNumber", "Page the figure appears on.", "int"),
        text_property("imageUrl", "Resolved image URL.", vectorize=False),
        text_array_property("chunkIds", "Record ids of chunks referencing the figure."),
    ]),
    _class(CITATION_CLASS, "Bibliography entry cited by the paper.", [
        text_property("paperId", "Paper identifier.", vectorize=False),
        text_property("citationId", "Citation identifier, unique within the paper.", vectorize=False),
        text_property("title", "Cited work title."),
        text_array_property("authors", "Cited work authors."),
        scalar_property("year", "Publication year.", "int"),
        text_property("source", "Venue or journal."),
        text_property("doi", "DOI.", vectorize=False),
        text_property("url", "URL.", vectorize=False),
        text_property("arxivId", "arXiv identifier.", vectorize=False),
        text_property("abstract", "Abstract of the cited work, if enriched."),
        text_array_property("chunkIds", "Record ids of chunks citing the work."),
    ]),
    _class(PERSONA_CONCEPT_CLASS, "Concept the user already knows or learned.", [
        text_property("userId", "User identifier.", vectorize=False),
        text_property("concept", "Concept name."),
        text_property("description", "Notes about the concept."),
        text_property("firstSeenPaperId", "Paper where the concept first appeared.", vectorize=False),
        scalar_property("learnedAt", "When the concept was learned.", "date"),
        scalar_property("confidence", "How well the user knows the concept (0-1).", "number"),
    ]),
    _class(INTERACTION_CLASS, "User interaction tied to a paper.", [
        text_property("userId", "User identifier.", vectorize=False),
        text_property("paperId", "Paper identifier.", vectorize=False),
        text_property("interactionType", "question, follow-up, summary, ...", vectorize=False),
        text_property("prompt", "User input."),
        text_property("response", "Model response."),
        scalar_property("createdAt", "When the interaction occurred.", "date"),
        text_array_property("chunkIds", "Record ids of chunks used as evidence."),
    ]),
]

SCHEMA_BY_CLASS: dict[str, dict[str, Any]] = {c["class"]: c for c in SCHEMA_CLASSES}


def searchable_text_fields(class_name: str) -> list[str]:
    """Vectorized text properties of a class, in definition order."""
    definition = SCHEMA_BY_CLASS[class_name]
    return [
        p["name"]
        for p in definition["properties"]
        if p["dataType"] == ["text"] and "moduleConfig" not in p
    ]


def property_names(class_name: str) -> list[str]:
    return [p["name"] for p in SCHEMA_BY_CLASS[class_name]["properties"]]
