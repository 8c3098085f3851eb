"""Taxonomy indexing and pagination for Stheno.

The indexer aggregates published Documents into cross-reference indexes: one
per taxonomy term (e.g. ``("tags", "python")``), one chronological index per
section and the home index of every document. Each index is split into
fixed-size pagers.

Ordering is always the stable key (date descending, then source path), never
load or completion order, so parallel builds produce identical listings.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field

from .content import Document
from .utils import slugify

logger = logging.getLogger(__name__)

HOME_KIND = "home"
SECTION_KIND = "section"


def sort_documents(documents: Iterable[Document]) -> list[Document]:
    """Sort documents newest first, ties broken by source path.

    Undated documents sort after all dated ones.
    """
    by_path = sorted(documents, key=lambda d: d.source_path.as_posix())
    return sorted(by_path, key=lambda d: d.sort_key[0], reverse=True)


@dataclass(frozen=True)
class Pager:
    """One page of a paginated index.

    Attributes:
        number: 1-based page number.
        total: Total number of pages in the index.
        items: Documents on this page.
        url: URL of this page.
        first_url: URL of page 1.
        prev_url: URL of the previous page, or None on page 1.
        next_url: URL of the next page, or None on the last page.
    """

    number: int
    total: int
    items: tuple[Document, ...]
    url: str
    first_url: str
    prev_url: str | None = None
    next_url: str | None = None

    @property
    def has_prev(self) -> bool:
        return self.prev_url is not None

    @property
    def has_next(self) -> bool:
        return self.next_url is not None


def pager_url(base_url: str, number: int) -> str:
    """URL of page ``number`` of an index served at ``base_url``."""
    if number == 1:
        return base_url
    return f"{base_url}page/{number}/"


def paginate(documents: Sequence[Document], size: int, base_url: str) -> tuple[Pager, ...]:
    """Split an ordered document sequence into fixed-size pagers.

    Page N holds items ``[(N-1)*size, N*size)``. An empty sequence still
    yields one (empty) pager so that every index has a page to render.

    Args:
        documents: Documents in index order.
        size: Page size; must be positive.
        base_url: URL of the index (page 1).

    Returns:
        Tuple of Pager objects.

    Raises:
        ValueError: If size is not a positive integer.
    """
    if size < 1:
        raise ValueError(f"page size must be positive, got {size}")
    total = max(1, -(-len(documents) // size))
    pagers = []
    for number in range(1, total + 1):
        items = tuple(documents[(number - 1) * size : number * size])
        pagers.append(
            Pager(
                number=number,
                total=total,
                items=items,
                url=pager_url(base_url, number),
                first_url=base_url,
                prev_url=pager_url(base_url, number - 1) if number > 1 else None,
                next_url=pager_url(base_url, number + 1) if number < total else None,
            )
        )
    return tuple(pagers)


class DocumentCollection(Sequence[Document]):
    """Lightweight helper for working with lists of Documents in templates."""

    def __init__(self, documents: Iterable[Document]):
        self._documents = list(documents)

    def __iter__(self) -> Iterator[Document]:
        return iter(self._documents)

    def __len__(self) -> int:
        return len(self._documents)

    def __getitem__(self, item):
        return self._documents[item]

    def section(self, name: str) -> DocumentCollection:
        return DocumentCollection(d for d in self._documents if d.section == name)

    def with_term(self, kind: str, term: str) -> DocumentCollection:
        return DocumentCollection(
            d
            for d in self._documents
            if slugify(term) in {slugify(t) for t in d.terms.get(kind, ())}
        )

    def with_tag(self, tag: str) -> DocumentCollection:
        return self.with_term("tags", tag)

    def sorted(self, reverse: bool = True) -> DocumentCollection:
        """Chronological order; newest first by default."""
        ordered = sort_documents(self._documents)
        if not reverse:
            ordered.reverse()
        return DocumentCollection(ordered)

    def latest(self, count: int = 5) -> DocumentCollection:
        return DocumentCollection(self.sorted()[:count])

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"DocumentCollection({len(self._documents)} documents)"


@dataclass(frozen=True)
class TaxonomyIndex:
    """Ordered, paginated set of documents sharing a classification.

    Attributes:
        kind: Classification kind ("tags", "section", "home", ...).
        term: Term within the kind ("python", "posts", "").
        url: URL of the index's first page.
        documents: Documents in index order.
        pagers: Pagination of ``documents``.
    """

    kind: str
    term: str
    url: str
    documents: tuple[Document, ...]
    pagers: tuple[Pager, ...]

    @property
    def key(self) -> tuple[str, str]:
        return (self.kind, self.term)

    @property
    def collection(self) -> DocumentCollection:
        return DocumentCollection(self.documents)

    def __len__(self) -> int:
        return len(self.documents)


@dataclass(frozen=True)
class SiteIndex:
    """Every index built for one site.

    Attributes:
        home: Index of all published documents, served at "/".
        sections: Section name to chronological section index.
        taxonomies: Taxonomy kind to term to index.
    """

    home: TaxonomyIndex
    sections: Mapping[str, TaxonomyIndex] = field(default_factory=dict)
    taxonomies: Mapping[str, Mapping[str, TaxonomyIndex]] = field(default_factory=dict)

    def get(self, kind: str, term: str) -> TaxonomyIndex | None:
        if kind == HOME_KIND:
            return self.home
        if kind == SECTION_KIND:
            return self.sections.get(term)
        terms = self.taxonomies.get(kind, {})
        if term in terms:
            return terms[term]
        url = term_url(kind, term)
        return next((index for index in terms.values() if index.url == url), None)

    def all(self) -> list[TaxonomyIndex]:
        """Every index in a deterministic order."""
        indexes = [self.home]
        indexes.extend(self.sections[name] for name in sorted(self.sections))
        for kind in sorted(self.taxonomies):
            terms = self.taxonomies[kind]
            indexes.extend(terms[term] for term in sorted(terms))
        return indexes


class TaxonomyIndexer:
    """Builds taxonomy, section and home indexes from a document set.

    Attributes:
        page_size: Number of documents per pager.
        taxonomies: Taxonomy kind to declared terms. Declared terms get an
            index (with an empty page) even when no document uses them.
        include_drafts: Index draft documents too (preview mode).
    """

    def __init__(
        self,
        page_size: int,
        taxonomies: Mapping[str, Iterable[str]],
        include_drafts: bool = False,
    ):
        if page_size < 1:
            raise ValueError(f"page size must be positive, got {page_size}")
        self.page_size = page_size
        self.taxonomies = {kind: tuple(terms) for kind, terms in taxonomies.items()}
        self.include_drafts = include_drafts

    def build(self, documents: Iterable[Document]) -> SiteIndex:
        """Build every index for the given documents.

        List metadata documents (``_index.md``) are never indexed.
        Cross references (``newer``/``older`` within a section) are written
        onto the documents.

        Args:
            documents: Documents of the site.

        Returns:
            SiteIndex with home, section and taxonomy indexes.
        """
        published = sort_documents(
            d
            for d in documents
            if not d.is_list_meta and (self.include_drafts or not d.draft)
        )

        home = self._index(HOME_KIND, "", "/", published)

        sections: dict[str, TaxonomyIndex] = {}
        for name in sorted({d.section for d in published if d.section}):
            members = [d for d in published if d.section == name]
            sections[name] = self._index(SECTION_KIND, name, f"/{name}/", members)
            self._link_neighbours(members)

        taxonomies: dict[str, dict[str, TaxonomyIndex]] = {}
        for kind, declared in self.taxonomies.items():
            # terms that share a slug share a URL, so they share an index
            spelling: dict[str, str] = {}
            for term in declared:
                spelling.setdefault(slugify(term), term)
            for doc in sorted(published, key=lambda d: d.source_path.as_posix()):
                for term in doc.terms.get(kind, ()):
                    spelling.setdefault(slugify(term), term)

            grouped: dict[str, list[Document]] = {slugify(term): [] for term in declared}
            for doc in published:
                for key in dict.fromkeys(slugify(t) for t in doc.terms.get(kind, ())):
                    grouped.setdefault(key, []).append(doc)
            taxonomies[kind] = {
                spelling[key]: self._index(
                    kind, spelling[key], term_url(kind, spelling[key]), grouped[key]
                )
                for key in sorted(grouped, key=lambda k: spelling[k])
            }
            logger.debug("Indexed %d %s terms", len(grouped), kind)

        return SiteIndex(home=home, sections=sections, taxonomies=taxonomies)

    def _index(
        self, kind: str, term: str, url: str, documents: list[Document]
    ) -> TaxonomyIndex:
        ordered = tuple(documents)
        return TaxonomyIndex(
            kind=kind,
            term=term,
            url=url,
            documents=ordered,
            pagers=paginate(ordered, self.page_size, url),
        )

    @staticmethod
    def _link_neighbours(members: list[Document]) -> None:
        for position, doc in enumerate(members):
            doc.newer = members[position - 1] if position > 0 else None
            doc.older = members[position + 1] if position + 1 < len(members) else None


def term_url(kind: str, term: str) -> str:
    """URL of a taxonomy term index, e.g. ``/tags/python/``."""
    return f"/{kind}/{slugify(term)}/"
