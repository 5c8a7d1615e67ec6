"""
In-memory taxonomy tree.

The tree is stored arena-style: taxa live in a dictionary keyed by integer
taxid and refer to each other only through ids. It is immutable once built,
so one instance can be shared read-only by any number of concurrent
estimations.

Trees can be built from an NCBI taxonomy dump (nodes.dmp / names.dmp, with
a nodes.json cache written beside it) or from the indentation structure of
a Kraken report (see reabund.core.parsers).
"""

from __future__ import annotations

import json
import logging
from collections import deque
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from reabund.core.constants import LINEAGE_SEPARATOR, NO_RANK_CODE, ROOT_TAXID
from reabund.core.exceptions import InvalidRankError, TaxonomyError, UnknownTaxonError

logger = logging.getLogger(__name__)


class Rank(str, Enum):
    """Taxonomic ranks understood by the estimator."""

    ROOT = "root"
    DOMAIN = "domain"
    KINGDOM = "kingdom"
    PHYLUM = "phylum"
    CLASS = "class"
    ORDER = "order"
    FAMILY = "family"
    GENUS = "genus"
    SPECIES = "species"
    NO_RANK = "no rank"

    @property
    def code(self) -> str:
        """Kraken report rank code."""
        return _RANK_TO_CODE[self]

    @classmethod
    def from_name(cls, name: str) -> Rank:
        """Map an NCBI rank name to a Rank; unknown names become NO_RANK."""
        name = name.strip().lower()
        if name == "superkingdom":
            return cls.DOMAIN
        try:
            return cls(name)
        except ValueError:
            return cls.NO_RANK

    @classmethod
    def from_code(cls, code: str) -> Rank:
        """Map a Kraken rank code (e.g. 'S', 'G', 'S1', '-') to a Rank.

        Sub-rank codes such as 'S1' denote unranked nodes below a main rank.
        """
        code = code.strip()
        if len(code) != 1:
            return cls.NO_RANK
        return _CODE_TO_RANK.get(code, cls.NO_RANK)


_RANK_TO_CODE: dict[Rank, str] = {
    Rank.ROOT: "R",
    Rank.DOMAIN: "D",
    Rank.KINGDOM: "K",
    Rank.PHYLUM: "P",
    Rank.CLASS: "C",
    Rank.ORDER: "O",
    Rank.FAMILY: "F",
    Rank.GENUS: "G",
    Rank.SPECIES: "S",
    Rank.NO_RANK: NO_RANK_CODE,
}
_CODE_TO_RANK: dict[str, Rank] = {code: rank for rank, code in _RANK_TO_CODE.items()}


def normalize_level(level: str) -> str:
    """
    Normalize a target rank given as name or code to a Kraken level id.

    Args:
        level: Rank name ("species"), rank code ("S") or sub-rank code ("S1").

    Returns:
        Level id as used in Kraken reports ("S", "G", "S1", ...).

    Raises:
        InvalidRankError: If the level cannot be interpreted.

    Example:
        >>> normalize_level("genus")
        'G'
        >>> normalize_level("s1")
        'S1'
    """
    text = level.strip()
    if not text:
        raise InvalidRankError(level)

    lowered = text.lower()
    if lowered in {r.value for r in Rank} or lowered == "superkingdom":
        rank = Rank.from_name(lowered)
        if rank is Rank.NO_RANK:
            raise InvalidRankError(level)
        return rank.code

    head, tail = text[0].upper(), text[1:]
    if head not in _CODE_TO_RANK or head == NO_RANK_CODE:
        raise InvalidRankError(level)
    if tail and not tail.isdigit():
        raise InvalidRankError(level)
    return head + tail


def derive_level_id(rank: Rank, parent_level_id: str | None) -> str:
    """
    Compute the Kraken-style level id of a node.

    Main ranks use their one-letter code. Unranked nodes take the code of
    the nearest ranked ancestor followed by their depth below it, the way
    Kraken reports label them (a strain below species is 'S1', a node
    below that 'S2').
    """
    if rank is not Rank.NO_RANK:
        return rank.code
    if parent_level_id is None:
        return Rank.ROOT.code
    if len(parent_level_id) == 1:
        return f"{parent_level_id}1"
    return f"{parent_level_id[0]}{int(parent_level_id[1:]) + 1}"


@dataclass(frozen=True)
class Taxon:
    """A single node of the taxonomy."""

    taxid: int
    parent_id: int | None
    rank: Rank
    name: str
    level_id: str

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


class NodeState(str, Enum):
    """Per-node state of a post-order traversal."""

    PENDING = "pending"
    READY = "ready"
    DONE = "done"


class PostOrderTraversal:
    """
    Post-order traversal driven by an explicit ready queue.

    Every node starts PENDING with a count of unprocessed children. Leaves
    are READY from the start. Yielding a node moves it to DONE and
    decrements its parent's counter; the parent becomes READY when the
    counter reaches zero. Ready nodes are served in FIFO order seeded by
    ascending taxid, so the order is deterministic.

    Example:
        >>> traversal = PostOrderTraversal(tree)
        >>> for taxid in traversal:
        ...     assert all(traversal.state(c) is NodeState.DONE
        ...                for c in tree.children(taxid))
    """

    def __init__(self, tree: TaxonomyTree) -> None:
        self._tree = tree
        self._remaining: dict[int, int] = {}
        self._states: dict[int, NodeState] = {}
        self._ready: deque[int] = deque()

        for taxid in sorted(tree.taxids()):
            n_children = len(tree.children(taxid))
            self._remaining[taxid] = n_children
            if n_children == 0:
                self._states[taxid] = NodeState.READY
                self._ready.append(taxid)
            else:
                self._states[taxid] = NodeState.PENDING

    def state(self, taxid: int) -> NodeState:
        return self._states[taxid]

    def __iter__(self) -> Iterator[int]:
        while self._ready:
            taxid = self._ready.popleft()
            self._states[taxid] = NodeState.DONE
            yield taxid

            parent = self._tree.parent(taxid)
            if parent is None:
                continue
            self._remaining[parent] -= 1
            if self._remaining[parent] == 0:
                self._states[parent] = NodeState.READY
                self._ready.append(parent)


class TaxonomyTree:
    """
    Rooted, immutable taxonomy tree indexed by integer taxid.

    Example:
        >>> tree = TaxonomyTree.from_records([
        ...     (1, None, "root", "root"),
        ...     (10, 1, "genus", "Escherichia"),
        ...     (11, 10, "species", "Escherichia coli"),
        ... ])
        >>> tree.ancestors(11)
        [1, 10, 11]
    """

    def __init__(self, taxa: Iterable[Taxon]) -> None:
        self._taxa: dict[int, Taxon] = {}
        for taxon in taxa:
            if taxon.taxid in self._taxa:
                msg = f"Duplicate taxid {taxon.taxid} in taxonomy"
                raise TaxonomyError(msg)
            self._taxa[taxon.taxid] = taxon

        if not self._taxa:
            raise TaxonomyError("Taxonomy is empty")

        roots = [t.taxid for t in self._taxa.values() if t.parent_id is None]
        if len(roots) != 1:
            msg = f"Taxonomy must have exactly one root, found {len(roots)}"
            raise TaxonomyError(
                msg,
                suggestion="Every node except the root needs a parent taxid.",
            )
        self._root = roots[0]

        children: dict[int, list[int]] = {taxid: [] for taxid in self._taxa}
        for taxon in self._taxa.values():
            if taxon.parent_id is None:
                continue
            if taxon.parent_id not in self._taxa:
                msg = f"Parent {taxon.parent_id} of taxon {taxon.taxid} is missing"
                raise TaxonomyError(msg)
            children[taxon.parent_id].append(taxon.taxid)
        self._children: dict[int, tuple[int, ...]] = {
            taxid: tuple(sorted(kids)) for taxid, kids in children.items()
        }

        # Breadth-first walk from the root doubles as the cycle check:
        # nodes on a cycle are never reached.
        self._depth: dict[int, int] = {self._root: 0}
        queue = deque([self._root])
        while queue:
            current = queue.popleft()
            for child in self._children[current]:
                self._depth[child] = self._depth[current] + 1
                queue.append(child)
        if len(self._depth) != len(self._taxa):
            unreachable = sorted(set(self._taxa) - set(self._depth))[:5]
            msg = f"Taxonomy contains nodes unreachable from the root: {unreachable}"
            raise TaxonomyError(msg, suggestion="The parent links contain a cycle.")

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_records(
        cls,
        records: Iterable[tuple[int, int | None, str, str]],
    ) -> TaxonomyTree:
        """
        Build a tree from (taxid, parent_id, rank_name, name) tuples.

        Level ids are derived from ranks, parents before children. A record
        whose parent equals its own taxid is treated as the root.
        """
        raw: dict[int, tuple[int | None, Rank, str]] = {}
        for taxid, parent_id, rank_name, name in records:
            if parent_id == taxid:
                parent_id = None
            raw[taxid] = (parent_id, Rank.from_name(rank_name), name)

        children: dict[int | None, list[int]] = {}
        for taxid, (parent_id, _, _) in raw.items():
            children.setdefault(parent_id, []).append(taxid)

        taxa: list[Taxon] = []
        level_ids: dict[int, str] = {}
        queue = deque((taxid, None) for taxid in sorted(children.get(None, [])))
        while queue:
            taxid, parent_level = queue.popleft()
            parent_id, rank, name = raw[taxid]
            if parent_id is None and rank is Rank.NO_RANK:
                rank = Rank.ROOT
            level_ids[taxid] = derive_level_id(rank, parent_level)
            taxa.append(Taxon(taxid, parent_id, rank, name, level_ids[taxid]))
            for child in sorted(children.get(taxid, [])):
                queue.append((child, level_ids[taxid]))

        # Nodes on cycles or under missing parents are never reached above;
        # pass them through with a placeholder level so __init__ reports them.
        for taxid, (parent_id, rank, name) in raw.items():
            if taxid not in level_ids:
                taxa.append(Taxon(taxid, parent_id, rank, name, rank.code))

        return cls(taxa)

    # ------------------------------------------------------------------
    # Basic access
    # ------------------------------------------------------------------

    @property
    def root(self) -> int:
        return self._root

    def __len__(self) -> int:
        return len(self._taxa)

    def __contains__(self, taxid: object) -> bool:
        return taxid in self._taxa

    def __iter__(self) -> Iterator[Taxon]:
        return iter(self._taxa.values())

    def taxids(self) -> Iterable[int]:
        return self._taxa.keys()

    def get(self, taxid: int) -> Taxon:
        """Return the Taxon for a taxid, raising UnknownTaxonError if absent."""
        try:
            return self._taxa[taxid]
        except KeyError:
            raise UnknownTaxonError(taxid) from None

    def parent(self, taxid: int) -> int | None:
        return self.get(taxid).parent_id

    def children(self, taxid: int) -> tuple[int, ...]:
        if taxid not in self._children:
            raise UnknownTaxonError(taxid)
        return self._children[taxid]

    def depth(self, taxid: int) -> int:
        if taxid not in self._depth:
            raise UnknownTaxonError(taxid)
        return self._depth[taxid]

    # ------------------------------------------------------------------
    # Path queries
    # ------------------------------------------------------------------

    def ancestors(self, taxid: int) -> list[int]:
        """Return the root-to-node path, including the node itself."""
        path = [taxid]
        current = self.parent(taxid)
        while current is not None:
            path.append(current)
            current = self._taxa[current].parent_id
        path.reverse()
        return path

    def is_ancestor(self, ancestor: int, taxid: int) -> bool:
        """True if `ancestor` lies on the root path of `taxid` (inclusive)."""
        if ancestor not in self._taxa or taxid not in self._taxa:
            return False
        target_depth = self._depth[ancestor]
        current: int | None = taxid
        while current is not None and self.depth(current) > target_depth:
            current = self._taxa[current].parent_id
        return current == ancestor

    def lineage(self, taxid: int, separator: str = LINEAGE_SEPARATOR) -> str:
        """Names from the first node below the root down to `taxid`."""
        path = self.ancestors(taxid)[1:] or [taxid]
        return separator.join(self._taxa[t].name for t in path)

    # ------------------------------------------------------------------
    # Rank queries
    # ------------------------------------------------------------------

    def taxa_at_rank(self, level: str) -> list[int]:
        """All taxids whose level id equals `level`, sorted ascending."""
        level = normalize_level(level)
        return sorted(t.taxid for t in self._taxa.values() if t.level_id == level)

    def descendants_at_rank(self, taxid: int, level: str) -> list[int]:
        """
        Taxa at `level` strictly below `taxid`, sorted ascending.

        The search does not descend below a match, so nested nodes that
        happen to carry the same level id are not double counted.
        """
        level = normalize_level(level)
        found: list[int] = []
        stack = list(self.children(taxid))
        while stack:
            current = stack.pop()
            if self._taxa[current].level_id == level:
                found.append(current)
                continue
            stack.extend(self._children[current])
        return sorted(found)

    def ancestor_at_rank(self, taxid: int, level: str) -> int | None:
        """Nearest proper ancestor of `taxid` at `level`, or None."""
        level = normalize_level(level)
        current = self.parent(taxid)
        while current is not None:
            if self._taxa[current].level_id == level:
                return current
            current = self._taxa[current].parent_id
        return None

    def post_order(self) -> PostOrderTraversal:
        return PostOrderTraversal(self)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_records(self) -> list[tuple[int, int | None, str, str]]:
        return [
            (t.taxid, t.parent_id, t.rank.value, t.name)
            for t in sorted(self._taxa.values(), key=lambda t: t.taxid)
        ]

    def save_json(self, path: Path) -> None:
        """Write the tree as a JSON list of [taxid, parent, rank, name]."""
        path.write_text(json.dumps(self.to_records()))

    @classmethod
    def load_json(cls, path: Path) -> TaxonomyTree:
        try:
            records = json.loads(path.read_text())
        except json.JSONDecodeError as e:
            msg = f"Taxonomy cache {path} is not valid JSON: {e}"
            raise TaxonomyError(msg, suggestion=f"Delete {path} to rebuild it.") from e
        return cls.from_records(
            (int(taxid), None if parent is None else int(parent), rank, name)
            for taxid, parent, rank, name in records
        )

    @classmethod
    def load_ncbi_dmp(cls, nodes_path: Path, names_path: Path | None = None) -> TaxonomyTree:
        """
        Build a tree from NCBI nodes.dmp and optional names.dmp.

        Only scientific names are used. Taxa without a name are labelled
        with their taxid.
        """
        names: dict[int, str] = {}
        if names_path is not None and names_path.exists():
            with names_path.open() as f:
                for line in f:
                    fields = line.rstrip("\t|\n").split("\t|\t")
                    if len(fields) >= 4 and fields[3].strip() == "scientific name":
                        names[int(fields[0])] = fields[1].strip()

        records: list[tuple[int, int | None, str, str]] = []
        with nodes_path.open() as f:
            for line_num, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                fields = line.rstrip("\t|\n").split("\t|\t")
                if len(fields) < 3:
                    msg = f"Not enough fields in {nodes_path} at line {line_num}"
                    raise TaxonomyError(msg)
                try:
                    taxid = int(fields[0])
                    parent = int(fields[1])
                except ValueError as e:
                    msg = f"Non-integer taxid in {nodes_path} at line {line_num}"
                    raise TaxonomyError(msg) from e
                rank = fields[2].strip()
                records.append((taxid, parent, rank, names.get(taxid, str(taxid))))

        logger.debug("Read %d taxonomy nodes from %s", len(records), nodes_path)
        return cls.from_records(records)


def load_taxonomy(taxonomy_dir: Path) -> TaxonomyTree:
    """
    Load the taxonomy stored in a Kraken taxonomy directory.

    Prefers a nodes.json cache; otherwise parses nodes.dmp (and names.dmp)
    and writes the cache for the next run.

    Raises:
        TaxonomyError: If neither nodes.json nor nodes.dmp exists.
    """
    json_file = taxonomy_dir / "nodes.json"
    dmp_file = taxonomy_dir / "nodes.dmp"

    if json_file.exists():
        tree = TaxonomyTree.load_json(json_file)
    elif dmp_file.exists():
        tree = TaxonomyTree.load_ncbi_dmp(dmp_file, taxonomy_dir / "names.dmp")
        try:
            tree.save_json(json_file)
        except OSError:
            logger.warning("Could not write taxonomy cache %s", json_file)
    else:
        msg = f"No taxonomy nodes file found in {taxonomy_dir}"
        raise TaxonomyError(
            msg,
            suggestion="The directory must contain nodes.dmp (and ideally names.dmp).",
        )

    logger.info("Loaded taxonomy with %d nodes (root %d)", len(tree), tree.root)
    if tree.root != ROOT_TAXID:
        logger.debug("Taxonomy root is %d rather than %d", tree.root, ROOT_TAXID)
    return tree
