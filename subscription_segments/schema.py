# Attribute schema and the normalizer that turns a cleaned table into records
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

try:
    from .config import KEY_COL, MISSING
    from .exceptions import SchemaMismatchError
except ImportError:
    from config import KEY_COL, MISSING
    from exceptions import SchemaMismatchError


class AttributeKind(str, Enum):
    NOMINAL = "nominal"
    ORDERED = "ordered"
    NUMERIC = "numeric"


@dataclass(frozen=True)
class Attribute:
    """
    One clustering attribute.

    ``levels`` is the permissible level set for categorical kinds. Ordered
    attributes must declare it (the tuple order is the rank order); nominal
    attributes may leave it as None to accept any token.
    """
    name: str
    kind: AttributeKind
    levels: Optional[Tuple] = None
    weight: float = 1.0

    def __post_init__(self):
        kind = AttributeKind(self.kind)
        object.__setattr__(self, "kind", kind)
        if self.levels is not None:
            levels = tuple(self.levels)
            if len(set(levels)) != len(levels):
                raise ValueError(f"{self.name}: duplicate levels")
            object.__setattr__(self, "levels", levels)
        if kind is AttributeKind.NUMERIC and self.levels is not None:
            raise ValueError(f"{self.name}: numeric attributes take no levels")
        if kind is AttributeKind.ORDERED and not self.levels:
            raise ValueError(f"{self.name}: ordered attributes need their levels in rank order")
        if self.weight < 0:
            raise ValueError(f"{self.name}: weight must be >= 0")

    @property
    def is_categorical(self) -> bool:
        return self.kind is not AttributeKind.NUMERIC


@dataclass(frozen=True)
class AttributeSchema:
    attributes: Tuple[Attribute, ...]

    def __post_init__(self):
        attrs = tuple(self.attributes)
        if not attrs:
            raise ValueError("schema needs at least one attribute")
        names = [a.name for a in attrs]
        if len(set(names)) != len(names):
            raise ValueError(f"duplicate attribute names in {names}")
        object.__setattr__(self, "attributes", attrs)

    @property
    def names(self) -> List[str]:
        return [a.name for a in self.attributes]

    def __len__(self) -> int:
        return len(self.attributes)

    def __iter__(self) -> Iterator[Attribute]:
        return iter(self.attributes)

    def __getitem__(self, name: str) -> Attribute:
        for a in self.attributes:
            if a.name == name:
                return a
        raise KeyError(name)

    def with_attribute(self, attr: Attribute) -> "AttributeSchema":
        """Return a copy with the attribute of the same name replaced."""
        return AttributeSchema(tuple(attr if a.name == attr.name else a for a in self.attributes))

    @classmethod
    def from_frame(cls, df: pd.DataFrame, nominal: Iterable[str] = (), ordered: Iterable[str] = (),
                   numeric: Iterable[str] = (), order: Optional[Sequence[str]] = None,
                   levels: Optional[Dict[str, Sequence]] = None) -> "AttributeSchema":
        """
        Build a schema whose level sets are the values observed in ``df``.

        Args:
            df: Cleaned table
            nominal: Unordered categorical columns
            ordered: Ordered columns; levels are ranked by their sorted values
            numeric: Numeric columns
            order: Attribute order; defaults to nominal, then ordered, then numeric
            levels: Declared level sets that replace the observed ones

        Returns:
            AttributeSchema
        """
        kinds: Dict[str, AttributeKind] = {}
        for names, kind in ((nominal, AttributeKind.NOMINAL), (ordered, AttributeKind.ORDERED),
                            (numeric, AttributeKind.NUMERIC)):
            for n in names:
                kinds[n] = kind

        absent = [n for n in kinds if n not in df.columns]
        if absent:
            raise SchemaMismatchError(f"Attributes not in table: {absent}")

        declared = levels or {}
        attrs = []
        for n in (order if order is not None else list(kinds)):
            kind = kinds[n]
            values = df[n].dropna()
            if n in declared and kind is not AttributeKind.NUMERIC:
                attrs.append(Attribute(n, kind, tuple(declared[n])))
            elif kind is AttributeKind.NOMINAL:
                tokens = {_to_token(v) for v in values} - {MISSING}
                attrs.append(Attribute(n, kind, tuple(sorted(tokens))))
            elif kind is AttributeKind.ORDERED:
                attrs.append(Attribute(n, kind, tuple(sorted(values.unique()))))
            else:
                attrs.append(Attribute(n, kind))
        return cls(tuple(attrs))


@dataclass(frozen=True)
class RecordSet:
    """
    Normalized records ready for the dissimilarity engine.

    Column arrays are read-only: nominal columns hold string tokens (``MISSING``
    marks a missing value), ordered columns hold level ranks and numeric columns
    hold floats, both with NaN for missing.
    """
    keys: Tuple
    schema: AttributeSchema
    columns: Dict[str, np.ndarray] = field(repr=False)

    def __len__(self) -> int:
        return len(self.keys)

    def __getitem__(self, i: int) -> tuple:
        return tuple(self.columns[n][i] for n in self.schema.names)

    def missing_mask(self, name: str) -> np.ndarray:
        return _is_missing(self.columns[name], self.schema[name])

    def to_frame(self) -> pd.DataFrame:
        df = pd.DataFrame({n: self.columns[n] for n in self.schema.names})
        df.insert(0, "key", list(self.keys))
        return df


def _to_token(v) -> str:
    if v is None or (not isinstance(v, str) and pd.isna(v)):
        return MISSING
    s = str(v).strip()
    return s if s else MISSING


def _readonly(a: np.ndarray) -> np.ndarray:
    a.setflags(write=False)
    return a


def normalize_attributes(df: pd.DataFrame, schema: AttributeSchema, key: str = KEY_COL,
                         unexpected: str = "reject") -> RecordSet:
    """
    Coerce the schema's attributes into canonical discrete values.

    Args:
        df: Cleaned table, one row per record
        schema: Attribute schema
        key: Identifier column, carried through but never clustered on
        unexpected: What to do with a nominal value outside the declared levels:
            "reject" raises, "extend" adds it to the level set of the returned
            schema. Ordered attributes always reject.

    Returns:
        RecordSet aligned with the rows of ``df``
    """
    if unexpected not in ("reject", "extend"):
        raise ValueError(f"unexpected must be 'reject' or 'extend', got {unexpected!r}")

    absent = [c for c in [key] + schema.names if c not in df.columns]
    if absent:
        raise SchemaMismatchError(f"Columns not in table: {absent}")

    keys = tuple(df[key].tolist())
    if len(set(keys)) != len(keys):
        raise SchemaMismatchError(f"{key} values are not unique")

    columns: Dict[str, np.ndarray] = {}
    out_schema = schema
    for attr in schema:
        raw = df[attr.name]

        if attr.kind is AttributeKind.NOMINAL:
            tokens = np.array([_to_token(v) for v in raw], dtype=object)
            if attr.levels is not None:
                unknown = sorted(set(tokens) - set(attr.levels) - {MISSING})
                if unknown and unexpected == "reject":
                    raise SchemaMismatchError(f"{attr.name}: values outside declared levels: {unknown[:10]}")
                if unknown:
                    print(f"[normalize] {attr.name}: adding {len(unknown)} new level(s) {unknown[:10]}")
                    out_schema = out_schema.with_attribute(replace(attr, levels=attr.levels + tuple(unknown)))
            columns[attr.name] = _readonly(tokens)

        elif attr.kind is AttributeKind.ORDERED:
            rank = {lvl: float(i) for i, lvl in enumerate(attr.levels)}
            values, unknown = [], []
            for v in raw:
                if pd.isna(v):
                    values.append(np.nan)
                elif v in rank:
                    values.append(rank[v])
                else:
                    unknown.append(v)
            if unknown:
                raise SchemaMismatchError(f"{attr.name}: values outside ordered levels: {sorted(set(map(str, unknown)))[:10]}")
            columns[attr.name] = _readonly(np.asarray(values, dtype=float))

        else:
            blank = raw.map(lambda v: isinstance(v, str) and not v.strip())
            raw = raw.mask(blank)
            num = pd.to_numeric(raw, errors="coerce")
            bad = num.isna() & raw.notna()
            if bad.any():
                raise SchemaMismatchError(f"{attr.name}: non-numeric values {raw[bad].astype(str).unique()[:10].tolist()}")
            columns[attr.name] = _readonly(num.to_numpy(dtype=float))

    n_missing = {n: int(np.sum(_is_missing(columns[n], out_schema[n]))) for n in out_schema.names}
    print(f"[normalize] {len(keys):,} records x {len(out_schema)} attributes; missing per attribute: {n_missing}")
    return RecordSet(keys=keys, schema=out_schema, columns=columns)


def _is_missing(col: np.ndarray, attr: Attribute) -> np.ndarray:
    if attr.kind is AttributeKind.NOMINAL:
        return col == MISSING
    return np.isnan(col)
